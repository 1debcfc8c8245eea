from __future__ import annotations

import logging
from dataclasses import replace
from enum import Enum
from typing import Callable

from trialbench._logging import format_event
from trialbench.console import OperatorConsole
from trialbench.decoders import DiagnosticDecoder
from trialbench.hexdump import DEFAULT_BYTES_PER_LINE, render_hex
from trialbench.invoker import TrialInvoker
from trialbench.models import CommandSpec, TrialResult
from trialbench.params import ParameterSet

_log = logging.getLogger("trialbench.browser")

HexRenderer = Callable[[bytes, int], str]


class BrowserState(str, Enum):
    READY = "ready"
    VIEW_PAYLOAD = "view_payload"
    VIEW_DIAGNOSTIC = "view_diagnostic"
    VIEW_DECODED = "view_decoded"
    VIEW_DECODED_PAYLOAD = "view_decoded_payload"
    RETRY = "retry"
    RECONFIGURE = "reconfigure"
    BACK = "back"


TERMINAL_STATES = frozenset({BrowserState.RECONFIGURE, BrowserState.BACK})

_SELECTIONS = {
    0: BrowserState.BACK,
    1: BrowserState.VIEW_PAYLOAD,
    2: BrowserState.VIEW_DIAGNOSTIC,
    3: BrowserState.VIEW_DECODED,
    4: BrowserState.RETRY,
    5: BrowserState.RECONFIGURE,
    6: BrowserState.VIEW_DECODED_PAYLOAD,
}


def describe_buffer(data: bytes | None) -> str:
    if data is None:
        return "not present"
    if not data:
        return "empty (0 bytes)"
    return f"{len(data)} bytes"


class TrialResultBrowser:
    """Shows one command's latest trial and reacts to the operator.

    From ``READY`` the operator can view the payload or diagnostic as hex,
    view the decoded diagnostic (and the decoded payload when a payload
    decoder is bound), retry the command with the same parameters, go back
    to change parameters, or leave. Views wait for an acknowledgement and
    come back to ``READY``; ``RECONFIGURE`` and ``BACK`` end this browser.
    """

    def __init__(
        self,
        command: CommandSpec,
        parameters: ParameterSet,
        invoker: TrialInvoker,
        decoder: DiagnosticDecoder,
        io: OperatorConsole,
        *,
        payload_decoder: DiagnosticDecoder | None = None,
        back_label: str = "Return to commands menu.",
        hex_renderer: HexRenderer = render_hex,
        bytes_per_line: int = DEFAULT_BYTES_PER_LINE,
    ):
        self.command = command
        self.parameters = parameters
        self.invoker = invoker
        self.decoder = decoder
        self.payload_decoder = payload_decoder
        self.io = io
        self.back_label = back_label
        self.hex_renderer = hex_renderer
        self.bytes_per_line = bytes_per_line
        self.state = BrowserState.READY
        self.result: TrialResult | None = None
        self.trials = 0

    @property
    def device_path(self) -> str:
        return self.invoker.session.path

    def run_trial(self) -> TrialResult:
        raw = self.invoker.invoke(self.command, self.parameters)
        decoded_payload = ""
        if self.payload_decoder is not None:
            decoded_payload = self.payload_decoder.decode(raw.payload)
        # Decoded once per result; every later view reuses it.
        self.result = replace(
            raw,
            decoded_diagnostic=self.decoder.decode(raw.diagnostic),
            decoded_payload=decoded_payload,
        )
        self.trials += 1
        self.state = BrowserState.READY
        return self.result

    def run(self) -> BrowserState:
        if self.result is None:
            self.run_trial()
        while True:
            self.render_ready()
            selection = self.io.choose()
            if selection is None:
                continue
            if self.select(selection) in TERMINAL_STATES:
                return self.state

    def render_ready(self) -> None:
        result = self._current()
        self.io.screen(self.device_path, f"Sending {self.command.name} to the device:")
        self.io.say(f"Command took {result.duration_ms:.3f} ms.")
        self.io.say(f"Success: {'yes' if result.success else 'no'}.")
        self.io.say(f"Payload: {describe_buffer(result.payload)}.")
        self.io.say(f"Diagnostic: {describe_buffer(result.diagnostic)}.")
        choices = [
            (1, "Print payload."),
            (2, "Print diagnostic."),
            (3, "Decode diagnostic."),
            (4, "Send command again."),
        ]
        if self.command.has_parameters:
            choices.append((5, "Change parameters."))
        if self.payload_decoder is not None:
            choices.append((6, "Decode payload."))
        self.io.options(choices, self.back_label)

    def select(self, selection: int) -> BrowserState:
        target = _SELECTIONS.get(selection)
        if target is BrowserState.RECONFIGURE and not self.command.has_parameters:
            target = None
        if target is BrowserState.VIEW_DECODED_PAYLOAD and self.payload_decoder is None:
            target = None
        if target is None:
            self.io.reject("Incorrect option.")
            self.state = BrowserState.READY
            return self.state

        _log.debug(
            format_event("browser_select", command=self.command.command_id, state=target.value)
        )
        self.state = target
        if target is BrowserState.RETRY:
            self.run_trial()
        elif target is BrowserState.VIEW_PAYLOAD:
            self._view_buffer("response", self._current().payload, "Payload")
        elif target is BrowserState.VIEW_DIAGNOSTIC:
            self._view_buffer("diagnostic", self._current().diagnostic, "Diagnostic")
        elif target is BrowserState.VIEW_DECODED:
            result = self._current()
            self._view_decoded("diagnostic", result.diagnostic, result.decoded_diagnostic)
        elif target is BrowserState.VIEW_DECODED_PAYLOAD:
            result = self._current()
            self._view_decoded("payload", result.payload, result.decoded_payload)
        return self.state

    def _current(self) -> TrialResult:
        if self.result is None:
            raise RuntimeError("no trial has been run yet")
        return self.result

    def _view_buffer(self, what: str, data: bytes | None, noun: str) -> None:
        self.io.screen(self.device_path, f"{self.command.name} {what}:")
        if data is None:
            self.io.say(f"{noun} not present.")
        elif not data:
            self.io.say(f"{noun} is empty (0 bytes).")
        else:
            self.io.block(self.hex_renderer(data, self.bytes_per_line))
        self._back_to_ready()

    def _view_decoded(self, what: str, data: bytes | None, text: str) -> None:
        self.io.screen(self.device_path, f"{self.command.name} decoded {what}:")
        if data is None:
            self.io.say(f"{what.capitalize()} not present.")
        elif not text:
            self.io.say("Nothing decoded.")
        else:
            self.io.block(text.rstrip("\n"))
        self._back_to_ready()

    def _back_to_ready(self) -> None:
        self.io.acknowledge()
        self.state = BrowserState.READY
