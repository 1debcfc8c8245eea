from __future__ import annotations

import logging
from typing import Callable, Iterable, Sequence

from trialbench import fields as field_editor
from trialbench._logging import format_event
from trialbench.browser import BrowserState, HexRenderer, TrialResultBrowser
from trialbench.console import OperatorConsole
from trialbench.decoders import DiagnosticDecoder, build_decoder
from trialbench.hexdump import DEFAULT_BYTES_PER_LINE, render_hex
from trialbench.invoker import TrialInvoker
from trialbench.models import CollaboratorRef, CommandSpec, FieldKind, MenuNode
from trialbench.params import ParameterSet
from trialbench.transport import DeviceSession

_log = logging.getLogger("trialbench.session")


def _back_label(title: str) -> str:
    return f"Return to {title} menu."


class CommandFlow:
    """Parameter stage and result stage for one selected command.

    The parameter set is created on entry and lives until the operator
    returns to the command menu, so retries and reconfigures start from the
    last accepted values.
    """

    def __init__(
        self,
        command: CommandSpec,
        invoker: TrialInvoker,
        decoder: DiagnosticDecoder,
        io: OperatorConsole,
        *,
        payload_decoder: DiagnosticDecoder | None = None,
        menu_title: str,
        hex_renderer: HexRenderer = render_hex,
        bytes_per_line: int = DEFAULT_BYTES_PER_LINE,
    ):
        self.command = command
        self.invoker = invoker
        self.decoder = decoder
        self.payload_decoder = payload_decoder
        self.io = io
        self.menu_title = menu_title
        self.hex_renderer = hex_renderer
        self.bytes_per_line = bytes_per_line
        self.parameters = ParameterSet(command.fields)
        self.submissions = 0

    def run(self) -> None:
        if not self.command.has_parameters:
            self._browse()
            return
        while True:
            self._render_parameters()
            selection = self.io.choose()
            if selection is None:
                continue
            if selection == 0:
                return
            if selection == 1:
                self.change_parameters()
            elif selection == 2:
                if self._browse() is BrowserState.BACK:
                    return
            else:
                self.io.reject("Incorrect option.")

    def change_parameters(self) -> None:
        """Prompt every field in order; stop at the first rejected input."""
        for index, spec in enumerate(self.parameters.specs):
            if spec.kind is FieldKind.ENUM:
                self.io.say(f"Available values: {' '.join(spec.choices)}")
            raw = self.io.ask(field_editor.prompt_for(spec))
            outcome = self.parameters.edit_field(index, raw)
            if not outcome.accepted:
                _log.info(
                    format_event(
                        "field_rejected",
                        command=self.command.command_id,
                        field=spec.name,
                        reason=outcome.message,
                    )
                )
                self.io.reject(outcome.message)
                return

    def _render_parameters(self) -> None:
        self.io.screen(
            self.invoker.session.path, f"Parameters for {self.command.name} command:"
        )
        if self.command.description:
            self.io.say(self.command.description)
        for label, rendered in self.parameters.display():
            self.io.say(f"{label}: {rendered}")
        self.io.options(
            [(1, "Change parameters."), (2, "Send command with these parameters.")],
            _back_label(self.menu_title),
        )

    def _browse(self) -> BrowserState:
        self.submissions += 1
        browser = TrialResultBrowser(
            self.command,
            self.parameters,
            self.invoker,
            self.decoder,
            self.io,
            back_label=_back_label(self.menu_title),
            payload_decoder=self.payload_decoder,
            hex_renderer=self.hex_renderer,
            bytes_per_line=self.bytes_per_line,
        )
        return browser.run()


class SessionController:
    """Walks the menu stack until the operator leaves the root menu."""

    def __init__(
        self,
        session: DeviceSession,
        decoder: DiagnosticDecoder,
        io: OperatorConsole,
        *,
        hex_renderer: HexRenderer = render_hex,
        bytes_per_line: int = DEFAULT_BYTES_PER_LINE,
        decoder_factory: Callable[[CollaboratorRef], DiagnosticDecoder] = build_decoder,
    ):
        self.session = session
        self.invoker = TrialInvoker(session)
        self.decoder = decoder
        self.io = io
        self.hex_renderer = hex_renderer
        self.bytes_per_line = bytes_per_line
        self.decoder_factory = decoder_factory
        self._built: dict[tuple[str, str], DiagnosticDecoder] = {}

    def decoders_for(
        self, command: CommandSpec
    ) -> tuple[DiagnosticDecoder, DiagnosticDecoder | None]:
        """Return the diagnostic and payload decoders bound to *command*."""
        diagnostic = self.decoder if command.decoder is None else self._build(command.decoder)
        payload = None if command.payload_decoder is None else self._build(command.payload_decoder)
        return diagnostic, payload

    def prepare(self, commands: Iterable[CommandSpec]) -> None:
        """Build every per-command decoder now; a bad reference raises ``ConfigError``."""
        for command in commands:
            self.decoders_for(command)

    def _build(self, ref: CollaboratorRef) -> DiagnosticDecoder:
        # Commands naming the same decoder share one instance.
        key = (ref.kind, repr(ref.options))
        if key not in self._built:
            self._built[key] = self.decoder_factory(ref)
            _log.debug(format_event("decoder_built", kind=ref.kind))
        return self._built[key]

    def run(self, stack: Sequence[MenuNode] | MenuNode) -> None:
        menus = [stack] if isinstance(stack, MenuNode) else list(stack)
        while menus:
            node = menus[-1]
            parent = menus[-2] if len(menus) > 1 else None
            self._render_menu(node, parent)
            selection = self.io.choose()
            if selection is None:
                continue
            if selection == 0:
                menus.pop()
                _log.debug(format_event("menu_pop", menu=node.title, depth=len(menus)))
                continue
            if selection > len(node.entries):
                self.io.reject("Incorrect option.")
                continue
            entry = node.entries[selection - 1]
            if isinstance(entry.target, MenuNode):
                menus.append(entry.target)
                _log.debug(
                    format_event("menu_push", menu=entry.target.title, depth=len(menus))
                )
                continue
            self._run_command(entry.target, node)
        self.io.say("Exiting...")

    def _run_command(self, command: CommandSpec, node: MenuNode) -> None:
        _log.info(format_event("command_enter", command=command.command_id, menu=node.title))
        decoder, payload_decoder = self.decoders_for(command)
        flow = CommandFlow(
            command,
            self.invoker,
            decoder,
            self.io,
            payload_decoder=payload_decoder,
            menu_title=node.title,
            hex_renderer=self.hex_renderer,
            bytes_per_line=self.bytes_per_line,
        )
        flow.run()
        _log.info(
            format_event(
                "command_leave", command=command.command_id, submissions=flow.submissions
            )
        )

    def _render_menu(self, node: MenuNode, parent: MenuNode | None) -> None:
        self.io.screen(self.session.path, node.title)
        back = "Exit program." if parent is None else _back_label(parent.title)
        self.io.options(
            [(number, entry.label) for number, entry in enumerate(node.entries, start=1)],
            back,
        )
