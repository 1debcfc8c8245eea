from __future__ import annotations

from trialbench.browser import BrowserState, TrialResultBrowser, describe_buffer
from trialbench.decoders import SenseDecoder
from trialbench.invoker import TrialInvoker
from trialbench.models import CommandSpec
from trialbench.params import ParameterSet
from trialbench.transport import TransportReply

SENSE = bytes([0x70, 0x00, 0x02, 0x00, 0x00, 0x00, 0x00, 0x0A, 0, 0, 0, 0, 0x3A, 0x00])


def _browser(
    command, device_session, operator, decoder=None, params=None, payload_decoder=None
):
    return TrialResultBrowser(
        command,
        params or ParameterSet(command.fields),
        TrialInvoker(device_session),
        decoder or SenseDecoder(),
        operator,
        payload_decoder=payload_decoder,
        back_label="Return to SyQuest vendor commands menu.",
        bytes_per_line=16,
    )


def test_describe_buffer_distinguishes_absent_and_empty() -> None:
    assert describe_buffer(None) == "not present"
    assert describe_buffer(b"") == "empty (0 bytes)"
    assert describe_buffer(b"\x00\x01") == "2 bytes"


def test_failed_trial_shows_absent_payload_and_diagnostic_hex(
    read6: CommandSpec, device_session, transport, operator, scripted, screen
) -> None:
    transport.replies = [TransportReply(success=False, duration_ms=0.5, diagnostic=SENSE)]
    scripted.feed("1", "", "2", "", "3", "", "0")

    state = _browser(read6, device_session, operator).run()

    assert state is BrowserState.BACK
    assert scripted.remaining == 0
    out = screen.file.getvalue()
    assert "Device: /dev/sg9" in out
    assert "Sending READ (6) to the device:" in out
    assert "Success: no." in out
    assert "Payload: not present." in out
    assert "Diagnostic: 14 bytes." in out
    assert "Payload not present." in out
    assert "0000  70 00 02 00 00 00 00 0A 00 00 00 00 3A 00" in out
    assert "SCSI SENSE: Not ready" in out
    assert "Medium not present" in out
    assert "5.- Change parameters." in out
    assert "0.- Return to SyQuest vendor commands menu." in out


def test_empty_buffers_are_reported_as_empty(
    read6: CommandSpec, device_session, transport, operator, scripted, screen
) -> None:
    transport.replies = [TransportReply(success=True, duration_ms=1.0, payload=b"", diagnostic=b"")]
    scripted.feed("1", "", "3", "", "0")

    _browser(read6, device_session, operator).run()

    out = screen.file.getvalue()
    assert "Payload: empty (0 bytes)." in out
    assert "Payload is empty (0 bytes)." in out
    assert "Payload not present." not in out
    assert "Unrecognized sense data (0 bytes)" in out


def test_three_retries_replace_the_result(
    read6: CommandSpec, device_session, transport, operator
) -> None:
    transport.replies = [
        TransportReply(success=False, duration_ms=1.0),
        TransportReply(success=False, duration_ms=2.0),
        TransportReply(success=False, duration_ms=3.0),
        TransportReply(success=True, duration_ms=4.0, payload=b"\x01"),
    ]
    params = ParameterSet(read6.fields)
    params.edit_field(0, "99")
    browser = _browser(read6, device_session, operator, params=params)
    first = browser.run_trial()

    for _ in range(3):
        assert browser.select(4) is BrowserState.READY

    assert len(transport.calls) - 1 == 3
    assert all(call[1] == {"lba": 99, "count": 1, "no_dma": False} for call in transport.calls)
    assert browser.state is BrowserState.READY
    assert browser.trials == 4
    assert browser.result is not first
    assert browser.result.duration_ms == 4.0
    assert browser.result.payload == b"\x01"


def test_decoded_text_is_cached_per_result(
    read6: CommandSpec, device_session, transport, operator, scripted, screen
) -> None:
    transport.replies = [TransportReply(success=False, duration_ms=1.0, diagnostic=b"\x70\x01")]
    decoder = _CountingDecoder()
    scripted.feed("3", "", "3", "", "4", "3", "", "0")

    _browser(read6, device_session, operator, decoder=decoder).run()

    assert decoder.calls == 2
    assert screen.file.getvalue().count("decoded 7001") == 3


def test_decoded_payload_is_offered_and_cached_per_result(
    read6: CommandSpec, device_session, transport, operator, scripted, screen
) -> None:
    transport.replies = [TransportReply(success=True, duration_ms=1.0, payload=b"\x01\x02")]
    diagnostic_decoder = _CountingDecoder()
    payload_decoder = _CountingDecoder()
    scripted.feed("6", "", "6", "", "4", "6", "", "0")

    browser = _browser(
        read6,
        device_session,
        operator,
        decoder=diagnostic_decoder,
        payload_decoder=payload_decoder,
    )
    assert browser.run() is BrowserState.BACK

    assert payload_decoder.calls == 2
    assert diagnostic_decoder.calls == 2
    assert browser.result.decoded_payload == "decoded 0102"
    assert browser.result.decoded_diagnostic == ""
    out = screen.file.getvalue()
    assert "6.- Decode payload." in out
    assert "READ (6) decoded payload:" in out
    assert out.count("decoded 0102") == 3


def test_decoded_payload_view_reports_absent_payload(
    get_status: CommandSpec, device_session, transport, operator, scripted, screen
) -> None:
    transport.replies = [TransportReply(success=False, duration_ms=1.0, diagnostic=SENSE)]
    scripted.feed("6", "", "0")

    browser = _browser(get_status, device_session, operator, payload_decoder=_CountingDecoder())
    browser.run()

    out = screen.file.getvalue()
    assert "5.- Change parameters." not in out
    assert "6.- Decode payload." in out
    assert "Payload not present." in out
    assert browser.result.decoded_payload == ""

def test_invalid_selections_are_reported_and_reconfigure_hidden_without_fields(
    get_status: CommandSpec, device_session, operator, scripted, screen
) -> None:
    scripted.feed("x", "", "9", "", "5", "", "6", "", "0")

    state = _browser(get_status, device_session, operator).run()

    assert state is BrowserState.BACK
    out = screen.file.getvalue()
    assert "Not a number. Press Enter to continue..." in out
    assert out.count("Incorrect option. Press Enter to continue...") == 3
    assert "Change parameters." not in out
    assert "Decode payload." not in out


def test_reconfigure_is_terminal(read6: CommandSpec, device_session, operator, scripted) -> None:
    scripted.feed("5")
    browser = _browser(read6, device_session, operator)
    assert browser.run() is BrowserState.RECONFIGURE
    assert browser.trials == 1


class _CountingDecoder:
    def __init__(self) -> None:
        self.calls = 0

    def decode(self, diagnostic):
        self.calls += 1
        return "" if diagnostic is None else f"decoded {diagnostic.hex()}"
