from __future__ import annotations

import pytest

from trialbench.decoders import SenseDecoder
from trialbench.invoker import TrialInvoker
from trialbench.models import (
    CollaboratorRef,
    CommandSpec,
    DeviceSettings,
    FieldKind,
    FieldSpec,
    MenuEntry,
    MenuNode,
    TransportError,
)
from trialbench.session import CommandFlow, SessionController
from trialbench.transport import DeviceSession, TransportReply


@pytest.fixture
def menu(read6: CommandSpec, get_status: CommandSpec) -> MenuNode:
    syquest = MenuNode(
        title="SyQuest vendor commands",
        entries=(MenuEntry(label="Send READ (6) command.", target=read6),),
    )
    return MenuNode(
        title="Vendor commands",
        entries=(
            MenuEntry(label="SyQuest vendor commands", target=syquest),
            MenuEntry(label="Send GET STATUS command.", target=get_status),
        ),
    )


@pytest.fixture
def controller(device_session, operator) -> SessionController:
    return SessionController(device_session, SenseDecoder(), operator)


def test_zero_at_root_ends_the_session(controller, menu, scripted, screen) -> None:
    scripted.feed("0")
    controller.run([menu])
    out = screen.file.getvalue()
    assert "1.- SyQuest vendor commands" in out
    assert "0.- Exit program." in out
    assert out.rstrip().endswith("Exiting...")
    assert scripted.remaining == 0


def test_zero_in_nested_menu_returns_one_level(controller, menu, scripted, screen) -> None:
    scripted.feed("1", "0", "0")
    controller.run([menu])
    out = screen.file.getvalue()
    assert out.count("0.- Exit program.") == 2
    assert out.count("0.- Return to Vendor commands menu.") == 1
    assert scripted.remaining == 0


def test_run_accepts_a_prebuilt_stack(controller, menu, scripted, screen) -> None:
    nested = menu.entries[0].target
    scripted.feed("0", "0")
    controller.run([menu, nested])
    out = screen.file.getvalue()
    assert out.index("SyQuest vendor commands") < out.index("0.- Exit program.")


def test_bad_menu_selections_keep_the_same_menu(controller, menu, scripted, screen, transport) -> None:
    scripted.feed("abc", "", "3", "", "-1", "", "0")
    controller.run(menu)
    out = screen.file.getvalue()
    assert out.count("Not a number. Press Enter to continue...") == 2
    assert out.count("Incorrect option. Press Enter to continue...") == 1
    assert out.count("0.- Exit program.") == 4
    assert transport.calls == []


def test_huge_menu_selection_is_an_incorrect_option(
    controller, menu, scripted, screen, transport
) -> None:
    scripted.feed("9" * 5000, "", "1", "0" * 40 + "9" * 5000, "", "0", "0")
    controller.run([menu])
    out = screen.file.getvalue()
    assert out.count("Incorrect option. Press Enter to continue...") == 2
    assert out.count("0.- Exit program.") == 3
    assert out.rstrip().endswith("Exiting...")
    assert scripted.remaining == 0
    assert transport.calls == []


def test_full_command_flow_with_rejection_retry_and_reconfigure(
    controller, menu, scripted, screen, transport
) -> None:
    scripted.feed(
        "1",  # SyQuest menu
        "1",  # READ (6)
        "1", "abc", "",  # change parameters, rejected LBA, acknowledge
        "1", "42", "2", "true",  # change parameters
        "2",  # send
        "4",  # send again
        "5",  # change parameters
        "2",  # send
        "0",  # back to SyQuest menu
        "0",
        "0",
    )
    controller.run([menu])

    assert scripted.remaining == 0
    assert len(transport.calls) == 3
    assert transport.calls[0] == (
        "syquest.read6",
        {"lba": 42, "count": 2, "no_dma": True},
        7.5,
    )
    assert transport.calls[0] == transport.calls[1] == transport.calls[2]

    out = screen.file.getvalue()
    assert "Not a number. Press Enter to continue..." in out
    assert "Parameters for READ (6) command:" in out
    assert "LBA: 0" in out
    assert out.count("LBA: 42") == 2
    assert "0.- Return to SyQuest vendor commands menu." in out


def test_command_without_fields_goes_straight_to_results(
    controller, menu, scripted, screen, transport
) -> None:
    scripted.feed("2", "4", "0", "0")
    controller.run([menu])
    assert transport.calls == [
        ("vendor.get_status", {}, 7.5),
        ("vendor.get_status", {}, 7.5),
    ]
    out = screen.file.getvalue()
    assert "Parameters for" not in out
    assert "0.- Return to Vendor commands menu." in out


def test_parameter_stage_back_and_bad_option(
    read6: CommandSpec, device_session, operator, scripted, screen, transport
) -> None:
    scripted.feed("7", "", "0")
    flow = CommandFlow(
        read6,
        TrialInvoker(device_session),
        SenseDecoder(),
        operator,
        menu_title="SyQuest vendor commands",
    )
    flow.run()
    assert transport.calls == []
    assert flow.submissions == 0
    assert "Incorrect option. Press Enter to continue..." in screen.file.getvalue()


def test_change_parameters_lists_enum_values_and_keeps_earlier_edits(
    device_session, operator, scripted, screen
) -> None:
    locate = CommandSpec(
        command_id="ssc.locate16",
        name="LOCATE (16)",
        fields=(
            FieldSpec(name="partition", kind=FieldKind.UINT, default=0, maximum=255),
            FieldSpec(
                name="dest_type",
                label="Object type",
                kind=FieldKind.ENUM,
                default="FileId",
                choices=("FileId", "ObjectId", "SetId"),
            ),
            FieldSpec(name="immediate", kind=FieldKind.BOOL, default=False),
        ),
    )
    flow = CommandFlow(
        locate, TrialInvoker(device_session), SenseDecoder(), operator, menu_title="SSC"
    )
    scripted.feed("3", "track", "", "false")

    flow.change_parameters()
    assert scripted.remaining == 1
    assert flow.parameters.serialize() == {
        "partition": 3,
        "dest_type": "FileId",
        "immediate": False,
    }
    out = screen.file.getvalue()
    assert "Available values: FileId ObjectId SetId" in out
    assert "Not a correct object type. Press Enter to continue..." in out


def test_transport_fault_propagates_out_of_the_session(menu, operator, scripted) -> None:
    class _Unreachable:
        def execute(self, command_id, parameters, timeout):
            raise TransportError("adapter missing")

    session = DeviceSession(settings=DeviceSettings(path="/dev/sg0"), transport=_Unreachable())
    scripted.feed("2")
    with pytest.raises(TransportError, match="adapter missing"):
        SessionController(session, SenseDecoder(), operator).run([menu])


def test_end_of_input_propagates(controller, menu) -> None:
    with pytest.raises(EOFError):
        controller.run([menu])


class _TaggedDecoder:
    def __init__(self, tag: str):
        self.tag = tag

    def decode(self, data):
        return "" if data is None else f"{self.tag}: {len(data)} bytes\n"


def test_per_command_decoders_are_built_once_and_bound(
    device_session, operator, scripted, screen, transport, get_status
) -> None:
    ata = CollaboratorRef(kind="lab.ata:ErrorRegisters")
    identify = CommandSpec(
        command_id="ata.identify",
        name="IDENTIFY DEVICE",
        decoder=ata,
        payload_decoder=CollaboratorRef(kind="lab.ata:IdentifyData", options={"words": 256}),
    )
    smart = CommandSpec(command_id="ata.smart_status", name="SMART RETURN STATUS", decoder=ata)
    built: list[str] = []

    def factory(ref: CollaboratorRef) -> _TaggedDecoder:
        built.append(ref.kind)
        return _TaggedDecoder(ref.kind.rpartition(":")[2])

    fallback = SenseDecoder()
    controller = SessionController(
        device_session, fallback, operator, decoder_factory=factory
    )
    controller.prepare([identify, smart, get_status])

    assert built == ["lab.ata:ErrorRegisters", "lab.ata:IdentifyData"]
    assert controller.decoders_for(get_status) == (fallback, None)
    identify_decoder, identify_payload = controller.decoders_for(identify)
    assert identify_decoder is controller.decoders_for(smart)[0]
    assert identify_payload.tag == "IdentifyData"
    assert built == ["lab.ata:ErrorRegisters", "lab.ata:IdentifyData"]

    transport.replies = [
        TransportReply(success=True, duration_ms=1.0, payload=b"\x00" * 512, diagnostic=b"\x51")
    ]
    menu = MenuNode(title="ATA", entries=(MenuEntry(label="IDENTIFY", target=identify),))
    scripted.feed("1", "3", "", "6", "", "0", "0")
    controller.run(menu)

    out = screen.file.getvalue()
    assert "6.- Decode payload." in out
    assert "ErrorRegisters: 1 bytes" in out
    assert "IdentifyData: 512 bytes" in out
    assert scripted.remaining == 0
