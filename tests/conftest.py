from __future__ import annotations

import io
from typing import Any, Iterable, Mapping

import pytest
from rich.console import Console

from trialbench.console import OperatorConsole
from trialbench.models import CommandSpec, DeviceSettings, FieldKind, FieldSpec
from trialbench.transport import DeviceSession, TransportReply


class ScriptedInput:
    """Feeds operator lines in order; raises EOFError once exhausted."""

    def __init__(self, lines: Iterable[str] = ()):
        self.lines = list(lines)
        self.consumed = 0

    def feed(self, *lines: str) -> None:
        self.lines.extend(lines)

    def __call__(self) -> str:
        if self.consumed >= len(self.lines):
            raise EOFError
        line = self.lines[self.consumed]
        self.consumed += 1
        return line

    @property
    def remaining(self) -> int:
        return len(self.lines) - self.consumed


class RecordingTransport:
    """Returns queued replies (repeating the last one) and records calls."""

    def __init__(self, *replies: TransportReply):
        self.replies = list(replies) or [TransportReply(success=True, duration_ms=1.0)]
        self.calls: list[tuple[str, dict[str, Any], float]] = []

    def execute(
        self, command_id: str, parameters: Mapping[str, Any], timeout: float
    ) -> TransportReply:
        self.calls.append((command_id, dict(parameters), timeout))
        return self.replies[min(len(self.calls) - 1, len(self.replies) - 1)]


@pytest.fixture
def scripted() -> ScriptedInput:
    return ScriptedInput()


@pytest.fixture
def screen() -> Console:
    return Console(file=io.StringIO(), width=200, highlight=False, color_system=None)


@pytest.fixture
def operator(screen: Console, scripted: ScriptedInput) -> OperatorConsole:
    return OperatorConsole(screen, scripted)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def device_session(transport: RecordingTransport) -> DeviceSession:
    return DeviceSession(
        settings=DeviceSettings(path="/dev/sg9", timeout_sec=7.5), transport=transport
    )


@pytest.fixture
def read6() -> CommandSpec:
    return CommandSpec(
        command_id="syquest.read6",
        name="READ (6)",
        fields=(
            FieldSpec(name="lba", label="LBA", kind=FieldKind.UINT, default=0, maximum=0x1FFFFF),
            FieldSpec(name="count", label="Blocks", kind=FieldKind.UINT, default=1, maximum=255),
            FieldSpec(name="no_dma", label="Inhibit DMA", kind=FieldKind.BOOL, default=False),
        ),
    )


@pytest.fixture
def get_status() -> CommandSpec:
    return CommandSpec(command_id="vendor.get_status", name="GET STATUS")
