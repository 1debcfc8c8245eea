from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class TrialbenchError(RuntimeError):
    """Base error for trial engine failures."""


class ConfigError(TrialbenchError):
    """Raised when a command registry is invalid."""


class TransportError(TrialbenchError):
    """Raised when the command transport cannot be invoked at all."""


class FieldKind(str, Enum):
    UINT = "uint"
    BOOL = "bool"
    ENUM = "enum"
    TEXT = "text"


@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: FieldKind
    default: Any
    label: str = ""
    minimum: int = 0
    maximum: int | None = None
    choices: tuple[str, ...] = ()
    charset: str | None = None
    max_length: int | None = None
    fixed_length: bool = False

    @property
    def title(self) -> str:
        return self.label or self.name


@dataclass(frozen=True)
class EditOutcome:
    value: Any
    accepted: bool
    message: str = ""


@dataclass(frozen=True)
class TrialResult:
    success: bool
    duration_ms: float
    payload: bytes | None = None
    diagnostic: bytes | None = None
    # Derived from the buffers by the result browser, never by the invoker.
    decoded_diagnostic: str = ""
    decoded_payload: str = ""

    @property
    def has_payload(self) -> bool:
        return self.payload is not None

    @property
    def has_diagnostic(self) -> bool:
        return self.diagnostic is not None


@dataclass(frozen=True)
class CommandSpec:
    command_id: str
    name: str
    fields: tuple[FieldSpec, ...] = ()
    description: str = ""
    # None means the registry-wide diagnostic decoder and no payload decoder.
    decoder: CollaboratorRef | None = None
    payload_decoder: CollaboratorRef | None = None

    @property
    def has_parameters(self) -> bool:
        return bool(self.fields)


@dataclass(frozen=True)
class MenuNode:
    title: str
    entries: tuple["MenuEntry", ...] = ()

    def commands(self) -> list[CommandSpec]:
        """Every command reachable from this node, depth first."""
        found: list[CommandSpec] = []
        for entry in self.entries:
            if isinstance(entry.target, MenuNode):
                found.extend(entry.target.commands())
            else:
                found.append(entry.target)
        return found


@dataclass(frozen=True)
class MenuEntry:
    label: str
    target: Union[CommandSpec, MenuNode]


@dataclass(frozen=True)
class DeviceSettings:
    path: str
    timeout_sec: float = 15.0


@dataclass(frozen=True)
class CollaboratorRef:
    kind: str
    options: dict[str, Any] = field(default_factory=dict)
