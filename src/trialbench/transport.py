from __future__ import annotations

import importlib
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol

from trialbench._logging import format_event
from trialbench.models import CollaboratorRef, ConfigError, DeviceSettings

_log = logging.getLogger("trialbench.transport")


@dataclass(frozen=True)
class TransportReply:
    success: bool
    duration_ms: float
    payload: bytes | None = None
    diagnostic: bytes | None = None


class CommandTransport(Protocol):
    """Talks to the device.

    Ordinary command failures come back as ``success=False``; only a
    transport that cannot be reached at all raises ``TransportError``.
    """

    def execute(
        self,
        command_id: str,
        parameters: Mapping[str, Any],
        timeout: float,
    ) -> TransportReply: ...


@dataclass(frozen=True)
class DeviceSession:
    settings: DeviceSettings
    transport: CommandTransport

    @property
    def path(self) -> str:
        return self.settings.path

    @property
    def timeout_sec(self) -> float:
        return self.settings.timeout_sec


def parse_hex_bytes(value: Any, *, label: str) -> bytes | None:
    """Parse ``"70 00 05"``-style text; ``None`` stays absent."""
    if value is None:
        return None
    if isinstance(value, list):
        if not all(isinstance(x, int) and not isinstance(x, bool) for x in value):
            raise ConfigError(f"{label} must be a list of integers")
        try:
            return bytes(value)
        except ValueError as exc:
            raise ConfigError(f"{label}: {exc}") from exc
    if not isinstance(value, str):
        raise ConfigError(f"{label} must be a hex string, a byte list or null")
    compact = "".join(value.split()).replace(",", "")
    if compact.lower().startswith("0x"):
        compact = compact[2:]
    try:
        return bytes.fromhex(compact)
    except ValueError as exc:
        raise ConfigError(f"{label} is not valid hex: {value!r}") from exc


def _reply_from_mapping(raw: Any, *, label: str) -> tuple[TransportReply, bool]:
    if not isinstance(raw, dict):
        raise ConfigError(f"{label} must be a mapping")
    unknown = set(raw) - {"success", "payload", "diagnostic", "duration_ms"}
    if unknown:
        raise ConfigError(f"{label} has unknown keys: {', '.join(sorted(unknown))}")
    success = raw.get("success", True)
    if not isinstance(success, bool):
        raise ConfigError(f"{label}.success must be a boolean")
    duration = raw.get("duration_ms")
    if duration is not None and (
        isinstance(duration, bool) or not isinstance(duration, (int, float))
    ):
        raise ConfigError(f"{label}.duration_ms must be a number")
    reply = TransportReply(
        success=success,
        duration_ms=float(duration or 0.0),
        payload=parse_hex_bytes(raw.get("payload"), label=f"{label}.payload"),
        diagnostic=parse_hex_bytes(raw.get("diagnostic"), label=f"{label}.diagnostic"),
    )
    return reply, duration is not None


class ReplayTransport:
    """Answers each command with replies declared up front.

    A command may declare a list of replies; calls walk through it and keep
    repeating the last one. Commands with no declared reply fail with no
    payload and no diagnostic. Every call is recorded in ``calls``.
    """

    name = "replay"

    def __init__(self, replies: Mapping[str, Any] | None = None):
        self._replies: dict[str, list[tuple[TransportReply, bool]]] = {}
        self._cursor: dict[str, int] = {}
        self.calls: list[tuple[str, dict[str, Any], float]] = []
        for command_id, raw in dict(replies or {}).items():
            label = f"transport.replies.{command_id}"
            items = raw if isinstance(raw, list) else [raw]
            if not items:
                raise ConfigError(f"{label} must declare at least one reply")
            self._replies[str(command_id)] = [
                _reply_from_mapping(item, label=f"{label}[{idx}]")
                for idx, item in enumerate(items)
            ]

    def execute(
        self,
        command_id: str,
        parameters: Mapping[str, Any],
        timeout: float,
    ) -> TransportReply:
        started = time.perf_counter()
        self.calls.append((command_id, dict(parameters), timeout))
        scripted = self._replies.get(command_id)
        if not scripted:
            _log.warning(format_event("replay_no_reply", command=command_id))
            return TransportReply(
                success=False,
                duration_ms=(time.perf_counter() - started) * 1000.0,
            )
        position = self._cursor.get(command_id, 0)
        reply, fixed_duration = scripted[min(position, len(scripted) - 1)]
        self._cursor[command_id] = position + 1
        if fixed_duration:
            return reply
        return TransportReply(
            success=reply.success,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            payload=reply.payload,
            diagnostic=reply.diagnostic,
        )


def load_factory(reference: str) -> Callable[..., Any]:
    """Resolve a ``package.module:attribute`` reference."""
    module_name, sep, attr_path = reference.partition(":")
    if not sep or not module_name or not attr_path:
        raise ConfigError(
            f"factory reference must look like 'package.module:attribute': {reference!r}"
        )
    try:
        target: Any = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigError(f"cannot import {module_name!r}: {exc}") from exc
    for part in attr_path.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as exc:
            raise ConfigError(f"{reference!r} has no attribute {part!r}") from exc
    if not callable(target):
        raise ConfigError(f"{reference!r} is not callable")
    return target


def build_transport(ref: CollaboratorRef) -> CommandTransport:
    if ref.kind == ReplayTransport.name:
        return ReplayTransport(ref.options.get("replies"))
    factory = load_factory(ref.kind)
    transport = factory(**dict(ref.options))
    if not callable(getattr(transport, "execute", None)):
        raise ConfigError(f"transport {ref.kind!r} has no execute() method")
    _log.info(format_event("transport_loaded", factory=ref.kind))
    return transport
