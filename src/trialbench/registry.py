from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml

from trialbench.fields import validate_default
from trialbench.hexdump import DEFAULT_BYTES_PER_LINE
from trialbench.models import (
    CollaboratorRef,
    CommandSpec,
    ConfigError,
    DeviceSettings,
    FieldKind,
    FieldSpec,
    MenuEntry,
    MenuNode,
)

REGISTRY_ALLOWED_KEYS = {"device", "transport", "decoder", "display", "menu"}
_DEVICE_ALLOWED_KEYS = {"path", "timeout_sec"}
_DISPLAY_ALLOWED_KEYS = {"bytes_per_line"}
_COLLABORATOR_ALLOWED_KEYS = {"kind", "options"}
_REPLAY_ALLOWED_KEYS = {"kind", "replies"}
_MENU_ALLOWED_KEYS = {"title", "entries"}
_ENTRY_ALLOWED_KEYS = {"label", "menu", "command"}
_COMMAND_ALLOWED_KEYS = {"id", "name", "description", "fields", "decoder", "payload_decoder"}
_FIELD_ALLOWED_KEYS = {
    "name",
    "label",
    "kind",
    "default",
    "min",
    "max",
    "choices",
    "charset",
    "max_length",
    "fixed_length",
}
_FIELD_KIND_KEYS = {
    FieldKind.UINT: {"min", "max"},
    FieldKind.BOOL: set(),
    FieldKind.ENUM: {"choices"},
    FieldKind.TEXT: {"charset", "max_length", "fixed_length"},
}
_IMPLICIT_DEFAULTS: dict[FieldKind, Any] = {
    FieldKind.UINT: 0,
    FieldKind.BOOL: False,
    FieldKind.TEXT: "",
}


@dataclass(frozen=True)
class Registry:
    device: DeviceSettings
    transport: CollaboratorRef
    decoder: CollaboratorRef
    menu: MenuNode
    bytes_per_line: int = DEFAULT_BYTES_PER_LINE
    source: Path | None = None


def _require_mapping(value: Any, *, label: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ConfigError(f"{label} must be a mapping")
    return {str(k): v for k, v in value.items()}


def _reject_unknown(data: dict[str, Any], allowed: set[str], *, label: str) -> None:
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ConfigError(f"{label} has unknown keys: {', '.join(unknown)}")


def _require_str(value: Any, *, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{label} must be a non-empty string")
    return value.strip()


def _optional_str(value: Any, *, label: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(f"{label} must be a string")
    return value


def _optional_int(value: Any, *, label: str, minimum: int = 0) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{label} must be an integer")
    if value < minimum:
        raise ConfigError(f"{label} must be >= {minimum}")
    return value


def _parse_device(raw: Any) -> DeviceSettings:
    data = _require_mapping(raw, label="device")
    _reject_unknown(data, _DEVICE_ALLOWED_KEYS, label="device")
    timeout = data.get("timeout_sec", 15)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigError("device.timeout_sec must be a positive number")
    return DeviceSettings(
        path=_require_str(data.get("path"), label="device.path"),
        timeout_sec=float(timeout),
    )


def _parse_collaborator(raw: Any, *, label: str, default_kind: str) -> CollaboratorRef:
    if raw is None:
        return CollaboratorRef(kind=default_kind)
    if isinstance(raw, str):
        return CollaboratorRef(kind=_require_str(raw, label=label))
    data = _require_mapping(raw, label=label)
    kind = _require_str(data.get("kind", default_kind), label=f"{label}.kind")
    if kind == "replay":
        _reject_unknown(data, _REPLAY_ALLOWED_KEYS, label=label)
        replies = _require_mapping(data.get("replies", {}), label=f"{label}.replies")
        return CollaboratorRef(kind=kind, options={"replies": replies})
    _reject_unknown(data, _COLLABORATOR_ALLOWED_KEYS, label=label)
    options = _require_mapping(data.get("options", {}), label=f"{label}.options")
    return CollaboratorRef(kind=kind, options=options)


def _optional_collaborator(
    data: dict[str, Any], key: str, *, label: str, default_kind: str = ""
) -> CollaboratorRef | None:
    if data.get(key) is None:
        return None
    return _parse_collaborator(data[key], label=f"{label}.{key}", default_kind=default_kind)


def _parse_field(raw: Any, *, label: str) -> FieldSpec:
    data = _require_mapping(raw, label=label)
    _reject_unknown(data, _FIELD_ALLOWED_KEYS, label=label)
    name = _require_str(data.get("name"), label=f"{label}.name")
    kind_raw = _require_str(data.get("kind"), label=f"{label}.kind")
    try:
        kind = FieldKind(kind_raw.lower())
    except ValueError as exc:
        allowed = ", ".join(k.value for k in FieldKind)
        raise ConfigError(f"{label}.kind must be one of: {allowed}") from exc

    foreign = sorted(
        key
        for key in set(data) & set().union(*_FIELD_KIND_KEYS.values())
        if key not in _FIELD_KIND_KEYS[kind]
    )
    if foreign:
        raise ConfigError(f"{label}: {', '.join(foreign)} not allowed for kind {kind.value}")

    choices: tuple[str, ...] = ()
    if kind is FieldKind.ENUM:
        raw_choices = data.get("choices")
        if not isinstance(raw_choices, list) or not raw_choices:
            raise ConfigError(f"{label}.choices must be a non-empty list")
        choices = tuple(
            _require_str(item, label=f"{label}.choices[{idx}]")
            for idx, item in enumerate(raw_choices)
        )
        folded = [choice.casefold() for choice in choices]
        if len(set(folded)) != len(folded):
            raise ConfigError(f"{label}.choices must differ ignoring case")

    minimum = _optional_int(data.get("min"), label=f"{label}.min") or 0
    maximum = _optional_int(data.get("max"), label=f"{label}.max")
    if maximum is not None and maximum < minimum:
        raise ConfigError(f"{label}.max must be >= {label}.min")
    max_length = _optional_int(data.get("max_length"), label=f"{label}.max_length", minimum=1)
    fixed_length = data.get("fixed_length", False)
    if not isinstance(fixed_length, bool):
        raise ConfigError(f"{label}.fixed_length must be a boolean")
    if fixed_length and max_length is None:
        raise ConfigError(f"{label}.fixed_length requires max_length")

    if "default" in data:
        default = data["default"]
    elif kind is FieldKind.ENUM:
        default = choices[0]
    elif kind is FieldKind.UINT:
        default = minimum
    else:
        default = _IMPLICIT_DEFAULTS[kind]

    spec = FieldSpec(
        name=name,
        kind=kind,
        default=default,
        label=_optional_str(data.get("label"), label=f"{label}.label") or "",
        minimum=minimum,
        maximum=maximum,
        choices=choices,
        charset=_optional_str(data.get("charset"), label=f"{label}.charset"),
        max_length=max_length,
        fixed_length=fixed_length,
    )
    # Enum defaults in another case and text defaults outside the charset
    # are stored in canonical form.
    return replace(spec, default=validate_default(spec))


def _parse_command(raw: Any, *, label: str) -> CommandSpec:
    data = _require_mapping(raw, label=label)
    _reject_unknown(data, _COMMAND_ALLOWED_KEYS, label=label)
    command_id = _require_str(data.get("id"), label=f"{label}.id")
    raw_fields = data.get("fields", [])
    if not isinstance(raw_fields, list):
        raise ConfigError(f"{label}.fields must be a list")
    fields = tuple(
        _parse_field(item, label=f"{label}.fields[{idx}]")
        for idx, item in enumerate(raw_fields)
    )
    seen: set[str] = set()
    for spec in fields:
        if spec.name in seen:
            raise ConfigError(f"{label}: duplicate field name {spec.name!r}")
        seen.add(spec.name)
    return CommandSpec(
        command_id=command_id,
        name=_optional_str(data.get("name"), label=f"{label}.name") or command_id,
        fields=fields,
        description=_optional_str(data.get("description"), label=f"{label}.description")
        or "",
        decoder=_optional_collaborator(data, "decoder", label=label, default_kind="sense"),
        payload_decoder=_optional_collaborator(data, "payload_decoder", label=label),
    )


def _parse_menu(raw: Any, *, label: str) -> MenuNode:
    data = _require_mapping(raw, label=label)
    _reject_unknown(data, _MENU_ALLOWED_KEYS, label=label)
    title = _require_str(data.get("title"), label=f"{label}.title")
    raw_entries = data.get("entries")
    if not isinstance(raw_entries, list) or not raw_entries:
        raise ConfigError(f"{label}.entries must be a non-empty list")

    entries: list[MenuEntry] = []
    for idx, item in enumerate(raw_entries):
        entry_label = f"{label}.entries[{idx}]"
        entry = _require_mapping(item, label=entry_label)
        _reject_unknown(entry, _ENTRY_ALLOWED_KEYS, label=entry_label)
        if ("menu" in entry) == ("command" in entry):
            raise ConfigError(f"{entry_label} must define exactly one of 'menu' or 'command'")
        if "menu" in entry:
            child = _parse_menu(entry["menu"], label=f"{entry_label}.menu")
            text = _optional_str(entry.get("label"), label=f"{entry_label}.label")
            entries.append(MenuEntry(label=text or child.title, target=child))
        else:
            command = _parse_command(entry["command"], label=f"{entry_label}.command")
            text = _optional_str(entry.get("label"), label=f"{entry_label}.label")
            entries.append(MenuEntry(label=text or f"Send {command.name} command.", target=command))
    return MenuNode(title=title, entries=tuple(entries))


def parse_registry(payload: Any, *, source: Path | None = None) -> Registry:
    data = _require_mapping(payload, label="registry")
    _reject_unknown(data, REGISTRY_ALLOWED_KEYS, label="registry")
    if "menu" not in data:
        raise ConfigError("registry.menu is required")
    display = _require_mapping(data.get("display", {}), label="display")
    _reject_unknown(display, _DISPLAY_ALLOWED_KEYS, label="display")
    bytes_per_line = _optional_int(
        display.get("bytes_per_line"), label="display.bytes_per_line", minimum=1
    )
    return Registry(
        device=_parse_device(data.get("device", {"path": "(no device)"})),
        transport=_parse_collaborator(data.get("transport"), label="transport", default_kind="replay"),
        decoder=_parse_collaborator(data.get("decoder"), label="decoder", default_kind="sense"),
        menu=_parse_menu(data["menu"], label="menu"),
        bytes_per_line=bytes_per_line or DEFAULT_BYTES_PER_LINE,
        source=source,
    )


def load_registry(path: str | Path) -> Registry:
    registry_path = Path(path).expanduser().resolve()
    if not registry_path.exists():
        raise ConfigError(f"registry file not found: {registry_path}")
    try:
        payload = yaml.safe_load(registry_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"registry {registry_path} is not valid YAML: {exc}") from exc
    if payload is None:
        raise ConfigError(f"registry {registry_path} is empty")
    return parse_registry(payload, source=registry_path)
