"""Typed parameter editing.

``edit`` is the only way a parameter value changes. It never raises for
operator input: malformed or out-of-domain text comes back as an
``EditOutcome`` with ``accepted=False`` carrying the value that was already
stored, so callers can report the message and move on.
"""

from __future__ import annotations

from typing import Any

from trialbench.models import ConfigError, EditOutcome, FieldKind, FieldSpec

_TRUE_LITERAL = "true"
_FALSE_LITERAL = "false"


def _kept(spec: FieldSpec, current: Any, message: str) -> EditOutcome:
    return EditOutcome(
        value=spec.default if current is None else current,
        accepted=False,
        message=message,
    )


def _edit_uint(spec: FieldSpec, current: Any, raw: str) -> EditOutcome:
    text = raw.strip()
    if not text or not text.isascii() or not text.isdigit():
        return _kept(spec, current, "Not a number.")
    digits = text.lstrip("0") or "0"
    if spec.maximum is not None and len(digits) > len(str(spec.maximum)):
        return _kept(spec, current, f"Maximum for {spec.title} is {spec.maximum}.")
    try:
        number = int(digits)
    except ValueError:
        # More digits than int() will convert.
        return _kept(spec, current, "Number is too long.")
    if number < spec.minimum:
        return _kept(spec, current, f"Minimum for {spec.title} is {spec.minimum}.")
    if spec.maximum is not None and number > spec.maximum:
        return _kept(spec, current, f"Maximum for {spec.title} is {spec.maximum}.")
    return EditOutcome(value=number, accepted=True)


def _edit_bool(spec: FieldSpec, current: Any, raw: str) -> EditOutcome:
    text = raw.strip().lower()
    if text == _TRUE_LITERAL:
        return EditOutcome(value=True, accepted=True)
    if text == _FALSE_LITERAL:
        return EditOutcome(value=False, accepted=True)
    return _kept(spec, current, "Not a boolean.")


def _edit_enum(spec: FieldSpec, current: Any, raw: str) -> EditOutcome:
    wanted = raw.strip().casefold()
    for choice in spec.choices:
        if choice.casefold() == wanted:
            return EditOutcome(value=choice, accepted=True)
    return _kept(spec, current, f"Not a correct {spec.title.lower()}.")


def _edit_text(spec: FieldSpec, raw: str) -> EditOutcome:
    return EditOutcome(value=clean_text(spec, raw), accepted=True)


def clean_text(spec: FieldSpec, raw: str) -> str:
    """Filter *raw* to the field's charset and length."""
    text = raw
    if spec.charset is not None:
        text = "".join(ch for ch in text if ch in spec.charset)
    if spec.max_length is not None:
        text = text[: spec.max_length]
        if spec.fixed_length:
            text = text.ljust(spec.max_length)
    return text


def edit(spec: FieldSpec, current: Any, raw: str) -> EditOutcome:
    """Parse *raw* for *spec*, falling back to *current* on rejection."""
    if spec.kind is FieldKind.UINT:
        return _edit_uint(spec, current, raw)
    if spec.kind is FieldKind.BOOL:
        return _edit_bool(spec, current, raw)
    if spec.kind is FieldKind.ENUM:
        return _edit_enum(spec, current, raw)
    return _edit_text(spec, raw)


def render_value(spec: FieldSpec, value: Any) -> str:
    if spec.kind is FieldKind.BOOL:
        return _TRUE_LITERAL if value else _FALSE_LITERAL
    if spec.kind is FieldKind.TEXT:
        return f'"{value}"'
    return str(value)


def prompt_for(spec: FieldSpec) -> str:
    if spec.kind is FieldKind.BOOL:
        return f"{spec.title} ({_TRUE_LITERAL}/{_FALSE_LITERAL})?: "
    if spec.kind is FieldKind.TEXT and spec.max_length is not None:
        return f"{spec.title} (up to {spec.max_length} characters)?: "
    return f"{spec.title}?: "


def validate_default(spec: FieldSpec) -> Any:
    """Return the spec default in canonical form or raise ``ConfigError``."""
    default = spec.default
    if spec.kind is FieldKind.BOOL:
        if not isinstance(default, bool):
            raise ConfigError(f"field {spec.name}: default must be a boolean")
        return default
    if spec.kind is FieldKind.UINT:
        if isinstance(default, bool) or not isinstance(default, int):
            raise ConfigError(f"field {spec.name}: default must be an integer")
        raw = str(default)
    else:
        if not isinstance(default, str):
            raise ConfigError(f"field {spec.name}: default must be a string")
        raw = default
    outcome = edit(spec, None, raw)
    if not outcome.accepted:
        raise ConfigError(f"field {spec.name}: invalid default: {outcome.message}")
    return outcome.value
