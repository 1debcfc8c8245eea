from __future__ import annotations

from typing import Any, Sequence

from trialbench import fields as field_editor
from trialbench.models import EditOutcome, FieldSpec


class ParameterSet:
    """Current values for one command's fields, in declaration order."""

    def __init__(self, specs: Sequence[FieldSpec]):
        self._specs = tuple(specs)
        self._values: list[Any] = [
            field_editor.validate_default(spec) for spec in self._specs
        ]

    def __len__(self) -> int:
        return len(self._specs)

    @property
    def specs(self) -> tuple[FieldSpec, ...]:
        return self._specs

    def value(self, index: int) -> Any:
        return self._values[index]

    def display(self) -> list[tuple[str, str]]:
        return [
            (spec.title, field_editor.render_value(spec, value))
            for spec, value in zip(self._specs, self._values)
        ]

    def edit_field(self, index: int, raw: str) -> EditOutcome:
        spec = self._specs[index]
        outcome = field_editor.edit(spec, self._values[index], raw)
        if outcome.accepted:
            self._values[index] = outcome.value
        return outcome

    def is_ready(self) -> bool:
        # Fields are validated one by one; nothing couples them.
        return True

    def serialize(self) -> dict[str, Any]:
        return {spec.name: value for spec, value in zip(self._specs, self._values)}
