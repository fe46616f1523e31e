"""Shape validation for action metadata and credential key bundles."""

from __future__ import annotations

from typing import Any, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError

T = TypeVar("T", bound=BaseModel)


class ValidationResult(BaseModel, Generic[T]):
    """Either a validated ``value`` or the names of the missing fields."""

    value: Optional[T] = None
    missing_fields: List[str] = Field(default_factory=list)

    @property
    def valid(self) -> bool:
        return self.value is not None and not self.missing_fields


def _required_names(model: Type[BaseModel]) -> List[str]:
    return [
        field.alias or name
        for name, field in model.model_fields.items()
        if field.is_required()
    ]


def validate_fields(
    model: Type[T], raw: Any, allow_empty: bool = True
) -> ValidationResult[T]:
    """Check that every required field of ``model`` is a string in ``raw``.

    All missing fields are reported, not just the first one.
    """
    data = raw if isinstance(raw, dict) else {}
    missing = []
    for name in _required_names(model):
        value = data.get(name)
        if not isinstance(value, str) or (not allow_empty and not value):
            missing.append(name)
    if missing:
        return ValidationResult[model](missing_fields=missing)
    try:
        value = model.model_validate(data)
    except ValidationError as exc:
        invalid = [".".join(str(part) for part in error["loc"]) for error in exc.errors()]
        return ValidationResult[model](missing_fields=invalid)
    return ValidationResult[model](value=value)
