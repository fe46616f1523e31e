"""Placeholder substitution for action templates.

Templates reference the run context with ``{path.to.value}``. Each dotted
segment selects a key of the current value; a string met on the way is
decoded as JSON before descending, so payloads that embed JSON documents as
strings can still be addressed. Unknown keys render as an empty string unless
``strict`` is requested.
"""

from __future__ import annotations

import json
from typing import Any

from .exceptions import TemplateError

START_DELIMITER = "{"
END_DELIMITER = "}"

_MISSING = object()


def resolve_path(context: Any, path: str) -> Any:
    """Walk ``context`` along the dotted ``path``.

    Returns the module-level ``_MISSING`` sentinel when any segment is absent.
    """
    value = context
    for key in path.split("."):
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                return _MISSING
        if isinstance(value, dict):
            if key not in value:
                return _MISSING
            value = value[key]
        elif isinstance(value, list) and key.isdigit():
            index = int(key)
            if index >= len(value):
                return _MISSING
            value = value[index]
        else:
            return _MISSING
    return value


def render_value(value: Any) -> str:
    if value is None or value is _MISSING:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (bool, int, float, dict, list)):
        return json.dumps(value)
    return str(value)


def interpolate(template: str, context: Any, strict: bool = False) -> str:
    """Substitute every ``{key.path}`` placeholder in ``template``.

    Args:
        template: Text containing zero or more placeholders.
        context: Nested JSON-like value the placeholders are resolved against.
        strict: Raise instead of rendering an empty string for unknown keys.

    Raises:
        TemplateError: If ``template`` is not a string, contains an
            unterminated placeholder, or (in strict mode) references an
            unknown key.
    """
    if not isinstance(template, str):
        raise TemplateError(
            f"interpolate() expected a string but got {type(template).__name__}"
        )

    parts: list[str] = []
    position = 0
    while True:
        opening = template.find(START_DELIMITER, position)
        if opening == -1:
            parts.append(template[position:])
            break
        parts.append(template[position:opening])

        closing = template.find(END_DELIMITER, opening + 1)
        if closing == -1:
            raise TemplateError(f"Unmatched delimiter in template: {template}")

        path = template[opening + 1 : closing]
        value = resolve_path(context, path)
        if value is _MISSING and strict:
            raise TemplateError(f"Unknown template key: {path}")
        parts.append(render_value(value))
        position = closing + 1

    return "".join(parts)
