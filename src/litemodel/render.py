"""
Model field serialization.

Two views of a model's tagged fields are produced here, both keyed by column
name in declaration order:

- `render_fields` gives SQL literal text (quoted and escaped strings,
  two-decimal floats, quoted UTC timestamps, ``null``). It is used for
  inspecting and logging statements.
- `bind_fields` gives the same normalized values as driver parameters. This is
  what the operations in `litemodel.operations` actually send, so string
  escaping is never the only defense against injection.
"""
import datetime
from typing import Any

import numpy as np

from litemodel.coerce import sql_time
from litemodel.registry import FieldDescriptor, FieldKind, ModelRegistry
from litemodel.registry import get_registry

__all__ = [
    'escape_string',
    'render_literal',
    'render_value',
    'render_fields',
    'render_values',
    'render_columns_and_values',
    'bind_value',
    'bind_fields',
]

# Order matters: the backslash goes first so later replacements are not
# escaped a second time.
_ESCAPES = (
    ('\\', '\\\\'),
    ("'", "\\'"),
    ('\\0', '\\\\0'),
    ('\n', '\\n'),
    ('\r', '\\r'),
    ('"', '\\"'),
    ('\x1a', '\\Z'),
)


def escape_string(value: str) -> str:
    """Escape a string for use inside a MySQL string literal.

    >>> escape_string('bo"b')
    'bo\\\\"b'
    """
    for old, new in _ESCAPES:
        value = value.replace(old, new)
    return value


def _format_float(value: Any, kind: FieldKind) -> str:
    if kind is FieldKind.FLOAT32:
        value = np.float32(value)
    return f'{float(value):.2f}'


def bind_value(value: Any, kind: FieldKind) -> Any:
    """Normalize a field value for use as a bound parameter.
    """
    if kind is FieldKind.TIMESTAMP:
        return None if value is None else sql_time(value)
    if kind is FieldKind.BOOLEAN:
        return 1 if value else 0
    if kind is FieldKind.INTEGER:
        return int(value)
    if kind in {FieldKind.FLOAT32, FieldKind.FLOAT64}:
        return float(_format_float(value, kind))
    return str(value)


def render_value(value: Any, kind: FieldKind) -> str:
    """Render a field value as SQL literal text.
    """
    if kind is FieldKind.TIMESTAMP:
        return 'null' if value is None else f'"{sql_time(value)}"'
    if kind is FieldKind.BOOLEAN:
        return '1' if value else '0'
    if kind is FieldKind.INTEGER:
        return str(int(value))
    if kind in {FieldKind.FLOAT32, FieldKind.FLOAT64}:
        return _format_float(value, kind)
    return f'"{escape_string(str(value))}"'


def render_literal(value: Any) -> str:
    """Render an arbitrary Python value as SQL literal text.

    The kind is inferred from the value's type; None renders as ``null``.
    """
    if value is None:
        return 'null'
    if isinstance(value, (bool, np.bool_)):
        return render_value(value, FieldKind.BOOLEAN)
    if isinstance(value, (int, np.integer)):
        return render_value(value, FieldKind.INTEGER)
    if isinstance(value, np.float32):
        return render_value(value, FieldKind.FLOAT32)
    if isinstance(value, (float, np.floating)):
        return render_value(value, FieldKind.FLOAT64)
    if isinstance(value, datetime.datetime):
        return render_value(value, FieldKind.TIMESTAMP)
    return render_value(str(value), FieldKind.STRING)


def _descriptors(model: Any, registry: ModelRegistry | None) -> tuple[FieldDescriptor, ...]:
    return (registry or get_registry()).fields_for(model)


def render_fields(model: Any, registry: ModelRegistry | None = None) -> dict[str, str]:
    """Map each tagged column of `model` to its SQL literal text.
    """
    return {
        d.column: render_value(getattr(model, d.attribute), d.kind)
        for d in _descriptors(model, registry)
    }


def bind_fields(model: Any, registry: ModelRegistry | None = None) -> dict[str, Any]:
    """Map each tagged column of `model` to its bound parameter value.
    """
    return {
        d.column: bind_value(getattr(model, d.attribute), d.kind)
        for d in _descriptors(model, registry)
    }


def render_values(model: Any, registry: ModelRegistry | None = None) -> str:
    """Literal values of all tagged fields, comma separated."""
    return ', '.join(render_fields(model, registry).values())


def render_columns_and_values(model: Any, registry: ModelRegistry | None = None) -> tuple[str, str]:
    """Back-quoted column list and literal value list, in the same order."""
    rendered = render_fields(model, registry)
    columns = ', '.join(f'`{c}`' for c in rendered)
    values = ', '.join(rendered.values())
    return columns, values
