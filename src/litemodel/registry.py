"""
Model metadata registry.

Models are dataclasses whose persisted fields carry a column tag in their field
metadata:

    @dataclass
    class Account(Model):
        __tablename__ = 'account'

        id: int = column('id', default=0)
        name: str = column('name', default='')
        note: str = ''                            # not persisted

The registry reads those tags once per model type and keeps an ordered tuple
of `FieldDescriptor` per table name. Lookups that miss register the model on
the caller's behalf, so the first instance of a table seen by the process
defines its field set until the table is registered again.
"""
import dataclasses
import datetime
import enum
import logging
import re
import threading
import types
import typing
from collections.abc import Iterable
from typing import Any

import cachetools
import numpy as np

from litemodel.exceptions import ModelContractError

__all__ = [
    'COLUMN_TAG',
    'FieldKind',
    'FieldDescriptor',
    'ModelRegistry',
    'column',
    'get_registry',
    'register_model',
    'register_models',
    'qualified_fields',
    'table_name_of',
]

logger = logging.getLogger(__name__)

COLUMN_TAG = 'sql'

_IDENTIFIER = re.compile(r'[A-Za-z_][A-Za-z0-9_]*')


class FieldKind(enum.Enum):
    """How a field is rendered into SQL."""
    INTEGER = enum.auto()
    BOOLEAN = enum.auto()
    FLOAT32 = enum.auto()
    FLOAT64 = enum.auto()
    STRING = enum.auto()
    TIMESTAMP = enum.auto()


@dataclasses.dataclass(frozen=True, slots=True)
class FieldDescriptor:
    """Column metadata for one tagged model field."""
    column: str
    attribute: str
    declared_type: Any
    kind: FieldKind


def column(name: str, **kwargs: Any) -> Any:
    """Declare a dataclass field persisted under column `name`.

    Accepts the keyword arguments of `dataclasses.field`.
    """
    metadata = dict(kwargs.pop('metadata', None) or {})
    metadata[COLUMN_TAG] = name
    return dataclasses.field(metadata=metadata, **kwargs)


def table_name_of(model: Any) -> str:
    """Return the table name of a model type or instance.

    Raises ModelContractError if the type has no `table_name()`.
    """
    cls = model if isinstance(model, type) else type(model)
    getter = getattr(model, 'table_name', None)
    if not callable(getter):
        raise ModelContractError(f'{cls.__name__} does not implement table_name()')
    name = getter()
    if not name:
        raise ModelContractError(f'{cls.__name__}.table_name() returned an empty name')
    return name


def _unwrap_optional(declared: Any) -> tuple[Any, bool]:
    origin = typing.get_origin(declared)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(declared) if a is not type(None)]
        if len(args) == 1 and len(typing.get_args(declared)) == 2:
            return args[0], True
    return declared, False


def _classify(declared: Any) -> FieldKind | None:
    inner, optional = _unwrap_optional(declared)
    if isinstance(inner, type) and issubclass(inner, datetime.datetime):
        return FieldKind.TIMESTAMP
    if optional or not isinstance(inner, type):
        return None
    if issubclass(inner, (bool, np.bool_)):
        return FieldKind.BOOLEAN
    if issubclass(inner, (int, np.integer)):
        return FieldKind.INTEGER
    if issubclass(inner, np.float32):
        return FieldKind.FLOAT32
    if issubclass(inner, (float, np.floating)):
        return FieldKind.FLOAT64
    if issubclass(inner, str):
        return FieldKind.STRING
    return None


def _extract_descriptors(cls: type) -> tuple[FieldDescriptor, ...]:
    if not dataclasses.is_dataclass(cls):
        return ()
    try:
        hints = typing.get_type_hints(cls)
    except NameError as err:
        raise ModelContractError(f'{cls.__name__}: unresolved field annotation: {err}') from err

    descriptors = []
    seen: set[str] = set()
    for field in dataclasses.fields(cls):
        tag = field.metadata.get(COLUMN_TAG)
        if not tag:
            continue
        if not _IDENTIFIER.fullmatch(tag):
            raise ModelContractError(f'{cls.__name__}.{field.name}: invalid column name {tag!r}')
        if tag in seen:
            raise ModelContractError(f'{cls.__name__}: column {tag!r} is declared twice')
        declared = hints.get(field.name, field.type)
        kind = _classify(declared)
        if kind is None:
            raise ModelContractError(f'{cls.__name__}.{field.name}: unsupported field type {declared!r}')
        seen.add(tag)
        descriptors.append(FieldDescriptor(tag, field.name, declared, kind))
    return tuple(descriptors)


class ModelRegistry:
    """Table name to field descriptors, plus the qualified field list cache.

    Thread-safe; one process-wide instance is returned by `get_registry()`.
    """

    def __init__(self, cache_size: int = 256) -> None:
        self._models: dict[str, tuple[FieldDescriptor, ...]] = {}
        self._qualified: cachetools.LRUCache = cachetools.LRUCache(maxsize=cache_size)
        self._lock = threading.RLock()

    def register(self, model: Any, refresh: bool = True) -> tuple[FieldDescriptor, ...]:
        """Record the tagged fields of a model type or instance.

        Registering a table again replaces its previous entry. With
        ``refresh=False`` an existing entry is kept and returned.
        """
        table = table_name_of(model)
        cls = model if isinstance(model, type) else type(model)
        with self._lock:
            if not refresh and table in self._models:
                return self._models[table]
            descriptors = _extract_descriptors(cls)
            self._models[table] = descriptors
            self._evict_qualified(table)
        logger.debug(f'Registered {cls.__name__} as {table} with {len(descriptors)} fields')
        return descriptors

    def register_all(self, models: Iterable[Any]) -> None:
        """Register several models up front."""
        for model in models:
            self.register(model)

    def fields_for(self, model: Any) -> tuple[FieldDescriptor, ...]:
        """Descriptors for a model, registering it on first use."""
        return self.register(model, refresh=False)

    def descriptors(self, table: str) -> tuple[FieldDescriptor, ...]:
        """Descriptors for a registered table name."""
        with self._lock:
            try:
                return self._models[table]
            except KeyError:
                raise ModelContractError(f'No model registered for table {table!r}') from None

    def is_registered(self, table: str) -> bool:
        with self._lock:
            return table in self._models

    def tables(self) -> list[str]:
        with self._lock:
            return list(self._models)

    def clear(self) -> None:
        """Forget all registered models and cached field lists."""
        with self._lock:
            self._models.clear()
            self._qualified.clear()

    def _evict_qualified(self, table: str) -> None:
        for key in [k for k in self._qualified if k.split('.')[-1] == table]:
            del self._qualified[key]

    def _chained_fields(self, qualified_name: str) -> str:
        path = qualified_name.split('.')
        if len(path) == 1:
            prefix = qualified_name
            table = qualified_name
        else:
            prefix = '.'.join(path[1:])
            table = path[-1]
        return ',\n'.join(
            f'{table}.{d.column} AS "{prefix}.{d.column}"'
            for d in self.descriptors(table)
        )

    def qualified_fields(self, *qualified_names: str) -> str:
        """Build an aliased select list for one or more (dotted) table paths.

        ``qualified_fields('account')`` gives ``account.id AS "account.id", ...``;
        for a path such as ``'order.account'`` the leaf table's columns are
        aliased with the path minus its first segment: ``account.id AS
        "account.id"``. Lists are cached per qualified name.
        """
        parts = []
        with self._lock:
            for name in qualified_names:
                chained = self._qualified.get(name)
                if chained is None:
                    chained = self._chained_fields(name)
                    self._qualified[name] = chained
                if chained:
                    parts.append(chained)
        return ',\n'.join(parts)


_default_registry = ModelRegistry()


def get_registry() -> ModelRegistry:
    """Return the process-wide registry."""
    return _default_registry


def register_model(model: Any) -> tuple[FieldDescriptor, ...]:
    return _default_registry.register(model)


def register_models(models: Iterable[Any]) -> None:
    _default_registry.register_all(models)


def qualified_fields(*qualified_names: str) -> str:
    return _default_registry.qualified_fields(*qualified_names)
