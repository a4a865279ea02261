"""
Base mixin for persisted entities.
"""
import dataclasses
from collections.abc import Mapping
from typing import Any, ClassVar, Self

import sqlalchemy as sa

from litemodel import operations
from litemodel.coerce import safe_float32, safe_float64, safe_int64
from litemodel.coerce import safe_string, safe_time
from litemodel.connection import Database, get_database
from litemodel.exceptions import ModelContractError
from litemodel.registry import FieldKind, get_registry

__all__ = ['Model']

_READERS = {
    FieldKind.INTEGER: safe_int64,
    FieldKind.BOOLEAN: lambda value: bool(safe_int64(value)),
    FieldKind.FLOAT32: safe_float32,
    FieldKind.FLOAT64: safe_float64,
    FieldKind.STRING: safe_string,
    FieldKind.TIMESTAMP: safe_time,
}


class Model:
    """Model contract for dataclass entities.

    Subclasses are dataclasses that set ``__tablename__`` and declare an
    ``id`` column; ``created_at``/``updated_at``/``deleted_at`` timestamp
    columns are maintained when present.

    Persistence methods use the process-default database unless one is given.
    """

    __tablename__: ClassVar[str] = ''

    @classmethod
    def table_name(cls) -> str:
        if not cls.__tablename__:
            raise ModelContractError(f'{cls.__name__} does not define __tablename__')
        return cls.__tablename__

    def get_id(self) -> int:
        return self.id

    def set_id(self, ident: int) -> None:
        self.id = ident

    def save(self, tx: sa.engine.Connection | None = None, db: Database | None = None) -> int:
        return operations.save(db or get_database(), self, tx)

    def update(self, tx: sa.engine.Connection | None = None, db: Database | None = None,
               debug: bool = False) -> int:
        return operations.update(db or get_database(), self, tx, debug=debug)

    def delete(self, tx: sa.engine.Connection | None = None, db: Database | None = None) -> int:
        return operations.delete(db or get_database(), self, self.get_id(), tx)

    def soft_delete(self, tx: sa.engine.Connection | None = None, db: Database | None = None) -> int:
        return operations.soft_delete(db or get_database(), self, tx)

    @classmethod
    def from_row(cls, row: Mapping[str, Any], prefix: str | None = None,
                 db: Database | None = None) -> Self:
        """Build an instance from a row mapping returned by the find operations.

        Columns are looked up as ``'<prefix>.<column>'`` (prefix defaults to
        the table name) and then as bare ``'<column>'``; missing columns keep
        their field defaults. Values go through the coercion helpers for the
        field kind.
        """
        registry = db.registry if db is not None else get_registry()
        prefix = prefix or cls.table_name()
        init_fields = {f.name for f in dataclasses.fields(cls) if f.init}

        kwargs: dict[str, Any] = {}
        late: dict[str, Any] = {}
        for d in registry.fields_for(cls):
            qualified = f'{prefix}.{d.column}'
            if qualified in row:
                raw = row[qualified]
            elif d.column in row:
                raw = row[d.column]
            else:
                continue
            value = _READERS[d.kind](raw)
            if d.attribute in init_fields:
                kwargs[d.attribute] = value
            else:
                late[d.attribute] = value

        instance = cls(**kwargs)
        for attribute, value in late.items():
            setattr(instance, attribute, value)
        return instance

    @classmethod
    def find(cls, db: Database | None = None, **criteria: Any) -> Self | None:
        """First live instance whose columns equal `criteria`, or None."""
        db = db or get_database()
        row = operations.find_by_column(db, cls, criteria)
        return None if row is None else cls.from_row(row, db=db)

    @classmethod
    def find_all(cls, db: Database | None = None, **criteria: Any) -> list[Self]:
        """All live instances whose columns equal `criteria`."""
        db = db or get_database()
        return [cls.from_row(row, db=db) for row in operations.find_all_by_column(db, cls, criteria)]
