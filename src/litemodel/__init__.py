"""
Lightweight model persistence for MySQL on top of SQLAlchemy.

Models are dataclasses whose persisted fields are tagged with column names.
All persistence calls can be made either as:
- Module functions: litemodel.save(model), litemodel.find_by_column('account', {...})
- Model methods: model.save(), Account.find(name='bob')
- Operations on an explicit database: litemodel.operations.save(db, model)

The module functions and model methods use the process-default `Database`
(see `init_db`) unless a `db` argument is passed.
"""
__version__ = '0.1.0'

from collections.abc import Callable, Mapping
from typing import Any

import sqlalchemy as sa

from litemodel import operations
from litemodel.coerce import check_nil_time, safe_float32, safe_float64
from litemodel.coerce import safe_int, safe_int64, safe_string, safe_time
from litemodel.coerce import safe_uint64, sql_time
from litemodel.connection import Database, check_db, get_database, get_db
from litemodel.connection import init_db, set_database
from litemodel.exceptions import ConnectionFailure, DatabaseError
from litemodel.exceptions import DbConnectionError, IntegrityError
from litemodel.exceptions import MissingIdentifierError, ModelContractError
from litemodel.exceptions import NotInitializedError, OperationalError
from litemodel.exceptions import ProgrammingError, QueryError
from litemodel.exceptions import TypeConversionError, ValidationError
from litemodel.model import Model
from litemodel.options import DatabaseOptions
from litemodel.registry import FieldDescriptor, FieldKind, ModelRegistry
from litemodel.registry import column, get_registry, qualified_fields
from litemodel.registry import register_model, register_models
from litemodel.render import bind_fields, escape_string, render_columns_and_values
from litemodel.render import render_fields, render_values
from litemodel.sql import Statement


def save(model: Any, tx: sa.engine.Connection | None = None,
         db: Database | None = None) -> int:
    """Insert a new model or update a persisted one; returns its id.
    """
    return operations.save(db or get_database(), model, tx)


def update(model: Any, tx: sa.engine.Connection | None = None,
           db: Database | None = None) -> int:
    """Update a persisted model; raises MissingIdentifierError if its id is zero.
    """
    return operations.update(db or get_database(), model, tx)


def update_debug(model: Any, tx: sa.engine.Connection | None = None,
                 db: Database | None = None) -> int:
    """Like `update`, logging the executed statement with its values.
    """
    return operations.update(db or get_database(), model, tx, debug=True)


def find_by_column(table: Any, criteria: Mapping[str, Any],
                   db: Database | None = None) -> dict[str, Any] | None:
    """Return the first live row matching every criterion, or None.
    """
    return operations.find_by_column(db or get_database(), table, criteria)


def find_all_by_column(table: Any, criteria: Mapping[str, Any],
                       db: Database | None = None) -> list[dict[str, Any]]:
    """Return all live rows matching every criterion.
    """
    return operations.find_all_by_column(db or get_database(), table, criteria)


def delete(table: Any, ident: int, tx: sa.engine.Connection | None = None,
           db: Database | None = None) -> int:
    """Hard-delete the row with `ident` from `table`.
    """
    return operations.delete(db or get_database(), table, ident, tx)


def soft_delete(model: Any, tx: sa.engine.Connection | None = None,
                db: Database | None = None) -> int:
    """Set `deleted_at` on a persisted model.
    """
    return operations.soft_delete(db or get_database(), model, tx)


def row_scan(result: sa.engine.Result, fn: Callable[[dict[str, Any]], Any]) -> Any:
    """Apply `fn` to the next row of `result`; None when exhausted.
    """
    return operations.row_scan(result, fn)


__all__ = [
    'Model',
    'column',
    'Database',
    'DatabaseOptions',
    'init_db',
    'check_db',
    'get_db',
    'get_database',
    'set_database',
    'save',
    'update',
    'update_debug',
    'find_by_column',
    'find_all_by_column',
    'delete',
    'soft_delete',
    'row_scan',
    'register_model',
    'register_models',
    'qualified_fields',
    'get_registry',
    'ModelRegistry',
    'FieldDescriptor',
    'FieldKind',
    'render_fields',
    'render_values',
    'render_columns_and_values',
    'bind_fields',
    'escape_string',
    'Statement',
    'safe_uint64',
    'safe_int64',
    'safe_int',
    'safe_float32',
    'safe_float64',
    'safe_string',
    'safe_time',
    'check_nil_time',
    'sql_time',
    'DatabaseError',
    'ConnectionFailure',
    'NotInitializedError',
    'QueryError',
    'ValidationError',
    'MissingIdentifierError',
    'TypeConversionError',
    'ModelContractError',
    'DbConnectionError',
    'IntegrityError',
    'ProgrammingError',
    'OperationalError',
]
