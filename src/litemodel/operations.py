"""
Model persistence operations.

Each operation takes the `Database` to run against as its first argument and,
where it writes, an optional caller-owned transaction `tx` (a SQLAlchemy
`Connection` inside ``db.begin()``). Without `tx` each statement runs in its
own committed block. The operations never begin, commit or roll back a
caller's transaction.
"""
import logging
from collections.abc import Callable, Mapping
from typing import Any

import sqlalchemy as sa

from litemodel.coerce import sql_time, utcnow
from litemodel.connection import Database
from litemodel.exceptions import MissingIdentifierError
from litemodel.registry import table_name_of
from litemodel.render import bind_fields
from litemodel.sql import Statement, delete_statement, insert_statement
from litemodel.sql import select_statement, soft_delete_statement
from litemodel.sql import update_statement

__all__ = [
    'save',
    'update',
    'find_by_column',
    'find_all_by_column',
    'delete',
    'soft_delete',
    'row_scan',
]

logger = logging.getLogger(__name__)

CREATED_AT = 'created_at'
UPDATED_AT = 'updated_at'
DELETED_AT = 'deleted_at'


def _stamp(model: Any, attribute: str, when: Any) -> None:
    if hasattr(model, attribute):
        setattr(model, attribute, when)


def _resolve_table(db: Database, table: Any) -> str:
    """Table name for a name, model type or model instance."""
    if isinstance(table, str):
        return table
    db.registry.fields_for(table)
    return table_name_of(table)


def _execute(db: Database, statement: Statement,
             tx: sa.engine.Connection | None = None) -> tuple[int, int | None]:
    """Run a write statement; returns (rowcount, lastrowid)."""
    with db.connection(tx) as cn:
        result = cn.execute(statement.text(), statement.params)
        return result.rowcount, result.lastrowid


def save(db: Database, model: Any, tx: sa.engine.Connection | None = None) -> int:
    """Insert a new model, or update it when it already has an id.

    On insert `created_at` and `updated_at` are set to now, the zero id is
    left out so the server generates one, and the generated id is set on the
    model. Returns the model id.
    """
    if model.get_id():
        update(db, model, tx)
        return model.get_id()

    now = utcnow()
    _stamp(model, CREATED_AT, now)
    _stamp(model, UPDATED_AT, now)

    table = table_name_of(model)
    values = bind_fields(model, db.registry)
    values.pop('id', None)
    statement = insert_statement(table, values)
    logger.debug(f'Inserting into {table}: {statement.sql}')

    _, ident = _execute(db, statement, tx)
    if ident:
        model.set_id(int(ident))
    else:
        logger.debug(f'No generated id reported for insert into {table}')
    return model.get_id()


def update(db: Database, model: Any, tx: sa.engine.Connection | None = None,
           debug: bool = False) -> int:
    """Write all tagged fields of a persisted model and return the row count.

    Sets `updated_at` to now. Raises MissingIdentifierError, without running
    anything, when the model id is zero. With ``debug=True`` the statement is
    logged with its values inlined.
    """
    table = table_name_of(model)
    ident = model.get_id()
    if not ident:
        raise MissingIdentifierError(f'id is null; cannot update {table}')

    _stamp(model, UPDATED_AT, utcnow())
    values = bind_fields(model, db.registry)
    values['id'] = ident
    statement = update_statement(table, values)
    if debug:
        logger.info(f'Update debug, statement executed: {statement.literal()}')

    rowcount, _ = _execute(db, statement, tx)
    logger.debug(f'Updated {table} id={ident}: {rowcount} row(s)')
    return rowcount


def find_by_column(db: Database, table: Any, criteria: Mapping[str, Any],
                   tx: sa.engine.Connection | None = None) -> dict[str, Any] | None:
    """Return the first live row matching every criterion, or None.

    Keys of the returned mapping are qualified as ``'<table>.<column>'``;
    feed it to `Model.from_row`. Soft-deleted rows are never returned.
    """
    table = _resolve_table(db, table)
    statement = select_statement(table, db.registry.qualified_fields(table), criteria, limit=1)
    with db.connection(tx) as cn:
        row = cn.execute(statement.text(), statement.params).mappings().first()
    if row is None:
        logger.debug(f'No {table} row matches {list(criteria)}')
        return None
    return dict(row)


def find_all_by_column(db: Database, table: Any, criteria: Mapping[str, Any],
                       tx: sa.engine.Connection | None = None) -> list[dict[str, Any]]:
    """Return all live rows matching every criterion, in result order.
    """
    table = _resolve_table(db, table)
    statement = select_statement(table, db.registry.qualified_fields(table), criteria)
    with db.connection(tx) as cn:
        rows = [dict(row) for row in cn.execute(statement.text(), statement.params).mappings()]
    logger.debug(f'Found {len(rows)} {table} row(s) matching {list(criteria)}')
    return rows


def delete(db: Database, table: Any, ident: int,
           tx: sa.engine.Connection | None = None) -> int:
    """Remove the row with `ident` from `table` outright.

    This is a hard delete: it does not honor the ``deleted_at`` convention the
    find operations filter on. Use `soft_delete` for that.
    """
    table = _resolve_table(db, table)
    statement = delete_statement(table, ident)
    rowcount, _ = _execute(db, statement, tx)
    logger.debug(f'Deleted {table} id={ident}: {rowcount} row(s)')
    return rowcount


def soft_delete(db: Database, model: Any, tx: sa.engine.Connection | None = None) -> int:
    """Mark a model deleted by setting its ``deleted_at`` to now.
    """
    table = table_name_of(model)
    now = utcnow()
    statement = soft_delete_statement(table, model.get_id(), sql_time(now))
    rowcount, _ = _execute(db, statement, tx)
    _stamp(model, DELETED_AT, now)
    return rowcount


def row_scan(result: sa.engine.Result, fn: Callable[[dict[str, Any]], Any]) -> Any:
    """Apply `fn` to the next row of `result` as a dict; None when exhausted.
    """
    row = result.mappings().fetchone()
    if row is None:
        return None
    return fn(dict(row))
