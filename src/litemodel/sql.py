"""
SQL statement construction.

Every builder returns a `Statement`: SQL text with ``:name`` placeholders plus
the parameter dict, ready for `sqlalchemy.text`. Column names come from model
tags or caller criteria and are checked to be plain identifiers before they
are placed in the text; values are always bound.
"""
import re
from collections.abc import Mapping
from typing import Any, NamedTuple

import sqlalchemy as sa

from litemodel.exceptions import MissingIdentifierError, ValidationError
from litemodel.render import render_literal

__all__ = [
    'Statement',
    'check_identifier',
    'quote_identifier',
    'insert_statement',
    'update_statement',
    'select_statement',
    'delete_statement',
    'soft_delete_statement',
]

_IDENTIFIER = re.compile(r'[A-Za-z_][A-Za-z0-9_]*')
_BIND = re.compile(r'(?<![:\w]):(\w+)')

SOFT_DELETE_COLUMN = 'deleted_at'


class Statement(NamedTuple):
    """SQL text with named placeholders and the values bound to them."""
    sql: str
    params: dict[str, Any]

    def text(self) -> sa.TextClause:
        return sa.text(self.sql)

    def literal(self) -> str:
        """The statement with each placeholder replaced by its literal value.

        For logging only; never execute the result.
        """
        return _BIND.sub(lambda m: render_literal(self.params[m.group(1)]), self.sql)


def check_identifier(name: str) -> str:
    """Return `name` if it is a plain SQL identifier, else raise ValidationError.
    """
    if not isinstance(name, str) or not _IDENTIFIER.fullmatch(name):
        raise ValidationError(f'Invalid SQL identifier: {name!r}')
    return name


def quote_identifier(identifier: str) -> str:
    """Quote a MySQL identifier with back-quotes.

    >>> quote_identifier('name')
    '`name`'
    """
    return '`' + identifier.replace('`', '``') + '`'


def insert_statement(table: str, values: Mapping[str, Any]) -> Statement:
    """Generate ``INSERT INTO table (`a`, `b`) VALUES (:a, :b)``.
    """
    check_identifier(table)
    columns = [check_identifier(c) for c in values]
    if not columns:
        raise ValidationError(f'No columns to insert into {table}')
    quoted = ', '.join(quote_identifier(c) for c in columns)
    placeholders = ', '.join(f':{c}' for c in columns)
    sql = f'INSERT INTO {table} ({quoted}) VALUES ({placeholders})'
    return Statement(sql, dict(values))


def update_statement(table: str, values: Mapping[str, Any]) -> Statement:
    """Generate ``UPDATE table SET a=:a, b=:b WHERE id=:id``.

    The ``id`` entry of `values` becomes the WHERE clause and is not updated.
    Raises MissingIdentifierError when it is absent or zero.
    """
    check_identifier(table)
    values = dict(values)
    ident = values.pop('id', None)
    if not ident:
        raise MissingIdentifierError(f'id is null; cannot update {table}')
    if not values:
        raise ValidationError(f'No columns to update in {table}')
    assignments = ', '.join(f'{check_identifier(c)}=:{c}' for c in values)
    sql = f'UPDATE {table} SET {assignments} WHERE id=:id'
    return Statement(sql, values | {'id': ident})


def select_statement(table: str, fields: str, criteria: Mapping[str, Any],
                     limit: int | None = None) -> Statement:
    """Generate a SELECT over `table` filtered by equality on every criterion.

    Rows whose ``deleted_at`` is set are excluded. A None criterion matches
    NULL. `fields` is a prepared select list, usually from
    `ModelRegistry.qualified_fields`.
    """
    check_identifier(table)
    predicates = []
    params: dict[str, Any] = {}
    for col, value in criteria.items():
        check_identifier(col)
        if value is None:
            predicates.append(f'{table}.{col} IS NULL')
        else:
            predicates.append(f'{table}.{col}=:{col}')
            params[col] = value
    predicates.append(f'{table}.{SOFT_DELETE_COLUMN} IS NULL')

    sql = f'SELECT {fields} FROM {table} WHERE ' + ' AND '.join(predicates)
    if limit is not None:
        sql += f' LIMIT {int(limit)}'
    return Statement(sql, params)


def delete_statement(table: str, ident: int) -> Statement:
    """Generate ``DELETE FROM table WHERE id=:id``; a hard delete.
    """
    check_identifier(table)
    if not ident:
        raise MissingIdentifierError(f'id is null; cannot delete from {table}')
    return Statement(f'DELETE FROM {table} WHERE id=:id', {'id': int(ident)})


def soft_delete_statement(table: str, ident: int, deleted_at: str) -> Statement:
    """Generate ``UPDATE table SET deleted_at=:deleted_at WHERE id=:id``.
    """
    check_identifier(table)
    if not ident:
        raise MissingIdentifierError(f'id is null; cannot delete from {table}')
    sql = f'UPDATE {table} SET {SOFT_DELETE_COLUMN}=:{SOFT_DELETE_COLUMN} WHERE id=:id'
    return Statement(sql, {SOFT_DELETE_COLUMN: deleted_at, 'id': int(ident)})
