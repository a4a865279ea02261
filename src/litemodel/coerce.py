"""
Coercion helpers for reading untyped database values.

Drivers hand back column values as whatever Python type they map the SQL type
to: ``int`` for integer columns, ``Decimal`` for DECIMAL, ``bytes`` or ``str``
for text and for some numeric expressions, ``datetime`` for DATETIME, and
``None`` for NULL. These helpers turn such a value into the fixed-width type the
caller wants:

    safe_uint64(row['account.id'])
    safe_float32(row['account.balance'])
    safe_time(row['account.deleted_at'])

NULL becomes the zero value (``safe_time`` returns None instead). Text that is
not a number also becomes zero unless ``strict=True`` is passed. A value kind
the helper does not handle at all, e.g. a float handed to an integer helper,
raises `TypeConversionError`: the caller has the column mapping wrong.
"""
import datetime
import logging
import re
from decimal import Decimal
from typing import Any

import dateutil.parser
import numpy as np
from dateutil.relativedelta import relativedelta

from litemodel.exceptions import TypeConversionError

__all__ = [
    'safe_uint64',
    'safe_int64',
    'safe_int',
    'safe_float32',
    'safe_float64',
    'safe_string',
    'safe_time',
    'check_nil_time',
    'sql_time',
    'utcnow',
]

logger = logging.getLogger(__name__)

SQL_TIME_FORMAT = '%Y-%m-%d %H:%M:%S'

TEXT_TYPES = (bytes, bytearray, memoryview, str)
INTEGER_TYPES = (int, np.integer)
FLOAT_TYPES = (float, np.floating)

_SIGNED_DIGITS = re.compile(r'[+-]?[0-9]+')
_UNSIGNED_DIGITS = re.compile(r'[0-9]+')


def utcnow() -> datetime.datetime:
    """Current time as an aware UTC datetime."""
    return datetime.datetime.now(datetime.timezone.utc)


def _wrap(value: int, dtype: type[np.integer]) -> int:
    """Wrap an integer into the range of `dtype` like a fixed-width cast."""
    info = np.iinfo(dtype)
    span = int(info.max) - int(info.min) + 1
    return (int(value) - int(info.min)) % span + int(info.min)


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, Decimal):
        return str(value)
    return bytes(value).decode('ascii', errors='replace')


def _parse_failed(name: str, value: Any, strict: bool, reason: str) -> int:
    if strict:
        raise TypeConversionError(f'{name}: cannot parse {value!r}: {reason}')
    logger.debug(f'{name}: cannot parse {value!r} ({reason}), using 0')
    return 0


def _parse_integer(name: str, value: Any, dtype: type[np.integer], strict: bool) -> int:
    text = _as_text(value)
    signed = np.iinfo(dtype).min < 0
    pattern = _SIGNED_DIGITS if signed else _UNSIGNED_DIGITS
    if not pattern.fullmatch(text):
        return _parse_failed(name, value, strict, 'invalid syntax')
    parsed = int(text)
    info = np.iinfo(dtype)
    if not int(info.min) <= parsed <= int(info.max):
        return _parse_failed(name, value, strict, 'value out of range')
    return parsed


def _coerce_integer(name: str, value: Any, dtype: type[np.integer],
                    parse_dtype: type[np.integer], strict: bool) -> int:
    if value is None:
        return 0
    if isinstance(value, INTEGER_TYPES):
        return _wrap(value, dtype)
    if isinstance(value, TEXT_TYPES + (Decimal,)):
        return _parse_integer(name, value, parse_dtype, strict)
    raise TypeConversionError(f'{name} unsupported type: {type(value).__name__}')


def safe_uint64(value: Any, strict: bool = False) -> int:
    """Convert a SQL value to an unsigned 64-bit integer.

    >>> safe_uint64(b'42')
    42
    >>> safe_uint64(-1) == 2**64 - 1
    True
    >>> safe_uint64(None)
    0
    """
    return _coerce_integer('safe_uint64', value, np.uint64, np.uint64, strict)


def safe_int64(value: Any, strict: bool = False) -> int:
    """Convert a SQL value to a signed 64-bit integer.

    >>> safe_int64(b'-7')
    -7
    >>> safe_int64(b'1.5')
    0
    """
    return _coerce_integer('safe_int64', value, np.int64, np.int64, strict)


def safe_int(value: Any, strict: bool = False) -> int:
    """Convert a SQL value to a platform integer.

    Numeric values are wrapped to 64 bits; text is parsed as a 32-bit integer.
    """
    return _coerce_integer('safe_int', value, np.int64, np.int32, strict)


def _coerce_float(name: str, value: Any, dtype: type[np.floating], strict: bool) -> float:
    if value is None:
        return 0.0
    if isinstance(value, INTEGER_TYPES + FLOAT_TYPES):
        return float(dtype(value))
    if isinstance(value, TEXT_TYPES + (Decimal,)):
        text = _as_text(value)
        if text != text.strip() or '_' in text:
            return float(_parse_failed(name, value, strict, 'invalid syntax'))
        try:
            return float(dtype(float(text)))
        except ValueError as err:
            return float(_parse_failed(name, value, strict, str(err)))
    raise TypeConversionError(f'{name} unsupported type: {type(value).__name__}')


def safe_float32(value: Any, strict: bool = False) -> float:
    """Convert a SQL value to a float narrowed to single precision.
    """
    return _coerce_float('safe_float32', value, np.float32, strict)


def safe_float64(value: Any, strict: bool = False) -> float:
    """Convert a SQL value to a double precision float.
    """
    return _coerce_float('safe_float64', value, np.float64, strict)


def safe_string(value: Any) -> str:
    """Convert a SQL value to a string. Never raises.

    NULL and values with no sensible text form become the empty string.
    """
    if value is None:
        return ''
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        try:
            return bytes(value).decode('utf-8')
        except UnicodeDecodeError:
            return ''
    if isinstance(value, (bool, np.bool_)):
        return 'true' if value else 'false'
    if isinstance(value, INTEGER_TYPES + FLOAT_TYPES + (Decimal,)):
        return str(value.item() if isinstance(value, np.generic) else value)
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    return ''


def safe_time(value: Any) -> datetime.datetime | None:
    """Convert a SQL value to a datetime, or None for NULL.

    Text timestamps (returned by drivers without native DATETIME support) are
    parsed; any other non-datetime value raises `TypeConversionError`.
    """
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, TEXT_TYPES):
        try:
            return dateutil.parser.parse(_as_text(value))
        except (ValueError, OverflowError) as err:
            raise TypeConversionError(f'safe_time: cannot parse {value!r}') from err
    raise TypeConversionError(f'safe_time unsupported type: {type(value).__name__}')


def check_nil_time(value: datetime.datetime | None, years: int = 0,
                   months: int = 0, days: int = 0) -> datetime.datetime:
    """Return `value`, or now shifted by a calendar offset when it is None.

    Used for default expirations:

    >>> t = datetime.datetime(2020, 1, 31)
    >>> check_nil_time(t, 1, 0, 0) is t
    True
    """
    if value is not None:
        return value
    return utcnow() + relativedelta(years=years, months=months, days=days)


def sql_time(value: datetime.datetime) -> str:
    """Format a datetime for SQL: UTC, no timezone suffix.

    Naive datetimes are taken to already be in UTC.

    >>> sql_time(datetime.datetime(2019, 10, 10, 9, 0, 0))
    '2019-10-10 09:00:00'
    """
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc)
    return value.strftime(SQL_TIME_FORMAT)
