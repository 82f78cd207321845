# sheetbender/utils.py
"""
Utility functions for sheetbender.
"""

import datetime as dt
import re
from decimal import Decimal
from typing import Any, List, Tuple

from .defaults import settings

MIDNIGHT = dt.time(0, 0, 0)
# cache format strings for performance
_format_cache = None


def _build_format_strings():
    """Build format strings for datetime and date objects."""
    return {
        'date': settings.get('date_format', '%Y-%m-%d'),
        'datetime': settings.get('datetime_format', '%Y-%m-%d %H:%M:%S'),
        'datetime_tz': settings.get('datetime_format', '%Y-%m-%d %H:%M:%S') + \
                       settings.get('tz_suffix', ' %z'),
        'timestamp': settings.get('timestamp_format', '%Y-%m-%d %H:%M:%S.%f'),
        'timestamp_tz': settings.get('timestamp_format', '%Y-%m-%d %H:%M:%S.%f') + \
                        settings.get('tz_suffix', ' %z'),
        'time': settings.get('time_format', '%H:%M:%S'),
        'null': settings.get('null_string', ''),
    }


def reset_format_cache():
    """Clear format cache to force rebuilding on next call."""
    global _format_cache
    _format_cache = None


def _get_format_strings():
    global _format_cache
    if _format_cache is None:
        _format_cache = _build_format_strings()
    return _format_cache


def to_string(obj: Any) -> str:
    """
    Convert a value to its plain string representation.

    This is the fallback used for cells whose field kind has no formatting
    rule, and for cells whose rule failed.

    Args:
        obj: Value to convert

    Returns:
        String representation
    """
    fmts = _get_format_strings()
    if obj is None:
        return fmts['null']
    elif isinstance(obj, bool):
        return 'true' if obj else 'false'
    elif isinstance(obj, dt.datetime):
        if obj.microsecond:
            return obj.strftime(fmts['timestamp_tz'] if obj.tzinfo else fmts['timestamp'])
        if obj.tzinfo:
            return obj.strftime(fmts['datetime_tz'])
        if obj.time() == MIDNIGHT:
            return obj.strftime(fmts['date'])
        return obj.strftime(fmts['datetime'])
    elif isinstance(obj, dt.date):
        return obj.strftime(fmts['date'])
    elif isinstance(obj, dt.time):
        return obj.strftime(fmts['time'])
    elif isinstance(obj, (int, float, Decimal)):
        return str(obj)
    elif isinstance(obj, str):
        return obj
    elif isinstance(obj, bytes):
        return obj.decode('utf-8', errors='replace')
    else:
        return str(obj)


def is_native_cell(obj: Any) -> bool:
    """True for values a sheet can hold as a typed (non-text) cell."""
    return isinstance(obj, (bool, int, float, Decimal))


def as_list(value: Any) -> List[Any]:
    """
    Wrap a scalar in a list; lists and tuples are copied, None becomes [].

    Example:
        as_list('a')         # ['a']
        as_list(['a', 'b'])  # ['a', 'b']
        as_list(None)        # []
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]




# DB-API placeholder styles. Generated queries use ``:name`` placeholders.
PARAMSTYLES = ('qmark', 'numeric', 'named', 'format', 'pyformat')
_PLACEHOLDER = re.compile(r'(?<![:\w]):([A-Za-z_]\w*)')
_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]{0,63}$')


def bind_parameters(sql: str, bind_vars: dict, paramstyle: str = 'named') -> Tuple[str, Any]:
    """
    Rewrite ``:name`` placeholders for the driver's paramstyle.

    Args:
        sql: Query with ``:name`` placeholders
        bind_vars: Values by placeholder name
        paramstyle: One of PARAMSTYLES

    Returns:
        (query, params) where params is a tuple for positional styles
        and a dict for named ones

    Example:
        bind_parameters('age > :p0', {'p0': 12}, 'qmark')  # ('age > ?', (12,))
    """
    if paramstyle not in PARAMSTYLES:
        raise ValueError(f"Unsupported paramstyle: {paramstyle}")
    names: List[str] = []

    def placeholder(match):
        names.append(match.group(1))
        if paramstyle == 'qmark':
            return '?'
        if paramstyle == 'format':
            return '%s'
        if paramstyle == 'numeric':
            return f':{len(names)}'
        if paramstyle == 'pyformat':
            return f'%({match.group(1)})s'
        return match.group(0)

    query = _PLACEHOLDER.sub(placeholder, sql)
    if paramstyle in ('named', 'pyformat'):
        return query, {name: bind_vars.get(name) for name in names}
    return query, tuple(bind_vars.get(name) for name in names)


def quote_identifier(identifier: str) -> str:
    """
    Validate a table or column name for generated SQL, quoting it unless it
    is already lowercase.

    Only plain names (letters, digits and underscores, at most 64 characters)
    are accepted; anything else raises ValueError.
    """
    if not identifier or not _IDENTIFIER.match(identifier):
        raise ValueError(f"Invalid identifier: {identifier!r}")
    if identifier.islower():
        return identifier
    return f'"{identifier}"'
