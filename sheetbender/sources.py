# sheetbender/sources.py
"""
Record sources the exporter pulls pages from.

A source answers ``query(collection, find, limit, offset, appends)`` with a list
of records (dicts). ``find`` is a dict with optional ``filter`` and ``sort``
keys; ``appends`` names the associations to load onto each record.

Filter syntax
-------------
::

    {'age': {'$gt': 9}}                       # age > 9
    {'name': 'Aang'}                          # bare value means $eq
    {'nation': {'$in': ['air', 'water']}}
    {'$or': [{'age': {'$lt': 13}}, {'name': {'$like': 'Zu%'}}]}

Operators: $eq $ne $gt $gte $lt $lte $in $notIn $like $null $notNull,
combined with $and / $or.

Sort syntax: ``['-age', 'name']`` or ``'-age,name'`` (``-`` means descending).
"""

import json
import logging
import operator
import re
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .exceptions import SourceQueryError
from .fields import Collection, FieldDescriptor, FieldKind
from .utils import PARAMSTYLES, bind_parameters, quote_identifier

logger = logging.getLogger(__name__)
__all__ = ['RecordSource', 'ListSource', 'DatabaseSource', 'parse_sort']

# kinds stored as JSON text by DatabaseSource
JSON_KINDS = (FieldKind.JSON, FieldKind.MULTIPLE_SELECT, FieldKind.CHECKBOXES,
              FieldKind.ATTACHMENT, FieldKind.REGION)


def _like(value: Any, pattern: Any) -> bool:
    if value is None or pattern is None:
        return False
    regex = ''.join('.*' if c == '%' else '.' if c == '_' else re.escape(c) for c in str(pattern))
    return re.fullmatch(regex, str(value), re.I | re.S) is not None


def _safe(compare):
    """Comparisons against NULL are false, as in SQL."""
    def wrapper(value, operand):
        if value is None or operand is None:
            return False
        try:
            return compare(value, operand)
        except TypeError:
            return False
    return wrapper


FILTER_OPERATORS = {
    '$eq': ('=', operator.eq),
    '$ne': ('<>', _safe(operator.ne)),
    '$gt': ('>', _safe(operator.gt)),
    '$gte': ('>=', _safe(operator.ge)),
    '$lt': ('<', _safe(operator.lt)),
    '$lte': ('<=', _safe(operator.le)),
    '$in': ('IN', lambda value, operand: value is not None and value in operand),
    '$notIn': ('NOT IN', lambda value, operand: value is not None and value not in operand),
    '$like': ('LIKE', _like),
    '$null': ('IS NULL', lambda value, operand: value is None),
    '$notNull': ('IS NOT NULL', lambda value, operand: value is not None),
}


def parse_sort(sort: Any) -> List[Tuple[str, bool]]:
    """
    Parse a sort value into ``[(field, descending), ...]``.

    Example:
        >>> parse_sort('-age,name')
        [('age', True), ('name', False)]
    """
    if not sort:
        return []
    if isinstance(sort, str):
        sort = sort.split(',')
    parsed = []
    for item in sort:
        item = item.strip()
        if not item:
            continue
        if item.startswith('-'):
            parsed.append((item[1:], True))
        else:
            parsed.append((item.lstrip('+'), False))
    return parsed


def _find_parts(find: Optional[Mapping]) -> Tuple[Optional[Mapping], List[Tuple[str, bool]]]:
    if not find:
        return None, []
    if not isinstance(find, Mapping):
        raise SourceQueryError(f"Find options must be a mapping, got {type(find).__name__}")
    return find.get('filter'), parse_sort(find.get('sort'))


class RecordSource(ABC):
    """
    Contract between the exporter and whatever stores the records.

    Implementations must return records in a stable order for the same find
    options, so that increasing offsets walk the result set without
    gaps or repeats.
    """

    @abstractmethod
    def query(self,
              collection: Collection,
              find: Optional[Mapping] = None,
              limit: Optional[int] = None,
              offset: int = 0,
              appends: Iterable[str] = ()) -> List[dict]:
        """Return at most ``limit`` records starting at ``offset``."""
        pass


class ListSource(RecordSource):
    """
    In-memory record source.

    Records are kept per collection name and already carry their associations,
    so ``appends`` only has to be honoured by returning them. Records are
    returned as shallow copies in insertion order unless sorted.

    Example
    -------
    ::

        source = ListSource({'users': [
            {'id': 1, 'name': 'Aang', 'posts': [{'title': 'Air'}]},
            {'id': 2, 'name': 'Katara', 'posts': []},
        ]})
        source.query(users, {'filter': {'name': 'Aang'}}, limit=10)
    """

    def __init__(self, records: Optional[Mapping[str, Sequence[Mapping]]] = None):
        self._records: Dict[str, List[Mapping]] = {}
        for name, rows in (records or {}).items():
            self.add(name, rows)

    def add(self, collection_name: str, rows: Iterable[Mapping]) -> None:
        self._records.setdefault(collection_name, []).extend(rows)

    def _matches(self, record: Mapping, filter_spec: Optional[Mapping]) -> bool:
        if not filter_spec:
            return True
        for key, condition in filter_spec.items():
            if key == '$and':
                if not all(self._matches(record, sub) for sub in condition):
                    return False
            elif key == '$or':
                if not any(self._matches(record, sub) for sub in condition):
                    return False
            else:
                value = record.get(key)
                if not isinstance(condition, Mapping):
                    condition = {'$eq': condition}
                for op, operand in condition.items():
                    if op not in FILTER_OPERATORS:
                        raise SourceQueryError(f"Unsupported filter operator: {op}")
                    if not FILTER_OPERATORS[op][1](value, operand):
                        return False
        return True

    def query(self, collection, find=None, limit=None, offset=0, appends=()):
        filter_spec, sort = _find_parts(find)
        rows = [r for r in self._records.get(collection.name, []) if self._matches(r, filter_spec)]
        # stable sorts, least significant key first
        for name, descending in reversed(sort):
            present = [r for r in rows if r.get(name) is not None]
            missing = [r for r in rows if r.get(name) is None]
            present.sort(key=lambda r: r.get(name), reverse=descending)
            rows = present + missing if descending else missing + present
        end = None if limit is None else offset + limit
        return [dict(r) for r in rows[offset:end]]


class DatabaseSource(RecordSource):
    """
    Record source backed by a DB-API 2.0 connection.

    Each page is one ``SELECT ... ORDER BY ... LIMIT ... OFFSET ...`` over the
    collection's table (the collection name), ordered by the find ``sort`` and
    then the primary key. Each association named in ``appends`` is loaded with
    one extra query per page:

    * **belongs_to** - ``foreign_key`` on this table (default ``<name>_id``)
      matched against ``target_key`` (default: target primary key)
    * **has_one / has_many** - ``foreign_key`` on the target table
      (default ``<collection>_id``, singular) matched against ``source_key``
    * **belongs_to_many** - join table ``through`` with ``foreign_key``
      (towards this table) and ``other_key`` (towards the target)

    Fields of kind json, multiple_select, checkboxes and plain attachment or
    region fields are stored as JSON text and decoded on the way out.

    Parameters
    ----------
    connection
        An open DB-API connection (sqlite3, psycopg2, ...).
    paramstyle : str, default 'named'
        Placeholder style of the driver. Queries are written with ``:name``
        placeholders and converted.

    Example
    -------
    ::

        import sqlite3
        source = DatabaseSource(sqlite3.connect('bending.db'))
        page = source.query(users, {'sort': ['-age']}, limit=10, offset=0, appends=['posts'])
    """

    def __init__(self, connection, paramstyle: str = 'named'):
        if paramstyle not in PARAMSTYLES:
            raise ValueError(f"Unsupported paramstyle: {paramstyle}")
        self.connection = connection
        self.paramstyle = paramstyle

    # ------------------------------------------------------------------ #
    # SQL helpers
    # ------------------------------------------------------------------ #

    def _execute(self, sql: str, bind_vars: Dict[str, Any], collection_name: str = None,
                 offset: int = None) -> List[dict]:
        query, params = bind_parameters(sql, bind_vars, self.paramstyle)
        cursor = self.connection.cursor()
        try:
            cursor.execute(query, params)
            columns = [col[0] for col in cursor.description]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]
        except Exception as e:
            logger.error(
                f"Error querying '{collection_name}'\n"
                f"SQL: {query}\n"
                f"Parameters: {bind_vars}"
            )
            raise SourceQueryError(f"Query on '{collection_name}' failed: {e}",
                                   collection=collection_name, offset=offset) from e
        finally:
            cursor.close()

    @staticmethod
    def _bind(params: Dict[str, Any], value: Any) -> str:
        name = f'p{len(params)}'
        params[name] = value
        return f':{name}'

    def _column(self, collection: Collection, name: str, alias: str = None) -> str:
        field = collection.fields.get(name)
        if field is None or field.is_association:
            raise SourceQueryError(f"'{name}' is not a column of '{collection.name}'",
                                   collection=collection.name)
        try:
            column = quote_identifier(name)
        except ValueError as e:
            raise SourceQueryError(str(e), collection=collection.name) from e
        return f'{alias}.{column}' if alias else column

    def _where(self, collection: Collection, filter_spec: Optional[Mapping],
               params: Dict[str, Any], alias: str = None) -> str:
        if not filter_spec:
            return ''
        clauses = []
        for key, condition in filter_spec.items():
            if key in ('$and', '$or'):
                parts = [self._where(collection, sub, params, alias) for sub in condition]
                parts = [p for p in parts if p]
                if parts:
                    joiner = ' AND ' if key == '$and' else ' OR '
                    clauses.append('(' + joiner.join(parts) + ')')
                continue
            column = self._column(collection, key, alias)
            if not isinstance(condition, Mapping):
                condition = {'$eq': condition}
            for op, operand in condition.items():
                if op not in FILTER_OPERATORS:
                    raise SourceQueryError(f"Unsupported filter operator: {op}",
                                           collection=collection.name)
                sql_op = FILTER_OPERATORS[op][0]
                if op in ('$null', '$notNull'):
                    clauses.append(f'{column} {sql_op}')
                elif op == '$eq' and operand is None:
                    clauses.append(f'{column} IS NULL')
                elif op in ('$in', '$notIn'):
                    values = list(operand)
                    if not values:
                        clauses.append('1 = 0' if op == '$in' else '1 = 1')
                    else:
                        placeholders = ', '.join(self._bind(params, v) for v in values)
                        clauses.append(f'{column} {sql_op} ({placeholders})')
                else:
                    clauses.append(f'{column} {sql_op} {self._bind(params, operand)}')
        return ' AND '.join(clauses)

    @staticmethod
    def _stored_fields(collection: Collection) -> List[str]:
        return [f.name for f in collection.fields.values() if not f.is_association]

    @staticmethod
    def _decode(collection: Collection, row: dict) -> dict:
        for name, value in row.items():
            field = collection.fields.get(name)
            if field is not None and field.kind in JSON_KINDS and isinstance(value, str):
                try:
                    row[name] = json.loads(value)
                except ValueError:
                    pass
        return row

    @staticmethod
    def _singular(name: str) -> str:
        return name[:-1] if name.endswith('s') else name

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def query(self, collection, find=None, limit=None, offset=0, appends=()):
        filter_spec, sort = _find_parts(find)
        appends = [collection.get_field(name) for name in appends]

        columns = self._stored_fields(collection)
        for association in appends:
            if association.association_type == FieldKind.BELONGS_TO:
                fk = association.get('foreign_key', f'{association.name}_id')
                if fk not in columns:
                    columns.append(fk)

        params: Dict[str, Any] = {}
        select_list = ', '.join(quote_identifier(c) for c in columns)
        sql = f'SELECT {select_list} FROM {quote_identifier(collection.name)}'
        where = self._where(collection, filter_spec, params)
        if where:
            sql += f' WHERE {where}'
        order = [f'{self._column(collection, name)} {"DESC" if desc else "ASC"}' for name, desc in sort]
        order.append(f'{quote_identifier(collection.primary_key)} ASC')
        sql += ' ORDER BY ' + ', '.join(order)
        if limit is not None:
            sql += f' LIMIT {self._bind(params, int(limit))} OFFSET {self._bind(params, int(offset))}'

        rows = [self._decode(collection, row)
                for row in self._execute(sql, params, collection.name, offset)]
        for association in appends:
            self._load_association(collection, association, rows)
        return rows

    def _select_target(self, target: Collection, key_column: str, keys: List[Any],
                       extra_select: str = '', join: str = '', alias: str = 't') -> List[dict]:
        params: Dict[str, Any] = {}
        select_list = ', '.join(f'{alias}.{quote_identifier(c)}' for c in self._stored_fields(target))
        placeholders = ', '.join(self._bind(params, k) for k in keys)
        sql = (f'SELECT {select_list}{extra_select} FROM {quote_identifier(target.name)} {alias}{join}'
               f' WHERE {key_column} IN ({placeholders})'
               f' ORDER BY {alias}.{quote_identifier(target.primary_key)} ASC')
        return [self._decode(target, row) for row in self._execute(sql, params, target.name)]

    def _load_association(self, collection: Collection, association: FieldDescriptor,
                          rows: List[dict]) -> None:
        kind = association.association_type
        if kind is None:
            raise SourceQueryError(f"'{association.name}' is not an association of '{collection.name}'",
                                   collection=collection.name)
        target = collection.target_of(association)
        name = association.name

        if kind == FieldKind.BELONGS_TO:
            fk = association.get('foreign_key', f'{name}_id')
            target_key = association.get('target_key', target.primary_key)
            key_column = self._column(target, target_key, alias='t')
            keys = list(dict.fromkeys(r[fk] for r in rows if r.get(fk) is not None))
            related = {}
            if keys:
                for item in self._select_target(target, key_column, keys):
                    related[item[target_key]] = item
            for row in rows:
                row[name] = related.get(row.get(fk))
            return

        source_key = association.get('source_key', collection.primary_key)
        keys = list(dict.fromkeys(r[source_key] for r in rows if r.get(source_key) is not None))
        grouped = defaultdict(list)

        if kind in (FieldKind.HAS_ONE, FieldKind.HAS_MANY):
            fk = association.get('foreign_key', f'{self._singular(collection.name)}_id')
            if keys:
                items = self._select_target(
                    target, f't.{quote_identifier(fk)}', keys,
                    extra_select=f', t.{quote_identifier(fk)} AS _sb_owner')
                for item in items:
                    grouped[item.pop('_sb_owner')].append(item)
        elif kind == FieldKind.BELONGS_TO_MANY:
            through = association.get('through')
            if not through:
                raise SourceQueryError(f"Association '{name}' needs a 'through' table",
                                       collection=collection.name)
            fk = association.get('foreign_key', f'{self._singular(collection.name)}_id')
            other_key = association.get('other_key', f'{self._singular(target.name)}_id')
            target_key = association.get('target_key', target.primary_key)
            target_column = self._column(target, target_key, alias='t')
            if keys:
                join = (f' JOIN {quote_identifier(through)} j'
                        f' ON j.{quote_identifier(other_key)} = {target_column}')
                items = self._select_target(
                    target, f'j.{quote_identifier(fk)}', keys,
                    extra_select=f', j.{quote_identifier(fk)} AS _sb_owner', join=join)
                for item in items:
                    grouped[item.pop('_sb_owner')].append(item)
        else:
            raise SourceQueryError(f"Unsupported association type: {kind}", collection=collection.name)

        for row in rows:
            items = grouped.get(row.get(source_key), [])
            if kind == FieldKind.HAS_ONE:
                row[name] = items[0] if items else None
            else:
                row[name] = items
