# sheetbender/fields.py
"""
Field descriptors, collections and column definitions.

A :class:`Collection` declares the fields of one kind of record. Association
fields point at another collection by name, so collections are grouped in a
:class:`Catalog` that can resolve those names. A :class:`ColumnSpec` names a
field by path (``['name']`` or ``['posts', 'title']``) and is resolved against
the root collection before an export starts.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from .exceptions import ColumnResolutionError

logger = logging.getLogger(__name__)
__all__ = ['FieldKind', 'FieldDescriptor', 'Collection', 'Catalog',
           'ColumnSpec', 'ResolvedColumn', 'resolve_column']


class FieldKind:
    """
    Field kind identifiers.

    The kind selects the formatting rule used for a field's values. Custom kinds
    are plain strings registered with a FormatterRegistry.

    Example:
        >>> FieldDescriptor('born', FieldKind.DATE, show_time=False)
        >>> FieldDescriptor('posts', FieldKind.HAS_MANY, target='posts')
    """
    STRING = 'string'
    TEXT = 'text'
    INTEGER = 'integer'
    FLOAT = 'float'
    BOOLEAN = 'boolean'
    DATE = 'date'
    DATETIME = 'datetime'
    CREATED_AT = 'created_at'
    UPDATED_AT = 'updated_at'
    SELECT = 'select'
    RADIO = 'radio'
    MULTIPLE_SELECT = 'multiple_select'
    CHECKBOXES = 'checkboxes'
    JSON = 'json'
    ATTACHMENT = 'attachment'
    REGION = 'region'
    BELONGS_TO = 'belongs_to'
    HAS_ONE = 'has_one'
    HAS_MANY = 'has_many'
    BELONGS_TO_MANY = 'belongs_to_many'

    ASSOCIATIONS = (BELONGS_TO, HAS_ONE, HAS_MANY, BELONGS_TO_MANY)
    TO_MANY = (HAS_MANY, BELONGS_TO_MANY)
    DATES = (DATE, DATETIME, CREATED_AT, UPDATED_AT)
    CHOICES = (SELECT, RADIO, MULTIPLE_SELECT, CHECKBOXES)


class FieldDescriptor:
    """
    Declared field of a collection: name, kind and kind-specific options.

    Options by kind
    ---------------
    * **date kinds** - ``show_time`` (bool), ``gmt`` (bool), ``timezone``
      (``'server'``, ``'client'``, a fixed offset like ``'+08:00'`` or a zone name)
    * **select kinds** - ``enum`` (option tree) and ``field_names`` (key aliases)
    * **associations** - ``target`` (collection name), ``title_field`` and the key
      columns used by DatabaseSource: ``foreign_key``, ``source_key``,
      ``target_key``, ``through``, ``other_key``
    * **attachment** - ``url_field`` (default ``'url'``); ``target`` optional
    * **region** - ``title_field`` (default ``'name'``); ``target`` optional

    Parameters
    ----------
    name : str
        Field name as it appears on records.
    kind : str, default 'string'
        One of the FieldKind identifiers or a custom kind.
    title : str, optional
        Human readable title, used for headers when a column has none.
    options : dict, optional
        Kind-specific options. Keyword arguments are merged into it.
    """

    def __init__(self,
                 name: str,
                 kind: str = FieldKind.STRING,
                 title: Optional[str] = None,
                 options: Optional[Dict[str, Any]] = None,
                 **kwargs):
        if not name:
            raise ValueError("Field name is required")
        self.name = name
        self.kind = kind or FieldKind.STRING
        self.title = title
        self.options = dict(options or {})
        self.options.update(kwargs)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FieldDescriptor':
        """Build a descriptor from ``{'name': ..., 'kind': ..., 'title': ..., **options}``."""
        data = dict(data)
        name = data.pop('name', None)
        kind = data.pop('kind', None) or data.pop('type', FieldKind.STRING)
        title = data.pop('title', None)
        options = data.pop('options', None)
        return cls(name, kind, title, options, **data)

    def get(self, key: str, default: Any = None) -> Any:
        """Shortcut for ``self.options.get``."""
        return self.options.get(key, default)

    @property
    def association_type(self) -> Optional[str]:
        """The association kind, or None when the field holds plain values."""
        if self.kind in FieldKind.ASSOCIATIONS:
            return self.kind
        if self.kind in (FieldKind.ATTACHMENT, FieldKind.REGION) and self.options.get('target'):
            return self.options.get('association_type', FieldKind.BELONGS_TO_MANY)
        return None

    @property
    def is_association(self) -> bool:
        return self.association_type is not None

    @property
    def is_to_many(self) -> bool:
        if self.kind in (FieldKind.ATTACHMENT, FieldKind.REGION):
            return True
        return self.association_type in FieldKind.TO_MANY

    @property
    def target(self) -> Optional[str]:
        return self.options.get('target')

    def __repr__(self) -> str:
        return f"FieldDescriptor({self.name!r}, {self.kind!r})"


class Collection:
    """
    A named set of field descriptors.

    Parameters
    ----------
    name : str
        Collection (table) name.
    fields : iterable of FieldDescriptor or dict
        Declared fields, in declaration order.
    primary_key : str, default 'id'
        Primary key field. Declared implicitly as an integer field if missing.
    title_field : str, optional
        Field used to display a record of this collection inside another
        collection's association column. Defaults to the primary key.
    catalog : Catalog, optional
        Catalog used to resolve association targets.
    """

    def __init__(self,
                 name: str,
                 fields: Iterable[Union[FieldDescriptor, Dict[str, Any]]] = (),
                 primary_key: str = 'id',
                 title_field: Optional[str] = None,
                 catalog: Optional['Catalog'] = None):
        self.name = name
        self.primary_key = primary_key
        self.title_field = title_field or primary_key
        self.catalog = catalog
        self.fields: Dict[str, FieldDescriptor] = {}
        for field in fields:
            self.add_field(field)
        if primary_key not in self.fields:
            self.fields[primary_key] = FieldDescriptor(primary_key, FieldKind.INTEGER)

    def add_field(self, field: Union[FieldDescriptor, Dict[str, Any]]) -> FieldDescriptor:
        if isinstance(field, dict):
            field = FieldDescriptor.from_dict(field)
        self.fields[field.name] = field
        return field

    def get_field(self, name: str) -> FieldDescriptor:
        try:
            return self.fields[name]
        except KeyError:
            raise KeyError(f"Field '{name}' not found in collection '{self.name}'")

    def has_field(self, name: str) -> bool:
        return name in self.fields

    def associations(self) -> List[FieldDescriptor]:
        return [f for f in self.fields.values() if f.is_association]

    def target_of(self, field: Union[str, FieldDescriptor]) -> 'Collection':
        """Return the collection an association field points at."""
        if isinstance(field, str):
            field = self.get_field(field)
        if not field.target:
            raise KeyError(f"Field '{field.name}' of '{self.name}' has no target collection")
        if self.catalog is None:
            raise KeyError(f"Collection '{self.name}' is not part of a catalog")
        return self.catalog[field.target]

    def __repr__(self) -> str:
        return f"Collection({self.name!r}, fields={list(self.fields)})"


class Catalog:
    """
    Registry of collections, used to resolve association targets.

    Example
    -------
    ::

        catalog = Catalog()
        catalog.define('groups', [{'name': 'name'}], title_field='name')
        users = catalog.define('users', [
            FieldDescriptor('name'),
            FieldDescriptor('groups', FieldKind.BELONGS_TO_MANY, target='groups',
                            through='users_groups', foreign_key='user_id',
                            other_key='group_id'),
        ])
    """

    def __init__(self):
        self._collections: Dict[str, Collection] = {}

    def define(self, name: str, fields: Iterable[Union[FieldDescriptor, Dict[str, Any]]] = (),
               **kwargs) -> Collection:
        collection = Collection(name, fields, catalog=self, **kwargs)
        self._collections[name] = collection
        return collection

    def add(self, collection: Collection) -> Collection:
        collection.catalog = self
        self._collections[collection.name] = collection
        return collection

    def get(self, name: str, default: Any = None) -> Optional[Collection]:
        return self._collections.get(name, default)

    def __getitem__(self, name: str) -> Collection:
        try:
            return self._collections[name]
        except KeyError:
            raise KeyError(f"Collection '{name}' is not defined")

    def __contains__(self, name: str) -> bool:
        return name in self._collections

    def __iter__(self):
        return iter(self._collections.values())


class ColumnSpec:
    """
    A requested output column: a field path plus header titles.

    Parameters
    ----------
    path : str or sequence of str
        ``'name'``, ``['name']``, ``'posts.title'`` or ``['posts', 'title']``.
    default_title : str, default ''
        Header used when ``title`` is not given.
    title : str, optional
        Explicit header title.
    """

    def __init__(self, path: Union[str, Sequence[str]], default_title: str = '',
                 title: Optional[str] = None):
        if isinstance(path, str):
            path = path.split('.')
        self.path = tuple(path)
        if not self.path or not all(self.path):
            raise ColumnResolutionError(f"Invalid column path: {path!r}", path=path)
        self.default_title = default_title or ''
        self.title = title

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ColumnSpec':
        path = data.get('path') or data.get('data_index') or data.get('dataIndex')
        if not path:
            raise ColumnResolutionError(f"Column definition has no path: {data!r}")
        default_title = data.get('default_title', data.get('defaultTitle', ''))
        return cls(path, default_title, data.get('title'))

    @property
    def dotted(self) -> str:
        return '.'.join(self.path)

    def __repr__(self) -> str:
        return f"ColumnSpec({self.dotted!r})"


class ResolvedColumn:
    """
    A ColumnSpec bound to the field descriptors its path resolves to.

    Attributes
    ----------
    spec : ColumnSpec
    field : FieldDescriptor
        Descriptor whose formatting rule renders the cell. For ``posts.title``
        this is the ``title`` field of the posts collection.
    association : FieldDescriptor or None
        The association hopped through, if any.
    """

    def __init__(self, spec: ColumnSpec, field: FieldDescriptor,
                 association: Optional[FieldDescriptor] = None):
        self.spec = spec
        self.field = field
        self.association = association

    @property
    def path(self):
        return self.spec.path

    @property
    def root_name(self) -> str:
        return self.spec.path[0]

    @property
    def header(self) -> str:
        """Explicit title, else default title, else the field's title or name."""
        if self.spec.title:
            return self.spec.title
        if self.spec.default_title:
            return self.spec.default_title
        return self.field.title or self.field.name

    def __repr__(self) -> str:
        return f"ResolvedColumn({self.spec.dotted!r}, {self.field.kind!r})"


def resolve_column(collection: Collection, spec: ColumnSpec) -> ResolvedColumn:
    """
    Resolve a column path against a collection.

    Raises:
        ColumnResolutionError: if the path is longer than one association hop,
            names an undeclared field, or hops through a non-association field.
    """
    path = spec.path
    if len(path) > 2:
        raise ColumnResolutionError(
            f"Column '{spec.dotted}' traverses more than one association", path=path)

    if not collection.has_field(path[0]):
        raise ColumnResolutionError(
            f"Column '{spec.dotted}': field '{path[0]}' is not declared on '{collection.name}'",
            path=path)
    root = collection.get_field(path[0])
    if len(path) == 1:
        return ResolvedColumn(spec, root)

    if not root.is_association:
        raise ColumnResolutionError(
            f"Column '{spec.dotted}': '{path[0]}' is not an association", path=path)
    try:
        target = collection.target_of(root)
    except KeyError as e:
        raise ColumnResolutionError(f"Column '{spec.dotted}': {e.args[0]}", path=path) from e
    if not target.has_field(path[1]):
        raise ColumnResolutionError(
            f"Column '{spec.dotted}': field '{path[1]}' is not declared on '{target.name}'",
            path=path)
    return ResolvedColumn(spec, target.get_field(path[1]), association=root)
