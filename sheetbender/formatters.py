# sheetbender/formatters.py
"""
Value formatting rules, dispatched on field kind.

A rule is a plain function ``rule(field, value, ctx) -> cell`` where ``field``
is the FieldDescriptor, ``value`` the raw stored value and ``ctx`` the
FormatContext of the run. Rules are kept in a FormatterRegistry keyed by
field kind; kinds without a rule fall back to :func:`passthrough`.

Custom kinds
------------
::

    registry = FormatterRegistry()

    @registry.rule('bending_style')
    def format_bending_style(field, value, ctx):
        return f"{field.get('element')}.{value}"
"""

import copy
import json
import logging
from collections.abc import Mapping
from typing import Any, Callable, Dict, Optional

from .defaults import settings
from .exceptions import FormatError
from .fields import FieldDescriptor, FieldKind
from .options import field_names_from, option_labels, resolve_options
from .timezones import format_instant, resolve_timezone
from .utils import as_list, is_native_cell, to_string

logger = logging.getLogger(__name__)
__all__ = ['FormatContext', 'FormatterRegistry', 'passthrough', 'default_registry']

Rule = Callable[[FieldDescriptor, Any, Optional['FormatContext']], Any]


class FormatContext:
    """
    Run-wide values the formatting rules may need.

    Parameters
    ----------
    timezone : str, optional
        Timezone supplied by the request (used by date fields in 'client' mode).
    default_timezone : str, optional
        System default timezone. Defaults to settings['default_timezone'].
    catalog : Catalog, optional
        Used to find the title field of association targets.
    label_delimiter, association_delimiter, region_delimiter : str, optional
        Join strings; default to the matching settings.
    column : ResolvedColumn, optional
        The column being formatted. Set per column with :meth:`for_column`.
    """

    def __init__(self,
                 timezone: Optional[str] = None,
                 default_timezone: Optional[str] = None,
                 catalog=None,
                 label_delimiter: Optional[str] = None,
                 association_delimiter: Optional[str] = None,
                 region_delimiter: Optional[str] = None,
                 column=None):
        self.timezone = timezone
        self.default_timezone = default_timezone or settings.get('default_timezone') or '+00:00'
        self.catalog = catalog
        self.label_delimiter = label_delimiter if label_delimiter is not None \
            else settings.get('label_delimiter', ',')
        self.association_delimiter = association_delimiter if association_delimiter is not None \
            else settings.get('association_delimiter', ',')
        self.region_delimiter = region_delimiter if region_delimiter is not None \
            else settings.get('region_delimiter', '/')
        self.column = column

    def for_column(self, column) -> 'FormatContext':
        """Return a copy bound to one column."""
        ctx = copy.copy(self)
        ctx.column = column
        return ctx


def passthrough(field: FieldDescriptor, value: Any, ctx: Optional[FormatContext] = None) -> Any:
    """Fallback rule: numbers and booleans stay typed, everything else becomes text."""
    if value is None:
        return None
    if is_native_cell(value):
        return value
    return to_string(value)


def format_json(field, value, ctx=None):
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, separators=(',', ':'), default=to_string)


def format_options(field, value, ctx=None):
    if value is None:
        return None
    names = field_names_from(field.get('field_names'))
    resolved = resolve_options(value, field.get('enum') or [], names)
    delimiter = ctx.label_delimiter if ctx else settings.get('label_delimiter', ',')
    return delimiter.join(to_string(label) for label in option_labels(resolved, names))


def format_date(field, value, ctx=None):
    """Render a date in the timezone picked for the field (see timezones.resolve_timezone)."""
    if value is None or value == '':
        return None
    tz = resolve_timezone(field.get('timezone'),
                          context_timezone=ctx.timezone if ctx else None,
                          default_timezone=ctx.default_timezone if ctx else None,
                          gmt=bool(field.get('gmt')))
    return format_instant(value, tz, show_time=bool(field.get('show_time')))


def _title_field(field: FieldDescriptor, ctx: Optional[FormatContext], default: str = 'id') -> str:
    title_field = field.get('title_field')
    if title_field:
        return title_field
    if ctx is not None and ctx.catalog is not None and field.target:
        target = ctx.catalog.get(field.target)
        if target is not None:
            return target.title_field
    return default


def format_association(field, value, ctx=None):
    """Show related records by their title field; lists are joined in record order."""
    if value is None:
        return None
    title_field = _title_field(field, ctx)
    if isinstance(value, Mapping):
        return passthrough(field, value.get(title_field), ctx)

    parts = []
    for item in as_list(value):
        text = to_string(item.get(title_field) if isinstance(item, Mapping) else item)
        if text != '':
            parts.append(text)
    delimiter = ctx.association_delimiter if ctx else settings.get('association_delimiter', ',')
    return delimiter.join(parts)


def format_attachment(field, value, ctx=None):
    if value is None:
        return None
    url_field = field.get('url_field', 'url')
    urls = []
    for item in as_list(value):
        url = item.get(url_field) if isinstance(item, Mapping) else item
        if url:
            urls.append(to_string(url))
    delimiter = ctx.association_delimiter if ctx else settings.get('association_delimiter', ',')
    return delimiter.join(urls)


def format_region(field, value, ctx=None):
    """Join the levels of a cascaded region, e.g. province/city/district."""
    if value is None:
        return None
    title_field = _title_field(field, ctx, default='name')
    levels = []
    for item in as_list(value):
        level = item.get(title_field) if isinstance(item, Mapping) else item
        if level not in (None, ''):
            levels.append(to_string(level))
    delimiter = ctx.region_delimiter if ctx else settings.get('region_delimiter', '/')
    return delimiter.join(levels)


def format_boolean(field, value, ctx=None):
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    return to_string(value)


BUILTIN_RULES: Dict[str, Rule] = {
    FieldKind.JSON: format_json,
    FieldKind.BOOLEAN: format_boolean,
    FieldKind.ATTACHMENT: format_attachment,
    FieldKind.REGION: format_region,
}
BUILTIN_RULES.update({kind: format_options for kind in FieldKind.CHOICES})
BUILTIN_RULES.update({kind: format_date for kind in FieldKind.DATES})
BUILTIN_RULES.update({kind: format_association for kind in FieldKind.ASSOCIATIONS})


class FormatterRegistry:
    """
    Mapping of field kind to formatting rule.

    Parameters
    ----------
    include_builtins : bool, default True
        Start with the built-in rules (json, select kinds, date kinds,
        association kinds, attachment, region, boolean).

    Example
    -------
    ::

        registry = FormatterRegistry()
        registry.register('percent', lambda field, value, ctx: f"{value:.0%}")

        registry.format(FieldDescriptor('rate', 'percent'), 0.25)   # '25%'
        registry.format(FieldDescriptor('age', 'integer'), 12)      # 12
    """

    def __init__(self, include_builtins: bool = True):
        self._rules: Dict[str, Rule] = dict(BUILTIN_RULES) if include_builtins else {}

    def register(self, kind: str, rule: Optional[Rule] = None):
        """
        Register a rule for a kind, replacing any existing one.

        Can be called directly or used as a decorator via :meth:`rule`.
        """
        if rule is None:
            return self.rule(kind)
        if not callable(rule):
            raise TypeError(f"Formatting rule for '{kind}' must be callable")
        self._rules[kind] = rule
        logger.debug(f"Registered formatting rule for kind '{kind}'")
        return rule

    def rule(self, kind: str) -> Callable[[Rule], Rule]:
        """Decorator form of :meth:`register`."""
        def decorator(func: Rule) -> Rule:
            return self.register(kind, func)
        return decorator

    def unregister(self, kind: str) -> None:
        self._rules.pop(kind, None)

    def get(self, kind: str) -> Rule:
        return self._rules.get(kind, passthrough)

    def kinds(self):
        return sorted(self._rules)

    def __contains__(self, kind: str) -> bool:
        return kind in self._rules

    def apply(self, field: FieldDescriptor, value: Any, ctx: Optional[FormatContext] = None) -> Any:
        """
        Format a value, raising FormatError if the rule fails.
        """
        rule = self.get(field.kind)
        try:
            return rule(field, value, ctx)
        except Exception as e:
            raise FormatError(
                f"Could not format {value!r} for field '{field.name}' ({field.kind}): {e}",
                field=field.name, kind=field.kind, value=value
            ) from e

    def format(self, field: FieldDescriptor, value: Any, ctx: Optional[FormatContext] = None) -> Any:
        """
        Format a value; on failure log a warning and return its plain string form.
        """
        try:
            return self.apply(field, value, ctx)
        except FormatError as e:
            column = getattr(ctx, 'column', None) if ctx is not None else None
            where = f" in column '{column.spec.dotted}'" if column is not None else ''
            logger.warning(f"{e}{where}; using raw value")
            return to_string(value)


default_registry = FormatterRegistry()
