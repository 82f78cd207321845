# sheetbender/options.py
"""
Option resolution for select and multi-select fields.

Select fields declare their choices as an option tree::

    [
        {'value': 'fire', 'label': 'Fire Nation', 'color': 'red'},
        {'value': 'earth', 'label': 'Earth Kingdom', 'children': [
            {'value': 'ba_sing_se', 'label': 'Ba Sing Se'},
        ]},
    ]

Stored values are matched against every node of the tree, at any depth.
A stored value that no longer matches an option is echoed back unchanged so
that stale data still shows up in an export.
"""

from collections import namedtuple
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Sequence

from .utils import as_list

__all__ = ['FieldNames', 'DEFAULT_FIELD_NAMES', 'flatten_options',
           'resolve_options', 'option_labels']

FieldNames = namedtuple('FieldNames', ['value', 'label', 'color', 'children'],
                        defaults=['value', 'label', 'color', 'children'])
FieldNames.__doc__ = """
Keys used to read option nodes. Immutable; pass a new instance to use aliases.

Example:
    FieldNames(value='code', label='name')
"""

DEFAULT_FIELD_NAMES = FieldNames()


def field_names_from(config: Optional[Dict[str, str]]) -> FieldNames:
    """
    Build FieldNames from a field's ``field_names`` option.

    ``options`` is accepted as an alias of ``children``.
    """
    if not config:
        return DEFAULT_FIELD_NAMES
    if isinstance(config, FieldNames):
        return config
    config = dict(config)
    if 'options' in config and 'children' not in config:
        config['children'] = config.pop('options')
    known = {key: val for key, val in config.items() if key in FieldNames._fields}
    return FieldNames(**known)


def flatten_options(options: Optional[Sequence[Any]],
                    field_names: FieldNames = DEFAULT_FIELD_NAMES) -> List[Any]:
    """
    Flatten an option tree depth-first.

    A node's children are flattened first, then a shallow copy of the node
    itself is appended, so every node at every depth becomes a candidate.

    Example:
        >>> flatten_options([{'value': 'a', 'children': [{'value': 'a1'}]}, {'value': 'b'}])
        [{'value': 'a1'}, {'value': 'a', 'children': [{'value': 'a1'}]}, {'value': 'b'}]
    """
    flat = []
    for node in options or ():
        if isinstance(node, Mapping):
            children = node.get(field_names.children)
            if isinstance(children, (list, tuple)):
                flat.extend(flatten_options(children, field_names))
            flat.append(dict(node))
        else:
            flat.append(node)
    return flat


def _same_value(a: Any, b: Any) -> bool:
    """Equality that also requires the same type, so True and 1.0 do not match 1."""
    return type(a) is type(b) and a == b


def _selected_value(item: Any, field_names: FieldNames) -> Any:
    if isinstance(item, Mapping):
        return item.get(field_names.value)
    return item


def resolve_options(selected: Any,
                    options: Optional[Sequence[Any]],
                    field_names: FieldNames = DEFAULT_FIELD_NAMES) -> List[Any]:
    """
    Match selected values against an option tree.

    Args:
        selected: a scalar, a mapping holding the value key, or a list of either.
            None entries are ignored.
        options: option tree (see module docstring)
        field_names: keys used for value and children lookups

    Returns:
        One entry per non-None selection, in selection order: the first matching
        option (a copy), or the selected item itself when nothing matches.

    Example:
        >>> opts = [{'value': '123', 'label': 'Label123'}]
        >>> resolve_options(['123', '999'], opts)
        [{'value': '123', 'label': 'Label123'}, '999']
    """
    candidates = flatten_options(options, field_names)
    items = [item for item in as_list(selected) if item is not None]

    resolved = []
    for item in items:
        value = _selected_value(item, field_names)
        match = None
        for candidate in candidates:
            if isinstance(candidate, Mapping) and _same_value(candidate.get(field_names.value), value):
                match = candidate
                break
        resolved.append(match if match is not None else item)
    return resolved


def option_labels(resolved: Sequence[Any],
                  field_names: FieldNames = DEFAULT_FIELD_NAMES) -> List[Any]:
    """
    Display labels for resolved options.

    Options give their label (or their value when they have no label); echoed
    raw selections are returned as they are.
    """
    labels = []
    for option in resolved:
        if isinstance(option, Mapping):
            if field_names.label in option:
                labels.append(option[field_names.label])
            else:
                labels.append(option.get(field_names.value))
        else:
            labels.append(option)
    return labels
