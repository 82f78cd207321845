# sheetbender/expander.py
"""
Expansion of multi-valued associations into output rows.

A user with three posts exported with a ``posts.title`` column becomes three
rows; the user's own columns repeat on each of them. When two multi-valued
associations are exported (``posts.title`` and ``groups.name``) the rows are
their cross product. A record whose association is empty still yields one row.
"""

import itertools
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .fields import ResolvedColumn
from .utils import as_list

logger = logging.getLogger(__name__)
__all__ = ['ExpandedRow', 'expansion_dimensions', 'expand_record']


class ExpandedRow:
    """
    One output row of a record.

    Attributes
    ----------
    record : Mapping
        The originating record (shared by every row of its group).
    slices : dict
        For each exploded association, the single related record picked for this
        row, or None when the association was empty.
    """
    __slots__ = ('record', 'slices')

    def __init__(self, record: Mapping, slices: Optional[Dict[str, Any]] = None):
        self.record = record
        self.slices = slices or {}

    def is_exploded(self, name: str) -> bool:
        return name in self.slices

    def related(self, name: str) -> Any:
        """The related value for an association: this row's slice if exploded, else the raw value."""
        if name in self.slices:
            return self.slices[name]
        return self.record.get(name)

    def __repr__(self) -> str:
        return f"ExpandedRow({dict(self.record)!r}, slices={self.slices!r})"


def expansion_dimensions(columns: Iterable[ResolvedColumn]) -> List[str]:
    """
    Names of the to-many associations traversed by the columns, in order of
    first appearance and without duplicates.
    """
    names = []
    for column in columns:
        association = column.association
        if association is None or not association.is_to_many:
            continue
        if column.root_name not in names:
            names.append(column.root_name)
    return names


def expand_record(record: Mapping,
                  columns: Iterable[ResolvedColumn],
                  expand: bool = True) -> List[ExpandedRow]:
    """
    Expand a record into the rows that represent it.

    Args:
        record: the record, with its associations already loaded
        columns: the job's resolved columns
        expand: when False the record always gives exactly one row and
            multi-valued association cells are joined later on

    Returns:
        ``product(len(related) or 1 for each exploded association)`` rows.
        Related records keep the order the source returned them in.
    """
    if not expand:
        return [ExpandedRow(record)]

    names = expansion_dimensions(columns)
    if not names:
        return [ExpandedRow(record)]

    dimensions = []
    for name in names:
        related = as_list(record.get(name))
        dimensions.append(related or [None])

    return [ExpandedRow(record, dict(zip(names, combo)))
            for combo in itertools.product(*dimensions)]
