# sheetbender/exceptions.py
"""
Exceptions raised by the export pipeline.

Only SourceQueryError, ColumnResolutionError and ExportCancelled ever reach the
caller of a run. FormatError is used to describe a cell that could not be
formatted; the exporter logs it and falls back to the raw value.
"""

from typing import Any, Optional


class ExportError(Exception):
    """Base class for all sheetbender errors."""


class SourceQueryError(ExportError):
    """A record source rejected or failed a page fetch."""

    def __init__(self, message: str, collection: Optional[str] = None,
                 offset: Optional[int] = None):
        super().__init__(message)
        self.collection = collection
        self.offset = offset


class ColumnResolutionError(ExportError, ValueError):
    """A column path does not resolve to a declared field of the collection."""

    def __init__(self, message: str, path: Any = None):
        super().__init__(message)
        self.path = path


class FormatError(ExportError):
    """A formatting rule failed for a single cell."""

    def __init__(self, message: str, field: Optional[str] = None,
                 kind: Optional[str] = None, value: Any = None):
        super().__init__(message)
        self.field = field
        self.kind = kind
        self.value = value


class ExportCancelled(ExportError):
    """The run was cancelled before it finished."""
