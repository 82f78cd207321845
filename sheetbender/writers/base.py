# sheetbender/writers/base.py
"""
Base class for sheet writers.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Sequence

logger = logging.getLogger(__name__)


class SheetWriter(ABC):
    """
    Abstract, append-only sink for rows of typed cells.

    Rows are kept in the order they are appended. The first row is normally
    the header. A writer is used for exactly one export: once finalized or
    discarded it rejects further rows.

    Used as a context manager, the writer finalizes on a clean exit and
    discards on an exception::

        with ExcelSheetWriter('out.xlsx') as writer:
            writer.append(['Name', 'Age'])
            writer.append(['Toph', 12])

    Subclasses implement ``_append()`` and ``_finalize()``, and ``_discard()``
    when they hold partial output on disk.
    """

    OPEN = 'open'
    FINALIZED = 'finalized'
    DISCARDED = 'discarded'

    def __init__(self):
        self._row_num = 0
        self._state = self.OPEN

    @property
    def row_count(self) -> int:
        """Number of rows appended, header included."""
        return self._row_num

    @property
    def state(self) -> str:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == self.OPEN

    def append(self, row: Sequence[Any]) -> None:
        """Append one row of cells."""
        if self._state != self.OPEN:
            raise RuntimeError(f"Cannot append to a {self._state} writer")
        self._append(list(row))
        self._row_num += 1

    def finalize(self) -> Any:
        """Complete the artifact and return it."""
        if self._state != self.OPEN:
            raise RuntimeError(f"Cannot finalize a {self._state} writer")
        try:
            result = self._finalize()
        except Exception as e:
            logger.error(f"Error finalizing {self.__class__.__name__}: {e}")
            self.discard()
            raise
        self._state = self.FINALIZED
        logger.info(f"{self.__class__.__name__} finalized with {self._row_num} rows")
        return result

    def discard(self) -> None:
        """Drop everything written so far. Safe to call more than once."""
        if self._state != self.OPEN:
            return
        self._state = self.DISCARDED
        self._discard()
        logger.info(f"{self.__class__.__name__} discarded after {self._row_num} rows")

    @abstractmethod
    def _append(self, row: List[Any]) -> None:
        pass

    @abstractmethod
    def _finalize(self) -> Any:
        pass

    def _discard(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            self.discard()
        elif self.is_open:
            self.finalize()


class MemorySheetWriter(SheetWriter):
    """Keeps rows in a list; ``finalize()`` returns that list."""

    def __init__(self):
        super().__init__()
        self.rows: List[List[Any]] = []

    def _append(self, row: List[Any]) -> None:
        self.rows.append(row)

    def _finalize(self) -> List[List[Any]]:
        return self.rows

    def _discard(self) -> None:
        self.rows = []
