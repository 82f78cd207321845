# sheetbender/writers/csv.py

import csv
import io
import logging
import os
from pathlib import Path
from typing import Any, List, Optional, Union

from .base import SheetWriter
from ..defaults import settings
from ..utils import to_string

logger = logging.getLogger(__name__)


class CSVSheetWriter(SheetWriter):
    """
    CSV writer.

    Rows go to ``<file>.part`` and the file is moved into place by
    ``finalize()``, so an interrupted export never leaves a complete-looking
    CSV behind. Without a file the text is collected in memory and returned
    by ``finalize()``.
    """

    def __init__(self,
                 file: Optional[Union[str, Path]] = None,
                 encoding: str = 'utf-8',
                 null_string: Optional[str] = None,
                 **csv_kwargs):
        """
        Initialize CSV writer.

        Args:
            file: Output filename. If None, finalize() returns the CSV text
            encoding: File encoding
            null_string: String representation for null values
            **csv_kwargs: Additional arguments passed to csv.writer
        """
        super().__init__()
        self.output_path = Path(file) if file is not None else None
        self.encoding = encoding
        self.null_string = null_string if null_string is not None else settings.get('null_string', '')
        self._csv_kwargs = csv_kwargs
        self._file_obj = None
        self._writer = None

    @property
    def part_path(self) -> Optional[Path]:
        if self.output_path is None:
            return None
        return self.output_path.with_name(self.output_path.name + '.part')

    def to_string(self, obj: Any) -> str:
        """Convert a cell to text. Change settings['null_string'] to change null representation."""
        if obj is None:
            return self.null_string
        return to_string(obj)

    def _open(self) -> None:
        if self.output_path is None:
            self._file_obj = io.StringIO()
        else:
            self._file_obj = open(self.part_path, 'w', encoding=self.encoding, newline='')
        self._writer = csv.writer(self._file_obj, **self._csv_kwargs)

    def _append(self, row: List[Any]) -> None:
        if self._writer is None:
            self._open()
        self._writer.writerow([self.to_string(value) for value in row])

    def _finalize(self) -> Union[Path, str]:
        if self._writer is None:
            self._open()
        if self.output_path is None:
            return self._file_obj.getvalue()
        self._file_obj.close()
        os.replace(self.part_path, self.output_path)
        logger.info(f"Wrote {self._row_num} rows to {self.output_path}")
        return self.output_path

    def _discard(self) -> None:
        if self._file_obj is not None:
            self._file_obj.close()
        if self.output_path is not None and self.part_path.exists():
            self.part_path.unlink()
