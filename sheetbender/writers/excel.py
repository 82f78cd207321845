# sheetbender/writers/excel.py
"""
Excel writer for export rows using openpyxl.
"""
import io
import logging
import os
from pathlib import Path
from typing import Any, List, Optional, Union

from openpyxl import Workbook
from openpyxl.cell import WriteOnlyCell
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from .base import SheetWriter
from ..defaults import settings

logger = logging.getLogger(__name__)


class ExcelSheetWriter(SheetWriter):
    """
    Streaming XLSX writer.

    ExcelSheetWriter uses an openpyxl write-only workbook, so rows are
    serialized as they arrive instead of being held as cell objects for the
    whole export. The workbook is saved by ``finalize()``: to ``file`` when
    one is given (through a ``.part`` file that is renamed into place), or to
    bytes that are returned.

    Parameters
    ----------
    file : str or Path, optional
        Output filename (.xlsx). If None, finalize() returns the workbook bytes.
    sheet_name : str, optional
        Worksheet name, default settings['default_sheet_name'] ('Data').
    header : bool, default True
        Treat the first appended row as the header: bold font, and column
        widths sized from it.

    Notes
    -----
    * Numbers and booleans stay native cells; dates arrive already rendered as text
    * Characters Excel cannot store (control characters) are stripped from text
    * Column widths are capped at 60 characters

    Example
    -------
    ::

        writer = ExcelSheetWriter('team_avatar.xlsx', sheet_name='Members')
        writer.append(['Name', 'Element'])
        writer.append(['Toph', 'Earth'])
        writer.finalize()
    """

    def __init__(self,
                 file: Optional[Union[str, Path]] = None,
                 sheet_name: Optional[str] = None,
                 header: bool = True):
        super().__init__()
        self.output_path = Path(file) if file is not None else None
        self.sheet_name = sheet_name or settings.get('default_sheet_name', 'Data')
        self.header = header
        self.workbook = Workbook(write_only=True)
        self.worksheet = self.workbook.create_sheet(self.sheet_name)
        self._header_font = Font(bold=True)

    @property
    def part_path(self) -> Optional[Path]:
        if self.output_path is None:
            return None
        return self.output_path.with_name(self.output_path.name + '.part')

    @staticmethod
    def _clean(value: Any) -> Any:
        if isinstance(value, str):
            return ILLEGAL_CHARACTERS_RE.sub('', value)
        return value

    def _append(self, row: List[Any]) -> None:
        values = [self._clean(value) for value in row]

        if self.header and self._row_num == 0:
            # write-only sheets accept column widths only before the first row
            for col_idx, value in enumerate(values, 1):
                width = len(str(value)) if value is not None else 0
                self.worksheet.column_dimensions[get_column_letter(col_idx)].width = min(max(width + 2, 10), 60)
            cells = []
            for value in values:
                cell = WriteOnlyCell(self.worksheet, value=value)
                cell.font = self._header_font
                cells.append(cell)
            self.worksheet.append(cells)
        else:
            self.worksheet.append(values)

    def _finalize(self) -> Union[Path, bytes]:
        if self.output_path is None:
            buffer = io.BytesIO()
            self.workbook.save(buffer)
            return buffer.getvalue()

        self.workbook.save(self.part_path)
        os.replace(self.part_path, self.output_path)
        logger.info(f"Saved workbook: {self.output_path}")
        return self.output_path

    def _discard(self) -> None:
        self.workbook.close()
        if self.output_path is not None and self.part_path.exists():
            self.part_path.unlink()
