"""
Sheet writers: the sinks an export appends its rows to.

Every writer follows the same contract:

- ``append(row)`` adds one row of typed cells, in order
- ``finalize()`` completes the artifact and returns it
- ``discard()`` drops partial output after a failed or cancelled run

Supported formats:
- Memory: a list of rows (tests and in-process use)
- Excel: XLSX workbook through openpyxl
- CSV: comma-separated values

Example
-------
::
    from sheetbender.writers import ExcelSheetWriter

    writer = ExcelSheetWriter('users.xlsx', sheet_name='Users')
    writer.append(['Name', 'Age'])
    writer.append(['Aang', 112])
    writer.finalize()
"""

from .base import SheetWriter, MemorySheetWriter
from .excel import ExcelSheetWriter
from .csv import CSVSheetWriter

__all__ = ['SheetWriter', 'MemorySheetWriter', 'ExcelSheetWriter', 'CSVSheetWriter']
