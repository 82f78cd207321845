# sheetbender/__init__.py
"""
Sheetbender - tabular export of collection records

Turns the records of a collection, with their associations, into a sheet:
- Pages through any record source in fixed-size chunks
- Gives each related record of a to-many association its own row
- Formats cells per field kind (select labels, dates in the right timezone,
  JSON, attachments, regions, related records) with pluggable rules
- Streams rows to Excel (openpyxl), CSV or memory
- YAML configuration for settings and named export definitions

Basic usage::

    import sheetbender
    from sheetbender import Catalog, ExportJob, DatabaseSource, RequestContext

    catalog = Catalog()
    catalog.define('posts', [{'name': 'title', 'kind': 'string'}], title_field='title')
    users = catalog.define('users', [
        {'name': 'name', 'kind': 'string', 'title': 'Name'},
        {'name': 'posts', 'kind': 'has_many', 'options': {'target': 'posts', 'foreign_key': 'user_id'}},
    ])

    job = ExportJob(users, ['name', 'posts.title'], chunk_size=100)
    sheetbender.export_to_excel(job, DatabaseSource(conn), 'users.xlsx',
                                RequestContext(timezone='+08:00'))
"""

__version__ = '0.1.0'

from .config import set_config_file, get_setting, get_export
from .exceptions import (ExportError, SourceQueryError, ColumnResolutionError,
                         FormatError, ExportCancelled)
from .fields import FieldKind, FieldDescriptor, Collection, Catalog, ColumnSpec
from .options import FieldNames, resolve_options
from .timezones import resolve_timezone
from .formatters import FormatContext, FormatterRegistry, default_registry
from .sources import RecordSource, ListSource, DatabaseSource
from .exporter import RequestContext, ExportJob, Exporter, export_to_excel, export_to_csv
from .logging_utils import setup_logging, errors_logged, cleanup_old_logs
from . import writers

__all__ = [
    'set_config_file',
    'get_setting',
    'get_export',
    'ExportError',
    'SourceQueryError',
    'ColumnResolutionError',
    'FormatError',
    'ExportCancelled',
    'FieldKind',
    'FieldDescriptor',
    'Collection',
    'Catalog',
    'ColumnSpec',
    'FieldNames',
    'resolve_options',
    'resolve_timezone',
    'FormatContext',
    'FormatterRegistry',
    'default_registry',
    'RecordSource',
    'ListSource',
    'DatabaseSource',
    'RequestContext',
    'ExportJob',
    'Exporter',
    'export_to_excel',
    'export_to_csv',
    'writers',
    'setup_logging',
    'errors_logged',
    'cleanup_old_logs',
]
