# sheetbender/exporter.py
"""
Export jobs and the exporter that runs them.

An :class:`ExportJob` names the root collection, the columns and the find
options. An :class:`Exporter` runs a job once: it pulls pages from the
record source, expands each record into rows, formats every cell and appends
the rows to a sheet writer.

Example
-------
::

    from sheetbender import Catalog, ExportJob, Exporter, ListSource, RequestContext
    from sheetbender.writers import ExcelSheetWriter

    job = ExportJob(users, [
        {'path': ['name'], 'default_title': 'Name'},
        {'path': ['posts', 'title'], 'default_title': 'Post Title'},
    ], chunk_size=100, find={'filter': {'age': {'$gt': 9}}})

    exporter = Exporter(job, source, writer=ExcelSheetWriter('users.xlsx'))
    exporter.run(RequestContext(timezone='+08:00'))
"""

import logging
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from .chunks import iter_chunks
from .defaults import settings
from .exceptions import ColumnResolutionError, ExportCancelled, ExportError
from .expander import ExpandedRow, expand_record
from .fields import Catalog, Collection, ColumnSpec, ResolvedColumn, resolve_column
from .formatters import FormatContext, FormatterRegistry, default_registry
from .utils import as_list, to_string
from .writers import CSVSheetWriter, ExcelSheetWriter, MemorySheetWriter, SheetWriter

logger = logging.getLogger(__name__)
__all__ = ['RequestContext', 'ExportJob', 'Exporter', 'export_to_excel', 'export_to_csv']


class RequestContext:
    """
    Values supplied by the request that started the export.

    Parameters
    ----------
    timezone : str, optional
        The client's timezone, used by date fields in 'client' mode.
    **values
        Anything else a custom formatting rule may want (``ctx.get(key)``).
    """

    def __init__(self, timezone: Optional[str] = None, **values):
        self.timezone = timezone
        self._values = values

    def get(self, key: str, default: Any = None) -> Any:
        if key == 'timezone':
            return self.timezone if self.timezone is not None else default
        return self._values.get(key, default)


class ExportJob:
    """
    What to export: root collection, columns, page size and find options.

    Columns are resolved against the collection when the job is built, so a
    bad path is rejected before any row is written.

    Parameters
    ----------
    collection : Collection
        Root collection.
    columns : sequence of ColumnSpec, dict or dotted str
        Output columns in order. Dicts use ``path`` (or ``data_index``),
        ``title`` and ``default_title``.
    chunk_size : int, optional
        Records fetched per page. Defaults to settings['default_chunk_size'].
    find : dict, optional
        Filter and sort passed unchanged to the record source.
    expand_associations : bool, default True
        Give each related record of a to-many association its own row. When
        False, a record always gives one row and related values are joined.

    Raises
    ------
    ColumnResolutionError
        If a column path does not resolve.
    ValueError
        If chunk_size is not a positive integer.
    """

    def __init__(self,
                 collection: Collection,
                 columns: Sequence[Union[ColumnSpec, Dict[str, Any], str]],
                 chunk_size: Optional[int] = None,
                 find: Optional[Dict[str, Any]] = None,
                 expand_associations: bool = True):
        if chunk_size is None:
            chunk_size = settings.get('default_chunk_size', 200)
        if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size < 1:
            raise ValueError(f"chunk_size must be a positive integer, got {chunk_size!r}")
        if not columns:
            raise ColumnResolutionError("An export needs at least one column")

        self.collection = collection
        self.chunk_size = chunk_size
        self.find = find
        self.expand_associations = expand_associations
        self.columns: List[ResolvedColumn] = [
            resolve_column(collection, self._to_spec(column)) for column in columns
        ]
        self.consumed = False

    @staticmethod
    def _to_spec(column: Union[ColumnSpec, Dict[str, Any], str]) -> ColumnSpec:
        if isinstance(column, ColumnSpec):
            return column
        if isinstance(column, Mapping):
            return ColumnSpec.from_dict(column)
        if isinstance(column, (str, list, tuple)):
            return ColumnSpec(column)
        raise ColumnResolutionError(f"Invalid column definition: {column!r}", path=column)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], catalog: Catalog) -> 'ExportJob':
        """
        Build a job from a plain definition (e.g. a YAML ``exports`` entry)::

            {'collection': 'users', 'chunk_size': 10,
             'columns': [{'path': ['name'], 'default_title': 'Name'}],
             'find': {'filter': {'age': {'$gt': 9}}}}
        """
        name = data.get('collection')
        if not name:
            raise ValueError("Export definition has no collection")
        try:
            collection = catalog[name]
        except KeyError as e:
            raise ColumnResolutionError(str(e.args[0])) from e
        chunk_size = data.get('chunk_size', data.get('chunkSize'))
        find = data.get('find', data.get('find_options', data.get('findOptions')))
        return cls(collection, data.get('columns') or [],
                   chunk_size=chunk_size, find=find,
                   expand_associations=data.get('expand_associations', True))

    @property
    def headers(self) -> List[str]:
        return [column.header for column in self.columns]

    @property
    def appends(self) -> List[str]:
        """Associations the record source has to load, in column order."""
        names = []
        for column in self.columns:
            field = self.collection.get_field(column.root_name)
            if field.is_association and field.name not in names:
                names.append(field.name)
        return names

    def __repr__(self) -> str:
        paths = [column.spec.dotted for column in self.columns]
        return f"ExportJob({self.collection.name!r}, columns={paths}, chunk_size={self.chunk_size})"


class Exporter:
    """
    Runs one ExportJob against a record source into a sheet writer.

    The pipeline is sequential: a page is fetched, expanded, formatted and
    written before the next page is requested, so at most one page of records
    is held at a time.

    Parameters
    ----------
    job : ExportJob
    source : RecordSource
        Anything with ``query(collection, find, limit, offset, appends)``.
    writer : SheetWriter, optional
        Defaults to a MemorySheetWriter.
    registry : FormatterRegistry, optional
        Defaults to the module-level registry with the built-in rules.
    default_timezone : str, optional
        System timezone, default settings['default_timezone'].

    Attributes
    ----------
    record_count : int
        Records read from the source.
    row_count : int
        Data rows written (header excluded).
    page_count : int
        Pages fetched.

    Notes
    -----
    Failures are not retried. Any error discards the writer's partial output
    and propagates; run a new job to try again. ``cancel()`` may be called
    from another thread; the run stops before its next page fetch and raises
    ExportCancelled.
    """

    def __init__(self,
                 job: ExportJob,
                 source,
                 writer: Optional[SheetWriter] = None,
                 registry: Optional[FormatterRegistry] = None,
                 default_timezone: Optional[str] = None):
        self.job = job
        self.source = source
        self.writer = writer if writer is not None else MemorySheetWriter()
        self.registry = registry if registry is not None else default_registry
        self.default_timezone = default_timezone
        self.record_count = 0
        self.row_count = 0
        self.page_count = 0
        self._cancel_event = threading.Event()

    def cancel(self) -> None:
        """Ask a running export to stop before its next page fetch."""
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def _check_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise ExportCancelled(
                f"Export of '{self.job.collection.name}' cancelled after {self.row_count} rows")

    def build_row(self, row: ExpandedRow, contexts: Sequence[FormatContext]) -> List[Any]:
        """Format one expanded row, one cell per column in column order."""
        return [self._cell(row, ctx) for ctx in contexts]

    def _cell(self, row: ExpandedRow, ctx: FormatContext) -> Any:
        column: ResolvedColumn = ctx.column
        if column.association is None:
            # an exploded association column shows only this row's related record
            return self.registry.format(column.field, row.related(column.root_name), ctx)

        sub_field = column.path[1]
        related = row.related(column.root_name)
        if related is None or isinstance(related, Mapping):
            value = related.get(sub_field) if related is not None else None
            return self.registry.format(column.field, value, ctx)

        # association not exploded: join the sub-field across related records
        parts = []
        for item in as_list(related):
            if not isinstance(item, Mapping):
                continue
            value = self.registry.format(column.field, item.get(sub_field), ctx)
            if value is not None and value != '':
                parts.append(value)
        if not parts:
            return None
        if len(parts) == 1:
            return parts[0]
        return ctx.association_delimiter.join(to_string(part) for part in parts)

    def run(self, context: Optional[RequestContext] = None) -> Any:
        """
        Run the export.

        Args:
            context: request values (timezone for 'client' date fields)

        Returns:
            Whatever the writer's finalize() returns (rows, a path or bytes).

        Raises:
            ExportError: if the job was already run
            ExportCancelled: if cancel() was called
            SourceQueryError: if the source failed a page fetch
        """
        job = self.job
        if job.consumed:
            raise ExportError(f"{job!r} has already been run")
        job.consumed = True

        base_ctx = FormatContext(
            timezone=context.get('timezone') if context is not None else None,
            default_timezone=self.default_timezone,
            catalog=job.collection.catalog,
        )
        contexts = [base_ctx.for_column(column) for column in job.columns]

        logger.info(f"Exporting '{job.collection.name}' ({len(job.columns)} columns, "
                    f"chunk size {job.chunk_size})")
        try:
            self.writer.append(job.headers)
            self._check_cancelled()
            pages = iter_chunks(self.source, job.collection, job.find,
                                chunk_size=job.chunk_size, appends=job.appends)
            for page in pages:
                self.page_count += 1
                for record in page:
                    self.record_count += 1
                    for row in expand_record(record, job.columns, job.expand_associations):
                        self.writer.append(self.build_row(row, contexts))
                        self.row_count += 1
                self._check_cancelled()
            result = self.writer.finalize()
        except ExportCancelled as e:
            logger.warning(str(e))
            self.writer.discard()
            raise
        except Exception as e:
            logger.error(f"Export of '{job.collection.name}' failed after {self.row_count} rows: {e}")
            self.writer.discard()
            raise

        logger.info(f"Exported {self.record_count} records as {self.row_count} rows "
                    f"from '{job.collection.name}' in {self.page_count} pages")
        return result


def export_to_excel(job: ExportJob,
                    source,
                    filename: Optional[Union[str, Path]] = None,
                    context: Optional[RequestContext] = None,
                    sheet_name: Optional[str] = None,
                    registry: Optional[FormatterRegistry] = None) -> Union[Path, bytes]:
    """
    Run a job into an XLSX workbook.

    Returns the file path, or the workbook bytes when no filename is given.

    Example:
        export_to_excel(job, DatabaseSource(conn), 'users.xlsx', RequestContext(timezone='+08:00'))
    """
    writer = ExcelSheetWriter(filename, sheet_name=sheet_name)
    return Exporter(job, source, writer=writer, registry=registry).run(context)


def export_to_csv(job: ExportJob,
                  source,
                  filename: Optional[Union[str, Path]] = None,
                  context: Optional[RequestContext] = None,
                  registry: Optional[FormatterRegistry] = None,
                  **csv_kwargs) -> Union[Path, str]:
    """
    Run a job into a CSV file.

    Returns the file path, or the CSV text when no filename is given.
    """
    writer = CSVSheetWriter(filename, **csv_kwargs)
    return Exporter(job, source, writer=writer, registry=registry).run(context)
