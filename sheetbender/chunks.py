# sheetbender/chunks.py
"""
Page-by-page iteration over a record source.
"""

import logging
from typing import Any, Iterable, Iterator, List, Optional

from .defaults import settings

logger = logging.getLogger(__name__)
__all__ = ['iter_chunks']


def iter_chunks(source,
                collection,
                find: Optional[Any] = None,
                chunk_size: Optional[int] = None,
                appends: Iterable[str] = ()) -> Iterator[List[dict]]:
    """
    Yield pages of records from a source until it runs dry.

    Each step fetches at most ``chunk_size`` records starting at the next
    offset. Iteration stops at the first empty page. The generator is lazy:
    the next page is only fetched when the previous one has been consumed.

    Args:
        source: object with ``query(collection, find, limit, offset, appends)``
        collection: root Collection
        find: opaque find options (filter, sort) passed to the source
        chunk_size: records per page, defaults to settings['default_chunk_size']
        appends: association names the source must load on each record

    Raises:
        ValueError: if chunk_size is not a positive integer. Errors raised by
            the source propagate unchanged; nothing is retried.

    Example
    -------
    ::

        for page in iter_chunks(source, users, {'filter': {'age': {'$gt': 9}}}, chunk_size=10):
            for record in page:
                ...
    """
    if chunk_size is None:
        chunk_size = settings.get('default_chunk_size', 200)
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size < 1:
        raise ValueError(f"chunk_size must be a positive integer, got {chunk_size!r}")

    appends = tuple(appends)
    offset = 0
    while True:
        page = list(source.query(collection, find, limit=chunk_size, offset=offset, appends=appends))
        logger.debug(f"Fetched {len(page)} records from '{collection.name}' at offset {offset}")
        if not page:
            return
        yield page
        offset += len(page)
