# tests/test_chunks.py
"""
Tests for chunked iteration over a record source.
"""

from unittest.mock import Mock

import pytest

from sheetbender.chunks import iter_chunks
from sheetbender.defaults import settings
from sheetbender.fields import Collection, FieldDescriptor, FieldKind
from sheetbender.sources import ListSource


@pytest.fixture
def soldiers():
    return Collection('soldiers', [FieldDescriptor('name'), FieldDescriptor('age', FieldKind.INTEGER)])


@pytest.fixture
def source():
    return ListSource({'soldiers': [{'id': i, 'name': f'soldier{i}', 'age': i} for i in range(22)]})


class TestIterChunks:

    def test_pages_cover_everything_once(self, source, soldiers):
        pages = list(iter_chunks(source, soldiers, chunk_size=10))
        assert [len(page) for page in pages] == [10, 10, 2]
        assert [r['id'] for page in pages for r in page] == list(range(22))

    @pytest.mark.parametrize('chunk_size', [1, 3, 7, 21, 22, 23, 500])
    def test_chunk_size_does_not_change_records(self, source, soldiers, chunk_size):
        records = [r for page in iter_chunks(source, soldiers, chunk_size=chunk_size) for r in page]
        assert [r['id'] for r in records] == list(range(22))

    def test_filter_passed_through(self, source, soldiers):
        find = {'filter': {'age': {'$gt': 9}}}
        records = [r for page in iter_chunks(source, soldiers, find, chunk_size=5) for r in page]
        assert len(records) == 12

    def test_empty_source(self, soldiers):
        assert list(iter_chunks(ListSource(), soldiers, chunk_size=10)) == []

    def test_offsets_and_appends(self, soldiers):
        """Each page is requested at the offset after the previous one."""
        source = Mock()
        source.query.side_effect = [[{'id': 1}, {'id': 2}], [{'id': 3}], []]
        pages = list(iter_chunks(source, soldiers, None, chunk_size=2, appends=['posts']))

        assert len(pages) == 2
        offsets = [c.kwargs['offset'] for c in source.query.call_args_list]
        assert offsets == [0, 2, 3]
        assert all(c.kwargs['limit'] == 2 for c in source.query.call_args_list)
        assert all(c.kwargs['appends'] == ('posts',) for c in source.query.call_args_list)

    def test_lazy(self, soldiers):
        """No page is fetched before iteration starts, and only one per step."""
        source = Mock()
        source.query.side_effect = [[{'id': 1}], [{'id': 2}], []]
        pages = iter_chunks(source, soldiers, chunk_size=1)
        assert source.query.call_count == 0
        next(pages)
        assert source.query.call_count == 1

    def test_default_chunk_size(self, soldiers):
        source = Mock()
        source.query.return_value = []
        settings['default_chunk_size'] = 50
        list(iter_chunks(source, soldiers))
        assert source.query.call_args.kwargs['limit'] == 50

    @pytest.mark.parametrize('chunk_size', [0, -1, 2.5, '10', True])
    def test_invalid_chunk_size(self, source, soldiers, chunk_size):
        with pytest.raises(ValueError, match='chunk_size'):
            list(iter_chunks(source, soldiers, chunk_size=chunk_size))

    def test_source_errors_propagate(self, soldiers):
        source = Mock()
        source.query.side_effect = RuntimeError('Ba Sing Se has fallen')
        with pytest.raises(RuntimeError, match='fallen'):
            list(iter_chunks(source, soldiers, chunk_size=5))
