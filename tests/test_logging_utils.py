# tests/test_logging_utils.py
import logging
import os
import time
from pathlib import Path

import pytest

from sheetbender import logging_utils
from sheetbender.defaults import settings
from sheetbender.exporter import ExportJob, Exporter
from sheetbender.logging_utils import (
    ErrorCountHandler, LogFiles, cleanup_old_logs, errors_logged, setup_logging
)


@pytest.fixture(autouse=True)
def remove_handlers():
    """Detach the handlers setup_logging() installs so log files are closed."""
    root_logger = logging.getLogger()
    level = root_logger.level
    yield
    logging_utils._remove_installed_handlers()
    root_logger.setLevel(level)


def make_record(level, msg='message'):
    return logging.LogRecord(name='test', level=level, pathname='', lineno=0,
                             msg=msg, args=(), exc_info=None)


class TestErrorCountHandler:
    """Test ErrorCountHandler class functionality."""

    def test_counts_errors_and_critical(self):
        handler = ErrorCountHandler()
        handler.emit(make_record(logging.ERROR, 'Zhao fell'))
        handler.emit(make_record(logging.INFO))
        handler.emit(make_record(logging.CRITICAL, 'comet arrived'))
        assert handler.error_count == 2
        assert handler.last_error == 'comet arrived'

    def test_ignores_lower_levels(self):
        handler = ErrorCountHandler()
        for level in (logging.DEBUG, logging.INFO, logging.WARNING):
            handler.emit(make_record(level))
        assert handler.error_count == 0
        assert handler.last_error is None

    def test_error_file_created_lazily(self, tmp_path):
        error_log = tmp_path / 'errors.log'
        handler = ErrorCountHandler(str(error_log))
        handler.emit(make_record(logging.WARNING))
        assert handler.error_file_handler is None

        handler.emit(make_record(logging.ERROR))
        assert handler.error_file_handler is not None
        assert handler.error_file_handler in logging.getLogger().handlers
        handler.close()
        assert handler.error_file_handler is None


class TestSetupLogging:

    def test_creates_timestamped_log(self, tmp_path):
        files = setup_logging('nightly_export', log_dir=str(tmp_path), console=False)
        assert isinstance(files, LogFiles)
        assert Path(files.log_file).parent == tmp_path
        assert Path(files.log_file).name.startswith('nightly_export_')
        assert Path(files.log_file).exists()
        assert files.error_file.endswith('_error.log')
        assert not Path(files.error_file).exists()

    def test_single_file_without_timestamp(self, tmp_path):
        settings['logging']['filename_format'] = ''
        files = setup_logging('rolling', log_dir=str(tmp_path), console=False, split_errors=False)
        assert files == LogFiles(str(tmp_path / 'rolling.log'), None)

    def test_level_from_settings(self, tmp_path):
        settings['logging']['level'] = 'WARNING'
        setup_logging('quiet', log_dir=str(tmp_path), console=False)
        assert logging.getLogger().level == logging.WARNING

    def test_invalid_level(self, tmp_path):
        with pytest.raises(ValueError, match='Unknown logging level'):
            setup_logging('loud', log_dir=str(tmp_path), level='SHOUTING', console=False)

    def test_repeat_calls_replace_handlers(self, tmp_path):
        root_logger = logging.getLogger()
        before = len(root_logger.handlers)
        setup_logging('first', log_dir=str(tmp_path), console=True)
        setup_logging('second', log_dir=str(tmp_path), console=True)
        assert len(root_logger.handlers) == before + 3

    def test_other_handlers_kept(self, tmp_path):
        other = logging.NullHandler()
        root_logger = logging.getLogger()
        root_logger.addHandler(other)
        try:
            setup_logging('keep', log_dir=str(tmp_path), console=False)
            assert other in root_logger.handlers
        finally:
            root_logger.removeHandler(other)

    def test_export_messages_reach_log(self, tmp_path, users, list_source):
        files = setup_logging('export', log_dir=str(tmp_path), level='DEBUG', console=False)
        Exporter(ExportJob(users, ['name'], chunk_size=2), list_source).run()
        content = Path(files.log_file).read_text(encoding='utf-8')
        assert "Exporting 'users'" in content
        assert 'Fetched 2 records' in content
        assert 'Exported 5 records as 5 rows' in content


class TestErrorsLogged:
    """Test errors_logged() function."""

    def test_not_set_up(self):
        assert errors_logged() is None

    def test_no_errors_returns_none(self, tmp_path):
        setup_logging('clean_run', log_dir=str(tmp_path), console=False)
        logging.info("This is just info")
        logging.warning("This is a warning")
        assert errors_logged() is None

    def test_error_log_when_split(self, tmp_path):
        files = setup_logging('failed_run', log_dir=str(tmp_path), split_errors=True, console=False)
        logging.getLogger('sheetbender.exporter').error("Export of 'users' failed")

        result = errors_logged()
        assert result == files.error_file
        content = Path(result).read_text(encoding='utf-8')
        assert 'ERROR' in content
        assert "Export of 'users' failed" in content

    def test_main_log_when_not_split(self, tmp_path):
        files = setup_logging('failed_run', log_dir=str(tmp_path), split_errors=False, console=False)
        logging.error("This is an error")
        assert errors_logged() == files.log_file
        assert 'This is an error' in Path(files.log_file).read_text(encoding='utf-8')


class TestCleanupOldLogs:

    @pytest.fixture
    def log_dir(self, tmp_path):
        old_time = time.time() - 40 * 86400
        for name in ('old_1.log', 'old_2.log'):
            path = tmp_path / name
            path.write_text('old')
            os.utime(path, (old_time, old_time))
        (tmp_path / 'recent.log').write_text('new')
        (tmp_path / 'old_notes.txt').write_text('old')
        os.utime(tmp_path / 'old_notes.txt', (old_time, old_time))
        return tmp_path

    def test_deletes_old_logs(self, log_dir):
        deleted = cleanup_old_logs(str(log_dir), retention_days=30)
        assert sorted(Path(p).name for p in deleted) == ['old_1.log', 'old_2.log']
        assert (log_dir / 'recent.log').exists()
        assert (log_dir / 'old_notes.txt').exists()
        assert not (log_dir / 'old_1.log').exists()

    def test_dry_run(self, log_dir):
        deleted = cleanup_old_logs(str(log_dir), retention_days=30, dry_run=True)
        assert len(deleted) == 2
        assert (log_dir / 'old_1.log').exists()

    def test_retention_from_settings(self, log_dir):
        settings['logging']['retention_days'] = 60
        assert cleanup_old_logs(str(log_dir)) == []

    def test_missing_directory(self, tmp_path):
        assert cleanup_old_logs(str(tmp_path / 'nope')) == []
