# sheetbender/logging_utils.py
"""
Logging setup for export scripts.

Scheduled exports usually run unattended, so each run gets its own log file
named ``<script>_<YYYYMMDD_HHMMSS>.log``. Errors can additionally go to a
``_error.log`` that is only created when the first error is logged, which
makes "did anything fail?" a file-exists check for whoever watches the job.
"""

import logging
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, NamedTuple, Optional

logger = logging.getLogger(__name__)
__all__ = ['LogFiles', 'ErrorCountHandler', 'setup_logging', 'errors_logged', 'cleanup_old_logs']


class LogFiles(NamedTuple):
    log_file: str
    error_file: Optional[str] = None


class ErrorCountHandler(logging.Handler):
    """
    Counts ERROR and CRITICAL records.

    If ``error_log_path`` is given, a file handler for it is appended to the
    root logger's handlers when the first error arrives. Being appended after
    this handler, it still receives the record that triggered it.
    """

    def __init__(self, error_log_path: Optional[str] = None, formatter: Optional[logging.Formatter] = None):
        super().__init__(level=logging.ERROR)
        self.error_count = 0
        self.last_error: Optional[str] = None
        self.error_log_path = error_log_path
        self.formatter = formatter
        self.error_file_handler: Optional[logging.FileHandler] = None

    def emit(self, record: logging.LogRecord) -> None:
        if record.levelno < logging.ERROR:
            return
        self.error_count += 1
        self.last_error = record.getMessage()

        if self.error_log_path and self.error_file_handler is None:
            try:
                handler = logging.FileHandler(self.error_log_path, encoding='utf-8', delay=True)
            except OSError as e:
                logger.warning(f"Failed to create error log file: {e}")
                self.error_log_path = None
                return
            handler.setLevel(logging.ERROR)
            if self.formatter:
                handler.setFormatter(self.formatter)
            logging.getLogger().addHandler(handler)
            self.error_file_handler = handler

    def close(self) -> None:
        if self.error_file_handler is not None:
            logging.getLogger().removeHandler(self.error_file_handler)
            self.error_file_handler.close()
            self.error_file_handler = None
        super().close()


class _LogState:
    handlers: List[logging.Handler] = []
    error_handler: Optional[ErrorCountHandler] = None
    files: Optional[LogFiles] = None


def _logging_config() -> dict:
    from .config import get_setting
    return get_setting('logging', {}) or {}


def _remove_installed_handlers() -> None:
    root_logger = logging.getLogger()
    for handler in _LogState.handlers:
        root_logger.removeHandler(handler)
        handler.close()
    _LogState.handlers = []
    _LogState.error_handler = None
    _LogState.files = None


def setup_logging(script_name: Optional[str] = None,
                  log_dir: Optional[str] = None,
                  level: Optional[str] = None,
                  console: Optional[bool] = None,
                  split_errors: Optional[bool] = None) -> LogFiles:
    """
    Configure root logging for an export script.

    Handlers installed by an earlier call are replaced; handlers added by
    other code are left alone.

    Args:
        script_name: Base name for log files (defaults to the running script's name)
        log_dir: Directory for log files (defaults to settings 'logging.directory')
        level: DEBUG, INFO, WARNING or ERROR (defaults to 'logging.level')
        console: Also log to stdout (defaults to 'logging.console')
        split_errors: Write errors to a separate, lazily created file
            (defaults to 'logging.split_errors')

    Returns:
        LogFiles(log_file, error_file or None)

    Example
    -------
    ::

        import sheetbender

        sheetbender.setup_logging('nightly_user_export', level='DEBUG')
        export_to_excel(job, source, 'users.xlsx')
        if sheetbender.errors_logged():
            notify_admins()

    Note:
        Set 'logging.filename_format' to '' to reuse one log file per script,
        or to '%Y%m%d' for one log per day.
    """
    logging_config = _logging_config()

    script_name = script_name or Path(sys.argv[0]).stem or 'sheetbender'
    log_dir_path = Path(log_dir or logging_config.get('directory', './logs'))
    level_name = (level or logging_config.get('level', 'INFO')).upper()
    console = logging_config.get('console', True) if console is None else console
    split_errors = logging_config.get('split_errors', True) if split_errors is None else split_errors
    filename_format = logging_config.get('filename_format', '%Y%m%d_%H%M%S')

    numeric_level = logging.getLevelName(level_name)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown logging level: {level}")

    log_dir_path.mkdir(parents=True, exist_ok=True)
    stem = f"{script_name}_{datetime.now().strftime(filename_format)}" if filename_format else script_name
    log_file = log_dir_path / f"{stem}.log"
    error_file = log_dir_path / f"{stem}_error.log" if split_errors else None

    _remove_installed_handlers()
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    formatter = logging.Formatter(
        logging_config.get('format', '%(asctime)s [%(levelname)s] %(name)s: %(message)s'),
        datefmt=logging_config.get('timestamp_format', '%Y-%m-%d %H:%M:%S'),
    )

    error_handler = ErrorCountHandler(str(error_file) if error_file else None, formatter)
    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    installed = [error_handler, file_handler]

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(formatter)
        installed.append(console_handler)

    for handler in installed:
        root_logger.addHandler(handler)
    _LogState.handlers = installed
    _LogState.error_handler = error_handler
    _LogState.files = LogFiles(str(log_file), str(error_file) if error_file else None)

    logger.info(f"Logging initialized: {log_file}")
    return _LogState.files


def errors_logged() -> Optional[str]:
    """
    Report whether anything at ERROR or above was logged since setup_logging().

    Returns:
        The file holding the errors (the error log when errors are split,
        else the main log), or None if nothing failed or logging was never set up.
    """
    if _LogState.error_handler is None:
        logger.warning("errors_logged() called but setup_logging() was not called")
        return None
    if _LogState.error_handler.error_count == 0:
        return None
    files = _LogState.files
    return files.error_file or files.log_file


def cleanup_old_logs(log_dir: Optional[str] = None,
                     retention_days: Optional[int] = None,
                     pattern: str = '*.log',
                     dry_run: bool = False) -> List[str]:
    """
    Delete log files last modified more than ``retention_days`` ago.

    Args:
        log_dir: Directory to clean (defaults to settings 'logging.directory')
        retention_days: Age limit in days (defaults to 'logging.retention_days')
        pattern: Glob pattern of files to consider
        dry_run: Only report what would be deleted

    Returns:
        Paths deleted (or that would be deleted on a dry run)
    """
    logging_config = _logging_config()
    log_dir_path = Path(log_dir or logging_config.get('directory', './logs'))
    if retention_days is None:
        retention_days = logging_config.get('retention_days', 30)

    if not log_dir_path.is_dir():
        logger.warning(f"Log directory does not exist: {log_dir_path}")
        return []

    cutoff = (datetime.now() - timedelta(days=retention_days)).timestamp()
    active = set(_LogState.files or ())
    deleted = []
    for log_file in sorted(log_dir_path.glob(pattern)):
        if not log_file.is_file() or str(log_file) in active:
            continue
        if log_file.stat().st_mtime >= cutoff:
            continue
        if not dry_run:
            try:
                log_file.unlink()
            except OSError as e:
                logger.warning(f"Failed to delete {log_file}: {e}")
                continue
        deleted.append(str(log_file))

    verb = 'Would delete' if dry_run else 'Deleted'
    if deleted:
        logger.info(f"{verb} {len(deleted)} log files older than {retention_days} days in {log_dir_path}")
    return deleted
