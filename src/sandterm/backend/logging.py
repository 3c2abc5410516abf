"""Logging configuration for the sandterm backend and client"""

import logging
from pathlib import Path
from typing import Optional
from logging.handlers import TimedRotatingFileHandler


LOG_FORMAT = '%(asctime)s.%(msecs)03d - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class ProjectOnlyFilter(logging.Filter):
    """Filter to only allow logs from sandterm.* modules"""

    def filter(self, record):
        """Filter out non-sandterm modules

        Args:
            record: Log record to filter

        Returns:
            True if the record is from sandterm.* modules, False otherwise
        """
        return record.name.startswith('sandterm.')


def _rotating_handler(filename: Path, level: int, formatter: logging.Formatter) -> TimedRotatingFileHandler:
    handler = TimedRotatingFileHandler(
        filename=filename,
        when='midnight',
        interval=1,
        backupCount=30,
        encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(instance_path: Path) -> None:
    """Setup logging configuration for the sandterm backend

    Creates three log files in the instance logs directory:
    - debug.log: DEBUG+ logs from sandterm.* modules only
    - info.log: INFO+ logs from all modules
    - error.log: ERROR+ logs from all modules

    Additionally, INFO+ logs from all modules are output to console (stdout).

    All logs are rotated daily at midnight, keeping 30 days of history.

    Args:
        instance_path: Path to the sandterm instance directory
    """
    logs_dir = instance_path / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all levels

    # Clear existing handlers to avoid duplicate logs
    root_logger.handlers.clear()

    # ==================== DEBUG Handler ====================
    # Only sandterm.* modules, DEBUG and above
    debug_handler = _rotating_handler(logs_dir / "debug.log", logging.DEBUG, formatter)
    debug_handler.addFilter(ProjectOnlyFilter())
    root_logger.addHandler(debug_handler)

    # ==================== INFO Handler ====================
    root_logger.addHandler(_rotating_handler(logs_dir / "info.log", logging.INFO, formatter))

    # ==================== ERROR Handler ====================
    root_logger.addHandler(_rotating_handler(logs_dir / "error.log", logging.ERROR, formatter))

    # ==================== Console Handler ====================
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized for instance: {instance_path}")


def setup_client_logging(log_file: Optional[Path]) -> None:
    """Setup logging for the interactive terminal client

    The client owns the terminal, so nothing is written to the console.
    Without a log file only warnings from sandterm.* are kept (and dropped).

    Args:
        log_file: File receiving DEBUG+ sandterm.* logs, or None
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    if log_file is None:
        root_logger.addHandler(logging.NullHandler())
        root_logger.setLevel(logging.WARNING)
        return

    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, encoding='utf-8')
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.addFilter(ProjectOnlyFilter())
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG)
