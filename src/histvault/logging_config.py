"""
Logging Configuration for histvault

Sets up structured logging with file and console handlers.

The console handler writes to stderr: stdout carries only command output,
which shell widgets read back.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

from .config_loader import config


def setup_logging(
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    console_level: Optional[str] = None
) -> None:
    """
    Configure application-wide logging.

    Sets up:
    - Console handler (stderr)
    - Rotating file handler (if enabled)
    - Structured formatting

    Args:
        log_level: Override config log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Override config log filename
        console_level: Override console handler level
    """
    logging_config = config.get_section('logging')

    level = log_level or logging_config.get('level', 'INFO')
    log_format = logging_config.get('format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    date_format = logging_config.get('date_format', '%Y-%m-%d %H:%M:%S')

    formatter = logging.Formatter(log_format, datefmt=date_format)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers
    root_logger.handlers.clear()

    # Console handler
    console_config = logging_config.get('handlers', {}).get('console', {})
    if console_config.get('enabled', True):
        console_handler = logging.StreamHandler(sys.stderr)
        level_name = console_level or console_config.get('level', 'WARNING')
        console_handler.setLevel(getattr(logging, level_name.upper()))
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    # File handler
    file_config = logging_config.get('handlers', {}).get('file', {})
    file_enabled = file_config.get('enabled', True)
    if file_enabled:
        logs_dir = config.get_path('paths.logs', '~/.histvault/logs')
        try:
            logs_dir.mkdir(parents=True, exist_ok=True)

            log_filename = log_file or file_config.get('filename', 'histvault.log')
            log_path = logs_dir / log_filename

            file_handler = logging.handlers.RotatingFileHandler(
                log_path,
                maxBytes=file_config.get('max_bytes', 5242880),
                backupCount=file_config.get('backup_count', 3)
            )
            file_level = file_config.get('level', 'DEBUG')
            file_handler.setLevel(getattr(logging, file_level.upper()))
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        except OSError as e:
            # A read-only home must not stop collection
            file_enabled = False
            logging.getLogger(__name__).warning(f"File logging disabled ({logs_dir}): {e}")

    logger = logging.getLogger(__name__)
    logger.debug("=" * 60)
    logger.debug("histvault logging initialized")
    logger.debug(f"Log Level: {level}")
    logger.debug(f"Console Handler: {console_config.get('enabled', True)}")
    logger.debug(f"File Handler: {file_enabled}")
    logger.debug("=" * 60)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)
