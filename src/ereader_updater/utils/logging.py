"""Logger setup for one updater run.

Stage1 runs from the live root and stage2 from the recovery filesystem, which
may be mounted read-only with no writable /tmp. The console (serial console
or the OS update log that captures our stdout) is therefore the one channel
that always exists; the rotating file is added when it can be opened.
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


def _open_log_file(
    log_path: Path, max_bytes: int, backup_count: int
) -> tuple[Optional[logging.Handler], Optional[OSError]]:
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    except OSError as e:
        return None, e
    return handler, None


def setup_logger(
    name: str = "ereader_updater",
    log_file: Union[str, Path] = "/tmp/updater.log",
    max_bytes: int = 1024 * 1024,  # log lives on tmpfs
    backup_count: int = 2,
    level: int = logging.INFO,
) -> logging.Logger:
    """Attach console and rotating file handlers to the updater logger.

    If the log file cannot be created the updater keeps going with console
    output only and says so in a warning.

    Args:
        name: Logger name
        log_file: Path to log file (parent created if missing)
        max_bytes: Max size before rotation
        backup_count: Number of rotated files to keep
        level: Logging level

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Called once per CLI run, but tests invoke the CLI repeatedly
    if logger.handlers:
        return logger

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    log_path = Path(log_file)
    file_handler, error = _open_log_file(log_path, max_bytes, backup_count)
    if file_handler is None:
        logger.warning(f"Cannot open log file {log_path} ({error}), logging to console only")
        return logger

    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
    return logger
