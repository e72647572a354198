"""Utility functions for threshold differential expression testing."""

import logging
from pathlib import Path
from typing import Optional, Union

# Handlers installed by the last call to setup_logging
_handlers = []


def setup_logging(log_dir: Optional[Union[str, Path]] = None, level=logging.INFO):
    """Set up logging configuration.

    Calling this again replaces the handlers of the previous call, so
    messages are never written twice.

    Args:
        log_dir: Directory to store log files
        level: Logging level
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in _handlers:
        root_logger.removeHandler(handler)
        handler.close()
    _handlers.clear()

    if log_dir:
        log_dir = ensure_dir(Path(log_dir))
        file_handler = logging.FileHandler(log_dir / 'glmtreat.log', mode='w')
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        root_logger.addHandler(file_handler)
        _handlers.append(file_handler)
        # Write once so the log file exists straight away
        root_logger.info("Logging initialized")

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s'
    ))
    root_logger.addHandler(console_handler)
    _handlers.append(console_handler)

    return logging.getLogger('glmtreat')


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path

    Returns:
        Path object for the directory
    """
    path.mkdir(parents=True, exist_ok=True)
    return path
