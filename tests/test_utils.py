"""Tests for utility functions."""

import logging

import pytest

from glmtreat.utils import setup_logging, ensure_dir


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Remove handlers added by setup_logging after each test."""
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level
    yield
    for handler in root_logger.handlers[:]:
        if handler not in handlers:
            handler.close()
            root_logger.removeHandler(handler)
    root_logger.setLevel(level)

def test_setup_logging(tmp_path):
    """Test setting up logging configuration."""
    log_dir = tmp_path / "logs"

    logger = setup_logging(log_dir)
    assert logger.name == "glmtreat"
    assert log_dir.exists()
    assert (log_dir / "glmtreat.log").exists()
    assert logging.getLogger().level == logging.INFO

    setup_logging(log_dir, level=logging.DEBUG)
    assert logging.getLogger().level == logging.DEBUG

def test_setup_logging_writes_messages(tmp_path):
    """Test messages from package loggers reach the log file."""
    log_dir = tmp_path / "nested" / "logs"
    setup_logging(log_dir)
    logging.getLogger("glmtreat.stats").info("Testing 3 genes")
    for handler in logging.getLogger().handlers:
        handler.flush()
    assert "Testing 3 genes" in (log_dir / "glmtreat.log").read_text()

def test_setup_logging_console_only():
    """Test logging without a log directory."""
    before = len(logging.getLogger().handlers)
    setup_logging()
    assert len(logging.getLogger().handlers) == before + 1

def test_setup_logging_repeated_calls(tmp_path):
    """Test repeated setup replaces handlers instead of duplicating them."""
    log_dir = tmp_path / "logs"
    before = len(logging.getLogger().handlers)
    setup_logging(log_dir)
    assert len(logging.getLogger().handlers) == before + 2

    setup_logging(log_dir)
    setup_logging(log_dir)
    assert len(logging.getLogger().handlers) == before + 2

    logging.getLogger("glmtreat.stats").info("Testing 5 genes")
    for handler in logging.getLogger().handlers:
        handler.flush()
    assert (log_dir / "glmtreat.log").read_text().count("Testing 5 genes") == 1

def test_ensure_dir(tmp_path):
    """Test directory creation."""
    test_dir = tmp_path / "test_dir"
    assert ensure_dir(test_dir) == test_dir
    assert test_dir.is_dir()

    # Existing directories are fine
    ensure_dir(test_dir)

def test_ensure_dir_nested(tmp_path):
    """Test nested directory creation."""
    test_dir = tmp_path / "nested" / "test_dir"
    ensure_dir(test_dir)
    assert test_dir.is_dir()

def test_ensure_dir_file_exists(tmp_path):
    """Test behavior when a file exists at the target path."""
    test_path = tmp_path / "test_file"
    test_path.touch()

    with pytest.raises(FileExistsError):
        ensure_dir(test_path)
