"""Tests for logging helpers."""

import logging

import pytest

from switchyard.utils.log import StructuredFormatter, get_logger, init_logger, mask_api_key


@pytest.fixture
def global_logger():
    logger = get_logger()
    yield logger
    if logger._file_handler is not None:
        logger.logger.removeHandler(logger._file_handler)
        logger._file_handler.close()
        logger._file_handler = None


def test_mask_api_key():
    assert mask_api_key(None) == ""
    assert mask_api_key("abc") == "***"
    assert mask_api_key("sk-abcdefghijk") == "sk-*******hijk"


def test_structured_formatter_appends_extra_fields():
    record = logging.LogRecord("switchyard", logging.INFO, __file__, 1, "wrote %s", ("Relay",), None)
    record.path = "/tmp/opencode.json"
    formatted = StructuredFormatter("%(message)s").format(record)
    assert formatted == 'wrote Relay | {"path": "/tmp/opencode.json"}'


def test_structured_formatter_without_extras():
    record = logging.LogRecord("switchyard", logging.INFO, __file__, 1, "plain", (), None)
    assert StructuredFormatter("%(message)s").format(record) == "plain"


def test_init_logger_writes_debug_file(tmp_path, global_logger):
    logger = init_logger(tmp_path / "logs")
    assert logger is global_logger

    logger.debug("[test] hello %s", "file", extra={"scope": "global"})
    log_files = list((tmp_path / "logs").glob("switchyard_*.log"))
    assert len(log_files) == 1
    logger._file_handler.flush()
    content = log_files[0].read_text(encoding="utf-8")
    assert "[test] hello file" in content
    assert '"scope": "global"' in content


def test_init_logger_twice_keeps_one_file_handler(tmp_path, global_logger):
    init_logger(tmp_path / "logs")
    init_logger(tmp_path / "logs")
    init_logger(tmp_path / "other")

    file_handlers = [h for h in global_logger.logger.handlers if isinstance(h, logging.FileHandler)]
    assert len(file_handlers) == 1
    assert "other" in file_handlers[0].baseFilename
