"""
Structured JSON logging tests.
"""

import io
import json
import logging

from clmm.core.logging_config import CustomJsonFormatter, get_logger, setup_logging


def _capture(name, **kwargs):
    stream = io.StringIO()
    logger = setup_logging(name=name, stream=stream, **kwargs)
    return logger, stream


def test_json_record_fields():
    logger, stream = _capture("clmm_log_fields", environment="staging")
    logger.info("Swap executed", extra={"event": "clmm.swap", "amount_out": 996006})

    record = json.loads(stream.getvalue().strip())
    assert record["message"] == "Swap executed"
    assert record["event"] == "clmm.swap"
    assert record["amount_out"] == 996006
    assert record["environment"] == "staging"
    assert record["service"] == "clmm_log_fields"
    assert record["level"] == "info"
    assert record["timestamp"]
    assert record["source"]["function"] == "test_json_record_fields"


def test_level_filtering():
    logger, stream = _capture("clmm_log_level", level="WARNING")
    logger.info("hidden")
    logger.warning("shown")
    lines = [line for line in stream.getvalue().splitlines() if line]
    assert len(lines) == 1
    assert json.loads(lines[0])["message"] == "shown"


def test_setup_replaces_handlers():
    setup_logging(name="clmm_log_handlers", stream=io.StringIO())
    logger = setup_logging(name="clmm_log_handlers", stream=io.StringIO())
    assert len(logger.handlers) == 1


def test_file_handler(tmp_path):
    log_file = tmp_path / "logs" / "clmm.json"
    logger = setup_logging(name="clmm_log_file", log_file=str(log_file), enable_console=False)
    logger.error("written", extra={"event": "clmm.fatal"})
    for handler in logger.handlers:
        handler.flush()
    record = json.loads(log_file.read_text().strip())
    assert record["event"] == "clmm.fatal"
    assert record["level"] == "error"


def test_get_logger_configures_once():
    first = get_logger("clmm_log_once")
    second = get_logger("clmm_log_once")
    assert first is second
    assert len(second.handlers) == 1
    assert isinstance(second.handlers[0].formatter, CustomJsonFormatter)
    assert second.level == logging.INFO
