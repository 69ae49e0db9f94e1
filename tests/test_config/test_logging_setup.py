import json

import structlog

from numidium.config import Config
from numidium.logging import configure_logging


def test_configure_logging_writes_json_lines_to_stderr(capsys):
    config = Config()
    config.logging.level = "INFO"
    config.logging.format = "json"
    try:
        configure_logging(config)
        structlog.get_logger("numidium.test_logging_setup").info("Model selected", model="codellama:7b")
        captured = capsys.readouterr()
    finally:
        structlog.reset_defaults()

    assert captured.out == ""
    record = json.loads(captured.err.strip().splitlines()[-1])
    assert record["event"] == "Model selected"
    assert record["model"] == "codellama:7b"
    assert record["level"] == "info"


def test_configure_logging_filters_below_level(capsys):
    config = Config()
    config.logging.level = "WARNING"
    config.logging.format = "json"
    try:
        configure_logging(config)
        structlog.get_logger("numidium.test_logging_setup").info("Quiet")
        captured = capsys.readouterr()
    finally:
        structlog.reset_defaults()

    assert "Quiet" not in captured.err
