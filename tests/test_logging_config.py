"""
test_logging_config.py — Tests for logging_config.py

Called by: pytest
Depends on: loadhunter/logging_config.py
"""

import json
import logging

from loguru import logger

from loadhunter.config import settings
from loadhunter.logging_config import _InterceptHandler, setup_logging


def test_stdlib_records_reach_loguru_with_component(monkeypatch):
    monkeypatch.setattr(settings, "app_env", "development")
    monkeypatch.setattr(settings, "log_level", "debug")
    setup_logging()

    captured = []
    sink_id = logger.add(lambda message: captured.append(message.record), level="DEBUG")
    try:
        logging.getLogger("loadhunter.load_ingestion").info("message_failed reason=timeout message_id=m1")
    finally:
        logger.remove(sink_id)

    record = next(r for r in captured if r["message"] == "message_failed reason=timeout message_id=m1")
    assert record["extra"]["component"] == "load_ingestion"
    assert any(isinstance(h, _InterceptHandler) for h in logging.getLogger().handlers)


def test_noisy_loggers_quieted(monkeypatch):
    monkeypatch.setattr(settings, "app_env", "development")
    setup_logging()
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


def test_production_emits_json_lines(monkeypatch, capsys):
    monkeypatch.setattr(settings, "app_env", "production")
    monkeypatch.setattr(settings, "log_file", "")
    setup_logging()
    logging.getLogger("loadhunter.scheduler").warning("mailbox_poll_failed reason=timeout")

    lines = [json.loads(line) for line in capsys.readouterr().out.splitlines() if line.strip()]
    record = next(r["record"] for r in lines if r["record"]["message"] == "mailbox_poll_failed reason=timeout")
    assert record["level"]["name"] == "WARNING"
    assert record["extra"]["component"] == "scheduler"
    # The sink holds capsys' stream, which closes after this test
    logger.remove()
