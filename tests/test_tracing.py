from __future__ import annotations

import json
import logging

import pytest

from expense_app.observability.tracing import configure_logging, get_logger, log_event


@pytest.fixture
def root_logger():
    logger = get_logger()
    level, handlers = logger.level, list(logger.handlers)
    yield logger
    logger.setLevel(level)
    logger.handlers[:] = handlers


def test_configured_level_filters_component_events(root_logger, caplog) -> None:
    configure_logging("warning")

    with caplog.at_level(logging.NOTSET):
        log_event("receipts.uploaded", component="receipts", receipt_id="r1")
        log_event("receipts.ocr_failed", level="warning", component="receipts", receipt_id="r1")

    assert root_logger.level == logging.WARNING
    events = [json.loads(r.getMessage()) for r in caplog.records if r.name == "expense_app.receipts"]
    assert [e["event"] for e in events] == ["receipts.ocr_failed"]


def test_handler_is_attached_once(root_logger) -> None:
    root_logger.handlers[:] = []

    configure_logging("INFO")
    configure_logging("DEBUG")

    assert len(root_logger.handlers) == 1
    assert root_logger.level == logging.DEBUG
