import logging

import structlog

from webhook_service.logging_config import configure_logging, single_line_processor


def test_single_line_processor_escapes_control_characters():
    event = {
        "event": "webhook attempt finished",
        "error": "line one\nline two\ttab",
        "nested": {"body": "a\r\nb"},
        "items": ["x\ny"],
        "attempt": 2,
    }
    result = single_line_processor(None, "info", event)
    assert result == {
        "event": "webhook attempt finished",
        "error": "line one\\nline two\\ttab",
        "nested": {"body": "a\\r\\nb"},
        "items": ["x\\ny"],
        "attempt": 2,
    }


def test_configure_logging_sets_level_and_single_handler():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        configure_logging("warning", "json")
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert structlog.is_configured()
    finally:
        structlog.reset_defaults()
        root.handlers = saved_handlers
        root.setLevel(saved_level)
