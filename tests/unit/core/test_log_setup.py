"""Tests for logging setup and request-id tagging."""

import logging

import pytest

from src.core.log_setup import RequestIdFilter, configure_logging, request_id_var


def _record() -> logging.LogRecord:
    return logging.LogRecord("src.ledger_dispatcher", logging.INFO, __file__, 1, "queued", None, None)


@pytest.fixture
def clean_root():
    """Restore the root logger's handlers and level after the test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestRequestIdFilter:
    def test_no_request_in_context(self):
        record = _record()
        assert RequestIdFilter().filter(record) is True
        assert record.request_id is None
        assert record.request_tag == ""

    def test_tags_record_with_short_id(self):
        token = request_id_var.set("0f8fad5b-d9cb-469f-a165-70867728950e")
        try:
            record = _record()
            RequestIdFilter().filter(record)
        finally:
            request_id_var.reset(token)
        assert record.request_id == "0f8fad5b-d9cb-469f-a165-70867728950e"
        assert record.request_tag == " [0f8fad5b]"


class TestConfigureLogging:
    def test_installs_single_handler(self, clean_root):
        configure_logging("debug")
        configure_logging("debug")
        ours = [h for h in clean_root.handlers if getattr(h, "_ledger_gateway", False)]
        assert len(ours) == 1
        assert clean_root.level == logging.DEBUG

    def test_level_updated_on_reconfigure(self, clean_root):
        configure_logging("INFO")
        configure_logging("WARNING")
        assert clean_root.level == logging.WARNING

    def test_formatted_line_carries_request_tag(self, clean_root):
        configure_logging("INFO")
        handler = next(h for h in clean_root.handlers if getattr(h, "_ledger_gateway", False))
        token = request_id_var.set("abcdef12-3456")
        try:
            record = _record()
            handler.filter(record)
            line = handler.format(record)
        finally:
            request_id_var.reset(token)
        assert "[INFO] [abcdef12] src.ledger_dispatcher: queued" in line
