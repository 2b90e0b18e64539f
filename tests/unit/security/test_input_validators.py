"""Tests for input sanitization utilities.

Covers null-byte stripping, NFC normalization and single-line flattening
of descriptions sent to the ledger.
"""

import unicodedata

from src.security.input_validators import sanitize_string, sanitize_text


class TestSanitizeString:
    """sanitize_string() strips null bytes and normalizes Unicode NFC."""

    def test_strips_null_bytes(self):
        assert sanitize_string("hello\x00world") == "helloworld"

    def test_normalizes_unicode_nfc(self):
        nfd = "Carta\u0303o"
        assert sanitize_string(nfd) == unicodedata.normalize("NFC", nfd)

    def test_passthrough_clean_string(self):
        assert sanitize_string("clean string") == "clean string"


class TestSanitizeText:
    """sanitize_text() returns a trimmed single line."""

    def test_none_becomes_empty(self):
        assert sanitize_text(None) == ""

    def test_empty_stays_empty(self):
        assert sanitize_text("") == ""

    def test_line_breaks_become_spaces(self):
        assert sanitize_text("POSTO\r\nSHELL\nSP") == "POSTO SHELL SP"

    def test_collapses_whitespace_runs(self):
        assert sanitize_text("  Mercado   Pago |\tUBER  ") == "Mercado Pago | UBER"

    def test_strips_null_bytes(self):
        assert sanitize_text("UBER\x00 TRIP") == "UBER TRIP"
