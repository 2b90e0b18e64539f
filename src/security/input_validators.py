"""Input sanitization for text sent to the ledger.

Provides ``sanitize_string()`` for null-byte stripping and Unicode NFC
normalization, and ``sanitize_text()`` which additionally flattens line
breaks and runs of whitespace so statement descriptions fit the ledger's
single-line history field.
"""

from __future__ import annotations

import re
import unicodedata

_LINE_BREAKS = re.compile(r"[\r\n]+")
_WHITESPACE = re.compile(r"\s+")


def sanitize_string(value: str) -> str:
    """Strip null bytes and normalize to Unicode NFC.

    Applied as a Pydantic ``field_validator`` on user-facing string fields.
    """
    value = value.replace("\x00", "")
    value = unicodedata.normalize("NFC", value)
    return value


def sanitize_text(value: str | None) -> str:
    """Return *value* as a single trimmed line (empty string for ``None``)."""
    if not value:
        return ""
    value = sanitize_string(value)
    value = _LINE_BREAKS.sub(" ", value)
    return _WHITESPACE.sub(" ", value).strip()
