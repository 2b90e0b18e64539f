"""Tests for the gateway's Pydantic models.

Covers PayableEntry validation and text flattening, and the status
models built from the dispatcher's get_status() dict.
"""

import pytest
from pydantic import ValidationError

from src.models.schemas import DispatcherStatus, PayableEntry


class TestPayableEntry:
    """PayableEntry enforces ledger date formats and positive amounts."""

    def test_minimal_entry(self):
        entry = PayableEntry(due_date="10/03/2025", amount=129.9)
        assert entry.category == ""
        assert entry.issue_date == ""

    def test_rejects_iso_due_date(self):
        with pytest.raises(ValidationError):
            PayableEntry(due_date="2025-03-10", amount=10)

    def test_rejects_zero_amount(self):
        with pytest.raises(ValidationError):
            PayableEntry(due_date="10/03/2025", amount=0)

    def test_rejects_bad_competence(self):
        with pytest.raises(ValidationError):
            PayableEntry(due_date="10/03/2025", amount=1, competence="2025-03")

    def test_accepts_competence(self):
        entry = PayableEntry(due_date="10/03/2025", amount=1, competence="03/2025")
        assert entry.competence == "03/2025"

    def test_description_is_flattened(self):
        entry = PayableEntry(
            due_date="10/03/2025",
            amount=1,
            description="Mercado Pago |\n  POSTO   SHELL",
        )
        assert entry.description == "Mercado Pago | POSTO SHELL"

    def test_description_length_limit(self):
        with pytest.raises(ValidationError):
            PayableEntry(due_date="10/03/2025", amount=1, description="x" * 501)


class TestDispatcherStatus:
    """DispatcherStatus validates the dispatcher's status dict."""

    def test_from_status_dict(self):
        status = DispatcherStatus.model_validate(
            {
                "queue_size": 2,
                "is_processing": True,
                "circuit_breaker": {
                    "state": "open",
                    "failure_count": 5,
                    "failure_threshold": 5,
                    "remaining_block_ms": 42000,
                },
            }
        )
        assert status.queue_size == 2
        assert status.circuit_breaker.state == "open"
        assert status.circuit_breaker.total_rejections == 0
