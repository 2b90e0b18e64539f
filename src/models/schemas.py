"""Pydantic models for the ledger gateway.

Response models for the operations endpoints and the validated shape of
a payable entry pushed to the ledger.
"""

from pydantic import BaseModel, Field, field_validator

from src.security.input_validators import sanitize_text

_DATE_PATTERN = r"^\d{2}/\d{2}/\d{4}$"


class HealthResponse(BaseModel):
    """Response model for GET /health."""

    service: str
    version: str
    status: str
    uptime_seconds: float


class CircuitBreakerStatus(BaseModel):
    """Snapshot of the ledger circuit breaker."""

    state: str
    failure_count: int
    failure_threshold: int
    remaining_block_ms: int
    total_failures: int = 0
    total_rejections: int = 0
    total_successes: int = 0


class DispatcherStatus(BaseModel):
    """Response model for GET /dispatcher/status."""

    queue_size: int
    is_processing: bool
    circuit_breaker: CircuitBreakerStatus


# ── Ledger payloads ─────────────────────────────────────────────────────


class PayableEntry(BaseModel):
    """An approved card expense to be booked as an account payable.

    Dates use the ledger's ``DD/MM/YYYY`` format; ``competence`` is ``MM/YYYY``.
    """

    due_date: str = Field(..., pattern=_DATE_PATTERN)
    amount: float = Field(..., gt=0)
    category: str = Field(default="", max_length=200)
    description: str = Field(default="", max_length=500)
    supplier: str = Field(default="", max_length=200)
    document_number: str = Field(default="", max_length=100)
    issue_date: str = Field(default="", pattern=rf"{_DATE_PATTERN}|^$")
    competence: str = Field(default="", pattern=r"^\d{2}/\d{4}$|^$")

    @field_validator("description", "supplier", "category", mode="before")
    @classmethod
    def flatten_text(cls, v: str) -> str:
        if isinstance(v, str):
            return sanitize_text(v)
        return v


class PayableCreated(BaseModel):
    """Response model for POST /ledger/payables."""

    id: str | None
