"""Structured errors for the ledger gateway.

Custom exception hierarchy rooted at ``LedgerGatewayError`` plus the
``StructuredErrorResponse`` model returned by the HTTP surface.

Retry classification reads ``status_code`` from these exceptions, so
``LedgerRequestError`` keeps the HTTP status the ledger answered with.
"""

import math

from pydantic import BaseModel


class LedgerGatewayError(Exception):
    """Base exception for all ledger-gateway errors."""


class CircuitOpenError(LedgerGatewayError):
    """Raised when the dispatcher refuses a call because the circuit is open.

    Never counted as a circuit failure: the call never reached the ledger.

    Attributes:
        retry_after: Seconds until the circuit allows a probe.
    """

    def __init__(self, retry_after: float) -> None:
        self.retry_after = max(0.0, retry_after)
        super().__init__(f"Ledger API unavailable, retry after {math.ceil(self.retry_after)} seconds")


class LedgerRequestError(LedgerGatewayError):
    """Raised when the ledger answers an HTTP request with status >= 400."""

    def __init__(self, endpoint: str, status_code: int, detail: str = "") -> None:
        self.endpoint = endpoint
        self.status_code = status_code
        self.detail = detail
        msg = f"Ledger request to '{endpoint}' failed with HTTP {status_code}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class LedgerRejectedError(LedgerGatewayError):
    """Raised when the ledger answers but refuses the payload.

    The ledger reports business errors inside a ``retorno`` envelope with
    HTTP 200, so these are never retried.
    """

    def __init__(self, endpoint: str, errors: list[str]) -> None:
        self.endpoint = endpoint
        self.errors = errors
        joined = "; ".join(errors) if errors else "no detail"
        super().__init__(f"Ledger rejected '{endpoint}': {joined}")


class LedgerConfigurationError(LedgerGatewayError):
    """Raised when a local setting required for ledger calls is missing."""


class StructuredErrorResponse(BaseModel):
    """Structured error response.

    Returns ``{"error": str, "code": str, "request_id": str}``, never a stack trace.
    """

    error: str
    code: str
    request_id: str

    @classmethod
    def from_exception(cls, exc: Exception, request_id: str) -> "StructuredErrorResponse":
        """Create from an exception, mapping to machine-readable codes.

        Never leaks internal details for unhandled exceptions.
        """
        if isinstance(exc, CircuitOpenError):
            return cls(error=str(exc), code="CIRCUIT_OPEN", request_id=request_id)
        if isinstance(exc, LedgerRequestError):
            return cls(error=str(exc), code="LEDGER_REQUEST_FAILED", request_id=request_id)
        if isinstance(exc, LedgerRejectedError):
            return cls(error=str(exc), code="LEDGER_REJECTED", request_id=request_id)
        if isinstance(exc, LedgerGatewayError):
            return cls(error=str(exc), code="GATEWAY_ERROR", request_id=request_id)
        # Unhandled: never expose internal details
        return cls(
            error="An internal error occurred",
            code="INTERNAL_ERROR",
            request_id=request_id,
        )
