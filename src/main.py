"""FastAPI application entrypoint for the ledger gateway.

Builds the process-wide ``LedgerDispatcher`` and ``LedgerClient`` once,
and exposes a small operations surface: ``/health`` and
``/dispatcher/status`` for the settings/ops screens, request-ID
middleware, and structured error responses for gateway errors.
"""

import logging
import math
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from src.core.config import Settings, get_ssl_config
from src.core.errors import CircuitOpenError, LedgerGatewayError, StructuredErrorResponse
from src.core.log_setup import configure_logging, request_id_var
from src.ledger_client import LedgerClient
from src.ledger_dispatcher import LedgerDispatcher
from src.models.schemas import DispatcherStatus, HealthResponse, PayableCreated, PayableEntry
from src.resilience.circuit_breaker import CircuitState

logger = logging.getLogger(__name__)

settings = Settings()
configure_logging(settings.LOG_LEVEL)

_start_time = time.monotonic()

dispatcher = LedgerDispatcher.from_settings(settings)
ledger_client = LedgerClient(settings, dispatcher)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Ledger dispatcher ready (spacing %.1fs, %d retries, breaker threshold %d)",
        settings.DISPATCH_SPACING_SECONDS,
        settings.DISPATCH_MAX_RETRIES,
        settings.CIRCUIT_BREAKER_THRESHOLD,
    )
    yield
    await ledger_client.close()
    await dispatcher.close()


app = FastAPI(
    title=settings.SERVICE_NAME,
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next) -> Response:
    """Assign or preserve a unique request ID on every request."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    token = request_id_var.set(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(LedgerGatewayError)
async def gateway_error_handler(request: Request, exc: LedgerGatewayError) -> JSONResponse:
    """Return a structured error body, never a stack trace."""
    request_id = request.headers.get("X-Request-ID") or request_id_var.get() or str(uuid.uuid4())
    body = StructuredErrorResponse.from_exception(exc, request_id)
    status_code = 503 if isinstance(exc, CircuitOpenError) else 502
    headers = {"X-Request-ID": request_id}
    if isinstance(exc, CircuitOpenError):
        headers["Retry-After"] = str(max(1, math.ceil(exc.retry_after)))
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Return service health; ``degraded`` while the ledger circuit is not closed."""
    circuit_closed = dispatcher.circuit_breaker.state == CircuitState.CLOSED
    return HealthResponse(
        service=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
        status="healthy" if circuit_closed else "degraded",
        uptime_seconds=round(time.monotonic() - _start_time, 2),
    )


@app.get("/dispatcher/status", response_model=DispatcherStatus)
async def dispatcher_status() -> DispatcherStatus:
    """Return queue depth and circuit breaker state."""
    return DispatcherStatus.model_validate(dispatcher.get_status())


@app.post("/ledger/payables", status_code=201, response_model=PayableCreated)
async def create_payable(entry: PayableEntry) -> PayableCreated:
    """Book an approved card expense as an account payable in the ledger."""
    payable_id = await ledger_client.include_payable(entry)
    return PayableCreated(id=payable_id)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.HOST,
        port=settings.PORT,
        **(get_ssl_config(settings) or {}),
    )
