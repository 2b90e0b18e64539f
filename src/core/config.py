"""Settings for the ledger-gateway service.

Centralized configuration for the dispatcher, the ledger API client and
the operations HTTP surface.  All settings are loaded from environment
variables with the LEDGER_GATEWAY_ prefix.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Ledger gateway configuration.

    All fields can be overridden by environment variables prefixed with
    ``LEDGER_GATEWAY_``.  For example, ``LEDGER_GATEWAY_DISPATCH_SPACING_SECONDS=3``
    widens the gap between ledger calls.
    """

    # ── Service identity ────────────────────────────────────────────
    SERVICE_NAME: str = "ledger-gateway"
    SERVICE_VERSION: str = "0.1.0"
    HOST: str = "0.0.0.0"
    PORT: int = 8090
    LOG_LEVEL: str = "INFO"

    # ── Ledger API ──────────────────────────────────────────────────
    LEDGER_API_URL: str = "https://api.tiny.com.br/api2"
    LEDGER_API_TOKEN: str = ""
    LEDGER_REQUEST_TIMEOUT_SECONDS: float = 30.0
    LEDGER_SEARCH_MAX_PAGES: int = 3  # 20 records per page

    # ── Dispatch cadence and retry ──────────────────────────────────
    DISPATCH_SPACING_SECONDS: float = 2.1  # Minimum gap between attempt starts
    DISPATCH_MAX_RETRIES: int = 3  # Retries after the first attempt
    DISPATCH_BACKOFF_UNIT_SECONDS: float = 3.0
    DISPATCH_BACKOFF_BASE: float = 3.0  # 3s → 9s → 27s

    # ── Circuit breaker ─────────────────────────────────────────────
    CIRCUIT_BREAKER_THRESHOLD: int = 5  # Consecutive failed submissions before OPEN
    CIRCUIT_BREAKER_COOLDOWN_SECONDS: float = 60.0  # Seconds before HALF_OPEN probe
    CIRCUIT_BREAKER_COUNT_EVERY_ATTEMPT: bool = False  # Count retries individually

    # ── TLS ─────────────────────────────────────────────────────────
    TLS_ENABLED: bool = False
    TLS_CERT_PATH: str = ""
    TLS_KEY_PATH: str = ""

    model_config = {
        "env_prefix": "LEDGER_GATEWAY_",
    }


def get_ssl_config(settings: Settings) -> dict | None:
    """Build uvicorn SSL kwargs from Settings.

    Returns ``None`` when TLS is disabled (dev mode).
    Raises ``ValueError`` if paths are empty, or ``FileNotFoundError``
    if the referenced cert/key files do not exist on disk.
    """
    if not settings.TLS_ENABLED:
        return None

    if not settings.TLS_CERT_PATH or not settings.TLS_KEY_PATH:
        raise ValueError("TLS_CERT_PATH and TLS_KEY_PATH are required when TLS_ENABLED=true")

    cert_path = Path(settings.TLS_CERT_PATH)
    key_path = Path(settings.TLS_KEY_PATH)

    if not cert_path.exists():
        raise FileNotFoundError(f"TLS certificate not found: {cert_path}")
    if not key_path.exists():
        raise FileNotFoundError(f"TLS private key not found: {key_path}")

    return {
        "ssl_certfile": str(cert_path),
        "ssl_keyfile": str(key_path),
    }
