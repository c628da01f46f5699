"""Runtime settings for the surplus core.

Settings come from environment variables so the same build runs in
development, test and production. Defaults suit local development: an
in-memory store and a 10% platform fee.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass

from protean.exceptions import ConfigurationError

DEFAULT_PLATFORM_FEE = 0.10


@dataclass(frozen=True)
class Settings:
    database_uri: str | None = None
    currency: str = "USD"
    platform_fee_fraction: float = DEFAULT_PLATFORM_FEE
    claim_retry_attempts: int = 3
    retry_backoff_seconds: float = 0.05
    sweep_batch_size: int = 500


def _float(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = environ.get(key)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}") from exc


def _int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from exc


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build ``Settings`` from the environment (or an explicit mapping)."""
    environ = os.environ if environ is None else environ

    fee = _float(environ, "SURPLUS_PLATFORM_FEE", DEFAULT_PLATFORM_FEE)
    if not 0.0 <= fee < 1.0:
        raise ConfigurationError(f"SURPLUS_PLATFORM_FEE must be in [0, 1), got {fee}")

    attempts = _int(environ, "SURPLUS_CLAIM_RETRY_ATTEMPTS", 3)
    if attempts < 1:
        raise ConfigurationError("SURPLUS_CLAIM_RETRY_ATTEMPTS must be at least 1")

    return Settings(
        database_uri=environ.get("SURPLUS_DATABASE_URI") or None,
        currency=environ.get("SURPLUS_CURRENCY", "USD").upper(),
        platform_fee_fraction=fee,
        claim_retry_attempts=attempts,
        retry_backoff_seconds=_float(environ, "SURPLUS_RETRY_BACKOFF_SECONDS", 0.05),
        sweep_batch_size=_int(environ, "SURPLUS_SWEEP_BATCH_SIZE", 500),
    )
