"""Billing configuration helpers."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

SUPPORTED_PROVIDERS = {"stripe", "sandbox"}
SUPPORTED_STORAGE = {"postgres", "memory"}


@dataclass(frozen=True)
class BillingConfig:
    """Configuration for the payment provider and billing persistence."""

    provider_name: str
    stripe_secret_key: Optional[str]
    stripe_webhook_secret: Optional[str]
    stripe_api_timeout_seconds: float
    stripe_max_retries: int
    storage: str
    log_level: str


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _to_float(value: Optional[str], *, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected float value, got {value!r}") from exc


def _choice(value: Optional[str], *, default: str, allowed: set, name: str) -> str:
    normalized = (value or default).strip().lower() or default
    if normalized not in allowed:
        raise ValueError(f"{name} must be one of {sorted(allowed)}, got {value!r}")
    return normalized


def load_billing_config(env: Optional[Mapping[str, str]] = None) -> BillingConfig:
    """Load :class:`BillingConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    provider_name = _choice(
        env_mapping.get("BILLING_PROVIDER"),
        default="sandbox",
        allowed=SUPPORTED_PROVIDERS,
        name="BILLING_PROVIDER",
    )
    storage = _choice(
        env_mapping.get("BILLING_STORAGE"),
        default="postgres",
        allowed=SUPPORTED_STORAGE,
        name="BILLING_STORAGE",
    )

    timeout = max(0.0, _to_float(env_mapping.get("STRIPE_API_TIMEOUT_SECONDS"), default=10.0))
    max_retries = max(0, _to_int(env_mapping.get("STRIPE_MAX_RETRIES"), default=2))

    return BillingConfig(
        provider_name=provider_name,
        stripe_secret_key=env_mapping.get("STRIPE_SECRET_KEY") or None,
        stripe_webhook_secret=env_mapping.get("STRIPE_WEBHOOK_SECRET") or None,
        stripe_api_timeout_seconds=timeout,
        stripe_max_retries=max_retries,
        storage=storage,
        log_level=(env_mapping.get("BILLING_LOG_LEVEL") or "INFO").strip().upper(),
    )


__all__ = ["BillingConfig", "load_billing_config"]
