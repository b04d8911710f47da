from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Iterable

from dotenv import load_dotenv


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ClientConfig:
    env_name: str
    api_base_url: str
    connect_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 15.0
    retries: int = 2
    retry_backoff_seconds: float = 0.3
    max_connections: int = 20
    verify_ssl: bool = True
    poll_interval_seconds: float = 3.0
    poll_timeout_seconds: float | None = 1800.0
    success_delay_seconds: float = 3.0
    manual_success_delay_seconds: float = 2.5
    payment_api_base_url: str = "https://api.abacatepay.com/v1"
    payment_api_key: str | None = None
    checkout_url: str | None = None

    @property
    def normalized_env(self) -> str:
        return self.env_name.lower().strip()


def _require(values: dict[str, str | None], required: Iterable[str]) -> None:
    missing = [key for key in required if not values.get(key)]
    if missing:
        raise ConfigError(f"Missing required config values: {', '.join(missing)}")


def _coerce_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _read_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected a number, got {raw!r}") from exc


def _read_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected an integer, got {raw!r}") from exc


def _read_optional_float(name: str, default: str) -> float | None:
    raw = (os.getenv(name) or default).strip().lower()
    if raw in {"", "0", "none", "off"}:
        return None
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid {name}: expected a number or 'off', got {raw!r}") from exc


def _validate(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigError(message)


def load_config(env_file: str | None = None) -> ClientConfig:
    """Load config from environment with optional .env override."""
    load_dotenv(env_file)

    env_name = (os.getenv("CAPI_ENV") or "dev").strip()
    env_key = env_name.upper()

    api_base_url = (
        (os.getenv(f"CAPI_API_BASE_URL_{env_key}") or "").strip()
        or (os.getenv("CAPI_API_BASE_URL") or "").strip()
    )

    timeout_seconds = _read_float("CAPI_TIMEOUT_SECONDS", "10")
    _validate(timeout_seconds > 0, f"Invalid CAPI_TIMEOUT_SECONDS: expected > 0, got {timeout_seconds}")

    connect_timeout_seconds = _read_float("CAPI_CONNECT_TIMEOUT_SECONDS", str(min(timeout_seconds, 5.0)))
    _validate(
        connect_timeout_seconds > 0,
        f"Invalid CAPI_CONNECT_TIMEOUT_SECONDS: expected > 0, got {connect_timeout_seconds}",
    )

    read_timeout_seconds = _read_float(
        "CAPI_READ_TIMEOUT_SECONDS",
        str(max(timeout_seconds, connect_timeout_seconds)),
    )
    _validate(
        read_timeout_seconds > 0,
        f"Invalid CAPI_READ_TIMEOUT_SECONDS: expected > 0, got {read_timeout_seconds}",
    )

    retries = _read_int("CAPI_RETRIES", "2")
    _validate(retries >= 0, f"Invalid CAPI_RETRIES: expected >= 0, got {retries}")

    retry_backoff_seconds = _read_float("CAPI_RETRY_BACKOFF_SECONDS", "0.3")
    _validate(
        retry_backoff_seconds >= 0,
        f"Invalid CAPI_RETRY_BACKOFF_SECONDS: expected >= 0, got {retry_backoff_seconds}",
    )

    max_connections = _read_int("CAPI_MAX_CONNECTIONS", "20")
    _validate(max_connections >= 1, f"Invalid CAPI_MAX_CONNECTIONS: expected >= 1, got {max_connections}")

    poll_interval_seconds = _read_float("CAPI_POLL_INTERVAL_SECONDS", "3")
    _validate(
        poll_interval_seconds > 0,
        f"Invalid CAPI_POLL_INTERVAL_SECONDS: expected > 0, got {poll_interval_seconds}",
    )

    poll_timeout_seconds = _read_optional_float("CAPI_POLL_TIMEOUT_SECONDS", "1800")
    if poll_timeout_seconds is not None:
        _validate(
            poll_timeout_seconds >= poll_interval_seconds,
            (
                "Invalid CAPI_POLL_TIMEOUT_SECONDS: expected >= poll interval "
                f"({poll_interval_seconds}), got {poll_timeout_seconds}"
            ),
        )

    success_delay_seconds = _read_float("CAPI_SUCCESS_DELAY_SECONDS", "3")
    manual_success_delay_seconds = _read_float("CAPI_MANUAL_SUCCESS_DELAY_SECONDS", "2.5")
    _validate(
        success_delay_seconds >= 0 and manual_success_delay_seconds >= 0,
        "Invalid success delay: expected >= 0",
    )

    verify_ssl = _coerce_bool(os.getenv("CAPI_VERIFY_SSL"), True)

    payment_api_base_url = (
        os.getenv("CAPI_PAYMENT_API_BASE_URL") or "https://api.abacatepay.com/v1"
    ).strip().rstrip("/")
    payment_api_key = (os.getenv("CAPI_PAYMENT_API_KEY") or "").strip() or None
    checkout_url = (os.getenv("CAPI_CHECKOUT_URL") or "").strip() or None

    values = {"CAPI_API_BASE_URL": api_base_url}
    _require(values, ["CAPI_API_BASE_URL"])

    return ClientConfig(
        env_name=env_name,
        api_base_url=api_base_url.rstrip("/"),
        connect_timeout_seconds=connect_timeout_seconds,
        read_timeout_seconds=read_timeout_seconds,
        retries=retries,
        retry_backoff_seconds=retry_backoff_seconds,
        max_connections=max_connections,
        verify_ssl=verify_ssl,
        poll_interval_seconds=poll_interval_seconds,
        poll_timeout_seconds=poll_timeout_seconds,
        success_delay_seconds=success_delay_seconds,
        manual_success_delay_seconds=manual_success_delay_seconds,
        payment_api_base_url=payment_api_base_url,
        payment_api_key=payment_api_key,
        checkout_url=checkout_url,
    )
