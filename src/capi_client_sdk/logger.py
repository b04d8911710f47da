from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

_SENSITIVE_KEYS = {"email", "password", "phone", "token", "authorization", "tax_id", "taxId"}


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(level=level, format="%(message)s")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def _scrub(fields: dict[str, Any]) -> dict[str, Any]:
    return {key: ("***" if key in _SENSITIVE_KEYS and value else value) for key, value in fields.items()}


def log_event(
    logger: logging.Logger,
    event: str,
    *,
    level: int = logging.INFO,
    **fields: Any,
) -> None:
    """Emit one JSON object per line."""
    if not logger.isEnabledFor(level):
        return
    payload = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "level": logging.getLevelName(level),
        "logger": logger.name,
        "event": event,
        **_scrub(fields),
    }
    logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))
