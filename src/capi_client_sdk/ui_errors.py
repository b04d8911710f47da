from __future__ import annotations

from dataclasses import dataclass

from .exceptions import (
    ApiError,
    EmptyResponseError,
    PaymentNotFoundError,
    StoreContextRequiredError,
    TransportError,
)

GENERIC_FAILURE = "Não foi possível salvar. Verifique sua conexão."


@dataclass(frozen=True)
class UserFacingError:
    message: str
    details: str | None = None
    trace_id: str | None = None

    @property
    def technical_details(self) -> str | None:
        if self.details:
            return self.details
        return None


def to_user_facing_error(exc: Exception, fallback: str = GENERIC_FAILURE) -> UserFacingError:
    if not isinstance(exc, ApiError):
        return UserFacingError(message=fallback, details=type(exc).__name__)
    if isinstance(exc, (StoreContextRequiredError, PaymentNotFoundError)):
        primary = exc.message
    elif isinstance(exc, (TransportError, EmptyResponseError)):
        primary = fallback
    else:
        primary = fallback if not exc.message.strip() else f"{fallback} ({exc.message.strip()})"
    details = f"{exc.code} (HTTP {exc.status_code})"
    if exc.details:
        details = f"{details}: {exc.details}"
    return UserFacingError(message=primary, details=details, trace_id=exc.trace_id)
