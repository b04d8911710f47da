from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ApiError(Exception):
    code: str
    message: str
    details: object | None = None
    trace_id: str | None = None
    status_code: int = 0
    raw_payload: object | None = None

    def __str__(self) -> str:
        trace = f" trace_id={self.trace_id}" if self.trace_id else ""
        return f"[{self.status_code}] {self.code}: {self.message}{trace}"


class UnauthorizedError(ApiError):
    pass


class ForbiddenError(ApiError):
    pass


class NotFoundError(ApiError):
    pass


class ValidationError(ApiError):
    pass


class AuthError(UnauthorizedError):
    """Authentication failed or session is invalid."""


class PermissionError(ForbiddenError):
    """Authorization denied for the active store."""


class ConflictError(ApiError):
    """409 or conflict-style errors."""


class RateLimitError(ApiError):
    """429 throttling error."""


class ServerError(ApiError):
    """5xx server-side failures."""


class TransportError(ApiError):
    """Network/transport failure before an HTTP response was returned."""


class EmptyResponseError(ApiError):
    """A create call succeeded at HTTP level but returned no usable entity."""


class StoreContextRequiredError(ValidationError):
    """Store-scoped operation attempted without a resolvable store id."""


class PaymentNotFoundError(ApiError):
    """Subscription activation refused because no payment was found (HTTP 402)."""


class CheckoutError(ApiError):
    """Checkout session could not be created with the payment provider."""


def store_context_required(operation: str) -> StoreContextRequiredError:
    return StoreContextRequiredError(
        code="STORE_CONTEXT_REQUIRED",
        message="Você não está vinculado a uma loja.",
        details={"operation": operation},
    )


def empty_response(resource: str, trace_id: str | None = None) -> EmptyResponseError:
    return EmptyResponseError(
        code="EMPTY_RESPONSE",
        message=f"Server returned no {resource} entity",
        details={"resource": resource},
        trace_id=trace_id,
    )
