from __future__ import annotations

import pytest

from capi_client_sdk.error_mapper import map_error
from capi_client_sdk.exceptions import (
    ApiError,
    AuthError,
    ConflictError,
    NotFoundError,
    PaymentNotFoundError,
    PermissionError,
    RateLimitError,
    ServerError,
    StoreContextRequiredError,
    TransportError,
    ValidationError,
    store_context_required,
)
from capi_client_sdk.ui_errors import GENERIC_FAILURE, to_user_facing_error


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        (401, AuthError),
        (402, PaymentNotFoundError),
        (403, PermissionError),
        (404, NotFoundError),
        (400, ValidationError),
        (422, ValidationError),
        (409, ConflictError),
        (429, RateLimitError),
        (502, ServerError),
        (418, ApiError),
    ],
)
def test_map_error_picks_class_from_status(status: int, expected: type[ApiError]) -> None:
    error = map_error(status, {"code": "X", "message": "boom"}, "trace-1")

    assert type(error) is expected
    assert error.status_code == status
    assert error.trace_id == "trace-1"


def test_map_error_reads_provider_error_shape() -> None:
    error = map_error(400, {"error": {"message": "taxId inválido"}}, None)

    assert error.code == "HTTP_ERROR"
    assert error.message == "taxId inválido"
    assert error.raw_payload == {"error": {"message": "taxId inválido"}}


def test_store_context_error_is_a_validation_error() -> None:
    error = store_context_required("customers.create")

    assert isinstance(error, StoreContextRequiredError)
    assert isinstance(error, ValidationError)
    assert error.details == {"operation": "customers.create"}


def test_user_facing_messages() -> None:
    offline = to_user_facing_error(TransportError(code="TRANSPORT_ERROR", message="timed out"))
    server = to_user_facing_error(ServerError(code="DB", message="lock timeout", status_code=500, trace_id="t-1"))
    store = to_user_facing_error(store_context_required("transactions.create"))
    unknown = to_user_facing_error(KeyError("x"), "Erro ao salvar.")

    assert offline.message == GENERIC_FAILURE
    assert server.message == f"{GENERIC_FAILURE} (lock timeout)"
    assert server.trace_id == "t-1"
    assert server.technical_details == "DB (HTTP 500)"
    assert store.message == "Você não está vinculado a uma loja."
    assert unknown.message == "Erro ao salvar."
    assert unknown.details == "KeyError"
