from __future__ import annotations

import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol

from ..exceptions import ApiError, CheckoutError
from ..logger import get_logger, log_event
from ..models import User
from .base import BaseClient, unwrap_data

logger = get_logger(__name__)

PLAN_EXTERNAL_ID = "capi-pro-monthly"
PLAN_NAME = "Assinatura CAPI Pro"
PLAN_PRICE_CENTS = 4990
_PAID_BILLING_STATUSES = {"PAID", "COMPLETED"}


class PaymentStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PENDING = "PENDING"


class PaymentProvider(Protocol):
    async def create_checkout(self, user: User) -> str: ...

    async def check_payment_status(self, email: str) -> PaymentStatus: ...


def digits_only(value: str | None) -> str:
    return re.sub(r"\D", "", value or "")


@dataclass
class AbacatePayClient(BaseClient):
    """Hosted PIX checkout: customer lookup/creation, one-time billing, billing status."""

    return_url: str | None = None

    module = "payments"

    async def create_checkout(self, user: User) -> str:
        tax_id = digits_only(user.tax_id)
        phone = digits_only(user.phone)
        if len(tax_id) < 11:
            raise CheckoutError(
                code="INVALID_TAX_ID",
                message=f"CPF inválido ou incompleto: {tax_id}",
                details={"length": len(tax_id)},
            )
        try:
            customer_id = await self._find_customer_id(user.email)
            if customer_id is None:
                customer_id = await self._create_customer(user, tax_id, phone)
            billing = await self._request(
                "POST",
                "/billing/create",
                json_body={
                    "frequency": "ONE_TIME",
                    "methods": ["PIX"],
                    "products": [
                        {
                            "externalId": PLAN_EXTERNAL_ID,
                            "name": PLAN_NAME,
                            "description": "Acesso ilimitado ao sistema.",
                            "quantity": 1,
                            "price": PLAN_PRICE_CENTS,
                        }
                    ],
                    "returnUrl": self.return_url,
                    "completionUrl": self.return_url,
                    "customerId": customer_id,
                },
                operation="billing.create",
            )
        except CheckoutError:
            raise
        except ApiError as exc:
            raise CheckoutError(
                code=exc.code,
                message=exc.message,
                details=exc.details,
                trace_id=exc.trace_id,
                status_code=exc.status_code,
                raw_payload=exc.raw_payload,
            ) from exc
        data = unwrap_data(billing)
        url = data.get("url") if isinstance(data, dict) else None
        if not url:
            raise CheckoutError(code="EMPTY_CHECKOUT", message="Provider returned no checkout url")
        log_event(logger, "checkout.created", customer_id=customer_id)
        return str(url)

    async def check_payment_status(self, email: str) -> PaymentStatus:
        try:
            payload = await self._request(
                "GET",
                "/billing/list",
                params={"_ts": int(time.time() * 1000)},
                operation="billing.list",
            )
        except ApiError as exc:
            log_event(logger, "payment_status.inconclusive", code=exc.code, status_code=exc.status_code)
            return PaymentStatus.PENDING
        bills = unwrap_data(payload)
        if not isinstance(bills, list):
            return PaymentStatus.PENDING
        mine = [bill for bill in bills if isinstance(bill, dict) and _matches_email(bill.get("customer"), email)]
        if not mine:
            return PaymentStatus.PENDING
        latest = max(mine, key=_created_at)
        if str(latest.get("status") or "").upper() in _PAID_BILLING_STATUSES:
            return PaymentStatus.ACTIVE
        return PaymentStatus.PENDING

    async def _find_customer_id(self, email: str) -> str | None:
        try:
            payload = await self._request(
                "GET",
                "/customer/list",
                params={"ts": int(time.time() * 1000)},
                operation="customer.list",
            )
        except ApiError as exc:
            # listing is best effort; creation below is authoritative
            log_event(logger, "customer.list_failed", code=exc.code, status_code=exc.status_code)
            return None
        customers = unwrap_data(payload)
        if not isinstance(customers, list):
            return None
        for customer in customers:
            if _matches_email(customer, email):
                return str(customer.get("id"))
        return None

    async def _create_customer(self, user: User, tax_id: str, phone: str) -> str:
        payload = await self._request(
            "POST",
            "/customer/create",
            json_body={
                "name": user.name,
                "email": user.email,
                "cellphone": phone,
                "taxId": tax_id,
            },
            operation="customer.create",
        )
        data = unwrap_data(payload)
        if not isinstance(data, dict) or not data.get("id"):
            raise CheckoutError(code="CUSTOMER_NOT_CREATED", message="Erro ao cadastrar cliente.")
        return str(data["id"])


@dataclass
class BackendPaymentClient(BaseClient):
    """Fixed offer checkout URL with status checks proxied by the CAPI backend."""

    checkout_url: str | None = None

    module = "payments"

    async def create_checkout(self, user: User) -> str:
        if not self.checkout_url:
            raise CheckoutError(
                code="CHECKOUT_NOT_CONFIGURED",
                message="URL de checkout não configurada. Configure CAPI_CHECKOUT_URL.",
            )
        return self.checkout_url

    async def check_payment_status(self, email: str) -> PaymentStatus:
        try:
            payload = await self._request(
                "POST",
                "/check-payment-status",
                json_body={"email": email},
                operation="payment_status.check",
            )
        except ApiError as exc:
            log_event(logger, "payment_status.inconclusive", code=exc.code, status_code=exc.status_code)
            return PaymentStatus.PENDING
        if isinstance(payload, dict) and payload.get("status") == "PAID":
            return PaymentStatus.ACTIVE
        return PaymentStatus.PENDING


def _matches_email(customer: object, email: str) -> bool:
    if not isinstance(customer, dict):
        return False
    metadata = customer.get("metadata")
    if customer.get("email") == email:
        return True
    return isinstance(metadata, dict) and metadata.get("email") == email


def _created_at(bill: dict[str, Any]) -> datetime:
    raw = bill.get("createdAt")
    if not isinstance(raw, str):
        return datetime.min.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
