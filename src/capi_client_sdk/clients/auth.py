from __future__ import annotations

from dataclasses import dataclass

from ..auth_store import AuthStore
from ..exceptions import ApiError, PaymentNotFoundError
from ..models import User
from .base import BaseClient, unwrap_data


@dataclass
class AuthClient(BaseClient):
    auth_store: AuthStore | None = None

    module = "auth"

    def current_user(self) -> User | None:
        if self.auth_store is None:
            return None
        session = self.auth_store.load()
        return session.user if session else None

    async def activate_subscription(self, user_id: str) -> User:
        try:
            payload = await self._request(
                "POST",
                f"/users/{user_id}/activate-subscription",
                operation="subscription.activate",
            )
        except PaymentNotFoundError as exc:
            exc.message = "Pagamento não encontrado. Complete o pagamento via Pix primeiro."
            raise
        user = _parse_user(payload)
        if self.auth_store is not None:
            self.auth_store.save_user(user)
        return user

    async def update_profile(self, user: User) -> User:
        payload = await self._request(
            "PUT",
            f"/users/{user.id}",
            json_body=user.to_payload(),
            operation="profile.update",
        )
        updated = _parse_user(payload)
        if self.auth_store is not None:
            self.auth_store.save_user(updated)
        return updated


def _parse_user(payload) -> User:
    data = unwrap_data(payload)
    if not isinstance(data, dict):
        raise ApiError(code="INVALID_RESPONSE", message="Expected user payload to be a JSON object")
    return User.model_validate(data)
