from __future__ import annotations

import asyncio
import itertools
import sys
from pathlib import Path
from typing import Any, Mapping

import pytest

BASE_DIR = Path(__file__).resolve().parents[1]
SDK_SRC = BASE_DIR / "src"

sys.path.insert(0, str(SDK_SRC))

from capi_client_sdk.models import SubscriptionStatus, User  # noqa: E402


class FakeData:
    """In-memory stand-in for DataClient that records every call."""

    def __init__(self, collections: Mapping[str, list[dict[str, Any]]] | None = None) -> None:
        self.collections = {key: list(value) for key, value in (collections or {}).items()}
        self.calls: list[tuple[str, str, Any]] = []
        self._scripts: dict[tuple[str, str], list[Any]] = {}
        self._always: dict[tuple[str, str], BaseException] = {}
        self._gates: dict[str, asyncio.Event] = {}
        self._ids = itertools.count(1)

    def fail(self, method: str, resource: str, exc: BaseException) -> None:
        self._always[(method, resource)] = exc

    def script(self, method: str, resource: str, *outcomes: Any) -> None:
        """Queue per-call outcomes: None behaves normally, exceptions are raised, anything else is returned."""
        self._scripts[(method, resource)] = list(outcomes)

    def gate(self, method: str, event: asyncio.Event) -> None:
        self._gates[method] = event

    def calls_for(self, method: str, resource: str | None = None) -> list[tuple[str, str, Any]]:
        return [call for call in self.calls if call[0] == method and (resource is None or call[1] == resource)]

    async def _settle(self, method: str, resource: str) -> tuple[bool, Any]:
        gate = self._gates.get(method)
        if gate is not None:
            await gate.wait()
        if (method, resource) in self._always:
            raise self._always[(method, resource)]
        queued = self._scripts.get((method, resource))
        if queued:
            outcome = queued.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            if outcome is not None:
                return True, outcome
        return False, None

    async def fetch(self, store_id: str, resource: str) -> list[dict[str, Any]]:
        self.calls.append(("fetch", resource, store_id))
        scripted, result = await self._settle("fetch", resource)
        return result if scripted else list(self.collections.get(resource, []))

    async def create(self, store_id: str, resource: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        self.calls.append(("create", resource, dict(payload)))
        scripted, result = await self._settle("create", resource)
        if scripted:
            return result
        return {**payload, "id": f"{resource}-{next(self._ids)}"}

    async def update(self, resource: str, entity_id: str, payload: Mapping[str, Any]) -> dict[str, Any] | None:
        self.calls.append(("update", resource, (entity_id, dict(payload))))
        scripted, result = await self._settle("update", resource)
        return result if scripted else None

    async def delete(self, resource: str, entity_id: str) -> None:
        self.calls.append(("delete", resource, entity_id))
        await self._settle("delete", resource)


@pytest.fixture
def fake_data() -> FakeData:
    return FakeData()


@pytest.fixture
def store_user() -> User:
    return User(
        id="user-1",
        name="Ana Souza",
        email="ana@example.com",
        tax_id="123.456.789-01",
        phone="(11) 98888-7777",
        store_id="store-1",
        subscription_status=SubscriptionStatus.PENDING,
    )
