from __future__ import annotations

from typing import Any, Mapping

from ..exceptions import empty_response
from .base import BaseClient, unwrap_data


class DataClient(BaseClient):
    """Generic CRUD accessor over store-scoped REST resources."""

    module = "data"

    async def fetch(self, store_id: str, resource: str) -> list[dict[str, Any]]:
        payload = await self._request(
            "GET",
            f"/stores/{store_id}/{resource}",
            operation=f"{resource}.list",
        )
        data = unwrap_data(payload)
        if not isinstance(data, list):
            return []
        return data

    async def create(self, store_id: str, resource: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        response = await self._request(
            "POST",
            f"/stores/{store_id}/{resource}",
            json_body=dict(payload),
            operation=f"{resource}.create",
        )
        data = unwrap_data(response)
        if not isinstance(data, dict) or not data.get("id"):
            raise empty_response(resource, self.http.trace.trace_id if self.http.trace else None)
        return data

    async def update(self, resource: str, entity_id: str, payload: Mapping[str, Any]) -> dict[str, Any] | None:
        response = await self._request(
            "PUT",
            f"/{resource}/{entity_id}",
            json_body=dict(payload),
            operation=f"{resource}.update",
        )
        data = unwrap_data(response)
        return data if isinstance(data, dict) else None

    async def delete(self, resource: str, entity_id: str) -> None:
        await self._request(
            "DELETE",
            f"/{resource}/{entity_id}",
            operation=f"{resource}.delete",
        )
