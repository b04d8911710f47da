from __future__ import annotations

from dataclasses import dataclass

from ..http_client import HttpClient


@dataclass
class BaseClient:
    http: HttpClient
    access_token: str | None = None
    store_id: str | None = None

    module = "unknown"

    def _auth_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        if self.store_id:
            headers["X-Store-ID"] = self.store_id
        return headers

    async def _request(self, method: str, path: str, **kwargs):
        headers = kwargs.pop("headers", {})
        merged = {**self._auth_headers(), **headers}
        kwargs.setdefault("module", self.module)
        return await self.http.request(method, path, headers=merged, **kwargs)


def unwrap_data(payload):
    """Backend responses wrap the useful part in ``{"data": ...}``."""
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload
