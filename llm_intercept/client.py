"""HTTP client for the host's session API."""

from __future__ import annotations

from typing import Any

import httpx


class HttpSessionClient:
    """``SessionClient`` over the host HTTP API.

    Endpoints:
        GET {base_url}/session/{id}
        GET {base_url}/session/{id}/message?limit=N
    """

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=10.0),
        )

    async def _get_json(self, path: str, params: dict | None = None) -> Any:
        resp = await self._client.get(f"{self.base_url}{path}", params=params)
        resp.raise_for_status()
        return resp.json()

    async def get_session(self, session_id: str) -> dict:
        return await self._get_json(f"/session/{session_id}")

    async def list_messages(self, session_id: str, limit: int = 100) -> Any:
        return await self._get_json(
            f"/session/{session_id}/message", params={"limit": limit},
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
