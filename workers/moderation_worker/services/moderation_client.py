from __future__ import annotations

from typing import Any

import httpx


class ModerationClient:
    """Machine-authenticated client for the moderation API's relay and rebuild endpoints."""

    def __init__(
        self,
        base_url: str,
        module_id: str,
        api_key: str,
        *,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = {
            "X-Module-Id": module_id,
            "X-API-Key": api_key,
        }
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def list_outbox(self, limit: int = 50) -> list[dict[str, Any]]:
        async with self._client() as client:
            response = await client.get(
                f"{self.base_url}/notifications/outbox",
                params={"limit": limit},
                headers=self.headers,
            )
            response.raise_for_status()
            return response.json()

    async def ack_outbox(self, entry_id: int) -> dict[str, Any]:
        async with self._client() as client:
            response = await client.post(
                f"{self.base_url}/notifications/outbox/{entry_id}/ack",
                headers=self.headers,
            )
            response.raise_for_status()
            return response.json()

    async def rebuild_derived_state(self) -> dict[str, int]:
        async with self._client() as client:
            response = await client.post(f"{self.base_url}/admin/derived/rebuild", headers=self.headers)
            response.raise_for_status()
            payload = response.json()
            return {
                "counters": int(payload.get("counters", 0)),
                "worklist_entries": int(payload.get("worklist_entries", 0)),
            }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport)
