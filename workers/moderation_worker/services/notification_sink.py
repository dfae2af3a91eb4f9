from __future__ import annotations

from typing import Any

import httpx


class NotificationSink:
    """POSTs notification intents to the external delivery service (push/email fan-out)."""

    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def deliver(self, intent: dict[str, Any]) -> None:
        # The dedupe key doubles as an idempotency key so redelivery after a failed ack is harmless.
        headers = {"Idempotency-Key": str(intent.get("dedupe_key", ""))}
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            response = await client.post(self.url, json=intent, headers=headers)
            response.raise_for_status()
