from __future__ import annotations

from dataclasses import dataclass, field
import logging

import httpx

from moderation_worker.services.moderation_client import ModerationClient
from moderation_worker.services.notification_sink import NotificationSink

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RelayReport:
    delivered: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)


async def relay_outbox(client: ModerationClient, sink: NotificationSink, *, limit: int) -> RelayReport:
    """Deliver undispatched outbox entries; an entry is acked only after the sink accepted it."""
    report = RelayReport()
    entries = await client.list_outbox(limit=limit)

    for entry in entries:
        entry_id = int(entry["id"])
        payload = entry.get("payload") or {}
        try:
            await sink.deliver(payload)
        except httpx.HTTPError as exc:
            logger.warning(
                "notification delivery failed id=%s kind=%s: %s; left for next cycle",
                entry_id,
                payload.get("kind"),
                exc,
            )
            report.failed.append(entry_id)
            continue

        await client.ack_outbox(entry_id)
        report.delivered.append(entry_id)

    return report
