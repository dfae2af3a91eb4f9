from __future__ import annotations

import asyncio
import logging
import random
import time

import httpx
from opentelemetry import trace

from moderation_worker.core.config import Settings, get_settings
from moderation_worker.core.telemetry import (
    configure_worker_logging,
    setup_worker_telemetry,
    shutdown_worker_telemetry,
)
from moderation_worker.jobs.reconcile import rebuild_due
from moderation_worker.jobs.relay import RelayReport, relay_outbox
from moderation_worker.services.moderation_client import ModerationClient
from moderation_worker.services.notification_sink import NotificationSink

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


async def poll_cycle(
    client: ModerationClient,
    sink: NotificationSink,
    settings: Settings,
    *,
    last_rebuild_at: float | None,
    now: float,
) -> tuple[RelayReport, float | None]:
    """Run one rebuild (when due) and one relay pass; returns the report and the new rebuild mark."""
    if rebuild_due(last_rebuild_at, now, settings.rebuild_interval_seconds):
        # A failed rebuild waits a full interval; relaying must not depend on it.
        last_rebuild_at = now
        try:
            with tracer.start_as_current_span("worker.rebuild_derived_state"):
                summary = await client.rebuild_derived_state()
        except httpx.HTTPError as exc:
            logger.warning(
                "derived state rebuild failed: %s; next attempt in %.0fs",
                exc,
                settings.rebuild_interval_seconds,
            )
        else:
            logger.info(
                "derived state rebuilt counters=%s worklist_entries=%s",
                summary["counters"],
                summary["worklist_entries"],
            )

    with tracer.start_as_current_span("worker.relay_outbox") as relay_span:
        report = await relay_outbox(client, sink, limit=settings.outbox_batch_size)
        relay_span.set_attribute("outbox.delivered", len(report.delivered))
        relay_span.set_attribute("outbox.failed", len(report.failed))

    return report, last_rebuild_at


async def run_worker() -> None:
    settings = get_settings()
    configure_worker_logging()
    telemetry_runtime = setup_worker_telemetry(settings)
    client = ModerationClient(
        base_url=settings.api_base_url,
        module_id=settings.module_id,
        api_key=settings.api_key,
    )
    sink = NotificationSink(settings.notification_sink_url, timeout_seconds=settings.sink_timeout_seconds)

    backoff = settings.poll_interval_seconds
    last_rebuild_at: float | None = None

    try:
        while True:
            try:
                with tracer.start_as_current_span("worker.poll_cycle"):
                    report, last_rebuild_at = await poll_cycle(
                        client,
                        sink,
                        settings,
                        last_rebuild_at=last_rebuild_at,
                        now=time.monotonic(),
                    )

                    if report.delivered:
                        logger.info("relayed notifications: %s", len(report.delivered))
                    backoff = settings.poll_interval_seconds
                    if not report.delivered:
                        await asyncio.sleep(settings.poll_interval_seconds)
            except Exception as exc:  # pragma: no cover - keep polling through transient API failures
                jitter = random.uniform(0.0, 0.5)
                sleep_for = min(backoff * (2.0 + jitter), settings.max_backoff_seconds)
                logger.exception("worker iteration failed: %s; retry in %.1fs", exc, sleep_for)
                await asyncio.sleep(sleep_for)
                backoff = sleep_for
    finally:
        shutdown_worker_telemetry(telemetry_runtime)


if __name__ == "__main__":
    asyncio.run(run_worker())
