from __future__ import annotations


def rebuild_due(last_rebuild_at: float | None, now: float, interval_seconds: float) -> bool:
    """Whether the periodic recount of derived counters and worklists should run."""
    if interval_seconds <= 0:
        return False
    if last_rebuild_at is None:
        return True
    return now - last_rebuild_at >= interval_seconds
