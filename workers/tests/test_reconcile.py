from moderation_worker.core.telemetry import parse_otlp_headers
from moderation_worker.jobs.reconcile import rebuild_due


def test_rebuild_runs_on_first_cycle() -> None:
    assert rebuild_due(None, now=5.0, interval_seconds=900.0)


def test_rebuild_waits_for_interval() -> None:
    assert not rebuild_due(100.0, now=500.0, interval_seconds=900.0)
    assert rebuild_due(100.0, now=1000.0, interval_seconds=900.0)


def test_rebuild_disabled_with_non_positive_interval() -> None:
    assert not rebuild_due(None, now=5.0, interval_seconds=0)


def test_parse_otlp_headers_skips_malformed_items() -> None:
    assert parse_otlp_headers("authorization=Bearer abc, x-team = moderation,broken,=empty") == {
        "authorization": "Bearer abc",
        "x-team": "moderation",
    }
    assert parse_otlp_headers(None) == {}
