"""Tests for interaction metrics aggregation."""

from datetime import UTC, datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.orm import Session

from pantry_ingest.models.interaction import AgentInteraction, AgentMetricsSnapshot
from pantry_ingest.schemas.metrics import InteractionEvent
from pantry_ingest.services.metrics import (
    MetricsService,
    MetricsTotals,
    aggregate,
    apply_event,
    confidence_bucket,
    latency_bucket,
)

DAY = datetime(2025, 3, 1, 15, 30, tzinfo=UTC)


def _event(latency_ms=100.0, confidence=0.9, success=True, used_fallback=False, timestamp=DAY):
    return InteractionEvent(
        user_id="user-1",
        input="bought milk",
        agent="grocery_parser",
        success=success,
        used_fallback=used_fallback,
        latency_ms=latency_ms,
        confidence=confidence,
        timestamp=timestamp,
    )


@pytest.mark.parametrize(
    ("latency", "bucket"),
    [(0, "lt_2s"), (1999.9, "lt_2s"), (2000, "2s_5s"), (4999, "2s_5s"), (5000, "gt_5s")],
)
def test_latency_bucket(latency, bucket):
    assert latency_bucket(latency) == bucket


@pytest.mark.parametrize(
    ("confidence", "bucket"),
    [(0.0, "low"), (0.49, "low"), (0.5, "medium"), (0.79, "medium"), (0.8, "high"), (1.0, "high")],
)
def test_confidence_bucket(confidence, bucket):
    assert confidence_bucket(confidence) == bucket


def test_apply_event_is_pure():
    before = MetricsTotals()
    after = apply_event(before, _event(latency_ms=2500, confidence=None, used_fallback=True))

    assert before.total == 0
    assert before.latency_buckets["2s_5s"] == 0
    assert after.total == 1
    assert after.fallback_count == 1
    assert after.latency_buckets == {"lt_2s": 0, "2s_5s": 1, "gt_5s": 0}
    assert after.confidence_buckets == {"low": 0, "medium": 0, "high": 0}
    assert after.confidence_sum == 0


def test_aggregate_keys_by_utc_date():
    late_evening = datetime(2025, 3, 1, 22, 0, tzinfo=timezone(timedelta(hours=-5)))
    snapshots = aggregate([_event(), _event(timestamp=late_evening)])

    assert set(snapshots) == {"global", "2025-03-01", "2025-03-02"}
    assert snapshots["global"].total == 2


class TestMetricsService:
    """Tests for MetricsService."""

    def test_latency_buckets_on_global_and_daily(self, db):
        service = MetricsService(db)
        service.record_interaction(_event(latency_ms=1500))
        service.record_interaction(_event(latency_ms=6000))

        for key in ("global", "2025-03-01"):
            snapshot = service.get_snapshot(key)
            assert snapshot.latency_buckets == {"lt_2s": 1, "2s_5s": 0, "gt_5s": 1}
            assert snapshot.total == 2
            assert snapshot.latency_sum == 7500

    def test_truncates_input(self, db):
        event = _event().model_copy(update={"input": "x" * 5000})
        row = MetricsService(db).record_interaction(event)
        assert len(row.input) == 2000

    def test_failure_is_swallowed(self, db):
        with patch(
            "pantry_ingest.services.metrics.AgentInteraction", side_effect=RuntimeError("db down")
        ):
            assert MetricsService(db).record_interaction(_event()) is None

    def test_recompute_is_idempotent(self, db):
        service = MetricsService(db)
        service.record_interaction(_event(latency_ms=1500, confidence=0.3))
        service.record_interaction(_event(latency_ms=6000, success=False, used_fallback=True))
        service.record_interaction(_event(timestamp=DAY + timedelta(days=1)))

        def dump():
            return {
                s.key: (s.total, s.success_count, s.fallback_count, s.latency_buckets, s.confidence_buckets)
                for s in db.query(AgentMetricsSnapshot).all()
            }

        recorded = dump()
        assert service.recompute_snapshots() == (3, 3)
        first = dump()
        assert service.recompute_snapshots() == (3, 3)
        assert dump() == first == recorded
        assert first["global"][3] == {"lt_2s": 2, "2s_5s": 0, "gt_5s": 1}
        assert first["global"][4] == {"low": 1, "medium": 0, "high": 2}

    def test_recompute_rebuilds_from_event_log(self, db):
        service = MetricsService(db)
        service.record_interaction(_event())
        db.query(AgentMetricsSnapshot).delete()
        db.commit()

        service.recompute_snapshots()

        assert service.get_snapshot("global").total == 1
        assert db.query(AgentInteraction).count() == 1

    def test_snapshot_failure_keeps_event_row(self, db):
        with patch(
            "pantry_ingest.services.metrics.apply_event", side_effect=RuntimeError("disk full")
        ):
            row = MetricsService(db).record_interaction(_event())

        assert row is not None
        assert db.query(AgentInteraction).count() == 1
        assert db.query(AgentMetricsSnapshot).count() == 0

    def test_concurrent_snapshot_creation_keeps_both_events(self, db):
        other = Session(bind=db.get_bind())
        calls = []

        def interleave(totals, event):
            # Another writer creates the snapshots between our read and our commit
            calls.append(event)
            if len(calls) == 1:
                MetricsService(other).record_interaction(_event())
            return apply_event(totals, event)

        try:
            with patch("pantry_ingest.services.metrics.apply_event", side_effect=interleave):
                MetricsService(db).record_interaction(_event())
        finally:
            other.close()

        assert db.query(AgentInteraction).count() == 2
        service = MetricsService(db)
        db.expire_all()
        assert service.get_snapshot("global").total == 2
        assert service.get_snapshot("2025-03-01").total == 2


class TestMetricsApi:
    """Tests for the metrics endpoints."""

    def test_empty_global_snapshot(self, client, auth_headers):
        response = client.get("/api/v1/metrics/global", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 0

    def test_daily_snapshot(self, client, auth_headers, db):
        MetricsService(db).record_interaction(_event(latency_ms=6000))
        response = client.get("/api/v1/metrics/daily/2025-03-01", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["latency_buckets"]["gt_5s"] == 1

    def test_daily_rejects_bad_date(self, client, auth_headers):
        response = client.get("/api/v1/metrics/daily/yesterday", headers=auth_headers)
        assert response.status_code == 400

    def test_recompute(self, client, auth_headers, db):
        MetricsService(db).record_interaction(_event())
        response = client.post("/api/v1/metrics/recompute", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {"events": 1, "snapshots": 2}
