"""Interaction metrics: an append-only event log folded into rolling snapshots.

``apply_event`` and ``aggregate`` are pure. Snapshots are keyed by
``global`` and by the event's UTC date (``YYYY-MM-DD``) and can always be
rebuilt from the event log with ``recompute_snapshots``.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pantry_ingest.models.interaction import AgentInteraction, AgentMetricsSnapshot
from pantry_ingest.schemas.metrics import InteractionEvent

logger = logging.getLogger(__name__)

GLOBAL_KEY = "global"
INPUT_MAX_LENGTH = 2000
SNAPSHOT_WRITE_ATTEMPTS = 3

LATENCY_BUCKETS = ("lt_2s", "2s_5s", "gt_5s")
CONFIDENCE_BUCKETS = ("low", "medium", "high")


def latency_bucket(latency_ms: float) -> str:
    if latency_ms < 2000:
        return "lt_2s"
    if latency_ms < 5000:
        return "2s_5s"
    return "gt_5s"


def confidence_bucket(confidence: float) -> str:
    if confidence < 0.5:
        return "low"
    if confidence < 0.8:
        return "medium"
    return "high"


def _as_utc(timestamp: datetime) -> datetime:
    return timestamp.astimezone(UTC) if timestamp.tzinfo else timestamp.replace(tzinfo=UTC)


def snapshot_keys(event: InteractionEvent) -> tuple[str, str]:
    """Snapshot keys an event contributes to."""
    return GLOBAL_KEY, _as_utc(event.timestamp).date().isoformat()


@dataclass(frozen=True)
class MetricsTotals:
    """Counters for one snapshot key."""

    total: int = 0
    success_count: int = 0
    fallback_count: int = 0
    latency_sum: float = 0.0
    confidence_sum: float = 0.0
    latency_buckets: dict[str, int] = field(
        default_factory=lambda: dict.fromkeys(LATENCY_BUCKETS, 0)
    )
    confidence_buckets: dict[str, int] = field(
        default_factory=lambda: dict.fromkeys(CONFIDENCE_BUCKETS, 0)
    )

    @classmethod
    def from_snapshot(cls, snapshot: AgentMetricsSnapshot) -> "MetricsTotals":
        return cls(
            total=snapshot.total or 0,
            success_count=snapshot.success_count or 0,
            fallback_count=snapshot.fallback_count or 0,
            latency_sum=snapshot.latency_sum or 0.0,
            confidence_sum=snapshot.confidence_sum or 0.0,
            latency_buckets={**dict.fromkeys(LATENCY_BUCKETS, 0), **(snapshot.latency_buckets or {})},
            confidence_buckets={
                **dict.fromkeys(CONFIDENCE_BUCKETS, 0),
                **(snapshot.confidence_buckets or {}),
            },
        )

    def write_to(self, snapshot: AgentMetricsSnapshot) -> None:
        snapshot.total = self.total
        snapshot.success_count = self.success_count
        snapshot.fallback_count = self.fallback_count
        snapshot.latency_sum = self.latency_sum
        snapshot.confidence_sum = self.confidence_sum
        # New dicts so the JSON columns are flagged as changed
        snapshot.latency_buckets = dict(self.latency_buckets)
        snapshot.confidence_buckets = dict(self.confidence_buckets)


def apply_event(totals: MetricsTotals, event: InteractionEvent) -> MetricsTotals:
    """Fold one event into a snapshot, returning a new snapshot."""
    latency_buckets = dict(totals.latency_buckets)
    bucket = latency_bucket(event.latency_ms)
    latency_buckets[bucket] = latency_buckets.get(bucket, 0) + 1

    confidence_buckets = dict(totals.confidence_buckets)
    confidence_sum = totals.confidence_sum
    if event.confidence is not None:
        confidence_sum += event.confidence
        bucket = confidence_bucket(event.confidence)
        confidence_buckets[bucket] = confidence_buckets.get(bucket, 0) + 1

    return replace(
        totals,
        total=totals.total + 1,
        success_count=totals.success_count + (1 if event.success else 0),
        fallback_count=totals.fallback_count + (1 if event.used_fallback else 0),
        latency_sum=totals.latency_sum + event.latency_ms,
        confidence_sum=confidence_sum,
        latency_buckets=latency_buckets,
        confidence_buckets=confidence_buckets,
    )


def aggregate(events: Iterable[InteractionEvent]) -> dict[str, MetricsTotals]:
    """Fold an event stream into snapshots keyed by ``global`` and UTC date."""
    snapshots: dict[str, MetricsTotals] = {}
    for event in events:
        for key in snapshot_keys(event):
            snapshots[key] = apply_event(snapshots.get(key, MetricsTotals()), event)
    return snapshots


def event_from_row(row: AgentInteraction) -> InteractionEvent:
    return InteractionEvent(
        user_id=row.user_id,
        input=row.input or "",
        agent=row.agent,
        success=row.success,
        used_fallback=row.used_fallback,
        latency_ms=max(0.0, row.latency_ms or 0.0),
        confidence=row.confidence,
        error=row.error,
        details=row.details,
        timestamp=_as_utc(row.occurred_at),
    )


class MetricsService:
    """Service for recording and reading interaction metrics."""

    def __init__(self, db: Session):
        self.db = db

    def record_interaction(self, event: InteractionEvent) -> AgentInteraction | None:
        """Append an event, then fold it into its snapshots.

        The event row is committed on its own first, so a failed snapshot
        update never loses it; ``recompute_snapshots`` repairs the counters.
        Best effort: a failure is logged and never raised to the caller.
        """
        try:
            row = AgentInteraction(
                user_id=event.user_id,
                input=event.input[:INPUT_MAX_LENGTH],
                agent=event.agent,
                success=event.success,
                used_fallback=event.used_fallback,
                latency_ms=event.latency_ms,
                confidence=event.confidence,
                error=event.error,
                details=event.details,
                occurred_at=_as_utc(event.timestamp),
            )
            self.db.add(row)
            self.db.commit()
        except Exception as e:
            logger.error(f"Failed to record agent interaction ({event.agent}): {e}")
            self.db.rollback()
            return None

        try:
            self._fold_into_snapshots(event)
        except Exception as e:
            logger.error(f"Failed to update metrics snapshots for interaction {row.id}: {e}")
            self.db.rollback()
        return row

    def _fold_into_snapshots(self, event: InteractionEvent) -> None:
        """Read-modify-write each snapshot under a row lock.

        Two writers creating the same key collide on its primary key; the
        loser rolls back and retries against the row the winner inserted.
        """
        for attempt in range(1, SNAPSHOT_WRITE_ATTEMPTS + 1):
            try:
                for key in snapshot_keys(event):
                    snapshot = (
                        self.db.query(AgentMetricsSnapshot)
                        .filter(AgentMetricsSnapshot.key == key)
                        .with_for_update()
                        .populate_existing()
                        .one_or_none()
                    )
                    if snapshot is None:
                        snapshot = AgentMetricsSnapshot(key=key)
                        self.db.add(snapshot)
                        totals = MetricsTotals()
                    else:
                        totals = MetricsTotals.from_snapshot(snapshot)
                    apply_event(totals, event).write_to(snapshot)
                self.db.commit()
                return
            except IntegrityError:
                self.db.rollback()
                if attempt == SNAPSHOT_WRITE_ATTEMPTS:
                    raise
                logger.info(f"Metrics snapshot created concurrently, retrying (attempt {attempt})")

    def get_snapshot(self, key: str) -> AgentMetricsSnapshot | None:
        return self.db.get(AgentMetricsSnapshot, key)

    def recompute_snapshots(self) -> tuple[int, int]:
        """Rebuild every snapshot from the event log.

        Returns:
            (number of events folded, number of snapshots written)
        """
        rows = self.db.query(AgentInteraction).order_by(AgentInteraction.id).all()
        snapshots = aggregate(event_from_row(row) for row in rows)

        existing = {s.key: s for s in self.db.query(AgentMetricsSnapshot).all()}
        for key, totals in snapshots.items():
            snapshot = existing.pop(key, None)
            if snapshot is None:
                snapshot = AgentMetricsSnapshot(key=key)
                self.db.add(snapshot)
            totals.write_to(snapshot)
        # Keys with no remaining events
        for stale in existing.values():
            self.db.delete(stale)
        self.db.commit()

        logger.info(f"Recomputed {len(snapshots)} metrics snapshots from {len(rows)} events")
        return len(rows), len(snapshots)
