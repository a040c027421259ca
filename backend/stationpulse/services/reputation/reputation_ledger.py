"""
Reputation Ledger Service

Idempotent, concurrency-safe application of reputation deltas to reporters,
backed by the append-only reputation_events table.

Core Principles:
1. The event row is the only duplicate-prevention marker. No in-process cache.
2. Check, insert and score update happen in one transaction under the
   reporter row lock.
3. Append-only - events are never updated or deleted.
4. reputation_level is always recomputed from the score it is stored with.
5. Score never drops below zero.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from ...models.db_models import (
    ReporterDB,
    ReputationEventDB,
    ReputationEventType,
    ReputationLevel,
)


logger = logging.getLogger(__name__)


# Lower bounds (inclusive) of each reputation tier
NORMAL_MIN_SCORE = 5
TRUSTED_MIN_SCORE = 10


def reputation_level_for(score: int) -> ReputationLevel:
    """Map a reputation score to its tier."""
    if score >= TRUSTED_MIN_SCORE:
        return ReputationLevel.TRUSTED
    if score >= NORMAL_MIN_SCORE:
        return ReputationLevel.NORMAL
    return ReputationLevel.NEW


class ReputationLedgerService:
    """
    Applies reputation deltas at most once per (reporter, event type,
    station scope, reason scope) and window.

    Usage:
        ledger = ReputationLedgerService(db)
        applied = ledger.try_award_reputation(
            reporter_id, ReputationEventType.VERIFICATION_REWARD, 1,
            station_scope=station_id, reason_scope=None,
            window=timedelta(minutes=30),
        )
    """

    def __init__(self, db: Session):
        self.db = db

    def try_award_reputation(
        self,
        reporter_id: str,
        event_type: ReputationEventType,
        delta: int,
        station_scope: Optional[int],
        reason_scope: Optional[str],
        window: timedelta,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Apply a delta unless an event with the same key exists in the window.

        Runs as its own transaction and commits on success, so the session
        must not carry unrelated pending work. Rolls back and re-raises on
        any storage error.

        Args:
            reporter_id: Reporter receiving the delta
            event_type: Ledger event kind
            delta: Signed score change
            station_scope: Station the event is keyed on, if any
            reason_scope: Report reason the event is keyed on, if any
            window: Duplicate-suppression window for this event kind
            now: Evaluation time (default: utcnow)

        Returns:
            True if the event was written and the score changed
        """
        now = now or datetime.utcnow()

        try:
            # Exclusive lock on the reporter for the rest of the transaction
            reporter = (
                self.db.query(ReporterDB)
                .filter(ReporterDB.id == reporter_id)
                .with_for_update()
                .first()
            )
            if reporter is None:
                self.db.rollback()
                return False

            if self._has_event_in_window(
                reporter_id, event_type, station_scope, reason_scope, now - window
            ):
                self.db.rollback()
                return False

            event = ReputationEventDB(
                id=str(uuid4()),
                reporter_id=reporter_id,
                event_type=event_type,
                station_scope=station_scope,
                reason_scope=reason_scope,
                delta=delta,
                created_at=now,
            )
            self.db.add(event)

            new_score = max(0, (reporter.reputation_score or 0) + delta)
            reporter.reputation_score = new_score
            new_level = reputation_level_for(new_score)
            reporter.reputation_level = new_level
            reporter.updated_at = now

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Reputation {event_type.value} {delta:+d} applied to reporter {reporter_id} "
            f"(score={new_score}, level={new_level.value})"
        )
        return True

    def _has_event_in_window(
        self,
        reporter_id: str,
        event_type: ReputationEventType,
        station_scope: Optional[int],
        reason_scope: Optional[str],
        since: datetime,
    ) -> bool:
        query = self.db.query(ReputationEventDB.id).filter(
            ReputationEventDB.reporter_id == reporter_id,
            ReputationEventDB.event_type == event_type,
            ReputationEventDB.created_at >= since,
        )

        # NULL scopes are part of the key, so compare with IS NULL
        if station_scope is None:
            query = query.filter(ReputationEventDB.station_scope.is_(None))
        else:
            query = query.filter(ReputationEventDB.station_scope == station_scope)

        if reason_scope is None:
            query = query.filter(ReputationEventDB.reason_scope.is_(None))
        else:
            query = query.filter(ReputationEventDB.reason_scope == reason_scope)

        return query.first() is not None

    # =========================================================================
    # Read helpers
    # =========================================================================

    def get_reputation_level(self, reporter_id: str) -> ReputationLevel:
        """Current tier of a reporter; NEW for unknown reporters."""
        reporter = self.db.query(ReporterDB).filter(ReporterDB.id == reporter_id).first()
        if reporter is None or reporter.reputation_level is None:
            return ReputationLevel.NEW
        return ReputationLevel(reporter.reputation_level)

    def get_events(
        self,
        reporter_id: str,
        event_type: Optional[ReputationEventType] = None,
    ) -> List[ReputationEventDB]:
        """Ledger rows for a reporter, newest first."""
        query = self.db.query(ReputationEventDB).filter(
            ReputationEventDB.reporter_id == reporter_id
        )
        if event_type:
            query = query.filter(ReputationEventDB.event_type == event_type)
        return query.order_by(ReputationEventDB.created_at.desc()).all()
