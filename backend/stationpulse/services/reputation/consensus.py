"""
Consensus Evaluator

Tallies verification votes for a station over a time window and decides
the leading value.

Pure read. Recomputed on every call, never cached or persisted, so the
tally always matches the current window boundary.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models.db_models import VerificationVoteDB, VoteValue


CONSENSUS_WINDOW = timedelta(minutes=30)

# Minimum top count for a tally to be "verified" / "strongly verified"
VERIFIED_MIN_VOTES = 2
STRONG_VERIFIED_MIN_VOTES = 3


@dataclass
class VerificationSummary:
    """Vote tally for one station over one window."""
    working: int = 0
    not_working: int = 0
    busy: int = 0
    last_verified_at: Optional[datetime] = None

    @property
    def total_votes(self) -> int:
        return self.working + self.not_working + self.busy

    def count_for(self, value: VoteValue) -> int:
        if value == VoteValue.WORKING:
            return self.working
        if value == VoteValue.NOT_WORKING:
            return self.not_working
        return self.busy

    @property
    def counts(self) -> Dict[VoteValue, int]:
        return {value: self.count_for(value) for value in VoteValue}

    @property
    def max_count(self) -> int:
        return max(self.working, self.not_working, self.busy)

    @property
    def leading_value(self) -> Optional[VoteValue]:
        """Value with the strictly highest count; None on a tie or no votes."""
        if self.total_votes == 0:
            return None
        top = self.max_count
        leaders = [value for value, count in self.counts.items() if count == top]
        if len(leaders) != 1:
            return None
        return leaders[0]

    @property
    def is_verified(self) -> bool:
        return self.max_count >= VERIFIED_MIN_VOTES

    @property
    def is_strong_verified(self) -> bool:
        return self.max_count >= STRONG_VERIFIED_MIN_VOTES

    def to_dict(self) -> Dict[str, Any]:
        leading = self.leading_value
        return {
            "working": self.working,
            "not_working": self.not_working,
            "busy": self.busy,
            "total_votes": self.total_votes,
            "leading_value": leading.value if leading else None,
            "is_verified": self.is_verified,
            "is_strong_verified": self.is_strong_verified,
            "last_verified_at": self.last_verified_at.isoformat() if self.last_verified_at else None,
        }


class ConsensusEvaluator:
    """
    Reads vote tallies from the vote store.

    Usage:
        summary = ConsensusEvaluator(db).evaluate(station_id)
    """

    def __init__(self, db: Session):
        self.db = db

    def evaluate(
        self,
        station_id: int,
        now: Optional[datetime] = None,
    ) -> VerificationSummary:
        """Tally the trailing consensus window ending at now."""
        now = now or datetime.utcnow()
        return self.evaluate_window(station_id, now - CONSENSUS_WINDOW, now)

    def evaluate_window(
        self,
        station_id: int,
        start: datetime,
        end: datetime,
    ) -> VerificationSummary:
        """Tally votes cast for the station inside [start, end]."""
        rows = (
            self.db.query(
                VerificationVoteDB.value,
                func.count(VerificationVoteDB.id),
                func.max(VerificationVoteDB.cast_at),
            )
            .filter(
                VerificationVoteDB.station_id == station_id,
                VerificationVoteDB.cast_at >= start,
                VerificationVoteDB.cast_at <= end,
            )
            .group_by(VerificationVoteDB.value)
            .all()
        )

        summary = VerificationSummary()
        for value, count, latest in rows:
            value = VoteValue(value)
            if value == VoteValue.WORKING:
                summary.working = count
            elif value == VoteValue.NOT_WORKING:
                summary.not_working = count
            else:
                summary.busy = count
            if latest is not None and (
                summary.last_verified_at is None or latest > summary.last_verified_at
            ):
                summary.last_verified_at = latest

        return summary
