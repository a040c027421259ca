"""
Station Confidence Estimator

Deterministic 0-100 score describing how reliable a station's data is,
derived from verification, report and activity history.

Feature flag: STATION_CONFIDENCE_ENABLED (default: off)

Score (0-100):
1. Verification (max 40)
   - 5 per verification, max 20
   - 5 per verification in the last 7 days, max 20
2. Reports (max 30)
   - 30 - 10 per pending report in the last 30 days, min 0
3. Recency (max 30), days since last station update, vote or report
   - <=1: 30, <=3: 25, <=7: 20, <=14: 15, <=30: 10, older: 5

Unrelated to reporter reputation; shares no tables or state with it.
"""
import math
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models.db_models import (
    IssueReportDB,
    ReportReviewStatus,
    StationDB,
    VerificationVoteDB,
)


RECENT_VERIFICATION_WINDOW = timedelta(days=7)
RECENT_REPORT_WINDOW = timedelta(days=30)

# (max days since last activity, points), checked in order
RECENCY_STEPS = [
    (1, 30),
    (3, 25),
    (7, 20),
    (14, 15),
    (30, 10),
]
RECENCY_FLOOR = 5

CONFIDENCE_LABELS = [
    (80, "Highly Trusted"),
    (60, "Trusted"),
    (40, "Moderate"),
    (20, "Low Trust"),
]
LOWEST_LABEL = "Unverified"


def is_confidence_enabled() -> bool:
    """Read the feature flag on every call so it can be flipped at runtime."""
    return os.getenv("STATION_CONFIDENCE_ENABLED", "false").lower() == "true"


@dataclass
class ConfidenceSignals:
    """Raw history counts a score is computed from."""
    total_verifications: int = 0
    recent_verifications: int = 0
    total_reports: int = 0
    pending_recent_reports: int = 0
    days_since_last_activity: float = 0.0


@dataclass
class ConfidenceEstimate:
    """Station confidence score with its breakdown."""
    score: int
    components: Dict[str, int] = field(default_factory=dict)
    signals: Optional[ConfidenceSignals] = None

    @property
    def label(self) -> str:
        return confidence_label(self.score)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "score": self.score,
            "label": self.label,
            "components": dict(self.components),
        }
        if self.signals is not None:
            result["signals"] = {
                "total_verifications": self.signals.total_verifications,
                "recent_verifications": self.signals.recent_verifications,
                "total_reports": self.signals.total_reports,
                "pending_recent_reports": self.signals.pending_recent_reports,
                "days_since_last_activity": (
                    round(self.signals.days_since_last_activity, 1)
                    if math.isfinite(self.signals.days_since_last_activity) else None
                ),
            }
        return result


def recency_score_for(days_since_last_activity: float) -> int:
    for max_days, points in RECENCY_STEPS:
        if days_since_last_activity <= max_days:
            return points
    return RECENCY_FLOOR


def compute_confidence(signals: ConfidenceSignals) -> ConfidenceEstimate:
    """Pure scoring step; no database access."""
    verification_score = (
        min(signals.total_verifications * 5, 20)
        + min(signals.recent_verifications * 5, 20)
    )
    report_score = max(30 - signals.pending_recent_reports * 10, 0)
    recency_score = recency_score_for(signals.days_since_last_activity)

    return ConfidenceEstimate(
        score=min(verification_score + report_score + recency_score, 100),
        components={
            "verification_score": verification_score,
            "report_score": report_score,
            "recency_score": recency_score,
        },
        signals=signals,
    )


def confidence_label(score: int) -> str:
    """Qualitative tier for a confidence score."""
    for minimum, label in CONFIDENCE_LABELS:
        if score >= minimum:
            return label
    return LOWEST_LABEL


class StationConfidenceEstimator:
    """
    Usage:
        estimate = StationConfidenceEstimator(db).estimate(station_id)
        if estimate is None:
            ...  # feature off or station missing
    """

    def __init__(self, db: Session):
        self.db = db

    def estimate(
        self,
        station_id: int,
        now: Optional[datetime] = None,
    ) -> Optional[ConfidenceEstimate]:
        """
        Score a station.

        Returns None, never raises, when the feature is disabled or the
        station does not exist.
        """
        if not is_confidence_enabled():
            return None

        station = self.db.query(StationDB).filter(StationDB.id == station_id).first()
        if station is None:
            return None

        now = now or datetime.utcnow()
        return compute_confidence(self.collect_signals(station, now))

    def collect_signals(self, station: StationDB, now: datetime) -> ConfidenceSignals:
        total_verifications = (
            self.db.query(func.count(VerificationVoteDB.id))
            .filter(VerificationVoteDB.station_id == station.id)
            .scalar()
        ) or 0
        recent_verifications = (
            self.db.query(func.count(VerificationVoteDB.id))
            .filter(
                VerificationVoteDB.station_id == station.id,
                VerificationVoteDB.cast_at >= now - RECENT_VERIFICATION_WINDOW,
            )
            .scalar()
        ) or 0
        total_reports = (
            self.db.query(func.count(IssueReportDB.id))
            .filter(IssueReportDB.station_id == station.id)
            .scalar()
        ) or 0
        pending_recent_reports = (
            self.db.query(func.count(IssueReportDB.id))
            .filter(
                IssueReportDB.station_id == station.id,
                IssueReportDB.created_at >= now - RECENT_REPORT_WINDOW,
                IssueReportDB.review_status == ReportReviewStatus.PENDING.value,
            )
            .scalar()
        ) or 0

        last_vote_at = (
            self.db.query(func.max(VerificationVoteDB.cast_at))
            .filter(VerificationVoteDB.station_id == station.id)
            .scalar()
        )
        last_report_at = (
            self.db.query(func.max(IssueReportDB.created_at))
            .filter(IssueReportDB.station_id == station.id)
            .scalar()
        )

        candidates = [
            station.updated_at or station.created_at,
            last_vote_at,
            last_report_at,
        ]
        activity = [ts for ts in candidates if ts is not None]
        if activity:
            days_since = (now - max(activity)).total_seconds() / 86400
        else:
            days_since = float("inf")

        return ConfidenceSignals(
            total_verifications=total_verifications,
            recent_verifications=recent_verifications,
            total_reports=total_reports,
            pending_recent_reports=pending_recent_reports,
            days_since_last_activity=days_since,
        )
