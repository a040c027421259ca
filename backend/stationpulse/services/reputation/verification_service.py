"""
Verification Service

Operations exposed to the HTTP layer and other collaborators:

- submit_verification: validate, upsert the vote, run the status policy
  synchronously, dispatch reputation triggers in the background
- get_verification_summary / get_verification_history: public reads
- get_reporter_reputation_level
- estimate_station_confidence
- submit_report: write an issue report, flag report flooding, dispatch
  the report reward trigger

The vote (or report) and the status transition are committed before any
background work is dispatched, so reputation effects can never roll them
back.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from ...database import SessionLocal
from ...models.db_models import (
    IssueReportDB,
    ReporterDB,
    ReportStatus,
    ReputationLevel,
    StationDB,
    StationTrustLevel,
    VerificationVoteDB,
    VoteValue,
)
from ..confidence.station_confidence import ConfidenceEstimate, StationConfidenceEstimator
from .consensus import CONSENSUS_WINDOW, ConsensusEvaluator, VerificationSummary
from .reputation_ledger import ReputationLedgerService
from .status_policy import StatusDecision, StatusInferencePolicy
from .triggers import dispatch_background, run_report_triggers, run_vote_triggers


logger = logging.getLogger(__name__)


HISTORY_WINDOW = timedelta(hours=24)
HISTORY_LIMIT = 20

# Reports on one station before it is flagged LOW
REPORT_FLOOD_THRESHOLD = 3


class VerificationServiceError(Exception):
    """Base class for caller-visible validation failures."""
    pass


class InvalidVoteError(VerificationServiceError, ValueError):
    """Vote value outside WORKING / NOT_WORKING / BUSY."""
    pass


class InvalidReportError(VerificationServiceError, ValueError):
    """Report status outside WORKING / NOT_WORKING."""
    pass


class StationNotFoundError(VerificationServiceError, LookupError):
    """Station does not exist."""
    pass


class ReporterNotFoundError(VerificationServiceError, LookupError):
    """Reporter does not exist."""
    pass


@dataclass
class VerificationResult:
    """Outcome of a vote submission."""
    vote: VerificationVoteDB
    summary: VerificationSummary
    decision: StatusDecision

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vote": vote_to_dict(self.vote),
            "summary": self.summary.to_dict(),
            "status": self.decision.to_dict(),
        }


def vote_to_dict(vote: VerificationVoteDB) -> Dict[str, Any]:
    return {
        "id": vote.id,
        "station_id": vote.station_id,
        "reporter_id": vote.reporter_id,
        "value": VoteValue(vote.value).value,
        "cast_at": vote.cast_at.isoformat() if vote.cast_at else None,
    }


def parse_vote(vote: Union[str, VoteValue]) -> VoteValue:
    try:
        return VoteValue(vote)
    except ValueError:
        valid = [v.value for v in VoteValue]
        raise InvalidVoteError(f"Invalid vote. Must be one of: {valid}")


class VerificationService:
    """
    Usage:
        service = VerificationService(db)
        result = service.submit_verification(station_id, reporter_id, "WORKING")
    """

    def __init__(
        self,
        db: Session,
        session_factory: Callable[[], Session] = SessionLocal,
    ):
        self.db = db
        self.session_factory = session_factory
        self.consensus = ConsensusEvaluator(db)
        self.policy = StatusInferencePolicy(db)
        self.ledger = ReputationLedgerService(db)

    # =========================================================================
    # Votes
    # =========================================================================

    def submit_verification(
        self,
        station_id: int,
        reporter_id: str,
        vote: Union[str, VoteValue],
        background_tasks=None,
        now: Optional[datetime] = None,
    ) -> VerificationResult:
        """
        Record a vote and apply its synchronous effects.

        Validation happens before anything is written. Status write errors
        propagate to the caller; reputation triggers run afterwards in the
        background and cannot fail this call.

        Args:
            station_id: Station being verified
            reporter_id: Voting reporter
            vote: WORKING, NOT_WORKING or BUSY
            background_tasks: FastAPI BackgroundTasks, or None for a thread
            now: Submission time (default: utcnow)

        Returns:
            VerificationResult with the stored vote, fresh tally and the
            status decision
        """
        value = parse_vote(vote)
        station = self._get_station(station_id)
        # Row lock serializes concurrent submissions by the same reporter,
        # keeping one live vote per station and window
        reporter = self._get_reporter(reporter_id, lock=True)

        now = now or datetime.utcnow()

        try:
            stored = self._upsert_vote(station_id, reporter_id, value, now)
            summary = self.consensus.evaluate(station_id, now=now)

            level = ReputationLevel(reporter.reputation_level or ReputationLevel.NEW)
            decision = self.policy.apply(station, level, value, summary, now=now)

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        dispatch_background(
            background_tasks,
            run_vote_triggers,
            self.session_factory,
            station_id,
            reporter_id,
            value,
            now,
        )

        return VerificationResult(vote=stored, summary=summary, decision=decision)

    def _upsert_vote(
        self,
        station_id: int,
        reporter_id: str,
        value: VoteValue,
        now: datetime,
    ) -> VerificationVoteDB:
        """One live vote per reporter and station inside the consensus window."""
        existing = (
            self.db.query(VerificationVoteDB)
            .filter(
                VerificationVoteDB.station_id == station_id,
                VerificationVoteDB.reporter_id == reporter_id,
                VerificationVoteDB.cast_at >= now - CONSENSUS_WINDOW,
            )
            .order_by(VerificationVoteDB.cast_at.desc())
            .first()
        )

        if existing:
            existing.value = value
            existing.cast_at = now
            self.db.flush()
            return existing

        stored = VerificationVoteDB(
            station_id=station_id,
            reporter_id=reporter_id,
            value=value,
            cast_at=now,
        )
        self.db.add(stored)
        self.db.flush()
        return stored

    def get_verification_summary(
        self,
        station_id: int,
        now: Optional[datetime] = None,
    ) -> VerificationSummary:
        return self.consensus.evaluate(station_id, now=now)

    def get_verification_history(
        self,
        station_id: int,
        limit: int = HISTORY_LIMIT,
        now: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """Votes from the last 24 hours, newest first, with reporter info."""
        now = now or datetime.utcnow()
        rows = (
            self.db.query(VerificationVoteDB, ReporterDB)
            .join(ReporterDB, ReporterDB.id == VerificationVoteDB.reporter_id)
            .filter(
                VerificationVoteDB.station_id == station_id,
                VerificationVoteDB.cast_at >= now - HISTORY_WINDOW,
                VerificationVoteDB.cast_at <= now,
            )
            .order_by(VerificationVoteDB.cast_at.desc())
            .limit(limit)
            .all()
        )

        history = []
        for vote, reporter in rows:
            history.append({
                "id": vote.id,
                "value": VoteValue(vote.value).value,
                "cast_at": vote.cast_at.isoformat(),
                "reporter_id": reporter.id,
                "reporter_name": reporter.display_name or "Anonymous",
                "reputation_level": ReputationLevel(
                    reporter.reputation_level or ReputationLevel.NEW
                ).value,
            })
        return history

    # =========================================================================
    # Reporters & stations
    # =========================================================================

    def get_reporter_reputation_level(self, reporter_id: str) -> ReputationLevel:
        return self.ledger.get_reputation_level(reporter_id)

    def estimate_station_confidence(
        self,
        station_id: int,
        now: Optional[datetime] = None,
    ) -> Optional[ConfidenceEstimate]:
        return StationConfidenceEstimator(self.db).estimate(station_id, now=now)

    def get_station(self, station_id: int) -> StationDB:
        return self._get_station(station_id)

    def _get_station(self, station_id: int) -> StationDB:
        station = self.db.query(StationDB).filter(StationDB.id == station_id).first()
        if station is None:
            raise StationNotFoundError(f"Station {station_id} not found")
        return station

    def _get_reporter(self, reporter_id: str, lock: bool = False) -> ReporterDB:
        query = self.db.query(ReporterDB).filter(ReporterDB.id == reporter_id)
        if lock:
            query = query.with_for_update()
        reporter = query.first()
        if reporter is None:
            raise ReporterNotFoundError(f"Reporter {reporter_id} not found")
        return reporter

    # =========================================================================
    # Reports
    # =========================================================================

    def submit_report(
        self,
        station_id: int,
        reporter_id: Optional[str],
        status: Union[str, ReportStatus],
        reason: Optional[str] = None,
        background_tasks=None,
        now: Optional[datetime] = None,
    ) -> IssueReportDB:
        """
        File an issue report.

        Flags the station LOW once it has REPORT_FLOOD_THRESHOLD reports and
        dispatches the report reward trigger when a reason is given.
        Anonymous reports pass reporter_id=None; a given reporter must exist.
        """
        try:
            report_status = ReportStatus(status)
        except ValueError:
            valid = [s.value for s in ReportStatus]
            raise InvalidReportError(f"Invalid report status. Must be one of: {valid}")

        station = self._get_station(station_id)
        if reporter_id is not None:
            self._get_reporter(reporter_id)
        now = now or datetime.utcnow()

        try:
            report = IssueReportDB(
                station_id=station_id,
                reporter_id=reporter_id,
                status=report_status,
                reason=reason,
                created_at=now,
            )
            self.db.add(report)
            self.db.flush()

            report_count = (
                self.db.query(IssueReportDB)
                .filter(IssueReportDB.station_id == station_id)
                .count()
            )
            if report_count >= REPORT_FLOOD_THRESHOLD and station.trust_level != StationTrustLevel.LOW:
                station.trust_level = StationTrustLevel.LOW
                logger.info(f"Station {station_id} flagged LOW after {report_count} reports")

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if reason:
            dispatch_background(
                background_tasks,
                run_report_triggers,
                self.session_factory,
                station_id,
                reason,
                now,
            )

        return report
