"""
Reputation Trigger Rules

Decides when a primary write (vote or report) earns a reputation delta and
hands qualifying awards to the ledger.

Trigger evaluation is best-effort. It runs after the caller has been
answered, in its own session; any failure is logged and dropped. Nothing
marks a failed attempt, so the next qualifying write re-evaluates it.

Rules:
- verification_reward   +1  30 min  keyed on station
- contradiction_penalty -1  24 h    unscoped
- report_reward         +2  24 h    keyed on station + reason
"""
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from ...models.db_models import IssueReportDB, ReputationEventType, VoteValue
from .consensus import CONSENSUS_WINDOW, STRONG_VERIFIED_MIN_VOTES, ConsensusEvaluator
from .contradiction_detector import ContradictionDetector
from .reputation_ledger import ReputationLedgerService


logger = logging.getLogger(__name__)


VERIFICATION_REWARD_DELTA = 1
VERIFICATION_REWARD_WINDOW = CONSENSUS_WINDOW

CONTRADICTION_PENALTY_DELTA = -1
CONTRADICTION_PENALTY_WINDOW = timedelta(hours=24)

REPORT_REWARD_DELTA = 2
REPORT_REWARD_WINDOW = timedelta(hours=24)
REPORTS_FOR_REWARD = 3


class ReputationTriggers:
    """
    Evaluates the trigger rules against the current vote/report store.

    Usage:
        triggers = ReputationTriggers(db)
        triggers.on_vote_cast(station_id, reporter_id, VoteValue.WORKING)
    """

    def __init__(self, db: Session):
        self.db = db
        self.ledger = ReputationLedgerService(db)
        self.consensus = ConsensusEvaluator(db)
        self.contradictions = ContradictionDetector(db)

    # =========================================================================
    # Rule evaluation
    # =========================================================================

    def evaluate_verification_reward(
        self,
        station_id: int,
        reporter_id: str,
        vote: VoteValue,
        now: Optional[datetime] = None,
    ) -> bool:
        """Reward a vote that matches a leading value backed by >= 3 votes."""
        now = now or datetime.utcnow()
        summary = self.consensus.evaluate(station_id, now=now)
        leader = summary.leading_value

        if leader is None or leader != vote:
            return False
        if summary.count_for(leader) < STRONG_VERIFIED_MIN_VOTES:
            return False

        return self.ledger.try_award_reputation(
            reporter_id,
            ReputationEventType.VERIFICATION_REWARD,
            VERIFICATION_REWARD_DELTA,
            station_scope=station_id,
            reason_scope=None,
            window=VERIFICATION_REWARD_WINDOW,
            now=now,
        )

    def evaluate_contradiction_penalty(
        self,
        reporter_id: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """Penalize a reporter contradicted by consensus >= 3 times in 24h."""
        now = now or datetime.utcnow()
        scan = self.contradictions.scan(reporter_id, now=now)
        if not scan.should_penalize:
            return False

        return self.ledger.try_award_reputation(
            reporter_id,
            ReputationEventType.CONTRADICTION_PENALTY,
            CONTRADICTION_PENALTY_DELTA,
            station_scope=None,
            reason_scope=None,
            window=CONTRADICTION_PENALTY_WINDOW,
            now=now,
        )

    def evaluate_report_reward(
        self,
        station_id: int,
        reason: str,
        now: Optional[datetime] = None,
    ) -> List[str]:
        """
        Reward every reporter of a (station, reason) pair once it has >= 3
        reports in the last 24 hours.

        Returns:
            Reporter IDs whose award was applied
        """
        now = now or datetime.utcnow()
        reports = (
            self.db.query(IssueReportDB)
            .filter(
                IssueReportDB.station_id == station_id,
                IssueReportDB.reason == reason,
                IssueReportDB.created_at >= now - REPORT_REWARD_WINDOW,
                IssueReportDB.created_at <= now,
            )
            .order_by(IssueReportDB.created_at.asc())
            .all()
        )
        if len(reports) < REPORTS_FOR_REWARD:
            return []

        # Anonymous reports count toward the threshold but earn nothing
        reporter_ids = []
        for report in reports:
            if report.reporter_id and report.reporter_id not in reporter_ids:
                reporter_ids.append(report.reporter_id)

        awarded = []
        for reporter_id in reporter_ids:
            try:
                applied = self.ledger.try_award_reputation(
                    reporter_id,
                    ReputationEventType.REPORT_REWARD,
                    REPORT_REWARD_DELTA,
                    station_scope=station_id,
                    reason_scope=reason,
                    window=REPORT_REWARD_WINDOW,
                    now=now,
                )
            except Exception as e:
                logger.error(f"Report reward failed for reporter {reporter_id}: {e}")
                continue
            if applied:
                awarded.append(reporter_id)
        return awarded

    # =========================================================================
    # Entry points (never raise)
    # =========================================================================

    def on_vote_cast(
        self,
        station_id: int,
        reporter_id: str,
        vote: VoteValue,
        now: Optional[datetime] = None,
    ) -> None:
        """Run both vote rules independently, swallowing failures."""
        try:
            self.evaluate_verification_reward(station_id, reporter_id, vote, now=now)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Verification reward check failed for reporter {reporter_id}: {e}")

        try:
            self.evaluate_contradiction_penalty(reporter_id, now=now)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Contradiction check failed for reporter {reporter_id}: {e}")

    def on_report_created(
        self,
        station_id: int,
        reason: str,
        now: Optional[datetime] = None,
    ) -> None:
        """Run the report rule, swallowing failures."""
        try:
            self.evaluate_report_reward(station_id, reason, now=now)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Report reward check failed for station {station_id}: {e}")


# =============================================================================
# Background dispatch
# =============================================================================

def run_vote_triggers(
    session_factory: Callable[[], Session],
    station_id: int,
    reporter_id: str,
    vote: VoteValue,
    now: Optional[datetime] = None,
) -> None:
    """Background job: evaluate vote rules in a fresh session."""
    try:
        db = session_factory()
    except Exception as e:
        logger.error(f"Could not open session for vote triggers: {e}")
        return
    try:
        ReputationTriggers(db).on_vote_cast(station_id, reporter_id, vote, now=now)
    finally:
        db.close()


def run_report_triggers(
    session_factory: Callable[[], Session],
    station_id: int,
    reason: str,
    now: Optional[datetime] = None,
) -> None:
    """Background job: evaluate the report rule in a fresh session."""
    try:
        db = session_factory()
    except Exception as e:
        logger.error(f"Could not open session for report triggers: {e}")
        return
    try:
        ReputationTriggers(db).on_report_created(station_id, reason, now=now)
    finally:
        db.close()


def dispatch_background(background_tasks, func: Callable, *args, **kwargs) -> None:
    """
    Fire and forget.

    Uses FastAPI BackgroundTasks when the caller is a route, otherwise a
    daemon thread. The caller never waits on or sees the result.
    """
    if background_tasks is not None:
        background_tasks.add_task(func, *args, **kwargs)
        return

    thread = threading.Thread(target=func, args=args, kwargs=kwargs, daemon=True)
    thread.start()
