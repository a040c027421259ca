"""
Contradiction Detector

Scans a reporter's recent votes for repeated disagreement with the
consensus that formed after each vote.

A vote is contradicted when the station's tally over the 30 minutes
following it has a strict leader with >= 3 votes and that leader differs
from the vote. The full 24-hour history is rescanned on every call.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from ...models.db_models import VerificationVoteDB, VoteValue
from .consensus import CONSENSUS_WINDOW, STRONG_VERIFIED_MIN_VOTES, ConsensusEvaluator


CONTRADICTION_LOOKBACK = timedelta(hours=24)
CONTRADICTIONS_FOR_PENALTY = 3


@dataclass
class ContradictionFinding:
    """One of the reporter's votes checked against the consensus after it."""
    vote_id: int
    station_id: int
    vote: VoteValue
    cast_at: datetime
    consensus_value: Optional[VoteValue]
    consensus_votes: int
    contradicted: bool


@dataclass
class ContradictionScan:
    """Result of scanning one reporter's trailing history."""
    reporter_id: str
    findings: List[ContradictionFinding] = field(default_factory=list)

    @property
    def contradiction_count(self) -> int:
        return sum(1 for f in self.findings if f.contradicted)

    @property
    def should_penalize(self) -> bool:
        return self.contradiction_count >= CONTRADICTIONS_FOR_PENALTY


class ContradictionDetector:
    """
    Usage:
        scan = ContradictionDetector(db).scan(reporter_id)
        if scan.should_penalize:
            ...
    """

    def __init__(self, db: Session):
        self.db = db
        self.consensus = ConsensusEvaluator(db)

    def scan(
        self,
        reporter_id: str,
        now: Optional[datetime] = None,
    ) -> ContradictionScan:
        """Check every vote the reporter cast in the trailing 24 hours."""
        now = now or datetime.utcnow()

        votes = (
            self.db.query(VerificationVoteDB)
            .filter(
                VerificationVoteDB.reporter_id == reporter_id,
                VerificationVoteDB.cast_at >= now - CONTRADICTION_LOOKBACK,
                VerificationVoteDB.cast_at <= now,
            )
            .order_by(VerificationVoteDB.cast_at.asc())
            .all()
        )

        result = ContradictionScan(reporter_id=reporter_id)
        for vote in votes:
            result.findings.append(self.check_vote(vote))
        return result

    def check_vote(self, vote: VerificationVoteDB) -> ContradictionFinding:
        """Compare one vote with the tally of the window that follows it."""
        tally = self.consensus.evaluate_window(
            vote.station_id,
            vote.cast_at,
            vote.cast_at + CONSENSUS_WINDOW,
        )
        value = VoteValue(vote.value)
        leader = tally.leading_value
        leader_votes = tally.count_for(leader) if leader else 0

        contradicted = (
            leader is not None
            and leader != value
            and leader_votes >= STRONG_VERIFIED_MIN_VOTES
        )

        return ContradictionFinding(
            vote_id=vote.id,
            station_id=vote.station_id,
            vote=value,
            cast_at=vote.cast_at,
            consensus_value=leader,
            consensus_votes=leader_votes,
            contradicted=contradicted,
        )
