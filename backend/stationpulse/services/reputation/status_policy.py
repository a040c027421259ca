"""
Station Status Inference Policy

Deterministic state machine deciding station status from a single vote.
Evaluated synchronously on every vote submission, in priority order:

1. Trusted-reporter override - a TRUSTED reporter's vote is authoritative.
2. Crowd consensus - an unambiguous supermajority of the trailing window.

MAINTENANCE is never targeted here; only the admin flow sets it.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ...models.db_models import (
    ReputationLevel,
    StationDB,
    StationStatus,
    VoteValue,
)
from .consensus import VerificationSummary


logger = logging.getLogger(__name__)


# Minimum votes for the crowd to move a station
CROWD_MIN_VOTES = 3


# =============================================================================
# STATE CONFIGURATION
# =============================================================================
#
# AUTHORITY MODEL:
# - SYSTEM: the policy below may move a station into the state
# - ADMIN: only the excluded manual override / report review flow may
#
# =============================================================================

STATUS_CONFIG = {
    StationStatus.OPERATIONAL: {
        "description": "Station reported working",
        "allowed_transitions": [StationStatus.OFFLINE],
        "entry_authority": "SYSTEM",
    },
    StationStatus.OFFLINE: {
        "description": "Station reported not working",
        "allowed_transitions": [StationStatus.OPERATIONAL],
        "entry_authority": "SYSTEM",
    },
    StationStatus.MAINTENANCE: {
        "description": "Station under maintenance",
        "allowed_transitions": [StationStatus.OPERATIONAL, StationStatus.OFFLINE],
        "entry_authority": "ADMIN",
    },
}

# Target status for an authoritative vote. BUSY says nothing about health.
VOTE_TARGETS = {
    VoteValue.WORKING: StationStatus.OPERATIONAL,
    VoteValue.NOT_WORKING: StationStatus.OFFLINE,
}


@dataclass
class StatusDecision:
    """Outcome of one policy evaluation."""
    from_status: StationStatus
    to_status: StationStatus
    trigger: Optional[str] = None
    changed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_status": self.from_status.value,
            "to_status": self.to_status.value,
            "trigger": self.trigger,
            "changed": self.changed,
        }


class StatusInferencePolicy:
    """
    Station status state machine.

    Core Principles:
    - A single trusted signal outranks any amount of untrusted disagreement
    - The untrusted crowd needs >= 3 votes strictly ahead of both others
    - Ties and small samples never move a station
    """

    def __init__(self, db: Session):
        self.db = db

    def get_state_config(self, status: StationStatus) -> Dict[str, Any]:
        return STATUS_CONFIG.get(status, {})

    def can_transition(
        self,
        from_status: StationStatus,
        to_status: StationStatus,
    ) -> Tuple[bool, str]:
        """
        Check if a status transition is allowed.

        Returns (allowed, reason)
        """
        if from_status == to_status:
            return False, f"Station already {to_status.value}"

        if to_status not in self.get_next_states(from_status):
            return False, f"Cannot transition from {from_status.value} to {to_status.value}"

        if self.get_state_config(to_status).get("entry_authority") != "SYSTEM":
            return False, f"{to_status.value} is not set by votes"

        return True, "Transition allowed"

    def get_next_states(self, status: StationStatus) -> List[StationStatus]:
        return self.get_state_config(status).get("allowed_transitions", [])

    # =========================================================================
    # DECISION
    # =========================================================================

    def decide_target(
        self,
        reporter_level: ReputationLevel,
        vote: VoteValue,
        summary: VerificationSummary,
    ) -> Tuple[Optional[StationStatus], Optional[str]]:
        """
        Pick the status a vote points at, without touching the station.

        Returns (target_status, trigger); target is None when the vote
        leaves the station alone.
        """
        if reporter_level == ReputationLevel.TRUSTED:
            return VOTE_TARGETS.get(vote), "trusted_override"

        working = summary.working
        not_working = summary.not_working
        busy = summary.busy

        if not_working >= CROWD_MIN_VOTES and not_working > working and not_working > busy:
            return StationStatus.OFFLINE, "crowd_consensus"
        if working >= CROWD_MIN_VOTES and working > not_working and working > busy:
            return StationStatus.OPERATIONAL, "crowd_consensus"

        return None, None

    def apply(
        self,
        station: StationDB,
        reporter_level: ReputationLevel,
        vote: VoteValue,
        summary: VerificationSummary,
        now: Optional[datetime] = None,
    ) -> StatusDecision:
        """
        Evaluate the policy and write the new status if it changes.

        Flushes but does not commit; the caller owns the transaction.
        Storage errors propagate.
        """
        current = StationStatus(station.status)
        target, trigger = self.decide_target(reporter_level, vote, summary)

        if target is None:
            return StatusDecision(from_status=current, to_status=current)

        allowed, reason = self.can_transition(current, target)
        if not allowed:
            return StatusDecision(from_status=current, to_status=current, trigger=trigger)

        station.status = target
        station.updated_at = now or datetime.utcnow()
        self.db.flush()

        logger.info(
            f"Station {station.id} status {current.value} -> {target.value} ({trigger})"
        )
        return StatusDecision(from_status=current, to_status=target, trigger=trigger, changed=True)
