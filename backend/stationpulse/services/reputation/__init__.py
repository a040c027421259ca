"""
Reputation Services

Crowd verification and reporter reputation engine.

- ConsensusEvaluator: trailing-window vote tallies
- StatusInferencePolicy: station status state machine
- ReputationLedgerService: idempotent, locked reputation deltas
- ContradictionDetector: disagreement with later consensus
- ReputationTriggers: reward/penalty rules, run in the background
- VerificationService: operations exposed to the API layer
"""

from .consensus import ConsensusEvaluator, VerificationSummary
from .status_policy import StatusInferencePolicy, StatusDecision
from .reputation_ledger import ReputationLedgerService, reputation_level_for
from .contradiction_detector import ContradictionDetector, ContradictionScan
from .triggers import ReputationTriggers, run_vote_triggers, run_report_triggers
from .verification_service import (
    VerificationService,
    VerificationResult,
    VerificationServiceError,
    InvalidVoteError,
    InvalidReportError,
    StationNotFoundError,
    ReporterNotFoundError,
)

__all__ = [
    'ConsensusEvaluator',
    'VerificationSummary',
    'StatusInferencePolicy',
    'StatusDecision',
    'ReputationLedgerService',
    'reputation_level_for',
    'ContradictionDetector',
    'ContradictionScan',
    'ReputationTriggers',
    'run_vote_triggers',
    'run_report_triggers',
    'VerificationService',
    'VerificationResult',
    'VerificationServiceError',
    'InvalidVoteError',
    'InvalidReportError',
    'StationNotFoundError',
    'ReporterNotFoundError',
]
