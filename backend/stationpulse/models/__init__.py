"""Station Pulse - Data Models"""
from .db_models import (
    # Enums
    VoteValue, StationStatus, StationTrustLevel, ReputationLevel,
    ReputationEventType, ReportStatus, ReportReviewStatus,
    # Tables
    ReporterDB, StationDB, VerificationVoteDB, IssueReportDB, ReputationEventDB,
)

__all__ = [
    "VoteValue", "StationStatus", "StationTrustLevel", "ReputationLevel",
    "ReputationEventType", "ReportStatus", "ReportReviewStatus",
    "ReporterDB", "StationDB", "VerificationVoteDB", "IssueReportDB", "ReputationEventDB",
]
