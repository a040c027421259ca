"""
Station Pulse - SQLAlchemy ORM Models
PostgreSQL database models for persistent storage
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Enum as SQLEnum, Boolean, Index
from sqlalchemy.orm import relationship
from ..database import Base


# =============================================================================
# ENUMS
# =============================================================================

class VoteValue(str, Enum):
    """What a reporter observed at a station."""
    WORKING = "WORKING"
    NOT_WORKING = "NOT_WORKING"
    BUSY = "BUSY"


class StationStatus(str, Enum):
    """Operational status of a station."""
    OPERATIONAL = "OPERATIONAL"
    OFFLINE = "OFFLINE"
    MAINTENANCE = "MAINTENANCE"


class StationTrustLevel(str, Enum):
    """Report-flooding flag on a station. Not related to reporter reputation."""
    NORMAL = "NORMAL"
    LOW = "LOW"


class ReputationLevel(str, Enum):
    """Coarse reporter tier, derived from reputation_score only."""
    NEW = "NEW"
    NORMAL = "NORMAL"
    TRUSTED = "TRUSTED"


class ReputationEventType(str, Enum):
    """Kinds of reputation deltas written to the ledger."""
    VERIFICATION_REWARD = "verification_reward"
    CONTRADICTION_PENALTY = "contradiction_penalty"
    REPORT_REWARD = "report_reward"


class ReportStatus(str, Enum):
    """Station condition claimed by an issue report."""
    WORKING = "WORKING"
    NOT_WORKING = "NOT_WORKING"


class ReportReviewStatus(str, Enum):
    """Review state of an issue report (owned by the admin review flow)."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    RESOLVED = "resolved"


# =============================================================================
# REPORTERS
# =============================================================================

class ReporterDB(Base):
    """Anonymous reporter with a ledger-driven reputation."""
    __tablename__ = "reporters"

    id = Column(String(36), primary_key=True)  # UUID
    display_name = Column(String(100), nullable=True)

    # Only written by ReputationLedgerService, always as a pair
    reputation_score = Column(Integer, nullable=False, default=0)
    reputation_level = Column(SQLEnum(ReputationLevel), nullable=False, default=ReputationLevel.NEW)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    votes = relationship("VerificationVoteDB", back_populates="reporter")
    reputation_events = relationship("ReputationEventDB", back_populates="reporter")


# =============================================================================
# STATIONS
# =============================================================================

class StationDB(Base):
    """Charging station. Status is written by the status policy or admin review."""
    __tablename__ = "stations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    city = Column(String(100), nullable=True)

    status = Column(SQLEnum(StationStatus), nullable=False, default=StationStatus.OPERATIONAL)
    trust_level = Column(SQLEnum(StationTrustLevel), nullable=False, default=StationTrustLevel.NORMAL)

    # Visibility (moderation flow)
    approval_status = Column(String(20), nullable=True, default="APPROVED")
    is_hidden = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    votes = relationship("VerificationVoteDB", back_populates="station", cascade="all, delete-orphan")
    reports = relationship("IssueReportDB", back_populates="station", cascade="all, delete-orphan")

    @property
    def is_publicly_visible(self) -> bool:
        approved = self.approval_status is None or self.approval_status == "APPROVED"
        return approved and not self.is_hidden


# =============================================================================
# VOTES & REPORTS
# =============================================================================

class VerificationVoteDB(Base):
    """
    A reporter's observation of a station.

    At most one live row per (reporter, station) inside the consensus
    window; a resubmission overwrites value and cast_at in place.
    """
    __tablename__ = "verification_votes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    station_id = Column(Integer, ForeignKey("stations.id", ondelete="CASCADE"), nullable=False, index=True)
    reporter_id = Column(String(36), ForeignKey("reporters.id"), nullable=False, index=True)

    value = Column(SQLEnum(VoteValue), nullable=False)
    cast_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    station = relationship("StationDB", back_populates="votes")
    reporter = relationship("ReporterDB", back_populates="votes")

    __table_args__ = (
        Index("idx_votes_station_cast", "station_id", "cast_at"),
        Index("idx_votes_reporter_cast", "reporter_id", "cast_at"),
    )


class IssueReportDB(Base):
    """Issue report filed against a station. Review fields belong to the admin flow."""
    __tablename__ = "issue_reports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    station_id = Column(Integer, ForeignKey("stations.id", ondelete="CASCADE"), nullable=False, index=True)
    reporter_id = Column(String(36), ForeignKey("reporters.id"), nullable=True, index=True)

    status = Column(SQLEnum(ReportStatus), nullable=False)
    reason = Column(String(50), nullable=True)  # BUSY, OUT_OF_SERVICE, ACCESS_ISSUE, NOT_FOUND

    review_status = Column(String(20), nullable=False, default=ReportReviewStatus.PENDING.value)
    reviewed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    station = relationship("StationDB", back_populates="reports")

    __table_args__ = (
        Index("idx_reports_station_reason_created", "station_id", "reason", "created_at"),
    )


# =============================================================================
# REPUTATION LEDGER
# =============================================================================
# Append-only. One row per applied reputation delta.
# The row itself is the idempotency marker: an award is skipped when a row
# with the same (reporter, event_type, station_scope, reason_scope) key
# exists inside the event's window.
# =============================================================================

class ReputationEventDB(Base):
    """
    Applied reputation delta.

    🔒 Immutable after insert.
    Append-only. Never deleted.
    """
    __tablename__ = "reputation_events"

    id = Column(String(36), primary_key=True)  # UUID
    reporter_id = Column(String(36), ForeignKey("reporters.id"), nullable=False, index=True)

    event_type = Column(SQLEnum(ReputationEventType), nullable=False)
    station_scope = Column(Integer, nullable=True)
    reason_scope = Column(String(50), nullable=True)

    delta = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    reporter = relationship("ReporterDB", back_populates="reputation_events")

    __table_args__ = (
        Index(
            "idx_reputation_events_key",
            "reporter_id", "event_type", "station_scope", "reason_scope", "created_at",
        ),
    )
