"""
Shared fixtures: an in-memory SQLite database and row factories.

DATABASE_URL is pointed at SQLite before the package is imported so the
module-level engine never tries to reach PostgreSQL.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from stationpulse.database import Base
from stationpulse.models.db_models import (
    IssueReportDB,
    ReporterDB,
    ReportStatus,
    StationDB,
    StationStatus,
    VerificationVoteDB,
)
from stationpulse.services.reputation.reputation_ledger import reputation_level_for


NOW = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_station(db_session):
    def _make(status=StationStatus.OPERATIONAL, updated_at=None, **kwargs):
        station = StationDB(
            name=kwargs.pop("name", "Test Station"),
            city=kwargs.pop("city", "Tbilisi"),
            status=status,
            created_at=kwargs.pop("created_at", NOW - timedelta(days=90)),
            updated_at=updated_at or NOW - timedelta(days=60),
            **kwargs,
        )
        db_session.add(station)
        db_session.commit()
        return station
    return _make


@pytest.fixture
def make_reporter(db_session):
    def _make(score=0, display_name=None):
        reporter = ReporterDB(
            id=str(uuid4()),
            display_name=display_name,
            reputation_score=score,
            reputation_level=reputation_level_for(score),
        )
        db_session.add(reporter)
        db_session.commit()
        return reporter
    return _make


@pytest.fixture
def add_vote(db_session):
    """Insert a vote row directly, bypassing the upsert."""
    def _add(station, reporter, value, cast_at):
        vote = VerificationVoteDB(
            station_id=station.id,
            reporter_id=reporter.id,
            value=value,
            cast_at=cast_at,
        )
        db_session.add(vote)
        db_session.commit()
        return vote
    return _add


@pytest.fixture
def add_report(db_session):
    """Insert an issue report row directly."""
    def _add(station, reporter=None, reason=None, created_at=NOW,
             status=ReportStatus.NOT_WORKING, review_status="pending"):
        report = IssueReportDB(
            station_id=station.id,
            reporter_id=reporter.id if reporter else None,
            status=status,
            reason=reason,
            review_status=review_status,
            created_at=created_at,
        )
        db_session.add(report)
        db_session.commit()
        return report
    return _add
