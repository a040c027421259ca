"""
Tests for the verification service.

Tests verify:
1. Validation happens before anything is written
2. One live vote per reporter and station (upsert inside 30 minutes)
3. Status policy runs synchronously (trusted override, crowd consensus)
4. Reputation triggers are dispatched after commit, not awaited
5. History, reputation level and report flows
6. Concurrent submissions by one reporter keep a single live vote
"""
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from conftest import NOW
from stationpulse.database import Base, build_engine
from stationpulse.models.db_models import (
    IssueReportDB,
    ReporterDB,
    ReportStatus,
    ReputationLevel,
    StationDB,
    StationStatus,
    StationTrustLevel,
    VerificationVoteDB,
    VoteValue,
)
from stationpulse.services.reputation.triggers import run_report_triggers, run_vote_triggers
from stationpulse.services.reputation.verification_service import (
    InvalidReportError,
    InvalidVoteError,
    ReporterNotFoundError,
    StationNotFoundError,
    VerificationService,
)


@pytest.fixture
def service(db_session, session_factory):
    return VerificationService(db_session, session_factory=session_factory)


# =============================================================================
# TEST: VALIDATION
# =============================================================================

class TestSubmitVerificationValidation:

    def test_invalid_vote_rejected_before_write(self, service, db_session, make_station, make_reporter):
        station = make_station()
        reporter = make_reporter()
        tasks = MagicMock()

        with pytest.raises(InvalidVoteError):
            service.submit_verification(station.id, reporter.id, "MAYBE", background_tasks=tasks, now=NOW)

        assert db_session.query(VerificationVoteDB).count() == 0
        tasks.add_task.assert_not_called()

    def test_unknown_station(self, service, make_reporter):
        with pytest.raises(StationNotFoundError):
            service.submit_verification(999, make_reporter().id, "WORKING", background_tasks=MagicMock(), now=NOW)

    def test_unknown_reporter(self, service, db_session, make_station):
        with pytest.raises(ReporterNotFoundError):
            service.submit_verification(make_station().id, "ghost", "WORKING", background_tasks=MagicMock(), now=NOW)

        assert db_session.query(VerificationVoteDB).count() == 0


# =============================================================================
# TEST: UPSERT
# =============================================================================

class TestVoteUpsert:

    def test_resubmit_inside_window_updates_row(self, service, db_session, make_station, make_reporter):
        station = make_station()
        reporter = make_reporter()

        first = service.submit_verification(
            station.id, reporter.id, "WORKING", background_tasks=MagicMock(), now=NOW
        )
        second = service.submit_verification(
            station.id, reporter.id, "BUSY", background_tasks=MagicMock(),
            now=NOW + timedelta(minutes=10),
        )

        assert db_session.query(VerificationVoteDB).count() == 1
        assert second.vote.id == first.vote.id
        assert second.vote.value == VoteValue.BUSY
        assert second.vote.cast_at == NOW + timedelta(minutes=10)
        assert second.summary.busy == 1
        assert second.summary.working == 0

    def test_resubmit_after_window_adds_row(self, service, db_session, make_station, make_reporter):
        station = make_station()
        reporter = make_reporter()

        service.submit_verification(station.id, reporter.id, "WORKING", background_tasks=MagicMock(), now=NOW)
        service.submit_verification(
            station.id, reporter.id, "WORKING", background_tasks=MagicMock(),
            now=NOW + timedelta(minutes=31),
        )

        assert db_session.query(VerificationVoteDB).count() == 2


# =============================================================================
# TEST: STATUS INFERENCE
# =============================================================================

class TestStatusInference:

    def test_trusted_override_beats_crowd(self, service, db_session, make_station, make_reporter, add_vote):
        """TRUSTED WORKING on OFFLINE station with 5 NOT_WORKING → OPERATIONAL."""
        station = make_station(status=StationStatus.OFFLINE)
        for i in range(5):
            add_vote(station, make_reporter(), VoteValue.NOT_WORKING, NOW - timedelta(minutes=i + 1))
        trusted = make_reporter(score=12)

        result = service.submit_verification(
            station.id, trusted.id, "WORKING", background_tasks=MagicMock(), now=NOW
        )

        assert result.decision.changed is True
        assert result.decision.trigger == "trusted_override"
        db_session.refresh(station)
        assert station.status == StationStatus.OPERATIONAL

    def test_three_crowd_votes_take_station_offline(self, service, db_session, make_station, make_reporter):
        station = make_station(status=StationStatus.OPERATIONAL)

        results = []
        for minute in (0, 4, 9):
            results.append(service.submit_verification(
                station.id, make_reporter().id, "NOT_WORKING",
                background_tasks=MagicMock(), now=NOW + timedelta(minutes=minute),
            ))

        assert [r.decision.changed for r in results] == [False, False, True]
        assert results[-1].decision.trigger == "crowd_consensus"
        db_session.refresh(station)
        assert station.status == StationStatus.OFFLINE

    def test_two_crowd_votes_do_nothing(self, service, db_session, make_station, make_reporter):
        station = make_station(status=StationStatus.OPERATIONAL)

        for minute in (0, 5):
            service.submit_verification(
                station.id, make_reporter().id, "NOT_WORKING",
                background_tasks=MagicMock(), now=NOW + timedelta(minutes=minute),
            )

        db_session.refresh(station)
        assert station.status == StationStatus.OPERATIONAL

    def test_status_write_failure_propagates_and_rolls_back(self, service, db_session, make_station, make_reporter):
        station = make_station()
        reporter = make_reporter()
        tasks = MagicMock()

        with patch.object(service.policy, "apply", side_effect=RuntimeError("write failed")):
            with pytest.raises(RuntimeError):
                service.submit_verification(station.id, reporter.id, "WORKING", background_tasks=tasks, now=NOW)

        assert db_session.query(VerificationVoteDB).count() == 0
        tasks.add_task.assert_not_called()


# =============================================================================
# TEST: BACKGROUND DISPATCH
# =============================================================================

class TestTriggerDispatch:

    def test_vote_triggers_dispatched_after_commit(self, service, make_station, make_reporter):
        station = make_station()
        reporter = make_reporter()
        tasks = MagicMock()

        service.submit_verification(station.id, reporter.id, "WORKING", background_tasks=tasks, now=NOW)

        tasks.add_task.assert_called_once_with(
            run_vote_triggers,
            service.session_factory,
            station.id,
            reporter.id,
            VoteValue.WORKING,
            NOW,
        )

    def test_dispatched_job_applies_reward(self, service, db_session, make_station, make_reporter, add_vote):
        """Running the dispatched job against the same database awards the reward."""
        station = make_station()
        for _ in range(2):
            add_vote(station, make_reporter(), VoteValue.WORKING, NOW - timedelta(minutes=2))
        reporter = make_reporter()
        tasks = MagicMock()

        service.submit_verification(station.id, reporter.id, "WORKING", background_tasks=tasks, now=NOW)

        func, *args = tasks.add_task.call_args[0]
        func(*args)

        db_session.refresh(reporter)
        assert reporter.reputation_score == 1


# =============================================================================
# TEST: READS
# =============================================================================

class TestReads:

    def test_history_newest_first_within_24h(self, service, make_station, make_reporter, add_vote):
        station = make_station()
        named = make_reporter(score=10, display_name="Nino")
        anonymous = make_reporter()

        add_vote(station, named, VoteValue.WORKING, NOW - timedelta(hours=2))
        add_vote(station, anonymous, VoteValue.BUSY, NOW - timedelta(minutes=10))
        add_vote(station, anonymous, VoteValue.WORKING, NOW - timedelta(hours=30))

        history = service.get_verification_history(station.id, now=NOW)

        assert [entry["value"] for entry in history] == ["BUSY", "WORKING"]
        assert history[0]["reporter_name"] == "Anonymous"
        assert history[0]["reputation_level"] == "NEW"
        assert history[1]["reporter_name"] == "Nino"
        assert history[1]["reputation_level"] == "TRUSTED"

    def test_history_limit(self, service, make_station, make_reporter, add_vote):
        station = make_station()
        for i in range(5):
            add_vote(station, make_reporter(), VoteValue.WORKING, NOW - timedelta(minutes=i))

        assert len(service.get_verification_history(station.id, limit=3, now=NOW)) == 3

    def test_reporter_level(self, service, make_reporter):
        assert service.get_reporter_reputation_level(make_reporter(score=6).id) == ReputationLevel.NORMAL
        assert service.get_reporter_reputation_level("unknown") == ReputationLevel.NEW

    def test_summary(self, service, make_station, make_reporter, add_vote):
        station = make_station()
        add_vote(station, make_reporter(), VoteValue.NOT_WORKING, NOW)

        summary = service.get_verification_summary(station.id, now=NOW)

        assert summary.not_working == 1
        assert summary.last_verified_at == NOW


# =============================================================================
# TEST: REPORTS
# =============================================================================

class TestSubmitReport:

    def test_report_written_and_reward_dispatched(self, service, db_session, make_station, make_reporter):
        station = make_station()
        reporter = make_reporter()
        tasks = MagicMock()

        report = service.submit_report(
            station.id, reporter.id, "NOT_WORKING", reason="OUT_OF_SERVICE",
            background_tasks=tasks, now=NOW,
        )

        assert report.status == ReportStatus.NOT_WORKING
        assert report.review_status == "pending"
        tasks.add_task.assert_called_once_with(
            run_report_triggers, service.session_factory, station.id, "OUT_OF_SERVICE", NOW
        )

    def test_report_without_reason_not_dispatched(self, service, make_station):
        tasks = MagicMock()

        service.submit_report(make_station().id, None, "WORKING", background_tasks=tasks, now=NOW)

        tasks.add_task.assert_not_called()

    def test_report_flood_flags_station_low(self, service, db_session, make_station):
        station = make_station()

        for i in range(3):
            service.submit_report(
                station.id, None, "NOT_WORKING", background_tasks=MagicMock(),
                now=NOW + timedelta(minutes=i),
            )
            db_session.refresh(station)
            expected = StationTrustLevel.LOW if i == 2 else StationTrustLevel.NORMAL
            assert station.trust_level == expected

    def test_invalid_report_status(self, service, db_session, make_station):
        with pytest.raises(InvalidReportError):
            service.submit_report(make_station().id, None, "BUSY", background_tasks=MagicMock(), now=NOW)

        assert db_session.query(IssueReportDB).count() == 0

    def test_report_unknown_station(self, service):
        with pytest.raises(StationNotFoundError):
            service.submit_report(404, None, "WORKING", background_tasks=MagicMock(), now=NOW)

    def test_report_unknown_reporter_rejected_before_write(self, service, db_session, make_station):
        station = make_station()
        tasks = MagicMock()

        with pytest.raises(ReporterNotFoundError):
            service.submit_report(
                station.id, "no-such-reporter", "NOT_WORKING", reason="BUSY",
                background_tasks=tasks, now=NOW,
            )

        assert db_session.query(IssueReportDB).count() == 0
        tasks.add_task.assert_not_called()

    def test_report_by_known_reporter(self, service, make_station, make_reporter):
        reporter = make_reporter()

        report = service.submit_report(
            make_station().id, reporter.id, "WORKING", background_tasks=MagicMock(), now=NOW
        )

        assert report.reporter_id == reporter.id


# =============================================================================
# TEST: CONCURRENT SUBMISSIONS
# =============================================================================

class TestConcurrentVoteSubmission:
    """Parallel submissions by one reporter must still leave one live vote."""

    def test_one_vote_row_under_contention(self, tmp_path):
        engine = build_engine(f"sqlite:///{tmp_path / 'votes.db'}")
        Base.metadata.create_all(bind=engine)
        Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        reporter_id = str(uuid4())
        setup = Session()
        station = StationDB(name="Contended Station", status=StationStatus.OPERATIONAL)
        setup.add(station)
        setup.add(ReporterDB(id=reporter_id, reputation_score=0, reputation_level=ReputationLevel.NEW))
        setup.commit()
        station_id = station.id
        setup.close()

        workers = 6
        barrier = threading.Barrier(workers)

        def submit(i):
            db = Session()
            try:
                barrier.wait()
                VerificationService(db, session_factory=Session).submit_verification(
                    station_id, reporter_id, "WORKING" if i % 2 else "BUSY",
                    background_tasks=MagicMock(), now=NOW + timedelta(seconds=i),
                )
            finally:
                db.close()

        with ThreadPoolExecutor(max_workers=workers) as pool:
            list(pool.map(submit, range(workers)))

        check = Session()
        try:
            assert check.query(VerificationVoteDB).count() == 1
        finally:
            check.close()
            engine.dispose()

    def test_reporter_row_locked_for_vote(self, service, make_station, make_reporter):
        """The reporter lookup for a vote takes a row lock."""
        station = make_station()
        reporter = make_reporter()

        with patch.object(service, "_get_reporter", wraps=service._get_reporter) as get_reporter:
            service.submit_verification(
                station.id, reporter.id, "WORKING", background_tasks=MagicMock(), now=NOW
            )

        get_reporter.assert_called_once_with(reporter.id, lock=True)
