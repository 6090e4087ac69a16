"""
Two reviewers acting on the same stage: exactly one decision lands.

The sequential and overlapping-transaction tests run on any backend,
including the default SQLite file.  The threaded test needs real
row locks and runs only against PostgreSQL:

    DATABASE_URL=postgresql://qa:qa@localhost/inspection_test \
        pytest tests/concurrency -m postgres
"""

import sqlite3
import threading
from uuid import uuid4

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from inspection_kernel.db.engine import is_postgres, is_write_contention
from inspection_kernel.domain.lifecycle import InspectionStatus
from inspection_kernel.domain.policies import DEFAULT_BOOTSTRAP_CODE
from inspection_kernel.domain.roles import Role
from inspection_kernel.exceptions import AlreadyInitializedError, ConflictError
from inspection_kernel.models.inspection import Inspection
from inspection_kernel.services.inspection_service import InspectionService

S = InspectionStatus


def _second_team_leader(session_factory, world):
    sess = session_factory()
    svc = InspectionService(sess)
    identity = uuid4()
    svc.register_identity(identity)
    svc.assign_role(world["identities"][Role.QUALITY_HEAD], identity, Role.TEAM_LEADER)
    sess.commit()
    sess.close()
    return identity


class TestSequentialRace:

    def test_decide_after_other_commit_conflicts(self, session_factory, committed_world):
        inspection_id = committed_world["inspection_id"]
        first = committed_world["identities"][Role.TEAM_LEADER]
        second = _second_team_leader(session_factory, committed_world)

        sess_a, sess_b = session_factory(), session_factory()
        svc_a, svc_b = InspectionService(sess_a), InspectionService(sess_b)

        # Both reviewers see the record waiting on them
        assert svc_a.get_inspection(inspection_id).status is S.PENDING_TEAM_LEADER
        assert svc_b.get_inspection(inspection_id).status is S.PENDING_TEAM_LEADER
        sess_b.rollback()

        svc_a.decide(inspection_id, first, "approve", "ok")
        sess_a.commit()

        with pytest.raises(ConflictError) as exc_info:
            svc_b.decide(inspection_id, second, "reject", "too late")
        assert exc_info.value.actual_status == S.PENDING_HOF_AUDITOR.value
        sess_b.rollback()

        check = InspectionService(session_factory())
        assert check.get_inspection(inspection_id).status is S.PENDING_HOF_AUDITOR
        assert len(check.history(inspection_id)) == 1

    def test_version_bump_between_read_and_write(self, session_factory, committed_world, monkeypatch):
        """A write that lands after the engine read loses with ConflictError."""
        inspection_id = committed_world["inspection_id"]
        team_leader = committed_world["identities"][Role.TEAM_LEADER]

        sess = session_factory()
        svc = InspectionService(sess)
        original_get = svc.store.get
        table = Inspection.__table__

        def get_then_race(*args, **kwargs):
            inspection = original_get(*args, **kwargs)
            sess.execute(
                update(table)
                .where(table.c.id == str(inspection.id))
                .values(status=S.PENDING_HOF_AUDITOR.value, version=table.c.version + 1)
            )
            return inspection

        monkeypatch.setattr(svc.store, "get", get_then_race)

        with pytest.raises(ConflictError) as exc_info:
            svc.decide(inspection_id, team_leader, "approve", "ok")
        assert exc_info.value.actual_status == S.PENDING_HOF_AUDITOR.value
        assert svc.history(inspection_id) == []

    def test_second_bootstrap_refused(self, session_factory, db_tables):
        first, second = session_factory(), session_factory()
        InspectionService(first).bootstrap_quality_head(uuid4(), DEFAULT_BOOTSTRAP_CODE)
        first.commit()

        with pytest.raises(AlreadyInitializedError):
            InspectionService(second).bootstrap_quality_head(uuid4(), DEFAULT_BOOTSTRAP_CODE)


class TestOverlappingTransactions:
    """Both sides read inside open transactions before either writes."""

    def test_loser_gets_conflict(self, session_factory, committed_world):
        inspection_id = committed_world["inspection_id"]
        first = committed_world["identities"][Role.TEAM_LEADER]
        second = _second_team_leader(session_factory, committed_world)

        sess_a, sess_b = session_factory(), session_factory()
        svc_a, svc_b = InspectionService(sess_a), InspectionService(sess_b)
        assert svc_a.get_inspection(inspection_id).status is S.PENDING_TEAM_LEADER
        assert svc_b.get_inspection(inspection_id).status is S.PENDING_TEAM_LEADER

        svc_a.decide(inspection_id, first, "approve", "ok")
        sess_a.commit()

        with pytest.raises(ConflictError) as exc_info:
            svc_b.decide(inspection_id, second, "reject", "too late")
        assert exc_info.value.retryable
        assert exc_info.value.actual_status == S.PENDING_HOF_AUDITOR.value
        sess_b.rollback()

        check = InspectionService(session_factory())
        assert check.get_inspection(inspection_id).status is S.PENDING_HOF_AUDITOR
        history = check.history(inspection_id)
        assert [(h.actor_id, h.new_status) for h in history] == [(first, S.PENDING_HOF_AUDITOR)]

    def test_loser_can_retry_after_conflict(self, session_factory, committed_world):
        inspection_id = committed_world["inspection_id"]
        team_leader = committed_world["identities"][Role.TEAM_LEADER]
        hof_auditor = committed_world["identities"][Role.HOF_AUDITOR]

        sess_a, sess_b = session_factory(), session_factory()
        svc_a, svc_b = InspectionService(sess_a), InspectionService(sess_b)
        svc_b.get_inspection(inspection_id)

        svc_a.decide(inspection_id, team_leader, "approve", "ok")
        sess_a.commit()

        with pytest.raises(ConflictError):
            svc_b.decide(inspection_id, team_leader, "approve", "again")
        record = svc_b.decide(inspection_id, hof_auditor, "approve", "checked")
        sess_b.commit()
        assert record.status is S.PENDING_QUALITY_HEAD

    def test_loser_gets_already_initialized(self, session_factory, db_tables):
        sess_a, sess_b = session_factory(), session_factory()
        late = InspectionService(sess_b)
        assert not late.roles.has_quality_head()

        winner = uuid4()
        InspectionService(sess_a).bootstrap_quality_head(winner, DEFAULT_BOOTSTRAP_CODE)
        sess_a.commit()

        with pytest.raises(AlreadyInitializedError):
            late.bootstrap_quality_head(uuid4(), DEFAULT_BOOTSTRAP_CODE)
        sess_b.rollback()

        check = InspectionService(session_factory())
        heads = [a for a in check.list_role_assignments() if a.role is Role.QUALITY_HEAD]
        assert [a.identity_id for a in heads] == [winner]


class TestWriteContention:

    def test_busy_sqlite_error_is_contention(self):
        exc = OperationalError("UPDATE", {}, sqlite3.OperationalError("database is locked"))
        assert is_write_contention(exc)

    def test_other_sqlite_errors_are_not(self):
        exc = OperationalError("UPDATE", {}, sqlite3.OperationalError("no such table: inspections"))
        assert not is_write_contention(exc)

    def test_non_sqlite_errors_are_not(self):
        exc = OperationalError("UPDATE", {}, RuntimeError("database is locked"))
        assert not is_write_contention(exc)


@pytest.mark.postgres
@pytest.mark.slow
class TestThreadedRace:

    @pytest.fixture(autouse=True)
    def _require_postgres(self, db_engine):
        if not is_postgres():
            pytest.skip("row-level locking requires PostgreSQL")

    def test_exactly_one_of_two_team_leaders_wins(self, session_factory, committed_world):
        inspection_id = committed_world["inspection_id"]
        reviewers = [
            committed_world["identities"][Role.TEAM_LEADER],
            _second_team_leader(session_factory, committed_world),
        ]
        barrier = threading.Barrier(len(reviewers))
        outcomes = []
        lock = threading.Lock()

        def review(actor_id, action):
            sess = session_factory()
            svc = InspectionService(sess)
            barrier.wait()
            try:
                svc.decide(inspection_id, actor_id, action, f"{action} by {actor_id}")
                sess.commit()
                outcome = "won"
            except ConflictError:
                sess.rollback()
                outcome = "conflict"
            with lock:
                outcomes.append(outcome)

        threads = [
            threading.Thread(target=review, args=(actor, action))
            for actor, action in zip(reviewers, ("approve", "reject"))
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert sorted(outcomes) == ["conflict", "won"]
        check = InspectionService(session_factory())
        history = check.history(inspection_id)
        assert len(history) == 1
        assert check.get_inspection(inspection_id).status is history[0].new_status
