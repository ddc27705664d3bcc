"""
Tests for transitions racing on one approval request.

These run against a file-backed SQLite database so that every orchestrator
gets its own connection and session, as request handlers and the sweep do.
"""
import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from contentgate.database import Base
from contentgate.engine import ApprovalOrchestrator, DecisionOutcome, WorkflowRegistry
from contentgate.engine import notifications as events
from contentgate.engine import repository
from contentgate.engine.errors import ConcurrentModification, StaleDecision
from contentgate.engine.notifications import NotificationDispatcher
from contentgate.engine.repository import ApprovalRepository, request_lock
from contentgate.models.approval_request import ContentApprovalRequest
from contentgate.schemas.workflow import WorkflowDefinition

PARALLEL_REVIEW = {
    "id": "content_review",
    "name": "Content Review",
    "type": "review",
    "order": 1,
    "parallel": True,
    "assignees": [{"type": "user", "id": "casey"}, {"type": "user", "id": "jordan"}],
}
TIMED_REVIEW = {
    "id": "content_review",
    "name": "Content Review",
    "type": "review",
    "order": 1,
    "assignees": [{"type": "user", "id": "casey"}],
    "timeout": {"hours": 1, "action": "auto_approve"},
}
FINAL_APPROVAL = {
    "id": "final_approval",
    "name": "Final Approval",
    "type": "final_approval",
    "order": 2,
    "assignees": [{"type": "user", "id": "morgan"}],
}


def run_together(*calls):
    """Start every call at the same moment; return each call's result or the exception it raised."""
    barrier = threading.Barrier(len(calls))
    results = [None] * len(calls)

    def run(index, call):
        barrier.wait()
        try:
            results[index] = call()
        except Exception as e:
            results[index] = e

    threads = [threading.Thread(target=run, args=(i, call)) for i, call in enumerate(calls)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return results


@pytest.fixture
def sessions(tmp_path):
    """Session factory on a SQLite file shared by several connections."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'contentgate.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    opened = []

    def open_session():
        session = factory()
        opened.append(session)
        return session

    yield open_session
    for session in opened:
        session.close()
    engine.dispose()


@pytest.fixture
def orchestrator_for(sessions, check_runner, identity, sink, clock):
    """Build an orchestrator on a session of its own."""
    def factory():
        return ApprovalOrchestrator(
            sessions(),
            check_runner=check_runner,
            identity=identity,
            notifier=NotificationDispatcher([sink]),
            clock=clock,
        )
    return factory


@pytest.fixture
def submit(sessions, orchestrator_for, submission):
    """Create a workflow from step dicts and submit one request to it; returns the request id."""
    def factory(steps):
        definition = WorkflowDefinition.model_validate({
            "organization_id": "org_1",
            "name": "Review",
            "steps": steps,
        })
        workflow = WorkflowRegistry(sessions()).create(definition, created_by="tester")
        return orchestrator_for().create(submission(workflow.id), submitter_id="sam").id
    return factory


class TestParallelApprovals:
    """Test assignees of a parallel step deciding at the same time."""

    def test_step_advances_once(self, orchestrator_for, submit, sink):
        request_id = submit([PARALLEL_REVIEW, FINAL_APPROVAL])
        casey, jordan = orchestrator_for(), orchestrator_for()

        results = run_together(
            lambda: casey.decide(request_id, "casey", {"action": "approve", "step": 0}),
            lambda: jordan.decide(request_id, "jordan", {"action": "approve", "step": 0}),
        )

        assert all(isinstance(r, DecisionOutcome) for r in results)
        assert sorted(r.step_completed for r in results) == [False, True]
        request = orchestrator_for().get(request_id)
        assert request.current_step == 1
        assert sorted(a.reviewer_id for a in request.approvals if a.step_index == 0) == ["casey", "jordan"]
        assert len([e for e in sink.named(events.STEP_ENTERED) if e.payload["step_id"] == "final_approval"]) == 1


class TestTimeoutRace:
    """Test a reviewer deciding while the sweep fires the step's timeout."""

    def test_only_one_side_wins(self, orchestrator_for, submit, clock):
        request_id = submit([TIMED_REVIEW, FINAL_APPROVAL])
        now = clock.advance(hours=2)
        reviewer, sweeper = orchestrator_for(), orchestrator_for()

        decided, fired = run_together(
            lambda: reviewer.decide(request_id, "casey", {"action": "approve", "step": 0}),
            lambda: sweeper.apply_timeout(request_id, 0, now),
        )

        if isinstance(decided, StaleDecision):
            assert fired == "auto_approve"
        else:
            assert isinstance(decided, DecisionOutcome)
            assert decided.step_completed
            assert fired is None

        request = orchestrator_for().get(request_id)
        assert request.status == ContentApprovalRequest.IN_REVIEW
        assert request.current_step == 1
        assert len([a for a in request.approvals if a.step_index == 0 and a.decision == "approved"]) == 1


class TestOptimisticVersioning:
    """Test writers that bypass the in-process lock, as another process would."""

    def test_stale_write_rejected(self, sessions, submit):
        request_id = submit([PARALLEL_REVIEW])
        first, second = ApprovalRepository(sessions()), ApprovalRepository(sessions())

        stale = first.load(request_id)
        fresh = second.load(request_id)
        fresh.priority = "urgent"
        second.commit()

        stale.priority = "low"
        with pytest.raises(ConcurrentModification):
            first.commit()

        assert ApprovalRepository(sessions()).load(request_id, for_update=False).priority == "urgent"


class TestRequestLocks:
    """Test the per-request lock table."""

    def test_entries_released_after_transitions(self, orchestrator_for, submit):
        orchestrator = orchestrator_for()
        for _ in range(3):
            request_id = submit([PARALLEL_REVIEW])
            orchestrator.decide(request_id, "casey", {"action": "approve"})
            orchestrator.decide(request_id, "jordan", {"action": "approve"})

        assert repository._locks == {}

    def test_entry_kept_while_held(self):
        held, release = threading.Event(), threading.Event()

        def hold():
            with request_lock(42):
                held.set()
                release.wait(5)

        thread = threading.Thread(target=hold)
        thread.start()
        held.wait(5)
        assert repository._locks[42].holders == 1

        release.set()
        thread.join(5)
        assert 42 not in repository._locks

    def test_reentrant(self):
        with request_lock(7):
            with request_lock(7):
                assert repository._locks[7].holders == 2
        assert 7 not in repository._locks
