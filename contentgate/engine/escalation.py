"""
Escalation / Timeout Scheduler

A periodic sweep over requests waiting in review. Candidates are read without
locks; each one is then re-checked and acted on by the orchestrator under the
request's lock, so a sweep that loses a race with a reviewer is a no-op.

The same sweep retries policy checks that errored on a request's current
step. Every request is handled in its own session, and a failure on one
request is logged and counted without stopping the rest of the sweep.
"""
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..logging_config import engine_logger
from ..models.approval_request import ContentApprovalRequest, as_utc, utcnow
from ..models.workflow import ApprovalWorkflow
from .checks import CheckResult
from .errors import ApprovalEngineError, RequestTerminal, StaleDecision
from .orchestrator import ApprovalOrchestrator
from .repository import ApprovalRepository

OrchestratorFactory = Callable[[Session], ApprovalOrchestrator]


def _has_errored_checks(request: ContentApprovalRequest, workflow: Optional[ApprovalWorkflow]) -> bool:
    step = workflow.get_step(request.current_step) if workflow else None
    revision = request.latest_revision
    if step is None or revision is None:
        return False
    cached = revision.cached_check(step.id)
    return cached is not None and CheckResult.from_dict(cached).needs_human_review


class EscalationScheduler:
    def __init__(self, session_factory: Callable[[], Session], orchestrator_factory: OrchestratorFactory):
        self.session_factory = session_factory
        self.orchestrator_factory = orchestrator_factory

    def due(self, db: Session, now: datetime) -> List[Tuple[int, int]]:
        """(request id, step index) pairs whose current step timeout has elapsed."""
        workflows: Dict[int, Optional[ApprovalWorkflow]] = {}
        due = []
        for request_id, workflow_id, step_index, entered in ApprovalRepository(db).timed_out_candidates():
            if workflow_id not in workflows:
                workflows[workflow_id] = db.get(ApprovalWorkflow, workflow_id)
            workflow = workflows[workflow_id]
            step = workflow.get_step(step_index) if workflow else None
            if step is None or step.timeout is None:
                continue
            if now - as_utc(entered) > timedelta(hours=step.timeout.hours):
                due.append((request_id, step_index))
        return due

    def rechecks(self, db: Session) -> List[int]:
        """Ids of requests in review whose current step's cached checks errored."""
        return [r.id for r in ApprovalRepository(db).in_review() if _has_errored_checks(r, r.workflow)]

    def _candidates(self, now: datetime) -> Tuple[List[Tuple[int, int]], List[int]]:
        db = self.session_factory()
        try:
            return self.due(db, now), self.rechecks(db)
        finally:
            db.close()

    def _run(self, action: Callable[[ApprovalOrchestrator], object], log, stats: Dict[str, int]):
        """Run one request's action in a fresh session. Returns the action's result, or None after a failure."""
        db = self.session_factory()
        try:
            return action(self.orchestrator_factory(db))
        except (StaleDecision, RequestTerminal):
            return None
        except ApprovalEngineError as e:
            stats["errors"] += 1
            log.error("Sweep action rejected by the engine", error=e)
        except Exception as e:
            stats["errors"] += 1
            log.error("Sweep action failed", error=e)
        finally:
            db.close()
        return None

    def sweep(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Apply every due timeout and retry errored policy checks. Returns counts of actions taken."""
        now = as_utc(now) if now else utcnow()
        stats = {"checked": 0, "fired": 0, "skipped": 0, "rechecked": 0, "errors": 0}
        due, rechecks = self._candidates(now)

        for request_id, step_index in due:
            stats["checked"] += 1
            log = engine_logger.bind(request_id=request_id, step=step_index, sweep="timeout")
            errors = stats["errors"]
            action = self._run(lambda o: o.apply_timeout(request_id, step_index, now), log, stats)
            if stats["errors"] > errors:
                continue
            if action is None:
                stats["skipped"] += 1
            else:
                stats["fired"] += 1

        for request_id in rechecks:
            log = engine_logger.bind(request_id=request_id, sweep="recheck")
            if self._run(lambda o: o.recheck(request_id), log, stats):
                stats["rechecked"] += 1

        if stats["checked"] or stats["rechecked"] or stats["errors"]:
            engine_logger.info("Sweep completed", **stats)
        return stats
