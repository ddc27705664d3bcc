"""
Approval request storage.

All transitions on one request are serialized twice over: an in-process lock
per request id, and the request's ``version_id`` column, which makes a
concurrent writer in another process fail with ``ConcurrentModification``
instead of silently overwriting the append-only logs.
"""
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..logging_config import db_logger
from ..models.approval_request import ContentApprovalRequest
from ..models.workflow import ApprovalWorkflow
from .errors import ConcurrentModification, NotFound


class _LockEntry:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = threading.RLock()
        self.holders = 0


# Only requests with a transition in progress or waiting have an entry
_locks: Dict[int, _LockEntry] = {}
_locks_guard = threading.Lock()


@contextmanager
def request_lock(request_id: int):
    """Serialize transitions on one request within this process."""
    with _locks_guard:
        entry = _locks.get(request_id)
        if entry is None:
            entry = _locks[request_id] = _LockEntry()
        entry.holders += 1
    try:
        with entry.lock:
            yield
    finally:
        with _locks_guard:
            entry.holders -= 1
            if entry.holders == 0:
                del _locks[request_id]


def _conflict(error: StaleDataError) -> ConcurrentModification:
    db_logger.warning("Optimistic version check failed", error_message=str(error))
    return ConcurrentModification("Approval request was modified concurrently")


class ApprovalRepository:
    def __init__(self, db: Session):
        self.db = db

    def load(self, request_id: int, for_update: bool = True) -> ContentApprovalRequest:
        """Load a request with fresh state from the database."""
        self.db.expire_all()
        query = self.db.query(ContentApprovalRequest).filter(ContentApprovalRequest.id == request_id)
        query = query.populate_existing()
        if for_update:
            query = query.with_for_update()
        request = query.first()
        if request is None:
            raise NotFound("Approval request", request_id)
        return request

    def add(self, request: ContentApprovalRequest):
        self.db.add(request)

    def flush(self):
        try:
            self.db.flush()
        except StaleDataError as e:
            self.db.rollback()
            raise _conflict(e) from e

    def commit(self):
        try:
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            raise _conflict(e) from e

    def rollback(self):
        self.db.rollback()

    def load_workflow(self, workflow_id: int) -> ApprovalWorkflow:
        workflow = self.db.get(ApprovalWorkflow, workflow_id)
        if workflow is None:
            raise NotFound("Workflow", workflow_id)
        return workflow

    def list_requests(
        self,
        organization_id: Optional[str] = None,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        submitter_id: Optional[str] = None,
        predicate: Optional[Callable[[ContentApprovalRequest], bool]] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Tuple[List[ContentApprovalRequest], int]:
        query = self.db.query(ContentApprovalRequest)
        if organization_id:
            query = query.filter(ContentApprovalRequest.organization_id == organization_id)
        if status:
            query = query.filter(ContentApprovalRequest.status == status)
        if priority:
            query = query.filter(ContentApprovalRequest.priority == priority)
        if submitter_id:
            query = query.filter(ContentApprovalRequest.submitter_id == submitter_id)

        query = query.order_by(ContentApprovalRequest.created_at.desc(), ContentApprovalRequest.id.desc())
        offset = (page - 1) * per_page
        if predicate is not None:
            # Assignment depends on the workflow definition, so filter after loading
            matched = [r for r in query.all() if predicate(r)]
            return matched[offset:offset + per_page], len(matched)

        total = query.count()
        return query.offset(offset).limit(per_page).all(), total

    def count_approved_for_submitter(self, organization_id: str, submitter_id: str) -> int:
        return (
            self.db.query(ContentApprovalRequest)
            .filter(
                ContentApprovalRequest.organization_id == organization_id,
                ContentApprovalRequest.submitter_id == submitter_id,
                ContentApprovalRequest.status == ContentApprovalRequest.APPROVED,
            )
            .count()
        )

    def timed_out_candidates(self) -> List[Tuple[int, int, int, datetime]]:
        """(id, workflow_id, current_step, step_entered_at) for requests in review whose step has not timed out yet."""
        rows = (
            self.db.query(
                ContentApprovalRequest.id,
                ContentApprovalRequest.workflow_id,
                ContentApprovalRequest.current_step,
                ContentApprovalRequest.step_entered_at,
            )
            .filter(
                ContentApprovalRequest.status == ContentApprovalRequest.IN_REVIEW,
                ContentApprovalRequest.step_entered_at.isnot(None),
                ContentApprovalRequest.timeout_fired_at.is_(None),
                ContentApprovalRequest.is_frozen.isnot(True),
            )
            .order_by(ContentApprovalRequest.id)
            .all()
        )
        return [(row.id, row.workflow_id, row.current_step, row.step_entered_at) for row in rows]

    def in_review(self) -> List[ContentApprovalRequest]:
        """Unfrozen requests waiting in review, oldest first."""
        return (
            self.db.query(ContentApprovalRequest)
            .filter(
                ContentApprovalRequest.status == ContentApprovalRequest.IN_REVIEW,
                ContentApprovalRequest.is_frozen.isnot(True),
            )
            .order_by(ContentApprovalRequest.id)
            .all()
        )
