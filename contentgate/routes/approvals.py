"""
Approvals routes for the content approval workflow.

Every route resolves the caller's username as the acting reviewer or submitter
and hands the typed request body to the approval engine. Engine errors are
rendered by the application's exception handlers.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Literal, Optional

from ..database import get_db
from ..models.approval_request import ContentApprovalRequest
from ..auth import Reviewer, get_reviewer, require_admin
from ..engine import ApprovalOrchestrator, build_orchestrator
from ..responses import created, paginated, success
from ..schemas.approval import (
    ApprovalRecordResponse,
    ApprovalRequestCreate,
    CommentCreate,
    CommentResponse,
    DecisionCreate,
    RevisionResponse,
    RevisionSubmit,
    WithdrawRequest,
)

router = APIRouter(prefix="/api/approvals", tags=["approvals"])

RequestStatus = Literal["pending", "in_review", "approved", "rejected", "needs_changes", "withdrawn"]


def get_orchestrator(db: Session = Depends(get_db)) -> ApprovalOrchestrator:
    return build_orchestrator(db)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def request_to_dict(request: ContentApprovalRequest, include_logs: bool = True) -> dict:
    """Convert an approval request to a dictionary response."""
    workflow = request.workflow
    step = workflow.get_step(request.current_step) if workflow else None
    data = {
        "id": request.id,
        "content_piece_id": request.content_piece_id,
        "workflow_id": request.workflow_id,
        "workflow_version": workflow.version if workflow else None,
        "organization_id": request.organization_id,
        "submitter_id": request.submitter_id,
        "status": request.status,
        "current_step": request.current_step,
        "current_step_id": step.id if step else None,
        "current_step_name": step.name if step else None,
        "step_count": workflow.step_count if workflow else None,
        "priority": request.priority,
        "deadline": _iso(request.deadline),
        "metadata": request.request_metadata or {},
        "step_entered_at": _iso(request.step_entered_at),
        "escalated_assignees": request.escalated_assignees or {},
        "is_frozen": bool(request.is_frozen),
        "frozen_reason": request.frozen_reason,
        "withdrawn_reason": request.withdrawn_reason,
        "latest_version": request.latest_revision.version if request.latest_revision else None,
        "created_at": _iso(request.created_at),
        "updated_at": _iso(request.updated_at),
    }
    if include_logs:
        data["revisions"] = [RevisionResponse.model_validate(r).model_dump(mode="json") for r in request.revisions]
        data["approvals"] = [ApprovalRecordResponse.model_validate(a).model_dump(mode="json") for a in request.approvals]
        data["comments"] = [CommentResponse.model_validate(c).model_dump(mode="json") for c in request.comments]
    return data


def _load(orchestrator: ApprovalOrchestrator, request_id: int, reviewer: Reviewer) -> ContentApprovalRequest:
    request = orchestrator.get(request_id)
    reviewer.check_organization(request.organization_id, "Approval request")
    return request


@router.post("", status_code=201)
def create_request(
    payload: ApprovalRequestCreate,
    orchestrator: ApprovalOrchestrator = Depends(get_orchestrator),
    reviewer: Reviewer = Depends(get_reviewer),
):
    """Submit a content piece for approval."""
    workflow = orchestrator.registry.get(payload.workflow_id)
    reviewer.check_organization(workflow.organization_id, "Workflow")
    request = orchestrator.create(payload, submitter_id=reviewer.username)
    return created(request_to_dict(request), "Approval request created")


@router.get("")
def list_requests(
    status: Optional[RequestStatus] = None,
    priority: Optional[Literal["low", "normal", "high", "urgent"]] = None,
    assigned_to: Optional[str] = None,
    mine: bool = False,
    organization_id: Optional[str] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    orchestrator: ApprovalOrchestrator = Depends(get_orchestrator),
    reviewer: Reviewer = Depends(get_reviewer),
):
    """
    List approval requests. ``mine=true`` is shorthand for requests whose
    current step is assigned to the caller.
    """
    items, total = orchestrator.list(
        organization_id=reviewer.scope(organization_id),
        status=status,
        assigned_to=reviewer.username if mine else assigned_to,
        priority=priority,
        page=page,
        per_page=per_page,
    )
    return paginated([request_to_dict(r, include_logs=False) for r in items], total, page, per_page)


@router.get("/{request_id}")
def get_request(
    request_id: int,
    orchestrator: ApprovalOrchestrator = Depends(get_orchestrator),
    reviewer: Reviewer = Depends(get_reviewer),
):
    return success(request_to_dict(_load(orchestrator, request_id, reviewer)))


@router.post("/{request_id}/revisions", status_code=201)
def submit_revision(
    request_id: int,
    payload: RevisionSubmit,
    orchestrator: ApprovalOrchestrator = Depends(get_orchestrator),
    reviewer: Reviewer = Depends(get_reviewer),
):
    """Submit a new revision, typically after changes were requested."""
    _load(orchestrator, request_id, reviewer)
    revision = orchestrator.submit_revision(
        request_id, payload.content, submitter_id=reviewer.username, notes=payload.submission_notes
    )
    request = orchestrator.get(request_id)
    return created(
        {
            "revision": RevisionResponse.model_validate(revision).model_dump(mode="json"),
            "request": request_to_dict(request, include_logs=False),
        },
        f"Revision {revision.version} submitted",
    )


@router.post("/{request_id}/decisions", status_code=201)
def decide(
    request_id: int,
    payload: DecisionCreate,
    orchestrator: ApprovalOrchestrator = Depends(get_orchestrator),
    reviewer: Reviewer = Depends(get_reviewer),
):
    """Approve, reject, request changes or comment on the current step."""
    _load(orchestrator, request_id, reviewer)
    outcome = orchestrator.decide(request_id, reviewer.username, payload)
    return created(
        {
            "approval": ApprovalRecordResponse.model_validate(outcome.approval).model_dump(mode="json"),
            "step_completed": outcome.step_completed,
            "next_step": outcome.next_step,
            "is_complete": outcome.is_complete,
            "request": request_to_dict(outcome.request, include_logs=False),
        },
        "Decision recorded",
    )


@router.post("/{request_id}/comments", status_code=201)
def add_comment(
    request_id: int,
    payload: CommentCreate,
    orchestrator: ApprovalOrchestrator = Depends(get_orchestrator),
    reviewer: Reviewer = Depends(get_reviewer),
):
    _load(orchestrator, request_id, reviewer)
    comment = orchestrator.add_comment(request_id, reviewer.username, payload)
    return created(CommentResponse.model_validate(comment).model_dump(mode="json"), "Comment added")


@router.post("/{request_id}/comments/{comment_id}/resolve")
def resolve_comment(
    request_id: int,
    comment_id: int,
    orchestrator: ApprovalOrchestrator = Depends(get_orchestrator),
    reviewer: Reviewer = Depends(get_reviewer),
):
    _load(orchestrator, request_id, reviewer)
    comment = orchestrator.resolve_comment(request_id, comment_id, reviewer.username)
    return success(CommentResponse.model_validate(comment).model_dump(mode="json"), "Comment resolved")


@router.post("/{request_id}/withdraw")
def withdraw(
    request_id: int,
    payload: WithdrawRequest,
    orchestrator: ApprovalOrchestrator = Depends(get_orchestrator),
    reviewer: Reviewer = Depends(get_reviewer),
):
    """Withdraw a request. Only the submitter may withdraw."""
    _load(orchestrator, request_id, reviewer)
    request = orchestrator.withdraw(request_id, reviewer.username, payload.reason)
    return success(request_to_dict(request, include_logs=False), "Approval request withdrawn")


@router.get("/{request_id}/replay")
def replay(
    request_id: int,
    orchestrator: ApprovalOrchestrator = Depends(get_orchestrator),
    reviewer: Reviewer = Depends(get_reviewer),
):
    """Rebuild status and current step from the audit logs and compare with the stored state."""
    _load(orchestrator, request_id, reviewer)
    result = orchestrator.replay(request_id)
    return success({
        "status": result.status,
        "current_step": result.current_step,
        "recorded_status": result.recorded_status,
        "recorded_step": result.recorded_step,
        "consistent": result.consistent,
    })


@router.post("/{request_id}/unfreeze")
def unfreeze(
    request_id: int,
    orchestrator: ApprovalOrchestrator = Depends(get_orchestrator),
    reviewer: Reviewer = Depends(require_admin),
):
    """Release a request frozen after a consistency defect. Administrators only."""
    _load(orchestrator, request_id, reviewer)
    request = orchestrator.unfreeze(request_id, reviewer.username)
    return success(request_to_dict(request, include_logs=False), "Approval request unfrozen")
