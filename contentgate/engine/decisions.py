"""
Approval Decision Processor

Records reviewer and system decisions against the current step, decides
whether the step is complete and moves the request forward.

Step completion only considers ``approved`` decisions rendered against the
current step and the latest revision:

- any system-authored approval (automated check, auto-approval, timeout)
  completes the step outright;
- otherwise a required check that definitively failed on the latest revision
  blocks completion (provider errors do not);
- a parallel step needs every assignee with approval rights covered by a
  distinct approving reviewer;
- a sequential step needs one approval from an assignee, including reviewers
  added by escalation; a step without assignees needs any one approval.
"""
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from ..logging_config import engine_logger as logger
from ..models.approval_request import ContentApproval, ContentApprovalRequest, ContentRevision
from ..models.workflow import ApprovalWorkflow
from ..schemas.workflow import ApprovalStep, Assignee
from .checks import CheckResult
from .errors import ReviewerNotAuthorized, ValidationError
from .identity import Capabilities, IdentityResolver, capabilities_for

ACTION_DECISIONS: Dict[str, Optional[str]] = {
    "approve": "approved",
    "reject": "rejected",
    "request_changes": "needs_changes",
    "comment": None,
}


def decision_for(action: str) -> Optional[str]:
    if action not in ACTION_DECISIONS:
        raise ValidationError(f"Unknown action '{action}'", {"action": action})
    return ACTION_DECISIONS[action]


def _cover_all(required: Sequence[Assignee], reviewers: List[str], identity: IdentityResolver) -> bool:
    """True if every required assignee can be paired with a different approving reviewer."""
    owner: Dict[str, int] = {}

    def assign(index: int, seen: set) -> bool:
        for reviewer in reviewers:
            if reviewer in seen or not identity.matches(reviewer, required[index]):
                continue
            seen.add(reviewer)
            if reviewer not in owner or assign(owner[reviewer], seen):
                owner[reviewer] = index
                return True
        return False

    return all(assign(i, set()) for i in range(len(required)))


def is_step_complete(
    step: ApprovalStep,
    step_index: int,
    approvals: Iterable[ContentApproval],
    latest_revision: Optional[ContentRevision],
    identity: IdentityResolver,
    extra_assignees: Sequence[Assignee] = (),
) -> bool:
    latest_version = latest_revision.version if latest_revision else None
    approved = [
        a for a in approvals
        if a.step_index == step_index
        and a.decision == "approved"
        and a.revision_version == latest_version
    ]
    if not approved:
        return False
    if any(a.is_system for a in approved):
        return True

    cached = latest_revision.cached_check(step.id) if latest_revision else None
    if cached is not None and CheckResult.from_dict(cached).failed_dimensions:
        return False

    required = [a for a in step.assignees if a.can_approve]
    if not required:
        return True

    reviewers = list(dict.fromkeys(a.reviewer_id for a in approved))
    if not step.parallel:
        candidates = required + [a for a in extra_assignees if a.can_approve]
        return any(identity.matches(r, assignee) for r in reviewers for assignee in candidates)
    return _cover_all(required, reviewers, identity)


class DecisionProcessor:
    """Authorize, record and apply decisions on a loaded request."""

    def __init__(self, identity: IdentityResolver, clock: Callable[[], datetime]):
        self.identity = identity
        self.clock = clock

    def identity_for(self, request: ContentApprovalRequest) -> IdentityResolver:
        """Resolve reviewers within the request's organization only."""
        return self.identity.for_organization(request.organization_id)

    def authorize(
        self,
        request: ContentApprovalRequest,
        step: ApprovalStep,
        reviewer_id: str,
        action: str,
    ) -> Capabilities:
        assignees = list(step.assignees) + request.extra_assignees(step.id)
        caps = capabilities_for(self.identity_for(request), reviewer_id, assignees)

        if caps is None:
            if step.assignees_only and assignees:
                self._refuse(request, step, reviewer_id, action, "not an assignee of the current step")
            return Capabilities.unrestricted()

        if not caps.allows(action):
            self._refuse(request, step, reviewer_id, action, f"assignee may not {action}")
        return caps

    def _refuse(self, request, step, reviewer_id, action, reason):
        logger.warning(
            "Decision rejected",
            request_id=request.id,
            step_id=step.id,
            reviewer_id=reviewer_id,
            action=action,
            reason=reason,
        )
        raise ReviewerNotAuthorized(
            f"Reviewer '{reviewer_id}' cannot {action} on step '{step.name}': {reason}",
            {"request_id": request.id, "step_id": step.id, "reviewer_id": reviewer_id, "action": action},
        )

    def record(
        self,
        request: ContentApprovalRequest,
        step: ApprovalStep,
        reviewer_id: str,
        action: str,
        source: str = ContentApproval.SOURCE_REVIEWER,
        comments: Optional[str] = None,
        criteria: Optional[dict] = None,
        suggested_changes: Optional[list] = None,
        time_spent: Optional[int] = None,
    ) -> ContentApproval:
        revision = request.latest_revision
        approval = ContentApproval(
            sequence=request.next_sequence(),
            step_index=request.current_step,
            step_id=step.id,
            step_name=step.name,
            reviewer_id=reviewer_id,
            action=action,
            decision=decision_for(action),
            source=source,
            revision_version=revision.version if revision else 0,
            comments=comments,
            criteria=criteria,
            suggested_changes=suggested_changes or [],
            time_spent=time_spent,
            created_at=self.clock(),
        )
        request.approvals.append(approval)
        return approval

    def apply(
        self,
        request: ContentApprovalRequest,
        workflow: ApprovalWorkflow,
        step: ApprovalStep,
        approval: ContentApproval,
    ) -> bool:
        """Apply a recorded decision. Returns True when the step completed."""
        previous = request.status

        if approval.decision == "rejected":
            request.status = ContentApprovalRequest.REJECTED
        elif approval.decision == "needs_changes":
            request.status = ContentApprovalRequest.NEEDS_CHANGES
        elif approval.decision == "approved":
            if is_step_complete(
                step, request.current_step, request.approvals, request.latest_revision, self.identity_for(request),
                request.extra_assignees(step.id),
            ):
                self.advance(request, workflow)
                self._log(request, approval, previous)
                return True
        self._log(request, approval, previous)
        return False

    def advance(self, request: ContentApprovalRequest, workflow: ApprovalWorkflow):
        request.current_step += 1
        request.step_entered_at = self.clock()
        request.timeout_fired_at = None
        if request.current_step >= workflow.step_count:
            request.status = ContentApprovalRequest.APPROVED
        else:
            request.status = ContentApprovalRequest.IN_REVIEW

    @staticmethod
    def _log(request, approval, previous):
        logger.info(
            "Decision applied",
            request_id=request.id,
            step_id=approval.step_id,
            reviewer_id=approval.reviewer_id,
            action=approval.action,
            source=approval.source,
            status_from=previous,
            status_to=request.status,
            current_step=request.current_step,
        )
