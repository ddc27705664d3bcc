"""
Approval Request Orchestrator

The top-level state machine for content approval requests:

    pending --submit--> in_review --approve (step complete)--> in_review (next step) | approved
    in_review --reject--> rejected
    in_review --request_changes--> needs_changes --submit_revision--> in_review
    (any non-terminal) --withdraw--> withdrawn
    pending --auto-approval--> approved

Every mutating operation runs as one transaction under the request's lock.
Any error rolls the whole transition back. Consistency defects (the current
step does not exist, the workflow cannot be resolved) also freeze the request
until someone calls ``unfreeze``. Notifications go out only after commit.

Policy checks run inside a transition retry without waiting. Checks that are
still errored leave the step with a human; ``recheck`` retries them later with
backoff, outside the lock.
"""
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional, Type, TypeVar

import pydantic
from sqlalchemy.orm import Session

from ..logging_config import engine_logger as logger, timed
from ..models.approval_request import (
    ApprovalComment, ContentApproval, ContentApprovalRequest, ContentRevision, as_utc, utcnow,
)
from ..models.workflow import ApprovalWorkflow
from ..schemas.approval import ApprovalRequestCreate, CommentCreate, DecisionCreate, RevisionContent
from ..schemas.workflow import ApprovalStep, Assignee
from . import notifications as events
from .auto_approval import AutoApprovalEvaluator
from .checks import AutomatedCheckRunner, CheckResult
from .decisions import DecisionProcessor, is_step_complete
from .errors import (
    ApprovalEngineError, InvalidStep, InvalidTransition, NotAuthorized, NotFound, RequestFrozen,
    RequestTerminal, StaleDecision, ValidationError, WorkflowMismatch,
)
from .identity import DirectoryIdentityResolver, IdentityResolver
from .notifications import LoggingNotificationSink, NotificationDispatcher, NotificationEvent
from .registry import WorkflowRegistry
from .repository import ApprovalRepository, request_lock
from .revisions import RevisionTracker, check_context

M = TypeVar("M", bound=pydantic.BaseModel)


def validated(model: Type[M], data: Any) -> M:
    """Coerce engine input into its typed form; malformed input never reaches a transition."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(
            f"Invalid {model.__name__}",
            {"errors": e.errors(include_url=False, include_context=False)},
        ) from e


@dataclass
class DecisionOutcome:
    approval: ContentApproval
    request: ContentApprovalRequest
    step_completed: bool
    next_step: Optional[int]
    is_complete: bool


@dataclass
class ReplayResult:
    status: str
    current_step: int
    recorded_status: str
    recorded_step: int

    @property
    def consistent(self) -> bool:
        if self.current_step != self.recorded_step:
            return False
        # Withdrawal is not part of the revision/approval logs
        return self.recorded_status == ContentApprovalRequest.WITHDRAWN or self.status == self.recorded_status


@dataclass
class _Transition:
    request: ContentApprovalRequest
    workflow: Optional[ApprovalWorkflow] = None
    events: List[NotificationEvent] = field(default_factory=list)


class ApprovalOrchestrator:
    """Create requests and drive them through their workflow."""

    def __init__(
        self,
        db: Session,
        check_runner: AutomatedCheckRunner,
        identity: Optional[IdentityResolver] = None,
        notifier: Optional[NotificationDispatcher] = None,
        auto_approval: Optional[AutoApprovalEvaluator] = None,
        clock: Callable[[], datetime] = utcnow,
        system_reviewer_id: str = "system",
    ):
        self.repository = ApprovalRepository(db)
        self.registry = WorkflowRegistry(db)
        self.identity = identity or DirectoryIdentityResolver(db)
        self.notifier = notifier or NotificationDispatcher([LoggingNotificationSink()])
        self.auto_approval = auto_approval or AutoApprovalEvaluator(self.repository.count_approved_for_submitter)
        self.clock = clock
        self.system_reviewer_id = system_reviewer_id
        self.tracker = RevisionTracker(check_runner, clock)
        self.decisions = DecisionProcessor(self.identity, clock)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def _transition(self, request_id: int):
        with request_lock(request_id):
            tx = None
            try:
                tx = _Transition(self.repository.load(request_id))
                if tx.request.is_frozen:
                    raise RequestFrozen(
                        f"Approval request {request_id} is frozen: {tx.request.frozen_reason}",
                        {"request_id": request_id},
                    )
                tx.workflow = self._resolve_workflow(tx.request)
                yield tx
                self.repository.commit()
            except (InvalidStep, WorkflowMismatch) as e:
                self.repository.rollback()
                self._freeze(request_id, e)
                raise
            except Exception:
                self.repository.rollback()
                raise
        self._dispatch(tx.workflow, tx.events)

    def _resolve_workflow(self, request: ContentApprovalRequest) -> ApprovalWorkflow:
        try:
            return self.repository.load_workflow(request.workflow_id)
        except NotFound as e:
            raise WorkflowMismatch(
                f"Workflow {request.workflow_id} for approval request {request.id} cannot be resolved",
                {"request_id": request.id, "workflow_id": request.workflow_id},
            ) from e

    def _current_step(self, request: ContentApprovalRequest, workflow: ApprovalWorkflow) -> ApprovalStep:
        step = workflow.get_step(request.current_step)
        if step is None:
            raise InvalidStep(
                f"Step {request.current_step} is out of range for workflow {workflow.id}",
                {"request_id": request.id, "current_step": request.current_step, "step_count": workflow.step_count},
            )
        return step

    def _freeze(self, request_id: int, error: ApprovalEngineError):
        logger.error(
            "Approval request frozen after consistency defect",
            request_id=request_id,
            error_code=error.error_code,
            error_message=error.message,
        )
        request = self.repository.load(request_id)
        request.is_frozen = True
        request.frozen_reason = f"{error.error_code}: {error.message}"
        self.repository.commit()

    def _dispatch(self, workflow: Optional[ApprovalWorkflow], pending: List[NotificationEvent]):
        if workflow is None or not pending:
            return
        self.notifier.dispatch(pending, workflow.get_rules().notification_settings)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _event(self, name: str, request: ContentApprovalRequest, recipients: List[str], **extra) -> NotificationEvent:
        payload = {
            "request_id": request.id,
            "organization_id": request.organization_id,
            "content_piece_id": request.content_piece_id,
            "workflow_id": request.workflow_id,
            "status": request.status,
            "current_step": request.current_step,
        }
        payload.update(extra)
        return NotificationEvent(name=name, recipients=list(dict.fromkeys(recipients)), payload=payload)

    def _step_recipients(self, request: ContentApprovalRequest, step: ApprovalStep) -> List[str]:
        identity = self.decisions.identity_for(request)
        return identity.recipients(list(step.assignees) + request.extra_assignees(step.id))

    def _outcome_events(self, request, workflow, approval, completed) -> List[NotificationEvent]:
        if request.status == ContentApprovalRequest.APPROVED:
            return [self._event(events.APPROVED, request, [request.submitter_id], step_id=approval.step_id)]
        if request.status == ContentApprovalRequest.REJECTED:
            return [self._event(events.REJECTED, request, [request.submitter_id], step_id=approval.step_id,
                                reason=approval.comments)]
        if request.status == ContentApprovalRequest.NEEDS_CHANGES:
            return [self._event(events.CHANGES_REQUESTED, request, [request.submitter_id], step_id=approval.step_id,
                                suggested_changes=approval.suggested_changes)]
        if completed:
            step = workflow.get_step(request.current_step)
            return [self._event(events.STEP_ENTERED, request, self._step_recipients(request, step),
                                step_id=step.id, step_name=step.name)]
        return []

    # ------------------------------------------------------------------
    # Internal transitions
    # ------------------------------------------------------------------

    def _system_decision(
        self,
        request: ContentApprovalRequest,
        workflow: ApprovalWorkflow,
        step: ApprovalStep,
        action: str,
        source: str,
        comments: str,
        pending: List[NotificationEvent],
    ) -> bool:
        approval = self.decisions.record(request, step, self.system_reviewer_id, action, source=source, comments=comments)
        completed = self.decisions.apply(request, workflow, step, approval)
        pending.extend(self._outcome_events(request, workflow, approval, completed))
        return completed

    def _auto_approve(self, request: ContentApprovalRequest, workflow: ApprovalWorkflow, pending: List[NotificationEvent]):
        """Bypass every remaining step, leaving a system approval as the evidence."""
        step = self._current_step(request, workflow)
        approval = self.decisions.record(
            request, step, self.system_reviewer_id, "approve",
            source=ContentApproval.SOURCE_AUTO_APPROVAL,
            comments="Auto-approved: workflow auto-approval conditions met",
        )
        request.current_step = workflow.step_count
        request.status = ContentApprovalRequest.APPROVED
        request.step_entered_at = self.clock()
        logger.info("Approval request auto-approved", request_id=request.id, workflow_id=workflow.id)
        pending.append(self._event(events.APPROVED, request, [request.submitter_id], step_id=approval.step_id,
                                   auto_approved=True))

    def _escalate(self, request: ContentApprovalRequest, workflow: ApprovalWorkflow, step: ApprovalStep) -> List[str]:
        """Apply the escalation rules matching the step. Returns who should hear about it."""
        recipients, reviewers = [], []
        for rule in workflow.get_rules().escalation_rules:
            if not rule.matches(step):
                continue
            recipients.extend(rule.recipients)
            if rule.action in ("add_reviewer", "require_additional_approval"):
                reviewers.extend(Assignee(type="user", id=r) for r in rule.recipients)

        added = request.add_extra_assignees(step.id, reviewers)
        if added:
            logger.info(
                "Reviewers added by escalation",
                request_id=request.id,
                step_id=step.id,
                reviewers=[a.id for a in added],
            )
        return recipients or self._step_recipients(request, step)

    def _settle(self, request: ContentApprovalRequest, workflow: ApprovalWorkflow, pending: List[NotificationEvent]):
        """
        Run the current step's automated checks against the latest revision and
        act on them: auto-reject, hand provider failures to a human, or pass an
        auto-advancing check step. Repeats for every step entered on the way.
        """
        while request.status == ContentApprovalRequest.IN_REVIEW:
            step = self._current_step(request, workflow)
            result = self.tracker.attach_checks(request, request.latest_revision, step)
            if result is None:
                return

            if result.auto_reject:
                self._system_decision(
                    request, workflow, step, "reject", ContentApproval.SOURCE_AUTOMATED_CHECK,
                    "Automatically rejected: failed " + ", ".join(result.failed_dimensions), pending,
                )
                return

            if result.needs_human_review:
                recipients = self._escalate(request, workflow, step)
                logger.warning(
                    "Policy checks unavailable, escalating to human review",
                    request_id=request.id,
                    step_id=step.id,
                    dimensions=result.errored_dimensions,
                )
                pending.append(self._event(events.POLICY_CHECK_FAILED, request, recipients, step_id=step.id,
                                           dimensions=result.errored_dimensions))
                return

            if step.type == "automated_check" and step.auto_advance and result.all_passed:
                self._system_decision(
                    request, workflow, step, "approve", ContentApproval.SOURCE_AUTOMATED_CHECK,
                    "All automated checks passed", pending,
                )
                continue
            return

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @timed(logger)
    def create(self, data, submitter_id: str) -> ContentApprovalRequest:
        """Submit a content piece for approval against an active workflow."""
        payload = validated(ApprovalRequestCreate, data)
        workflow = self.registry.get(payload.workflow_id)
        if not workflow.is_active:
            raise ValidationError(
                f"Workflow {workflow.id} is not active",
                {"workflow_id": workflow.id, "workflow_key": workflow.workflow_key},
            )

        now = self.clock()
        request = ContentApprovalRequest(
            content_piece_id=payload.content_piece_id,
            workflow_id=workflow.id,
            organization_id=workflow.organization_id,
            submitter_id=submitter_id,
            current_step=0,
            status=ContentApprovalRequest.PENDING,
            priority=payload.priority,
            deadline=payload.deadline,
            request_metadata=payload.metadata.model_dump(),
            step_entered_at=now,
            escalated_assignees={},
            event_seq=0,
            created_at=now,
        )
        pending: List[NotificationEvent] = []
        try:
            self.repository.add(request)
            revision = self.tracker.append(request, payload.content, submitter_id, payload.submission_notes)
            self.tracker.attach_checks(request, revision, self._current_step(request, workflow))
            self.repository.flush()

            pending.append(self._event(
                events.SUBMITTED, request, self._step_recipients(request, workflow.get_step(0)),
                submitter_id=submitter_id,
            ))
            if self.auto_approval.should_auto_approve(request, workflow):
                self._auto_approve(request, workflow, pending)
            else:
                request.status = ContentApprovalRequest.IN_REVIEW
                self._settle(request, workflow, pending)
            self.repository.commit()
        except Exception:
            self.repository.rollback()
            raise

        logger.info(
            "Approval request created",
            request_id=request.id,
            workflow_id=workflow.id,
            submitter_id=submitter_id,
            status=request.status,
            current_step=request.current_step,
        )
        self._dispatch(workflow, pending)
        return request

    @timed(logger)
    def submit_revision(self, request_id: int, content, submitter_id: str, notes: Optional[str] = None) -> ContentRevision:
        content = validated(RevisionContent, content)
        with self._transition(request_id) as tx:
            request, workflow = tx.request, tx.workflow
            if request.is_terminal:
                raise RequestTerminal(request.id, request.status)
            if request.status not in (ContentApprovalRequest.IN_REVIEW, ContentApprovalRequest.NEEDS_CHANGES):
                raise InvalidTransition(
                    f"Cannot submit a revision while the request is {request.status}",
                    {"request_id": request.id, "status": request.status},
                )
            step = self._current_step(request, workflow)

            revision = self.tracker.submit(request, workflow, content, submitter_id, notes)
            tx.events.append(self._event(
                events.SUBMITTED, request, self._step_recipients(request, step),
                submitter_id=submitter_id, version=revision.version,
            ))

            rules = workflow.get_rules().auto_approval_conditions
            if rules.evaluate_on_revision and self.auto_approval.should_auto_approve(request, workflow):
                self._auto_approve(request, workflow, tx.events)
            else:
                self._settle(request, workflow, tx.events)
        return revision

    @timed(logger)
    def decide(self, request_id: int, reviewer_id: str, data) -> DecisionOutcome:
        """Record a reviewer's decision on the current step and apply it."""
        decision = validated(DecisionCreate, data)
        with self._transition(request_id) as tx:
            request, workflow = tx.request, tx.workflow
            if request.is_terminal:
                raise RequestTerminal(request.id, request.status)
            step = self._current_step(request, workflow)

            if decision.step is not None and decision.step != request.current_step:
                logger.warning(
                    "Stale decision rejected",
                    request_id=request.id,
                    reviewer_id=reviewer_id,
                    expected_step=decision.step,
                    current_step=request.current_step,
                )
                raise StaleDecision(
                    f"Request {request.id} is no longer on step {decision.step}",
                    {"request_id": request.id, "step": decision.step, "current_step": request.current_step},
                )
            if decision.action != "comment" and request.status != ContentApprovalRequest.IN_REVIEW:
                raise InvalidTransition(
                    f"Cannot {decision.action} while the request is {request.status}",
                    {"request_id": request.id, "status": request.status},
                )

            self.decisions.authorize(request, step, reviewer_id, decision.action)
            approval = self.decisions.record(
                request, step, reviewer_id, decision.action,
                comments=decision.comments,
                criteria=decision.criteria.model_dump() if decision.criteria else None,
                suggested_changes=[c.model_dump() for c in decision.suggested_changes],
                time_spent=decision.time_spent,
            )
            completed = self.decisions.apply(request, workflow, step, approval)
            tx.events.extend(self._outcome_events(request, workflow, approval, completed))
            if completed:
                self._settle(request, workflow, tx.events)

            outcome = DecisionOutcome(
                approval=approval,
                request=request,
                step_completed=completed,
                next_step=request.current_step if request.status == ContentApprovalRequest.IN_REVIEW else None,
                is_complete=request.is_terminal,
            )
        return outcome

    def add_comment(self, request_id: int, author_id: str, data) -> ApprovalComment:
        comment_data = validated(CommentCreate, data)
        with self._transition(request_id) as tx:
            request = tx.request
            if request.is_terminal:
                raise RequestTerminal(request.id, request.status)
            comment = ApprovalComment(
                author_id=author_id,
                content=comment_data.content,
                comment_type=comment_data.type,
                mentions=list(comment_data.mentions),
                attachments=[a.model_dump() for a in comment_data.attachments],
                created_at=self.clock(),
            )
            request.comments.append(comment)
            if comment_data.mentions:
                tx.events.append(self._event(
                    events.COMMENT_MENTION, request, comment_data.mentions,
                    author_id=author_id, comment_type=comment_data.type,
                ))
        logger.info("Comment added", request_id=request_id, author_id=author_id, comment_type=comment.comment_type)
        return comment

    def resolve_comment(self, request_id: int, comment_id: int, actor_id: str) -> ApprovalComment:
        with self._transition(request_id) as tx:
            request = tx.request
            if request.is_terminal:
                raise RequestTerminal(request.id, request.status)
            comment = next((c for c in request.comments if c.id == comment_id), None)
            if comment is None:
                raise NotFound("Comment", comment_id)
            comment.is_resolved = True
            comment.resolved_by = actor_id
            comment.resolved_at = self.clock()
        return comment

    def withdraw(self, request_id: int, actor_id: str, reason: Optional[str] = None) -> ContentApprovalRequest:
        with self._transition(request_id) as tx:
            request, workflow = tx.request, tx.workflow
            if request.is_terminal:
                raise RequestTerminal(request.id, request.status)
            if actor_id != request.submitter_id:
                raise NotAuthorized(
                    "Only the submitter can withdraw an approval request",
                    {"request_id": request.id, "actor_id": actor_id},
                )
            previous = request.status
            request.status = ContentApprovalRequest.WITHDRAWN
            request.withdrawn_reason = reason

            step = workflow.get_step(request.current_step)
            recipients = self._step_recipients(request, step) if step else []
            tx.events.append(self._event(events.WITHDRAWN, request, recipients, reason=reason))
            logger.info("Approval request withdrawn", request_id=request.id, status_from=previous)
        return request

    def apply_timeout(self, request_id: int, expected_step: int, now: Optional[datetime] = None) -> Optional[str]:
        """
        Fire the current step's timeout if it is due. Returns the action taken,
        or None when there was nothing to do: the request left the step, is no
        longer in review, already timed out on this step entry, or is not due.
        """
        now = as_utc(now or self.clock())
        with self._transition(request_id) as tx:
            request, workflow = tx.request, tx.workflow
            if (
                request.status != ContentApprovalRequest.IN_REVIEW
                or request.current_step != expected_step
                or request.timeout_fired_at is not None
            ):
                return None
            step = self._current_step(request, workflow)
            entered = as_utc(request.step_entered_at)
            if step.timeout is None or entered is None:
                return None
            if now - entered <= timedelta(hours=step.timeout.hours):
                return None

            action = step.timeout.action
            request.timeout_fired_at = now
            logger.info("Step timed out", request_id=request.id, step_id=step.id, action=action)
            tx.events.append(self._event(
                events.TIMEOUT, request, self._step_recipients(request, step) + [request.submitter_id],
                step_id=step.id, action=action, hours=step.timeout.hours,
            ))

            if action in ("auto_approve", "auto_reject"):
                completed = self._system_decision(
                    request, workflow, step,
                    "approve" if action == "auto_approve" else "reject",
                    ContentApproval.SOURCE_TIMEOUT,
                    f"Step '{step.name}' timed out after {step.timeout.hours:g} hours",
                    tx.events,
                )
                if completed:
                    self._settle(request, workflow, tx.events)
            elif action == "escalate":
                recipients = self._escalate(request, workflow, step)
                tx.events.append(self._event(events.ESCALATED, request, recipients, step_id=step.id))
        return action

    @timed(logger)
    def recheck(self, request_id: int) -> bool:
        """
        Retry the current step's policy checks that errored on the latest
        revision. Scoring runs with backoff outside the request's lock and
        transaction; the result is applied in a short transition, and only if
        the request is still on the same step and revision. Returns True when
        a fresh result was applied.
        """
        request = self.repository.load(request_id, for_update=False)
        workflow = self._resolve_workflow(request)
        step = workflow.get_step(request.current_step)
        revision = request.latest_revision
        if request.status != ContentApprovalRequest.IN_REVIEW or request.is_frozen or step is None or revision is None:
            return False
        cached = revision.cached_check(step.id)
        if cached is None or not CheckResult.from_dict(cached).needs_human_review:
            return False

        expected = (request.current_step, revision.version)
        content, context = revision.content(), check_context(request)
        self.repository.rollback()

        result = self.tracker.check_runner.run(content, step, context, backoff=True)
        if result.needs_human_review:
            logger.warning(
                "Policy checks still unavailable",
                request_id=request_id,
                step_id=step.id,
                dimensions=result.errored_dimensions,
            )
            return False

        with self._transition(request_id) as tx:
            request, workflow = tx.request, tx.workflow
            latest = request.latest_revision
            if (
                request.status != ContentApprovalRequest.IN_REVIEW
                or (request.current_step, latest.version if latest else None) != expected
            ):
                logger.info("Recheck result discarded, request moved on", request_id=request_id, step_id=step.id)
                return False
            latest.cache_check(step.id, result.to_dict())
            logger.info("Policy checks recovered", request_id=request_id, step_id=step.id)
            self._settle(request, workflow, tx.events)
        return True

    def unfreeze(self, request_id: int, actor_id: str) -> ContentApprovalRequest:
        with request_lock(request_id):
            request = self.repository.load(request_id)
            if not request.is_frozen:
                raise InvalidTransition(f"Approval request {request_id} is not frozen", {"request_id": request_id})
            request.is_frozen = False
            request.frozen_reason = None
            self.repository.commit()
        logger.info("Approval request unfrozen", request_id=request_id, actor_id=actor_id)
        return request

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, request_id: int) -> ContentApprovalRequest:
        return self.repository.load(request_id, for_update=False)

    def list(
        self,
        organization_id: Optional[str] = None,
        status: Optional[str] = None,
        assigned_to: Optional[str] = None,
        priority: Optional[str] = None,
        page: int = 1,
        per_page: int = 20,
    ):
        predicate = (lambda request: self.is_assigned(request, assigned_to)) if assigned_to else None
        return self.repository.list_requests(
            organization_id=organization_id,
            status=status,
            priority=priority,
            predicate=predicate,
            page=page,
            per_page=per_page,
        )

    def is_assigned(self, request: ContentApprovalRequest, reviewer_id: str) -> bool:
        """Whether the reviewer is an assignee of the request's current step."""
        if request.is_terminal or request.workflow is None:
            return False
        step = request.workflow.get_step(request.current_step)
        if step is None:
            return False
        assignees = list(step.assignees) + request.extra_assignees(step.id)
        identity = self.decisions.identity_for(request)
        return any(identity.matches(reviewer_id, a) for a in assignees)

    def replay(self, request_id: int) -> ReplayResult:
        """Rebuild status and current step by folding the revision and approval logs in order."""
        request = self.repository.load(request_id, for_update=False)
        workflow = self._resolve_workflow(request)

        log = sorted(list(request.revisions) + list(request.approvals), key=lambda entry: entry.sequence)
        status, current_step = ContentApprovalRequest.PENDING, 0
        latest, seen = None, []
        identity = self.decisions.identity_for(request)

        for entry in log:
            if isinstance(entry, ContentRevision):
                latest = entry
                status = ContentApprovalRequest.IN_REVIEW
                continue

            seen.append(entry)
            if entry.source == ContentApproval.SOURCE_AUTO_APPROVAL:
                status, current_step = ContentApprovalRequest.APPROVED, workflow.step_count
            elif entry.decision == "rejected":
                status = ContentApprovalRequest.REJECTED
            elif entry.decision == "needs_changes":
                status = ContentApprovalRequest.NEEDS_CHANGES
            elif entry.decision == "approved":
                step = workflow.get_step(current_step)
                if step is not None and is_step_complete(
                    step, current_step, seen, latest, identity, request.extra_assignees(step.id)
                ):
                    current_step += 1
                    status = (
                        ContentApprovalRequest.APPROVED
                        if current_step >= workflow.step_count
                        else ContentApprovalRequest.IN_REVIEW
                    )

        result = ReplayResult(
            status=status,
            current_step=current_step,
            recorded_status=request.status,
            recorded_step=request.current_step,
        )
        if not result.consistent:
            logger.warning(
                "Replay does not match recorded state",
                request_id=request.id,
                replayed_status=status,
                replayed_step=current_step,
                recorded_status=request.status,
                recorded_step=request.current_step,
            )
        return result
