"""
Content Approval Workflow Engine.

``build_orchestrator`` wires the engine's collaborators from application
settings; tests construct ``ApprovalOrchestrator`` directly with stubs.
"""
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from sqlalchemy.orm import Session

from ..config import get_settings
from ..database import SessionLocal
from .checks import AutomatedCheckRunner
from .escalation import EscalationScheduler
from .identity import DirectoryIdentityResolver
from .notifications import LoggingNotificationSink, NotificationDispatcher, WebhookNotificationSink
from .orchestrator import ApprovalOrchestrator, DecisionOutcome, ReplayResult
from .policy import BasicPolicyScorer
from .registry import WorkflowRegistry


def build_check_runner() -> AutomatedCheckRunner:
    settings = get_settings()
    scorer = BasicPolicyScorer(
        blocked_terms=settings.brand_safety_blocked_terms,
        flagged_claims=settings.compliance_flagged_claims,
        min_body_length=settings.min_body_length,
    )
    return AutomatedCheckRunner(
        scorer,
        max_attempts=settings.policy_check_max_attempts,
        backoff_min=settings.policy_check_backoff_min,
        backoff_max=settings.policy_check_backoff_max,
    )


_notification_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


def get_notification_executor() -> ThreadPoolExecutor:
    """Process-wide pool that delivers notifications off the request thread."""
    global _notification_executor
    with _executor_lock:
        if _notification_executor is None:
            _notification_executor = ThreadPoolExecutor(
                max_workers=get_settings().notification_workers,
                thread_name_prefix="notify",
            )
        return _notification_executor


def shutdown_notification_executor(wait: bool = True):
    """Drain queued deliveries and release the pool; a later build_notifier starts a new one."""
    global _notification_executor
    with _executor_lock:
        executor, _notification_executor = _notification_executor, None
    if executor is not None:
        executor.shutdown(wait=wait)


def build_notifier() -> NotificationDispatcher:
    sinks = [LoggingNotificationSink()]
    if get_settings().notification_webhooks_enabled:
        sinks.append(WebhookNotificationSink(SessionLocal))
    return NotificationDispatcher(sinks, executor=get_notification_executor())


def build_orchestrator(db: Session) -> ApprovalOrchestrator:
    return ApprovalOrchestrator(
        db,
        check_runner=build_check_runner(),
        identity=DirectoryIdentityResolver(db),
        notifier=build_notifier(),
        system_reviewer_id=get_settings().system_reviewer_id,
    )


def build_scheduler() -> EscalationScheduler:
    return EscalationScheduler(SessionLocal, build_orchestrator)


__all__ = [
    "ApprovalOrchestrator",
    "DecisionOutcome",
    "ReplayResult",
    "WorkflowRegistry",
    "EscalationScheduler",
    "build_check_runner",
    "build_notifier",
    "get_notification_executor",
    "shutdown_notification_executor",
    "build_orchestrator",
    "build_scheduler",
]
