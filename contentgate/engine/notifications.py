"""
Notification Sink

Workflow events are collected while a transition runs and dispatched only
after it commits. Delivery is fire-and-forget: a failing sink is logged and
never propagates into the engine.
"""
import hashlib
import hmac
import json
import time
from concurrent.futures import Executor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Protocol

import requests
from sqlalchemy.orm import Session

from ..logging_config import engine_logger as logger
from ..models.webhook import Webhook
from ..schemas.workflow import NotificationSettings

SUBMITTED = "submitted"
STEP_ENTERED = "step_entered"
APPROVED = "approved"
REJECTED = "rejected"
CHANGES_REQUESTED = "changes_requested"
WITHDRAWN = "withdrawn"
TIMEOUT = "timeout"
ESCALATED = "escalated"
POLICY_CHECK_FAILED = "policy_check_failed"
COMMENT_MENTION = "comment_mention"


@dataclass
class NotificationEvent:
    name: str
    recipients: List[str]
    payload: dict = field(default_factory=dict)


class NotificationSink(Protocol):
    def notify(self, event: NotificationEvent, recipients: List[str], channels: List[str]) -> None:
        ...


def is_enabled(event: NotificationEvent, settings: NotificationSettings) -> bool:
    """Apply the workflow's notify_on_* switches to an event."""
    if event.name == SUBMITTED:
        return settings.notify_on_submission
    if event.name == APPROVED:
        return settings.notify_on_approval
    if event.name == REJECTED:
        return settings.notify_on_rejection
    if event.name in (TIMEOUT, ESCALATED):
        return settings.notify_on_timeout
    return True


class LoggingNotificationSink:
    """Writes every notification to the engine log."""

    def notify(self, event: NotificationEvent, recipients: List[str], channels: List[str]) -> None:
        logger.info(
            f"Notification: {event.name}",
            recipients=recipients,
            channels=channels,
            **{k: v for k, v in event.payload.items() if k not in ("recipients", "channels")},
        )


def sign_payload(payload: dict, secret: str) -> str:
    """Generate HMAC-SHA256 signature for webhook payload"""
    payload_bytes = json.dumps(payload, sort_keys=True).encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), payload_bytes, hashlib.sha256).hexdigest()
    return f"sha256={signature}"


class WebhookNotificationSink:
    """Delivers signed JSON payloads to subscribed webhooks when the workflow enables the webhook channel."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        max_retries: int = 3,
        backoff: float = 2,
        timeout: float = 10,
    ):
        self.session_factory = session_factory
        self.max_retries = max_retries
        self.backoff = backoff
        self.timeout = timeout

    def notify(self, event: NotificationEvent, recipients: List[str], channels: List[str]) -> None:
        if "webhook" not in channels:
            return

        event_name = f"approval.{event.name}"
        db = self.session_factory()
        try:
            query = db.query(Webhook).filter(Webhook.active.is_(True))
            organization_id = event.payload.get("organization_id")
            hooks = [
                w for w in query.all()
                if event_name in (w.events or []) and w.organization_id in (None, organization_id)
            ]
            for webhook in hooks:
                self._deliver(db, webhook, event_name, {**event.payload, "recipients": recipients})
        finally:
            db.close()

    def _deliver(self, db: Session, webhook: Webhook, event_name: str, data: dict) -> bool:
        payload = {
            "event": event_name,
            "data": data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "webhook_id": webhook.id,
        }
        headers = {
            "Content-Type": "application/json",
            "X-ContentGate-Signature": sign_payload(payload, webhook.secret),
            "X-ContentGate-Event": event_name,
        }

        for attempt in range(self.max_retries):
            try:
                response = requests.post(webhook.url, json=payload, headers=headers, timeout=self.timeout)
                webhook.last_triggered_at = datetime.now(timezone.utc)
                webhook.last_status_code = response.status_code
                if 200 <= response.status_code < 300:
                    webhook.failure_count = 0
                    db.commit()
                    logger.info("Webhook delivered", webhook_id=webhook.id, webhook_event=event_name)
                    return True
                webhook.failure_count = (webhook.failure_count or 0) + 1
                db.commit()
                logger.warning("Webhook failed", webhook_id=webhook.id, status_code=response.status_code)
            except requests.RequestException as e:
                webhook.failure_count = (webhook.failure_count or 0) + 1
                db.commit()
                logger.warning("Webhook error", webhook_id=webhook.id, error_message=str(e))

            if attempt < self.max_retries - 1:
                time.sleep(self.backoff ** attempt)

        if webhook.failure_count >= Webhook.MAX_FAILURES:
            webhook.active = False
            db.commit()
            logger.warning("Webhook disabled due to failures", webhook_id=webhook.id)
        return False


class NotificationDispatcher:
    """Fan events out to sinks, optionally on an executor so callers never wait on delivery."""

    def __init__(self, sinks: Iterable[NotificationSink], executor: Optional[Executor] = None):
        self.sinks = list(sinks)
        self.executor = executor

    def dispatch(self, events: Iterable[NotificationEvent], settings: NotificationSettings):
        for event in events:
            if not is_enabled(event, settings) or not event.recipients:
                continue
            for sink in self.sinks:
                if self.executor is not None:
                    self.executor.submit(self._deliver, sink, event, list(settings.channels))
                else:
                    self._deliver(sink, event, list(settings.channels))

    @staticmethod
    def _deliver(sink: NotificationSink, event: NotificationEvent, channels: List[str]):
        try:
            sink.notify(event, event.recipients, channels)
        except Exception as e:
            logger.error("Notification delivery failed", error=e, notification=event.name, sink=type(sink).__name__)
