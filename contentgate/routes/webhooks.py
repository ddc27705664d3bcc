"""
Webhook API Routes
==================
Endpoints for managing webhook subscriptions to approval events.

Deliveries are made by the approval engine's webhook sink when a workflow
enables the ``webhook`` notification channel.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from typing import List, Optional
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.webhook import Webhook
from ..auth import Reviewer, get_reviewer
from ..logging_config import api_logger
from ..responses import bad_request, deleted, not_found

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


class WebhookCreate(BaseModel):
    name: Optional[str] = None
    url: str = Field(pattern=r"^https?://")
    events: List[str] = Field(min_length=1)


def _visible(query, reviewer: Reviewer):
    """Reviewers bound to an organization see that organization's hooks and global ones."""
    if reviewer.organization_id:
        return query.filter(
            (Webhook.organization_id == reviewer.organization_id) | (Webhook.organization_id.is_(None))
        )
    return query


@router.get("")
def list_webhooks(
    db: Session = Depends(get_db),
    reviewer: Reviewer = Depends(get_reviewer)
):
    """List webhooks visible to the current user"""
    webhooks = _visible(db.query(Webhook), reviewer).order_by(Webhook.id).all()
    return [w.to_dict() for w in webhooks]


@router.get("/events")
def list_webhook_events():
    """List all available webhook events"""
    return {
        "events": Webhook.EVENTS,
        "descriptions": {
            "approval.submitted": "Content was submitted or resubmitted for approval",
            "approval.step_entered": "A request moved to its next review step",
            "approval.approved": "Content was approved",
            "approval.rejected": "Content was rejected",
            "approval.changes_requested": "A reviewer requested changes",
            "approval.withdrawn": "The submitter withdrew the request",
            "approval.timeout": "A review step timed out",
            "approval.escalated": "A timed out step was escalated to more reviewers",
            "approval.policy_check_failed": "Automated checks could not run and need a human",
            "approval.comment_mention": "Someone was mentioned in a comment",
        }
    }


@router.post("", status_code=201)
def create_webhook(
    webhook: WebhookCreate,
    db: Session = Depends(get_db),
    reviewer: Reviewer = Depends(get_reviewer)
):
    """Register a new webhook for the user's organization"""
    invalid_events = [e for e in webhook.events if e not in Webhook.EVENTS]
    if invalid_events:
        bad_request(
            f"Invalid events: {invalid_events}",
            code="INVALID_EVENTS",
            details={"valid_events": Webhook.EVENTS},
        )

    new_webhook = Webhook(
        organization_id=reviewer.organization_id,
        name=webhook.name,
        url=webhook.url,
        events=webhook.events,
    )

    db.add(new_webhook)
    db.commit()
    db.refresh(new_webhook)
    api_logger.info("Webhook created", webhook_id=new_webhook.id, events=webhook.events)

    return {
        "status": "ok",
        "message": "Webhook created",
        "webhook": new_webhook.to_dict(include_secret=True)
    }


@router.delete("/{webhook_id}")
def delete_webhook(
    webhook_id: int,
    db: Session = Depends(get_db),
    reviewer: Reviewer = Depends(get_reviewer)
):
    """Delete a webhook"""
    owner = reviewer.organization_id
    webhook = db.query(Webhook).filter(
        Webhook.id == webhook_id,
        Webhook.organization_id == owner if owner else Webhook.organization_id.is_(None),
    ).first()

    if not webhook:
        not_found("Webhook", webhook_id)

    db.delete(webhook)
    db.commit()

    api_logger.info("Webhook deleted", webhook_id=webhook_id)
    return deleted(f"Webhook {webhook_id} deleted")
