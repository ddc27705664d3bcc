"""
Content approval requests and their append-only logs.

A request owns its revisions, approval records and comments. Revisions and
approvals form the audit trail: rows are only ever appended, and both logs
share the request's ``event_seq`` counter so they can be interleaved in the
order they happened.
"""
from sqlalchemy import (
    Column, Integer, String, DateTime, Text, JSON, Boolean, ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from typing import List, Optional
from ..database import Base
from ..schemas.approval import RevisionContent
from ..schemas.workflow import Assignee


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands datetimes back naive; everything is stored in UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class ContentApprovalRequest(Base):
    __tablename__ = "approval_requests"

    PENDING = "pending"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_CHANGES = "needs_changes"
    WITHDRAWN = "withdrawn"

    STATUSES = [PENDING, IN_REVIEW, APPROVED, REJECTED, NEEDS_CHANGES, WITHDRAWN]
    TERMINAL_STATUSES = [APPROVED, REJECTED, WITHDRAWN]

    id = Column(Integer, primary_key=True, index=True)
    content_piece_id = Column(String(100), nullable=False, index=True)
    workflow_id = Column(Integer, ForeignKey("approval_workflows.id"), nullable=False, index=True)
    organization_id = Column(String(100), nullable=False, index=True)
    submitter_id = Column(String(100), nullable=False, index=True)
    current_step = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=PENDING, index=True)
    priority = Column(String(10), nullable=False, default="normal")
    deadline = Column(DateTime, nullable=True)
    request_metadata = Column("metadata", JSON, default=dict)
    step_entered_at = Column(DateTime, nullable=True)
    timeout_fired_at = Column(DateTime, nullable=True)
    escalated_assignees = Column(JSON, default=dict)  # step id -> [assignee dicts]
    event_seq = Column(Integer, nullable=False, default=0)
    is_frozen = Column(Boolean, default=False)
    frozen_reason = Column(Text, nullable=True)
    withdrawn_reason = Column(Text, nullable=True)
    version_id = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    # Relationships
    workflow = relationship("ApprovalWorkflow")
    revisions = relationship(
        "ContentRevision", back_populates="request",
        order_by="ContentRevision.version", cascade="all, delete-orphan",
    )
    approvals = relationship(
        "ContentApproval", back_populates="request",
        order_by="ContentApproval.sequence", cascade="all, delete-orphan",
    )
    comments = relationship(
        "ApprovalComment", back_populates="request",
        order_by="ApprovalComment.id", cascade="all, delete-orphan",
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    @property
    def latest_revision(self) -> Optional["ContentRevision"]:
        return self.revisions[-1] if self.revisions else None

    def next_sequence(self) -> int:
        self.event_seq = (self.event_seq or 0) + 1
        return self.event_seq

    def extra_assignees(self, step_id: str) -> List[Assignee]:
        return [Assignee.model_validate(a) for a in (self.escalated_assignees or {}).get(step_id, [])]

    def add_extra_assignees(self, step_id: str, assignees: List[Assignee]) -> List[Assignee]:
        """Add escalation reviewers to a step, skipping ones already present. Returns the new ones."""
        current = dict(self.escalated_assignees or {})
        existing = list(current.get(step_id, []))
        known = {(a["type"], a["id"]) for a in existing}
        added = [a for a in assignees if (a.type, a.id) not in known]
        if added:
            current[step_id] = existing + [a.model_dump() for a in added]
            self.escalated_assignees = current
        return added


class ContentRevision(Base):
    __tablename__ = "content_revisions"
    __table_args__ = (UniqueConstraint("request_id", "version", name="uq_revision_request_version"),)

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(Integer, ForeignKey("approval_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    version = Column(Integer, nullable=False)
    sequence = Column(Integer, nullable=False)
    title = Column(String(300), nullable=True)
    body = Column(Text, nullable=False)
    hashtags = Column(JSON, default=list)
    mentions = Column(JSON, default=list)
    media_refs = Column(JSON, default=list)
    changes = Column(JSON, default=list)
    submitter_id = Column(String(100), nullable=False)
    submission_notes = Column(Text, nullable=True)
    auto_checks = Column(JSON, nullable=True)  # step id -> check result
    created_at = Column(DateTime, default=utcnow)

    request = relationship("ContentApprovalRequest", back_populates="revisions")

    def content(self) -> RevisionContent:
        return RevisionContent(
            title=self.title,
            body=self.body,
            hashtags=list(self.hashtags or []),
            mentions=list(self.mentions or []),
            media_refs=list(self.media_refs or []),
        )

    def cached_check(self, step_id: str) -> Optional[dict]:
        return (self.auto_checks or {}).get(step_id)

    def cache_check(self, step_id: str, result: dict):
        checks = dict(self.auto_checks or {})
        checks[step_id] = result
        self.auto_checks = checks


class ContentApproval(Base):
    __tablename__ = "content_approvals"

    # Who produced the record
    SOURCE_REVIEWER = "reviewer"
    SOURCE_AUTOMATED_CHECK = "automated_check"
    SOURCE_AUTO_APPROVAL = "auto_approval"
    SOURCE_TIMEOUT = "timeout"

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(Integer, ForeignKey("approval_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    step_index = Column(Integer, nullable=False)
    step_id = Column(String(100), nullable=False)
    step_name = Column(String(200), nullable=False)
    reviewer_id = Column(String(100), nullable=False, index=True)
    action = Column(String(20), nullable=False)  # approve, reject, request_changes, comment
    decision = Column(String(20), nullable=True)  # approved, rejected, needs_changes; null for comment
    source = Column(String(20), nullable=False, default=SOURCE_REVIEWER)
    revision_version = Column(Integer, nullable=False)
    comments = Column(Text, nullable=True)
    criteria = Column(JSON, nullable=True)
    suggested_changes = Column(JSON, default=list)
    time_spent = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    request = relationship("ContentApprovalRequest", back_populates="approvals")

    @property
    def is_system(self) -> bool:
        return self.source != self.SOURCE_REVIEWER


class ApprovalComment(Base):
    __tablename__ = "approval_comments"

    TYPES = ["general", "suggestion", "question", "concern", "praise"]

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(Integer, ForeignKey("approval_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(String(100), nullable=False)
    content = Column(Text, nullable=False)
    comment_type = Column(String(20), default="general")
    is_resolved = Column(Boolean, default=False)
    resolved_by = Column(String(100), nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    mentions = Column(JSON, default=list)
    attachments = Column(JSON, default=list)
    created_at = Column(DateTime, default=utcnow)

    request = relationship("ContentApprovalRequest", back_populates="comments")
