from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from datetime import datetime

Priority = Literal["low", "normal", "high", "urgent"]
ReviewAction = Literal["approve", "reject", "request_changes", "comment"]
CommentType = Literal["general", "suggestion", "question", "concern", "praise"]


class RevisionContent(BaseModel):
    title: Optional[str] = None
    body: str = Field(min_length=1)
    hashtags: List[str] = []
    mentions: List[str] = []
    media_refs: List[str] = []


class RequestMetadata(BaseModel):
    platform: str
    content_type: str
    request_reason: Optional[str] = None
    urgency_justification: Optional[str] = None
    template_id: Optional[str] = None


class ApprovalRequestCreate(BaseModel):
    content_piece_id: str
    workflow_id: int
    priority: Priority = "normal"
    deadline: Optional[datetime] = None
    metadata: RequestMetadata
    content: RevisionContent
    submission_notes: Optional[str] = "Initial submission"


class RevisionSubmit(BaseModel):
    content: RevisionContent
    submission_notes: Optional[str] = None


class SuggestedChange(BaseModel):
    field: Literal["title", "body", "hashtags", "mentions"]
    suggestion: str
    reason: str
    priority: Literal["low", "medium", "high"] = "medium"


class BrandSafetyAssessment(BaseModel):
    passed: bool
    score: float
    notes: Optional[str] = None


class IssuesAssessment(BaseModel):
    passed: bool
    issues: List[str] = []
    notes: Optional[str] = None


class CustomCheckAssessment(BaseModel):
    id: str
    name: str
    passed: bool
    notes: Optional[str] = None


class CriteriaAssessment(BaseModel):
    brand_safety: Optional[BrandSafetyAssessment] = None
    content_quality: Optional[IssuesAssessment] = None
    compliance: Optional[IssuesAssessment] = None
    custom_checks: List[CustomCheckAssessment] = []


class DecisionCreate(BaseModel):
    action: ReviewAction
    step: Optional[int] = None  # step index the reviewer is deciding on
    comments: Optional[str] = None
    suggested_changes: List[SuggestedChange] = []
    criteria: Optional[CriteriaAssessment] = None
    time_spent: Optional[int] = Field(None, ge=0)  # minutes


class CommentAttachment(BaseModel):
    type: Literal["image", "document", "link"]
    url: str
    name: str


class CommentCreate(BaseModel):
    content: str = Field(min_length=1)
    type: CommentType = "general"
    mentions: List[str] = []
    attachments: List[CommentAttachment] = []


class WithdrawRequest(BaseModel):
    reason: Optional[str] = None


class RevisionResponse(BaseModel):
    id: int
    version: int
    title: Optional[str] = None
    body: str
    hashtags: List[str]
    mentions: List[str]
    media_refs: List[str]
    changes: List[dict]
    submitter_id: str
    submission_notes: Optional[str] = None
    auto_checks: Optional[dict] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ApprovalRecordResponse(BaseModel):
    id: int
    step_index: int
    step_id: str
    step_name: str
    reviewer_id: str
    action: str
    decision: Optional[str] = None
    source: str
    revision_version: int
    comments: Optional[str] = None
    criteria: Optional[dict] = None
    suggested_changes: List[dict] = []
    time_spent: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CommentResponse(BaseModel):
    id: int
    author_id: str
    content: str
    comment_type: str
    is_resolved: bool
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    mentions: List[str]
    attachments: List[dict]
    created_at: datetime

    class Config:
        from_attributes = True
