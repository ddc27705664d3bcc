"""
Typed workflow definitions: steps, criteria and workflow-level rules.
"""
from pydantic import BaseModel, Field, field_validator
from typing import Any, List, Literal, Optional
from datetime import datetime

StepKind = Literal["review", "approval", "automated_check", "feedback", "final_approval"]
TimeoutAction = Literal["auto_approve", "auto_reject", "escalate", "notify"]
ConditionOperator = Literal["gt", "gte", "lt", "lte", "eq", "in", "contains"]
NotificationChannel = Literal["email", "slack", "teams", "webhook"]


class Assignee(BaseModel):
    type: Literal["user", "role", "external"] = "user"
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    can_approve: bool = True
    can_reject: bool = True
    can_request_changes: bool = True
    can_comment: bool = True


class BrandSafetyCriteria(BaseModel):
    required: bool = False
    threshold: float = Field(0.8, ge=0, le=1)
    auto_reject: bool = False


class ContentQualityCriteria(BaseModel):
    required: bool = False
    check_spelling: bool = False
    check_grammar: bool = False
    check_readability: bool = False
    min_readability_score: Optional[float] = None


class ComplianceCriteria(BaseModel):
    required: bool = False
    check_legal: bool = False
    check_industry_rules: bool = False
    required_approvals: List[str] = []


class PlatformOptimizationCriteria(BaseModel):
    required: bool = False
    check_character_limits: bool = False
    check_hashtags: bool = False
    check_formatting: bool = False


class CustomCriterion(BaseModel):
    id: str
    name: str
    description: str = ""
    type: Literal["boolean", "score", "text", "checklist"] = "boolean"
    required: bool = False
    threshold: Optional[float] = None  # score type only
    options: List[str] = []  # checklist type only


class ApprovalCriteria(BaseModel):
    brand_safety: BrandSafetyCriteria = Field(default_factory=BrandSafetyCriteria)
    content_quality: ContentQualityCriteria = Field(default_factory=ContentQualityCriteria)
    compliance: ComplianceCriteria = Field(default_factory=ComplianceCriteria)
    platform_optimization: PlatformOptimizationCriteria = Field(default_factory=PlatformOptimizationCriteria)
    custom_criteria: List[CustomCriterion] = []


class StepTimeout(BaseModel):
    hours: float = Field(gt=0)
    action: TimeoutAction


class ApprovalStep(BaseModel):
    id: str
    name: str
    type: StepKind
    order: int
    assignees: List[Assignee] = []
    criteria: ApprovalCriteria = Field(default_factory=ApprovalCriteria)
    auto_advance: bool = False
    timeout: Optional[StepTimeout] = None
    parallel: bool = False
    assignees_only: bool = True


class AutoApprovalCondition(BaseModel):
    type: str
    operator: ConditionOperator
    value: Any = None


class AutoApprovalConditions(BaseModel):
    enabled: bool = False
    conditions: List[AutoApprovalCondition] = []
    requires_all: bool = True
    evaluate_on_revision: bool = False


class EscalationRule(BaseModel):
    condition: str = "*"  # "*", a step id or a step type
    action: Literal["notify_manager", "add_reviewer", "require_additional_approval"]
    recipients: List[str] = []

    def matches(self, step: ApprovalStep) -> bool:
        return self.condition in ("*", step.id, step.type)


class NotificationSettings(BaseModel):
    notify_on_submission: bool = True
    notify_on_approval: bool = True
    notify_on_rejection: bool = True
    notify_on_timeout: bool = True
    channels: List[NotificationChannel] = ["email"]


class ApprovalRules(BaseModel):
    auto_approval_conditions: AutoApprovalConditions = Field(default_factory=AutoApprovalConditions)
    escalation_rules: List[EscalationRule] = []
    notification_settings: NotificationSettings = Field(default_factory=NotificationSettings)


class WorkflowDefinition(BaseModel):
    """Input for creating a workflow or a new version of one."""
    organization_id: str
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    steps: List[ApprovalStep] = Field(min_length=1)
    rules: ApprovalRules = Field(default_factory=ApprovalRules)

    @field_validator("steps")
    @classmethod
    def steps_are_ordered(cls, steps: List[ApprovalStep]) -> List[ApprovalStep]:
        ids = [s.id for s in steps]
        if len(set(ids)) != len(ids):
            raise ValueError("step ids must be unique")
        orders = [s.order for s in steps]
        if any(b <= a for a, b in zip(orders, orders[1:])):
            raise ValueError("step order values must be unique and strictly increasing")
        return steps


class WorkflowResponse(BaseModel):
    id: int
    workflow_key: str
    version: int
    organization_id: str
    name: str
    description: Optional[str] = None
    steps: List[ApprovalStep]
    rules: ApprovalRules
    is_active: bool
    created_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
