"""
Approval workflow definitions.

Rows are never edited after creation except for the ``is_active`` flag; a
changed definition is stored as a new row with the same ``workflow_key`` and
the next ``version``.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, Boolean, UniqueConstraint
from datetime import datetime, timezone
from typing import List, Optional
from ..database import Base
from ..schemas.workflow import ApprovalRules, ApprovalStep


class ApprovalWorkflow(Base):
    __tablename__ = "approval_workflows"
    __table_args__ = (UniqueConstraint("workflow_key", "version", name="uq_workflow_key_version"),)

    id = Column(Integer, primary_key=True, index=True)
    workflow_key = Column(String(64), nullable=False, index=True)
    version = Column(Integer, nullable=False, default=1)
    organization_id = Column(String(100), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    steps = Column(JSON, nullable=False)
    rules = Column(JSON, nullable=False)
    is_active = Column(Boolean, default=True, index=True)
    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    def get_steps(self) -> List[ApprovalStep]:
        return [ApprovalStep.model_validate(s) for s in self.steps or []]

    def get_step(self, index: int) -> Optional[ApprovalStep]:
        steps = self.steps or []
        if 0 <= index < len(steps):
            return ApprovalStep.model_validate(steps[index])
        return None

    def get_rules(self) -> ApprovalRules:
        return ApprovalRules.model_validate(self.rules or {})

    @property
    def step_count(self) -> int:
        return len(self.steps or [])
