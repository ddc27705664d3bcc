"""
Workflow Registry

Stores approval workflow definitions. A definition is never changed in place:
``new_version`` writes a new row and retires the previous one, so requests that
started against the old version keep resolving the steps they started with.
"""
import uuid
from typing import List, Optional

from sqlalchemy.orm import Session

from ..logging_config import engine_logger as logger
from ..models.workflow import ApprovalWorkflow
from ..schemas.workflow import WorkflowDefinition
from .errors import NotFound, ValidationError


class WorkflowRegistry:
    """Create, resolve and version approval workflows."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, workflow_id: int) -> ApprovalWorkflow:
        workflow = self.db.get(ApprovalWorkflow, workflow_id)
        if workflow is None:
            raise NotFound("Workflow", workflow_id)
        return workflow

    def create(self, definition: WorkflowDefinition, created_by: Optional[str] = None) -> ApprovalWorkflow:
        workflow = self._build(definition, workflow_key=uuid.uuid4().hex, version=1, created_by=created_by)
        self.db.add(workflow)
        self.db.commit()
        self.db.refresh(workflow)
        logger.info(
            "Workflow created",
            workflow_id=workflow.id,
            workflow_key=workflow.workflow_key,
            steps=workflow.step_count,
        )
        return workflow

    def new_version(
        self,
        workflow_id: int,
        definition: WorkflowDefinition,
        created_by: Optional[str] = None,
    ) -> ApprovalWorkflow:
        """Replace a workflow with a new version; the predecessor is deactivated, not edited."""
        current = self.get(workflow_id)
        if definition.organization_id != current.organization_id:
            raise ValidationError(
                "A new version must stay in the same organization",
                {"organization_id": definition.organization_id},
            )
        latest = self.latest(current.workflow_key)
        if latest.id != current.id:
            raise ValidationError(
                f"Workflow {workflow_id} has been superseded by version {latest.version}",
                {"latest_id": latest.id},
            )

        workflow = self._build(
            definition,
            workflow_key=current.workflow_key,
            version=current.version + 1,
            created_by=created_by,
        )
        current.is_active = False
        self.db.add(workflow)
        self.db.commit()
        self.db.refresh(workflow)
        logger.info(
            "Workflow versioned",
            workflow_key=workflow.workflow_key,
            previous_id=current.id,
            workflow_id=workflow.id,
            version=workflow.version,
        )
        return workflow

    def deactivate(self, workflow_id: int) -> ApprovalWorkflow:
        workflow = self.get(workflow_id)
        workflow.is_active = False
        self.db.commit()
        self.db.refresh(workflow)
        logger.info("Workflow deactivated", workflow_id=workflow_id)
        return workflow

    def latest(self, workflow_key: str) -> ApprovalWorkflow:
        workflow = (
            self.db.query(ApprovalWorkflow)
            .filter(ApprovalWorkflow.workflow_key == workflow_key)
            .order_by(ApprovalWorkflow.version.desc())
            .first()
        )
        if workflow is None:
            raise NotFound("Workflow", workflow_key)
        return workflow

    def list(self, organization_id: Optional[str] = None, active_only: bool = True) -> List[ApprovalWorkflow]:
        query = self.db.query(ApprovalWorkflow)
        if organization_id:
            query = query.filter(ApprovalWorkflow.organization_id == organization_id)
        if active_only:
            query = query.filter(ApprovalWorkflow.is_active.is_(True))
        return query.order_by(ApprovalWorkflow.created_at.desc(), ApprovalWorkflow.id.desc()).all()

    @staticmethod
    def _build(definition: WorkflowDefinition, workflow_key: str, version: int, created_by: Optional[str]) -> ApprovalWorkflow:
        return ApprovalWorkflow(
            workflow_key=workflow_key,
            version=version,
            organization_id=definition.organization_id,
            name=definition.name,
            description=definition.description,
            steps=[step.model_dump() for step in definition.steps],
            rules=definition.rules.model_dump(),
            is_active=True,
            created_by=created_by,
        )
