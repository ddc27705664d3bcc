"""
Workflow routes: create, list, version and retire approval workflows.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional

from ..database import get_db
from ..auth import Reviewer, get_reviewer
from ..engine import WorkflowRegistry
from ..schemas.workflow import WorkflowDefinition, WorkflowResponse

router = APIRouter(prefix="/api/workflows", tags=["workflows"])


@router.post("", response_model=WorkflowResponse, status_code=201)
def create_workflow(
    definition: WorkflowDefinition,
    db: Session = Depends(get_db),
    reviewer: Reviewer = Depends(get_reviewer),
):
    """Create a new approval workflow (version 1)."""
    reviewer.check_organization(definition.organization_id, "Workflow")
    return WorkflowRegistry(db).create(definition, created_by=reviewer.username)


@router.get("", response_model=List[WorkflowResponse])
def list_workflows(
    organization_id: Optional[str] = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    reviewer: Reviewer = Depends(get_reviewer),
):
    """List workflows, newest first. Only active versions unless include_inactive is set."""
    return WorkflowRegistry(db).list(reviewer.scope(organization_id), active_only=not include_inactive)


@router.get("/{workflow_id}", response_model=WorkflowResponse)
def get_workflow(
    workflow_id: int,
    db: Session = Depends(get_db),
    reviewer: Reviewer = Depends(get_reviewer),
):
    workflow = WorkflowRegistry(db).get(workflow_id)
    reviewer.check_organization(workflow.organization_id, "Workflow")
    return workflow


@router.post("/{workflow_id}/versions", response_model=WorkflowResponse, status_code=201)
def create_version(
    workflow_id: int,
    definition: WorkflowDefinition,
    db: Session = Depends(get_db),
    reviewer: Reviewer = Depends(get_reviewer),
):
    """
    Replace a workflow with a new version. The current version is retired;
    requests already running on it keep using its steps.
    """
    registry = WorkflowRegistry(db)
    reviewer.check_organization(registry.get(workflow_id).organization_id, "Workflow")
    return registry.new_version(workflow_id, definition, created_by=reviewer.username)


@router.post("/{workflow_id}/deactivate", response_model=WorkflowResponse)
def deactivate_workflow(
    workflow_id: int,
    db: Session = Depends(get_db),
    reviewer: Reviewer = Depends(get_reviewer),
):
    """Stop new requests from using this workflow."""
    registry = WorkflowRegistry(db)
    reviewer.check_organization(registry.get(workflow_id).organization_id, "Workflow")
    return registry.deactivate(workflow_id)
