"""
Tests for workflow definitions and versioning.
"""
import pydantic
import pytest

from contentgate.engine.errors import NotFound, ValidationError
from contentgate.models.approval_request import ContentApprovalRequest
from contentgate.schemas.workflow import WorkflowDefinition

STEP = {"id": "review", "name": "Review", "type": "review", "order": 1, "assignees": [{"type": "user", "id": "casey"}]}


def definition(steps=None, organization_id="org_1", name="Review"):
    return WorkflowDefinition.model_validate({
        "organization_id": organization_id,
        "name": name,
        "steps": steps or [STEP],
    })


class TestWorkflowDefinition:
    """Test definition validation."""

    def test_requires_steps(self):
        with pytest.raises(pydantic.ValidationError):
            definition(steps=[])

    def test_duplicate_step_ids(self):
        with pytest.raises(pydantic.ValidationError):
            definition(steps=[STEP, {**STEP, "order": 2}])

    def test_order_must_increase(self):
        with pytest.raises(pydantic.ValidationError):
            definition(steps=[STEP, {**STEP, "id": "second", "order": 1}])

    def test_defaults(self):
        step = definition().steps[0]
        assert step.assignees_only
        assert not step.parallel
        assert step.criteria.brand_safety.threshold == 0.8


class TestWorkflowRegistry:
    """Test create, version and deactivate."""

    def test_create(self, registry):
        workflow = registry.create(definition(), created_by="alex")
        assert workflow.version == 1
        assert workflow.is_active
        assert workflow.step_count == 1
        assert workflow.get_step(0).id == "review"
        assert workflow.get_step(1) is None
        assert workflow.created_by == "alex"

    def test_get_missing(self, registry):
        with pytest.raises(NotFound):
            registry.get(404)

    def test_new_version_retires_previous(self, registry):
        first = registry.create(definition())
        second = registry.new_version(first.id, definition(name="Review v2"))

        assert second.version == 2
        assert second.workflow_key == first.workflow_key
        assert registry.get(first.id).is_active is False
        assert registry.latest(first.workflow_key).id == second.id
        assert [w.id for w in registry.list(organization_id="org_1")] == [second.id]
        assert len(registry.list(organization_id="org_1", active_only=False)) == 2

    def test_superseded_version_cannot_be_versioned(self, registry):
        first = registry.create(definition())
        registry.new_version(first.id, definition())
        with pytest.raises(ValidationError):
            registry.new_version(first.id, definition())

    def test_version_cannot_change_organization(self, registry):
        first = registry.create(definition())
        with pytest.raises(ValidationError):
            registry.new_version(first.id, definition(organization_id="org_2"))

    def test_in_flight_requests_keep_their_version(self, registry, orchestrator, submission):
        first = registry.create(definition())
        request = orchestrator.create(submission(first.id), submitter_id="sam")

        two_steps = [STEP, {**STEP, "id": "legal", "name": "Legal", "order": 2}]
        registry.new_version(first.id, definition(steps=two_steps))

        outcome = orchestrator.decide(request.id, "casey", {"action": "approve"})
        assert outcome.request.workflow_id == first.id
        assert outcome.request.status == ContentApprovalRequest.APPROVED
