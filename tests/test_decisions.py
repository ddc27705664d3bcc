"""
Tests for step completion and reviewer authorization.
"""
from types import SimpleNamespace

import pytest

from contentgate.engine.decisions import DecisionProcessor, decision_for, is_step_complete
from contentgate.engine.errors import ReviewerNotAuthorized, ValidationError
from contentgate.engine.identity import StaticIdentityResolver
from contentgate.models.approval_request import ContentApprovalRequest, utcnow
from contentgate.schemas.workflow import ApprovalStep, Assignee

IDENTITY = StaticIdentityResolver({
    "casey": ["content_manager"],
    "jordan": ["content_manager"],
    "morgan": ["marketing_director"],
})


def make_step(assignees, parallel=False, **extra):
    return ApprovalStep.model_validate({
        "id": "review",
        "name": "Review",
        "type": "review",
        "order": 1,
        "assignees": assignees,
        "parallel": parallel,
        **extra,
    })


def approval(reviewer_id, decision="approved", version=1, step_index=0, source="reviewer"):
    return SimpleNamespace(
        reviewer_id=reviewer_id,
        decision=decision,
        revision_version=version,
        step_index=step_index,
        is_system=source != "reviewer",
    )


def revision(version=1, checks=None):
    return SimpleNamespace(version=version, cached_check=lambda step_id: (checks or {}).get(step_id))


class TestStepCompletion:
    """Test is_step_complete."""

    def test_no_approvals(self):
        step = make_step([{"type": "user", "id": "casey"}])
        assert not is_step_complete(step, 0, [], revision(), IDENTITY)

    def test_sequential_any_assignee(self):
        step = make_step([{"type": "role", "id": "content_manager"}, {"type": "user", "id": "morgan"}])
        assert is_step_complete(step, 0, [approval("jordan")], revision(), IDENTITY)

    def test_other_step_or_revision_ignored(self):
        step = make_step([{"type": "user", "id": "casey"}])
        assert not is_step_complete(step, 0, [approval("casey", step_index=1)], revision(), IDENTITY)
        assert not is_step_complete(step, 0, [approval("casey", version=1)], revision(version=2), IDENTITY)

    def test_rejection_is_not_approval(self):
        step = make_step([{"type": "user", "id": "casey"}])
        assert not is_step_complete(step, 0, [approval("casey", decision="rejected")], revision(), IDENTITY)

    def test_no_assignees_any_approval(self):
        step = make_step([])
        assert is_step_complete(step, 0, [approval("anyone")], revision(), IDENTITY)

    def test_system_approval_completes(self):
        step = make_step([{"type": "user", "id": "casey"}], parallel=True)
        assert is_step_complete(step, 0, [approval("system", source="timeout")], revision(), IDENTITY)

    def test_parallel_needs_distinct_reviewers(self):
        step = make_step(
            [{"type": "role", "id": "content_manager"}, {"type": "role", "id": "content_manager"}],
            parallel=True,
        )
        assert not is_step_complete(step, 0, [approval("casey"), approval("casey")], revision(), IDENTITY)
        assert is_step_complete(step, 0, [approval("casey"), approval("jordan")], revision(), IDENTITY)

    def test_parallel_matching_reassigns_reviewers(self):
        # casey fits both assignees; taking the role slot first must not block the user slot
        step = make_step(
            [{"type": "role", "id": "content_manager"}, {"type": "user", "id": "casey"}],
            parallel=True,
        )
        reviewers = [approval("casey"), approval("jordan")]
        assert is_step_complete(step, 0, reviewers, revision(), IDENTITY)

    def test_assignees_without_approval_rights_not_required(self):
        step = make_step(
            [{"type": "user", "id": "casey"}, {"type": "user", "id": "morgan", "can_approve": False}],
            parallel=True,
        )
        assert is_step_complete(step, 0, [approval("casey")], revision(), IDENTITY)

    def test_failed_cached_check_blocks(self):
        step = make_step([{"type": "user", "id": "casey"}])
        failed = {"review": {
            "step_id": "review",
            "dimensions": {"brand_safety": {"passed": False, "score": 0.4, "issues": [], "error": None, "auto_reject": False}},
        }}
        assert not is_step_complete(step, 0, [approval("casey")], revision(checks=failed), IDENTITY)

    def test_errored_cached_check_does_not_block(self):
        step = make_step([{"type": "user", "id": "casey"}])
        errored = {"review": {
            "step_id": "review",
            "dimensions": {"compliance": {"passed": False, "score": None, "issues": [], "error": "down", "auto_reject": False}},
        }}
        assert is_step_complete(step, 0, [approval("casey")], revision(checks=errored), IDENTITY)

    def test_escalated_reviewer_completes_sequential_step(self):
        step = make_step([{"type": "user", "id": "casey"}])
        extra = [Assignee(type="user", id="lee")]
        assert not is_step_complete(step, 0, [approval("lee")], revision(), IDENTITY)
        assert is_step_complete(step, 0, [approval("lee")], revision(), IDENTITY, extra)


class TestDecisionProcessor:
    """Test authorization and recording."""

    def setup_method(self):
        self.processor = DecisionProcessor(IDENTITY, utcnow)

    def make_request(self, escalated=None):
        return ContentApprovalRequest(id=1, current_step=0, event_seq=0, escalated_assignees=escalated or {})

    def test_decision_for(self):
        assert decision_for("approve") == "approved"
        assert decision_for("comment") is None
        with pytest.raises(ValidationError):
            decision_for("veto")

    def test_assignee_capabilities(self):
        step = make_step([{"type": "role", "id": "content_manager", "can_reject": False}])
        caps = self.processor.authorize(self.make_request(), step, "casey", "approve")
        assert caps.can_approve
        with pytest.raises(ReviewerNotAuthorized):
            self.processor.authorize(self.make_request(), step, "casey", "reject")

    def test_non_assignee_refused(self):
        step = make_step([{"type": "user", "id": "casey"}])
        with pytest.raises(ReviewerNotAuthorized):
            self.processor.authorize(self.make_request(), step, "morgan", "comment")

    def test_escalated_assignee_allowed(self):
        step = make_step([{"type": "user", "id": "casey"}])
        request = self.make_request({"review": [{"type": "user", "id": "morgan"}]})
        assert self.processor.authorize(request, step, "morgan", "approve").can_approve

    def test_record_sequences(self):
        request = self.make_request()
        step = make_step([])
        first = self.processor.record(request, step, "casey", "comment", comments="Nice")
        second = self.processor.record(request, step, "casey", "approve")
        assert (first.sequence, second.sequence) == (1, 2)
        assert first.decision is None
        assert second.decision == "approved"
        assert second.revision_version == 0
        assert len(request.approvals) == 2
