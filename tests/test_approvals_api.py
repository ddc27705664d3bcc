"""
Tests for approval request API endpoints.
"""
import pytest

from contentgate.engine import notifications as events
from contentgate.engine.checks import PolicyScore

from test_workflows_api import WORKFLOW

FINAL_STEP = {
    "id": "final_approval",
    "name": "Final Approval",
    "type": "final_approval",
    "order": 3,
    "assignees": [{"type": "role", "id": "marketing_director"}],
}


@pytest.fixture
def team(make_user):
    return {
        "sam": make_user("sam", roles=["creator"]),
        "casey": make_user("casey", roles=["content_manager"]),
        "morgan": make_user("morgan", roles=["marketing_director"]),
        "alex": make_user("alex", roles=["admin"]),
        "outsider": make_user("riley", roles=["content_manager"], organization_id="org_2"),
    }


@pytest.fixture
def workflow_id(client, team, headers):
    definition = {**WORKFLOW, "steps": WORKFLOW["steps"] + [FINAL_STEP]}
    response = client.post("/api/workflows", json=definition, headers=headers(team["alex"]))
    return response.json()["id"]


@pytest.fixture
def request_id(client, team, headers, workflow_id, submission):
    response = client.post("/api/approvals", json=submission(workflow_id), headers=headers(team["sam"]))
    assert response.status_code == 201
    return response.json()["data"]["id"]


class TestCreateApproval:
    """Test submitting content for approval."""

    def test_create(self, client, team, headers, workflow_id, submission):
        response = client.post("/api/approvals", json=submission(workflow_id), headers=headers(team["sam"]))

        assert response.status_code == 201
        body = response.json()
        assert body["ok"] is True
        data = body["data"]
        assert data["submitter_id"] == "sam"
        assert data["status"] == "in_review"
        assert data["current_step"] == 1
        assert data["current_step_id"] == "content_review"
        assert data["latest_version"] == 1
        assert data["revisions"][0]["auto_checks"]["auto_check"]["all_passed"] is True
        assert data["approvals"][0]["source"] == "automated_check"

    def test_unsafe_content_rejected(self, client, team, headers, workflow_id, submission, scorer):
        scorer.results["brand_safety"] = PolicyScore(passed=False, score=0.3)

        response = client.post("/api/approvals", json=submission(workflow_id), headers=headers(team["sam"]))

        assert response.status_code == 201
        assert response.json()["data"]["status"] == "rejected"

    def test_invalid_body(self, client, team, headers, workflow_id):
        response = client.post(
            "/api/approvals",
            json={"workflow_id": workflow_id, "content_piece_id": "p1"},
            headers=headers(team["sam"]),
        )
        assert response.status_code == 422

    def test_unknown_workflow(self, client, team, headers, submission):
        response = client.post("/api/approvals", json=submission(404), headers=headers(team["sam"]))
        assert response.status_code == 404

    def test_other_organization_forbidden(self, client, team, headers, workflow_id, submission):
        response = client.post("/api/approvals", json=submission(workflow_id), headers=headers(team["outsider"]))
        assert response.status_code == 403


class TestDecisionEndpoints:
    """Test reviewer decisions through the API."""

    def test_full_approval(self, client, team, headers, request_id, sink):
        response = client.post(
            f"/api/approvals/{request_id}/decisions",
            json={"action": "approve", "step": 1, "comments": "Copy looks good", "time_spent": 5},
            headers=headers(team["casey"]),
        )
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["step_completed"] is True
        assert data["next_step"] == 2
        assert data["approval"]["reviewer_id"] == "casey"
        assert data["approval"]["time_spent"] == 5

        response = client.post(
            f"/api/approvals/{request_id}/decisions",
            json={"action": "approve", "step": 2},
            headers=headers(team["morgan"]),
        )
        data = response.json()["data"]
        assert data["is_complete"] is True
        assert data["request"]["status"] == "approved"
        assert sink.named(events.APPROVED)[0].recipients == ["sam"]

    def test_step_entered_notifies_role_members(self, client, team, headers, request_id, sink):
        client.post(
            f"/api/approvals/{request_id}/decisions",
            json={"action": "approve"},
            headers=headers(team["casey"]),
        )
        entered = sink.named(events.STEP_ENTERED)
        assert entered[-1].recipients == ["morgan"]

    def test_role_recipients_from_request_organization_only(self, client, team, headers, request_id, sink):
        entered = sink.named(events.STEP_ENTERED)
        assert entered[0].payload["step_id"] == "content_review"
        assert entered[0].recipients == ["casey"]

    def test_non_assignee_forbidden(self, client, team, headers, request_id):
        response = client.post(
            f"/api/approvals/{request_id}/decisions",
            json={"action": "approve"},
            headers=headers(team["morgan"]),
        )
        assert response.status_code == 403
        assert response.json()["error_code"] == "REVIEWER_NOT_AUTHORIZED"

    def test_stale_decision_conflict(self, client, team, headers, request_id):
        response = client.post(
            f"/api/approvals/{request_id}/decisions",
            json={"action": "approve", "step": 0},
            headers=headers(team["casey"]),
        )
        assert response.status_code == 409
        assert response.json()["error_code"] == "STALE_DECISION"

    def test_decision_on_terminal_request(self, client, team, headers, request_id):
        client.post(
            f"/api/approvals/{request_id}/decisions",
            json={"action": "reject", "comments": "Off brand"},
            headers=headers(team["casey"]),
        )
        response = client.post(
            f"/api/approvals/{request_id}/decisions",
            json={"action": "approve"},
            headers=headers(team["casey"]),
        )
        assert response.status_code == 409
        assert response.json()["error_code"] == "REQUEST_TERMINAL"

    def test_request_changes_and_revise(self, client, team, headers, request_id):
        response = client.post(
            f"/api/approvals/{request_id}/decisions",
            json={
                "action": "request_changes",
                "suggested_changes": [{"field": "title", "suggestion": "Add the date", "reason": "Clarity"}],
            },
            headers=headers(team["casey"]),
        )
        assert response.json()["data"]["request"]["status"] == "needs_changes"

        response = client.post(
            f"/api/approvals/{request_id}/revisions",
            json={
                "content": {"title": "Spring, March 20", "body": "Launching our new spring collection this week."},
                "submission_notes": "Added the date",
            },
            headers=headers(team["sam"]),
        )
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["revision"]["version"] == 2
        assert {c["field"] for c in data["revision"]["changes"]} == {"title", "hashtags"}
        assert data["request"]["status"] == "in_review"


class TestRequestQueries:
    """Test reading and listing requests."""

    def test_get(self, client, team, headers, request_id):
        response = client.get(f"/api/approvals/{request_id}", headers=headers(team["casey"]))
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["id"] == request_id
        assert data["step_count"] == 3
        assert len(data["revisions"]) == 1

    def test_get_other_organization_forbidden(self, client, team, headers, request_id):
        response = client.get(f"/api/approvals/{request_id}", headers=headers(team["outsider"]))
        assert response.status_code == 403

    def test_get_missing(self, client, team, headers):
        response = client.get("/api/approvals/999", headers=headers(team["casey"]))
        assert response.status_code == 404

    def test_list_mine(self, client, team, headers, request_id):
        response = client.get("/api/approvals?mine=true", headers=headers(team["casey"]))
        body = response.json()
        assert body["pagination"]["total"] == 1
        assert body["data"][0]["id"] == request_id
        assert "revisions" not in body["data"][0]

        response = client.get("/api/approvals?mine=true", headers=headers(team["morgan"]))
        assert response.json()["pagination"]["total"] == 0

    def test_list_by_status(self, client, team, headers, request_id):
        response = client.get("/api/approvals?status=in_review", headers=headers(team["sam"]))
        assert response.json()["pagination"]["total"] == 1
        response = client.get("/api/approvals?status=approved", headers=headers(team["sam"]))
        assert response.json()["pagination"]["total"] == 0

    def test_list_scoped_to_organization(self, client, team, headers, request_id):
        response = client.get("/api/approvals", headers=headers(team["outsider"]))
        assert response.json()["pagination"]["total"] == 0

    def test_replay(self, client, team, headers, request_id):
        response = client.get(f"/api/approvals/{request_id}/replay", headers=headers(team["sam"]))
        data = response.json()["data"]
        assert data["consistent"] is True
        assert data["current_step"] == 1


class TestCommentsAndWithdraw:
    """Test comments, withdrawal and unfreezing."""

    def test_comment_and_resolve(self, client, team, headers, request_id, sink):
        response = client.post(
            f"/api/approvals/{request_id}/comments",
            json={"content": "@morgan see the pricing line", "type": "concern", "mentions": ["morgan"]},
            headers=headers(team["casey"]),
        )
        assert response.status_code == 201
        comment = response.json()["data"]
        assert comment["author_id"] == "casey"
        assert comment["comment_type"] == "concern"
        assert sink.named(events.COMMENT_MENTION)[0].recipients == ["morgan"]

        response = client.post(
            f"/api/approvals/{request_id}/comments/{comment['id']}/resolve",
            headers=headers(team["morgan"]),
        )
        assert response.status_code == 200
        assert response.json()["data"]["is_resolved"] is True

    def test_withdraw(self, client, team, headers, request_id):
        response = client.post(
            f"/api/approvals/{request_id}/withdraw", json={"reason": "Duplicate"}, headers=headers(team["casey"])
        )
        assert response.status_code == 403

        response = client.post(
            f"/api/approvals/{request_id}/withdraw", json={"reason": "Duplicate"}, headers=headers(team["sam"])
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "withdrawn"
        assert data["withdrawn_reason"] == "Duplicate"

    def test_unfreeze_requires_admin(self, client, team, headers, request_id):
        response = client.post(f"/api/approvals/{request_id}/unfreeze", headers=headers(team["casey"]))
        assert response.status_code == 403

        response = client.post(f"/api/approvals/{request_id}/unfreeze", headers=headers(team["alex"]))
        assert response.status_code == 409
        assert response.json()["error_code"] == "INVALID_TRANSITION"
