"""
Tests for workflow API endpoints.
"""
import pytest

WORKFLOW = {
    "organization_id": "org_1",
    "name": "Standard Content Review",
    "description": "Brand check, then content and marketing review",
    "steps": [
        {
            "id": "auto_check",
            "name": "Automated Brand Check",
            "type": "automated_check",
            "order": 1,
            "auto_advance": True,
            "criteria": {"brand_safety": {"required": True, "threshold": 0.8, "auto_reject": True}},
        },
        {
            "id": "content_review",
            "name": "Content Review",
            "type": "review",
            "order": 2,
            "assignees": [{"type": "role", "id": "content_manager"}],
            "timeout": {"hours": 24, "action": "notify"},
        },
    ],
}


@pytest.fixture
def admin(make_user):
    return make_user("alex", roles=["admin", "content_manager"])


class TestWorkflowEndpoints:
    """Test workflow CRUD and versioning."""

    def test_create_workflow(self, client, admin, headers):
        response = client.post("/api/workflows", json=WORKFLOW, headers=headers(admin))
        assert response.status_code == 201
        data = response.json()
        assert data["version"] == 1
        assert data["is_active"] is True
        assert data["created_by"] == "alex"
        assert [s["id"] for s in data["steps"]] == ["auto_check", "content_review"]
        assert data["steps"][1]["timeout"] == {"hours": 24, "action": "notify"}

    def test_create_requires_auth(self, client):
        response = client.post("/api/workflows", json=WORKFLOW)
        assert response.status_code == 401

    def test_create_rejects_invalid_steps(self, client, admin, headers):
        bad = {**WORKFLOW, "steps": [WORKFLOW["steps"][0], {**WORKFLOW["steps"][1], "order": 0}]}
        response = client.post("/api/workflows", json=bad, headers=headers(admin))
        assert response.status_code == 422

    def test_create_for_other_organization_forbidden(self, client, admin, headers):
        response = client.post(
            "/api/workflows", json={**WORKFLOW, "organization_id": "org_2"}, headers=headers(admin)
        )
        assert response.status_code == 403
        assert response.json()["error_code"] == "FORBIDDEN"

    def test_get_and_list(self, client, admin, headers):
        created = client.post("/api/workflows", json=WORKFLOW, headers=headers(admin)).json()

        response = client.get(f"/api/workflows/{created['id']}", headers=headers(admin))
        assert response.status_code == 200
        assert response.json()["name"] == "Standard Content Review"

        response = client.get("/api/workflows", headers=headers(admin))
        assert [w["id"] for w in response.json()] == [created["id"]]

    def test_get_missing(self, client, admin, headers):
        response = client.get("/api/workflows/999", headers=headers(admin))
        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"

    def test_new_version(self, client, admin, headers):
        created = client.post("/api/workflows", json=WORKFLOW, headers=headers(admin)).json()

        response = client.post(
            f"/api/workflows/{created['id']}/versions",
            json={**WORKFLOW, "name": "Standard Content Review v2"},
            headers=headers(admin),
        )
        assert response.status_code == 201
        version = response.json()
        assert version["version"] == 2
        assert version["workflow_key"] == created["workflow_key"]

        active = client.get("/api/workflows", headers=headers(admin)).json()
        assert [w["id"] for w in active] == [version["id"]]
        everything = client.get("/api/workflows?include_inactive=true", headers=headers(admin)).json()
        assert len(everything) == 2

        response = client.post(
            f"/api/workflows/{created['id']}/versions", json=WORKFLOW, headers=headers(admin)
        )
        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_deactivate(self, client, admin, headers):
        created = client.post("/api/workflows", json=WORKFLOW, headers=headers(admin)).json()

        response = client.post(f"/api/workflows/{created['id']}/deactivate", headers=headers(admin))
        assert response.status_code == 200
        assert response.json()["is_active"] is False
