"""
Tests for revision diffs and version numbering.
"""
from contentgate.engine.revisions import compute_changes
from contentgate.schemas.approval import RevisionContent


def content(**fields):
    fields.setdefault("body", "Spring is here.")
    return RevisionContent(**fields)


class TestComputeChanges:
    """Test field-level diffs between revisions."""

    def test_first_revision_has_no_changes(self):
        assert compute_changes(None, content()) == []

    def test_identical_content(self):
        assert compute_changes(content(title="A"), content(title="A")) == []

    def test_body_modification_has_position(self):
        changes = compute_changes(content(body="Spring is here."), content(body="Spring is finally here."))
        assert len(changes) == 1
        change = changes[0]
        assert change["type"] == "modification"
        assert change["field"] == "body"
        assert change["old_value"] == "Spring is here."
        assert change["position"] == {"start": 10, "end": 18}

    def test_title_added_and_removed(self):
        added = compute_changes(content(), content(title="Launch"))
        assert added == [{"type": "addition", "field": "title", "old_value": None, "new_value": "Launch"}]

        removed = compute_changes(content(title="Launch"), content())
        assert removed[0]["type"] == "deletion"
        assert removed[0]["old_value"] == "Launch"

    def test_hashtag_items(self):
        changes = compute_changes(
            content(hashtags=["#spring", "#sale"]),
            content(hashtags=["#spring", "#new"]),
        )
        assert {(c["type"], c["field"], c["old_value"], c["new_value"]) for c in changes} == {
            ("deletion", "hashtags", "#sale", None),
            ("addition", "hashtags", None, "#new"),
        }

    def test_reordered_list_is_modification(self):
        changes = compute_changes(content(mentions=["@a", "@b"]), content(mentions=["@b", "@a"]))
        assert changes == [{"type": "modification", "field": "mentions", "old_value": "@a, @b", "new_value": "@b, @a"}]

    def test_media_field_name(self):
        changes = compute_changes(content(), content(media_refs=["img-1"]))
        assert changes[0]["field"] == "media"


class TestRevisionVersions:
    """Versions are gapless and diffs refer to the previous revision."""

    def test_versions_increment(self, orchestrator, make_workflow, submission):
        workflow = make_workflow([{
            "id": "review",
            "name": "Review",
            "type": "review",
            "order": 1,
            "assignees": [{"type": "user", "id": "casey"}],
        }])
        request = orchestrator.create(submission(workflow.id, body="First draft of the post."), submitter_id="sam")

        second = orchestrator.submit_revision(request.id, {"body": "Second draft of the post."}, "sam")
        third = orchestrator.submit_revision(
            request.id, {"body": "Second draft of the post.", "hashtags": ["#final"]}, "sam"
        )

        assert (second.version, third.version) == (2, 3)
        request = orchestrator.get(request.id)
        assert [r.version for r in request.revisions] == [1, 2, 3]
        assert [c["field"] for c in third.changes] == ["hashtags"]
        assert request.revisions[0].submission_notes == "Initial submission"
