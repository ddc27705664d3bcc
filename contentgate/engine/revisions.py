"""
Revision Tracker

Appends immutable content snapshots to a request and records a field-level
diff against the immediately preceding revision.
"""
from datetime import datetime
from typing import Callable, List, Optional

from ..logging_config import engine_logger as logger
from ..models.approval_request import ContentApprovalRequest, ContentRevision
from ..models.workflow import ApprovalWorkflow
from ..schemas.approval import RevisionContent
from ..schemas.workflow import ApprovalStep
from .checks import AutomatedCheckRunner, CheckResult
from .errors import RequestTerminal

SCALAR_FIELDS = ("title", "body")
LIST_FIELDS = (("hashtags", "hashtags"), ("mentions", "mentions"), ("media", "media_refs"))


def _text_span(old: str, new: str) -> dict:
    """Character span of ``new`` that differs from ``old`` (common prefix/suffix trimmed)."""
    start = 0
    limit = min(len(old), len(new))
    while start < limit and old[start] == new[start]:
        start += 1
    end_old, end_new = len(old), len(new)
    while end_old > start and end_new > start and old[end_old - 1] == new[end_new - 1]:
        end_old -= 1
        end_new -= 1
    return {"start": start, "end": end_new}


def compute_changes(old: Optional[RevisionContent], new: RevisionContent) -> List[dict]:
    """
    Field-level diff between two content snapshots.

    Scalar fields yield one addition, deletion or modification entry. List
    fields yield one entry per added or removed item, plus a modification
    entry when only the order changed. Unchanged fields yield nothing.
    """
    if old is None:
        return []

    changes = []
    for name in SCALAR_FIELDS:
        before, after = getattr(old, name) or "", getattr(new, name) or ""
        if before == after:
            continue
        if not before:
            changes.append({"type": "addition", "field": name, "old_value": None, "new_value": after})
        elif not after:
            changes.append({"type": "deletion", "field": name, "old_value": before, "new_value": None})
        else:
            changes.append({
                "type": "modification",
                "field": name,
                "old_value": before,
                "new_value": after,
                "position": _text_span(before, after),
            })

    for field_name, attr in LIST_FIELDS:
        before, after = list(getattr(old, attr)), list(getattr(new, attr))
        if before == after:
            continue
        removed = [item for item in before if item not in after]
        added = [item for item in after if item not in before]
        for item in removed:
            changes.append({"type": "deletion", "field": field_name, "old_value": item, "new_value": None})
        for item in added:
            changes.append({"type": "addition", "field": field_name, "old_value": None, "new_value": item})
        if not removed and not added:
            changes.append({
                "type": "modification",
                "field": field_name,
                "old_value": ", ".join(before),
                "new_value": ", ".join(after),
            })
    return changes


def check_context(request: ContentApprovalRequest) -> dict:
    """Request attributes the policy scorer sees alongside the step criteria."""
    return {"platform": (request.request_metadata or {}).get("platform")}


class RevisionTracker:
    """Create revisions with gapless versions, their diffs and cached check results."""

    def __init__(self, check_runner: AutomatedCheckRunner, clock: Callable[[], datetime]):
        self.check_runner = check_runner
        self.clock = clock

    def submit(
        self,
        request: ContentApprovalRequest,
        workflow: ApprovalWorkflow,
        content: RevisionContent,
        submitter_id: str,
        notes: Optional[str] = None,
    ) -> ContentRevision:
        """Append a resubmission, put the request back in review and check it against the current step."""
        if request.is_terminal:
            raise RequestTerminal(request.id, request.status)

        revision = self.append(request, content, submitter_id, notes)
        request.status = ContentApprovalRequest.IN_REVIEW

        step = workflow.get_step(request.current_step)
        if step is not None:
            self.attach_checks(request, revision, step)
        return revision

    def append(
        self,
        request: ContentApprovalRequest,
        content: RevisionContent,
        submitter_id: str,
        notes: Optional[str] = None,
    ) -> ContentRevision:
        previous = request.latest_revision
        version = previous.version + 1 if previous else 1
        changes = compute_changes(previous.content() if previous else None, content)

        revision = ContentRevision(
            version=version,
            sequence=request.next_sequence(),
            title=content.title,
            body=content.body,
            hashtags=list(content.hashtags),
            mentions=list(content.mentions),
            media_refs=list(content.media_refs),
            changes=changes,
            submitter_id=submitter_id,
            submission_notes=notes,
            created_at=self.clock(),
        )
        request.revisions.append(revision)

        logger.info(
            "Revision appended",
            request_id=request.id,
            version=version,
            changed_fields=sorted({c["field"] for c in changes}),
        )
        return revision

    def attach_checks(
        self,
        request: ContentApprovalRequest,
        revision: ContentRevision,
        step: ApprovalStep,
    ) -> Optional[CheckResult]:
        """
        Check a revision against a step, reusing the result cached on the
        revision when the step was already checked. Runs inside a transition,
        so provider retries do not wait between attempts.
        """
        cached = revision.cached_check(step.id)
        if cached is not None:
            return CheckResult.from_dict(cached)
        if not self.check_runner.requires_checks(step):
            return None

        result = self.check_runner.run(revision.content(), step, check_context(request), backoff=False)
        revision.cache_check(step.id, result.to_dict())
        return result
