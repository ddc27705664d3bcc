"""
Auto-Approval Evaluator

Decides whether a request may bypass human review. Each workflow condition is
a ``{type, operator, value}`` predicate; the ``type`` selects an attribute of
the request or its latest revision and the operator compares it to ``value``.

Built-in condition types:

    brand_safety_score  best brand-safety score cached on the latest revision
    content_template    metadata.template_id
    user_history        number of the submitter's approved requests in the organization
    content_type        metadata.content_type
    platform            metadata.platform
    priority            request priority
    body_length         length of the latest revision's body
    hashtag_count       number of hashtags on the latest revision
    hashtags            the latest revision's hashtags

A missing attribute, an unknown type or an operator that does not apply to the
attribute's type all evaluate false.
"""
from numbers import Number
from typing import Any, Callable, Dict, Optional

from ..logging_config import engine_logger as logger
from ..models.approval_request import ContentApprovalRequest
from ..models.workflow import ApprovalWorkflow
from ..schemas.workflow import AutoApprovalCondition
from .checks import BRAND_SAFETY

MISSING = object()

Resolver = Callable[[ContentApprovalRequest], Any]
HistoryLookup = Callable[[str, str], int]


def _is_number(value) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


def compare(operator: str, actual: Any, expected: Any) -> bool:
    """Apply a condition operator. Type mismatches are false, never errors."""
    if actual is MISSING or actual is None:
        return False

    if operator in ("gt", "gte", "lt", "lte"):
        if not (_is_number(actual) and _is_number(expected)):
            return False
        return {
            "gt": actual > expected,
            "gte": actual >= expected,
            "lt": actual < expected,
            "lte": actual <= expected,
        }[operator]

    if operator == "eq":
        return actual == expected

    if operator == "in":
        if not isinstance(expected, (list, tuple, set)):
            return False
        if isinstance(actual, (list, tuple)):
            return bool(actual) and all(item in expected for item in actual)
        return actual in expected

    if operator == "contains":
        if isinstance(actual, str) and isinstance(expected, str):
            return expected.lower() in actual.lower()
        if isinstance(actual, (list, tuple)):
            return expected in actual
        return False

    return False


class AutoApprovalEvaluator:
    """Evaluate a workflow's auto-approval conditions against a request."""

    def __init__(self, history_lookup: Optional[HistoryLookup] = None):
        self.history_lookup = history_lookup
        self.resolvers: Dict[str, Resolver] = {
            "brand_safety_score": self._brand_safety_score,
            "content_template": self._metadata("template_id"),
            "user_history": self._user_history,
            "content_type": self._metadata("content_type"),
            "platform": self._metadata("platform"),
            "priority": lambda request: request.priority,
            "body_length": self._revision(lambda r: len(r.body or "")),
            "hashtag_count": self._revision(lambda r: len(r.hashtags or [])),
            "hashtags": self._revision(lambda r: list(r.hashtags or [])),
        }

    def register(self, condition_type: str, resolver: Resolver):
        """Add or replace the resolver for a condition type."""
        self.resolvers[condition_type] = resolver

    def should_auto_approve(self, request: ContentApprovalRequest, workflow: ApprovalWorkflow) -> bool:
        rules = workflow.get_rules().auto_approval_conditions
        if not rules.enabled or not rules.conditions:
            return False

        results = [self.evaluate(condition, request) for condition in rules.conditions]
        approved = all(results) if rules.requires_all else any(results)

        logger.info(
            "Auto-approval evaluated",
            request_id=request.id,
            workflow_id=workflow.id,
            requires_all=rules.requires_all,
            results=results,
            auto_approved=approved,
        )
        return approved

    def evaluate(self, condition: AutoApprovalCondition, request: ContentApprovalRequest) -> bool:
        resolver = self.resolvers.get(condition.type)
        if resolver is None:
            logger.warning("Unknown auto-approval condition type", condition_type=condition.type)
            return False
        return compare(condition.operator, resolver(request), condition.value)

    # Resolvers

    @staticmethod
    def _metadata(key: str) -> Resolver:
        def resolve(request: ContentApprovalRequest):
            value = (request.request_metadata or {}).get(key)
            return MISSING if value is None else value
        return resolve

    @staticmethod
    def _revision(extract: Callable) -> Resolver:
        def resolve(request: ContentApprovalRequest):
            revision = request.latest_revision
            return MISSING if revision is None else extract(revision)
        return resolve

    @staticmethod
    def _brand_safety_score(request: ContentApprovalRequest):
        revision = request.latest_revision
        if revision is None:
            return MISSING
        scores = [
            result["dimensions"][BRAND_SAFETY]["score"]
            for result in (revision.auto_checks or {}).values()
            if result.get("dimensions", {}).get(BRAND_SAFETY, {}).get("score") is not None
        ]
        return max(scores) if scores else MISSING

    def _user_history(self, request: ContentApprovalRequest):
        if self.history_lookup is None:
            return MISSING
        return self.history_lookup(request.organization_id, request.submitter_id)
