"""
Automated Check Runner

Evaluates a revision's content against a step's criteria. Scoring itself is
delegated to a PolicyScorer collaborator; this module only decides which
dimensions are required, applies the step's thresholds and aggregates the
outcome.

Provider failures are retried. Inside a transition the retries are immediate
(``backoff=False``); exponential backoff applies only to rechecks run outside
any transition. When retries are exhausted the dimension is reported as errored
rather than failed, so the orchestrator can hand the step to a human instead
of rejecting the content.
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol, Tuple

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential, wait_none

from ..logging_config import engine_logger as logger
from ..schemas.approval import RevisionContent
from ..schemas.workflow import ApprovalStep, CustomCriterion
from .errors import PolicyProviderError

BRAND_SAFETY = "brand_safety"
CONTENT_QUALITY = "content_quality"
COMPLIANCE = "compliance"
PLATFORM_OPTIMIZATION = "platform_optimization"

DIMENSIONS = (BRAND_SAFETY, CONTENT_QUALITY, COMPLIANCE, PLATFORM_OPTIMIZATION)
CUSTOM_PREFIX = "custom:"


@dataclass
class PolicyScore:
    """Raw verdict from a policy scorer for one dimension."""
    passed: bool
    score: Optional[float] = None
    issues: List[str] = field(default_factory=list)


class PolicyScorer(Protocol):
    def score(self, content: RevisionContent, dimension: str, options: dict) -> PolicyScore:
        ...


@dataclass
class DimensionResult:
    passed: bool
    score: Optional[float] = None
    issues: List[str] = field(default_factory=list)
    error: Optional[str] = None
    auto_reject: bool = False

    @property
    def failed(self) -> bool:
        """Definitively failed: scored and did not pass."""
        return self.error is None and not self.passed


@dataclass
class CheckResult:
    step_id: str
    dimensions: Dict[str, DimensionResult] = field(default_factory=dict)
    checked_at: str = ""

    @property
    def all_passed(self) -> bool:
        return all(d.passed and d.error is None for d in self.dimensions.values())

    @property
    def auto_reject(self) -> bool:
        return any(d.auto_reject and d.failed for d in self.dimensions.values())

    @property
    def needs_human_review(self) -> bool:
        return any(d.error is not None for d in self.dimensions.values())

    @property
    def failed_dimensions(self) -> List[str]:
        return [name for name, d in self.dimensions.items() if d.failed]

    @property
    def errored_dimensions(self) -> List[str]:
        return [name for name, d in self.dimensions.items() if d.error is not None]

    def score_for(self, dimension: str) -> Optional[float]:
        result = self.dimensions.get(dimension)
        return result.score if result else None

    def to_dict(self) -> dict:
        return {
            "step_id": self.step_id,
            "checked_at": self.checked_at,
            "dimensions": {name: asdict(d) for name, d in self.dimensions.items()},
            "all_passed": self.all_passed,
            "auto_reject": self.auto_reject,
            "needs_human_review": self.needs_human_review,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CheckResult":
        return cls(
            step_id=data["step_id"],
            checked_at=data.get("checked_at", ""),
            dimensions={name: DimensionResult(**d) for name, d in data.get("dimensions", {}).items()},
        )


class AutomatedCheckRunner:
    """Run a step's required policy checks through a PolicyScorer."""

    def __init__(
        self,
        scorer: PolicyScorer,
        max_attempts: int = 3,
        backoff_min: float = 1.0,
        backoff_max: float = 10.0,
    ):
        self.scorer = scorer
        self.max_attempts = max_attempts
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max

    @staticmethod
    def required_dimensions(step: ApprovalStep) -> List[Tuple[str, dict]]:
        """(dimension, options) pairs for every required block of the step's criteria."""
        criteria = step.criteria
        required = []
        for name in DIMENSIONS:
            block = getattr(criteria, name)
            if block.required:
                required.append((name, block.model_dump()))
        for custom in criteria.custom_criteria:
            if custom.required:
                required.append((CUSTOM_PREFIX + custom.id, custom.model_dump()))
        return required

    def requires_checks(self, step: ApprovalStep) -> bool:
        return bool(self.required_dimensions(step))

    def run(
        self,
        content: RevisionContent,
        step: ApprovalStep,
        context: Optional[dict] = None,
        backoff: bool = True,
    ) -> CheckResult:
        result = CheckResult(step_id=step.id, checked_at=datetime.now(timezone.utc).isoformat())

        for dimension, options in self.required_dimensions(step):
            options = {**options, **(context or {})}
            try:
                raw = self._score(content, dimension, options, backoff)
            except PolicyProviderError as e:
                logger.error(
                    "Policy provider failed after retries",
                    step_id=step.id,
                    dimension=dimension,
                    attempts=self.max_attempts,
                    error_message=str(e),
                )
                result.dimensions[dimension] = DimensionResult(passed=False, error=str(e))
                continue
            result.dimensions[dimension] = self._judge(step, dimension, raw)

        logger.info(
            "Automated checks completed",
            step_id=step.id,
            all_passed=result.all_passed,
            failed=result.failed_dimensions,
            errored=result.errored_dimensions,
        )
        return result

    def _score(self, content: RevisionContent, dimension: str, options: dict, backoff: bool) -> PolicyScore:
        wait = wait_exponential(multiplier=1, min=self.backoff_min, max=self.backoff_max) if backoff else wait_none()
        retrying = Retrying(
            reraise=True,
            stop=stop_after_attempt(self.max_attempts),
            wait=wait,
            retry=retry_if_exception_type(PolicyProviderError),
        )
        for attempt in retrying:
            with attempt:
                return self._call_scorer(content, dimension, options, attempt.retry_state.attempt_number)

    def _call_scorer(self, content: RevisionContent, dimension: str, options: dict, attempt: int) -> PolicyScore:
        scorer_dimension = "custom" if dimension.startswith(CUSTOM_PREFIX) else dimension
        try:
            return self.scorer.score(content, scorer_dimension, options)
        except PolicyProviderError:
            logger.warning("Policy provider error, retrying", dimension=dimension, attempt=attempt)
            raise
        except Exception as e:
            logger.warning("Policy provider error, retrying", dimension=dimension, attempt=attempt, error_message=str(e))
            raise PolicyProviderError(f"{dimension} scoring failed: {e}", {"dimension": dimension}) from e

    @staticmethod
    def _judge(step: ApprovalStep, dimension: str, raw: PolicyScore) -> DimensionResult:
        """Apply the step's thresholds to a raw score."""
        criteria = step.criteria
        issues = list(raw.issues)

        if dimension == BRAND_SAFETY:
            threshold = criteria.brand_safety.threshold
            passed = raw.score is not None and raw.score >= threshold
            if not passed and not issues:
                issues.append(f"Brand safety score below threshold {threshold}")
            return DimensionResult(
                passed=passed, score=raw.score, issues=issues,
                auto_reject=criteria.brand_safety.auto_reject,
            )

        if dimension == CONTENT_QUALITY:
            minimum = criteria.content_quality.min_readability_score
            passed = raw.passed
            if minimum is not None and (raw.score is None or raw.score < minimum):
                passed = False
                issues.append(f"Readability score below {minimum}")
            return DimensionResult(passed=passed, score=raw.score, issues=issues)

        if dimension.startswith(CUSTOM_PREFIX):
            criterion = _custom_criterion(step, dimension)
            passed = raw.passed
            if criterion is not None and criterion.type == "score" and criterion.threshold is not None:
                passed = raw.score is not None and raw.score >= criterion.threshold
            return DimensionResult(passed=passed, score=raw.score, issues=issues)

        return DimensionResult(passed=raw.passed, score=raw.score, issues=issues)


def _custom_criterion(step: ApprovalStep, dimension: str) -> Optional[CustomCriterion]:
    criterion_id = dimension[len(CUSTOM_PREFIX):]
    for criterion in step.criteria.custom_criteria:
        if criterion.id == criterion_id:
            return criterion
    return None
