"""
Rule-based policy scorer.

The default PolicyScorer collaborator for deployments without an external
brand-safety or quality service. It is deterministic: blocked terms, flagged
claims, length and per-platform limits are all configuration.
"""
import re
from typing import Dict, Iterable, Optional

from ..schemas.approval import RevisionContent
from .checks import BRAND_SAFETY, COMPLIANCE, CONTENT_QUALITY, PLATFORM_OPTIMIZATION, PolicyScore

# Character and hashtag limits per platform
PLATFORM_LIMITS: Dict[str, Dict[str, int]] = {
    "twitter": {"max_length": 280, "max_hashtags": 5},
    "x": {"max_length": 280, "max_hashtags": 5},
    "instagram": {"max_length": 2200, "max_hashtags": 30},
    "tiktok": {"max_length": 2200, "max_hashtags": 10},
    "linkedin": {"max_length": 3000, "max_hashtags": 5},
    "facebook": {"max_length": 63206, "max_hashtags": 10},
}

SENTENCE_SPLIT = re.compile(r"[.!?]+")


class BasicPolicyScorer:
    """Keyword and limit based scoring for the four built-in dimensions."""

    def __init__(
        self,
        blocked_terms: Iterable[str] = (),
        flagged_claims: Iterable[str] = (),
        min_body_length: int = 10,
        platform_limits: Optional[Dict[str, Dict[str, int]]] = None,
    ):
        self.blocked_terms = [t.lower() for t in blocked_terms]
        self.flagged_claims = [c.lower() for c in flagged_claims]
        self.min_body_length = min_body_length
        self.platform_limits = platform_limits or PLATFORM_LIMITS

    def score(self, content: RevisionContent, dimension: str, options: dict) -> PolicyScore:
        if dimension == BRAND_SAFETY:
            return self._brand_safety(content)
        if dimension == CONTENT_QUALITY:
            return self._content_quality(content, options)
        if dimension == COMPLIANCE:
            return self._compliance(content, options)
        if dimension == PLATFORM_OPTIMIZATION:
            return self._platform_optimization(content, options)
        # Custom criteria need an organization-specific evaluator
        return PolicyScore(
            passed=False,
            issues=[f"Custom criterion '{options.get('name', dimension)}' requires manual review"],
        )

    def _text(self, content: RevisionContent) -> str:
        parts = [content.title or "", content.body, " ".join(content.hashtags)]
        return " ".join(parts).lower()

    def _brand_safety(self, content: RevisionContent) -> PolicyScore:
        text = self._text(content)
        hits = [term for term in self.blocked_terms if term in text]
        score = max(0.0, 1.0 - 0.35 * len(hits))
        issues = [f"Content contains potentially unsafe language: '{term}'" for term in hits]
        return PolicyScore(passed=not hits, score=round(score, 2), issues=issues)

    def _content_quality(self, content: RevisionContent, options: dict) -> PolicyScore:
        issues = []
        body = content.body.strip()
        if len(body) < self.min_body_length:
            issues.append("Content is too short")

        sentences = [s for s in SENTENCE_SPLIT.split(body) if s.strip()]
        words = body.split()
        avg_sentence = len(words) / len(sentences) if sentences else len(words)
        # Readability degrades past 20 words per sentence, bottoming out at 60
        readability = max(0.0, min(1.0, 1.0 - max(0.0, avg_sentence - 20) / 40))
        if options.get("check_readability") and readability < 0.5:
            issues.append("Sentences are too long to read comfortably")

        return PolicyScore(passed=not issues, score=round(readability, 2), issues=issues)

    def _compliance(self, content: RevisionContent, options: dict) -> PolicyScore:
        issues = []
        if options.get("check_legal", True):
            text = self._text(content)
            issues.extend(f"Claim requires legal review: '{claim}'" for claim in self.flagged_claims if claim in text)
        return PolicyScore(passed=not issues, issues=issues)

    def _platform_optimization(self, content: RevisionContent, options: dict) -> PolicyScore:
        platform = (options.get("platform") or "").lower()
        limits = self.platform_limits.get(platform)
        if limits is None:
            return PolicyScore(passed=True)

        issues = []
        if options.get("check_character_limits", True) and len(content.body) > limits["max_length"]:
            issues.append(f"Content exceeds character limit for {platform} ({limits['max_length']})")
        if options.get("check_hashtags", True) and len(content.hashtags) > limits["max_hashtags"]:
            issues.append(f"Too many hashtags for {platform} (max {limits['max_hashtags']})")
        return PolicyScore(passed=not issues, issues=issues)
