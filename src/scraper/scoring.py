"""Content quality scoring — AI-first with a deterministic rule-based fallback."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from src.api.schemas import LinkScore

if TYPE_CHECKING:
    from src.config import Settings
    from src.scraper.ai_client import AIClient

logger = logging.getLogger(__name__)

NO_RULES_REASON = "Rule-based assessment (service unavailable)"

# Checked in order against the lowercased URL; the first hit ends scoring.
BLOCKED_SUBSTRINGS: tuple[tuple[str, str], ...] = (
    ("facebook.com", "social_media"),
    ("twitter.com", "social_media"),
    ("x.com", "social_media"),
    ("instagram.com", "social_media"),
    ("tiktok.com", "social_media"),
    ("linkedin.com", "social_media"),
    ("pinterest.com", "social_media"),
    ("snapchat.com", "social_media"),
    ("reddit.com", "forum"),
    ("betting", "gambling"),
    ("casino", "gambling"),
    ("poker", "gambling"),
    ("bet", "gambling"),
    ("xxx", "adult_content"),
    ("porn", "adult_content"),
    ("adult", "adult_content"),
    ("cannabis", "drugs"),
    ("weed", "drugs"),
    ("ebay.com", "marketplace"),
    ("amazon.com", "marketplace"),
    ("craigslist.org", "marketplace"),
)

QUALITY_DOMAINS: tuple[str, ...] = (
    ".edu", ".gov", ".org", "wikipedia", "arxiv", "github", "stackoverflow",
)

TECHNICAL_KEYWORDS: tuple[str, ...] = (
    "documentation", "tutorial", "guide", "research", "study", "analysis", "technical",
)


@dataclass
class Assessment:
    """Scorer output before the recommendation threshold is applied."""

    score: float
    reason: str
    categories: list[str] = field(default_factory=list)
    malicious_indicators: list[str] = field(default_factory=list)
    ai_used: bool = False

    def to_link_score(self, url: str, threshold: float) -> LinkScore:
        return LinkScore(
            url=url,
            score=self.score,
            reason=self.reason,
            categories=list(self.categories),
            malicious_indicators=list(self.malicious_indicators),
            is_recommended=self.score >= threshold,
            ai_used=self.ai_used,
        )


class QualityScorer(Protocol):
    """Protocol for quality scorers. ``None`` means the scorer could not decide."""

    async def assess(self, url: str, title: str, content: str) -> Assessment | None: ...


def _first_match(haystacks: tuple[str, ...], needles: tuple[str, ...]) -> str | None:
    for needle in needles:
        if any(needle in haystack for haystack in haystacks):
            return needle
    return None


def score_content_rules(url: str, title: str, content: str) -> Assessment:
    """Deterministic quality assessment. Same inputs always give the same output."""
    url_lower = url.lower()
    title_lower = title.lower()
    content_lower = content.lower()

    for substring, category in BLOCKED_SUBSTRINGS:
        if substring in url_lower:
            return Assessment(
                score=0.1,
                reason=f"Blocked content type detected: {category}",
                categories=[category, "low_quality"],
                malicious_indicators=[category],
            )

    score = 0.5
    reasons: list[str] = []
    categories: list[str] = []
    indicators: list[str] = []

    content_length = len(content)
    word_count = len(content.split())

    if content_length < 100:
        score -= 0.3
        reasons.append("Very short content")
        categories.append("low_quality")
    elif content_length < 500:
        score -= 0.1
        reasons.append("Short content")
    elif content_length > 1000:
        score += 0.2
        reasons.append("Substantial content")
        categories.append("informational")

    if word_count < 20:
        score -= 0.2
        categories.append("minimal_content")

    if (
        content_lower.count("click here") > 2
        or content_lower.count("buy now") > 2
        or content_lower.count("limited offer") > 1
    ):
        score -= 0.3
        reasons.append("Spam indicators detected")
        categories.append("spam")
        indicators.append("spam_keywords")

    exclamations = content.count("!")
    if exclamations > word_count // 10 and exclamations > 5:
        score -= 0.2
        reasons.append("Excessive punctuation")

    if _first_match((url_lower,), QUALITY_DOMAINS) is not None:
        score += 0.3
        reasons.append("Quality domain detected")
        categories.extend(("reference", "trusted_source"))

    if _first_match((title_lower, content_lower), TECHNICAL_KEYWORDS) is not None:
        score += 0.1
        categories.extend(("technical", "educational"))

    score = round(min(1.0, max(0.0, score)), 4)

    if not categories:
        categories = ["informational"] if score >= 0.6 else ["general"]

    reason = "Rule-based: " + "; ".join(reasons) if reasons else NO_RULES_REASON
    return Assessment(
        score=score,
        reason=reason,
        categories=categories,
        malicious_indicators=indicators,
    )


class RuleBasedScorer:
    """Network-independent scorer; always produces an assessment."""

    async def assess(self, url: str, title: str, content: str) -> Assessment:
        return score_content_rules(url, title, content)


class AIScorer:
    """Delegates to the model; yields ``None`` whenever the model cannot answer."""

    def __init__(self, ai_client: AIClient) -> None:
        self._ai = ai_client

    async def assess(self, url: str, title: str, content: str) -> Assessment | None:
        result = await self._ai.score_content(url, title, content)
        if result.value is None:
            return None
        verdict = result.value
        return Assessment(
            score=verdict.score,
            reason=verdict.reason,
            categories=list(verdict.categories),
            malicious_indicators=list(verdict.malicious_indicators),
            ai_used=True,
        )


class TieredScorer:
    """Try *primary*; fall back to a scorer that always answers."""

    def __init__(self, primary: QualityScorer, fallback: RuleBasedScorer) -> None:
        self._primary = primary
        self._fallback = fallback

    async def assess(self, url: str, title: str, content: str) -> Assessment:
        assessment = await self._primary.assess(url, title, content)
        if assessment is not None:
            return assessment
        logger.info("using rule-based score fallback", extra={"url": url})
        return await self._fallback.assess(url, title, content)


def build_scorer(settings: Settings, ai_client: AIClient) -> TieredScorer | RuleBasedScorer:
    """Pick the scoring strategy for the configured AI availability."""
    if not settings.ai_enabled:
        return RuleBasedScorer()
    return TieredScorer(primary=AIScorer(ai_client), fallback=RuleBasedScorer())
