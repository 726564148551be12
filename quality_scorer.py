"""
Heuristic quality scoring for generated content.

Every function here is pure and total: any input produces a score in
[0, 100] and internal errors degrade to 0 instead of propagating.
"""

import logging
import re
from typing import Dict, Optional

from config import ScoringWeights
from models import ContentRequest, ErrorKind, GenerationOutcome, QualityBreakdown
from word_count_utils import average_sentence_length, contains_url, count_keyword_mentions, count_words

logger = logging.getLogger(__name__)

TOP_HEADING_SHARE = 0.40
SUBHEADING_SHARE = 0.35
LIST_SHARE = 0.25

_TOP_HEADING_RE = re.compile(r"^\s{0,3}#\s+\S|<h1[\s>]", re.IGNORECASE | re.MULTILINE)
_SUBHEADING_RE = re.compile(r"^\s{0,3}#{2,6}\s+\S|<h[2-6][\s>]", re.IGNORECASE | re.MULTILINE)
_LIST_RE = re.compile(r"^\s{0,3}(?:[-*+]|\d+[.)])\s+\S|<(?:ul|ol)[\s>]", re.IGNORECASE | re.MULTILINE)

DEFAULT_WEIGHTS = ScoringWeights()


def length_fit_score(word_count: int, target: int, weight: float) -> float:
    """Symmetric ratio: over- and under-shooting by the same factor score the same."""
    if word_count <= 0 or target <= 0:
        return 0.0
    ratio = min(word_count, target) / max(word_count, target)
    return ratio * weight


def keyword_presence_score(text: str, keyword: str, weight: float, saturation: int) -> float:
    mentions = count_keyword_mentions(text, keyword)
    saturation = max(1, saturation)
    return min(mentions, saturation) / saturation * weight


def structure_score(text: str, weight: float) -> float:
    score = 0.0
    if _TOP_HEADING_RE.search(text):
        score += weight * TOP_HEADING_SHARE
    if _SUBHEADING_RE.search(text):
        score += weight * SUBHEADING_SHARE
    if _LIST_RE.search(text):
        score += weight * LIST_SHARE
    return score


def link_integration_score(text: str, request: ContentRequest, weight: float) -> float:
    """Full weight when the target URL or the anchor text appears literally."""
    if contains_url(text, request.target_url) or request.anchor.lower() in text.lower():
        return weight
    return 0.0


def readability_score(text: str, weight: float, threshold: float) -> float:
    """Full weight up to ``threshold`` words per sentence, inversely scaled beyond."""
    average = average_sentence_length(text)
    if average <= 0:
        return 0.0
    if average <= threshold:
        return weight
    return weight * threshold / average


def evaluate(
    text: str,
    request: ContentRequest,
    weights: Optional[ScoringWeights] = None,
) -> QualityBreakdown:
    """Score ``text`` against ``request`` and return the per-metric breakdown."""
    weights = weights or DEFAULT_WEIGHTS
    try:
        if not text or len(text.strip()) < weights.min_content_chars:
            return QualityBreakdown(rejection=ErrorKind.CONTENT_TOO_SHORT)

        normalized: Dict[str, float] = weights.normalized()
        breakdown = QualityBreakdown(
            length_fit=length_fit_score(count_words(text), request.word_count, normalized["length"]),
            keyword_presence=keyword_presence_score(
                text, request.keyword, normalized["keyword"], weights.keyword_saturation
            ),
            structure=structure_score(text, normalized["structure"]),
            link_integration=link_integration_score(text, request, normalized["link"]),
            readability=readability_score(text, normalized["readability"], weights.readability_threshold),
        )
        total = (
            breakdown.length_fit
            + breakdown.keyword_presence
            + breakdown.structure
            + breakdown.link_integration
            + breakdown.readability
        )
        breakdown.total = round(min(100.0, max(0.0, total)), 2)
        return breakdown
    except Exception:
        logger.exception("Quality scoring failed for '%s'", request.keyword)
        return QualityBreakdown()


def score(
    outcome: GenerationOutcome,
    request: ContentRequest,
    weights: Optional[ScoringWeights] = None,
) -> float:
    """Quality score in [0, 100]; failed outcomes score 0."""
    if not outcome.success:
        return 0.0
    return evaluate(outcome.text, request, weights).total
