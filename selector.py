"""
Winner selection across provider outcomes.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from config import ScoringWeights, SelectionSettings
from models import ContentRequest, GenerationOutcome, ProviderDescriptor, ScoredOutcome
from quality_scorer import evaluate

logger = logging.getLogger(__name__)


@dataclass
class SelectionResult:
    winner: Optional[ScoredOutcome] = None
    ranking: List[ScoredOutcome] = field(default_factory=list)
    rejected: List[ScoredOutcome] = field(default_factory=list)

    @property
    def has_winner(self) -> bool:
        return self.winner is not None


def latency_bonus(latency_ms: float, settings: SelectionSettings) -> float:
    """
    Full bonus at or below ``latency_fast_ms``; above it the bonus shrinks in
    inverse proportion to latency. Rounded to one decimal so that jitter of a
    few milliseconds does not reorder candidates.
    """
    if settings.latency_bonus_max <= 0:
        return 0.0
    if latency_ms <= settings.latency_fast_ms:
        return settings.latency_bonus_max
    return round(settings.latency_bonus_max * settings.latency_fast_ms / latency_ms, 1)


class OutcomeSelector:
    """
    Scores successful outcomes and picks one deterministically.

    composite = quality + priority_weight * 100 + latency_bonus, ordered by
    composite desc, then priority weight desc, then provider name asc.
    """

    def __init__(
        self,
        descriptors: Sequence[ProviderDescriptor],
        weights: Optional[ScoringWeights] = None,
        settings: Optional[SelectionSettings] = None,
    ):
        self.provider_weights: Dict[str, float] = {d.name: d.priority_weight for d in descriptors}
        self.weights = weights or ScoringWeights()
        self.settings = settings or SelectionSettings()

    def select(self, outcomes: Sequence[GenerationOutcome], request: ContentRequest) -> SelectionResult:
        candidates: List[ScoredOutcome] = []
        rejected: List[ScoredOutcome] = []

        for outcome in outcomes:
            if not outcome.success:
                continue
            breakdown = evaluate(outcome.text, request, self.weights)
            weight = self.provider_weights.get(outcome.provider, 0.0)
            bonus = latency_bonus(outcome.latency_ms, self.settings)
            scored = ScoredOutcome(
                outcome=outcome,
                quality=breakdown,
                quality_score=breakdown.total,
                provider_weight=weight,
                latency_bonus=bonus,
                composite_score=round(breakdown.total + weight * 100 + bonus, 2),
            )
            if breakdown.total > 0:
                candidates.append(scored)
            else:
                rejected.append(scored)
                logger.info(
                    "Discarding %s output (%s)",
                    outcome.provider,
                    breakdown.rejection.value if breakdown.rejection else "zero score",
                )

        candidates.sort(key=lambda s: (-s.composite_score, -s.provider_weight, s.outcome.provider))
        for rank, scored in enumerate(candidates, start=1):
            scored.rank = rank

        if not candidates:
            return SelectionResult(rejected=rejected)

        winner = candidates[0]
        logger.info(
            "Selected %s (composite %.2f, quality %.2f)",
            winner.outcome.provider, winner.composite_score, winner.quality_score,
        )
        return SelectionResult(winner=winner, ranking=candidates, rejected=rejected)
