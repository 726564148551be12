"""
Tests for selector.py - composite ranking and winner selection.

Functions tested:
- latency_bonus()
- OutcomeSelector.select()
"""

import pytest

from config import SelectionSettings
from models import ErrorKind, GenerationOutcome
from selector import OutcomeSelector, latency_bonus


def _outcome(provider, text, latency_ms=1000.0):
    return GenerationOutcome(provider=provider, success=True, text=text, latency_ms=latency_ms)


class TestLatencyBonus:
    @pytest.mark.parametrize(
        "latency_ms, expected",
        [(0, 5.0), (1500, 5.0), (2000, 5.0), (4000, 2.5), (10000, 1.0), (30000, 0.3)],
    )
    def test_bonus_curve(self, latency_ms, expected):
        assert latency_bonus(latency_ms, SelectionSettings()) == pytest.approx(expected)

    def test_disabled_bonus(self):
        assert latency_bonus(10, SelectionSettings(latency_bonus_max=0)) == 0.0

    def test_jitter_does_not_change_bonus(self):
        settings = SelectionSettings()
        assert latency_bonus(4000, settings) == latency_bonus(4003, settings)


class TestSelect:
    @pytest.fixture
    def descriptors(self, make_descriptor):
        return [
            make_descriptor("openai", weight=0.4),
            make_descriptor("grok", weight=0.35),
            make_descriptor("cohere", weight=0.25),
        ]

    def test_priority_weight_decides_equal_quality(self, descriptors, espresso_request, article):
        """
        Given: Identical text from every provider at the same latency
        Then: The highest priority weight wins and ranks are 1..n
        """
        text = article("espresso", "https://beans.example/shop", "fresh beans", 600)
        outcomes = [_outcome(name, text) for name in ("cohere", "grok", "openai")]
        result = OutcomeSelector(descriptors).select(outcomes, espresso_request)

        assert result.winner.outcome.provider == "openai"
        assert [s.outcome.provider for s in result.ranking] == ["openai", "grok", "cohere"]
        assert [s.rank for s in result.ranking] == [1, 2, 3]

    def test_quality_can_outweigh_priority(self, descriptors, espresso_request, article):
        good = article("espresso", "https://beans.example/shop", "fresh beans", 600)
        poor = "Espresso. " + "Filler words without structure or links go here. " * 10
        outcomes = [_outcome("openai", poor), _outcome("cohere", good)]
        result = OutcomeSelector(descriptors).select(outcomes, espresso_request)
        assert result.winner.outcome.provider == "cohere"

    def test_composite_formula(self, descriptors, espresso_request, article):
        text = article("espresso", "https://beans.example/shop", "fresh beans", 600)
        result = OutcomeSelector(descriptors).select([_outcome("grok", text, latency_ms=4000)], espresso_request)
        winner = result.winner
        assert winner.latency_bonus == pytest.approx(2.5)
        assert winner.provider_weight == pytest.approx(0.35)
        assert winner.composite_score == pytest.approx(round(winner.quality_score + 35 + 2.5, 2))

    def test_name_breaks_exact_ties(self, make_descriptor, espresso_request, article):
        descriptors = [make_descriptor("beta", weight=0.3), make_descriptor("alpha", weight=0.3)]
        text = article("espresso", "https://beans.example/shop", "fresh beans", 600)
        outcomes = [_outcome("beta", text), _outcome("alpha", text)]
        result = OutcomeSelector(descriptors).select(outcomes, espresso_request)
        assert result.winner.outcome.provider == "alpha"

    def test_failures_and_degenerate_outputs_are_excluded(self, descriptors, espresso_request, article):
        text = article("espresso", "https://beans.example/shop", "fresh beans", 600)
        outcomes = [
            GenerationOutcome.failure("openai", ErrorKind.TIMEOUT, "slow"),
            _outcome("grok", "Too short."),
            _outcome("cohere", text),
        ]
        result = OutcomeSelector(descriptors).select(outcomes, espresso_request)
        assert result.winner.outcome.provider == "cohere"
        assert [s.outcome.provider for s in result.ranking] == ["cohere"]
        assert [s.outcome.provider for s in result.rejected] == ["grok"]
        assert result.rejected[0].quality.rejection == ErrorKind.CONTENT_TOO_SHORT

    def test_no_winner_when_nothing_usable(self, descriptors, espresso_request):
        result = OutcomeSelector(descriptors).select(
            [GenerationOutcome.failure("openai", ErrorKind.PROVIDER_ERROR, "boom")], espresso_request
        )
        assert not result.has_winner
        assert result.ranking == []

    def test_selection_is_order_independent(self, descriptors, espresso_request, article):
        text = article("espresso", "https://beans.example/shop", "fresh beans", 600)
        outcomes = [_outcome("openai", text, 2500), _outcome("grok", text, 900), _outcome("cohere", text, 100)]
        selector = OutcomeSelector(descriptors)
        forward = selector.select(outcomes, espresso_request)
        backward = selector.select(list(reversed(outcomes)), espresso_request)
        assert [s.outcome.provider for s in forward.ranking] == [s.outcome.provider for s in backward.ranking]

    def test_unknown_provider_gets_zero_weight(self, descriptors, espresso_request, article):
        text = article("espresso", "https://beans.example/shop", "fresh beans", 600)
        result = OutcomeSelector(descriptors).select([_outcome("mystery", text)], espresso_request)
        assert result.winner.provider_weight == 0.0
