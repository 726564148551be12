"""
Tests for models.py - request and provider data models.

Functions tested:
- ContentRequest validation (URL, anchor default, bounds, immutability)
- ContentRequest.moderation_text()
- ProviderDescriptor secret handling
- GenerationOutcome.failure()
- ProviderProbe.qualifies
"""

import pytest
from pydantic import ValidationError

from models import (
    ContentRequest,
    ContentType,
    ErrorKind,
    GenerationOutcome,
    ProviderDescriptor,
    ProviderKind,
    ProviderProbe,
    SEOFocus,
    Tone,
)


class TestContentRequest:
    def test_defaults(self):
        """
        Given: Only keyword and URL
        Then: Anchor text falls back to the keyword and defaults apply
        """
        request = ContentRequest(keyword="espresso", target_url="https://beans.example")
        assert request.anchor_text == "espresso"
        assert request.anchor == "espresso"
        assert request.word_count == 1500
        assert request.tone == Tone.PROFESSIONAL
        assert request.seo_focus == SEOFocus.HIGH
        assert request.content_type == ContentType.HOW_TO

    def test_blank_anchor_defaults_to_keyword(self):
        request = ContentRequest(keyword="espresso", target_url="https://beans.example", anchor_text="   ")
        assert request.anchor == "espresso"

    def test_whitespace_is_normalized(self):
        request = ContentRequest(keyword="  cold   brew ", target_url=" https://beans.example/x ")
        assert request.keyword == "cold brew"
        assert request.target_url == "https://beans.example/x"

    @pytest.mark.parametrize(
        "url",
        ["beans.example", "ftp://beans.example", "https://", "not a url", "/relative/path", "https://bad host.example"],
    )
    def test_rejects_non_absolute_http_urls(self, url):
        with pytest.raises(ValidationError):
            ContentRequest(keyword="espresso", target_url=url)

    @pytest.mark.parametrize("word_count", [99, 5001, 0, -5])
    def test_rejects_out_of_range_word_count(self, word_count):
        with pytest.raises(ValidationError):
            ContentRequest(keyword="espresso", target_url="https://beans.example", word_count=word_count)

    def test_rejects_blank_keyword(self):
        with pytest.raises(ValidationError):
            ContentRequest(keyword="   ", target_url="https://beans.example")

    def test_rejects_unknown_tone(self):
        with pytest.raises(ValidationError):
            ContentRequest(keyword="espresso", target_url="https://beans.example", tone="convincing")

    def test_is_immutable(self):
        request = ContentRequest(keyword="espresso", target_url="https://beans.example")
        with pytest.raises(ValidationError):
            request.keyword = "tea"

    def test_moderation_text_contains_raw_fields(self):
        request = ContentRequest(
            keyword="espresso",
            target_url="https://beans.example",
            anchor_text="fresh beans",
            industry="coffee",
        )
        text = request.moderation_text()
        for part in ("espresso", "fresh beans", "https://beans.example", "coffee"):
            assert part in text


class TestProviderDescriptor:
    def test_api_key_is_hidden(self):
        """
        Given: A descriptor with a secret key
        Then: The key never appears in dumps or repr
        """
        descriptor = ProviderDescriptor(
            name="openai", kind=ProviderKind.OPENAI, model="gpt-4o-mini", api_key="sk-secret"
        )
        assert descriptor.has_credentials
        assert "api_key" not in descriptor.model_dump()
        assert "sk-secret" not in repr(descriptor)

    def test_missing_key_means_no_credentials(self):
        descriptor = ProviderDescriptor(name="cohere", kind="cohere", model="command-r")
        assert not descriptor.has_credentials
        assert descriptor.kind == ProviderKind.COHERE

    def test_weight_bounds(self):
        with pytest.raises(ValidationError):
            ProviderDescriptor(name="x", kind="openai", model="m", priority_weight=1.5)

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            ProviderDescriptor(name="x", kind="mistral", model="m")


class TestOutcomesAndProbes:
    def test_failure_factory(self):
        outcome = GenerationOutcome.failure("grok", ErrorKind.TIMEOUT, "slow", latency_ms=30000)
        assert not outcome.success
        assert outcome.text == ""
        assert outcome.error_kind == ErrorKind.TIMEOUT
        assert outcome.latency_ms == 30000

    @pytest.mark.parametrize(
        "configured, connectable, has_quota, eligible, expected",
        [
            (True, True, True, True, True),
            (True, False, True, True, False),
            (True, True, False, True, False),
            (False, True, True, True, False),
            (True, True, True, False, False),
        ],
    )
    def test_probe_qualifies(self, configured, connectable, has_quota, eligible, expected):
        probe = ProviderProbe(
            provider="openai",
            configured=configured,
            connectable=connectable,
            has_quota=has_quota,
            eligible=eligible,
        )
        assert probe.qualifies is expected
