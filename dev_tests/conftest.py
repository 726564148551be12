"""Shared pytest fixtures for the content orchestrator tests."""

import asyncio
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Sequence, Union

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config, ScoringWeights, SelectionSettings
from content_orchestrator import ContentOrchestrator
from models import ContentRequest, GenerationOptions, ProviderDescriptor, ProviderKind
from provider_adapters import ProviderAdapter
from usage_tracking import UsageLedger


# ============================================================================
# Fake provider
# ============================================================================

ScriptStep = Union[str, BaseException]


class FakeAdapter(ProviderAdapter):
    """
    Scripted adapter. Each generate call consumes the next script step (the
    last step repeats): a string is returned as the completion, an exception
    is raised from the backend call.
    """

    kind = ProviderKind.OPENAI

    def __init__(
        self,
        descriptor: ProviderDescriptor,
        script: Sequence[ScriptStep] = (),
        delay: float = 0.0,
        ping_ok: bool = True,
        max_attempts: int = 1,
        retry_delay: float = 0.0,
    ):
        super().__init__(descriptor, max_attempts=max_attempts, retry_delay=retry_delay)
        self.script: List[ScriptStep] = list(script)
        self.delay = delay
        self.ping_ok = ping_ok
        self.calls: List[tuple] = []
        self.closed = False

    async def _complete(self, prompt: str, options: GenerationOptions):
        self.calls.append((prompt, options))
        if self.delay:
            await asyncio.sleep(self.delay)
        step: ScriptStep = ""
        if self.script:
            step = self.script[min(len(self.calls) - 1, len(self.script) - 1)]
        if isinstance(step, BaseException):
            raise step
        return step, {"input_tokens": 200, "output_tokens": 800}

    async def _ping(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.ping_ok:
            raise ConnectionError("connection refused")

    async def close(self) -> None:
        self.closed = True


class FrozenClock:
    """Injectable UTC clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now = self.now + timedelta(**kwargs)


# ============================================================================
# Content helpers
# ============================================================================

def build_article(
    keyword: str,
    target_url: str,
    anchor: str,
    words: int,
    include_link: bool = True,
    include_heading: bool = True,
) -> str:
    """Well-formed Markdown article of roughly ``words`` words."""
    from word_count_utils import count_words

    blocks = []
    if include_heading:
        blocks.append(f"# The Practical {keyword.title()} Handbook")
    blocks.append(f"## Why {keyword} matters")
    blocks.append("- Start small\n- Measure results\n- Keep notes")
    if include_link:
        blocks.append(f"You can find more help from [{anchor}]({target_url}) today.")

    sentence = f"Good {keyword} habits help readers improve their results every single week. "
    while count_words("\n\n".join(blocks)) < words:
        blocks.insert(-1 if include_link else len(blocks), sentence * 3)
    return "\n\n".join(blocks)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def espresso_request():
    return ContentRequest(
        keyword="espresso",
        target_url="https://beans.example/shop",
        anchor_text="fresh beans",
        word_count=600,
    )


@pytest.fixture
def make_descriptor():
    def _factory(
        name: str,
        weight: float = 0.3,
        api_key: str = "test-key",
        quota: Optional[int] = None,
        cost: float = 0.001,
        kind: ProviderKind = ProviderKind.OPENAI,
    ) -> ProviderDescriptor:
        return ProviderDescriptor(
            name=name,
            kind=kind,
            model=f"{name}-model",
            priority_weight=weight,
            cost_per_1k_tokens=cost,
            daily_token_quota=quota,
            api_key=api_key,
            api_key_env=f"{name.upper()}_API_KEY",
        )

    return _factory


@pytest.fixture
def make_fake_adapter(make_descriptor):
    def _factory(
        name: str,
        script: Sequence[ScriptStep] = (),
        weight: float = 0.3,
        delay: float = 0.0,
        ping_ok: bool = True,
        api_key: str = "test-key",
        quota: Optional[int] = None,
        max_attempts: int = 1,
    ) -> FakeAdapter:
        descriptor = make_descriptor(name, weight=weight, api_key=api_key, quota=quota)
        return FakeAdapter(descriptor, script=script, delay=delay, ping_ok=ping_ok, max_attempts=max_attempts)

    return _factory


@pytest.fixture
def frozen_clock():
    return FrozenClock()


@pytest.fixture
def article():
    return build_article


@pytest.fixture
def fast_settings():
    """Settings with short timeouts so timeout paths run quickly."""
    return Config(
        PROVIDERS=[],
        SCORING=ScoringWeights(),
        SELECTION=SelectionSettings(),
        PROVIDER_TIMEOUT_SECONDS=0.5,
        DISPATCH_DEADLINE_SECONDS=2.0,
        PREFLIGHT_TIMEOUT_SECONDS=0.5,
        MAX_CONSECUTIVE_FAILURES=3,
        ADAPTER_MAX_ATTEMPTS=1,
        RETRY_DELAY=0.0,
    )


@pytest.fixture
def make_orchestrator(fast_settings, frozen_clock):
    def _factory(adapters: Sequence[FakeAdapter], **kwargs) -> ContentOrchestrator:
        settings = kwargs.pop("settings", fast_settings)
        clock = kwargs.pop("clock", frozen_clock)
        return ContentOrchestrator(
            {adapter.name: adapter for adapter in adapters},
            settings=settings,
            clock=clock,
            **kwargs,
        )

    return _factory


@pytest.fixture
def make_ledger(frozen_clock):
    def _factory(descriptors: Sequence[ProviderDescriptor], max_failures: int = 3) -> UsageLedger:
        return UsageLedger(descriptors, max_consecutive_failures=max_failures, clock=frozen_clock)

    return _factory
