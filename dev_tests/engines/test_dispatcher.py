"""
Tests for dispatcher.py - parallel fan-out to eligible providers.

Functions tested:
- Dispatcher.eligible_providers()
- Dispatcher.dispatch(): success, partial failure, per-provider timeout,
  overall deadline, empty eligible set, ledger bookkeeping
"""

import time
from unittest.mock import AsyncMock

import pytest

from dispatcher import Dispatcher
from models import DispatchStatus, ErrorKind
from provider_adapters import ProviderHTTPError


@pytest.fixture
def text(article):
    return article("espresso", "https://beans.example/shop", "fresh beans", 600)


@pytest.fixture
def make_dispatcher(make_ledger):
    def _factory(adapters, provider_timeout=0.5, deadline=2.0, ledger=None):
        ledger = ledger or make_ledger([adapter.descriptor for adapter in adapters])
        return Dispatcher(
            {adapter.name: adapter for adapter in adapters},
            ledger,
            provider_timeout=provider_timeout,
            deadline=deadline,
        )

    return _factory


class TestDispatch:
    @pytest.mark.asyncio
    async def test_all_providers_succeed(self, make_fake_adapter, make_dispatcher, text, espresso_request):
        """
        Given: Three configured providers that all answer
        Then: One outcome per provider, sorted by name, each with its own prompt style
        """
        adapters = [make_fake_adapter(name, script=[text]) for name in ("openai", "cohere", "grok")]
        dispatcher = make_dispatcher(adapters)

        report = await dispatcher.dispatch(espresso_request)

        assert report.status == DispatchStatus.COMPLETED
        assert report.dispatched == ["cohere", "grok", "openai"]
        assert len({outcome.prompt_style for outcome in report.outcomes}) == 3
        assert report.total_tokens == 3000
        assert report.total_cost == pytest.approx(0.003)
        for adapter in adapters:
            assert len(adapter.calls) == 1
        usage = dispatcher.ledger.snapshot()
        assert all(usage[name].success_count == 1 for name in ("openai", "cohere", "grok"))

    @pytest.mark.asyncio
    async def test_calls_run_concurrently(self, make_fake_adapter, make_dispatcher, text, espresso_request):
        adapters = [make_fake_adapter(name, script=[text], delay=0.2) for name in ("a", "b", "c", "d")]
        dispatcher = make_dispatcher(adapters, provider_timeout=2.0)
        started = time.perf_counter()
        report = await dispatcher.dispatch(espresso_request)
        assert report.status == DispatchStatus.COMPLETED
        assert time.perf_counter() - started < 0.7

    @pytest.mark.asyncio
    async def test_no_eligible_providers(self, make_fake_adapter, make_dispatcher, text, espresso_request):
        adapters = [make_fake_adapter(name, script=[text], api_key="") for name in ("openai", "grok")]
        dispatcher = make_dispatcher(adapters)

        report = await dispatcher.dispatch(espresso_request)

        assert report.status == DispatchStatus.ALL_PROVIDERS_FAILED
        assert report.outcomes == []
        assert all(adapter.calls == [] for adapter in adapters)

    @pytest.mark.asyncio
    async def test_partial_failure(self, make_fake_adapter, make_dispatcher, text, espresso_request):
        adapters = [
            make_fake_adapter("openai", script=[ProviderHTTPError(500, "internal server error")]),
            make_fake_adapter("grok", script=[text], delay=1.0),
            make_fake_adapter("cohere", script=[text]),
        ]
        dispatcher = make_dispatcher(adapters, provider_timeout=0.2)

        report = await dispatcher.dispatch(espresso_request)

        assert report.status == DispatchStatus.COMPLETED
        kinds = {outcome.provider: outcome.error_kind for outcome in report.outcomes}
        assert kinds == {"cohere": None, "grok": ErrorKind.TIMEOUT, "openai": ErrorKind.PROVIDER_ERROR}
        usage = dispatcher.ledger.snapshot()
        assert usage["openai"].consecutive_failures == 1
        assert usage["grok"].consecutive_failures == 1
        assert usage["cohere"].success_count == 1

    @pytest.mark.asyncio
    async def test_every_call_fails(self, make_fake_adapter, make_dispatcher, text, espresso_request):
        adapters = [make_fake_adapter(name, script=[""]) for name in ("openai", "grok")]
        report = await make_dispatcher(adapters).dispatch(espresso_request)
        assert report.status == DispatchStatus.ALL_PROVIDERS_FAILED
        assert [outcome.error_kind for outcome in report.outcomes] == [ErrorKind.EMPTY_RESPONSE] * 2

    @pytest.mark.asyncio
    async def test_overall_deadline_cancels_pending_calls(self, make_fake_adapter, make_dispatcher, text, espresso_request):
        adapters = [
            make_fake_adapter("fast", script=[text]),
            make_fake_adapter("stuck", script=[text], delay=5.0),
        ]
        dispatcher = make_dispatcher(adapters, provider_timeout=10.0, deadline=5.0)

        started = time.perf_counter()
        report = await dispatcher.dispatch(espresso_request, deadline=0.2)
        elapsed = time.perf_counter() - started

        assert elapsed < 2.0
        stuck = next(outcome for outcome in report.outcomes if outcome.provider == "stuck")
        assert stuck.error_kind == ErrorKind.TIMEOUT
        assert "deadline" in stuck.error_message
        assert dispatcher.ledger.snapshot()["stuck"].failure_count == 1

    @pytest.mark.asyncio
    async def test_adapter_exception_becomes_provider_error(self, make_fake_adapter, make_dispatcher, text, espresso_request):
        broken = make_fake_adapter("broken", script=[text])
        broken.generate = AsyncMock(side_effect=RuntimeError("adapter bug"))
        healthy = make_fake_adapter("healthy", script=[text])

        report = await make_dispatcher([broken, healthy]).dispatch(espresso_request)

        broken_outcome = report.outcomes[0]
        assert broken_outcome.provider == "broken"
        assert broken_outcome.error_kind == ErrorKind.PROVIDER_ERROR
        assert "adapter bug" in broken_outcome.error_message
        assert report.status == DispatchStatus.COMPLETED


class TestEligibility:
    @pytest.mark.asyncio
    async def test_streak_excludes_provider_from_later_dispatches(self, make_fake_adapter, make_dispatcher, text, espresso_request):
        flaky = make_fake_adapter("flaky", script=[ProviderHTTPError(502, "bad gateway")])
        steady = make_fake_adapter("steady", script=[text])
        dispatcher = make_dispatcher([flaky, steady])

        for _ in range(3):
            await dispatcher.dispatch(espresso_request)
        assert dispatcher.eligible_providers() == ["steady"]

        report = await dispatcher.dispatch(espresso_request)
        assert report.dispatched == ["steady"]
        assert len(flaky.calls) == 3

    def test_ledger_entries_without_adapter_are_ignored(self, make_fake_adapter, make_descriptor, make_ledger, make_dispatcher):
        adapter = make_fake_adapter("openai")
        ledger = make_ledger([adapter.descriptor, make_descriptor("orphan")])
        dispatcher = make_dispatcher([adapter], ledger=ledger)
        assert dispatcher.eligible_providers() == ["openai"]
