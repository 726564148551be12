"""
Content Orchestrator
====================

Top-level coordinator for one content request: moderation, optional
preflight, parallel dispatch, scoring and selection, enhancement of the winner
or template fallback, and metadata. Every request that passes moderation ends
in exactly one GenerationResult.
"""

import asyncio
import inspect
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Awaitable, Dict, Optional, Protocol, Union

from config import Config, config as default_config
from content_enhancer import ContentEnhancer
from dispatcher import DispatchReport, Dispatcher
from fallback_synthesizer import FallbackRenderer, MarkdownRenderer, synthesize_document
from logging_utils import Phase, PhaseLogger, create_phase_logger
from models import (
    ContentRequest,
    DispatchStatus,
    FALLBACK_PROVIDER_NAME,
    GenerationResult,
    PreflightReport,
    UsageSnapshot,
)
from preflight_validator import PreflightWorkflow
from provider_adapters import ProviderAdapter, build_adapters
from selector import OutcomeSelector, SelectionResult
from seo_metadata import build_metadata
from usage_tracking import Clock, UsageLedger
from word_count_utils import contains_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModerationVerdict:
    allowed: bool
    requires_review: bool = False
    reason: Optional[str] = None


class ModerationGate(Protocol):
    def moderate(self, text: str) -> Union[ModerationVerdict, Awaitable[ModerationVerdict]]:
        ...


class AllowAllModeration:
    """Default gate: lets every request through without review."""

    def moderate(self, text: str) -> ModerationVerdict:
        return ModerationVerdict(allowed=True)


class ModerationRejected(Exception):
    """Raised when the moderation gate blocks a request before dispatch."""

    def __init__(self, verdict: ModerationVerdict):
        super().__init__(verdict.reason or "Request rejected by content moderation")
        self.verdict = verdict


class FallbackSynthesisError(RuntimeError):
    """The template fallback produced text without the required backlink."""


class ContentOrchestrator:
    def __init__(
        self,
        adapters: Dict[str, ProviderAdapter],
        settings: Optional[Config] = None,
        ledger: Optional[UsageLedger] = None,
        moderation: Optional[ModerationGate] = None,
        enhancer: Optional[ContentEnhancer] = None,
        fallback_renderer: Optional[FallbackRenderer] = None,
        clock: Optional[Clock] = None,
        verbose: bool = False,
    ):
        self.settings = settings or default_config
        self.adapters = adapters
        descriptors = [adapter.descriptor for adapter in adapters.values()]
        self.ledger = ledger or UsageLedger(
            descriptors,
            max_consecutive_failures=self.settings.MAX_CONSECUTIVE_FAILURES,
            clock=clock,
        )
        self.moderation = moderation or AllowAllModeration()
        self.enhancer = enhancer or ContentEnhancer()
        self.fallback_renderer = fallback_renderer or MarkdownRenderer()
        self.verbose = verbose

        self.dispatcher = Dispatcher(
            adapters,
            self.ledger,
            provider_timeout=self.settings.PROVIDER_TIMEOUT_SECONDS,
            deadline=self.settings.DISPATCH_DEADLINE_SECONDS,
            temperature=self.settings.DEFAULT_TEMPERATURE,
            max_output_tokens=self.settings.MAX_OUTPUT_TOKENS,
        )
        self.selector = OutcomeSelector(descriptors, self.settings.SCORING, self.settings.SELECTION)

    @classmethod
    def from_config(
        cls,
        settings: Optional[Config] = None,
        moderation: Optional[ModerationGate] = None,
        **kwargs,
    ) -> "ContentOrchestrator":
        """Build adapters for every configured descriptor and wire them up."""
        settings = settings or default_config
        adapters = build_adapters(
            settings.PROVIDERS,
            max_attempts=settings.ADAPTER_MAX_ATTEMPTS,
            retry_delay=settings.RETRY_DELAY,
        )
        return cls(adapters, settings=settings, moderation=moderation, **kwargs)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def generate(
        self,
        request: ContentRequest,
        deadline: Optional[float] = None,
        preflight_first: Optional[bool] = None,
    ) -> GenerationResult:
        """
        Produce exactly one GenerationResult for ``request``.

        Raises:
            ModerationRejected: the moderation gate refused the request.
        """
        started = time.perf_counter()
        phase_logger = create_phase_logger(uuid.uuid4().hex[:8], verbose=self.verbose)

        with phase_logger.phase(Phase.MODERATION):
            verdict = await self._moderate(request)
            if not verdict.allowed:
                phase_logger.log_decision("REJECTED", reason=verdict.reason)
                raise ModerationRejected(verdict)
            phase_logger.log_decision("ALLOWED", reason="flagged for review" if verdict.requires_review else None)

        if preflight_first is None:
            preflight_first = self.settings.PREFLIGHT_BEFORE_GENERATE

        preflight_report: Optional[PreflightReport] = None
        if preflight_first:
            with phase_logger.phase(Phase.PREFLIGHT):
                preflight_report = await self._run_preflight(phase_logger)

        dispatch_report = DispatchReport(status=DispatchStatus.ALL_PROVIDERS_FAILED)
        selection = SelectionResult()
        content: Optional[str] = None

        if preflight_report is None or preflight_report.ready:
            try:
                with phase_logger.phase(Phase.DISPATCH, sub_label=request.keyword):
                    dispatch_report = await self.dispatcher.dispatch(request, deadline=deadline)
                    phase_logger.log_outcomes(dispatch_report.outcomes)

                with phase_logger.phase(Phase.SELECTION):
                    selection = self.selector.select(dispatch_report.outcomes, request)
                    if selection.winner:
                        phase_logger.log_decision(
                            "SELECTED",
                            score=selection.winner.composite_score,
                            reason=selection.winner.outcome.provider,
                        )
                    else:
                        phase_logger.log_decision("NO_WINNER", reason=dispatch_report.status.value)

                if selection.winner:
                    with phase_logger.phase(Phase.ENHANCEMENT):
                        content = self.enhancer.enhance(selection.winner.outcome.text, request)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Generation pipeline failed for '%s', using fallback", request.keyword)
                selection = SelectionResult()
                content = None
        else:
            phase_logger.log_decision("FALLBACK", reason="preflight blocked")

        if content is None:
            with phase_logger.phase(Phase.FALLBACK):
                content = self._synthesize_fallback(request)
            provider = FALLBACK_PROVIDER_NAME
        else:
            provider = selection.winner.outcome.provider

        with phase_logger.phase(Phase.COMPLETION):
            metadata = build_metadata(content, request)
            result = GenerationResult(
                content=content,
                provider=provider,
                is_fallback=provider == FALLBACK_PROVIDER_NAME,
                metadata=metadata,
                total_cost=round(dispatch_report.total_cost, 6),
                total_tokens=dispatch_report.total_tokens,
                processing_time_ms=round((time.perf_counter() - started) * 1000, 2),
                dispatch_status=dispatch_report.status,
                outcomes=dispatch_report.outcomes,
                ranking=selection.ranking,
                requires_review=verdict.requires_review,
                preflight=preflight_report,
            )
            phase_logger.info(
                f"{provider}: {metadata.word_count} words, SEO {metadata.seo_score}, "
                f"${result.total_cost:.4f}, {result.processing_time_ms:.0f}ms"
            )
        phase_logger.log_timing_summary()
        return result

    def generate_sync(self, request: ContentRequest, **kwargs) -> GenerationResult:
        """Blocking wrapper around ``generate`` for scripts and CLIs."""
        return asyncio.run(self.generate(request, **kwargs))

    async def preflight(self) -> PreflightReport:
        return await self._run_preflight(None)

    def get_usage_report(self) -> Dict[str, UsageSnapshot]:
        return self.ledger.snapshot()

    async def close(self) -> None:
        for name, adapter in self.adapters.items():
            try:
                await adapter.close()
            except Exception as exc:
                logger.warning("Error closing adapter %s: %s", name, exc)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    async def _moderate(self, request: ContentRequest) -> ModerationVerdict:
        verdict = self.moderation.moderate(request.moderation_text())
        if inspect.isawaitable(verdict):
            verdict = await verdict
        return verdict

    async def _run_preflight(self, phase_logger: Optional[PhaseLogger]) -> PreflightReport:
        workflow = PreflightWorkflow(
            self.adapters,
            self.ledger,
            probe_timeout=self.settings.PREFLIGHT_TIMEOUT_SECONDS,
            phase_logger=phase_logger,
        )
        report = await workflow.run()
        if phase_logger:
            phase_logger.log_decision(
                "READY" if report.ready else "BLOCKED",
                reason=", ".join(report.eligible_providers) or "no provider qualifies",
            )
        return report

    def _synthesize_fallback(self, request: ContentRequest) -> str:
        document = synthesize_document(request)
        text = self.fallback_renderer.render(document)
        if not contains_url(text, request.target_url):
            raise FallbackSynthesisError(
                f"Fallback renderer {type(self.fallback_renderer).__name__} dropped the link to {request.target_url}"
            )
        return text
