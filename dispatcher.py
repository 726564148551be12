"""
Parallel provider dispatch.

Fans one request out to every eligible provider concurrently, enforces the
per-provider timeout and the caller's overall deadline, and records every
outcome in the usage ledger once all calls have settled.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from models import ContentRequest, DispatchStatus, ErrorKind, GenerationOutcome
from prompt_builder import DEFAULT_TEMPERATURE, MAX_OUTPUT_TOKENS, build_generation_options, build_prompt_variants
from provider_adapters import ProviderAdapter
from usage_tracking import UsageLedger

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_TIMEOUT = 30.0
DEFAULT_DISPATCH_DEADLINE = 60.0


@dataclass
class DispatchReport:
    status: DispatchStatus
    outcomes: List[GenerationOutcome] = field(default_factory=list)

    @property
    def dispatched(self) -> List[str]:
        return [outcome.provider for outcome in self.outcomes]

    @property
    def successful(self) -> List[GenerationOutcome]:
        return [outcome for outcome in self.outcomes if outcome.success]

    @property
    def total_cost(self) -> float:
        return sum(outcome.cost for outcome in self.outcomes)

    @property
    def total_tokens(self) -> int:
        return sum(outcome.total_tokens for outcome in self.outcomes)


class Dispatcher:
    """Runs one generation call per eligible provider and collects the outcomes."""

    def __init__(
        self,
        adapters: Dict[str, ProviderAdapter],
        ledger: UsageLedger,
        provider_timeout: float = DEFAULT_PROVIDER_TIMEOUT,
        deadline: float = DEFAULT_DISPATCH_DEADLINE,
        temperature: float = DEFAULT_TEMPERATURE,
        max_output_tokens: int = MAX_OUTPUT_TOKENS,
    ):
        self.adapters = adapters
        self.ledger = ledger
        self.provider_timeout = provider_timeout
        self.deadline = deadline
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    def eligible_providers(self) -> List[str]:
        return [name for name in self.ledger.eligible_providers() if name in self.adapters]

    async def dispatch(self, request: ContentRequest, deadline: Optional[float] = None) -> DispatchReport:
        """
        Dispatch ``request`` to all eligible providers.

        Returns ``ALL_PROVIDERS_FAILED`` immediately when nobody is eligible,
        and also when every dispatched call failed. Calls still running at
        the deadline are cancelled and reported as timeouts. Outcomes are
        sorted by provider name.
        """
        eligible = self.eligible_providers()
        if not eligible:
            logger.warning("No eligible providers for '%s'", request.keyword)
            return DispatchReport(status=DispatchStatus.ALL_PROVIDERS_FAILED)

        overall_deadline = self.deadline if deadline is None else deadline
        variants = build_prompt_variants(request, len(eligible))

        tasks: Dict[str, asyncio.Task] = {}
        styles: Dict[str, str] = {}
        for name, variant in zip(eligible, variants):
            adapter = self.adapters[name]
            options = build_generation_options(
                request,
                adapter.descriptor,
                temperature=self.temperature,
                max_output_tokens=self.max_output_tokens,
            )
            styles[name] = variant.style
            tasks[name] = asyncio.create_task(
                adapter.generate(variant.text, options, self.provider_timeout, prompt_style=variant.style),
                name=f"generate:{name}",
            )

        logger.info("Dispatching '%s' to %d providers: %s", request.keyword, len(tasks), ", ".join(eligible))
        done, pending = await asyncio.wait(tasks.values(), timeout=overall_deadline)

        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        outcomes: List[GenerationOutcome] = []
        for name in sorted(tasks):
            task = tasks[name]
            if task in done:
                outcomes.append(self._collect(name, task, styles[name]))
            else:
                logger.warning("Provider %s cancelled at dispatch deadline (%.1fs)", name, overall_deadline)
                outcomes.append(
                    GenerationOutcome.failure(
                        name,
                        ErrorKind.TIMEOUT,
                        f"Cancelled at dispatch deadline ({overall_deadline:.1f}s)",
                        latency_ms=overall_deadline * 1000,
                        prompt_style=styles[name],
                    )
                )

        # Ledger writes happen only after every call has settled
        for outcome in outcomes:
            if outcome.success:
                self.ledger.record_success(outcome.provider, outcome.total_tokens, outcome.cost)
            else:
                self.ledger.record_failure(outcome.provider, outcome.error_kind or ErrorKind.PROVIDER_ERROR)

        status = (
            DispatchStatus.COMPLETED
            if any(outcome.success for outcome in outcomes)
            else DispatchStatus.ALL_PROVIDERS_FAILED
        )
        return DispatchReport(status=status, outcomes=outcomes)

    @staticmethod
    def _collect(name: str, task: asyncio.Task, style: str) -> GenerationOutcome:
        try:
            return task.result()
        except asyncio.CancelledError:
            return GenerationOutcome.failure(name, ErrorKind.TIMEOUT, "Generation cancelled", prompt_style=style)
        except Exception as exc:
            # Adapters should not raise; keep the dispatch alive if one does
            logger.exception("Adapter %s raised during generation", name)
            return GenerationOutcome.failure(name, ErrorKind.PROVIDER_ERROR, str(exc), prompt_style=style)
