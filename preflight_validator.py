"""
Preflight readiness check for the content orchestrator.

Probes every provider before a batch of generation work and reports whether at
least one of them is reachable, still has quota and is not disabled in the
usage ledger. The check runs as a small
state machine: init -> checking_providers -> scored -> ready | blocked.
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from logging_utils import PhaseLogger

from models import PreflightReport, PreflightState, ProviderProbe
from provider_adapters import ProviderAdapter
from usage_tracking import UsageLedger

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT = 10.0

ALLOWED_TRANSITIONS = {
    PreflightState.INIT: {PreflightState.CHECKING_PROVIDERS},
    PreflightState.CHECKING_PROVIDERS: {PreflightState.SCORED},
    PreflightState.SCORED: {PreflightState.READY, PreflightState.BLOCKED},
    PreflightState.READY: set(),
    PreflightState.BLOCKED: set(),
}


class PreflightWorkflow:
    """
    One-shot readiness check. Instances are single use: ``run`` may only be
    called from the ``init`` state and terminal states are final.
    """

    def __init__(
        self,
        adapters: Dict[str, ProviderAdapter],
        ledger: UsageLedger,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
        phase_logger: Optional["PhaseLogger"] = None,
    ):
        self.adapters = adapters
        self.ledger = ledger
        self.probe_timeout = probe_timeout
        self.phase_logger = phase_logger
        self._state = PreflightState.INIT
        self._probes: List[ProviderProbe] = []

    @property
    def state(self) -> PreflightState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self._state]

    def _transition(self, target: PreflightState) -> None:
        if target not in ALLOWED_TRANSITIONS[self._state]:
            raise RuntimeError(f"Illegal preflight transition {self._state.value} -> {target.value}")
        logger.debug("Preflight %s -> %s", self._state.value, target.value)
        self._state = target

    async def _probe(self, name: str) -> ProviderProbe:
        adapter = self.adapters.get(name)
        if adapter is None or not adapter.configured():
            return ProviderProbe(provider=name, configured=False)

        started = time.perf_counter()
        try:
            connectable = await adapter.test_connection(self.probe_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Preflight probe for %s raised: %s", name, exc)
            connectable = False
        latency_ms = (time.perf_counter() - started) * 1000

        self.ledger.record_probe(name)
        return ProviderProbe(
            provider=name,
            configured=True,
            connectable=connectable,
            has_quota=self.ledger.has_quota(name),
            eligible=self.ledger.is_eligible(name),
            latency_ms=latency_ms,
        )

    async def run(self) -> PreflightReport:
        self._transition(PreflightState.CHECKING_PROVIDERS)

        names = sorted(set(self.adapters) | set(self.ledger.providers))
        self._probes = list(await asyncio.gather(*(self._probe(name) for name in names)))
        self._transition(PreflightState.SCORED)

        eligible = [probe.provider for probe in self._probes if probe.qualifies]
        self._transition(PreflightState.READY if eligible else PreflightState.BLOCKED)

        for probe in self._probes:
            status = "ok" if probe.qualifies else (
                "unconfigured" if not probe.configured else
                ("unreachable" if not probe.connectable else
                 ("no quota" if not probe.has_quota else "disabled"))
            )
            message = f"{probe.provider}: {status} ({probe.latency_ms:.0f}ms)"
            if self.phase_logger:
                self.phase_logger.info(message)
            else:
                logger.info("Preflight %s", message)

        return self.report()

    def report(self) -> PreflightReport:
        return PreflightReport(
            state=self._state,
            ready=self._state == PreflightState.READY,
            eligible_providers=[probe.provider for probe in self._probes if probe.qualifies],
            probes=list(self._probes),
        )


async def run_preflight(
    adapters: Dict[str, ProviderAdapter],
    ledger: UsageLedger,
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
    phase_logger: Optional["PhaseLogger"] = None,
) -> PreflightReport:
    """Run a fresh preflight workflow and return its report."""
    workflow = PreflightWorkflow(adapters, ledger, probe_timeout=probe_timeout, phase_logger=phase_logger)
    return await workflow.run()
