"""
Usage ledger for the content orchestrator.

Tracks per-provider token usage, cost, failure streaks and daily quota windows,
and decides which providers are eligible for the next dispatch. One ledger is
owned by each orchestrator instance and shared across its concurrent requests.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from models import ErrorKind, ProviderDescriptor, UsageSnapshot

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

DEFAULT_MAX_CONSECUTIVE_FAILURES = 3


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class UsageRecord:
    """Mutable per-provider state. Only the ledger touches it, under its lock."""

    provider: str
    configured: bool
    daily_token_quota: Optional[int]
    window_date: date
    total_tokens: int = 0
    total_cost: float = 0.0
    window_tokens: int = 0
    consecutive_failures: int = 0
    success_count: int = 0
    failure_count: int = 0
    disabled_reason: Optional[ErrorKind] = None
    last_success_at: Optional[datetime] = None
    last_tested_at: Optional[datetime] = None

    def quota_left(self) -> bool:
        if self.disabled_reason == ErrorKind.QUOTA_EXHAUSTED:
            return False
        if self.daily_token_quota is None:
            return True
        return self.window_tokens < self.daily_token_quota


class UsageLedger:
    """
    Per-provider usage bookkeeping and eligibility.

    A provider is eligible when it is configured, its failure streak is below
    ``max_consecutive_failures``, it still has quota in the current daily
    window, and it has not been disabled. The daily window is the UTC date of
    ``clock()``; it is checked lazily on every call and a new date clears
    window tokens, the failure streak and quota disablement. Auth failures
    disable a provider for the lifetime of the ledger.
    """

    def __init__(
        self,
        descriptors: Iterable[ProviderDescriptor],
        max_consecutive_failures: int = DEFAULT_MAX_CONSECUTIVE_FAILURES,
        clock: Optional[Clock] = None,
    ):
        self.max_consecutive_failures = max(1, max_consecutive_failures)
        self._clock: Clock = clock or utc_now
        self._lock = threading.Lock()
        today = self._today()
        self._records: Dict[str, UsageRecord] = {}
        for descriptor in descriptors:
            self._records[descriptor.name] = UsageRecord(
                provider=descriptor.name,
                configured=descriptor.has_credentials,
                daily_token_quota=descriptor.daily_token_quota,
                window_date=today,
            )

    # ------------------------------------------------------------------ #
    # Internal helpers (callers hold the lock)
    # ------------------------------------------------------------------ #

    def _today(self) -> date:
        now = self._clock()
        if now.tzinfo is not None:
            now = now.astimezone(timezone.utc)
        return now.date()

    def _roll_window(self, record: UsageRecord, today: date) -> None:
        if record.window_date == today:
            return
        logger.info(
            "Usage window for %s rolled over from %s to %s",
            record.provider, record.window_date, today,
        )
        record.window_date = today
        record.window_tokens = 0
        record.consecutive_failures = 0
        if record.disabled_reason == ErrorKind.QUOTA_EXHAUSTED:
            record.disabled_reason = None

    def _get(self, provider: str) -> UsageRecord:
        record = self._records.get(provider)
        if record is None:
            raise KeyError(f"Unknown provider '{provider}'")
        self._roll_window(record, self._today())
        return record

    def _eligible(self, record: UsageRecord) -> bool:
        return (
            record.configured
            and record.disabled_reason is None
            and record.consecutive_failures < self.max_consecutive_failures
            and record.quota_left()
        )

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    @property
    def providers(self) -> List[str]:
        return sorted(self._records)

    def is_configured(self, provider: str) -> bool:
        with self._lock:
            record = self._records.get(provider)
            return bool(record and record.configured)

    def is_eligible(self, provider: str) -> bool:
        with self._lock:
            if provider not in self._records:
                return False
            return self._eligible(self._get(provider))

    def eligible_providers(self) -> List[str]:
        """Names of all currently eligible providers, sorted by name."""
        with self._lock:
            return [name for name in sorted(self._records) if self._eligible(self._get(name))]

    def has_quota(self, provider: str) -> bool:
        with self._lock:
            if provider not in self._records:
                return False
            return self._get(provider).quota_left()

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #

    def record_success(self, provider: str, tokens: int, cost: float) -> None:
        """Reset the failure streak and add tokens/cost to cumulative and window totals."""
        tokens = max(0, int(tokens or 0))
        cost = max(0.0, float(cost or 0.0))
        with self._lock:
            record = self._get(provider)
            record.consecutive_failures = 0
            record.success_count += 1
            record.total_tokens += tokens
            record.total_cost += cost
            record.window_tokens += tokens
            record.last_success_at = self._clock()
            if record.daily_token_quota is not None and record.window_tokens >= record.daily_token_quota:
                logger.warning(
                    "Provider %s reached its daily token quota (%d/%d)",
                    provider, record.window_tokens, record.daily_token_quota,
                )

    def record_failure(self, provider: str, kind: ErrorKind) -> None:
        """
        Count one failure against ``provider``.

        ``provider_unconfigured`` is not a failure and leaves the record alone.
        ``auth_failed`` disables the provider permanently, ``quota_exhausted``
        until the next daily window.
        """
        if kind == ErrorKind.UNCONFIGURED:
            return

        with self._lock:
            record = self._get(provider)
            record.consecutive_failures += 1
            record.failure_count += 1

            if kind == ErrorKind.AUTH_FAILED:
                record.disabled_reason = ErrorKind.AUTH_FAILED
                logger.error("Provider %s disabled: authentication failed", provider)
            elif kind == ErrorKind.QUOTA_EXHAUSTED and record.disabled_reason is None:
                record.disabled_reason = ErrorKind.QUOTA_EXHAUSTED
                logger.warning("Provider %s disabled until next window: quota exhausted", provider)
            elif record.consecutive_failures == self.max_consecutive_failures:
                logger.warning(
                    "Provider %s ineligible after %d consecutive failures",
                    provider, record.consecutive_failures,
                )

    def record_probe(self, provider: str) -> None:
        """Note a connectivity probe. Only the last-tested timestamp changes."""
        with self._lock:
            self._get(provider).last_tested_at = self._clock()

    # ------------------------------------------------------------------ #
    # Reporting
    # ------------------------------------------------------------------ #

    def snapshot(self) -> Dict[str, UsageSnapshot]:
        with self._lock:
            result: Dict[str, UsageSnapshot] = {}
            for name in sorted(self._records):
                record = self._get(name)
                result[name] = UsageSnapshot(
                    provider=record.provider,
                    configured=record.configured,
                    eligible=self._eligible(record),
                    total_tokens=record.total_tokens,
                    total_cost=round(record.total_cost, 6),
                    window_date=record.window_date,
                    window_tokens=record.window_tokens,
                    daily_token_quota=record.daily_token_quota,
                    consecutive_failures=record.consecutive_failures,
                    success_count=record.success_count,
                    failure_count=record.failure_count,
                    disabled_reason=record.disabled_reason,
                    last_success_at=record.last_success_at,
                    last_tested_at=record.last_tested_at,
                )
            return result

    def render_text(self) -> str:
        """Human-readable usage table for CLI output."""
        lines = ["Provider usage:"]
        for name, snap in self.snapshot().items():
            quota = "unlimited" if snap.daily_token_quota is None else f"{snap.daily_token_quota:,}"
            status = "eligible" if snap.eligible else (
                snap.disabled_reason.value if snap.disabled_reason else
                ("unconfigured" if not snap.configured else "ineligible")
            )
            lines.append(
                f"  - {name}: {snap.total_tokens:,} tokens (${snap.total_cost:.4f}); "
                f"window {snap.window_tokens:,}/{quota}; streak {snap.consecutive_failures}; {status}"
            )
        return "\n".join(lines)
