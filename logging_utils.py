"""
Phase Logging for the Content Orchestrator
==========================================

Colored, structured console logging with per-phase timing for one generation
request. No emojis in console output (Windows encoding issues).
"""

import logging
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Optional

from colorama import Fore, Style, init

from models import GenerationOutcome

# Initialize colorama for Windows
init(autoreset=True)


class Phase:
    """Phase constants for the orchestration pipeline"""
    PREFLIGHT = "PREFLIGHT"
    MODERATION = "MODERATION"
    DISPATCH = "PROVIDER_DISPATCH"
    SELECTION = "SELECTION"
    ENHANCEMENT = "ENHANCEMENT"
    FALLBACK = "FALLBACK_SYNTHESIS"
    COMPLETION = "COMPLETION"


PHASE_COLORS = {
    Phase.PREFLIGHT: Fore.CYAN,
    Phase.MODERATION: Fore.WHITE,
    Phase.DISPATCH: Fore.GREEN,
    Phase.SELECTION: Fore.BLUE,
    Phase.ENHANCEMENT: Fore.MAGENTA,
    Phase.FALLBACK: Fore.YELLOW,
    Phase.COMPLETION: Fore.GREEN + Style.BRIGHT,
}

PHASE_ICONS = {
    Phase.PREFLIGHT: "[PRE]",
    Phase.MODERATION: "[MOD]",
    Phase.DISPATCH: "[GEN]",
    Phase.SELECTION: "[SEL]",
    Phase.ENHANCEMENT: "[ENH]",
    Phase.FALLBACK: "[FBK]",
    Phase.COMPLETION: "[OK ]",
}

SEPARATOR_WIDTH = 60


class TimingTracker:
    """Wall-clock timings keyed by phase"""

    def __init__(self):
        self._timings: Dict[str, float] = {}
        self._start_times: Dict[str, float] = {}

    def start(self, key: str):
        self._start_times[key] = time.perf_counter()

    def end(self, key: str) -> float:
        """Stop the timer for ``key`` and return the elapsed seconds (0.0 if never started)."""
        started = self._start_times.pop(key, None)
        if started is None:
            return 0.0
        elapsed = time.perf_counter() - started
        self._timings[key] = self._timings.get(key, 0.0) + elapsed
        return elapsed

    def get(self, key: str) -> Optional[float]:
        return self._timings.get(key)

    def get_all(self) -> Dict[str, float]:
        return self._timings.copy()


class PhaseLogger:
    """
    Logger bound to one request with phase tracking and visual formatting

    Usage:
        phase_logger = PhaseLogger(request_id="3f2a9c1d")

        with phase_logger.phase(Phase.DISPATCH, sub_label="3 providers"):
            ...
            phase_logger.log_outcomes(report.outcomes)
    """

    def __init__(
        self,
        request_id: str,
        verbose: bool = False,
        logger: Optional[logging.Logger] = None
    ):
        self.request_id = request_id
        self.verbose = verbose
        self.logger = logger or logging.getLogger(__name__)
        self.timing_tracker = TimingTracker()
        self._current_phase: Optional[str] = None
        self._phase_stack: List[Optional[str]] = []

    @contextmanager
    def phase(self, phase_name: str, sub_label: Optional[str] = None):
        """Context manager that prints a header/footer and times the enclosed block."""
        self._phase_stack.append(self._current_phase)
        self._current_phase = phase_name
        self.timing_tracker.start(phase_name)
        self._print_phase_header(phase_name, sub_label)
        try:
            yield self
        finally:
            elapsed = self.timing_tracker.end(phase_name)
            self._print_phase_footer(phase_name, elapsed)
            self._current_phase = self._phase_stack.pop() if self._phase_stack else None

    def _print_phase_header(self, phase_name: str, sub_label: Optional[str] = None):
        color = PHASE_COLORS.get(phase_name, Fore.WHITE)
        icon = PHASE_ICONS.get(phase_name, "[???]")
        timestamp = datetime.now().strftime("%H:%M:%S")
        sub_str = f" - {sub_label}" if sub_label else ""

        self.logger.info(f"{color}{'=' * SEPARATOR_WIDTH}{Style.RESET_ALL}")
        self.logger.info(
            f"{color}{icon} {phase_name}{sub_str} [req {self.request_id}] [{timestamp}]{Style.RESET_ALL}"
        )

    def _print_phase_footer(self, phase_name: str, elapsed: float):
        color = PHASE_COLORS.get(phase_name, Fore.WHITE)
        icon = PHASE_ICONS.get(phase_name, "[???]")
        self.logger.info(
            f"{color}{icon} {phase_name} done in {elapsed:.2f}s{Style.RESET_ALL}"
        )
        self.logger.info(f"{color}{'-' * SEPARATOR_WIDTH}{Style.RESET_ALL}")

    def info(self, message: str):
        if self._current_phase:
            color = PHASE_COLORS.get(self._current_phase, Fore.WHITE)
            icon = PHASE_ICONS.get(self._current_phase, "[???]")
            self.logger.info(f"{color}{icon}{Style.RESET_ALL} {message}")
        else:
            self.logger.info(message)

    def debug(self, message: str):
        if self.verbose:
            self.logger.debug(f"{Fore.WHITE}{Style.DIM}{message}{Style.RESET_ALL}")

    def warning(self, message: str):
        self.logger.warning(f"{Fore.YELLOW}[WARN] {message}{Style.RESET_ALL}")

    def error(self, message: str):
        self.logger.error(f"{Fore.RED}{Style.BRIGHT}[ERROR] {message}{Style.RESET_ALL}")

    def log_outcome(self, outcome: GenerationOutcome):
        """One line per provider call: success with tokens/latency, or the error kind."""
        if outcome.success:
            self.logger.info(
                f"{Fore.GREEN}[+] {outcome.provider}: {outcome.total_tokens} tokens, "
                f"{outcome.latency_ms:.0f}ms, ${outcome.cost:.4f}{Style.RESET_ALL}"
            )
            return

        kind = outcome.error_kind.value if outcome.error_kind else "unknown"
        self.logger.info(
            f"{Fore.RED}[-] {outcome.provider}: {kind} ({outcome.latency_ms:.0f}ms){Style.RESET_ALL}"
        )
        if outcome.error_message and self.verbose:
            message = outcome.error_message
            if len(message) > 200:
                message = message[:200] + "..."
            self.logger.info(f"  Error: {message}")

    def log_outcomes(self, outcomes: List[GenerationOutcome]):
        for outcome in outcomes:
            self.log_outcome(outcome)

    def log_decision(
        self,
        decision: str,
        score: Optional[float] = None,
        reason: Optional[str] = None
    ):
        """
        Log a pipeline decision.

        Args:
            decision: Decision text (e.g., "SELECTED", "FALLBACK")
            score: Optional composite score
            reason: Optional reason
        """
        if decision.upper() in ("SELECTED", "READY", "ALLOWED"):
            color = Fore.GREEN + Style.BRIGHT
            icon = "[OK]"
        else:
            color = Fore.YELLOW + Style.BRIGHT
            icon = "[!!]"

        score_str = f" (Score: {score:.1f})" if score is not None else ""
        self.logger.info(f"{color}{icon} DECISION: {decision}{score_str}{Style.RESET_ALL}")
        if reason:
            self.logger.info(f"  Reason: {reason}")

    def log_timing_summary(self):
        """Log per-phase timings (only if verbose)"""
        if not self.verbose:
            return

        timings = self.timing_tracker.get_all()
        if not timings:
            return

        total_time = 0.0
        self.logger.info(f"{Fore.WHITE}{Style.BRIGHT}TIMING SUMMARY [req {self.request_id}]{Style.RESET_ALL}")
        for phase_name, elapsed in sorted(timings.items()):
            color = PHASE_COLORS.get(phase_name, Fore.WHITE)
            self.logger.info(f"{color}{phase_name:24s} {elapsed:8.2f}s{Style.RESET_ALL}")
            total_time += elapsed
        self.logger.info(f"{Fore.WHITE}{Style.BRIGHT}TOTAL: {total_time:.2f}s{Style.RESET_ALL}")


def create_phase_logger(request_id: str, verbose: bool = False) -> PhaseLogger:
    """Create a new PhaseLogger instance"""
    return PhaseLogger(request_id=request_id, verbose=verbose)
