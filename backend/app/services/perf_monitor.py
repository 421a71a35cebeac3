"""Performance monitoring utilities for summary generation and report calls."""
import time
import logging
import threading
import functools
from typing import Any, Callable, Dict

logger = logging.getLogger("locoman-api.perf")


def timed(func: Callable) -> Callable:
    """
    Decorator that measures and logs execution time for synchronous functions.

    Usage::

        @timed
        def my_function():
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            logger.debug(
                "function timed",
                extra={
                    "function": func.__qualname__,
                    "duration_ms": duration_ms,
                },
            )
    return wrapper


class PerformanceTracker:
    """
    Thread-safe in-memory tracker for service-level metrics.

    Tracks:
    - Summaries generated and their cumulative duration
    - Slowest summary run
    - Narrative reports generated and failed, per report kind
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._summaries_generated: int = 0
        self._total_summary_duration_ms: float = 0.0
        self._slowest_summary_ms: float = 0.0
        self._reports_generated: Dict[str, int] = {}
        self._report_errors: Dict[str, int] = {}

    # ------------------------------------------------------------------
    # Public write API
    # ------------------------------------------------------------------

    def record_summary(self, duration_ms: float) -> None:
        """Call once per successful summary generation."""
        with self._lock:
            self._summaries_generated += 1
            self._total_summary_duration_ms += duration_ms
            if duration_ms > self._slowest_summary_ms:
                self._slowest_summary_ms = duration_ms

    def record_report(self, kind: str) -> None:
        with self._lock:
            self._reports_generated[kind] = self._reports_generated.get(kind, 0) + 1

    def record_report_error(self, kind: str) -> None:
        """Increment the error counter for a given report kind."""
        with self._lock:
            self._report_errors[kind] = self._report_errors.get(kind, 0) + 1

    # ------------------------------------------------------------------
    # Public read API
    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """
        Return a snapshot of all collected metrics.

        Returns
        -------
        dict with keys:
            summaries_generated      : int
            avg_summary_duration_ms  : float  (0 if none generated)
            slowest_summary_ms       : float
            reports_generated        : dict  {kind: count}
            report_error_count       : int   (total across all kinds)
            report_errors_by_kind    : dict  {kind: count}
        """
        with self._lock:
            avg = (
                round(self._total_summary_duration_ms / self._summaries_generated, 2)
                if self._summaries_generated > 0
                else 0.0
            )
            return {
                "summaries_generated": self._summaries_generated,
                "avg_summary_duration_ms": avg,
                "slowest_summary_ms": round(self._slowest_summary_ms, 2),
                "reports_generated": dict(self._reports_generated),
                "report_error_count": sum(self._report_errors.values()),
                "report_errors_by_kind": dict(self._report_errors),
            }

    def reset(self) -> None:
        """Reset all counters (useful in tests)."""
        with self._lock:
            self._summaries_generated = 0
            self._total_summary_duration_ms = 0.0
            self._slowest_summary_ms = 0.0
            self._reports_generated.clear()
            self._report_errors.clear()


# Module-level singleton; import this instance everywhere else.
tracker = PerformanceTracker()
