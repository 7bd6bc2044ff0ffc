"""
core/metrics.py -- Prometheus metrics for the session and subsequence services.

  auth_events_total{method,success}      -- one per SessionManager call
  dna_check_duration_seconds{success}    -- time spent in SubsequenceService.check

Both live in the default prometheus_client registry and are served by the
/metrics mount in api/main.py. Services take them as constructor arguments,
so tests can pass metrics bound to a private CollectorRegistry.

Layer rule: core/ is the kernel. No imports from api/, auth/, or dna/.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

AUTH_EVENTS = Counter(
    "auth_events",
    "Total number of auth events.",
    labelnames=("method", "success"),
)

DNA_CHECK_DURATION = Histogram(
    "dna_check_duration_seconds",
    "Time spent performing DNA subsequence checks.",
    labelnames=("success",),
)


def success_label(err: BaseException | None) -> str:
    return "true" if err is None else "false"


__all__ = [
    "AUTH_EVENTS",
    "DNA_CHECK_DURATION",
    "success_label",
]
