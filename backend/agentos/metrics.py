"""Prometheus metrics for integrations, scheduled tasks and chat persistence.

All collectors are registered here so the import side-effect happens exactly
once per process.  Routers and services ``from agentos.metrics import …`` and
increment.
"""

from __future__ import annotations

from prometheus_client import Counter
from prometheus_client import Histogram

integration_calls_total = Counter(
    "integration_calls_total",
    "Integration actions executed through the registry",
    labelnames=("tool", "action", "outcome"),
)

integration_http_latency_seconds = Histogram(
    "integration_http_latency_seconds",
    "Latency of outbound third-party API requests (seconds)",
    labelnames=("tool",),
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

scheduled_tasks_processed_total = Counter(
    "scheduled_tasks_processed_total",
    "Scheduled tasks executed by the task scheduler",
    labelnames=("outcome",),
)

task_claim_conflicts_total = Counter(
    "task_claim_conflicts_total",
    "Due tasks skipped because another worker claimed them first",
)

oauth_exchanges_total = Counter(
    "oauth_exchanges_total",
    "OAuth authorization-code exchanges and token refreshes",
    labelnames=("tool", "kind", "outcome"),
)

errors_logged_total = Counter(
    "errors_logged_total",
    "Error records written by the error handler",
    labelnames=("tool",),
)

chat_dead_letters_total = Counter(
    "chat_dead_letters_total",
    "Chat messages that could not be persisted after streaming",
)
