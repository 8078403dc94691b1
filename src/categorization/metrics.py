"""Prometheus metrics for categorization observability.

Metrics are exposed at the `/metrics` endpoint in Prometheus format.

Metrics Defined:
- categorizations_total: Counter of finished runs by provider and result
- categorization_failures_total: Counter of failed runs by failing stage
- diff_fetch_retries_total: Counter of diff fetches retried after auth failure
- installation_tokens_issued_total: Counter of installation tokens acquired
- categorization_duration_seconds: Histogram of run duration by provider

Source:
- src/categorization/orchestrator.py (run outcomes, retries)
- src/categorization/github/tokens.py (token acquisitions)
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


logger = logging.getLogger(__name__)


# Runs are dominated by one diff fetch and one model call
DEFAULT_DURATION_BUCKETS = (
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
    60.0,
    120.0,
)


# Stages a run can fail in after ai_status is set to processing
FAILURE_STAGES = (
    "diff_fetch",
    "generation",
    "parse",
    "resolution",
    "persistence",
)


class CategorizationMetrics:
    """Container for all categorization Prometheus metrics.

    Supports custom registries so tests do not collide on metric names in
    the process-wide default registry.

    Attributes:
        registry: The Prometheus registry for these metrics.

    Example:
        >>> metrics = CategorizationMetrics(registry=CollectorRegistry())
        >>> metrics.record_run("openai", success=True, duration_seconds=2.3)
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else REGISTRY

        self.categorizations_total = Counter(
            "categorizations_total",
            "Total number of categorization runs that reached a terminal state",
            labelnames=["provider", "result"],
            registry=self.registry,
        )

        self.categorization_failures_total = Counter(
            "categorization_failures_total",
            "Total number of categorization runs that failed, by stage",
            labelnames=["stage"],
            registry=self.registry,
        )

        self.diff_fetch_retries_total = Counter(
            "diff_fetch_retries_total",
            "Diff fetches retried with a fresh token after an auth failure",
            registry=self.registry,
        )

        self.installation_tokens_issued_total = Counter(
            "installation_tokens_issued_total",
            "Installation access tokens acquired from GitHub",
            registry=self.registry,
        )

        self.categorization_duration_seconds = Histogram(
            "categorization_duration_seconds",
            "Time spent categorizing a pull request in seconds",
            labelnames=["provider"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

    def record_run(self, provider: str, success: bool, duration_seconds: float) -> None:
        """Record a run that reached completed or error."""
        result = "completed" if success else "error"
        self.categorizations_total.labels(provider=provider, result=result).inc()
        self.categorization_duration_seconds.labels(provider=provider).observe(
            duration_seconds
        )

    def record_failure(self, stage: str) -> None:
        if stage not in FAILURE_STAGES:
            logger.warning("Unknown failure stage", extra={"stage": stage})
        self.categorization_failures_total.labels(stage=stage).inc()

    def record_diff_retry(self) -> None:
        self.diff_fetch_retries_total.inc()

    def record_token_issued(self) -> None:
        self.installation_tokens_issued_total.inc()

    def generate_output(self) -> bytes:
        """Render this registry in Prometheus text format."""
        return generate_latest(self.registry)
