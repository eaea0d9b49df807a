# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Prometheus metrics for the resume mailer.

All metrics use the ``rm_`` prefix.

Metrics exposed:
    - ``rm_sent_total``: Resumes sent, per strategy.
    - ``rm_errors_total``: Dispatch failures, per error code.
    - ``rm_rate_limited_total``: Requests rejected by the rate limiter.
    - ``rm_rejected_total``: Requests rejected by validation, per reason.
    - ``rm_tracked_clients``: Clients currently held by the rate limiter.

Example:
    Scraping::

        GET /api/metrics
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest


class ResumeMetrics:
    """Prometheus collector for dispatch outcomes and rate limiting.

    Attributes:
        registry: The CollectorRegistry holding all metrics.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()
        self.sent = Counter(
            "rm_sent_total",
            "Total resumes sent",
            ["strategy"],
            registry=self.registry,
        )
        self.errors = Counter(
            "rm_errors_total",
            "Total dispatch errors",
            ["code"],
            registry=self.registry,
        )
        self.rate_limited = Counter(
            "rm_rate_limited_total",
            "Total requests rejected by the rate limiter",
            registry=self.registry,
        )
        self.rejected = Counter(
            "rm_rejected_total",
            "Total requests rejected by email validation",
            ["reason"],
            registry=self.registry,
        )
        self.tracked_clients = Gauge(
            "rm_tracked_clients",
            "Clients currently tracked by the rate limiter",
            registry=self.registry,
        )

    def inc_sent(self, strategy: str) -> None:
        self.sent.labels(strategy=strategy or "unknown").inc()

    def inc_error(self, code: str) -> None:
        self.errors.labels(code=code or "unknown").inc()

    def inc_rate_limited(self) -> None:
        self.rate_limited.inc()

    def inc_rejected(self, reason: str) -> None:
        self.rejected.labels(reason=reason or "unknown").inc()

    def set_tracked_clients(self, count: int) -> None:
        self.tracked_clients.set(count)

    def generate_latest(self) -> bytes:
        return generate_latest(self.registry)
