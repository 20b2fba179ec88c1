from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    GCCollector,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

if TYPE_CHECKING:
    from .runner import CheckOutcome


LOGIN_DURATION_BUCKETS: tuple[float, ...] = (0.1, 0.5, 1, 2, 5)


class MetricsRegistry:
    """Per-target login metrics on a private CollectorRegistry.

    Metric children are label-scoped and their updates are atomic, so
    concurrent attempts (for different or the same target) can record
    without extra locking.
    """

    content_type = CONTENT_TYPE_LATEST

    def __init__(
        self,
        *,
        buckets: Sequence[float] = LOGIN_DURATION_BUCKETS,
        default_collectors: bool = True,
    ) -> None:
        self.registry = CollectorRegistry()
        self._default_collectors = []
        if default_collectors:
            self._default_collectors = [
                ProcessCollector(registry=self.registry),
                PlatformCollector(registry=self.registry),
                GCCollector(registry=self.registry),
            ]

        self.login_duration = Histogram(
            "app_login_duration_seconds",
            "Duration of login attempt in seconds",
            ["target"],
            buckets=tuple(buckets),
            registry=self.registry,
        )
        self.login_success = Counter(
            "app_login_success",
            "Total number of successful logins",
            ["target"],
            registry=self.registry,
        )
        self.login_failure = Counter(
            "app_login_failure",
            "Total number of failed logins",
            ["target"],
            registry=self.registry,
        )
        self.login_failure_reason = Counter(
            "app_login_failure_reason",
            "Failed logins by classified reason",
            ["target", "reason"],
            registry=self.registry,
        )

    def observe_login_duration(self, target: str, seconds: float) -> None:
        self.login_duration.labels(target=target).observe(seconds)

    def increment_login_success(self, target: str) -> None:
        self.login_success.labels(target=target).inc()

    def increment_login_failure(self, target: str, reason: str | None = None) -> None:
        self.login_failure.labels(target=target).inc()
        if reason:
            self.login_failure_reason.labels(target=target, reason=reason).inc()

    def record(self, outcome: "CheckOutcome") -> None:
        """Record one attempt: exactly one counter, duration only on success."""
        if outcome.ok:
            if outcome.duration_seconds is not None:
                self.observe_login_duration(outcome.target, outcome.duration_seconds)
            self.increment_login_success(outcome.target)
        else:
            self.increment_login_failure(outcome.target, outcome.failure_reason)

    def snapshot(self) -> str:
        return generate_latest(self.registry).decode("utf-8")

    def sample(self, name: str, labels: dict[str, str]) -> float | None:
        return self.registry.get_sample_value(name, labels)

    def close(self) -> None:
        for collector in (
            self.login_duration,
            self.login_success,
            self.login_failure,
            self.login_failure_reason,
            *self._default_collectors,
        ):
            try:
                self.registry.unregister(collector)
            except KeyError:
                pass
        self._default_collectors = []
