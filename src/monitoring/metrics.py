"""
Prometheus self-metrics for the broker exporter.

These describe the exporter's own behaviour (poll counts, failures,
durations) and are served on the same /metrics page as the broker metrics.
They live on an explicitly constructed ``CollectorRegistry`` instead of the
prometheus_client global registry.

Usage:
    prom_registry = CollectorRegistry()
    metrics = ExporterMetrics(prom_registry)

    metrics.inc_polls("rabbit-a")
    metrics.observe_poll_duration("rabbit-a", 0.12)
"""
import time
from typing import Optional

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    Info,
    CollectorRegistry,
)

from src.common.logging_config import get_logger

logger = get_logger(__name__)

PREFIX = "broker_exporter"

FAILURE_REASONS = ("fetch", "decode", "unexpected")


class ExporterMetrics:
    """
    Convenience wrapper around the exporter's self-metrics.

    Provides named helper methods so callers don't need to touch the raw
    metric objects. All methods are thread-safe (Prometheus client handles it).
    """

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        version: str = "1.0.0"
    ) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        self._start_time = time.time()

        # -- Counters --
        self.polls_total = Counter(
            f"{PREFIX}_polls",
            "Total number of poll cycles started per configured node",
            ["node"],
            registry=self.registry,
        )
        self.poll_failures_total = Counter(
            f"{PREFIX}_poll_failures",
            "Total number of failed poll cycles per node and reason",
            ["node", "reason"],
            registry=self.registry,
        )
        self.config_reloads_total = Counter(
            f"{PREFIX}_config_reloads",
            "Total number of configuration reloads applied",
            registry=self.registry,
        )

        # -- Histograms --
        self.poll_duration = Histogram(
            f"{PREFIX}_poll_duration_seconds",
            "Duration of a successful fetch and map cycle in seconds",
            ["node"],
            buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=self.registry,
        )

        # -- Gauges --
        self.last_success = Gauge(
            f"{PREFIX}_last_success_timestamp_seconds",
            "Unix time of the last successful poll per node",
            ["node"],
            registry=self.registry,
        )
        self.node_up = Gauge(
            f"{PREFIX}_node_up",
            "Whether the last poll of the node succeeded (1) or failed (0)",
            ["node"],
            registry=self.registry,
        )
        self.configured_nodes = Gauge(
            f"{PREFIX}_configured_nodes",
            "Number of nodes in the active configuration",
            registry=self.registry,
        )
        self.uptime_seconds = Gauge(
            f"{PREFIX}_uptime_seconds",
            "Seconds since the exporter started",
            registry=self.registry,
        )
        self.uptime_seconds.set_function(lambda: time.time() - self._start_time)

        # -- Info --
        self.build_info = Info(
            PREFIX,
            "Broker exporter build / version info",
            registry=self.registry,
        )
        self.build_info.info({"version": version})

    # -- Counters -----------------------------------------------------------

    def inc_polls(self, node: str) -> None:
        self.polls_total.labels(node=node).inc()

    def inc_failures(self, node: str, reason: str) -> None:
        """
        Record a failed poll cycle.

        Args:
            node: configured node name
            reason: one of "fetch", "decode", "unexpected"
        """
        if reason not in FAILURE_REASONS:
            logger.warning(f"Unknown poll failure reason '{reason}', recording as unexpected")
            reason = "unexpected"
        self.poll_failures_total.labels(node=node, reason=reason).inc()
        self.node_up.labels(node=node).set(0)

    def inc_config_reloads(self) -> None:
        self.config_reloads_total.inc()

    # -- Histograms ---------------------------------------------------------

    def observe_poll_duration(self, node: str, seconds: float) -> None:
        self.poll_duration.labels(node=node).observe(seconds)

    # -- Gauges -------------------------------------------------------------

    def mark_success(self, node: str) -> None:
        self.last_success.labels(node=node).set(time.time())
        self.node_up.labels(node=node).set(1)

    def set_configured_nodes(self, count: int) -> None:
        self.configured_nodes.set(count)

    # -- Accessors for testing ----------------------------------------------

    def get_polls(self, node: str) -> float:
        return self.registry.get_sample_value(
            f"{PREFIX}_polls_total", {"node": node}
        ) or 0.0

    def get_failures(self, node: str, reason: str) -> float:
        return self.registry.get_sample_value(
            f"{PREFIX}_poll_failures_total", {"node": node, "reason": reason}
        ) or 0.0

    def get_node_up(self, node: str) -> Optional[float]:
        return self.registry.get_sample_value(
            f"{PREFIX}_node_up", {"node": node}
        )
