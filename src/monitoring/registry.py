"""
Label-partitioned store of the broker metrics the exporter republishes.

The registry keeps the latest value per (metric name, node label). Poll
loops write into it; the exposition server reads it on every scrape through
the prometheus_client collector interface.

Usage:
    registry = MetricRegistry()
    prom_registry = CollectorRegistry()
    prom_registry.register(registry)

    registry.observe("queues_total", "rabbit@a", 12)
    generate_latest(prom_registry)
"""
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from prometheus_client.core import GaugeMetricFamily, UnknownMetricFamily

NODE_LABEL = "node"


class MetricKind(Enum):
    """How a broker value behaves over time"""
    GAUGE = "gauge"
    # Cumulative value reported by the broker itself, mirrored as-is
    COUNTER = "counter"


@dataclass(frozen=True)
class MetricDefinition:
    name: str
    kind: MetricKind
    help: str


@dataclass(frozen=True)
class MetricPoint:
    """A single observed value for one node"""
    name: str
    label: str
    value: float
    kind: MetricKind = MetricKind.GAUGE


_DEFINITIONS = (
    MetricDefinition("connections_total", MetricKind.GAUGE, "Total number of open connections."),
    MetricDefinition("channels_total", MetricKind.GAUGE, "Total number of open channels."),
    MetricDefinition("queues_total", MetricKind.GAUGE, "Total number of queues in use."),
    MetricDefinition("consumers_total", MetricKind.GAUGE, "Total number of message consumers."),
    MetricDefinition("exchanges_total", MetricKind.GAUGE, "Total number of exchanges in use."),
    MetricDefinition("messages_total", MetricKind.GAUGE, "Total number of messages in all queues."),
    MetricDefinition("messages", MetricKind.COUNTER, "Counter of messages."),
    MetricDefinition("messages_ready", MetricKind.COUNTER, "Counter of ready messages."),
    MetricDefinition("messages_unacknowledged", MetricKind.COUNTER, "Counter of unacknowledged messages."),
    MetricDefinition("messages_published", MetricKind.COUNTER, "Counter of published messages."),
    MetricDefinition("messages_acked", MetricKind.COUNTER, "Counter of acked messages."),
    MetricDefinition("messages_delivered", MetricKind.COUNTER, "Counter of delivered messages."),
    MetricDefinition("messages_confirmed", MetricKind.COUNTER, "Counter of confirmed messages."),
    MetricDefinition("messages_redelivered", MetricKind.COUNTER, "Counter of redelivered messages."),
    MetricDefinition("messages_delivered_get", MetricKind.COUNTER, "Counter of delivered get messages."),
    MetricDefinition("messages_delivered_no_ack", MetricKind.COUNTER, "Counter of delivered no ack messages."),
)

METRIC_DEFINITIONS: Dict[str, MetricDefinition] = {d.name: d for d in _DEFINITIONS}


class MetricRegistry:
    """
    Thread-safe (name, node label) -> value table.

    Every write overwrites. Counter-kind metrics mirror the broker's own
    cumulative counters, so the registry never adds to a previous value
    and never derives rates.

    Implements the prometheus_client custom collector protocol
    (``collect`` / ``describe``) so it can be registered on a
    ``CollectorRegistry``.
    """

    def __init__(self, namespace: str = "") -> None:
        self.namespace = namespace
        self._values: Dict[Tuple[str, str], float] = {}
        self._lock = threading.Lock()

    # -- Writes -------------------------------------------------------------

    def observe(self, name: str, label: str, value: float) -> None:
        """
        Record the latest value of *name* for node *label*.

        Raises:
            ValueError: If *name* is not a known metric
        """
        self._check_name(name)
        with self._lock:
            self._values[(name, label)] = float(value)

    def observe_many(self, points: Iterable[MetricPoint]) -> int:
        """
        Apply a batch of points under a single lock acquisition.

        Returns:
            Number of points written
        """
        points = list(points)
        for point in points:
            self._check_name(point.name)
        with self._lock:
            for point in points:
                self._values[(point.name, point.label)] = float(point.value)
        return len(points)

    # -- Reads --------------------------------------------------------------

    def get(self, name: str, label: str) -> Optional[float]:
        with self._lock:
            return self._values.get((name, label))

    def snapshot(self) -> Dict[Tuple[str, str], float]:
        """Return a copy of all current values."""
        with self._lock:
            return dict(self._values)

    def labels(self) -> List[str]:
        with self._lock:
            return sorted({label for _, label in self._values})

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    # -- prometheus_client collector protocol -------------------------------

    def collect(self) -> Iterator:
        values = self.snapshot()
        by_name: Dict[str, List[Tuple[str, float]]] = {}
        for (name, label), value in values.items():
            by_name.setdefault(name, []).append((label, value))

        for definition in _DEFINITIONS:
            samples = by_name.get(definition.name)
            if not samples:
                continue
            family = self._family(definition)
            for label, value in sorted(samples):
                family.add_metric([label], value)
            yield family

    def describe(self) -> Iterator:
        for definition in _DEFINITIONS:
            yield self._family(definition)

    # -- Internals ----------------------------------------------------------

    def exposed_name(self, name: str) -> str:
        return f"{self.namespace}_{name}" if self.namespace else name

    def _family(self, definition: MetricDefinition):
        family_cls = (
            GaugeMetricFamily
            if definition.kind is MetricKind.GAUGE
            else UnknownMetricFamily
        )
        return family_cls(
            self.exposed_name(definition.name),
            definition.help,
            labels=[NODE_LABEL],
        )

    @staticmethod
    def _check_name(name: str) -> None:
        if name not in METRIC_DEFINITIONS:
            raise ValueError(f"Unknown metric name: {name}")
