"""
Per-node poll loop.

Each configured broker node gets one NodePoller running in its own daemon
thread:

    Fetching -> Mapping -> Applying -> Sleeping(interval) -> Fetching ...
        \\________ any failure ________/-> Sleeping(cooldown) -> Fetching ...

Failures never leave the loop. A failed cycle writes nothing to the
registry and sleeps a fixed cooldown before the next attempt.
"""
import threading
import time
from typing import Any, Dict, Optional

from src.collector.fetcher import ManagementClient
from src.collector.mapper import map_overview, map_queue_messages
from src.common.config_loader import NodeConfig
from src.common.correlation import CorrelationContext, set_component
from src.common.duration import DurationError, format_duration, parse_duration
from src.common.exceptions import DecodeError, EmptySnapshotError, FetchError
from src.common.logging_config import get_logger
from src.monitoring.metrics import ExporterMetrics
from src.monitoring.registry import MetricRegistry

logger = get_logger(__name__)

DEFAULT_INTERVAL_SECONDS = 30.0
FAILURE_COOLDOWN_SECONDS = 10.0


def resolve_interval(
    raw: Optional[str],
    node_name: str = "",
    default: float = DEFAULT_INTERVAL_SECONDS
) -> float:
    """
    Parse a node's poll interval, falling back to *default* on bad input.

    Args:
        raw: Duration string such as "30s"
        node_name: Node name for the warning log
        default: Fallback interval in seconds

    Returns:
        Interval in seconds (always positive)
    """
    try:
        seconds = parse_duration(raw)
    except DurationError as e:
        logger.warning(
            f"Invalid poll interval for {node_name}: {e}; "
            f"using default {format_duration(default)}",
            extra={"node": node_name}
        )
        return default

    if seconds <= 0:
        logger.warning(
            f"Non-positive poll interval {raw!r} for {node_name}; "
            f"using default {format_duration(default)}",
            extra={"node": node_name}
        )
        return default
    return seconds


class NodePoller:
    """
    Supervised poll loop for one broker node.

    Usage:
        poller = NodePoller(node, resolve_interval("15s"), registry, client)
        poller.start()
        ...
        poller.stop()
    """

    def __init__(
        self,
        node: NodeConfig,
        interval: float,
        registry: MetricRegistry,
        client: ManagementClient,
        failure_cooldown: float = FAILURE_COOLDOWN_SECONDS,
        metrics: Optional[ExporterMetrics] = None
    ):
        """
        Initialize poll loop.

        Args:
            node: Node being polled
            interval: Seconds to sleep after a successful cycle
            registry: Shared metric registry to write into
            client: Management API client for this node
            failure_cooldown: Seconds to sleep after a failed cycle
            metrics: Optional exporter self-metrics
        """
        self.node = node
        self.interval = interval
        self.registry = registry
        self.client = client
        self.failure_cooldown = failure_cooldown
        self.metrics = metrics

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._stats_lock = threading.Lock()

        # Statistics
        self.polls = 0
        self.failures = 0
        self.consecutive_failures = 0
        self.last_success: Optional[float] = None
        self.last_error: Optional[str] = None
        self.last_ok: Optional[bool] = None

    @property
    def name(self) -> str:
        return self.node.name

    def poll_once(self) -> bool:
        """
        Run a single fetch, map and apply cycle.

        Returns:
            True if the registry was updated, False if the cycle failed
        """
        with CorrelationContext():
            if self.metrics:
                self.metrics.inc_polls(self.name)
            start = time.time()

            try:
                overview = self.client.get_overview()
                queues = self.client.get_queues()

                points = map_overview(overview)
                points.append(map_queue_messages(queues))

                # A retired loop must not overwrite its replacement's values
                if self._stop_event.is_set():
                    logger.info(
                        f"Discarding poll of {self.name}: loop stopped mid-cycle",
                        extra={"node": self.name}
                    )
                    return False

                written = self.registry.observe_many(points)

            except FetchError as e:
                return self._record_failure("fetch", e)

            except EmptySnapshotError as e:
                logger.warning(
                    f"{self.name} lists no queues; overview metrics are "
                    f"withheld until the queue listing is non-empty",
                    extra={"node": self.name}
                )
                return self._record_failure("decode", e)

            except DecodeError as e:
                return self._record_failure("decode", e)

            except Exception as e:
                logger.exception(
                    f"Unexpected error polling {self.name}: {e}",
                    extra={"node": self.name}
                )
                return self._record_failure("unexpected", e, log=False)

            elapsed = time.time() - start
            self._record_success(elapsed)
            logger.debug(
                f"Polled {self.name}: {written} points in {elapsed:.3f}s",
                extra={"node": self.name}
            )
            return True

    def run(self) -> None:
        """Loop until stopped. Executed in the poller thread."""
        set_component(self.name)
        logger.info(
            f"Poll loop started for {self.name} ({self.node.url}), "
            f"interval={format_duration(self.interval)}",
            extra={"node": self.name}
        )
        while not self._stop_event.is_set():
            ok = self.poll_once()
            delay = self.interval if ok else self.failure_cooldown
            self._stop_event.wait(delay)
        logger.info(f"Poll loop stopped for {self.name}", extra={"node": self.name})

    def start(self) -> None:
        """Start the poll loop in a daemon thread."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self.run,
            name=f"poller-{self.name}",
            daemon=True
        )
        self._thread.start()

    def signal_stop(self) -> None:
        """Ask the loop to exit after its current cycle, without waiting."""
        self._stop_event.set()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Signal the loop to stop and wait for the thread to exit."""
        self.signal_stop()
        if self._thread:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning(
                    f"Poll loop for {self.name} did not exit within {timeout}s",
                    extra={"node": self.name}
                )

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_healthy(self) -> bool:
        """True if the most recent cycle succeeded."""
        return bool(self.last_ok)

    def get_stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            return {
                "node": self.name,
                "url": self.node.url,
                "interval_seconds": self.interval,
                "running": self.is_running,
                "polls": self.polls,
                "failures": self.failures,
                "consecutive_failures": self.consecutive_failures,
                "last_success": self.last_success,
                "last_error": self.last_error,
            }

    def _record_success(self, elapsed: float) -> None:
        with self._stats_lock:
            self.polls += 1
            self.consecutive_failures = 0
            self.last_success = time.time()
            self.last_error = None
            self.last_ok = True
        if self.metrics:
            self.metrics.observe_poll_duration(self.name, elapsed)
            self.metrics.mark_success(self.name)

    def _record_failure(self, reason: str, error: Exception, log: bool = True) -> bool:
        with self._stats_lock:
            self.polls += 1
            self.failures += 1
            self.consecutive_failures += 1
            self.last_error = f"{reason}: {error}"
            self.last_ok = False
        if log:
            logger.error(
                f"Poll of {self.name} failed ({reason}): {error}. "
                f"Retrying in {format_duration(self.failure_cooldown)}",
                extra={"node": self.name}
            )
        if self.metrics:
            self.metrics.inc_failures(self.name, reason)
        return False
