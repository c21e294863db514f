"""
Launches and retires the per-node poll loops.
"""
import threading
from collections import Counter
from typing import Any, Callable, Dict, List, Optional, Sequence

from src.collector.fetcher import ManagementClient, create_client_from_config
from src.collector.poller import (
    DEFAULT_INTERVAL_SECONDS,
    FAILURE_COOLDOWN_SECONDS,
    NodePoller,
    resolve_interval,
)
from src.common.config_loader import NodeConfig
from src.common.logging_config import get_logger
from src.monitoring.metrics import ExporterMetrics
from src.monitoring.registry import MetricRegistry

logger = get_logger(__name__)


class NodeSupervisor:
    """
    Owns one NodePoller per configured node.

    Loops are independent: they share only the registry, never wait on each
    other, and a failing node never stops its siblings. ``reload`` stops
    every running loop before starting the replacements, so two loops never
    poll the same node at once.

    Usage:
        supervisor = NodeSupervisor(registry, metrics=metrics)
        supervisor.start(config.nodes, config.req_interval)
        ...
        supervisor.stop()
    """

    def __init__(
        self,
        registry: MetricRegistry,
        metrics: Optional[ExporterMetrics] = None,
        client_factory: Callable[..., ManagementClient] = create_client_from_config,
        request_timeout: float = 10.0,
        failure_cooldown: float = FAILURE_COOLDOWN_SECONDS,
        fallback_interval: float = DEFAULT_INTERVAL_SECONDS,
        join_timeout: float = 5.0
    ):
        self.registry = registry
        self.metrics = metrics
        self.client_factory = client_factory
        self.request_timeout = request_timeout
        self.failure_cooldown = failure_cooldown
        self.fallback_interval = fallback_interval
        # A retired loop may be inside a request; wait at least that long
        self.join_timeout = max(join_timeout, request_timeout)

        self._pollers: List[NodePoller] = []
        self._lock = threading.Lock()
        # Serializes start, stop and reload so loops never overlap per node
        self._lifecycle_lock = threading.RLock()

    @property
    def pollers(self) -> List[NodePoller]:
        with self._lock:
            return list(self._pollers)

    def start(self, nodes: Sequence[NodeConfig], default_interval: str = "") -> List[NodePoller]:
        """
        Start one poll loop per node and return without waiting on them.

        Args:
            nodes: Nodes to poll
            default_interval: Global interval string used when a node has
                              no override

        Returns:
            The started pollers
        """
        duplicates = [n for n, c in Counter(node.name for node in nodes).items() if c > 1]
        if duplicates:
            logger.warning(f"Duplicate node names in config: {', '.join(duplicates)}")

        with self._lifecycle_lock:
            started = []
            for node in nodes:
                interval = resolve_interval(
                    node.effective_interval(default_interval),
                    node_name=node.name,
                    default=self.fallback_interval,
                )
                client = self.client_factory(node, timeout=self.request_timeout)
                poller = NodePoller(
                    node=node,
                    interval=interval,
                    registry=self.registry,
                    client=client,
                    failure_cooldown=self.failure_cooldown,
                    metrics=self.metrics,
                )
                poller.start()
                started.append(poller)

            with self._lock:
                self._pollers.extend(started)

            if self.metrics:
                self.metrics.set_configured_nodes(len(self.pollers))

        logger.info(f"Started {len(started)} poll loop(s)")
        return started

    def stop(self) -> None:
        """Stop every running loop and close its client."""
        with self._lifecycle_lock:
            with self._lock:
                pollers, self._pollers = self._pollers, []

            # Signal all first so loops wind down in parallel
            for poller in pollers:
                poller.signal_stop()
            for poller in pollers:
                poller.stop(timeout=self.join_timeout)
                poller.client.close()

            if self.metrics:
                self.metrics.set_configured_nodes(0)

        if pollers:
            logger.info(f"Stopped {len(pollers)} poll loop(s)")

    def reload(self, nodes: Sequence[NodeConfig], default_interval: str = "") -> List[NodePoller]:
        """
        Replace the running loops with loops for a new node list.

        Old loops are stopped before new ones start. Concurrent reloads run
        one after the other. Values already in the registry are kept until
        overwritten.
        """
        with self._lifecycle_lock:
            logger.info(f"Reloading poll loops: {len(nodes)} node(s)")
            self.stop()
            started = self.start(nodes, default_interval)
            if self.metrics:
                self.metrics.inc_config_reloads()
        return started

    @property
    def is_running(self) -> bool:
        pollers = self.pollers
        return bool(pollers) and all(p.is_running for p in pollers)

    def get_stats(self) -> Dict[str, Any]:
        pollers = self.pollers
        return {
            "nodes": len(pollers),
            "healthy_nodes": sum(1 for p in pollers if p.is_healthy),
            "pollers": [p.get_stats() for p in pollers],
        }
