"""
Unit tests for NodeSupervisor.
"""
import threading
import time
from unittest.mock import MagicMock, patch

import pytest
from prometheus_client import CollectorRegistry

from src.collector.supervisor import NodeSupervisor
from src.common.config_loader import NodeConfig
from src.monitoring.metrics import ExporterMetrics
from src.monitoring.registry import MetricRegistry


def _client_for(node, timeout=10.0):
    client = MagicMock()
    client.get_overview.return_value = {
        "node": f"rabbit@{node.name}",
        "object_totals": {"queues": 1},
    }
    client.get_queues.return_value = [{"node": f"rabbit@{node.name}", "messages": 1}]
    client.timeout = timeout
    return client


@pytest.fixture
def registry():
    return MetricRegistry()


@pytest.fixture
def metrics():
    return ExporterMetrics(CollectorRegistry())


@pytest.fixture
def supervisor(registry, metrics):
    sup = NodeSupervisor(
        registry,
        metrics=metrics,
        client_factory=MagicMock(side_effect=_client_for),
        request_timeout=4.0,
        failure_cooldown=0.05,
        join_timeout=2.0,
    )
    yield sup
    sup.stop()


def _nodes(*specs):
    return [NodeConfig(name=n, url=f"http://{n}:15672", req_interval=i) for n, i in specs]


class TestStart:

    def test_starts_one_loop_per_node(self, supervisor):
        pollers = supervisor.start(_nodes(("a", None), ("b", None)), "1h")

        assert len(pollers) == 2
        assert all(p.is_running for p in pollers)
        assert supervisor.is_running

    def test_resolves_node_override_and_global_default(self, supervisor):
        pollers = supervisor.start(_nodes(("a", "5s"), ("b", None)), "1m")

        intervals = {p.name: p.interval for p in pollers}
        assert intervals == {"a": 5.0, "b": 60.0}

    def test_bad_global_interval_falls_back(self, supervisor):
        pollers = supervisor.start(_nodes(("a", None)), "often")
        assert pollers[0].interval == 30.0

    def test_clients_built_with_request_timeout(self, supervisor):
        supervisor.start(_nodes(("a", None)), "1h")
        _, kwargs = supervisor.client_factory.call_args
        assert kwargs["timeout"] == 4.0

    def test_returns_without_waiting_for_loops(self, supervisor):
        started = time.time()
        supervisor.start(_nodes(("a", None), ("b", None), ("c", None)), "1h")
        assert time.time() - started < 1.0

    def test_loops_write_their_own_labels(self, supervisor, registry):
        supervisor.start(_nodes(("a", None), ("b", None)), "1h")
        deadline = time.time() + 2.0
        while len(registry.labels()) < 2 and time.time() < deadline:
            time.sleep(0.01)

        assert registry.labels() == ["rabbit@a", "rabbit@b"]

    def test_sets_configured_nodes_gauge(self, supervisor, metrics):
        supervisor.start(_nodes(("a", None), ("b", None)), "1h")
        assert metrics.registry.get_sample_value("broker_exporter_configured_nodes") == 2.0

    def test_duplicate_names_warn(self, supervisor):
        with patch("src.collector.supervisor.logger") as mock_logger:
            pollers = supervisor.start(_nodes(("a", None), ("a", None)), "1h")
        mock_logger.warning.assert_called_once()
        assert len(pollers) == 2

    def test_no_nodes_is_not_running(self, supervisor):
        supervisor.start([], "1h")
        assert not supervisor.is_running


class TestStopAndReload:

    def test_stop_stops_loops_and_closes_clients(self, supervisor):
        pollers = supervisor.start(_nodes(("a", None), ("b", None)), "1h")
        supervisor.stop()

        assert supervisor.pollers == []
        for poller in pollers:
            assert not poller.is_running
            poller.client.close.assert_called_once()

    def test_reload_retires_old_loops_first(self, supervisor, metrics):
        old = supervisor.start(_nodes(("a", None), ("b", None)), "1h")
        new = supervisor.reload(_nodes(("c", "10s")), "1h")

        assert all(not p.is_running for p in old)
        assert [p.name for p in supervisor.pollers] == ["c"]
        assert new[0].is_running
        assert new[0].interval == 10.0
        assert metrics.registry.get_sample_value("broker_exporter_config_reloads_total") == 1.0

    def test_reload_keeps_registry_values(self, supervisor, registry):
        registry.observe("queues_total", "rabbit@old", 3)
        supervisor.start(_nodes(("a", None)), "1h")
        supervisor.reload(_nodes(("b", None)), "1h")

        assert registry.get("queues_total", "rabbit@old") == 3.0

    def test_get_stats(self, supervisor):
        supervisor.start(_nodes(("a", None)), "1h")
        stats = supervisor.get_stats()

        assert stats["nodes"] == 1
        assert stats["pollers"][0]["node"] == "a"


class TestReloadOrdering:

    def test_concurrent_reloads_leave_one_loop_per_node(self, registry):
        def slow_factory(node, timeout=10.0):
            time.sleep(0.2)
            return _client_for(node, timeout)

        sup = NodeSupervisor(registry, client_factory=slow_factory, request_timeout=1.0)
        try:
            reloads = [
                threading.Thread(target=sup.reload, args=(_nodes(("a", None)), "1h"))
                for _ in range(2)
            ]
            for t in reloads:
                t.start()
                time.sleep(0.05)
            for t in reloads:
                t.join(5)

            alive = [t for t in threading.enumerate() if t.name == "poller-a"]
            assert len(sup.pollers) == 1
            assert len(alive) == 1
        finally:
            sup.stop()

    def test_join_waits_at_least_request_timeout(self, registry):
        sup = NodeSupervisor(registry, request_timeout=10.0, join_timeout=5.0)
        assert sup.join_timeout == 10.0

    def test_retired_loop_does_not_overwrite_replacement(self, registry):
        entered = threading.Event()
        release = threading.Event()
        clients = []

        def factory(node, timeout=10.0):
            client = _client_for(node, timeout)
            if not clients:
                def blocked_overview():
                    entered.set()
                    release.wait(5)
                    return {"node": "rabbit@a", "object_totals": {"queues": 111}}
                client.get_overview.side_effect = blocked_overview
            else:
                client.get_overview.return_value = {
                    "node": "rabbit@a", "object_totals": {"queues": 5},
                }
            clients.append(client)
            return client

        sup = NodeSupervisor(
            registry, client_factory=factory, request_timeout=0.1, join_timeout=0.2
        )
        try:
            old = sup.start(_nodes(("a", None)), "1h")
            assert entered.wait(2)

            # Old loop is still blocked when stop() gives up waiting on it
            sup.reload(_nodes(("a", None)), "1h")
            deadline = time.time() + 2
            while registry.get("queues_total", "rabbit@a") != 5.0 and time.time() < deadline:
                time.sleep(0.01)

            release.set()
            old[0].stop(timeout=2)

            assert registry.get("queues_total", "rabbit@a") == 5.0
        finally:
            release.set()
            sup.stop()
