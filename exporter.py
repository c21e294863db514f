#!/usr/bin/env python3
"""
RabbitMQ Exporter - management API to Prometheus
Polls each configured broker node's management API on its own schedule and
serves the collected counters on /metrics.
"""
import sys
import argparse
from typing import Optional

from prometheus_client import CollectorRegistry

from config.settings import settings
from src.common.logging_config import setup_logging, set_level
from src.common.correlation import set_component
from src.common.config_loader import ExporterConfig, load_config, wait_for_config
from src.common.exceptions import ConfigLoadError
from src.common.shutdown import ShutdownManager
from src.common.health import HealthRegistry, HealthCheck
from src.collector.supervisor import NodeSupervisor
from src.monitoring.metrics import ExporterMetrics
from src.monitoring.registry import MetricRegistry
from src.monitoring.server import ExporterServer

logger = setup_logging(__name__, level=settings.logging.level)

set_component("exporter")


class BrokerExporter:
    """
    Wires the metric registry, poll loops and exposition server together.
    """

    def __init__(self, config_path: str, exporter_settings=None):
        """
        Initialize exporter.

        Args:
            config_path: Path to the JSON node configuration file
            exporter_settings: ExporterSettings (defaults to process settings)
        """
        self.config_path = config_path
        self.settings = exporter_settings or settings.exporter
        self.config: Optional[ExporterConfig] = None

        self.prom_registry = CollectorRegistry()
        self.registry = MetricRegistry(namespace=self.settings.metrics_namespace)
        self.prom_registry.register(self.registry)
        self.metrics = ExporterMetrics(self.prom_registry)

        self.supervisor = NodeSupervisor(
            self.registry,
            metrics=self.metrics,
            request_timeout=self.settings.request_timeout_seconds,
            failure_cooldown=self.settings.failure_cooldown_seconds,
            fallback_interval=self.settings.default_interval_seconds,
            join_timeout=settings.shutdown.join_timeout_seconds,
        )

        self.health = HealthRegistry("exporter")
        self.health.register_check(
            HealthCheck("poll_loops", lambda: self.supervisor.is_running, critical=True)
        )
        self.health.register_stats_provider("pollers", self.supervisor.get_stats)

        self.server: Optional[ExporterServer] = None

    def load(self) -> ExporterConfig:
        """Block until the config file parses (startup gate)."""
        self.config = wait_for_config(
            self.config_path, cooldown=self.settings.config_retry_seconds
        )
        return self.config

    def start(self) -> None:
        """Start the poll loops and the HTTP server. Requires load() first."""
        if self.config is None:
            raise RuntimeError("Configuration not loaded")

        self.supervisor.start(self.config.nodes, self.config.req_interval)

        self.server = ExporterServer(
            self.prom_registry,
            self.health,
            port=self.config.port_number,
            address=self.settings.listen_address,
        )
        self.server.start()
        logger.info(f"Starting RabbitMQ exporter on port: {self.config.port}.")

    def reload(self) -> bool:
        """
        Re-read the config file and restart the poll loops.

        A broken file leaves the current loops running. The listen port is
        not rebound; a changed port needs a restart.

        Returns:
            True if the new configuration was applied
        """
        try:
            new_config = load_config(self.config_path)
        except ConfigLoadError as e:
            logger.error(f"Reload skipped, keeping current configuration: {e}")
            return False

        if self.config is not None and new_config.port != self.config.port:
            logger.warning(
                f"Port change {self.config.port} -> {new_config.port} "
                f"ignored until restart"
            )

        self.supervisor.reload(new_config.nodes, new_config.req_interval)
        self.config = new_config
        return True

    def stop(self) -> None:
        if self.server:
            self.server.stop()
        self.supervisor.stop()


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="RabbitMQ Exporter - serve broker management stats as Prometheus metrics"
    )
    parser.add_argument(
        "config",
        nargs="?",
        default=settings.exporter.config_path,
        help=f"Path to the JSON config file (default: {settings.exporter.config_path})"
    )
    parser.add_argument(
        "--log-level",
        default=settings.logging.level,
        help=f"Log level (default: {settings.logging.level})"
    )

    args = parser.parse_args(argv)
    set_level(args.log_level)
    set_level(args.log_level, prefix=__name__)

    exporter = BrokerExporter(args.config)

    try:
        exporter.load()
        exporter.start()
    except KeyboardInterrupt:
        logger.info("Interrupted during startup")
        return 0
    except OSError as e:
        logger.critical(f"Exporter failed to start: {e}")
        exporter.supervisor.stop()
        return 1

    shutdown = ShutdownManager(timeout=settings.shutdown.timeout_seconds)
    shutdown.register(exporter.server.stop, priority=0, name="http_server")
    shutdown.register(exporter.supervisor.stop, priority=10, name="poll_loops")
    shutdown.install_signal_handlers(on_reload=exporter.reload)

    while not shutdown.wait_for_shutdown(timeout=1.0):
        pass

    logger.info("Exporter terminated")
    return 0


if __name__ == "__main__":
    sys.exit(main())
