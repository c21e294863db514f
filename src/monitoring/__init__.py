"""
Monitoring module - metric registry, self-metrics and the HTTP exposition
server that Prometheus scrapes.
"""
from src.monitoring.registry import (
    MetricRegistry,
    MetricPoint,
    MetricKind,
    METRIC_DEFINITIONS,
)
from src.monitoring.metrics import ExporterMetrics
from src.monitoring.server import ExporterServer

__all__ = [
    "MetricRegistry",
    "MetricPoint",
    "MetricKind",
    "METRIC_DEFINITIONS",
    "ExporterMetrics",
    "ExporterServer",
]
