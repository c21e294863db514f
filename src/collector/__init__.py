"""
Collector module - broker polling.
Fetches management API snapshots, maps them to metric points and runs one
supervised poll loop per configured node.
"""
from src.collector.fetcher import ManagementClient, create_client_from_config
from src.collector.mapper import map_overview, map_queue_messages
from src.collector.poller import NodePoller, resolve_interval
from src.collector.supervisor import NodeSupervisor

__all__ = [
    "ManagementClient",
    "create_client_from_config",
    "map_overview",
    "map_queue_messages",
    "NodePoller",
    "resolve_interval",
    "NodeSupervisor",
]
