"""
Conversion of management API snapshots into metric points.

Field tolerance: a missing group, missing field, or non-numeric value is a
mapping gap. It is logged at debug level and produces no point, so the
registry keeps whatever value it held before.
"""
import numbers
from typing import Any, Dict, List, Optional, Tuple

from src.common.exceptions import DecodeError, EmptySnapshotError
from src.common.logging_config import get_logger
from src.monitoring.registry import METRIC_DEFINITIONS, MetricPoint

logger = get_logger(__name__)

# (snapshot group, field in group, metric name)
OVERVIEW_FIELDS: Tuple[Tuple[str, str, str], ...] = (
    ("object_totals", "channels", "channels_total"),
    ("object_totals", "connections", "connections_total"),
    ("object_totals", "consumers", "consumers_total"),
    ("object_totals", "queues", "queues_total"),
    ("object_totals", "exchanges", "exchanges_total"),
    ("queue_totals", "messages", "messages"),
    ("queue_totals", "messages_ready", "messages_ready"),
    ("queue_totals", "messages_unacknowledged", "messages_unacknowledged"),
    ("message_stats", "publish", "messages_published"),
    ("message_stats", "ack", "messages_acked"),
    ("message_stats", "deliver", "messages_delivered"),
    ("message_stats", "confirm", "messages_confirmed"),
    ("message_stats", "redeliver", "messages_redelivered"),
    ("message_stats", "deliver_get", "messages_delivered_get"),
    ("message_stats", "deliver_no_ack", "messages_delivered_no_ack"),
)

QUEUE_MESSAGES_METRIC = "messages_total"


def as_number(value: Any) -> Optional[float]:
    """Return *value* as a float if it is a real number, else None."""
    # bool is an int subclass but never a count
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return None
    return float(value)


def _node_label(obj: Any, source: str) -> str:
    if not isinstance(obj, dict):
        raise DecodeError(f"{source}: expected JSON object, got {type(obj).__name__}")
    node = obj.get("node")
    if not isinstance(node, str) or not node:
        raise DecodeError(f"{source}: missing or invalid 'node' field")
    return node


def map_overview(obj: Dict[str, Any]) -> List[MetricPoint]:
    """
    Map an /api/overview snapshot to metric points labelled by its node.

    Args:
        obj: Decoded overview object

    Returns:
        One point per present, numeric field (at most fifteen)

    Raises:
        DecodeError: *obj* is not an object or has no usable node name
    """
    label = _node_label(obj, "overview")

    points = []
    for group_name, field, metric in OVERVIEW_FIELDS:
        group = obj.get(group_name)
        if not isinstance(group, dict):
            logger.debug(f"Mapping gap: {group_name} absent for {label}, skipping {metric}")
            continue
        value = as_number(group.get(field))
        if value is None:
            logger.debug(f"Mapping gap: {group_name}.{field} not numeric for {label}")
            continue
        points.append(
            MetricPoint(metric, label, value, METRIC_DEFINITIONS[metric].kind)
        )
    return points


def map_queue_messages(queues: List[Any]) -> MetricPoint:
    """
    Sum the ``messages`` field across an /api/queues listing.

    The label comes from the first queue's ``node`` field.

    Args:
        queues: Decoded queue array

    Returns:
        A single messages_total point

    Raises:
        EmptySnapshotError: The listing has no queues
        DecodeError: Not an array, or the first queue has no node name
    """
    if not isinstance(queues, list):
        raise DecodeError(f"queues: expected JSON array, got {type(queues).__name__}")
    if not queues:
        raise EmptySnapshotError("queues: empty listing, no node label available")

    label = _node_label(queues[0], "queues[0]")

    total = 0.0
    for index, queue in enumerate(queues):
        value = as_number(queue.get("messages")) if isinstance(queue, dict) else None
        if value is None:
            logger.debug(f"Mapping gap: queues[{index}].messages not numeric for {label}")
            continue
        total += value

    return MetricPoint(
        QUEUE_MESSAGES_METRIC,
        label,
        total,
        METRIC_DEFINITIONS[QUEUE_MESSAGES_METRIC].kind,
    )
