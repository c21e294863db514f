"""
Correlation ID management for poll cycle tracing.
Each poll cycle of a node gets its own correlation ID so the fetch, map and
apply log lines of one cycle can be grouped together.
"""
import uuid
import logging
from typing import Optional
from contextvars import ContextVar

# Context variables are per-thread, so every poll loop has its own values
_correlation_id_var: ContextVar[Optional[str]] = ContextVar(
    'correlation_id', default=None
)

_component_var: ContextVar[Optional[str]] = ContextVar(
    'component', default=None
)


def generate_correlation_id() -> str:
    """
    Generate a new unique correlation ID.

    Returns:
        UUID4 string (e.g., "a1b2c3d4-e5f6-7890-abcd-ef1234567890")
    """
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current context."""
    _correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    """Get the correlation ID from the current context, if any."""
    return _correlation_id_var.get()


def clear_correlation_id() -> None:
    """Clear the correlation ID from the current context."""
    _correlation_id_var.set(None)


def set_component(component: str) -> None:
    """
    Set the component name for the current context.

    Args:
        component: Component name (e.g., "exporter", or a node name
                   inside a poll loop thread)
    """
    _component_var.set(component)


def get_component() -> Optional[str]:
    """Get the component name from the current context."""
    return _component_var.get()


class CorrelationFilter(logging.Filter):
    """
    Logging filter that injects correlation_id and component into log records.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or ""
        record.component = get_component() or ""
        return True


class CorrelationContext:
    """
    Context manager for setting correlation ID within a scope.
    Restores the previous correlation ID on exit.

    Usage:
        with CorrelationContext() as ctx:
            logger.info("polling")   # carries ctx.correlation_id
    """

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id or generate_correlation_id()
        self._previous_id: Optional[str] = None

    def __enter__(self) -> 'CorrelationContext':
        self._previous_id = get_correlation_id()
        set_correlation_id(self.correlation_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._previous_id is not None:
            set_correlation_id(self._previous_id)
        else:
            clear_correlation_id()
