"""
Process signal handling for the exporter.

SIGINT / SIGTERM run the registered cleanup callbacks in priority order.
SIGHUP asks the exporter to reload its node configuration.
"""
import signal
import threading
import time
from typing import Callable, List, Tuple, Optional
from enum import Enum

from src.common.logging_config import get_logger

logger = get_logger(__name__)


class ShutdownState(Enum):
    """Shutdown manager states"""
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class ShutdownManager:
    """
    Centralized shutdown manager with ordered cleanup.

    Priority levels (lower = executed first):
        0-9:   Stop serving scrapes
        10-19: Stop poll loops
        20-29: Close HTTP sessions and other resources

    Usage:
        shutdown = ShutdownManager(timeout=30)
        shutdown.register(server.stop, priority=0, name="http_server")
        shutdown.register(supervisor.stop, priority=10, name="poll_loops")
        shutdown.install_signal_handlers(on_reload=reload_config)
        shutdown.wait_for_shutdown()
    """

    _instance: Optional['ShutdownManager'] = None
    _lock = threading.Lock()

    def __new__(cls, *args, **kwargs):
        """Singleton pattern - only one shutdown manager per process."""
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self, timeout: int = 30):
        """
        Initialize shutdown manager.

        Args:
            timeout: Maximum seconds to spend running callbacks
        """
        if self._initialized:
            return
        self._initialized = True

        self.timeout = timeout
        self.state = ShutdownState.RUNNING
        self._callbacks: List[Tuple[int, str, Callable]] = []
        self._state_lock = threading.Lock()
        self._shutdown_event = threading.Event()
        self._reload_callback: Optional[Callable[[], None]] = None

        logger.info(f"ShutdownManager initialized (timeout={timeout}s)")

    @classmethod
    def reset(cls):
        """Reset singleton instance (for testing)."""
        with cls._lock:
            cls._instance = None

    @property
    def is_running(self) -> bool:
        return self.state == ShutdownState.RUNNING

    @property
    def is_shutting_down(self) -> bool:
        return self.state == ShutdownState.SHUTTING_DOWN

    def register(
        self,
        callback: Callable,
        priority: int = 20,
        name: str = "unnamed"
    ) -> None:
        """
        Register a cleanup callback.

        Args:
            callback: Function to call during shutdown (no args)
            priority: Execution priority (lower = earlier)
            name: Descriptive name for logging
        """
        self._callbacks.append((priority, name, callback))
        self._callbacks.sort(key=lambda x: x[0])
        logger.debug(f"Registered shutdown callback: {name} (priority={priority})")

    def install_signal_handlers(self, on_reload: Optional[Callable[[], None]] = None) -> None:
        """
        Install SIGINT and SIGTERM handlers, plus SIGHUP when *on_reload* is given.

        Must be called from the main thread.
        """
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)
        installed = "SIGINT, SIGTERM"

        if on_reload is not None and hasattr(signal, "SIGHUP"):
            self._reload_callback = on_reload
            signal.signal(signal.SIGHUP, self._reload_handler)
            installed += ", SIGHUP"

        logger.info(f"Signal handlers installed ({installed})")

    def _signal_handler(self, signum: int, frame) -> None:
        sig_name = signal.Signals(signum).name
        logger.info(f"Received {sig_name} (signal {signum}), initiating shutdown...")
        # Callbacks join threads; keep that off the signal frame
        threading.Thread(
            target=self.initiate_shutdown, name="shutdown", daemon=True
        ).start()

    def _reload_handler(self, signum: int, frame) -> None:
        logger.info("Received SIGHUP, reloading configuration...")
        if self._reload_callback is not None and self.is_running:
            threading.Thread(
                target=self._run_reload, name="config-reload", daemon=True
            ).start()

    def _run_reload(self) -> None:
        try:
            self._reload_callback()
        except Exception as e:
            logger.error(f"Configuration reload failed: {e}")

    def initiate_shutdown(self) -> None:
        """
        Begin the shutdown process.
        Thread-safe - can be called from signal handlers or other threads.
        """
        with self._state_lock:
            if self.state != ShutdownState.RUNNING:
                logger.warning("Shutdown already in progress, ignoring")
                return
            self.state = ShutdownState.SHUTTING_DOWN

        logger.info(f"Shutdown initiated, executing {len(self._callbacks)} callbacks...")

        self._execute_callbacks()

        with self._state_lock:
            self.state = ShutdownState.STOPPED

        logger.info("Shutdown complete")
        self._shutdown_event.set()

    def _execute_callbacks(self) -> None:
        """Execute all registered callbacks in priority order with timeout."""
        start_time = time.time()

        for priority, name, callback in self._callbacks:
            if time.time() - start_time >= self.timeout:
                logger.error(
                    f"Shutdown timeout ({self.timeout}s) exceeded, "
                    f"skipping remaining callbacks"
                )
                break

            logger.info(f"Executing shutdown callback: {name} (priority={priority})")

            try:
                callback()
            except Exception as e:
                logger.error(f"Callback failed: {name} - {e}")

        logger.info(f"All callbacks executed in {time.time() - start_time:.2f}s")

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Block until shutdown has completed.

        Args:
            timeout: Max time to wait (None = indefinite)

        Returns:
            True if shutdown completed, False on timeout
        """
        return self._shutdown_event.wait(timeout=timeout)

    def get_status(self) -> dict:
        return {
            "state": self.state.value,
            "is_running": self.is_running,
            "callbacks_registered": len(self._callbacks),
            "callback_names": [name for _, name, _ in self._callbacks],
            "timeout": self.timeout
        }
