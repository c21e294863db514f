"""
Health checks backing the exporter's liveness, readiness and status pages.

Endpoints (served by src/monitoring/server.py):
    GET /health  - Liveness: process is alive (always 200 if server running)
    GET /ready   - Readiness: every critical check passes
    GET /status  - Detailed status with per-node poll statistics
"""
import time
from typing import Dict, Any, Callable, Optional, List
from datetime import datetime, timezone

from src.common.logging_config import get_logger

logger = get_logger(__name__)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class HealthCheck:
    """
    Represents a single health check.

    Usage:
        check = HealthCheck("pollers", supervisor_is_running, critical=True)
        result = check.run()
    """

    def __init__(
        self,
        name: str,
        check_fn: Callable[[], bool],
        critical: bool = True
    ):
        """
        Initialize health check.

        Args:
            name: Check name (e.g., "pollers", or a node name)
            check_fn: Function that returns True if healthy.
                      Should raise or return False if unhealthy.
            critical: If True, failure makes the exporter unready
        """
        self.name = name
        self.check_fn = check_fn
        self.critical = critical
        self.last_result: Optional[bool] = None
        self.last_check_time: Optional[float] = None
        self.last_error: Optional[str] = None
        self.consecutive_failures = 0

    def run(self) -> Dict[str, Any]:
        """
        Execute the health check.

        Returns:
            Result dictionary with status, timing, and error info
        """
        start = time.time()
        try:
            result = bool(self.check_fn())
            error = None if result else "Check returned False"
        except Exception as e:
            result = False
            error = str(e)

        elapsed = time.time() - start
        self.last_result = result
        self.last_check_time = time.time()
        self.last_error = error
        self.consecutive_failures = 0 if result else self.consecutive_failures + 1

        return {
            "name": self.name,
            "status": "healthy" if result else "unhealthy",
            "critical": self.critical,
            "response_time_ms": round(elapsed * 1000, 2),
            "error": error,
            "consecutive_failures": self.consecutive_failures
        }


class HealthRegistry:
    """
    Registry of health checks and stats providers.
    Central point for all health-related data.
    """

    def __init__(self, component: str = "exporter"):
        self.component = component
        self.checks: List[HealthCheck] = []
        self.stats_providers: Dict[str, Callable[[], Dict[str, Any]]] = {}
        self.start_time = time.time()

    def register_check(self, check: HealthCheck) -> None:
        self.checks.append(check)
        logger.debug(f"Registered health check: {check.name}")

    def register_stats_provider(
        self,
        name: str,
        provider: Callable[[], Dict[str, Any]]
    ) -> None:
        """
        Register a statistics provider.

        Args:
            name: Provider name
            provider: Function returning stats dictionary
        """
        self.stats_providers[name] = provider
        logger.debug(f"Registered stats provider: {name}")

    def run_checks(self) -> Dict[str, Any]:
        """
        Run all registered health checks.

        Returns:
            Aggregated results with overall status
        """
        results = []
        all_healthy = True

        for check in list(self.checks):
            result = check.run()
            results.append(result)
            if check.critical and result["status"] != "healthy":
                all_healthy = False

        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": results
        }

    def get_liveness(self) -> Dict[str, Any]:
        return {
            "status": "alive",
            "component": self.component,
            "uptime_seconds": round(time.time() - self.start_time, 1),
            "timestamp": _utc_now()
        }

    def get_readiness(self) -> Dict[str, Any]:
        check_results = self.run_checks()
        return {
            "status": "ready" if check_results["status"] == "healthy" else "not_ready",
            "component": self.component,
            "checks": check_results["checks"],
            "timestamp": _utc_now()
        }

    def get_status(self) -> Dict[str, Any]:
        """
        Full status with health checks and statistics.

        Returns:
            Comprehensive status dictionary
        """
        check_results = self.run_checks()

        stats = {}
        for name, provider in self.stats_providers.items():
            try:
                stats[name] = provider()
            except Exception as e:
                stats[name] = {"error": str(e)}

        return {
            "component": self.component,
            "status": check_results["status"],
            "uptime_seconds": round(time.time() - self.start_time, 1),
            "timestamp": _utc_now(),
            "health_checks": check_results["checks"],
            "statistics": stats
        }
