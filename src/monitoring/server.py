"""
HTTP exposition server for Prometheus scraping.
Runs in a separate thread so scrapes never block the poll loops.

Endpoints:
    GET /         - Landing page linking to /metrics
    GET /metrics  - Prometheus text exposition of every registered collector
    GET /health   - Liveness
    GET /ready    - Readiness
    GET /status   - Detailed status with per-node statistics
"""
import json
import threading
from http.server import ThreadingHTTPServer, BaseHTTPRequestHandler
from typing import Dict, Any, Optional
from urllib.parse import urlsplit

from prometheus_client import CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST

from src.common.health import HealthRegistry
from src.common.logging_config import get_logger

logger = get_logger(__name__)

LANDING_PAGE = b"""<html>
<head><title>RabbitMQ Exporter</title></head>
<body>
<h1>RabbitMQ Exporter</h1>
<p><a href='/metrics'>Metrics</a></p>
</body>
</html>
"""


class ExporterHTTPHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the exposition and health endpoints."""

    # Class-level references (set by ExporterServer)
    prom_registry: Optional[CollectorRegistry] = None
    health: Optional[HealthRegistry] = None

    def do_GET(self):
        path = urlsplit(self.path).path

        if path == "/":
            self._send(200, LANDING_PAGE, "text/html; charset=utf-8")

        elif path == "/metrics":
            try:
                body = generate_latest(self.prom_registry)
            except Exception as e:
                logger.exception(f"Failed to render metrics: {e}")
                self._send_json(500, {"error": "metrics collection failed"})
                return
            self._send(200, body, CONTENT_TYPE_LATEST)

        elif path == "/health":
            data = self.health.get_liveness() if self.health else {"status": "alive"}
            self._send_json(200, data)

        elif path == "/ready":
            if self.health:
                data = self.health.get_readiness()
                status_code = 200 if data["status"] == "ready" else 503
            else:
                data = {"status": "not_ready", "error": "No health registry configured"}
                status_code = 503
            self._send_json(status_code, data)

        elif path == "/status":
            data = self.health.get_status() if self.health else {"error": "No health registry"}
            self._send_json(200, data)

        else:
            self._send_json(404, {"error": "Not found"})

    def _send(self, status_code: int, body: bytes, content_type: str):
        self.send_response(status_code)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _send_json(self, status_code: int, data: Dict[str, Any]):
        body = json.dumps(data, indent=2).encode("utf-8")
        self._send(status_code, body, "application/json")

    def log_message(self, format, *args):
        """Suppress default access logging to avoid noise on every scrape."""
        pass


class ExporterServer:
    """
    Threaded HTTP server for /metrics and the health endpoints.
    Runs in a daemon thread so it doesn't block shutdown.

    Usage:
        server = ExporterServer(prom_registry, health, port=9090)
        server.start()
        # ... poll loops run ...
        server.stop()
    """

    def __init__(
        self,
        prom_registry: CollectorRegistry,
        health: Optional[HealthRegistry] = None,
        port: int = 9090,
        address: str = "0.0.0.0"
    ):
        """
        Initialize exposition server.

        Args:
            prom_registry: Registry rendered on /metrics
            health: Health registry for /health, /ready, /status
            port: HTTP port to listen on (0 picks a free port)
            address: Interface to bind
        """
        self.prom_registry = prom_registry
        self.health = health
        self.port = port
        self.address = address
        self._server: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """
        Bind and start serving in a daemon thread.

        Raises:
            OSError: If the port cannot be bound
        """
        handler = type(
            'BoundExporterHTTPHandler',
            (ExporterHTTPHandler,),
            {'prom_registry': self.prom_registry, 'health': self.health}
        )

        try:
            self._server = ThreadingHTTPServer((self.address, self.port), handler)
        except OSError as e:
            logger.error(f"Failed to start exporter server on port {self.port}: {e}")
            raise

        self._server.daemon_threads = True
        # Report the real port when 0 was requested
        self.port = self._server.server_address[1]
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="exporter-http",
            daemon=True
        )
        self._thread.start()
        logger.info(
            f"Exporter server started on port {self.port}  "
            f"→  http://localhost:{self.port}/metrics"
        )

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            logger.info("Exporter server stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
