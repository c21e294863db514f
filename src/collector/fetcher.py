"""
HTTP client for the RabbitMQ management API.

One authenticated GET per call, no retries: a failed request surfaces as
``FetchError`` and the poll loop decides what to do next.
"""
from typing import Any, Dict, List, Optional

import requests
from requests.auth import HTTPBasicAuth

from src.common.exceptions import FetchError, DecodeError
from src.common.logging_config import get_logger

logger = get_logger(__name__)

OVERVIEW_PATH = "/api/overview"
QUEUES_PATH = "/api/queues"


class ManagementClient:
    """
    Client for a single broker node's management API.

    Usage:
        client = ManagementClient("http://rabbit-a:15672", "guest", "guest")
        overview = client.get_overview()
        queues = client.get_queues()
        client.close()
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize management API client.

        Args:
            base_url: Scheme and host of the management API, no trailing path
            username: Basic auth user
            password: Basic auth password
            timeout: Per-request timeout in seconds
            session: Optional pre-built session (shared connection pool)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.auth = HTTPBasicAuth(username, password)

    def fetch(self, path: str) -> Any:
        """
        GET ``base_url + path`` and decode the JSON body.

        Args:
            path: API path, e.g. "/api/overview"

        Returns:
            Decoded JSON value

        Raises:
            FetchError: Transport failure or non-2xx status
            DecodeError: Body is not valid JSON
        """
        url = self.base_url + path

        try:
            response = self.session.get(url, auth=self.auth, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchError(url, e) from e

        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            raise FetchError(url, e, status_code=response.status_code) from e

        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(f"Invalid JSON from {url}: {e}") from e

    def get_overview(self) -> Dict[str, Any]:
        """Fetch the cluster overview object."""
        payload = self.fetch(OVERVIEW_PATH)
        if not isinstance(payload, dict):
            raise DecodeError(
                f"Expected JSON object from {OVERVIEW_PATH}, "
                f"got {type(payload).__name__}"
            )
        return payload

    def get_queues(self) -> List[Any]:
        """Fetch the per-queue listing."""
        payload = self.fetch(QUEUES_PATH)
        if not isinstance(payload, list):
            raise DecodeError(
                f"Expected JSON array from {QUEUES_PATH}, "
                f"got {type(payload).__name__}"
            )
        return payload

    def close(self) -> None:
        self.session.close()


def create_client_from_config(node, timeout: float = 10.0) -> ManagementClient:
    """
    Build a ManagementClient for a NodeConfig.

    Args:
        node: NodeConfig with url / uname / password
        timeout: Per-request timeout in seconds
    """
    return ManagementClient(
        base_url=node.url,
        username=node.uname,
        password=node.password,
        timeout=timeout,
    )
