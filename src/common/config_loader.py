"""
Loading of the JSON node configuration file.

The file lists the brokers to poll:

    {
        "port": "9090",
        "req_interval": "30s",
        "nodes": [
            {"name": "rabbit-a", "url": "http://rabbit-a:15672",
             "uname": "guest", "password": "guest", "req_interval": "10s"}
        ]
    }

Startup blocks in ``wait_for_config`` until the file parses; a broken or
missing file is retried forever on a fixed cooldown.
"""
import logging
import time
from pathlib import Path
from typing import Callable, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator
from tenacity import (
    Retrying,
    retry_if_exception_type,
    wait_fixed,
    before_sleep_log,
)

from src.common.exceptions import ConfigLoadError
from src.common.logging_config import get_logger

logger = get_logger(__name__)


class NodeConfig(BaseModel):
    """One broker node to poll"""
    name: str
    url: str
    uname: str = ""
    password: str = ""
    req_interval: Optional[str] = None

    class Config:
        frozen = True

    @field_validator("url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        if not value:
            raise ValueError("url must not be empty")
        return value.rstrip("/")

    def effective_interval(self, default: str) -> str:
        """Node-level interval override if set, else the global default."""
        return self.req_interval if self.req_interval else default


class ExporterConfig(BaseModel):
    """Top-level config file contents"""
    port: str
    req_interval: str = ""
    nodes: List[NodeConfig] = Field(default_factory=list)

    class Config:
        extra = "ignore"

    @field_validator("port", mode="before")
    @classmethod
    def _port_is_numeric(cls, value) -> str:
        text = str(value).strip()
        if not text.isdigit() or not 0 < int(text) < 65536:
            raise ValueError(f"port must be a number in 1-65535, got {value!r}")
        return text

    @property
    def port_number(self) -> int:
        return int(self.port)


def load_config(path: str) -> ExporterConfig:
    """
    Read and validate the config file once.

    Args:
        path: Path to the JSON config file

    Returns:
        Parsed ExporterConfig

    Raises:
        ConfigLoadError: File unreadable, not JSON, or fails validation
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigLoadError(path, e) from e

    try:
        config = ExporterConfig.model_validate_json(text)
    except ValidationError as e:
        raise ConfigLoadError(path, e) from e

    logger.info(f"Loaded config from {path}: {len(config.nodes)} node(s), port {config.port}")
    return config


def wait_for_config(
    path: str,
    cooldown: float = 10.0,
    sleep: Callable[[float], None] = time.sleep
) -> ExporterConfig:
    """
    Block until the config file loads successfully.

    Each failure is logged and retried after a fixed *cooldown*; there is no
    attempt limit.

    Args:
        path: Path to the JSON config file
        cooldown: Seconds to wait between attempts
        sleep: Sleep function (injectable for tests)

    Returns:
        Parsed ExporterConfig
    """
    retrying = Retrying(
        wait=wait_fixed(cooldown),
        retry=retry_if_exception_type(ConfigLoadError),
        before_sleep=before_sleep_log(logger, logging.ERROR),
        sleep=sleep,
        reraise=True,
    )
    return retrying(load_config, path)
