"""
Custom exceptions for the broker exporter.
Hierarchical exception structure so poll loops can branch on failure kind.
"""
from typing import Optional


class BaseExporterException(Exception):
    """Base exception for the broker exporter"""
    pass


class ConfigLoadError(BaseExporterException):
    """Configuration file is unreadable or does not validate"""

    def __init__(self, path: str, cause: Exception):
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to load config from {path}: {cause}")


class FetchError(BaseExporterException):
    """Transport, authentication or HTTP status failure talking to a broker"""

    def __init__(
        self,
        url: str,
        cause: Exception,
        status_code: Optional[int] = None
    ):
        self.url = url
        self.cause = cause
        self.status_code = status_code
        detail = f"HTTP {status_code}" if status_code is not None else str(cause)
        super().__init__(f"GET {url} failed: {detail}")


class DecodeError(BaseExporterException):
    """Response body is not JSON or does not have the expected shape"""
    pass


class EmptySnapshotError(DecodeError):
    """Queue listing is empty, so no node label can be derived from it"""
    pass
