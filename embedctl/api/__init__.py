"""Client and typed models for the region-partitioned Embeddable API."""

from __future__ import annotations

from .client import EmbeddableAPIClient
from .errors import APIError, APIResponseShapeError
from .models import (
    Connection,
    ConnectionConfigInput,
    ConnectionTestResult,
    ConnectionType,
    Embeddable,
    Environment,
    SecurityToken,
)

__all__ = [
    "APIError",
    "APIResponseShapeError",
    "Connection",
    "ConnectionConfigInput",
    "ConnectionTestResult",
    "ConnectionType",
    "Embeddable",
    "EmbeddableAPIClient",
    "Environment",
    "SecurityToken",
]
