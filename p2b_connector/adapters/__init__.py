"""
P2B Connector - Adapters Package.

============================================================
PURPOSE
============================================================
Transport shell around the normalization and signing core.

AVAILABLE ADAPTERS:
- P2BAdapter: P2B spot REST API v2 (aiohttp)

UTILITIES:
- AdapterMetrics: Metrics collection
- AdapterLogger: Secure logging

============================================================
"""

# Base
from .base import ExchangeAdapter

# Adapters
from .p2b import P2BAdapter

# Metrics
from .metrics import (
    AdapterMetrics,
    LatencyStats,
)

# Logging
from .logging_utils import (
    AdapterLogger,
    mask_headers,
    mask_params,
    mask_url,
    mask_value,
)


__all__ = [
    # Base
    "ExchangeAdapter",
    # Adapters
    "P2BAdapter",
    # Metrics
    "AdapterMetrics",
    "LatencyStats",
    # Logging
    "AdapterLogger",
    "mask_headers",
    "mask_params",
    "mask_url",
    "mask_value",
]
