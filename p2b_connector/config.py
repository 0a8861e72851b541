"""
P2B Connector - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the P2B connector.

CRITICAL CONSTRAINTS:
- No blind retries (none at all in this layer)
- Credentials come from arguments or the environment,
  never from source

============================================================
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from dotenv import load_dotenv

from .signing import PRIVATE_API, PUBLIC_API


# ============================================================
# ENDPOINTS
# ============================================================

PUBLIC_URL = "https://api.p2pb2b.com/api/v2/public"
PRIVATE_URL = "https://api.p2pb2b.com/api/v2"


# ============================================================
# FEE SCHEDULE
# ============================================================

# (30-day volume tier, fee percent)
TAKER_FEE_TIERS: List[Tuple[Decimal, Decimal]] = [
    (Decimal("0"), Decimal("0.2")),
    (Decimal("1"), Decimal("0.19")),
    (Decimal("5"), Decimal("0.18")),
    (Decimal("10"), Decimal("0.17")),
    (Decimal("25"), Decimal("0.16")),
    (Decimal("75"), Decimal("0.15")),
    (Decimal("100"), Decimal("0.14")),
    (Decimal("150"), Decimal("0.13")),
    (Decimal("300"), Decimal("0.12")),
    (Decimal("450"), Decimal("0.11")),
    (Decimal("500"), Decimal("0.1")),
]

MAKER_FEE_TIERS: List[Tuple[Decimal, Decimal]] = [
    (Decimal("0"), Decimal("0.2")),
    (Decimal("1"), Decimal("0.18")),
    (Decimal("5"), Decimal("0.16")),
    (Decimal("10"), Decimal("0.14")),
    (Decimal("25"), Decimal("0.12")),
    (Decimal("75"), Decimal("0.1")),
    (Decimal("100"), Decimal("0.08")),
    (Decimal("150"), Decimal("0.06")),
    (Decimal("300"), Decimal("0.04")),
    (Decimal("450"), Decimal("0.02")),
    (Decimal("500"), Decimal("0.01")),
]


def fee_for_volume(tiers: List[Tuple[Decimal, Decimal]], volume: Decimal) -> Decimal:
    """Fee percent of the highest tier whose threshold volume reaches."""
    fee = tiers[0][1]
    for threshold, tier_fee in tiers:
        if volume >= threshold:
            fee = tier_fee
    return fee


# ============================================================
# TIMEOUT CONFIGURATION
# ============================================================

@dataclass
class TimeoutConfig:
    """
    Timeout configuration.
    """

    connection_timeout_seconds: float = 5.0
    """Connection timeout."""

    read_timeout_seconds: float = 30.0
    """Read timeout for responses."""


# ============================================================
# ADAPTER CONFIGURATION
# ============================================================

@dataclass
class P2BConfig:
    """
    Configuration for the P2B adapter.

    Explicit credentials win over the environment.
    """

    api_key: Optional[str] = None
    api_secret: Optional[str] = None

    api_key_env: str = "P2B_API_KEY"
    api_secret_env: str = "P2B_API_SECRET"

    public_url: str = PUBLIC_URL
    private_url: str = PRIVATE_URL

    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None, **overrides) -> "P2BConfig":
        """
        Create config from environment variables.

        Loads a .env file first when one is present.
        """
        load_dotenv(dotenv_path)
        config = cls(**overrides)
        if config.api_key is None:
            config.api_key = os.environ.get(config.api_key_env)
        if config.api_secret is None:
            config.api_secret = os.environ.get(config.api_secret_env)
        return config

    @property
    def api_urls(self) -> Dict[str, str]:
        return {
            PUBLIC_API: self.public_url.rstrip("/"),
            PRIVATE_API: self.private_url.rstrip("/"),
        }
