"""
CLMM engine configuration.

All tunables are read from ``CLMM_*`` environment variables at import time
and validated; malformed values raise ``ConfigurationError`` so a bad
deployment fails on startup rather than mid-swap.
"""

from __future__ import annotations

import logging
import os
from enum import Enum

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def _get_int_env(
    env_var: str,
    default: int,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    """Read an integer from the environment, enforcing optional bounds."""
    raw = os.getenv(env_var, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{env_var} must be an integer, got {raw!r}") from exc
    if minimum is not None and value < minimum:
        raise ConfigurationError(f"{env_var} must be >= {minimum}, got {value}")
    if maximum is not None and value > maximum:
        raise ConfigurationError(f"{env_var} must be <= {maximum}, got {value}")
    if value != default:
        logger.info(
            "Config override %s=%d",
            env_var,
            value,
            extra={"event": "config.override", "env_var": env_var, "value": value},
        )
    return value


ENVIRONMENT = os.getenv("CLMM_ENVIRONMENT", "development").strip() or "development"
LOG_LEVEL = os.getenv("CLMM_LOG_LEVEL", "INFO").strip().upper() or "INFO"
if LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
    raise ConfigurationError(f"CLMM_LOG_LEVEL must be a standard level name, got {LOG_LEVEL!r}")

# Basis-point denominator shared by swap and protocol fees
BPS_DENOMINATOR = 10_000

# Fee bounds table checked at pool initialization: name -> (min, max) inclusive.
# The swap fee must stay strictly below 100% because fee-on-input divides by
# (10000 - fee_bps).
MIN_FEE_BPS = _get_int_env("CLMM_MIN_FEE_BPS", 1, minimum=0, maximum=BPS_DENOMINATOR - 1)
MAX_FEE_BPS = _get_int_env("CLMM_MAX_FEE_BPS", 1_000, minimum=MIN_FEE_BPS, maximum=BPS_DENOMINATOR - 1)
MAX_PROTOCOL_FEE_BPS = _get_int_env(
    "CLMM_MAX_PROTOCOL_FEE_BPS", BPS_DENOMINATOR, minimum=0, maximum=BPS_DENOMINATOR
)

FEE_BOUNDS: dict[str, tuple[int, int]] = {
    "fee_bps": (MIN_FEE_BPS, MAX_FEE_BPS),
    "protocol_fee_bps": (0, MAX_PROTOCOL_FEE_BPS),
}

MAX_TICK_SPACING = _get_int_env("CLMM_MAX_TICK_SPACING", 16_384, minimum=1)

# Smallest liquidity a single deposit may mint
MIN_LIQUIDITY = _get_int_env("CLMM_MIN_LIQUIDITY", 1_000, minimum=1)

# Dust threshold: a positive swap output below this is rejected
MIN_SWAP_OUTPUT = _get_int_env("CLMM_MIN_SWAP_OUTPUT", 10, minimum=0)

# Upper bound on swap loop iterations (one per initialized tick crossed)
MAX_SWAP_STEPS = _get_int_env("CLMM_MAX_SWAP_STEPS", 4_096, minimum=1)

# Default TWAP observation window
TWAP_WINDOW_SECONDS = _get_int_env("CLMM_TWAP_WINDOW_SECONDS", 1_800, minimum=1)


class FeeTier(Enum):
    """Standard fee tiers with their conventional tick spacing."""
    LOWEST = (1, 1)       # 0.01% fee, 1 tick spacing
    LOW = (5, 10)         # 0.05% fee, 10 tick spacing
    STANDARD = (30, 60)   # 0.30% fee, 60 tick spacing
    HIGH = (100, 200)     # 1.00% fee, 200 tick spacing

    def __init__(self, fee_bps: int, tick_spacing: int):
        self.fee_bps = fee_bps
        self.tick_spacing = tick_spacing

    @classmethod
    def from_fee(cls, fee_bps: int) -> "FeeTier":
        for tier in cls:
            if tier.fee_bps == fee_bps:
                return tier
        raise ConfigurationError(f"No standard fee tier for {fee_bps} bps")
