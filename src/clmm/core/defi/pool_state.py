"""
Global pool state: price, active liquidity, fee accumulators and fee config.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..amm_exceptions import InvalidConfigError, InvalidTokenError
from ..config import BPS_DENOMINATOR, FEE_BOUNDS, MAX_TICK_SPACING
from .fixed_point import (
    MAX_SQRT_RATIO,
    MIN_SQRT_RATIO,
    Q64,
    mul_div,
    require_uint128,
    tick_to_sqrt_price,
)


@dataclass
class PoolState:
    """Mutable global state of a single pool."""

    admin: str
    token_a: str
    token_b: str
    fee_bps: int
    protocol_fee_bps: int
    tick_spacing: int

    sqrt_price: int  # Q64.64
    current_tick: int
    liquidity: int = 0  # Active liquidity at current_tick

    # Fee growth per unit of liquidity, Q64.64
    fee_growth_global_a: int = 0
    fee_growth_global_b: int = 0
    protocol_fees_a: int = 0
    protocol_fees_b: int = 0

    @classmethod
    def initialize(
        cls,
        admin: str,
        token_a: str,
        token_b: str,
        fee_bps: int,
        protocol_fee_bps: int,
        initial_sqrt_price: int,
        initial_tick: int,
        tick_spacing: int,
    ) -> "PoolState":
        """
        Validate pool parameters and build a fresh state with zeroed counters.

        Raises:
            InvalidConfigError: Fees outside the bounds table, bad spacing, or a
                tick that does not correspond to the sqrt price
            InvalidTokenError: Both sides are the same token
        """
        if token_a == token_b:
            raise InvalidTokenError("Pool tokens must differ", details={"token": token_a})

        for name, value in (("fee_bps", fee_bps), ("protocol_fee_bps", protocol_fee_bps)):
            low, high = FEE_BOUNDS[name]
            if not low <= value <= high:
                raise InvalidConfigError(
                    f"{name}={value} outside [{low}, {high}]",
                    details={name: value, "bounds": (low, high)},
                )

        if tick_spacing <= 0 or tick_spacing > MAX_TICK_SPACING:
            raise InvalidConfigError(
                f"tick_spacing={tick_spacing} outside [1, {MAX_TICK_SPACING}]",
                details={"tick_spacing": tick_spacing},
            )

        if not MIN_SQRT_RATIO <= initial_sqrt_price < MAX_SQRT_RATIO:
            raise InvalidConfigError(
                "Initial sqrt price out of range",
                details={"initial_sqrt_price": initial_sqrt_price},
            )

        # tick_to_sqrt_price raises TickOutOfRange for an out-of-bounds tick
        lower_bound = tick_to_sqrt_price(initial_tick)
        upper_bound = tick_to_sqrt_price(initial_tick + 1)
        if not lower_bound <= initial_sqrt_price < upper_bound:
            raise InvalidConfigError(
                "Initial tick does not match initial sqrt price",
                details={"initial_tick": initial_tick, "initial_sqrt_price": initial_sqrt_price},
            )

        return cls(
            admin=admin,
            token_a=token_a,
            token_b=token_b,
            fee_bps=fee_bps,
            protocol_fee_bps=protocol_fee_bps,
            tick_spacing=tick_spacing,
            sqrt_price=initial_sqrt_price,
            current_tick=initial_tick,
        )

    def split_fee(self, fee_amount: int) -> tuple[int, int]:
        """Split a swap fee into (protocol_share, lp_share)."""
        protocol_share = fee_amount * self.protocol_fee_bps // BPS_DENOMINATOR
        return protocol_share, fee_amount - protocol_share

    def credit_fee(self, zero_for_one: bool, fee_amount: int, liquidity: int) -> tuple[int, int]:
        """
        Book a step's fee: protocol share to the protocol balance, LP share to
        the global fee growth of the input token.

        Returns:
            (protocol_share, lp_share)
        """
        protocol_share, lp_share = self.split_fee(fee_amount)
        growth = mul_div(lp_share, Q64, liquidity) if liquidity > 0 else 0
        if zero_for_one:
            self.protocol_fees_a = require_uint128(self.protocol_fees_a + protocol_share, "protocol_fees_a")
            self.fee_growth_global_a = require_uint128(self.fee_growth_global_a + growth, "fee_growth_global_a")
        else:
            self.protocol_fees_b = require_uint128(self.protocol_fees_b + protocol_share, "protocol_fees_b")
            self.fee_growth_global_b = require_uint128(self.fee_growth_global_b + growth, "fee_growth_global_b")
        return protocol_share, lp_share
