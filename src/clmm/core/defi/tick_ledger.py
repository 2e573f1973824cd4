"""
Tick-indexed liquidity ledger.

Each initialized tick records how much liquidity references it (gross), how
active liquidity changes when the price crosses it (net), and the fee growth
accumulated on the side of the tick opposite to the current price
("outside"). Initialized ticks are additionally kept in a sorted index so the
next boundary in either direction is found by bisection.
"""

from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass, field
from enum import Enum

from ..amm_exceptions import InvariantViolationError, MathOverflowError
from .fixed_point import MAX_TICK, MAX_UINT128, MIN_TICK, require_int128

logger = logging.getLogger(__name__)


class Direction(Enum):
    """Price direction of a tick search."""
    DOWN = "down"  # token A in, price falls
    UP = "up"      # token B in, price rises

    @classmethod
    def for_swap(cls, zero_for_one: bool) -> "Direction":
        return cls.DOWN if zero_for_one else cls.UP


@dataclass
class TickInfo:
    """Information stored for each initialized tick."""
    liquidity_gross: int = 0  # Total liquidity referencing this tick
    liquidity_net: int = 0    # Net liquidity change when crossing left to right
    fee_growth_outside_a: int = 0
    fee_growth_outside_b: int = 0

    @property
    def initialized(self) -> bool:
        return self.liquidity_gross > 0


def max_liquidity_per_tick(tick_spacing: int) -> int:
    """Largest gross liquidity a single tick may carry for a given spacing."""
    min_tick = -(MAX_TICK // tick_spacing) * tick_spacing
    max_tick = (MAX_TICK // tick_spacing) * tick_spacing
    num_ticks = (max_tick - min_tick) // tick_spacing + 1
    return MAX_UINT128 // num_ticks


@dataclass
class TickLedger:
    """Sparse map of tick index -> TickInfo plus a sorted index of initialized ticks."""

    tick_spacing: int
    ticks: dict[int, TickInfo] = field(default_factory=dict)
    _sorted: list[int] = field(default_factory=list, init=False, repr=False)
    max_liquidity: int = 0

    def __post_init__(self) -> None:
        if not self.max_liquidity:
            self.max_liquidity = max_liquidity_per_tick(self.tick_spacing)
        self._sorted = sorted(t for t, info in self.ticks.items() if info.initialized)

    # ==================== Views ====================

    def get_tick(self, tick: int) -> TickInfo:
        """Return the stored info, or an empty record for an uninitialized tick."""
        return self.ticks.get(tick) or TickInfo()

    def is_initialized(self, tick: int) -> bool:
        info = self.ticks.get(tick)
        return info is not None and info.initialized

    def initialized_ticks(self) -> list[int]:
        return list(self._sorted)

    def liquidity_net_sum(self) -> int:
        return sum(info.liquidity_net for info in self.ticks.values())

    # ==================== Mutation ====================

    def update_tick(
        self,
        tick: int,
        liquidity_delta: int,
        upper: bool,
        current_tick: int,
        fee_growth_global_a: int,
        fee_growth_global_b: int,
    ) -> bool:
        """
        Apply a position's liquidity change to one of its boundary ticks.

        Args:
            tick: Tick index being updated
            liquidity_delta: Signed change in the position's liquidity
            upper: True if ``tick`` is the position's upper boundary
            current_tick: Pool's current tick
            fee_growth_global_a: Current global fee growth for token A
            fee_growth_global_b: Current global fee growth for token B

        Returns:
            True if the tick flipped between initialized and uninitialized
        """
        if tick < MIN_TICK or tick > MAX_TICK or tick % self.tick_spacing:
            raise InvariantViolationError(
                f"Tick {tick} is not a usable boundary",
                details={"tick": tick, "tick_spacing": self.tick_spacing},
            )

        info = self.ticks.get(tick) or TickInfo()
        gross_before = info.liquidity_gross
        gross_after = gross_before + liquidity_delta

        if gross_after < 0:
            raise InvariantViolationError(
                f"Tick {tick} gross liquidity would go negative",
                details={"tick": tick, "gross": gross_before, "delta": liquidity_delta},
            )
        if gross_after > self.max_liquidity:
            raise MathOverflowError(
                f"Tick {tick} exceeds max liquidity per tick",
                details={"tick": tick, "gross": gross_after, "max": self.max_liquidity},
            )

        flipped = (gross_after == 0) != (gross_before == 0)

        if gross_before == 0 and gross_after > 0:
            # All growth so far is assumed to have happened below the tick
            if tick <= current_tick:
                info.fee_growth_outside_a = fee_growth_global_a
                info.fee_growth_outside_b = fee_growth_global_b
            else:
                info.fee_growth_outside_a = 0
                info.fee_growth_outside_b = 0

        info.liquidity_gross = gross_after
        if upper:
            info.liquidity_net = require_int128(info.liquidity_net - liquidity_delta, "liquidity_net")
        else:
            info.liquidity_net = require_int128(info.liquidity_net + liquidity_delta, "liquidity_net")

        if gross_after == 0:
            if info.liquidity_net != 0:
                raise InvariantViolationError(
                    f"Tick {tick} cleared with non-zero net liquidity",
                    details={"tick": tick, "liquidity_net": info.liquidity_net},
                )
            self.ticks.pop(tick, None)
            index = bisect.bisect_left(self._sorted, tick)
            if index < len(self._sorted) and self._sorted[index] == tick:
                del self._sorted[index]
        else:
            self.ticks[tick] = info
            if gross_before == 0:
                bisect.insort(self._sorted, tick)

        if flipped:
            logger.debug(
                "Tick %d %s",
                tick,
                "initialized" if gross_after else "cleared",
                extra={"event": "clmm.tick_flip", "tick": tick, "gross": gross_after},
            )
        return flipped

    def cross_tick(self, tick: int, fee_growth_global_a: int, fee_growth_global_b: int) -> int:
        """
        Flip a tick's outside fee growth as the price crosses it.

        Returns:
            The tick's liquidity_net
        """
        info = self.ticks.get(tick)
        if info is None or not info.initialized:
            raise InvariantViolationError(
                f"Cannot cross uninitialized tick {tick}", details={"tick": tick}
            )
        info.fee_growth_outside_a = fee_growth_global_a - info.fee_growth_outside_a
        info.fee_growth_outside_b = fee_growth_global_b - info.fee_growth_outside_b
        if info.fee_growth_outside_a < 0 or info.fee_growth_outside_b < 0:
            raise InvariantViolationError(
                f"Tick {tick} outside fee growth exceeds global growth",
                details={"tick": tick},
            )
        return info.liquidity_net

    # ==================== Queries ====================

    def next_initialized_tick(self, from_tick: int, direction: Direction) -> int | None:
        """
        Find the nearest initialized tick from ``from_tick``.

        Searching down includes ``from_tick`` itself (the price may sit exactly
        on it); searching up starts strictly above it.
        """
        index = bisect.bisect_right(self._sorted, from_tick)
        if direction is Direction.DOWN:
            return self._sorted[index - 1] if index > 0 else None
        return self._sorted[index] if index < len(self._sorted) else None

    def fee_growth_inside(
        self,
        lower_tick: int,
        upper_tick: int,
        current_tick: int,
        fee_growth_global_a: int,
        fee_growth_global_b: int,
    ) -> tuple[int, int]:
        """
        Fee growth per unit of liquidity accrued inside [lower_tick, upper_tick).

        inside = global - below(lower) - above(upper). The absolute value may be
        negative; only differences between two readings are meaningful.
        """
        lower = self.get_tick(lower_tick)
        upper = self.get_tick(upper_tick)

        if current_tick >= lower_tick:
            below_a, below_b = lower.fee_growth_outside_a, lower.fee_growth_outside_b
        else:
            below_a = fee_growth_global_a - lower.fee_growth_outside_a
            below_b = fee_growth_global_b - lower.fee_growth_outside_b

        if current_tick < upper_tick:
            above_a, above_b = upper.fee_growth_outside_a, upper.fee_growth_outside_b
        else:
            above_a = fee_growth_global_a - upper.fee_growth_outside_a
            above_b = fee_growth_global_b - upper.fee_growth_outside_b

        return (
            fee_growth_global_a - below_a - above_a,
            fee_growth_global_b - below_b - above_b,
        )
