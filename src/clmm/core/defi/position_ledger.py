"""
Per-owner range positions and lazy fee accounting.

Fees are not distributed per swap. Each position remembers the fee growth
inside its range at its last touch; when the owner next interacts, the
difference times its liquidity is credited to ``tokens_owed``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..amm_exceptions import (
    AmountTooLowError,
    InsufficientLiquidityError,
    InvalidTickRangeError,
    InvariantViolationError,
    PositionNotFoundError,
    TickOutOfRangeError,
)
from .fixed_point import (
    MAX_TICK,
    MIN_TICK,
    add_liquidity_delta,
    get_amounts_for_liquidity,
    require_uint128,
    tick_to_sqrt_price,
)
from .pool_state import PoolState
from .tick_ledger import TickLedger

logger = logging.getLogger(__name__)

PositionKey = tuple[str, int, int]


@dataclass
class Position:
    """
    Liquidity position within a price range.

    Represents an owner's share of liquidity between two ticks.
    """

    owner: str
    lower_tick: int
    upper_tick: int
    liquidity: int = 0

    # Fee tracking (Q64.64 snapshots, owed amounts in token units)
    fee_growth_inside_last_a: int = 0
    fee_growth_inside_last_b: int = 0
    tokens_owed_a: int = 0
    tokens_owed_b: int = 0

    @property
    def key(self) -> PositionKey:
        return (self.owner, self.lower_tick, self.upper_tick)

    def is_in_range(self, current_tick: int) -> bool:
        """Check if current price is within position's range."""
        return self.lower_tick <= current_tick < self.upper_tick


def validate_tick_range(lower_tick: int, upper_tick: int, tick_spacing: int) -> None:
    """Require an ordered, in-bounds range aligned to ``tick_spacing``."""
    if lower_tick >= upper_tick:
        raise InvalidTickRangeError(
            "Lower tick must be below upper tick",
            details={"lower_tick": lower_tick, "upper_tick": upper_tick},
        )
    if lower_tick < MIN_TICK or upper_tick > MAX_TICK:
        raise TickOutOfRangeError(
            "Position range outside tick bounds",
            details={"lower_tick": lower_tick, "upper_tick": upper_tick},
        )
    if lower_tick % tick_spacing or upper_tick % tick_spacing:
        raise InvalidTickRangeError(
            f"Ticks must be multiples of tick spacing {tick_spacing}",
            details={"lower_tick": lower_tick, "upper_tick": upper_tick, "tick_spacing": tick_spacing},
        )


@dataclass
class PositionLedger:
    """All positions of a pool, keyed by (owner, lower_tick, upper_tick)."""

    positions: dict[PositionKey, Position] = field(default_factory=dict)

    def get(self, owner: str, lower_tick: int, upper_tick: int) -> Position | None:
        return self.positions.get((owner, lower_tick, upper_tick))

    def require(self, owner: str, lower_tick: int, upper_tick: int) -> Position:
        position = self.get(owner, lower_tick, upper_tick)
        if position is None:
            raise PositionNotFoundError(
                "Position not found",
                details={"owner": owner, "lower_tick": lower_tick, "upper_tick": upper_tick},
            )
        return position

    def positions_for(self, owner: str) -> list[Position]:
        return [p for p in self.positions.values() if p.owner == owner]

    def active_liquidity(self, current_tick: int) -> int:
        """Sum of liquidity over positions whose range covers ``current_tick``."""
        return sum(p.liquidity for p in self.positions.values() if p.is_in_range(current_tick))

    # ==================== Fee Accrual ====================

    def _accrue(self, position: Position, inside_a: int, inside_b: int) -> None:
        delta_a = inside_a - position.fee_growth_inside_last_a
        delta_b = inside_b - position.fee_growth_inside_last_b

        if position.liquidity > 0:
            if delta_a < 0 or delta_b < 0:
                raise InvariantViolationError(
                    "Fee growth inside decreased for a live position",
                    details={"position": position.key, "delta_a": delta_a, "delta_b": delta_b},
                )
            position.tokens_owed_a = require_uint128(
                position.tokens_owed_a + ((position.liquidity * delta_a) >> 64), "tokens_owed_a"
            )
            position.tokens_owed_b = require_uint128(
                position.tokens_owed_b + ((position.liquidity * delta_b) >> 64), "tokens_owed_b"
            )

        position.fee_growth_inside_last_a = inside_a
        position.fee_growth_inside_last_b = inside_b

    def accrue_and_snapshot(
        self,
        owner: str,
        lower_tick: int,
        upper_tick: int,
        pool_state: PoolState,
        ticks: TickLedger,
    ) -> Position:
        """Credit fees earned since the last touch and reset the snapshot."""
        position = self.require(owner, lower_tick, upper_tick)
        inside_a, inside_b = ticks.fee_growth_inside(
            lower_tick,
            upper_tick,
            pool_state.current_tick,
            pool_state.fee_growth_global_a,
            pool_state.fee_growth_global_b,
        )
        self._accrue(position, inside_a, inside_b)
        return position

    def pending_fees(self, position: Position, pool_state: PoolState, ticks: TickLedger) -> tuple[int, int]:
        """Owed plus not-yet-accrued fees, without touching the position."""
        if position.liquidity == 0:
            return position.tokens_owed_a, position.tokens_owed_b
        inside_a, inside_b = ticks.fee_growth_inside(
            position.lower_tick,
            position.upper_tick,
            pool_state.current_tick,
            pool_state.fee_growth_global_a,
            pool_state.fee_growth_global_b,
        )
        return (
            position.tokens_owed_a
            + ((position.liquidity * max(inside_a - position.fee_growth_inside_last_a, 0)) >> 64),
            position.tokens_owed_b
            + ((position.liquidity * max(inside_b - position.fee_growth_inside_last_b, 0)) >> 64),
        )

    # ==================== Liquidity ====================

    def modify_liquidity(
        self,
        owner: str,
        lower_tick: int,
        upper_tick: int,
        liquidity_delta: int,
        pool_state: PoolState,
        ticks: TickLedger,
    ) -> tuple[int, int]:
        """
        Add (positive delta) or remove (negative delta) liquidity from a position.

        Args:
            owner: Position owner
            lower_tick: Lower boundary tick
            upper_tick: Upper boundary tick
            liquidity_delta: Signed liquidity change
            pool_state: Pool state; active liquidity is adjusted in place
            ticks: Tick ledger; boundary ticks are updated in place

        Returns:
            (amount_a, amount_b) owed to the pool for a deposit (rounded up) or
            owed to the owner for a withdrawal (rounded down)

        Raises:
            InvalidTickRangeError: Unordered or misaligned range
            TickOutOfRangeError: Range outside tick bounds
            AmountTooLowError: Zero delta
            InsufficientLiquidityError: Removal exceeds the position's liquidity
        """
        validate_tick_range(lower_tick, upper_tick, pool_state.tick_spacing)
        if liquidity_delta == 0:
            raise AmountTooLowError("Liquidity delta must be non-zero")

        key = (owner, lower_tick, upper_tick)
        position = self.positions.get(key)

        current_tick = pool_state.current_tick
        globals_ = (pool_state.fee_growth_global_a, pool_state.fee_growth_global_b)

        if liquidity_delta < 0:
            if position is None or position.liquidity < -liquidity_delta:
                raise InsufficientLiquidityError(
                    "Removal exceeds position liquidity",
                    details={
                        "position": key,
                        "liquidity": position.liquidity if position else 0,
                        "requested": -liquidity_delta,
                    },
                )
            # Accrue while both boundary ticks still carry their outside growth
            self._accrue(position, *ticks.fee_growth_inside(lower_tick, upper_tick, current_tick, *globals_))
            ticks.update_tick(lower_tick, liquidity_delta, False, current_tick, *globals_)
            ticks.update_tick(upper_tick, liquidity_delta, True, current_tick, *globals_)
        else:
            if position is None:
                position = Position(owner=owner, lower_tick=lower_tick, upper_tick=upper_tick)
                self.positions[key] = position
            # Boundary ticks must be bootstrapped before the inside snapshot is read
            ticks.update_tick(lower_tick, liquidity_delta, False, current_tick, *globals_)
            ticks.update_tick(upper_tick, liquidity_delta, True, current_tick, *globals_)
            self._accrue(position, *ticks.fee_growth_inside(lower_tick, upper_tick, current_tick, *globals_))

        position.liquidity = add_liquidity_delta(position.liquidity, liquidity_delta)

        if position.is_in_range(current_tick):
            pool_state.liquidity = add_liquidity_delta(pool_state.liquidity, liquidity_delta)

        amount_a, amount_b = get_amounts_for_liquidity(
            pool_state.sqrt_price,
            tick_to_sqrt_price(lower_tick),
            tick_to_sqrt_price(upper_tick),
            abs(liquidity_delta),
            round_up=liquidity_delta > 0,
        )

        logger.debug(
            "Position liquidity modified",
            extra={
                "event": "clmm.position_modified",
                "owner": owner,
                "lower_tick": lower_tick,
                "upper_tick": upper_tick,
                "liquidity_delta": liquidity_delta,
                "liquidity": position.liquidity,
            },
        )
        return amount_a, amount_b

    # ==================== Collection ====================

    def collect(
        self,
        owner: str,
        lower_tick: int,
        upper_tick: int,
        amount_a_requested: int,
        amount_b_requested: int,
    ) -> tuple[int, int]:
        """
        Drain up to the requested amounts from a position's owed balances.

        Returns:
            (amount_a, amount_b) actually drained; the rest stays owed
        """
        if amount_a_requested < 0 or amount_b_requested < 0:
            raise AmountTooLowError(
                "Requested amounts must be non-negative",
                details={"amount_a_requested": amount_a_requested, "amount_b_requested": amount_b_requested},
            )
        position = self.require(owner, lower_tick, upper_tick)
        amount_a = min(amount_a_requested, position.tokens_owed_a)
        amount_b = min(amount_b_requested, position.tokens_owed_b)
        position.tokens_owed_a -= amount_a
        position.tokens_owed_b -= amount_b
        return amount_a, amount_b
