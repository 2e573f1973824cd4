"""
Multi-tick swap engine.

A swap walks the price from boundary to boundary. Each iteration is the same
sequence of transitions:

    locate target -> compute step -> account step / apply fee -> advance (cross)

and the loop ends when the specified amount is consumed or the price limit is
reached. ``simulate`` works on a copy of the pool state and only *records*
tick crossings; nothing is written until ``commit``, so a rejected swap (or a
preview) leaves the pool untouched.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field

from ..amm_exceptions import (
    AmountTooLowError,
    DustOutputError,
    InvariantViolationError,
    NoLiquidityError,
    PriceLimitError,
    SlippageExceededError,
)
from ..config import MAX_SWAP_STEPS, MIN_SWAP_OUTPUT
from .fixed_point import (
    MAX_SQRT_RATIO,
    MIN_SQRT_RATIO,
    SwapStep,
    add_liquidity_delta,
    compute_swap_step,
    price_impact_bps,
    require_uint128,
    sqrt_price_to_tick,
    tick_to_sqrt_price,
)
from .pool_state import PoolState
from .tick_ledger import Direction, TickLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TickCrossing:
    """A boundary crossed during a swap, with the global growth at that moment."""
    tick: int
    liquidity_net: int
    fee_growth_global_a: int
    fee_growth_global_b: int


@dataclass
class SwapResult:
    """Outcome of a simulated swap; ``state`` is the post-swap working copy."""

    zero_for_one: bool
    exact_input: bool
    amount_in: int       # Paid by the trader, fee included
    amount_out: int      # Paid to the trader
    amount_swapped: int  # Input that moved the price (amount_in - fee_amount)
    fee_amount: int
    protocol_fee: int
    sqrt_price_before: int
    sqrt_price_after: int
    tick_before: int
    tick_after: int
    liquidity_after: int
    steps: int
    crossings: list[TickCrossing] = field(default_factory=list)
    state: PoolState | None = field(default=None, repr=False)

    @property
    def lp_fee(self) -> int:
        return self.fee_amount - self.protocol_fee

    @property
    def price_impact_bps(self) -> int:
        return price_impact_bps(self.sqrt_price_before, self.sqrt_price_after)


@dataclass
class _SwapCursor:
    sqrt_price: int
    tick: int
    liquidity: int
    amount_remaining: int
    amount_calculated: int = 0
    amount_swapped: int = 0
    fee_amount: int = 0
    protocol_fee: int = 0
    steps: int = 0


def resolve_price_limit(sqrt_price: int, zero_for_one: bool, sqrt_price_limit: int | None) -> int:
    """
    Validate a caller's sqrt price limit; 0/None means "no limit".

    Raises:
        PriceLimitError: Limit on the wrong side of the price or outside the ratio bounds
    """
    if not sqrt_price_limit:
        return MIN_SQRT_RATIO + 1 if zero_for_one else MAX_SQRT_RATIO - 1

    if zero_for_one:
        valid = MIN_SQRT_RATIO < sqrt_price_limit < sqrt_price
    else:
        valid = sqrt_price < sqrt_price_limit < MAX_SQRT_RATIO
    if not valid:
        raise PriceLimitError(
            "Sqrt price limit invalid for swap direction",
            details={
                "sqrt_price": sqrt_price,
                "sqrt_price_limit": sqrt_price_limit,
                "zero_for_one": zero_for_one,
            },
        )
    return sqrt_price_limit


class SwapEngine:
    """Runs the swap state machine against one pool's state and tick ledger."""

    def __init__(
        self,
        state: PoolState,
        ticks: TickLedger,
        max_steps: int = MAX_SWAP_STEPS,
        min_output_amount: int = MIN_SWAP_OUTPUT,
    ) -> None:
        self.state = state
        self.ticks = ticks
        self.max_steps = max_steps
        self.min_output_amount = min_output_amount

    # ==================== Simulation ====================

    def simulate(
        self,
        zero_for_one: bool,
        amount_specified: int,
        sqrt_price_limit: int | None = 0,
        min_amount_out: int = 0,
        max_amount_in: int | None = None,
    ) -> SwapResult:
        """
        Run a swap without writing to the pool.

        Args:
            zero_for_one: True for token A -> token B (price falls)
            amount_specified: Positive for exact input, negative for exact output
            sqrt_price_limit: Price the swap may not pass (0 for none)
            min_amount_out: Reject if the output falls below this
            max_amount_in: Reject if the input (fee included) exceeds this

        Returns:
            SwapResult carrying the working state to hand to ``commit``
        """
        if amount_specified == 0:
            raise AmountTooLowError("Swap amount must be non-zero")

        limit = resolve_price_limit(self.state.sqrt_price, zero_for_one, sqrt_price_limit)
        exact_input = amount_specified > 0
        direction = Direction.for_swap(zero_for_one)
        working = dataclasses.replace(self.state)
        cursor = _SwapCursor(
            sqrt_price=working.sqrt_price,
            tick=working.current_tick,
            liquidity=working.liquidity,
            amount_remaining=amount_specified,
        )
        crossings: list[TickCrossing] = []

        while cursor.amount_remaining != 0 and cursor.sqrt_price != limit:
            cursor.steps += 1
            if cursor.steps > self.max_steps:
                raise InvariantViolationError(
                    "Swap exceeded step limit",
                    details={"max_steps": self.max_steps},
                )
            next_tick, tick_price, target = self._locate_target(cursor, direction, limit)
            step = self._compute_step(cursor, target, working.fee_bps)
            self._account_step(cursor, step, exact_input)
            self._apply_fee(working, cursor, step, zero_for_one)
            self._advance(cursor, step, next_tick, tick_price, zero_for_one, working, crossings)

        working.sqrt_price = cursor.sqrt_price
        working.current_tick = cursor.tick
        working.liquidity = cursor.liquidity

        if exact_input:
            amount_in = amount_specified - cursor.amount_remaining
            amount_out = cursor.amount_calculated
        else:
            amount_in = cursor.amount_calculated
            amount_out = cursor.amount_remaining - amount_specified

        result = SwapResult(
            zero_for_one=zero_for_one,
            exact_input=exact_input,
            amount_in=require_uint128(amount_in, "amount_in"),
            amount_out=require_uint128(amount_out, "amount_out"),
            amount_swapped=cursor.amount_swapped,
            fee_amount=cursor.fee_amount,
            protocol_fee=cursor.protocol_fee,
            sqrt_price_before=self.state.sqrt_price,
            sqrt_price_after=cursor.sqrt_price,
            tick_before=self.state.current_tick,
            tick_after=cursor.tick,
            liquidity_after=cursor.liquidity,
            steps=cursor.steps,
            crossings=crossings,
            state=working,
        )
        self._check_guards(result, min_amount_out, max_amount_in)
        return result

    def _locate_target(
        self, cursor: _SwapCursor, direction: Direction, limit: int
    ) -> tuple[int | None, int, int]:
        next_tick = self.ticks.next_initialized_tick(cursor.tick, direction)
        if next_tick is None:
            if cursor.liquidity == 0:
                raise NoLiquidityError(
                    "No liquidity left in swap direction",
                    details={"tick": cursor.tick, "direction": direction.value},
                )
            tick_price = MIN_SQRT_RATIO if direction is Direction.DOWN else MAX_SQRT_RATIO
        else:
            tick_price = tick_to_sqrt_price(next_tick)

        if direction is Direction.DOWN:
            target = max(tick_price, limit)
        else:
            target = min(tick_price, limit)
        return next_tick, tick_price, target

    @staticmethod
    def _compute_step(cursor: _SwapCursor, target: int, fee_bps: int) -> SwapStep:
        if cursor.liquidity == 0:
            # Empty gap between ranges: the price jumps for free
            return SwapStep(target, 0, 0, 0)
        return compute_swap_step(
            cursor.sqrt_price, target, cursor.liquidity, cursor.amount_remaining, fee_bps
        )

    @staticmethod
    def _account_step(cursor: _SwapCursor, step: SwapStep, exact_input: bool) -> None:
        if exact_input:
            cursor.amount_remaining -= step.amount_in + step.fee_amount
            cursor.amount_calculated += step.amount_out
        else:
            cursor.amount_remaining += step.amount_out
            cursor.amount_calculated += step.amount_in + step.fee_amount
        cursor.amount_swapped += step.amount_in

    @staticmethod
    def _apply_fee(working: PoolState, cursor: _SwapCursor, step: SwapStep, zero_for_one: bool) -> None:
        if step.fee_amount == 0:
            return
        protocol_share, _ = working.credit_fee(zero_for_one, step.fee_amount, cursor.liquidity)
        cursor.fee_amount += step.fee_amount
        cursor.protocol_fee += protocol_share

    def _advance(
        self,
        cursor: _SwapCursor,
        step: SwapStep,
        next_tick: int | None,
        tick_price: int,
        zero_for_one: bool,
        working: PoolState,
        crossings: list[TickCrossing],
    ) -> None:
        """
        Move the cursor to the step's price, crossing ``next_tick`` if reached.

        After a downward crossing the price sits exactly on the crossed tick's
        price and the cursor moves to ``next_tick - 1``: the boundary price
        belongs to the lower tick, so ``sqrt_price == tick_to_sqrt_price(tick + 1)``
        is a valid resting state.
        """
        if next_tick is not None and step.sqrt_price_next == tick_price:
            liquidity_net = self.ticks.get_tick(next_tick).liquidity_net
            crossings.append(
                TickCrossing(
                    tick=next_tick,
                    liquidity_net=liquidity_net,
                    fee_growth_global_a=working.fee_growth_global_a,
                    fee_growth_global_b=working.fee_growth_global_b,
                )
            )
            delta = -liquidity_net if zero_for_one else liquidity_net
            cursor.liquidity = add_liquidity_delta(cursor.liquidity, delta)
            cursor.tick = next_tick - 1 if zero_for_one else next_tick
        elif step.sqrt_price_next != cursor.sqrt_price:
            cursor.tick = sqrt_price_to_tick(step.sqrt_price_next)
        cursor.sqrt_price = step.sqrt_price_next

    def _check_guards(self, result: SwapResult, min_amount_out: int, max_amount_in: int | None) -> None:
        if result.amount_out == 0:
            raise AmountTooLowError("Swap produces no output", details={"amount_in": result.amount_in})
        if result.amount_out < min_amount_out:
            raise SlippageExceededError(
                "Output below minimum",
                details={"amount_out": result.amount_out, "min_amount_out": min_amount_out},
            )
        if max_amount_in is not None and result.amount_in > max_amount_in:
            raise SlippageExceededError(
                "Input above maximum",
                details={"amount_in": result.amount_in, "max_amount_in": max_amount_in},
            )
        if result.amount_out < self.min_output_amount:
            raise DustOutputError(
                "Output below dust threshold",
                details={"amount_out": result.amount_out, "threshold": self.min_output_amount},
            )

    # ==================== Commit ====================

    def commit(self, result: SwapResult) -> None:
        """Write a simulated swap's crossings and working state into the pool."""
        if result.state is None:
            raise InvariantViolationError("Swap result carries no state to commit")
        for crossing in result.crossings:
            liquidity_net = self.ticks.cross_tick(
                crossing.tick, crossing.fee_growth_global_a, crossing.fee_growth_global_b
            )
            if liquidity_net != crossing.liquidity_net:
                raise InvariantViolationError(
                    "Tick changed between simulation and commit",
                    details={"tick": crossing.tick},
                )
        for f in dataclasses.fields(PoolState):
            setattr(self.state, f.name, getattr(result.state, f.name))
        logger.debug(
            "Swap committed",
            extra={
                "event": "clmm.swap_commit",
                "ticks_crossed": len(result.crossings),
                "tick_after": result.tick_after,
            },
        )
