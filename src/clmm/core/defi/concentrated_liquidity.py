"""
Concentrated Liquidity Pool.

Entry points for a single two-token pool:
- Liquidity provision into tick ranges (add/remove/collect)
- Exact-input and exact-output swaps across initialized ticks
- Side-effect-free swap previews
- Protocol fee withdrawal by the pool admin

Every mutating entry point is all-or-nothing: the ledger entries it may
write are snapshotted, the operation runs, ledger effects are committed and
only then is the single batch of token transfers handed to the token bank.
Any failure, including a failed transfer, restores the snapshot. Swaps only
snapshot the pool state and the ticks they cross, so their cost does not
grow with the number of positions.
"""

from __future__ import annotations

import copy
import dataclasses
import hashlib
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from ..amm_exceptions import (
    AlreadyInitializedError,
    AmountTooLowError,
    AMMValidationError,
    InvalidTokenError,
    InvariantViolationError,
    NotInitializedError,
    SlippageExceededError,
    UnauthorizedError,
    error_code_of,
    is_fatal,
)
from ..api.dex_metrics import PoolMetrics
from ..config import MAX_SWAP_STEPS, MIN_LIQUIDITY, MIN_SWAP_OUTPUT
from .fixed_point import (
    get_amounts_for_liquidity,
    get_liquidity_for_amounts,
    price_from_sqrt_price,
    tick_to_sqrt_price,
)
from .pool_state import PoolState
from .position_ledger import PositionLedger, validate_tick_range
from .swap_engine import SwapEngine, SwapResult
from .tick_ledger import TickInfo, TickLedger
from .token_bank import TokenBank, Transfer
from .twap_observer import PriceObserver, PriceSample

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SwapPreview:
    """Outcome of a swap that was simulated but not executed."""
    amount_in_used: int = 0
    amount_out: int = 0
    fee_paid: int = 0
    price_impact_bps: int = 0
    sqrt_price_after: int = 0
    tick_after: int = 0
    is_valid: bool = False
    error_code: str | None = None
    error_message: str | None = None


def _preview_from(result: SwapResult) -> SwapPreview:
    return SwapPreview(
        amount_in_used=result.amount_in,
        amount_out=result.amount_out,
        fee_paid=result.fee_amount,
        price_impact_bps=result.price_impact_bps,
        sqrt_price_after=result.sqrt_price_after,
        tick_after=result.tick_after,
        is_valid=True,
    )


@dataclass
class ConcentratedLiquidityPool:
    """
    Concentrated liquidity pool over token A and token B.

    Price representation:
    - sqrt price of the token-B-per-token-A price, Q64.64
    - tick = floor(log_1.0001(price))

    Collaborators are optional: without a token bank the pool only keeps
    accounts; without metrics or observers nothing is exported.
    """

    address: str = ""
    token_bank: TokenBank | None = None
    metrics: PoolMetrics | None = None
    observers: list[PriceObserver] = field(default_factory=list)
    clock: Callable[[], int] | None = None

    min_liquidity: int = MIN_LIQUIDITY
    min_output_amount: int = MIN_SWAP_OUTPUT
    max_swap_steps: int = MAX_SWAP_STEPS

    state: PoolState | None = None
    ticks: TickLedger | None = None
    positions: PositionLedger = field(default_factory=PositionLedger)

    def __post_init__(self) -> None:
        """Derive a pool address if none was given."""
        if not self.address:
            addr_hash = hashlib.sha3_256(f"clmm:{id(self)}:{time.time_ns()}".encode()).digest()
            self.address = f"0x{addr_hash[-20:].hex()}"

    # ==================== Transactions ====================

    @contextmanager
    def _transaction(self, operation: str, **context: Any) -> Iterator[None]:
        snapshot = copy.deepcopy((self.state, self.ticks, self.positions))
        try:
            yield
        except Exception as exc:
            self.state, self.ticks, self.positions = snapshot
            self._record_failure(operation, exc, context)
            raise

    @contextmanager
    def _scoped_transaction(self, operation: str, **context: Any) -> Iterator[dict[int, TickInfo]]:
        """
        Rollback scope for operations that only touch pool state and crossed ticks.

        Yields a dict the body fills with the original ``TickInfo`` of every
        tick it is about to write. On failure the pool state and those ticks
        are restored in place; the ledgers themselves are never copied.
        """
        state_before = dataclasses.replace(self.state) if self.state is not None else None
        touched: dict[int, TickInfo] = {}
        try:
            yield touched
        except Exception as exc:
            if state_before is not None:
                for f in dataclasses.fields(PoolState):
                    setattr(self.state, f.name, getattr(state_before, f.name))
            for tick, info in touched.items():
                self.ticks.ticks[tick] = info
            self._record_failure(operation, exc, context)
            raise

    def _record_failure(self, operation: str, exc: Exception, context: dict[str, Any]) -> None:
        code = error_code_of(exc)
        fatal = is_fatal(exc)
        extra = {
            "event": "clmm.fatal" if fatal else "clmm.rejected",
            "pool": self.address[:10],
            "operation": operation,
            "code": code,
            **context,
        }
        if fatal:
            logger.critical("%s failed: %s", operation, exc, extra=extra)
        else:
            logger.info("%s rejected: %s", operation, exc, extra=extra)
        if self.metrics is not None:
            self.metrics.track_error(self.address, operation, code, fatal)

    def _settle(self, transfers: list[Transfer]) -> None:
        if self.token_bank is None:
            return
        batch = [t for t in transfers if t.amount > 0]
        if batch:
            self.token_bank.settle(batch)

    # ==================== Helpers ====================

    def _require_state(self) -> PoolState:
        if self.state is None or self.ticks is None:
            raise NotInitializedError("Pool not initialized")
        return self.state

    def _now(self) -> int:
        return self.clock() if self.clock is not None else int(time.time())

    def _engine(self) -> SwapEngine:
        return SwapEngine(
            self._require_state(),
            self.ticks,
            max_steps=self.max_swap_steps,
            min_output_amount=self.min_output_amount,
        )

    def _refresh_metrics(self) -> None:
        if self.metrics is not None and self.state is not None:
            self.metrics.update_pool(self.address, self.state, len(self.ticks.initialized_ticks()))

    def get_swap_direction(self, token_in: str, token_out: str | None = None) -> bool:
        """Return zero_for_one for a token pair (True when token A goes in)."""
        state = self._require_state()
        if token_in == state.token_a and token_out in (None, state.token_b):
            return True
        if token_in == state.token_b and token_out in (None, state.token_a):
            return False
        raise InvalidTokenError(
            "Token pair does not match pool",
            details={"token_in": token_in, "token_out": token_out},
        )

    # ==================== Initialization ====================

    def initialize(
        self,
        admin: str,
        token_a: str,
        token_b: str,
        fee_bps: int,
        protocol_fee_bps: int,
        initial_sqrt_price: int,
        initial_tick: int,
        tick_spacing: int,
    ) -> None:
        """
        One-shot pool setup.

        Raises:
            AlreadyInitializedError: Pool was initialized before
            InvalidConfigError: Parameters outside the allowed bounds
            TickOutOfRangeError: initial_tick outside the tick range
        """
        with self._transaction("initialize", admin=admin):
            if self.state is not None:
                raise AlreadyInitializedError("Pool already initialized")
            self.state = PoolState.initialize(
                admin=admin,
                token_a=token_a,
                token_b=token_b,
                fee_bps=fee_bps,
                protocol_fee_bps=protocol_fee_bps,
                initial_sqrt_price=initial_sqrt_price,
                initial_tick=initial_tick,
                tick_spacing=tick_spacing,
            )
            self.ticks = TickLedger(tick_spacing=tick_spacing)

        logger.info(
            "Pool initialized",
            extra={
                "event": "clmm.initialize",
                "pool": self.address[:10],
                "token_a": token_a,
                "token_b": token_b,
                "fee_bps": fee_bps,
                "protocol_fee_bps": protocol_fee_bps,
                "tick_spacing": tick_spacing,
                "initial_tick": initial_tick,
            },
        )
        self._refresh_metrics()

    # ==================== Position Management ====================

    def add_liquidity(
        self,
        owner: str,
        token_a: str,
        token_b: str,
        amount_a_desired: int,
        amount_b_desired: int,
        amount_a_min: int,
        amount_b_min: int,
        lower_tick: int,
        upper_tick: int,
    ) -> tuple[int, int, int]:
        """
        Deposit up to the desired amounts into [lower_tick, upper_tick).

        The pair may be given in either order; amounts follow the order of
        ``token_a``/``token_b`` as passed.

        Returns:
            (liquidity_minted, amount_a_used, amount_b_used)

        Raises:
            InvalidTokenError: Tokens do not match the pool
            AmountTooLowError: Negative amounts or liquidity below the minimum
            SlippageExceededError: Amounts used fall below the minimums
        """
        context = {"owner": owner, "lower_tick": lower_tick, "upper_tick": upper_tick}
        with self._transaction("add_liquidity", **context):
            state = self._require_state()
            if (token_a, token_b) == (state.token_a, state.token_b):
                reversed_pair = False
            elif (token_a, token_b) == (state.token_b, state.token_a):
                reversed_pair = True
                amount_a_desired, amount_b_desired = amount_b_desired, amount_a_desired
                amount_a_min, amount_b_min = amount_b_min, amount_a_min
            else:
                raise InvalidTokenError(
                    "Token pair does not match pool",
                    details={"token_a": token_a, "token_b": token_b},
                )

            if min(amount_a_desired, amount_b_desired, amount_a_min, amount_b_min) < 0:
                raise AmountTooLowError("Amounts must be non-negative")

            validate_tick_range(lower_tick, upper_tick, state.tick_spacing)
            liquidity = get_liquidity_for_amounts(
                state.sqrt_price,
                tick_to_sqrt_price(lower_tick),
                tick_to_sqrt_price(upper_tick),
                amount_a_desired,
                amount_b_desired,
            )
            if liquidity < self.min_liquidity:
                raise AmountTooLowError(
                    "Liquidity below minimum",
                    details={"liquidity": liquidity, "min_liquidity": self.min_liquidity},
                )

            amount_a, amount_b = self.positions.modify_liquidity(
                owner, lower_tick, upper_tick, liquidity, state, self.ticks
            )
            if amount_a < amount_a_min or amount_b < amount_b_min:
                raise SlippageExceededError(
                    "Deposit amounts below minimum",
                    details={"amount_a": amount_a, "amount_b": amount_b},
                )

            self._settle([
                Transfer(state.token_a, owner, self.address, amount_a),
                Transfer(state.token_b, owner, self.address, amount_b),
            ])

        logger.info(
            "Liquidity added",
            extra={
                "event": "clmm.add_liquidity",
                "pool": self.address[:10],
                **context,
                "liquidity": liquidity,
                "amount_a": amount_a,
                "amount_b": amount_b,
            },
        )
        if self.metrics is not None:
            self.metrics.track_liquidity_change(self.address, liquidity, "add")
        self._refresh_metrics()

        if reversed_pair:
            return liquidity, amount_b, amount_a
        return liquidity, amount_a, amount_b

    def remove_liquidity(
        self,
        owner: str,
        lower_tick: int,
        upper_tick: int,
        liquidity_amount: int,
        amount_a_min: int,
        amount_b_min: int,
    ) -> tuple[int, int]:
        """
        Withdraw liquidity from a position and pay out the underlying tokens.

        Fees earned up to this point are credited to the position's owed
        balance and remain there until ``collect``.

        Returns:
            (amount_a, amount_b) paid to the owner
        """
        context = {"owner": owner, "lower_tick": lower_tick, "upper_tick": upper_tick}
        with self._transaction("remove_liquidity", **context):
            state = self._require_state()
            if liquidity_amount <= 0:
                raise AmountTooLowError(
                    "Liquidity to remove must be positive",
                    details={"liquidity_amount": liquidity_amount},
                )
            amount_a, amount_b = self.positions.modify_liquidity(
                owner, lower_tick, upper_tick, -liquidity_amount, state, self.ticks
            )
            if amount_a < amount_a_min or amount_b < amount_b_min:
                raise SlippageExceededError(
                    "Withdrawal amounts below minimum",
                    details={"amount_a": amount_a, "amount_b": amount_b},
                )
            self._settle([
                Transfer(state.token_a, self.address, owner, amount_a),
                Transfer(state.token_b, self.address, owner, amount_b),
            ])

        logger.info(
            "Liquidity removed",
            extra={
                "event": "clmm.remove_liquidity",
                "pool": self.address[:10],
                **context,
                "liquidity": liquidity_amount,
                "amount_a": amount_a,
                "amount_b": amount_b,
            },
        )
        if self.metrics is not None:
            self.metrics.track_liquidity_change(self.address, liquidity_amount, "remove")
        self._refresh_metrics()
        return amount_a, amount_b

    def collect(
        self,
        owner: str,
        lower_tick: int,
        upper_tick: int,
        amount_a_requested: int,
        amount_b_requested: int,
    ) -> tuple[int, int]:
        """Accrue a position's fees and pay out up to the requested amounts."""
        context = {"owner": owner, "lower_tick": lower_tick, "upper_tick": upper_tick}
        with self._transaction("collect", **context):
            state = self._require_state()
            self.positions.accrue_and_snapshot(owner, lower_tick, upper_tick, state, self.ticks)
            amount_a, amount_b = self.positions.collect(
                owner, lower_tick, upper_tick, amount_a_requested, amount_b_requested
            )
            self._settle([
                Transfer(state.token_a, self.address, owner, amount_a),
                Transfer(state.token_b, self.address, owner, amount_b),
            ])

        logger.info(
            "Fees collected",
            extra={
                "event": "clmm.collect",
                "pool": self.address[:10],
                **context,
                "amount_a": amount_a,
                "amount_b": amount_b,
            },
        )
        if self.metrics is not None:
            self.metrics.track_collect(self.address, state.token_a, amount_a)
            self.metrics.track_collect(self.address, state.token_b, amount_b)
        return amount_a, amount_b

    def collect_protocol(
        self,
        admin: str,
        amount_a_requested: int,
        amount_b_requested: int,
    ) -> tuple[int, int]:
        """Withdraw accrued protocol fees to the pool admin."""
        with self._scoped_transaction("collect_protocol", admin=admin):
            state = self._require_state()
            if admin != state.admin:
                raise UnauthorizedError("Only the pool admin may collect protocol fees")
            if amount_a_requested < 0 or amount_b_requested < 0:
                raise AmountTooLowError("Requested amounts must be non-negative")
            amount_a = min(amount_a_requested, state.protocol_fees_a)
            amount_b = min(amount_b_requested, state.protocol_fees_b)
            state.protocol_fees_a -= amount_a
            state.protocol_fees_b -= amount_b
            self._settle([
                Transfer(state.token_a, self.address, admin, amount_a),
                Transfer(state.token_b, self.address, admin, amount_b),
            ])

        logger.info(
            "Protocol fees collected",
            extra={
                "event": "clmm.collect_protocol",
                "pool": self.address[:10],
                "admin": admin,
                "amount_a": amount_a,
                "amount_b": amount_b,
            },
        )
        return amount_a, amount_b

    # ==================== Swapping ====================

    def _execute_swap(
        self,
        caller: str,
        zero_for_one: bool,
        amount_specified: int,
        sqrt_price_limit_x64: int | None,
        min_amount_out: int,
        max_amount_in: int | None,
        touched: dict[int, TickInfo],
    ) -> SwapResult:
        state = self._require_state()
        engine = self._engine()
        result = engine.simulate(
            zero_for_one,
            amount_specified,
            sqrt_price_limit_x64,
            min_amount_out=min_amount_out,
            max_amount_in=max_amount_in,
        )
        for crossing in result.crossings:
            touched.setdefault(crossing.tick, copy.copy(self.ticks.get_tick(crossing.tick)))
        engine.commit(result)
        token_in, token_out = (state.token_a, state.token_b) if zero_for_one else (state.token_b, state.token_a)
        self._settle([
            Transfer(token_in, caller, self.address, result.amount_in),
            Transfer(token_out, self.address, caller, result.amount_out),
        ])
        return result

    def _after_swap(self, caller: str, result: SwapResult) -> None:
        state = self.state
        token_in, token_out = (state.token_a, state.token_b) if result.zero_for_one else (state.token_b, state.token_a)
        logger.info(
            "Swap executed",
            extra={
                "event": "clmm.swap",
                "pool": self.address[:10],
                "caller": caller,
                "direction": "a->b" if result.zero_for_one else "b->a",
                "exact_input": result.exact_input,
                "amount_in": result.amount_in,
                "amount_out": result.amount_out,
                "fee": result.fee_amount,
                "ticks_crossed": len(result.crossings),
                "tick": state.current_tick,
            },
        )
        if self.metrics is not None:
            self.metrics.track_swap(self.address, result, token_in, token_out)
        self._refresh_metrics()
        self._notify_observers()

    def _notify_observers(self) -> None:
        if not self.observers:
            return
        sample = PriceSample(
            sqrt_price=self.state.sqrt_price,
            tick=self.state.current_tick,
            timestamp=self._now(),
        )
        for observer in self.observers:
            try:
                observer.observe(sample)
            except Exception as exc:
                # Observers are read-only consumers; the swap is already final
                logger.warning(
                    "Price observer failed: %s",
                    exc,
                    extra={
                        "event": "clmm.observer_failed",
                        "pool": self.address[:10],
                        "observer": type(observer).__name__,
                    },
                )

    def swap(
        self,
        caller: str,
        token_in: str,
        token_out: str,
        amount_in: int,
        min_amount_out: int,
        sqrt_price_limit_x64: int | None = 0,
    ) -> int:
        """
        Exact-input swap.

        Args:
            caller: Trader paying ``token_in`` and receiving ``token_out``
            token_in: Token sold
            token_out: Token bought
            amount_in: Exact input, fee included
            min_amount_out: Reject if the output would be lower
            sqrt_price_limit_x64: Price the swap may not pass (0 for none)

        Returns:
            Amount of ``token_out`` paid to the caller
        """
        context = {"caller": caller, "token_in": token_in, "amount_in": amount_in}
        with self._scoped_transaction("swap", **context) as touched:
            if amount_in <= 0:
                raise AmountTooLowError("Swap amount must be positive", details={"amount_in": amount_in})
            zero_for_one = self.get_swap_direction(token_in, token_out)
            result = self._execute_swap(
                caller, zero_for_one, amount_in, sqrt_price_limit_x64, min_amount_out, None, touched
            )
        self._after_swap(caller, result)
        return result.amount_out

    def swap_exact_output(
        self,
        caller: str,
        token_in: str,
        token_out: str,
        amount_out: int,
        max_amount_in: int,
        sqrt_price_limit_x64: int | None = 0,
    ) -> int:
        """
        Exact-output swap: receive exactly ``amount_out`` or fail.

        Returns:
            Amount of ``token_in`` charged, fee included
        """
        context = {"caller": caller, "token_in": token_in, "amount_out": amount_out}
        with self._scoped_transaction("swap_exact_output", **context) as touched:
            if amount_out <= 0:
                raise AmountTooLowError("Swap amount must be positive", details={"amount_out": amount_out})
            zero_for_one = self.get_swap_direction(token_in, token_out)
            result = self._execute_swap(
                caller, zero_for_one, -amount_out, sqrt_price_limit_x64, amount_out, max_amount_in, touched
            )
        self._after_swap(caller, result)
        return result.amount_in

    def swap_advanced(
        self,
        caller: str,
        zero_for_one: bool,
        amount_specified: int,
        sqrt_price_limit_x64: int | None = 0,
        min_amount_out: int = 0,
        max_amount_in: int | None = None,
    ) -> SwapResult:
        """
        Direction-based swap returning the full result.

        ``amount_specified`` is positive for exact input and negative for
        exact output. A price limit may stop the swap early; the result
        reports what was actually filled.
        """
        context = {"caller": caller, "zero_for_one": zero_for_one, "amount_specified": amount_specified}
        with self._scoped_transaction("swap", **context) as touched:
            result = self._execute_swap(
                caller, zero_for_one, amount_specified, sqrt_price_limit_x64, min_amount_out, max_amount_in, touched
            )
        self._after_swap(caller, result)
        return result

    def preview_swap(
        self,
        token_in: str,
        token_out: str,
        amount_in: int,
        sqrt_price_limit_x64: int | None = 0,
        min_amount_out: int = 0,
    ) -> SwapPreview:
        """
        Run the swap algorithm without committing anything.

        Validation failures are reported in the preview rather than raised;
        arithmetic and invariant faults still propagate.
        """
        try:
            if amount_in <= 0:
                raise AmountTooLowError("Swap amount must be positive", details={"amount_in": amount_in})
            zero_for_one = self.get_swap_direction(token_in, token_out)
            result = self._engine().simulate(
                zero_for_one, amount_in, sqrt_price_limit_x64, min_amount_out=min_amount_out
            )
        except AMMValidationError as exc:
            return SwapPreview(is_valid=False, error_code=exc.code, error_message=exc.message)
        return _preview_from(result)

    def preview_swap_advanced(
        self,
        zero_for_one: bool,
        amount_specified: int,
        sqrt_price_limit_x64: int | None = 0,
        min_amount_out: int = 0,
        max_amount_in: int | None = None,
    ) -> SwapPreview:
        """
        Direction-based preview; ``amount_specified`` is negative for exact output.

        Mirrors ``swap_advanced``, including partial fills at the price limit.
        """
        try:
            result = self._engine().simulate(
                zero_for_one,
                amount_specified,
                sqrt_price_limit_x64,
                min_amount_out=min_amount_out,
                max_amount_in=max_amount_in,
            )
        except AMMValidationError as exc:
            return SwapPreview(is_valid=False, error_code=exc.code, error_message=exc.message)
        return _preview_from(result)

    # ==================== Views ====================

    def get_pool_state(self) -> dict:
        """Get current pool state."""
        state = self._require_state()
        return {
            "address": self.address,
            "admin": state.admin,
            "token_a": state.token_a,
            "token_b": state.token_b,
            "fee_bps": state.fee_bps,
            "protocol_fee_bps": state.protocol_fee_bps,
            "tick_spacing": state.tick_spacing,
            "sqrt_price": state.sqrt_price,
            "tick": state.current_tick,
            "price": price_from_sqrt_price(state.sqrt_price),
            "liquidity": state.liquidity,
            "fee_growth_global_a": state.fee_growth_global_a,
            "fee_growth_global_b": state.fee_growth_global_b,
            "protocol_fees_a": state.protocol_fees_a,
            "protocol_fees_b": state.protocol_fees_b,
            "positions_count": len(self.positions.positions),
            "initialized_ticks": len(self.ticks.initialized_ticks()),
        }

    def get_position(self, owner: str, lower_tick: int, upper_tick: int) -> dict | None:
        """Get position details including its current token value and uncollected fees."""
        state = self._require_state()
        position = self.positions.get(owner, lower_tick, upper_tick)
        if position is None:
            return None

        amount_a, amount_b = get_amounts_for_liquidity(
            state.sqrt_price,
            tick_to_sqrt_price(lower_tick),
            tick_to_sqrt_price(upper_tick),
            position.liquidity,
        )
        pending_a, pending_b = self.positions.pending_fees(position, state, self.ticks)
        return {
            "owner": position.owner,
            "lower_tick": position.lower_tick,
            "upper_tick": position.upper_tick,
            "liquidity": position.liquidity,
            "amount_a": amount_a,
            "amount_b": amount_b,
            "tokens_owed_a": position.tokens_owed_a,
            "tokens_owed_b": position.tokens_owed_b,
            "fees_pending_a": pending_a,
            "fees_pending_b": pending_b,
            "in_range": position.is_in_range(state.current_tick),
        }

    def get_tick_info(self, tick: int) -> dict:
        self._require_state()
        info = self.ticks.get_tick(tick)
        return {
            "tick": tick,
            "initialized": info.initialized,
            "liquidity_gross": info.liquidity_gross,
            "liquidity_net": info.liquidity_net,
            "fee_growth_outside_a": info.fee_growth_outside_a,
            "fee_growth_outside_b": info.fee_growth_outside_b,
            "sqrt_price": tick_to_sqrt_price(tick),
        }

    def verify_invariants(self) -> None:
        """
        Cross-check the ledgers against each other.

        Raises:
            InvariantViolationError: If tick, position and pool liquidity disagree
        """
        state = self._require_state()

        expected: dict[int, list[int]] = {}
        for position in self.positions.positions.values():
            if position.liquidity == 0:
                continue
            lower = expected.setdefault(position.lower_tick, [0, 0])
            upper = expected.setdefault(position.upper_tick, [0, 0])
            lower[0] += position.liquidity
            lower[1] += position.liquidity
            upper[0] += position.liquidity
            upper[1] -= position.liquidity

        actual = {
            tick: [info.liquidity_gross, info.liquidity_net]
            for tick, info in self.ticks.ticks.items()
        }
        if expected != actual:
            raise InvariantViolationError(
                "Tick ledger disagrees with positions",
                details={"expected": expected, "actual": actual},
            )
        if self.ticks.liquidity_net_sum() != 0:
            raise InvariantViolationError("Net liquidity across ticks is not zero")

        active = self.positions.active_liquidity(state.current_tick)
        if active != state.liquidity:
            raise InvariantViolationError(
                "Active liquidity disagrees with in-range positions",
                details={"pool_liquidity": state.liquidity, "positions": active},
            )
