"""
Q64.64 fixed-point math for concentrated liquidity.

Prices are carried as square roots in Q64.64 (``sqrt_price / 2**64`` is the
square root of the token-B-per-token-A price). Python integers are unbounded,
so every intermediate is exact; only *results* are checked against the
128-bit range, and an out-of-range result raises ``MathOverflowError``.

Rounding rule: amounts the pool receives round up, amounts the pool pays out
round down.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..amm_exceptions import (
    DivisionByZeroFault,
    MathOverflowError,
    TickOutOfRangeError,
)
from ..config import BPS_DENOMINATOR

# Constants
Q64 = 1 << 64
Q128 = 1 << 128
MAX_UINT128 = Q128 - 1
MAX_UINT256 = (1 << 256) - 1
MAX_INT128 = (1 << 127) - 1
MIN_INT128 = -(1 << 127)

MIN_TICK = -887272
MAX_TICK = 887272

# sqrt(1.0001^-(2^i)) in Q128, one entry per bit of |tick|
_TICK_RATIO_LADDER = (
    0xFFFCB933BD6FAD37AA2D162D1A594001,
    0xFFF97272373D413259A46990580E213A,
    0xFFF2E50F5F656932EF12357CF3C7FDCC,
    0xFFE5CACA7E10E4E61C3624EAA0941CD0,
    0xFFCB9843D60F6159C9DB58835C926644,
    0xFF973B41FA98C081472E6896DFB254C0,
    0xFF2EA16466C96A3843EC78B326B52861,
    0xFE5DEE046A99A2A811C461F1969C3053,
    0xFCBE86C7900A88AEDCFFC83B479AA3A4,
    0xF987A7253AC413176F2B074CF7815E54,
    0xF3392B0822B70005940C7A398E4B70F3,
    0xE7159475A2C29B7443B29C7FA6E889D9,
    0xD097F3BDFD2022B8845AD8F792AA5825,
    0xA9F746462D870FDF8A65DC1F90E061E5,
    0x70D869A156D2A1B890BB3DF62BAF32F7,
    0x31BE135F97D08FD981231505542FCFA6,
    0x9AA508B5B7A84E1C677DE54F3E99BC9,
    0x5D6AF8DEDB81196699C329225EE604,
    0x2216E584F5FA1EA926041BEDFE98,
    0x48A170391F7DC42444E8FA2,
)


# ==================== Checked Arithmetic ====================

def require_uint128(value: int, what: str = "value") -> int:
    """Return ``value`` unchanged if it fits an unsigned 128-bit slot."""
    if value < 0 or value > MAX_UINT128:
        raise MathOverflowError(
            f"{what} does not fit u128",
            details={"what": what, "value": value},
        )
    return value


def require_int128(value: int, what: str = "value") -> int:
    """Return ``value`` unchanged if it fits a signed 128-bit slot."""
    if value < MIN_INT128 or value > MAX_INT128:
        raise MathOverflowError(
            f"{what} does not fit i128",
            details={"what": what, "value": value},
        )
    return value


def _div(numerator: int, denominator: int, round_up: bool) -> int:
    if denominator == 0:
        raise DivisionByZeroFault("Division by zero")
    if round_up:
        return -(-numerator // denominator)
    return numerator // denominator


def mul_div(a: int, b: int, denominator: int, round_up: bool = False) -> int:
    """
    Calculate (a * b) / denominator with full precision and controlled rounding.

    Args:
        a: First multiplicand
        b: Second multiplicand
        denominator: Divisor
        round_up: If True, round up (for charging users)
                  If False, round down (for paying users)

    Returns:
        Result of (a * b) / denominator

    Raises:
        DivisionByZeroFault: If denominator is zero
        MathOverflowError: If an operand is negative or the result exceeds u128
    """
    if a < 0 or b < 0 or denominator < 0:
        raise MathOverflowError(
            "mul_div operands must be non-negative",
            details={"a": a, "b": b, "denominator": denominator},
        )
    return require_uint128(_div(a * b, denominator, round_up), "mul_div result")


def add_liquidity_delta(liquidity: int, delta: int) -> int:
    """Apply a signed delta to an unsigned liquidity value."""
    result = liquidity + delta
    if result < 0:
        raise MathOverflowError(
            "Liquidity underflow",
            details={"liquidity": liquidity, "delta": delta},
        )
    return require_uint128(result, "liquidity")


# ==================== Tick <-> Price ====================

def tick_to_sqrt_price(tick: int) -> int:
    """
    Convert tick to sqrt price in Q64.64 format.

    sqrt_price = 1.0001^(tick/2) * 2^64, computed by multiplying together the
    ladder constants for every set bit of |tick| and inverting once for
    positive ticks.
    """
    if tick < MIN_TICK or tick > MAX_TICK:
        raise TickOutOfRangeError(
            f"Tick {tick} outside [{MIN_TICK}, {MAX_TICK}]",
            details={"tick": tick},
        )

    abs_tick = abs(tick)
    ratio = Q128
    for bit, multiplier in enumerate(_TICK_RATIO_LADDER):
        if abs_tick & (1 << bit):
            ratio = (ratio * multiplier) >> 128

    if tick > 0:
        ratio = MAX_UINT256 // ratio

    # Q128 -> Q64, rounding up so the result is never below the true value's floor
    return (ratio >> 64) + (1 if ratio % Q64 else 0)


MIN_SQRT_RATIO = tick_to_sqrt_price(MIN_TICK)
MAX_SQRT_RATIO = tick_to_sqrt_price(MAX_TICK)


def sqrt_price_to_tick(sqrt_price: int) -> int:
    """
    Convert sqrt price to tick.

    Returns the greatest tick whose sqrt price is <= ``sqrt_price``.
    """
    if sqrt_price < MIN_SQRT_RATIO or sqrt_price > MAX_SQRT_RATIO:
        raise TickOutOfRangeError(
            "Sqrt price out of range",
            details={"sqrt_price": sqrt_price},
        )

    low, high = MIN_TICK, MAX_TICK
    while low < high:
        mid = (low + high + 1) // 2
        if tick_to_sqrt_price(mid) <= sqrt_price:
            low = mid
        else:
            high = mid - 1
    return low


def price_from_sqrt_price(sqrt_price: int) -> float:
    """Convert a Q64.64 sqrt price to a float price (for display)."""
    return (sqrt_price / Q64) ** 2


def is_valid_tick(tick: int) -> bool:
    return MIN_TICK <= tick <= MAX_TICK


def snap_tick_to_spacing(tick: int, tick_spacing: int) -> int:
    """Round a tick toward negative infinity onto the spacing grid, kept in bounds."""
    if tick_spacing <= 0:
        raise ValueError("tick_spacing must be positive")
    snapped = (tick // tick_spacing) * tick_spacing
    if snapped < MIN_TICK:
        snapped += tick_spacing
    return min(snapped, (MAX_TICK // tick_spacing) * tick_spacing)


# ==================== Amounts <-> Liquidity ====================

def _ordered(sqrt_a: int, sqrt_b: int) -> tuple[int, int]:
    return (sqrt_a, sqrt_b) if sqrt_a <= sqrt_b else (sqrt_b, sqrt_a)


def get_amount0_for_liquidity(
    sqrt_a: int,
    sqrt_b: int,
    liquidity: int,
    round_up: bool = False,
) -> int:
    """
    Amount of token A spanned by ``liquidity`` between two sqrt prices.

    amount0 = L * (sqrt_b - sqrt_a) / (sqrt_a * sqrt_b)
    """
    sqrt_a, sqrt_b = _ordered(sqrt_a, sqrt_b)
    require_uint128(liquidity, "liquidity")
    if sqrt_a <= 0:
        raise DivisionByZeroFault("Sqrt price must be positive")
    amount = _div(liquidity * (sqrt_b - sqrt_a) * Q64, sqrt_a * sqrt_b, round_up)
    return require_uint128(amount, "amount0")


def get_amount1_for_liquidity(
    sqrt_a: int,
    sqrt_b: int,
    liquidity: int,
    round_up: bool = False,
) -> int:
    """
    Amount of token B spanned by ``liquidity`` between two sqrt prices.

    amount1 = L * (sqrt_b - sqrt_a)
    """
    sqrt_a, sqrt_b = _ordered(sqrt_a, sqrt_b)
    require_uint128(liquidity, "liquidity")
    amount = _div(liquidity * (sqrt_b - sqrt_a), Q64, round_up)
    return require_uint128(amount, "amount1")


def get_liquidity_for_amount0(sqrt_a: int, sqrt_b: int, amount0: int) -> int:
    sqrt_a, sqrt_b = _ordered(sqrt_a, sqrt_b)
    return _div(amount0 * sqrt_a * sqrt_b, (sqrt_b - sqrt_a) * Q64, False)


def get_liquidity_for_amount1(sqrt_a: int, sqrt_b: int, amount1: int) -> int:
    sqrt_a, sqrt_b = _ordered(sqrt_a, sqrt_b)
    return _div(amount1 * Q64, sqrt_b - sqrt_a, False)


def get_liquidity_for_amounts(
    sqrt_price: int,
    sqrt_lower: int,
    sqrt_upper: int,
    amount0: int,
    amount1: int,
) -> int:
    """
    Maximum liquidity that ``amount0``/``amount1`` can back in a range.

    Below the range only token A counts, above it only token B, and inside
    it the binding side (the smaller of the two liquidities) wins.
    """
    sqrt_lower, sqrt_upper = _ordered(sqrt_lower, sqrt_upper)
    if sqrt_price <= sqrt_lower:
        liquidity = get_liquidity_for_amount0(sqrt_lower, sqrt_upper, amount0)
    elif sqrt_price < sqrt_upper:
        liquidity = min(
            get_liquidity_for_amount0(sqrt_price, sqrt_upper, amount0),
            get_liquidity_for_amount1(sqrt_lower, sqrt_price, amount1),
        )
    else:
        liquidity = get_liquidity_for_amount1(sqrt_lower, sqrt_upper, amount1)
    return require_uint128(liquidity, "liquidity")


def get_amounts_for_liquidity(
    sqrt_price: int,
    sqrt_lower: int,
    sqrt_upper: int,
    liquidity: int,
    round_up: bool = False,
) -> tuple[int, int]:
    """Token amounts represented by ``liquidity`` in a range at the current price."""
    sqrt_lower, sqrt_upper = _ordered(sqrt_lower, sqrt_upper)
    if sqrt_price <= sqrt_lower:
        return get_amount0_for_liquidity(sqrt_lower, sqrt_upper, liquidity, round_up), 0
    if sqrt_price < sqrt_upper:
        return (
            get_amount0_for_liquidity(sqrt_price, sqrt_upper, liquidity, round_up),
            get_amount1_for_liquidity(sqrt_lower, sqrt_price, liquidity, round_up),
        )
    return 0, get_amount1_for_liquidity(sqrt_lower, sqrt_upper, liquidity, round_up)


# ==================== Price Movement ====================

def _next_sqrt_price_from_amount0(
    sqrt_price: int, liquidity: int, amount: int, add: bool
) -> int:
    # Always rounds up so the price never moves further than the amount pays for
    if amount == 0:
        return sqrt_price
    numerator = liquidity * Q64
    product = amount * sqrt_price
    if add:
        result = _div(numerator * sqrt_price, numerator + product, True)
    else:
        denominator = numerator - product
        if denominator <= 0:
            raise MathOverflowError(
                "Output exceeds token A reserves at this liquidity",
                details={"amount": amount, "liquidity": liquidity},
            )
        result = _div(numerator * sqrt_price, denominator, True)
    return require_uint128(result, "sqrt_price")


def _next_sqrt_price_from_amount1(
    sqrt_price: int, liquidity: int, amount: int, add: bool
) -> int:
    # Always rounds down
    if add:
        result = sqrt_price + _div(amount * Q64, liquidity, False)
    else:
        quotient = _div(amount * Q64, liquidity, True)
        if sqrt_price <= quotient:
            raise MathOverflowError(
                "Output exceeds token B reserves at this liquidity",
                details={"amount": amount, "liquidity": liquidity},
            )
        result = sqrt_price - quotient
    return require_uint128(result, "sqrt_price")


def get_next_sqrt_price_from_input(
    sqrt_price: int, liquidity: int, amount_in: int, zero_for_one: bool
) -> int:
    """Sqrt price after adding ``amount_in`` of the input token."""
    if sqrt_price <= 0 or liquidity <= 0:
        raise DivisionByZeroFault("Price and liquidity must be positive")
    if zero_for_one:
        return _next_sqrt_price_from_amount0(sqrt_price, liquidity, amount_in, True)
    return _next_sqrt_price_from_amount1(sqrt_price, liquidity, amount_in, True)


def get_next_sqrt_price_from_output(
    sqrt_price: int, liquidity: int, amount_out: int, zero_for_one: bool
) -> int:
    """Sqrt price after removing ``amount_out`` of the output token."""
    if sqrt_price <= 0 or liquidity <= 0:
        raise DivisionByZeroFault("Price and liquidity must be positive")
    if zero_for_one:
        return _next_sqrt_price_from_amount1(sqrt_price, liquidity, amount_out, False)
    return _next_sqrt_price_from_amount0(sqrt_price, liquidity, amount_out, False)


def price_impact_bps(sqrt_price_before: int, sqrt_price_after: int) -> int:
    """Absolute price move between two sqrt prices, in basis points of the start price."""
    before = sqrt_price_before * sqrt_price_before
    if before == 0:
        return 0
    after = sqrt_price_after * sqrt_price_after
    return abs(after - before) * BPS_DENOMINATOR // before


# ==================== Swap Step ====================

@dataclass(frozen=True)
class SwapStep:
    """Result of swapping within a single constant-liquidity segment."""
    sqrt_price_next: int
    amount_in: int
    amount_out: int
    fee_amount: int


def compute_swap_step(
    sqrt_price_current: int,
    sqrt_price_target: int,
    liquidity: int,
    amount_remaining: int,
    fee_bps: int,
) -> SwapStep:
    """
    Compute a single swap step toward ``sqrt_price_target``.

    Args:
        sqrt_price_current: Starting sqrt price
        sqrt_price_target: Price that must not be passed in this step
        liquidity: Active liquidity for the segment
        amount_remaining: Positive for exact input, negative for exact output
        fee_bps: Swap fee withheld from the input, in basis points

    Returns:
        SwapStep with the price reached, input consumed (excluding fee),
        output produced and fee charged
    """
    zero_for_one = sqrt_price_current >= sqrt_price_target
    exact_input = amount_remaining >= 0
    fee_complement = BPS_DENOMINATOR - fee_bps

    if exact_input:
        remaining_less_fee = mul_div(amount_remaining, fee_complement, BPS_DENOMINATOR)
        if zero_for_one:
            amount_in = get_amount0_for_liquidity(sqrt_price_target, sqrt_price_current, liquidity, True)
        else:
            amount_in = get_amount1_for_liquidity(sqrt_price_current, sqrt_price_target, liquidity, True)
        if remaining_less_fee >= amount_in:
            sqrt_price_next = sqrt_price_target
        else:
            sqrt_price_next = get_next_sqrt_price_from_input(
                sqrt_price_current, liquidity, remaining_less_fee, zero_for_one
            )
    else:
        if zero_for_one:
            amount_out = get_amount1_for_liquidity(sqrt_price_target, sqrt_price_current, liquidity, False)
        else:
            amount_out = get_amount0_for_liquidity(sqrt_price_current, sqrt_price_target, liquidity, False)
        if -amount_remaining >= amount_out:
            sqrt_price_next = sqrt_price_target
        else:
            sqrt_price_next = get_next_sqrt_price_from_output(
                sqrt_price_current, liquidity, -amount_remaining, zero_for_one
            )

    reached_target = sqrt_price_next == sqrt_price_target

    if zero_for_one:
        if not (reached_target and exact_input):
            amount_in = get_amount0_for_liquidity(sqrt_price_next, sqrt_price_current, liquidity, True)
        if not (reached_target and not exact_input):
            amount_out = get_amount1_for_liquidity(sqrt_price_next, sqrt_price_current, liquidity, False)
    else:
        if not (reached_target and exact_input):
            amount_in = get_amount1_for_liquidity(sqrt_price_current, sqrt_price_next, liquidity, True)
        if not (reached_target and not exact_input):
            amount_out = get_amount0_for_liquidity(sqrt_price_current, sqrt_price_next, liquidity, False)

    # Exact output never pays out more than requested
    if not exact_input and amount_out > -amount_remaining:
        amount_out = -amount_remaining

    if exact_input and not reached_target:
        # Whatever input was not swapped is kept as fee
        fee_amount = amount_remaining - amount_in
    else:
        fee_amount = mul_div(amount_in, fee_bps, fee_complement, round_up=True)

    return SwapStep(sqrt_price_next, amount_in, amount_out, fee_amount)
