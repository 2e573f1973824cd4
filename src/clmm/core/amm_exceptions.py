"""
Concentrated-liquidity AMM exception hierarchy.

Every failure raised by the engine carries a stable ``code`` string so that
callers (dispatch layers, the CLI, metrics) can report it without parsing
messages. Failures fall into two classes:

- ``AMMValidationError``: expected domain rejections (bad amounts, slippage,
  missing liquidity). The call aborts with no state change.
- ``AMMFatalError``: arithmetic or invariant faults. The call aborts with no
  state change and the fault is logged at CRITICAL, since it indicates a bug
  or a corrupted ledger rather than a bad request.
"""

from __future__ import annotations

from typing import Any


class AMMError(Exception):
    """Base exception for all AMM errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        code: Stable machine-readable error identifier
    """

    code: str = "AMM_ERROR"

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "error": type(self).__name__,
            "message": self.message,
            "details": dict(self.details),
        }


# ==================== Validation Errors ====================


class AMMValidationError(AMMError):
    """Raised when a request fails domain validation."""
    code = "VALIDATION"


class AmountTooLowError(AMMValidationError):
    """Raised for non-positive amounts, sub-minimum liquidity or a zero swap output."""
    code = "AMT_LOW"


class NoLiquidityError(AMMValidationError):
    """Raised when a swap runs out of initialized liquidity before completing."""
    code = "NO_LIQ"


class SlippageExceededError(AMMValidationError):
    """Raised when the achievable amounts violate the caller's min/max guards."""
    code = "SLIP_HI"


class DustOutputError(AMMValidationError):
    """Raised when a swap output is positive but below the dust threshold."""
    code = "OUT_DUST"


class PriceLimitError(AMMValidationError):
    """Raised when the sqrt price limit is on the wrong side of the price or out of bounds."""
    code = "SLIP_MAX"


class InvalidConfigError(AMMValidationError):
    """Raised when pool parameters are outside the allowed bounds."""
    code = "InvalidConfig"


class TickOutOfRangeError(AMMValidationError):
    """Raised for ticks or sqrt prices outside the representable range."""
    code = "TickOutOfRange"


class InvalidTickRangeError(AMMValidationError):
    """Raised when a position's tick range is unordered or not aligned to the spacing."""
    code = "InvalidTickRange"


class AlreadyInitializedError(AMMValidationError):
    """Raised on a second call to initialize."""
    code = "AlreadyInitialized"


class NotInitializedError(AMMValidationError):
    """Raised when an operation runs against a pool that was never initialized."""
    code = "NotInitialized"


class InsufficientLiquidityError(AMMValidationError):
    """Raised when a removal exceeds the liquidity held by a position."""
    code = "InsufficientLiquidity"


class InvalidTokenError(AMMValidationError):
    """Raised when a token does not belong to the pool or both sides are the same token."""
    code = "BAD_TOKEN"


class PositionNotFoundError(AMMValidationError):
    """Raised when an operation references a position that does not exist."""
    code = "NoPosition"


class UnauthorizedError(AMMValidationError):
    """Raised when a caller other than the pool admin invokes an admin operation."""
    code = "Unauthorized"


class InsufficientBalanceError(AMMValidationError):
    """Raised by a token bank when a holder cannot cover a transfer."""
    code = "BALANCE"


# ==================== Fatal Errors ====================


class AMMFatalError(AMMError):
    """Raised for arithmetic and invariant faults."""
    code = "FATAL"


class MathOverflowError(AMMFatalError, OverflowError):
    """Raised when a value does not fit its fixed-width representation."""
    code = "Overflow"


class DivisionByZeroFault(AMMFatalError, ZeroDivisionError):
    """Raised when a fixed-point division has a zero denominator."""
    code = "DivByZero"


class InvariantViolationError(AMMFatalError):
    """Raised when ledger invariants no longer hold."""
    code = "Invariant"


def error_code_of(exc: BaseException) -> str:
    """Return the stable error code for an exception, or its class name."""
    if isinstance(exc, AMMError):
        return exc.code
    return type(exc).__name__


def is_fatal(exc: BaseException) -> bool:
    """True for arithmetic/invariant faults and any non-AMM exception."""
    return not isinstance(exc, AMMValidationError)
