"""
CLMM DeFi Components.

- Fixed Point: Q64.64 math, tick <-> sqrt price conversion, swap step math
- Tick Ledger: per-tick gross/net liquidity and outside fee growth
- Position Ledger: range positions with lazy fee accrual
- Pool State: price, active liquidity, fee accumulators
- Swap Engine: multi-tick swap simulation and commit
- Concentrated Liquidity: pool entry points
- Token Bank: token transfer collaborator
- TWAP Observer: time-weighted average price from post-swap samples
"""

from .concentrated_liquidity import ConcentratedLiquidityPool, SwapPreview
from .pool_state import PoolState
from .position_ledger import Position, PositionLedger
from .swap_engine import SwapEngine, SwapResult
from .tick_ledger import Direction, TickInfo, TickLedger
from .token_bank import InMemoryTokenBank, TokenBank, Transfer
from .twap_observer import PriceSample, TwapObserver

__all__ = [
    # Pool
    "ConcentratedLiquidityPool",
    "SwapPreview",
    "PoolState",
    # Ledgers
    "TickInfo",
    "TickLedger",
    "Direction",
    "Position",
    "PositionLedger",
    # Swaps
    "SwapEngine",
    "SwapResult",
    # Collaborators
    "TokenBank",
    "InMemoryTokenBank",
    "Transfer",
    "PriceSample",
    "TwapObserver",
]
