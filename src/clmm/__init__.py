"""
CLMM - Concentrated-Liquidity Market Maker Engine

Pricing and accounting core for a two-token concentrated-liquidity pool.

Main Components:
- Fixed-point math: Q64.64 sqrt prices, tick <-> price conversion
- Tick ledger: per-tick liquidity and fee-growth bookkeeping
- Position ledger: range positions with lazy fee accrual
- Swap engine: multi-tick swap state machine
- Pool: all-or-nothing entry points over the ledgers
"""

__version__ = "0.1.0"
__author__ = "CLMM Development Team"

__all__ = []
