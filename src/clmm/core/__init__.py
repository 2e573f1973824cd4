"""
CLMM Core Module

Core functionality for the CLMM engine including:
- DeFi ledgers and the swap engine
- Configuration and structured logging
- Exception hierarchy and metrics
"""

__all__ = []
