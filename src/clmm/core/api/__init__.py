"""Metrics exported by CLMM pools."""

from .dex_metrics import PoolMetrics, get_pool_metrics

__all__ = ["PoolMetrics", "get_pool_metrics"]
