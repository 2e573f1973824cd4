"""
Concentrated-liquidity pool metrics.

Prometheus metrics for swaps, liquidity changes, fee collection and pool
health. A pool records into a ``PoolMetrics`` instance only when one is
attached, so the engine runs unchanged without a metrics backend.
"""

from prometheus_client import REGISTRY, Counter, Gauge, Histogram


class PoolMetrics:
    """Metrics for CLMM pool operations."""

    def __init__(self, registry=None):
        self.registry = registry or REGISTRY

        # Swap metrics
        self.swaps_total = Counter(
            'clmm_swaps_total',
            'Total number of swaps attempted',
            ['pool', 'direction', 'status'],
            registry=self.registry
        )

        self.swap_volume = Counter(
            'clmm_swap_volume_total',
            'Total swap volume in base units',
            ['pool', 'token'],
            registry=self.registry
        )

        self.swap_fees_collected = Counter(
            'clmm_swap_fees_total',
            'Total swap fees charged',
            ['pool', 'token'],
            registry=self.registry
        )

        self.protocol_fees = Counter(
            'clmm_protocol_fees_total',
            'Protocol share of swap fees',
            ['pool', 'token'],
            registry=self.registry
        )

        self.ticks_crossed = Counter(
            'clmm_ticks_crossed_total',
            'Initialized ticks crossed by swaps',
            ['pool'],
            registry=self.registry
        )

        self.price_impact = Histogram(
            'clmm_price_impact_bps',
            'Price impact of swaps in basis points',
            buckets=[1, 5, 10, 30, 100, 300, 1000, 3000],
            registry=self.registry
        )

        # Liquidity metrics
        self.liquidity_added = Counter(
            'clmm_liquidity_added_total',
            'Total liquidity units added to positions',
            ['pool'],
            registry=self.registry
        )

        self.liquidity_removed = Counter(
            'clmm_liquidity_removed_total',
            'Total liquidity units removed from positions',
            ['pool'],
            registry=self.registry
        )

        self.fees_collected = Counter(
            'clmm_position_fees_collected_total',
            'Owed tokens collected by position owners',
            ['pool', 'token'],
            registry=self.registry
        )

        # Pool health metrics
        self.active_liquidity = Gauge(
            'clmm_active_liquidity',
            'Liquidity active at the current tick',
            ['pool'],
            registry=self.registry
        )

        self.sqrt_price = Gauge(
            'clmm_sqrt_price',
            'Current sqrt price as a float (sqrt_price_x64 / 2^64)',
            ['pool'],
            registry=self.registry
        )

        self.current_tick = Gauge(
            'clmm_current_tick',
            'Current pool tick',
            ['pool'],
            registry=self.registry
        )

        self.initialized_ticks = Gauge(
            'clmm_initialized_ticks',
            'Number of initialized ticks',
            ['pool'],
            registry=self.registry
        )

        # Errors
        self.errors_total = Counter(
            'clmm_errors_total',
            'Rejected or failed operations',
            ['pool', 'operation', 'code', 'severity'],
            registry=self.registry
        )

    def track_swap(self, pool_id, result, token_in, token_out):
        """Record a committed swap."""
        direction = "a_to_b" if result.zero_for_one else "b_to_a"
        self.swaps_total.labels(pool=pool_id, direction=direction, status="success").inc()
        self.swap_volume.labels(pool=pool_id, token=token_in).inc(result.amount_in)
        self.swap_volume.labels(pool=pool_id, token=token_out).inc(result.amount_out)
        self.swap_fees_collected.labels(pool=pool_id, token=token_in).inc(result.fee_amount)
        if result.protocol_fee:
            self.protocol_fees.labels(pool=pool_id, token=token_in).inc(result.protocol_fee)
        if result.crossings:
            self.ticks_crossed.labels(pool=pool_id).inc(len(result.crossings))
        self.price_impact.observe(result.price_impact_bps)

    def track_liquidity_change(self, pool_id, liquidity, operation='add'):
        """Track liquidity additions/removals."""
        if operation == 'add':
            self.liquidity_added.labels(pool=pool_id).inc(liquidity)
        elif operation == 'remove':
            self.liquidity_removed.labels(pool=pool_id).inc(liquidity)

    def track_collect(self, pool_id, token, amount):
        if amount:
            self.fees_collected.labels(pool=pool_id, token=token).inc(amount)

    def track_error(self, pool_id, operation, code, fatal):
        self.errors_total.labels(
            pool=pool_id,
            operation=operation,
            code=code,
            severity="fatal" if fatal else "rejected",
        ).inc()
        if operation == "swap":
            self.swaps_total.labels(pool=pool_id, direction="unknown", status=code).inc()

    def update_pool(self, pool_id, state, initialized_ticks):
        """Refresh pool health gauges from a PoolState."""
        self.active_liquidity.labels(pool=pool_id).set(state.liquidity)
        self.sqrt_price.labels(pool=pool_id).set(state.sqrt_price / 2**64)
        self.current_tick.labels(pool=pool_id).set(state.current_tick)
        self.initialized_ticks.labels(pool=pool_id).set(initialized_ticks)


# Singleton instance
_pool_metrics_instance = None


def get_pool_metrics(registry=None):
    """Get or create singleton pool metrics instance."""
    global _pool_metrics_instance
    if _pool_metrics_instance is None:
        _pool_metrics_instance = PoolMetrics(registry=registry)
    return _pool_metrics_instance
