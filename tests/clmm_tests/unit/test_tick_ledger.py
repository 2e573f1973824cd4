"""
Unit tests for TickLedger.

Coverage targets:
- Gross/net bookkeeping and tick flips
- Outside fee growth bootstrap and crossing
- Nearest initialized tick search in both directions
- Fee growth inside a range
"""

import pytest

from clmm.core.amm_exceptions import InvariantViolationError, MathOverflowError
from clmm.core.defi.tick_ledger import Direction, TickInfo, TickLedger, max_liquidity_per_tick


def _ledger_with_range(lower=-60, upper=60, liquidity=1000, current_tick=0, growth=(0, 0)):
    ledger = TickLedger(tick_spacing=60)
    ledger.update_tick(lower, liquidity, False, current_tick, *growth)
    ledger.update_tick(upper, liquidity, True, current_tick, *growth)
    return ledger


class TestUpdateTick:
    def test_first_reference_flips(self):
        ledger = TickLedger(tick_spacing=60)
        assert ledger.update_tick(60, 500, False, 0, 0, 0) is True
        assert ledger.update_tick(60, 500, False, 0, 0, 0) is False
        info = ledger.get_tick(60)
        assert info.liquidity_gross == 1000
        assert info.liquidity_net == 1000
        assert ledger.is_initialized(60)

    def test_upper_boundary_subtracts_net(self):
        ledger = _ledger_with_range()
        assert ledger.get_tick(-60).liquidity_net == 1000
        assert ledger.get_tick(60).liquidity_net == -1000
        assert ledger.liquidity_net_sum() == 0

    def test_removing_all_liquidity_clears_tick(self):
        ledger = _ledger_with_range()
        assert ledger.update_tick(-60, -1000, False, 0, 0, 0) is True
        assert not ledger.is_initialized(-60)
        assert -60 not in ledger.ticks
        assert ledger.initialized_ticks() == [60]

    def test_clearing_with_residual_net_is_invariant_violation(self):
        ledger = TickLedger(tick_spacing=60)
        ledger.update_tick(60, 1000, False, 0, 0, 0)
        # Removing as if it were an upper boundary leaves net = 2000 at gross 0
        with pytest.raises(InvariantViolationError):
            ledger.update_tick(60, -1000, True, 0, 0, 0)

    def test_gross_cannot_go_negative(self):
        ledger = TickLedger(tick_spacing=60)
        with pytest.raises(InvariantViolationError):
            ledger.update_tick(60, -1, False, 0, 0, 0)

    def test_misaligned_tick_rejected(self):
        ledger = TickLedger(tick_spacing=60)
        with pytest.raises(InvariantViolationError):
            ledger.update_tick(30, 10, False, 0, 0, 0)

    def test_max_liquidity_per_tick(self):
        ledger = TickLedger(tick_spacing=60)
        assert ledger.max_liquidity == max_liquidity_per_tick(60)
        with pytest.raises(MathOverflowError):
            ledger.update_tick(60, ledger.max_liquidity + 1, False, 0, 0, 0)

    def test_max_liquidity_grows_with_spacing(self):
        assert max_liquidity_per_tick(200) > max_liquidity_per_tick(60) > max_liquidity_per_tick(1)


class TestOutsideGrowthBootstrap:
    """Growth so far is assumed to have happened below a newly initialized tick."""

    def test_tick_at_or_below_current_takes_global(self):
        ledger = TickLedger(tick_spacing=60)
        ledger.update_tick(0, 10, False, 0, 111, 222)
        ledger.update_tick(-60, 10, False, 0, 111, 222)
        for tick in (0, -60):
            info = ledger.get_tick(tick)
            assert (info.fee_growth_outside_a, info.fee_growth_outside_b) == (111, 222)

    def test_tick_above_current_starts_at_zero(self):
        ledger = TickLedger(tick_spacing=60)
        ledger.update_tick(60, 10, True, 0, 111, 222)
        info = ledger.get_tick(60)
        assert (info.fee_growth_outside_a, info.fee_growth_outside_b) == (0, 0)

    def test_existing_tick_keeps_outside_growth(self):
        ledger = TickLedger(tick_spacing=60)
        ledger.update_tick(-60, 10, False, 0, 100, 0)
        ledger.update_tick(-60, 10, False, 0, 500, 0)
        assert ledger.get_tick(-60).fee_growth_outside_a == 100


class TestCrossTick:
    def test_cross_flips_outside_growth(self):
        ledger = _ledger_with_range(growth=(100, 40))
        net = ledger.cross_tick(-60, 300, 90)
        assert net == 1000
        info = ledger.get_tick(-60)
        assert info.fee_growth_outside_a == 200
        assert info.fee_growth_outside_b == 50

    def test_crossing_twice_restores(self):
        ledger = _ledger_with_range(growth=(100, 40))
        ledger.cross_tick(60, 300, 90)
        ledger.cross_tick(60, 300, 90)
        assert ledger.get_tick(60).fee_growth_outside_a == 0

    def test_cross_uninitialized_tick(self):
        ledger = TickLedger(tick_spacing=60)
        with pytest.raises(InvariantViolationError):
            ledger.cross_tick(120, 0, 0)


class TestNextInitializedTick:
    @pytest.fixture
    def ledger(self):
        ledger = TickLedger(tick_spacing=60)
        for tick, upper in ((-120, False), (0, False), (180, True)):
            ledger.update_tick(tick, 10, upper, 0, 0, 0)
        return ledger

    def test_down_includes_start(self, ledger):
        assert ledger.next_initialized_tick(0, Direction.DOWN) == 0

    def test_down_between(self, ledger):
        assert ledger.next_initialized_tick(-1, Direction.DOWN) == -120
        assert ledger.next_initialized_tick(179, Direction.DOWN) == 0

    def test_down_none_below(self, ledger):
        assert ledger.next_initialized_tick(-121, Direction.DOWN) is None

    def test_up_is_strictly_greater(self, ledger):
        assert ledger.next_initialized_tick(0, Direction.UP) == 180
        assert ledger.next_initialized_tick(-120, Direction.UP) == 0
        assert ledger.next_initialized_tick(-500, Direction.UP) == -120

    def test_up_none_above(self, ledger):
        assert ledger.next_initialized_tick(180, Direction.UP) is None

    def test_cleared_tick_is_skipped(self, ledger):
        ledger.update_tick(0, -10, False, 0, 0, 0)
        assert ledger.next_initialized_tick(100, Direction.DOWN) == -120

    def test_direction_for_swap(self):
        assert Direction.for_swap(True) is Direction.DOWN
        assert Direction.for_swap(False) is Direction.UP


class TestFeeGrowthInside:
    def test_all_growth_inside_when_price_in_range(self):
        ledger = _ledger_with_range(growth=(0, 0))
        assert ledger.fee_growth_inside(-60, 60, 0, 500, 70) == (500, 70)

    def test_no_growth_inside_when_bootstrapped_below(self):
        """A range above the price starts with zero inside growth."""
        ledger = TickLedger(tick_spacing=60)
        ledger.update_tick(60, 10, False, 0, 500, 500)
        ledger.update_tick(120, 10, True, 0, 500, 500)
        assert ledger.fee_growth_inside(60, 120, 0, 500, 500) == (0, 0)
        # Growth accrued while the price stays below does not count
        assert ledger.fee_growth_inside(60, 120, 0, 900, 900) == (0, 0)

    def test_range_below_price_ignores_later_growth(self):
        ledger = TickLedger(tick_spacing=60)
        ledger.update_tick(-120, 10, False, 0, 300, 0)
        ledger.update_tick(-60, 10, True, 0, 300, 0)
        before = ledger.fee_growth_inside(-120, -60, 0, 300, 0)
        after = ledger.fee_growth_inside(-120, -60, 0, 800, 0)
        assert before == after

    def test_tick_info_defaults(self):
        info = TickInfo()
        assert not info.initialized
        assert info.liquidity_net == 0
