"""
Concentrated Liquidity Pool - facade tests.

Covers the entry points end to end against an in-memory token bank:
liquidity provision, swaps in both modes, previews, fee collection,
all-or-nothing rollback and the pool views.
"""

import copy
import logging

import pytest

from pool_helpers import (
    ADMIN,
    DEPOSIT,
    LP,
    LP2,
    TOKEN_A,
    TOKEN_B,
    TRADER,
    balances,
    deposit,
    fund,
    make_pool,
)

from clmm.core.amm_exceptions import (
    AlreadyInitializedError,
    AmountTooLowError,
    DustOutputError,
    InsufficientBalanceError,
    InsufficientLiquidityError,
    InvalidTickRangeError,
    InvalidTokenError,
    NoLiquidityError,
    NotInitializedError,
    PositionNotFoundError,
    PriceLimitError,
    SlippageExceededError,
    UnauthorizedError,
)
from clmm.core.defi.concentrated_liquidity import ConcentratedLiquidityPool
from clmm.core.defi.fixed_point import Q64, mul_div, tick_to_sqrt_price
from clmm.core.defi.token_bank import InMemoryTokenBank
from clmm.core.defi.twap_observer import TwapObserver


def _snapshot(pool):
    return (
        pool.get_pool_state(),
        {tick: pool.get_tick_info(tick) for tick in pool.ticks.initialized_ticks()},
        {key: vars(position).copy() for key, position in pool.positions.positions.items()},
    )


# ==================== Initialization ====================


class TestInitialize:
    def test_initialize_once(self, pool):
        with pytest.raises(AlreadyInitializedError):
            pool.initialize(ADMIN, TOKEN_A, TOKEN_B, 30, 0, Q64, 0, 60)

    def test_uninitialized_pool(self):
        pool = ConcentratedLiquidityPool()
        with pytest.raises(NotInitializedError):
            pool.swap(TRADER, TOKEN_A, TOKEN_B, 1_000, 0)
        with pytest.raises(NotInitializedError):
            pool.get_pool_state()

    def test_failed_initialize_leaves_pool_uninitialized(self):
        pool = ConcentratedLiquidityPool()
        with pytest.raises(InvalidTokenError):
            pool.initialize(ADMIN, TOKEN_A, TOKEN_A, 30, 0, Q64, 0, 60)
        assert pool.state is None
        pool.initialize(ADMIN, TOKEN_A, TOKEN_B, 30, 0, Q64, 0, 60)
        assert pool.get_pool_state()["tick"] == 0

    def test_address_is_derived(self):
        first, second = ConcentratedLiquidityPool(), ConcentratedLiquidityPool()
        assert first.address.startswith("0x")
        assert len(first.address) == 42
        assert first.address != second.address

    def test_swap_direction(self, pool):
        assert pool.get_swap_direction(TOKEN_A, TOKEN_B) is True
        assert pool.get_swap_direction(TOKEN_B) is False
        with pytest.raises(InvalidTokenError):
            pool.get_swap_direction(TOKEN_A, TOKEN_A)
        with pytest.raises(InvalidTokenError):
            pool.get_swap_direction("OTHER")


# ==================== Liquidity ====================


class TestAddLiquidity:
    def test_symmetric_deposit(self, pool, bank):
        liquidity, amount_a, amount_b = deposit(pool)
        assert liquidity > 0
        assert amount_a <= DEPOSIT and amount_b <= DEPOSIT
        assert max(amount_a, amount_b) >= DEPOSIT - 1
        assert pool.state.liquidity == liquidity
        assert bank.balance_of(TOKEN_A, pool.address) == amount_a
        assert bank.balance_of(TOKEN_B, pool.address) == amount_b
        assert bank.balance_of(TOKEN_A, LP) == 10 * DEPOSIT - amount_a

    def test_reversed_pair_order(self, pool):
        liquidity, amount_b, amount_a = pool.add_liquidity(
            LP, TOKEN_B, TOKEN_A, DEPOSIT, 1_000, 0, 0, -60, 60
        )
        assert amount_a <= 1_000
        assert amount_b <= DEPOSIT
        position = pool.get_position(LP, -60, 60)
        assert position["liquidity"] == liquidity

    def test_range_above_price_takes_only_token_a(self, pool):
        _, amount_a, amount_b = deposit(pool, lower=60, upper=120)
        assert amount_a > 0
        assert amount_b == 0
        assert pool.state.liquidity == 0

    def test_unknown_token(self, pool):
        with pytest.raises(InvalidTokenError):
            pool.add_liquidity(LP, TOKEN_A, "OTHER", DEPOSIT, DEPOSIT, 0, 0, -60, 60)

    def test_misaligned_range(self, pool):
        with pytest.raises(InvalidTickRangeError):
            deposit(pool, lower=-30, upper=60)

    def test_liquidity_below_minimum(self, pool):
        with pytest.raises(AmountTooLowError):
            deposit(pool, amount_a=1, amount_b=1)

    def test_negative_amount(self, pool):
        with pytest.raises(AmountTooLowError):
            deposit(pool, amount_a=-1)

    def test_slippage_on_deposit_rolls_back(self, pool, bank):
        before = balances(bank, LP, pool.address)
        with pytest.raises(SlippageExceededError):
            pool.add_liquidity(LP, TOKEN_A, TOKEN_B, DEPOSIT, 1_000, DEPOSIT, 0, -60, 60)
        assert pool.positions.positions == {}
        assert pool.ticks.initialized_ticks() == []
        assert balances(bank, LP, pool.address) == before

    def test_insufficient_balance_rolls_back(self, pool):
        with pytest.raises(InsufficientBalanceError):
            deposit(pool, owner="pauper")
        assert pool.positions.positions == {}
        assert pool.state.liquidity == 0

    def test_without_token_bank(self):
        pool = make_pool()
        liquidity, _, _ = deposit(pool)
        assert pool.state.liquidity == liquidity


class TestRemoveLiquidity:
    def test_round_trip(self, pool, bank):
        liquidity, paid_a, paid_b = deposit(pool)
        returned_a, returned_b = pool.remove_liquidity(LP, -60, 60, liquidity, 0, 0)
        assert paid_a - 1 <= returned_a <= paid_a
        assert paid_b - 1 <= returned_b <= paid_b
        assert pool.state.liquidity == 0
        assert pool.ticks.initialized_ticks() == []
        assert bank.balance_of(TOKEN_A, LP) >= 10 * DEPOSIT - 1

    def test_partial_removal(self, funded_pool):
        liquidity = funded_pool.get_position(LP, -60, 60)["liquidity"]
        funded_pool.remove_liquidity(LP, -60, 60, liquidity // 2, 0, 0)
        assert funded_pool.state.liquidity == liquidity - liquidity // 2
        funded_pool.verify_invariants()

    def test_over_removal(self, funded_pool):
        liquidity = funded_pool.get_position(LP, -60, 60)["liquidity"]
        with pytest.raises(InsufficientLiquidityError):
            funded_pool.remove_liquidity(LP, -60, 60, liquidity + 1, 0, 0)

    def test_non_positive_amount(self, funded_pool):
        with pytest.raises(AmountTooLowError):
            funded_pool.remove_liquidity(LP, -60, 60, 0, 0, 0)

    def test_withdrawal_minimums(self, funded_pool):
        liquidity = funded_pool.get_position(LP, -60, 60)["liquidity"]
        with pytest.raises(SlippageExceededError):
            funded_pool.remove_liquidity(LP, -60, 60, liquidity, 10 * DEPOSIT, 0)
        assert funded_pool.get_position(LP, -60, 60)["liquidity"] == liquidity

    def test_fees_stay_owed_after_removal(self, funded_pool):
        funded_pool.swap(TRADER, TOKEN_A, TOKEN_B, 1_000_000, 0)
        liquidity = funded_pool.get_position(LP, -60, 60)["liquidity"]
        funded_pool.remove_liquidity(LP, -60, 60, liquidity, 0, 0)
        position = funded_pool.get_position(LP, -60, 60)
        assert position["liquidity"] == 0
        assert position["tokens_owed_a"] > 0


# ==================== Swaps ====================


class TestSwap:
    def test_reference_swap(self, funded_pool, bank):
        """1M token A into a 1:1 pool holding 10M of each in [-60, 60)."""
        pool = funded_pool
        liquidity = pool.state.liquidity
        growth_before = pool.state.fee_growth_global_a

        amount_out = pool.swap(TRADER, TOKEN_A, TOKEN_B, 1_000_000, 0)

        assert 990_000 < amount_out < 997_000
        assert pool.state.sqrt_price < Q64
        assert -60 <= pool.state.current_tick < 0
        assert pool.state.liquidity == liquidity

        # 30 bps of 1M, plus at most one unit of rounding kept as fee
        growth = pool.state.fee_growth_global_a - growth_before
        assert growth in {mul_div(fee, Q64, liquidity) for fee in (3_000, 3_001)}
        assert pool.state.fee_growth_global_b == 0

        assert bank.balance_of(TOKEN_A, TRADER) == 10 * DEPOSIT - 1_000_000
        assert bank.balance_of(TOKEN_B, TRADER) == 10 * DEPOSIT + amount_out

    def test_swap_b_for_a_raises_price(self, funded_pool):
        funded_pool.swap(TRADER, TOKEN_B, TOKEN_A, 1_000_000, 0)
        assert funded_pool.state.sqrt_price > Q64
        assert 0 <= funded_pool.state.current_tick < 60

    def test_exact_output(self, funded_pool, bank):
        before = bank.balance_of(TOKEN_B, TRADER)
        amount_in = funded_pool.swap_exact_output(TRADER, TOKEN_A, TOKEN_B, 100_000, 200_000)
        assert 100_000 < amount_in < 101_000
        assert bank.balance_of(TOKEN_B, TRADER) == before + 100_000

    def test_exact_output_max_in(self, funded_pool):
        with pytest.raises(SlippageExceededError):
            funded_pool.swap_exact_output(TRADER, TOKEN_A, TOKEN_B, 100_000, 100_000)

    def test_exact_output_partial_fill_rejected(self, funded_pool):
        limit = tick_to_sqrt_price(-1)
        with pytest.raises(SlippageExceededError):
            funded_pool.swap_exact_output(TRADER, TOKEN_A, TOKEN_B, 1_000_000, 10**9, limit)

    def test_price_limit(self, funded_pool):
        limit = tick_to_sqrt_price(-30)
        result = funded_pool.swap_advanced(TRADER, True, 5 * DEPOSIT, limit)
        assert funded_pool.state.sqrt_price == limit
        assert result.amount_in < 5 * DEPOSIT

    def test_price_limit_wrong_side(self, funded_pool):
        with pytest.raises(PriceLimitError):
            funded_pool.swap(TRADER, TOKEN_A, TOKEN_B, 1_000, 0, tick_to_sqrt_price(60))

    def test_zero_amount(self, funded_pool):
        with pytest.raises(AmountTooLowError):
            funded_pool.swap(TRADER, TOKEN_A, TOKEN_B, 0, 0)

    def test_dust_output(self, funded_pool):
        with pytest.raises(DustOutputError):
            funded_pool.swap(TRADER, TOKEN_A, TOKEN_B, 5, 0)

    def test_liquidity_exhaustion_rolls_back(self, funded_pool, bank):
        fund(bank, TRADER, amount_a=10**12)
        before = _snapshot(funded_pool)
        bank_before = balances(bank, TRADER, funded_pool.address)
        with pytest.raises(NoLiquidityError):
            funded_pool.swap(TRADER, TOKEN_A, TOKEN_B, 10**12, 0)
        assert _snapshot(funded_pool) == before
        assert balances(bank, TRADER, funded_pool.address) == bank_before

    def test_slippage_rolls_back(self, funded_pool, bank):
        before = _snapshot(funded_pool)
        bank_before = balances(bank, TRADER, funded_pool.address)
        with pytest.raises(SlippageExceededError):
            funded_pool.swap(TRADER, TOKEN_A, TOKEN_B, 1_000_000, 1_000_000)
        assert _snapshot(funded_pool) == before
        assert balances(bank, TRADER, funded_pool.address) == bank_before

    def test_unfunded_trader_rolls_back(self, funded_pool):
        before = _snapshot(funded_pool)
        with pytest.raises(InsufficientBalanceError):
            funded_pool.swap("pauper", TOKEN_A, TOKEN_B, 1_000_000, 0)
        assert _snapshot(funded_pool) == before

    def test_crossing_into_adjacent_range(self, funded_pool, bank):
        deposit(funded_pool, owner=LP2, lower=-180, upper=-60, amount_a=0)
        funded_pool.swap(TRADER, TOKEN_A, TOKEN_B, 15_000_000, 0)

        assert -180 <= funded_pool.state.current_tick < -60
        carol = funded_pool.get_position(LP2, -180, -60)
        assert carol["in_range"]
        assert funded_pool.state.liquidity == carol["liquidity"]
        funded_pool.verify_invariants()

        funded_pool.swap(TRADER, TOKEN_B, TOKEN_A, 10_000_000, 0)
        assert -60 <= funded_pool.state.current_tick < 60
        funded_pool.verify_invariants()

    def test_both_sides_earn_fees_after_round_trip(self, funded_pool):
        funded_pool.swap(TRADER, TOKEN_A, TOKEN_B, 1_000_000, 0)
        funded_pool.swap(TRADER, TOKEN_B, TOKEN_A, 1_000_000, 0)
        position = funded_pool.get_position(LP, -60, 60)
        assert position["fees_pending_a"] > 0
        assert position["fees_pending_b"] > 0


class TestSwapRollbackScope:
    """Swaps restore pool state and crossed ticks in place instead of copying ledgers."""

    @staticmethod
    def _add_small_positions(pool, bank, count=200):
        for index in range(count):
            owner = f"lp{index}"
            fund(bank, owner, 100_000, 100_000)
            width = 60 * (1 + index % 5)
            deposit(pool, owner=owner, lower=-width, upper=width, amount_a=100_000, amount_b=100_000)

    def test_swaps_never_copy_ledgers(self, funded_pool, bank, monkeypatch):
        self._add_small_positions(funded_pool, bank)
        ledger, ticks = funded_pool.positions, funded_pool.ticks
        deepcopied = []
        real_deepcopy = copy.deepcopy

        def tracking_deepcopy(obj, memo=None):
            deepcopied.append(obj)
            return real_deepcopy(obj, memo)

        monkeypatch.setattr(copy, "deepcopy", tracking_deepcopy)

        funded_pool.swap(TRADER, TOKEN_A, TOKEN_B, 1_000_000, 0)
        funded_pool.swap_exact_output(TRADER, TOKEN_B, TOKEN_A, 500_000, 10**7)
        with pytest.raises(SlippageExceededError):
            funded_pool.swap(TRADER, TOKEN_A, TOKEN_B, 1_000_000, 10**9)

        assert deepcopied == []
        assert funded_pool.positions is ledger
        assert funded_pool.ticks is ticks

    def test_failed_settlement_restores_crossed_tick(self, funded_pool, bank):
        deposit(funded_pool, owner=LP2, lower=-180, upper=-60, amount_a=0)
        preview = funded_pool.preview_swap(TOKEN_A, TOKEN_B, 15_000_000)
        assert preview.tick_after < -60

        fund(bank, "pauper", amount_a=1_000)
        before = _snapshot(funded_pool)
        ledger = funded_pool.positions
        with pytest.raises(InsufficientBalanceError):
            funded_pool.swap("pauper", TOKEN_A, TOKEN_B, 15_000_000, 0)

        assert _snapshot(funded_pool) == before
        assert funded_pool.positions is ledger
        funded_pool.verify_invariants()
        assert funded_pool.swap(TRADER, TOKEN_A, TOKEN_B, 15_000_000, 0) == preview.amount_out


class TestPreview:
    def test_preview_matches_swap(self, funded_pool):
        before = _snapshot(funded_pool)
        preview = funded_pool.preview_swap(TOKEN_A, TOKEN_B, 1_000_000)
        assert preview.is_valid
        assert _snapshot(funded_pool) == before

        amount_out = funded_pool.swap(TRADER, TOKEN_A, TOKEN_B, 1_000_000, 0)
        assert preview.amount_out == amount_out
        assert preview.amount_in_used == 1_000_000
        assert preview.sqrt_price_after == funded_pool.state.sqrt_price
        assert preview.tick_after == funded_pool.state.current_tick
        assert preview.fee_paid in (3_000, 3_001)

    def test_preview_reports_validation_errors(self, funded_pool):
        preview = funded_pool.preview_swap(TOKEN_A, TOKEN_B, 1_000_000, min_amount_out=10**9)
        assert not preview.is_valid
        assert preview.error_code == "SLIP_HI"

    def test_preview_on_empty_pool(self, pool):
        preview = pool.preview_swap(TOKEN_A, TOKEN_B, 1_000)
        assert not preview.is_valid
        assert preview.error_code == "NO_LIQ"

    def test_preview_bad_token(self, pool):
        preview = pool.preview_swap("OTHER", TOKEN_B, 1_000)
        assert preview.error_code == "BAD_TOKEN"

    def test_advanced_preview_exact_output(self, funded_pool):
        before = _snapshot(funded_pool)
        preview = funded_pool.preview_swap_advanced(True, -500_000)
        assert preview.is_valid
        assert preview.amount_out == 500_000
        assert _snapshot(funded_pool) == before

        amount_in = funded_pool.swap_exact_output(TRADER, TOKEN_A, TOKEN_B, 500_000, preview.amount_in_used)
        assert amount_in == preview.amount_in_used
        assert preview.sqrt_price_after == funded_pool.state.sqrt_price

    def test_advanced_preview_partial_fill_at_limit(self, funded_pool):
        limit = tick_to_sqrt_price(30)
        preview = funded_pool.preview_swap_advanced(False, -10**9, limit)
        assert preview.is_valid
        assert preview.sqrt_price_after == limit
        assert 0 < preview.amount_out < 10**9

        result = funded_pool.swap_advanced(TRADER, False, -10**9, limit)
        assert result.amount_out == preview.amount_out
        assert result.amount_in == preview.amount_in_used

    def test_advanced_preview_reports_errors(self, funded_pool):
        assert funded_pool.preview_swap_advanced(True, 0).error_code == "AMT_LOW"
        assert funded_pool.preview_swap_advanced(True, -500_000, max_amount_in=1).error_code == "SLIP_HI"
        assert make_pool().preview_swap_advanced(False, 1_000).error_code == "NO_LIQ"
        assert ConcentratedLiquidityPool().preview_swap_advanced(True, 1_000).error_code == "NotInitialized"


# ==================== Fees ====================


class TestCollect:
    def test_collect_fees(self, funded_pool, bank):
        funded_pool.swap(TRADER, TOKEN_A, TOKEN_B, 1_000_000, 0)
        before = bank.balance_of(TOKEN_A, LP)
        amount_a, amount_b = funded_pool.collect(LP, -60, 60, 2**128 - 1, 2**128 - 1)
        assert 2_999 <= amount_a <= 3_001
        assert amount_b == 0
        assert bank.balance_of(TOKEN_A, LP) == before + amount_a

        # Nothing left to collect
        assert funded_pool.collect(LP, -60, 60, 2**128 - 1, 2**128 - 1) == (0, 0)

    def test_partial_collect(self, funded_pool):
        funded_pool.swap(TRADER, TOKEN_A, TOKEN_B, 1_000_000, 0)
        assert funded_pool.collect(LP, -60, 60, 1_000, 0) == (1_000, 0)
        assert funded_pool.get_position(LP, -60, 60)["tokens_owed_a"] >= 1_999

    def test_collect_missing_position(self, funded_pool):
        with pytest.raises(PositionNotFoundError):
            funded_pool.collect("nobody", -60, 60, 1, 1)

    def test_fees_split_by_liquidity(self, funded_pool):
        deposit(funded_pool, owner=TRADER)
        funded_pool.swap(TRADER, TOKEN_A, TOKEN_B, 1_000_000, 0)
        alice, _ = funded_pool.collect(LP, -60, 60, 2**128 - 1, 0)
        bob, _ = funded_pool.collect(TRADER, -60, 60, 2**128 - 1, 0)
        assert abs(alice - bob) <= 1
        assert 2_998 <= alice + bob <= 3_001

    def test_out_of_range_position_earns_nothing(self, funded_pool):
        deposit(funded_pool, owner=LP2, lower=60, upper=120, amount_b=0)
        funded_pool.swap(TRADER, TOKEN_A, TOKEN_B, 1_000_000, 0)
        assert funded_pool.collect(LP2, 60, 120, 2**128 - 1, 2**128 - 1) == (0, 0)


class TestProtocolFees:
    @pytest.fixture
    def protocol_pool(self, bank):
        pool = make_pool(bank, protocol_fee_bps=1_000)
        deposit(pool)
        return pool

    def test_protocol_share(self, protocol_pool, bank):
        protocol_pool.swap(TRADER, TOKEN_A, TOKEN_B, 1_000_000, 0)
        assert protocol_pool.state.protocol_fees_a == 300

        amount_a, amount_b = protocol_pool.collect_protocol(ADMIN, 2**128 - 1, 2**128 - 1)
        assert (amount_a, amount_b) == (300, 0)
        assert protocol_pool.state.protocol_fees_a == 0
        assert bank.balance_of(TOKEN_A, ADMIN) == 300

    def test_only_admin(self, protocol_pool):
        protocol_pool.swap(TRADER, TOKEN_A, TOKEN_B, 1_000_000, 0)
        with pytest.raises(UnauthorizedError):
            protocol_pool.collect_protocol(TRADER, 1, 1)
        assert protocol_pool.state.protocol_fees_a == 300

    def test_lp_receives_remainder(self, protocol_pool):
        protocol_pool.swap(TRADER, TOKEN_A, TOKEN_B, 1_000_000, 0)
        amount_a, _ = protocol_pool.collect(LP, -60, 60, 2**128 - 1, 0)
        assert 2_699 <= amount_a <= 2_701


# ==================== Views & Invariants ====================


class TestViews:
    def test_pool_state(self, funded_pool):
        view = funded_pool.get_pool_state()
        assert view["tick"] == 0
        assert view["price"] == 1.0
        assert view["positions_count"] == 1
        assert view["initialized_ticks"] == 2
        assert view["token_a"] == TOKEN_A

    def test_position_view(self, funded_pool):
        view = funded_pool.get_position(LP, -60, 60)
        assert view["in_range"]
        assert view["amount_a"] <= DEPOSIT
        assert funded_pool.get_position("nobody", -60, 60) is None

    def test_tick_info(self, funded_pool):
        info = funded_pool.get_tick_info(60)
        assert info["initialized"]
        assert info["liquidity_net"] == -funded_pool.state.liquidity
        assert not funded_pool.get_tick_info(120)["initialized"]

    def test_net_liquidity_sums_to_zero(self, funded_pool):
        deposit(funded_pool, owner=LP2, lower=-120, upper=180)
        assert funded_pool.ticks.liquidity_net_sum() == 0
        funded_pool.verify_invariants()

    def test_pool_liquidity_equals_in_range_positions(self, funded_pool):
        deposit(funded_pool, owner=LP2, lower=-120, upper=0, amount_a=0)
        deposit(funded_pool, owner=TRADER, lower=60, upper=240, amount_b=0)
        assert funded_pool.state.liquidity == funded_pool.positions.active_liquidity(0)
        funded_pool.verify_invariants()


# ==================== Ambient behaviour ====================


class TestLoggingAndObservers:
    def test_rejections_logged(self, funded_pool, caplog):
        caplog.set_level(logging.INFO, logger="clmm")
        with pytest.raises(SlippageExceededError):
            funded_pool.swap(TRADER, TOKEN_A, TOKEN_B, 1_000_000, 10**9)
        records = [r for r in caplog.records if getattr(r, "event", None) == "clmm.rejected"]
        assert records
        assert records[0].code == "SLIP_HI"
        assert records[0].levelno == logging.INFO

    def test_swap_logged(self, funded_pool, caplog):
        caplog.set_level(logging.INFO, logger="clmm")
        funded_pool.swap(TRADER, TOKEN_A, TOKEN_B, 1_000_000, 0)
        assert any(getattr(r, "event", None) == "clmm.swap" for r in caplog.records)

    def test_observer_receives_samples(self, bank):
        now = [1_000]
        observer = TwapObserver(window_size_seconds=600)
        pool = make_pool(bank, observers=[observer], clock=lambda: now[0])
        deposit(pool)
        pool.swap(TRADER, TOKEN_A, TOKEN_B, 1_000_000, 0)
        assert len(observer.samples) == 1
        assert observer.samples[0].tick == pool.state.current_tick
        assert observer.samples[0].timestamp == 1_000

    def test_failing_observer_does_not_break_swap(self, bank, caplog):
        class Broken:
            def observe(self, sample):
                raise RuntimeError("boom")

        caplog.set_level(logging.WARNING, logger="clmm")
        pool = make_pool(bank, observers=[Broken()])
        deposit(pool)
        amount_out = pool.swap(TRADER, TOKEN_A, TOKEN_B, 1_000_000, 0)
        assert amount_out > 0
        assert any(getattr(r, "event", None) == "clmm.observer_failed" for r in caplog.records)

    def test_pool_holds_deposits_in_bank(self):
        bank = InMemoryTokenBank()
        pool = make_pool(bank)
        fund(bank, LP, DEPOSIT, DEPOSIT)
        _, amount_a, amount_b = deposit(pool)
        assert bank.balances[TOKEN_A][pool.address] == amount_a
        assert bank.balances[TOKEN_B][pool.address] == amount_b
