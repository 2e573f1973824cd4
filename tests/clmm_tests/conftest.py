import sys
from pathlib import Path

import pytest

# Make the shared pool builders importable from every test directory
sys.path.insert(0, str(Path(__file__).parent))

from pool_helpers import DEPOSIT, LP, LP2, TRADER, deposit, fund, make_pool  # noqa: E402

from clmm.core.defi.token_bank import InMemoryTokenBank  # noqa: E402


@pytest.fixture
def bank():
    """Token bank with both LPs and the trader funded."""
    token_bank = InMemoryTokenBank()
    fund(token_bank, LP, 10 * DEPOSIT, 10 * DEPOSIT)
    fund(token_bank, LP2, 10 * DEPOSIT, 10 * DEPOSIT)
    fund(token_bank, TRADER, 10 * DEPOSIT, 10 * DEPOSIT)
    return token_bank


@pytest.fixture
def pool(bank):
    """Initialized, empty reference pool."""
    return make_pool(bank)


@pytest.fixture
def funded_pool(pool):
    """Reference pool with 10M of each token in [-60, 60]."""
    deposit(pool)
    return pool
