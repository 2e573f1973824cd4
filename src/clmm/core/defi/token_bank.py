"""
Token-transfer collaborator.

The pool never moves tokens itself. After its ledgers are committed it hands
one batch of transfers to a ``TokenBank``; the bank must apply the whole batch
or none of it.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Protocol, Sequence, runtime_checkable

from ..amm_exceptions import AmountTooLowError, InsufficientBalanceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transfer:
    token: str
    sender: str
    recipient: str
    amount: int


@runtime_checkable
class TokenBank(Protocol):
    """Interface the pool uses to settle token movements."""

    def balance_of(self, token: str, holder: str) -> int:
        ...

    def settle(self, transfers: Sequence[Transfer]) -> None:
        ...


@dataclass
class InMemoryTokenBank:
    """Dictionary-backed token balances for simulation and tests."""

    balances: dict[str, dict[str, int]] = field(default_factory=dict)

    def mint(self, token: str, holder: str, amount: int) -> None:
        if amount < 0:
            raise AmountTooLowError("Mint amount must be non-negative", details={"amount": amount})
        self.balances.setdefault(token, {})[holder] = self.balance_of(token, holder) + amount

    def balance_of(self, token: str, holder: str) -> int:
        return self.balances.get(token, {}).get(holder, 0)

    def settle(self, transfers: Sequence[Transfer]) -> None:
        """
        Apply a batch of transfers atomically.

        Raises:
            AmountTooLowError: A transfer has a negative amount
            InsufficientBalanceError: A sender cannot cover its net outflow
        """
        net: dict[tuple[str, str], int] = defaultdict(int)
        for transfer in transfers:
            if transfer.amount < 0:
                raise AmountTooLowError(
                    "Transfer amount must be non-negative",
                    details={"transfer": transfer},
                )
            net[(transfer.token, transfer.sender)] -= transfer.amount
            net[(transfer.token, transfer.recipient)] += transfer.amount

        for (token, holder), delta in net.items():
            balance = self.balance_of(token, holder)
            if balance + delta < 0:
                raise InsufficientBalanceError(
                    f"{holder} cannot cover {-delta} {token}",
                    details={"token": token, "holder": holder, "balance": balance, "required": -delta},
                )

        for (token, holder), delta in net.items():
            if delta:
                self.balances.setdefault(token, {})[holder] = self.balance_of(token, holder) + delta

        logger.debug(
            "Settled %d transfers",
            len(transfers),
            extra={"event": "clmm.settle", "transfers": len(transfers)},
        )
