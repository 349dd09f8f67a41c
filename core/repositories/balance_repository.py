from __future__ import annotations

from abc import ABC, abstractmethod


class BalanceRepository(ABC):
    """
    Ledger port for user margin balances (custody lives outside this service).

    `debit` is atomic with its sufficiency check; `credit` floors the
    resulting balance at zero so negative credits (losses) never overdraw.
    """

    @abstractmethod
    async def ensure_indexes(self) -> None: ...

    @abstractmethod
    async def get_balance(self, user_id: str) -> float:
        """
        Current balance; 0.0 for unknown users.
        """
        raise NotImplementedError

    @abstractmethod
    async def debit(self, user_id: str, amount: float) -> float:
        """
        Subtract `amount` and return the new balance.

        Raises:
            InsufficientBalanceError: balance < amount (nothing is changed).
        """
        raise NotImplementedError

    @abstractmethod
    async def credit(self, user_id: str, amount: float) -> float:
        """
        Add `amount` (may be negative) and return the new balance, floored at zero.
        """
        raise NotImplementedError
