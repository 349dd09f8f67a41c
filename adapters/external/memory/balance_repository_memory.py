from __future__ import annotations

import asyncio
from typing import Dict

from core.domain.errors import InsufficientBalanceError, ValidationError
from core.repositories.balance_repository import BalanceRepository


class BalanceRepositoryMemory(BalanceRepository):
    def __init__(self, initial: Dict[str, float] | None = None) -> None:
        self._amounts: Dict[str, float] = {k: float(v) for k, v in (initial or {}).items()}
        self._lock = asyncio.Lock()

    async def ensure_indexes(self) -> None:
        return None

    async def get_balance(self, user_id: str) -> float:
        return self._amounts.get(user_id, 0.0)

    async def debit(self, user_id: str, amount: float) -> float:
        if amount < 0:
            raise ValidationError(f"debit amount must be >= 0, got {amount}")
        async with self._lock:
            available = self._amounts.get(user_id, 0.0)
            if available < amount:
                raise InsufficientBalanceError(user_id=user_id, required=amount, available=available)
            self._amounts[user_id] = available - float(amount)
            return self._amounts[user_id]

    async def credit(self, user_id: str, amount: float) -> float:
        async with self._lock:
            self._amounts[user_id] = max(self._amounts.get(user_id, 0.0) + float(amount), 0.0)
            return self._amounts[user_id]
