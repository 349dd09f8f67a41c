from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from core.domain.entities.trade_entity import TradeEntity


class TradeRepository(ABC):
    """Repository interface for trade history entries."""

    @abstractmethod
    async def ensure_indexes(self) -> None: ...

    @abstractmethod
    async def insert(self, trade: TradeEntity) -> TradeEntity: ...

    @abstractmethod
    async def list_recent(self, *, symbol: Optional[str] = None, limit: int = 50) -> List[TradeEntity]: ...

    @abstractmethod
    async def list_by_user(self, user_id: str, *, limit: int = 100) -> List[TradeEntity]: ...
