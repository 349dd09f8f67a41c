from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from core.domain.entities.pair_entity import PairEntity


class PairRepository(ABC):
    """
    Abstraction for tradable pairs keyed by symbol.
    """

    @abstractmethod
    async def ensure_indexes(self) -> None: ...

    @abstractmethod
    async def list_all(self) -> List[PairEntity]:
        """
        List every pair, ordered by symbol.
        """
        raise NotImplementedError

    @abstractmethod
    async def get(self, symbol: str) -> Optional[PairEntity]:
        raise NotImplementedError

    @abstractmethod
    async def count_all(self) -> int:
        raise NotImplementedError

    @abstractmethod
    async def upsert(self, pair: PairEntity) -> None:
        """
        Insert or update a pair definition (name, description, prices, override).
        """
        raise NotImplementedError

    @abstractmethod
    async def update_current_price(self, symbol: str, *, price: float, candle_time: int) -> None:
        """
        Record the latest close. Only the candle generator calls this.
        """
        raise NotImplementedError

    @abstractmethod
    async def set_chaos_override(self, symbol: str, level: Optional[int]) -> bool:
        """
        Set or clear (None) the chaos override. Returns False if the pair does not exist.
        """
        raise NotImplementedError
