from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Set

from core.domain.entities.candle_entity import AggregatedCandleEntity, CandleEntity


class CandleRepository(ABC):
    """
    Candle store for raw (1-second) and aggregated candles.

    Raw candles are keyed by (symbol, time); aggregated candles by
    (symbol, timeframe, time). All list methods return candles in ascending
    time order. Time ranges are half-open: from_time inclusive, to_time exclusive.
    """

    @abstractmethod
    async def ensure_indexes(self) -> None: ...

    # ---- raw ----

    @abstractmethod
    async def upsert_raw(self, candle: CandleEntity) -> None:
        """Insert or replace the raw candle at (symbol, time)."""

    @abstractmethod
    async def upsert_raw_many(self, candles: List[CandleEntity]) -> int: ...

    @abstractmethod
    async def list_raw(
        self,
        symbol: str,
        *,
        from_time: Optional[int] = None,
        to_time: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[CandleEntity]: ...

    @abstractmethod
    async def get_earliest_raw_time(self, symbol: str) -> Optional[int]: ...

    @abstractmethod
    async def delete_raw_before(self, cutoff: int, *, symbol: Optional[str] = None) -> int:
        """Delete raw candles with time < cutoff. Returns the number deleted."""

    @abstractmethod
    async def delete_raw_for_symbol(self, symbol: str) -> int: ...

    @abstractmethod
    async def delete_raw_at(self, symbol: str, time: int) -> int:
        """Delete the raw candle at (symbol, time), if any."""

    # ---- aggregated ----

    @abstractmethod
    async def get_aggregated(self, symbol: str, timeframe: str, time: int) -> Optional[AggregatedCandleEntity]: ...

    @abstractmethod
    async def get_latest_aggregated(self, symbol: str, timeframe: str) -> Optional[AggregatedCandleEntity]: ...

    @abstractmethod
    async def get_earliest_aggregated_time(self, symbol: str, timeframe: str) -> Optional[int]: ...

    @abstractmethod
    async def upsert_aggregated(self, candle: AggregatedCandleEntity) -> None:
        """Insert or replace the aggregated candle at (symbol, timeframe, time)."""

    @abstractmethod
    async def list_aggregated(
        self,
        symbol: str,
        timeframe: str,
        *,
        from_time: Optional[int] = None,
        to_time: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[AggregatedCandleEntity]: ...

    @abstractmethod
    async def list_aggregated_times(
        self,
        symbol: str,
        timeframe: str,
        *,
        from_time: Optional[int] = None,
        to_time: Optional[int] = None,
    ) -> Set[int]: ...

    @abstractmethod
    async def delete_aggregated_before(
        self,
        timeframe: str,
        cutoff: int,
        *,
        symbol: Optional[str] = None,
    ) -> int:
        """Delete aggregated candles of a timeframe with time < cutoff. Returns the number deleted."""

    @abstractmethod
    async def delete_aggregated_from(self, timeframe: str, from_time: int, *, symbol: str) -> int:
        """Delete a symbol's aggregated candles of a timeframe with time >= from_time."""
