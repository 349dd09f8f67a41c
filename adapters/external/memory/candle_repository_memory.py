from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Set, Tuple

from adapters.external.timestamps import now_stamps
from core.domain.entities.candle_entity import AggregatedCandleEntity, CandleEntity
from core.repositories.candle_repository import CandleRepository


def _in_range(t: int, from_time: Optional[int], to_time: Optional[int]) -> bool:
    if from_time is not None and t < int(from_time):
        return False
    if to_time is not None and t >= int(to_time):
        return False
    return True


class CandleRepositoryMemory(CandleRepository):
    """
    In-process candle store.

    Raw candles:        {symbol: {time: doc}}
    Aggregated candles: {(symbol, timeframe): {time: doc}}

    Documents are the entities' `to_mongo()` payloads, the same shape the
    MongoDB adapter writes.
    """

    def __init__(self) -> None:
        self._raw: Dict[str, Dict[int, dict]] = {}
        self._agg: Dict[Tuple[str, str], Dict[int, dict]] = {}
        self._lock = asyncio.Lock()

    async def ensure_indexes(self) -> None:
        return None

    # ---- raw ----

    async def upsert_raw(self, candle: CandleEntity) -> None:
        async with self._lock:
            self._put(self._raw.setdefault(candle.symbol, {}), int(candle.time), candle.to_mongo())

    async def upsert_raw_many(self, candles: List[CandleEntity]) -> int:
        async with self._lock:
            for c in candles:
                self._put(self._raw.setdefault(c.symbol, {}), int(c.time), c.to_mongo())
        return len(candles)

    async def list_raw(
        self,
        symbol: str,
        *,
        from_time: Optional[int] = None,
        to_time: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[CandleEntity]:
        series = self._raw.get(symbol, {})
        times = sorted(t for t in series if _in_range(t, from_time, to_time))
        if limit is not None:
            times = times[: int(limit)]
        return [CandleEntity.from_mongo(series[t]) for t in times]

    async def get_earliest_raw_time(self, symbol: str) -> Optional[int]:
        series = self._raw.get(symbol)
        return min(series) if series else None

    async def delete_raw_before(self, cutoff: int, *, symbol: Optional[str] = None) -> int:
        async with self._lock:
            symbols = [symbol] if symbol is not None else list(self._raw)
            deleted = 0
            for s in symbols:
                series = self._raw.get(s, {})
                for t in [t for t in series if t < int(cutoff)]:
                    del series[t]
                    deleted += 1
            return deleted

    async def delete_raw_for_symbol(self, symbol: str) -> int:
        async with self._lock:
            return len(self._raw.pop(symbol, {}))

    async def delete_raw_at(self, symbol: str, time: int) -> int:
        async with self._lock:
            return 1 if self._raw.get(symbol, {}).pop(int(time), None) is not None else 0

    # ---- aggregated ----

    async def get_aggregated(self, symbol: str, timeframe: str, time: int) -> Optional[AggregatedCandleEntity]:
        doc = self._agg.get((symbol, timeframe), {}).get(int(time))
        return AggregatedCandleEntity.from_mongo(doc) if doc else None

    async def get_latest_aggregated(self, symbol: str, timeframe: str) -> Optional[AggregatedCandleEntity]:
        series = self._agg.get((symbol, timeframe))
        if not series:
            return None
        return AggregatedCandleEntity.from_mongo(series[max(series)])

    async def get_earliest_aggregated_time(self, symbol: str, timeframe: str) -> Optional[int]:
        series = self._agg.get((symbol, timeframe))
        return min(series) if series else None

    async def upsert_aggregated(self, candle: AggregatedCandleEntity) -> None:
        async with self._lock:
            series = self._agg.setdefault((candle.symbol, candle.timeframe), {})
            self._put(series, int(candle.time), candle.to_mongo())

    async def list_aggregated(
        self,
        symbol: str,
        timeframe: str,
        *,
        from_time: Optional[int] = None,
        to_time: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[AggregatedCandleEntity]:
        series = self._agg.get((symbol, timeframe), {})
        times = sorted(t for t in series if _in_range(t, from_time, to_time))
        if limit is not None:
            times = times[: int(limit)]
        return [AggregatedCandleEntity.from_mongo(series[t]) for t in times]

    async def list_aggregated_times(
        self,
        symbol: str,
        timeframe: str,
        *,
        from_time: Optional[int] = None,
        to_time: Optional[int] = None,
    ) -> Set[int]:
        series = self._agg.get((symbol, timeframe), {})
        return {t for t in series if _in_range(t, from_time, to_time)}

    async def delete_aggregated_before(
        self,
        timeframe: str,
        cutoff: int,
        *,
        symbol: Optional[str] = None,
    ) -> int:
        async with self._lock:
            deleted = 0
            for (s, tf), series in self._agg.items():
                if tf != timeframe or (symbol is not None and s != symbol):
                    continue
                for t in [t for t in series if t < int(cutoff)]:
                    del series[t]
                    deleted += 1
            return deleted

    async def delete_aggregated_from(self, timeframe: str, from_time: int, *, symbol: str) -> int:
        async with self._lock:
            series = self._agg.get((symbol, timeframe), {})
            doomed = [t for t in series if t >= int(from_time)]
            for t in doomed:
                del series[t]
            return len(doomed)

    @staticmethod
    def _put(series: Dict[int, dict], time: int, payload: dict) -> None:
        now_ms, now_iso = now_stamps()
        previous = series.get(time)
        payload.pop("_id", None)
        payload["created_at"] = previous.get("created_at", now_ms) if previous else now_ms
        payload["created_at_iso"] = previous.get("created_at_iso", now_iso) if previous else now_iso
        payload["updated_at"] = now_ms
        payload["updated_at_iso"] = now_iso
        series[time] = payload
