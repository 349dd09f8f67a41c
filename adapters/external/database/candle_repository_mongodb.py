from __future__ import annotations

from typing import Any, Dict, List, Optional, Set

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import UpdateOne

from adapters.external.database.store_errors import translate_store_errors
from adapters.external.timestamps import now_stamps
from core.domain.entities.candle_entity import AggregatedCandleEntity, CandleEntity
from core.repositories.candle_repository import CandleRepository


def _time_filter(from_time: Optional[int], to_time: Optional[int]) -> Dict[str, int]:
    rng: Dict[str, int] = {}
    if from_time is not None:
        rng["$gte"] = int(from_time)
    if to_time is not None:
        rng["$lt"] = int(to_time)
    return rng


class CandleRepositoryMongoDB(CandleRepository):
    """
    MongoDB implementation for candle persistence.

    Two collections:
      candles_raw         keyed by (symbol, time)             1-second bars
      candles_aggregated  keyed by (symbol, timeframe, time)  1m..1d buckets
    """

    RAW_COLLECTION = "candles_raw"
    AGG_COLLECTION = "candles_aggregated"

    def __init__(self, db: AsyncIOMotorDatabase):
        """
        Args:
            db: Motor database handle.
        """
        self._db = db

    async def ensure_indexes(self) -> None:
        """
        Ensure uniqueness per key and allow efficient range/retention queries.
        """
        raw = self._db[self.RAW_COLLECTION]
        await raw.create_index([("symbol", 1), ("time", 1)], unique=True)
        await raw.create_index([("time", 1)])

        agg = self._db[self.AGG_COLLECTION]
        await agg.create_index([("symbol", 1), ("timeframe", 1), ("time", 1)], unique=True)
        await agg.create_index([("timeframe", 1), ("time", 1)])

    # ---- raw ----

    @staticmethod
    def _upsert_op(key: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update document for an upsert by key.

        Adds timestamps:
        - created_at/created_at_iso on first insert
        - updated_at/updated_at_iso on every upsert
        """
        now_ms, now_iso = now_stamps()
        payload = dict(payload)
        payload.pop("_id", None)
        payload.pop("created_at", None)
        payload.pop("created_at_iso", None)
        payload.update(key)
        payload["updated_at"] = now_ms
        payload["updated_at_iso"] = now_iso
        return {
            "$set": payload,
            "$setOnInsert": {
                "created_at": now_ms,
                "created_at_iso": now_iso,
            },
        }

    @translate_store_errors
    async def upsert_raw(self, candle: CandleEntity) -> None:
        key = {"symbol": candle.symbol, "time": int(candle.time)}
        await self._db[self.RAW_COLLECTION].update_one(key, self._upsert_op(key, candle.to_mongo()), upsert=True)

    @translate_store_errors
    async def upsert_raw_many(self, candles: List[CandleEntity]) -> int:
        if not candles:
            return 0
        ops = []
        for c in candles:
            key = {"symbol": c.symbol, "time": int(c.time)}
            ops.append(UpdateOne(key, self._upsert_op(key, c.to_mongo()), upsert=True))
        await self._db[self.RAW_COLLECTION].bulk_write(ops, ordered=False)
        return len(ops)

    @translate_store_errors
    async def list_raw(
        self,
        symbol: str,
        *,
        from_time: Optional[int] = None,
        to_time: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[CandleEntity]:
        query: Dict[str, Any] = {"symbol": symbol}
        rng = _time_filter(from_time, to_time)
        if rng:
            query["time"] = rng
        cursor = self._db[self.RAW_COLLECTION].find(query).sort("time", 1)
        if limit is not None:
            cursor = cursor.limit(int(limit))
        docs = await cursor.to_list(length=int(limit) if limit is not None else None)
        return [c for c in (CandleEntity.from_mongo(d) for d in docs) if c is not None]

    @translate_store_errors
    async def get_earliest_raw_time(self, symbol: str) -> Optional[int]:
        doc = await self._db[self.RAW_COLLECTION].find_one({"symbol": symbol}, sort=[("time", 1)])
        return int(doc["time"]) if doc else None

    @translate_store_errors
    async def delete_raw_before(self, cutoff: int, *, symbol: Optional[str] = None) -> int:
        query: Dict[str, Any] = {"time": {"$lt": int(cutoff)}}
        if symbol is not None:
            query["symbol"] = symbol
        res = await self._db[self.RAW_COLLECTION].delete_many(query)
        return int(res.deleted_count)

    @translate_store_errors
    async def delete_raw_for_symbol(self, symbol: str) -> int:
        res = await self._db[self.RAW_COLLECTION].delete_many({"symbol": symbol})
        return int(res.deleted_count)

    @translate_store_errors
    async def delete_raw_at(self, symbol: str, time: int) -> int:
        res = await self._db[self.RAW_COLLECTION].delete_one({"symbol": symbol, "time": int(time)})
        return int(res.deleted_count)

    # ---- aggregated ----

    @translate_store_errors
    async def get_aggregated(self, symbol: str, timeframe: str, time: int) -> Optional[AggregatedCandleEntity]:
        doc = await self._db[self.AGG_COLLECTION].find_one({"symbol": symbol, "timeframe": timeframe, "time": int(time)})
        return AggregatedCandleEntity.from_mongo(doc)

    @translate_store_errors
    async def get_latest_aggregated(self, symbol: str, timeframe: str) -> Optional[AggregatedCandleEntity]:
        doc = await self._db[self.AGG_COLLECTION].find_one(
            {"symbol": symbol, "timeframe": timeframe},
            sort=[("time", -1)],
        )
        return AggregatedCandleEntity.from_mongo(doc)

    @translate_store_errors
    async def get_earliest_aggregated_time(self, symbol: str, timeframe: str) -> Optional[int]:
        doc = await self._db[self.AGG_COLLECTION].find_one(
            {"symbol": symbol, "timeframe": timeframe},
            sort=[("time", 1)],
            projection={"time": 1},
        )
        return int(doc["time"]) if doc else None

    @translate_store_errors
    async def upsert_aggregated(self, candle: AggregatedCandleEntity) -> None:
        key = {"symbol": candle.symbol, "timeframe": candle.timeframe, "time": int(candle.time)}
        await self._db[self.AGG_COLLECTION].update_one(key, self._upsert_op(key, candle.to_mongo()), upsert=True)

    @translate_store_errors
    async def list_aggregated(
        self,
        symbol: str,
        timeframe: str,
        *,
        from_time: Optional[int] = None,
        to_time: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[AggregatedCandleEntity]:
        query: Dict[str, Any] = {"symbol": symbol, "timeframe": timeframe}
        rng = _time_filter(from_time, to_time)
        if rng:
            query["time"] = rng
        cursor = self._db[self.AGG_COLLECTION].find(query).sort("time", 1)
        if limit is not None:
            cursor = cursor.limit(int(limit))
        docs = await cursor.to_list(length=int(limit) if limit is not None else None)
        return [c for c in (AggregatedCandleEntity.from_mongo(d) for d in docs) if c is not None]

    @translate_store_errors
    async def list_aggregated_times(
        self,
        symbol: str,
        timeframe: str,
        *,
        from_time: Optional[int] = None,
        to_time: Optional[int] = None,
    ) -> Set[int]:
        query: Dict[str, Any] = {"symbol": symbol, "timeframe": timeframe}
        rng = _time_filter(from_time, to_time)
        if rng:
            query["time"] = rng
        cursor = self._db[self.AGG_COLLECTION].find(query, projection={"time": 1, "_id": 0})
        return {int(d["time"]) async for d in cursor}

    @translate_store_errors
    async def delete_aggregated_before(
        self,
        timeframe: str,
        cutoff: int,
        *,
        symbol: Optional[str] = None,
    ) -> int:
        query: Dict[str, Any] = {"timeframe": timeframe, "time": {"$lt": int(cutoff)}}
        if symbol is not None:
            query["symbol"] = symbol
        res = await self._db[self.AGG_COLLECTION].delete_many(query)
        return int(res.deleted_count)

    @translate_store_errors
    async def delete_aggregated_from(self, timeframe: str, from_time: int, *, symbol: str) -> int:
        res = await self._db[self.AGG_COLLECTION].delete_many(
            {"symbol": symbol, "timeframe": timeframe, "time": {"$gte": int(from_time)}}
        )
        return int(res.deleted_count)
