from __future__ import annotations

from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from adapters.external.database.store_errors import translate_store_errors
from adapters.external.timestamps import now_stamps
from core.domain.entities.pair_entity import PairEntity
from core.repositories.pair_repository import PairRepository


class PairRepositoryMongoDB(PairRepository):
    """
    MongoDB repository for tradable pairs.

    Collection: pairs
    Unique key: symbol
    """

    COLLECTION = "pairs"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db

    async def ensure_indexes(self) -> None:
        await self._db[self.COLLECTION].create_index([("symbol", 1)], unique=True)

    @translate_store_errors
    async def list_all(self) -> List[PairEntity]:
        docs = await self._db[self.COLLECTION].find({}).sort("symbol", 1).to_list(length=None)
        return [p for p in (PairEntity.from_mongo(d) for d in docs) if p is not None]

    @translate_store_errors
    async def get(self, symbol: str) -> Optional[PairEntity]:
        doc = await self._db[self.COLLECTION].find_one({"symbol": symbol})
        return PairEntity.from_mongo(doc)

    @translate_store_errors
    async def count_all(self) -> int:
        return int(await self._db[self.COLLECTION].count_documents({}))

    @translate_store_errors
    async def upsert(self, pair: PairEntity) -> None:
        now_ms, now_iso = now_stamps()
        payload = pair.to_mongo()
        payload.pop("_id", None)
        payload.pop("created_at", None)
        payload.pop("created_at_iso", None)
        # to_mongo() drops None; an unset override must still be written.
        payload["chaos_override"] = pair.chaos_override
        payload["updated_at"] = now_ms
        payload["updated_at_iso"] = now_iso
        await self._db[self.COLLECTION].update_one(
            {"symbol": pair.symbol},
            {"$set": payload, "$setOnInsert": {"created_at": now_ms, "created_at_iso": now_iso}},
            upsert=True,
        )

    @translate_store_errors
    async def update_current_price(self, symbol: str, *, price: float, candle_time: int) -> None:
        now_ms, now_iso = now_stamps()
        await self._db[self.COLLECTION].update_one(
            {"symbol": symbol},
            {
                "$set": {
                    "current_price": float(price),
                    "last_candle_time": int(candle_time),
                    "updated_at": now_ms,
                    "updated_at_iso": now_iso,
                }
            },
        )

    @translate_store_errors
    async def set_chaos_override(self, symbol: str, level: Optional[int]) -> bool:
        now_ms, now_iso = now_stamps()
        res = await self._db[self.COLLECTION].update_one(
            {"symbol": symbol},
            {"$set": {"chaos_override": level, "updated_at": now_ms, "updated_at_iso": now_iso}},
        )
        return res.matched_count > 0
