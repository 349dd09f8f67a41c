from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from adapters.external.database.store_errors import translate_store_errors
from adapters.external.timestamps import now_stamps
from core.domain.entities.trade_entity import TradeEntity
from core.repositories.trade_repository import TradeRepository


class TradeRepositoryMongoDB(TradeRepository):
    """MongoDB repository for the trade history feed (append-only)."""

    COLLECTION = "trades"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db

    async def ensure_indexes(self) -> None:
        col = self._db[self.COLLECTION]
        await col.create_index([("symbol", 1), ("created_at", -1)])
        await col.create_index([("user_id", 1), ("created_at", -1)])

    @translate_store_errors
    async def insert(self, trade: TradeEntity) -> TradeEntity:
        now_ms, now_iso = now_stamps()
        payload = trade.to_mongo()
        payload["_id"] = str(payload.get("_id") or uuid.uuid4().hex)
        payload.update(created_at=now_ms, created_at_iso=now_iso)
        await self._db[self.COLLECTION].insert_one(payload)
        return TradeEntity.from_mongo(payload)

    @translate_store_errors
    async def list_recent(self, *, symbol: Optional[str] = None, limit: int = 50) -> List[TradeEntity]:
        query: Dict[str, Any] = {}
        if symbol is not None:
            query["symbol"] = symbol
        cursor = self._db[self.COLLECTION].find(query).sort("created_at", -1).limit(int(limit))
        docs = await cursor.to_list(length=int(limit))
        return [t for t in (TradeEntity.from_mongo(d) for d in docs) if t is not None]

    @translate_store_errors
    async def list_by_user(self, user_id: str, *, limit: int = 100) -> List[TradeEntity]:
        cursor = self._db[self.COLLECTION].find({"user_id": user_id}).sort("created_at", -1).limit(int(limit))
        docs = await cursor.to_list(length=int(limit))
        return [t for t in (TradeEntity.from_mongo(d) for d in docs) if t is not None]
