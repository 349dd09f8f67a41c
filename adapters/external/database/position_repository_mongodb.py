from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from adapters.external.database.store_errors import translate_store_errors
from adapters.external.timestamps import now_stamps
from core.domain.entities.position_entity import PositionEntity, PositionStatus
from core.domain.errors import ConcurrencyConflictError, PositionNotFoundError
from core.repositories.position_repository import PositionRepository


class PositionRepositoryMongoDB(PositionRepository):
    """
    MongoDB repository for leveraged positions.

    `_id` is a uuid hex string so ids look the same for both backends.
    Terminal transitions use find_one_and_update filtered on status == "open".
    """

    COLLECTION = "positions"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db

    async def ensure_indexes(self) -> None:
        col = self._db[self.COLLECTION]
        await col.create_index([("user_id", 1), ("status", 1), ("created_at", -1)])
        await col.create_index([("symbol", 1), ("status", 1)])

    @translate_store_errors
    async def insert(self, position: PositionEntity) -> PositionEntity:
        now_ms, now_iso = now_stamps()
        payload = position.to_mongo()
        payload["_id"] = str(payload.get("_id") or uuid.uuid4().hex)
        payload.update(created_at=now_ms, created_at_iso=now_iso, updated_at=now_ms, updated_at_iso=now_iso)
        await self._db[self.COLLECTION].insert_one(payload)
        return PositionEntity.from_mongo(payload)

    @translate_store_errors
    async def get(self, position_id: str) -> Optional[PositionEntity]:
        doc = await self._db[self.COLLECTION].find_one({"_id": position_id})
        return PositionEntity.from_mongo(doc)

    @translate_store_errors
    async def list_by_user(self, user_id: str, *, status: Optional[str] = None) -> List[PositionEntity]:
        query: Dict[str, Any] = {"user_id": user_id}
        if status is not None:
            query["status"] = status
        docs = await self._db[self.COLLECTION].find(query).sort("created_at", -1).to_list(length=None)
        return [p for p in (PositionEntity.from_mongo(d) for d in docs) if p is not None]

    @translate_store_errors
    async def list_open_by_symbol(self, symbol: str) -> List[PositionEntity]:
        cursor = self._db[self.COLLECTION].find({"symbol": symbol, "status": PositionStatus.OPEN.value})
        docs = await cursor.sort("created_at", 1).to_list(length=None)
        return [p for p in (PositionEntity.from_mongo(d) for d in docs) if p is not None]

    @translate_store_errors
    async def transition_from_open(self, position_id: str, updates: Dict[str, Any]) -> PositionEntity:
        col = self._db[self.COLLECTION]
        now_ms, now_iso = now_stamps()
        fields = {k: getattr(v, "value", v) for k, v in updates.items()}
        fields.update(updated_at=now_ms, updated_at_iso=now_iso)

        doc = await col.find_one_and_update(
            {"_id": position_id, "status": PositionStatus.OPEN.value},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        if doc is not None:
            return PositionEntity.from_mongo(doc)

        current = await col.find_one({"_id": position_id}, projection={"status": 1})
        if current is None:
            raise PositionNotFoundError(position_id)
        raise ConcurrencyConflictError(f"position {position_id} is no longer open (status={current.get('status')})")

    @translate_store_errors
    async def reopen(self, position_id: str, *, closed_at: int) -> bool:
        now_ms, now_iso = now_stamps()
        result = await self._db[self.COLLECTION].update_one(
            {"_id": position_id, "status": PositionStatus.CLOSED.value, "closed_at": int(closed_at)},
            {
                "$set": {"status": PositionStatus.OPEN.value, "updated_at": now_ms, "updated_at_iso": now_iso},
                "$unset": {"exit_price": "", "realized_pnl": "", "closed_at": ""},
            },
        )
        return result.modified_count == 1
