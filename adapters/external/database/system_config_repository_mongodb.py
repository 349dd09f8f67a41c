from __future__ import annotations

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from adapters.external.database.store_errors import translate_store_errors
from adapters.external.timestamps import now_stamps
from core.domain.entities.system_config_entity import RUNTIME_CONFIG_KEY, SystemConfigEntity
from core.repositories.system_config_repository import SystemConfigRepository


class SystemConfigRepositoryMongoDB(SystemConfigRepository):
    """
    MongoDB repository for system runtime configuration.

    A single document keyed by `key`; chaos level updates are atomic
    find_one_and_update upserts so concurrent admins never lose the document.
    """

    COLLECTION = "system_config"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db

    async def ensure_indexes(self) -> None:
        await self._db[self.COLLECTION].create_index([("key", 1)], unique=True)

    @translate_store_errors
    async def get_runtime(self) -> SystemConfigEntity | None:
        col = self._db[self.COLLECTION]
        doc = await col.find_one({"key": RUNTIME_CONFIG_KEY})
        return SystemConfigEntity.from_mongo(doc) if doc else None

    @translate_store_errors
    async def upsert_runtime(self, cfg: SystemConfigEntity) -> None:
        col = self._db[self.COLLECTION]
        payload = cfg.to_mongo()
        payload.pop("_id", None)
        payload["key"] = RUNTIME_CONFIG_KEY
        await col.update_one({"key": RUNTIME_CONFIG_KEY}, {"$set": payload}, upsert=True)

    @translate_store_errors
    async def set_global_chaos_level(self, level: int) -> SystemConfigEntity:
        col = self._db[self.COLLECTION]
        now_ms, now_iso = now_stamps()
        doc = await col.find_one_and_update(
            {"key": RUNTIME_CONFIG_KEY},
            {
                "$set": {"global_chaos_level": int(level), "updated_at": now_ms, "updated_at_iso": now_iso},
                "$setOnInsert": {"extras": {}, "created_at": now_ms, "created_at_iso": now_iso},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return SystemConfigEntity.from_mongo(doc)
