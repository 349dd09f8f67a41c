from __future__ import annotations

from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from adapters.external.database.store_errors import translate_store_errors
from core.domain.entities.leader_lease_entity import LeaderLeaseEntity
from core.repositories.leader_lease_repository import LeaderLeaseRepository


class LeaderLeaseRepositoryMongoDB(LeaderLeaseRepository):
    """
    Lease documents keyed by unique `name`.

    try_acquire upserts on (name, held-by-me-or-expired). When another holder
    has a live lease the filter misses, the upsert collides with the unique
    index and the attempt reports False.
    """

    COLLECTION = "leader_leases"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db

    async def ensure_indexes(self) -> None:
        await self._db[self.COLLECTION].create_index([("name", 1)], unique=True)

    @translate_store_errors
    async def try_acquire(self, name: str, *, holder_id: str, now: int, ttl_s: int) -> bool:
        try:
            await self._db[self.COLLECTION].update_one(
                {"name": name, "$or": [{"holder_id": holder_id}, {"expires_at": {"$lte": int(now)}}]},
                {"$set": {"holder_id": holder_id, "expires_at": int(now) + int(ttl_s)}},
                upsert=True,
            )
        except DuplicateKeyError:
            return False
        return True

    @translate_store_errors
    async def release(self, name: str, *, holder_id: str) -> None:
        await self._db[self.COLLECTION].delete_one({"name": name, "holder_id": holder_id})

    @translate_store_errors
    async def get(self, name: str) -> Optional[LeaderLeaseEntity]:
        doc = await self._db[self.COLLECTION].find_one({"name": name})
        return LeaderLeaseEntity.from_mongo(doc)
