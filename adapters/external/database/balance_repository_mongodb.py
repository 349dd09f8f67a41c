from __future__ import annotations

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from adapters.external.database.store_errors import translate_store_errors
from adapters.external.timestamps import now_stamps
from core.domain.entities.user_balance_entity import UserBalanceEntity
from core.domain.errors import InsufficientBalanceError, ValidationError
from core.repositories.balance_repository import BalanceRepository


class BalanceRepositoryMongoDB(BalanceRepository):
    """
    MongoDB ledger of user balances.

    - debit: one find_one_and_update filtered on amount >= debit, so the check
      and the write are a single atomic operation.
    - credit: an update pipeline clamps the new amount at zero server-side.
    """

    COLLECTION = "user_balances"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db

    async def ensure_indexes(self) -> None:
        await self._db[self.COLLECTION].create_index([("user_id", 1)], unique=True)

    @translate_store_errors
    async def get_balance(self, user_id: str) -> float:
        doc = await self._db[self.COLLECTION].find_one({"user_id": user_id})
        entity = UserBalanceEntity.from_mongo(doc)
        return entity.amount if entity is not None else 0.0

    @translate_store_errors
    async def debit(self, user_id: str, amount: float) -> float:
        if amount < 0:
            raise ValidationError(f"debit amount must be >= 0, got {amount}")
        now_ms, now_iso = now_stamps()
        doc = await self._db[self.COLLECTION].find_one_and_update(
            {"user_id": user_id, "amount": {"$gte": float(amount)}},
            {"$inc": {"amount": -float(amount)}, "$set": {"updated_at": now_ms, "updated_at_iso": now_iso}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            available = await self.get_balance(user_id)
            raise InsufficientBalanceError(user_id=user_id, required=amount, available=available)
        return UserBalanceEntity.from_mongo(doc).amount

    @translate_store_errors
    async def credit(self, user_id: str, amount: float) -> float:
        now_ms, now_iso = now_stamps()
        doc = await self._db[self.COLLECTION].find_one_and_update(
            {"user_id": user_id},
            [
                {
                    "$set": {
                        "user_id": user_id,
                        "amount": {"$max": [0.0, {"$add": [{"$ifNull": ["$amount", 0.0]}, float(amount)]}]},
                        "created_at": {"$ifNull": ["$created_at", now_ms]},
                        "created_at_iso": {"$ifNull": ["$created_at_iso", now_iso]},
                        "updated_at": now_ms,
                        "updated_at_iso": now_iso,
                    }
                }
            ],
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return UserBalanceEntity.from_mongo(doc).amount
