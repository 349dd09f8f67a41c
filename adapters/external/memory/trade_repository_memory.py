from __future__ import annotations

import uuid
from typing import List, Optional

from adapters.external.timestamps import now_stamps
from core.domain.entities.trade_entity import TradeEntity
from core.repositories.trade_repository import TradeRepository


class TradeRepositoryMemory(TradeRepository):
    def __init__(self) -> None:
        # Append-only, oldest first.
        self._docs: List[dict] = []

    async def ensure_indexes(self) -> None:
        return None

    async def insert(self, trade: TradeEntity) -> TradeEntity:
        now_ms, now_iso = now_stamps()
        payload = trade.to_mongo()
        payload["_id"] = payload.get("_id") or uuid.uuid4().hex
        payload["created_at"] = now_ms
        payload["created_at_iso"] = now_iso
        self._docs.append(payload)
        return TradeEntity.from_mongo(payload)

    async def list_recent(self, *, symbol: Optional[str] = None, limit: int = 50) -> List[TradeEntity]:
        docs = [d for d in reversed(self._docs) if symbol is None or d.get("symbol") == symbol]
        return [TradeEntity.from_mongo(d) for d in docs[: int(limit)]]

    async def list_by_user(self, user_id: str, *, limit: int = 100) -> List[TradeEntity]:
        docs = [d for d in reversed(self._docs) if d.get("user_id") == user_id]
        return [TradeEntity.from_mongo(d) for d in docs[: int(limit)]]
