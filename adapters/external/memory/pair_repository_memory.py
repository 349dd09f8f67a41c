from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

from adapters.external.timestamps import now_stamps
from core.domain.entities.pair_entity import PairEntity
from core.repositories.pair_repository import PairRepository


class PairRepositoryMemory(PairRepository):
    def __init__(self) -> None:
        self._docs: Dict[str, dict] = {}
        self._lock = asyncio.Lock()

    async def ensure_indexes(self) -> None:
        return None

    async def list_all(self) -> List[PairEntity]:
        return [PairEntity.from_mongo(self._docs[s]) for s in sorted(self._docs)]

    async def get(self, symbol: str) -> Optional[PairEntity]:
        return PairEntity.from_mongo(self._docs.get(symbol))

    async def count_all(self) -> int:
        return len(self._docs)

    async def upsert(self, pair: PairEntity) -> None:
        async with self._lock:
            now_ms, now_iso = now_stamps()
            previous = self._docs.get(pair.symbol, {})
            payload = pair.to_mongo()
            payload.pop("_id", None)
            # An explicit None clears the override, as in the Mongo adapter.
            payload["chaos_override"] = pair.chaos_override
            payload["created_at"] = previous.get("created_at", now_ms)
            payload["created_at_iso"] = previous.get("created_at_iso", now_iso)
            payload["updated_at"] = now_ms
            payload["updated_at_iso"] = now_iso
            self._docs[pair.symbol] = {**previous, **payload}

    async def update_current_price(self, symbol: str, *, price: float, candle_time: int) -> None:
        async with self._lock:
            doc = self._docs.get(symbol)
            if doc is None:
                return
            now_ms, now_iso = now_stamps()
            doc.update(
                current_price=float(price),
                last_candle_time=int(candle_time),
                updated_at=now_ms,
                updated_at_iso=now_iso,
            )

    async def set_chaos_override(self, symbol: str, level: Optional[int]) -> bool:
        async with self._lock:
            doc = self._docs.get(symbol)
            if doc is None:
                return False
            now_ms, now_iso = now_stamps()
            doc.update(chaos_override=level, updated_at=now_ms, updated_at_iso=now_iso)
            return True
