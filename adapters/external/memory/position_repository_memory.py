from __future__ import annotations

import asyncio
import itertools
import uuid
from typing import Any, Dict, List, Optional

from adapters.external.timestamps import now_stamps
from core.domain.entities.position_entity import PositionEntity, PositionStatus
from core.domain.errors import ConcurrencyConflictError, PositionNotFoundError
from core.repositories.position_repository import PositionRepository


class PositionRepositoryMemory(PositionRepository):
    def __init__(self) -> None:
        self._docs: Dict[str, dict] = {}
        # Insertion sequence breaks created_at ties when listing newest first.
        self._seq: Dict[str, int] = {}
        self._counter = itertools.count()
        self._lock = asyncio.Lock()

    async def ensure_indexes(self) -> None:
        return None

    async def insert(self, position: PositionEntity) -> PositionEntity:
        async with self._lock:
            now_ms, now_iso = now_stamps()
            payload = position.to_mongo()
            position_id = str(payload.pop("_id", None) or uuid.uuid4().hex)
            payload.update(
                _id=position_id,
                created_at=now_ms,
                created_at_iso=now_iso,
                updated_at=now_ms,
                updated_at_iso=now_iso,
            )
            self._docs[position_id] = payload
            self._seq[position_id] = next(self._counter)
            return PositionEntity.from_mongo(payload)

    async def get(self, position_id: str) -> Optional[PositionEntity]:
        return PositionEntity.from_mongo(self._docs.get(position_id))

    async def list_by_user(self, user_id: str, *, status: Optional[str] = None) -> List[PositionEntity]:
        ids = [
            pid
            for pid, d in self._docs.items()
            if d.get("user_id") == user_id and (status is None or d.get("status") == status)
        ]
        ids.sort(key=lambda pid: self._seq[pid], reverse=True)
        return [PositionEntity.from_mongo(self._docs[pid]) for pid in ids]

    async def list_open_by_symbol(self, symbol: str) -> List[PositionEntity]:
        ids = [
            pid
            for pid, d in self._docs.items()
            if d.get("symbol") == symbol and d.get("status") == PositionStatus.OPEN.value
        ]
        ids.sort(key=lambda pid: self._seq[pid])
        return [PositionEntity.from_mongo(self._docs[pid]) for pid in ids]

    async def transition_from_open(self, position_id: str, updates: Dict[str, Any]) -> PositionEntity:
        async with self._lock:
            doc = self._docs.get(position_id)
            if doc is None:
                raise PositionNotFoundError(position_id)
            if doc.get("status") != PositionStatus.OPEN.value:
                raise ConcurrencyConflictError(
                    f"position {position_id} is no longer open (status={doc.get('status')})"
                )
            now_ms, now_iso = now_stamps()
            doc.update({k: getattr(v, "value", v) for k, v in updates.items()})
            doc.update(updated_at=now_ms, updated_at_iso=now_iso)
            return PositionEntity.from_mongo(doc)

    async def reopen(self, position_id: str, *, closed_at: int) -> bool:
        async with self._lock:
            doc = self._docs.get(position_id)
            if doc is None or doc.get("status") != PositionStatus.CLOSED.value or doc.get("closed_at") != int(closed_at):
                return False
            for key in ("exit_price", "realized_pnl", "closed_at"):
                doc.pop(key, None)
            now_ms, now_iso = now_stamps()
            doc.update(status=PositionStatus.OPEN.value, updated_at=now_ms, updated_at_iso=now_iso)
            return True
