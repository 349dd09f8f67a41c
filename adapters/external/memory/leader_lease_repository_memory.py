from __future__ import annotations

import asyncio
from typing import Dict, Optional

from core.domain.entities.leader_lease_entity import LeaderLeaseEntity
from core.repositories.leader_lease_repository import LeaderLeaseRepository


class LeaderLeaseRepositoryMemory(LeaderLeaseRepository):
    def __init__(self) -> None:
        self._leases: Dict[str, LeaderLeaseEntity] = {}
        self._lock = asyncio.Lock()

    async def ensure_indexes(self) -> None:
        return None

    async def try_acquire(self, name: str, *, holder_id: str, now: int, ttl_s: int) -> bool:
        async with self._lock:
            current = self._leases.get(name)
            if current is not None and current.holder_id != holder_id and current.expires_at > int(now):
                return False
            self._leases[name] = LeaderLeaseEntity(name=name, holder_id=holder_id, expires_at=int(now) + int(ttl_s))
            return True

    async def release(self, name: str, *, holder_id: str) -> None:
        async with self._lock:
            current = self._leases.get(name)
            if current is not None and current.holder_id == holder_id:
                del self._leases[name]

    async def get(self, name: str) -> Optional[LeaderLeaseEntity]:
        return self._leases.get(name)
