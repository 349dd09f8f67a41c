from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from core.domain.entities.leader_lease_entity import LeaderLeaseEntity


class LeaderLeaseRepository(ABC):
    """
    Abstraction for singleton-role leases.
    """

    @abstractmethod
    async def ensure_indexes(self) -> None: ...

    @abstractmethod
    async def try_acquire(self, name: str, *, holder_id: str, now: int, ttl_s: int) -> bool:
        """
        Acquire or renew the lease. Succeeds if the lease is free, expired, or
        already held by `holder_id`; otherwise returns False without changes.
        """
        raise NotImplementedError

    @abstractmethod
    async def release(self, name: str, *, holder_id: str) -> None:
        """
        Drop the lease if held by `holder_id`.
        """
        raise NotImplementedError

    @abstractmethod
    async def get(self, name: str) -> Optional[LeaderLeaseEntity]:
        raise NotImplementedError
