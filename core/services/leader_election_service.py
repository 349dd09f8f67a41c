from __future__ import annotations

import logging

from core.repositories.leader_lease_repository import LeaderLeaseRepository

GENERATOR_ROLE = "candle-generator"


class LeaderElectionService:
    """
    Keeps a single instance in charge of a singleton role via a TTL lease.

    The holder calls `ensure(now)` before doing leader work; it renews the
    lease while held and tries to take it over once the previous holder
    lets it expire.
    """

    def __init__(
        self,
        *,
        lease_repo: LeaderLeaseRepository,
        holder_id: str,
        role: str = GENERATOR_ROLE,
        ttl_s: int = 5,
        logger: logging.Logger | None = None,
    ) -> None:
        self._leases = lease_repo
        self._holder_id = holder_id
        self._role = role
        self._ttl_s = int(ttl_s)
        self._is_leader = False
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    @property
    def holder_id(self) -> str:
        return self._holder_id

    @property
    def is_leader(self) -> bool:
        return self._is_leader

    async def ensure(self, now: int) -> bool:
        acquired = await self._leases.try_acquire(
            self._role,
            holder_id=self._holder_id,
            now=int(now),
            ttl_s=self._ttl_s,
        )
        if acquired != self._is_leader:
            if acquired:
                self._logger.info("Acquired %s lease holder=%s", self._role, self._holder_id)
            else:
                self._logger.warning("Lost %s lease holder=%s", self._role, self._holder_id)
        self._is_leader = acquired
        return acquired

    async def release(self) -> None:
        if not self._is_leader:
            return
        await self._leases.release(self._role, holder_id=self._holder_id)
        self._is_leader = False
        self._logger.info("Released %s lease holder=%s", self._role, self._holder_id)
