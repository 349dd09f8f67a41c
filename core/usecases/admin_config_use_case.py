from __future__ import annotations

from typing import Dict, Optional

from core.domain.entities.pair_entity import PairEntity
from core.domain.entities.system_config_entity import SystemConfigEntity
from core.domain.errors import UnknownSymbolError
from core.repositories.pair_repository import PairRepository
from core.repositories.system_config_repository import SystemConfigRepository
from core.services.chaos_level_service import ChaosLevelService


class AdminConfigUseCase:
    """
    Use case for managing runtime configuration (global chaos level and
    per-pair overrides).

    This isolates the HTTP layer from persistence details; every change goes
    through ChaosLevelService so subscribers are notified.
    """

    def __init__(
        self,
        *,
        system_config_repo: SystemConfigRepository,
        pair_repo: PairRepository,
        chaos_service: ChaosLevelService,
    ) -> None:
        self._system_repo = system_config_repo
        self._pairs = pair_repo
        self._chaos = chaos_service

    async def get_runtime_config(self) -> SystemConfigEntity:
        """
        Retrieve current runtime configuration, creating the default one if missing.
        """
        cfg = await self._system_repo.get_runtime()
        return cfg or await self._chaos.ensure_runtime()

    async def set_global_chaos_level(self, level: int) -> SystemConfigEntity:
        await self._chaos.set_global_level(level)
        return await self.get_runtime_config()

    async def set_pair_chaos_override(self, symbol: str, level: Optional[int]) -> PairEntity:
        """
        Set (0..100) or clear (None) a pair's chaos override.
        """
        await self._chaos.set_override(symbol, level)
        pair = await self._pairs.get(symbol)
        if pair is None:
            raise UnknownSymbolError(symbol)
        return pair

    async def effective_levels(self) -> Dict[str, int]:
        """
        Effective chaos level of every pair, keyed by symbol.
        """
        return {p.symbol: await self._chaos.resolve(p) for p in await self._pairs.list_all()}
