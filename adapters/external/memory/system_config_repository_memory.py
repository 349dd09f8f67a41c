from __future__ import annotations

from typing import Optional

from core.domain.entities.system_config_entity import RUNTIME_CONFIG_KEY, SystemConfigEntity
from core.repositories.system_config_repository import SystemConfigRepository


class SystemConfigRepositoryMemory(SystemConfigRepository):
    def __init__(self) -> None:
        self._doc: Optional[dict] = None

    async def ensure_indexes(self) -> None:
        return None

    async def get_runtime(self) -> SystemConfigEntity | None:
        return SystemConfigEntity.from_mongo(self._doc) if self._doc else None

    async def upsert_runtime(self, cfg: SystemConfigEntity) -> None:
        payload = cfg.to_mongo()
        payload["key"] = RUNTIME_CONFIG_KEY
        self._doc = {**(self._doc or {}), **payload}

    async def set_global_chaos_level(self, level: int) -> SystemConfigEntity:
        doc = self._doc or {"key": RUNTIME_CONFIG_KEY, "extras": {}}
        doc["global_chaos_level"] = int(level)
        self._doc = doc
        return SystemConfigEntity.from_mongo(doc)
