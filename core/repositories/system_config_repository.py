from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from core.domain.entities.system_config_entity import SystemConfigEntity


class SystemConfigRepository(ABC):
    """
    Store for the runtime config document (global chaos level).

    Only the generator's chaos refresh and the admin endpoints touch it, so
    reads are cheap single-document lookups.
    """

    @abstractmethod
    async def ensure_indexes(self) -> None: ...

    @abstractmethod
    async def get_runtime(self) -> Optional[SystemConfigEntity]:
        """None until the first start has written the default."""

    @abstractmethod
    async def upsert_runtime(self, cfg: SystemConfigEntity) -> None: ...

    @abstractmethod
    async def set_global_chaos_level(self, level: int) -> SystemConfigEntity:
        """
        Update only the global chaos level (creating the runtime document if
        missing) and return the stored config.
        """
