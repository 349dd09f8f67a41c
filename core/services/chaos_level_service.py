from __future__ import annotations

import logging
from typing import Optional

from core.domain.entities.pair_entity import PairEntity
from core.domain.entities.system_config_entity import RUNTIME_CONFIG_KEY, SystemConfigEntity
from core.domain.errors import ConfigurationError, UnknownSymbolError, ValidationError
from core.repositories.pair_repository import PairRepository
from core.repositories.system_config_repository import SystemConfigRepository
from core.services.event_bus_service import TOPIC_CHAOS, EventBusService, Subscription

MIN_CHAOS = 0
MAX_CHAOS = 100


class ChaosLevelService:
    """
    Resolves the effective chaos level of a pair.

    Precedence: pair override (if set) > global level.

    The global level is cached and re-read by `refresh()`, which the generator
    calls once per tick, so a reader can be at most one tick stale. Changes go
    through `set_global_level` / `set_override`, which persist and then
    publish on the `chaos` topic.
    """

    def __init__(
        self,
        *,
        system_config_repo: SystemConfigRepository,
        pair_repo: PairRepository,
        event_bus: Optional[EventBusService] = None,
        default_level: int = 50,
        logger: logging.Logger | None = None,
    ) -> None:
        self._system_repo = system_config_repo
        self._pairs = pair_repo
        self._bus = event_bus
        self._default_level = self.validate_level(default_level)
        self._global_level: Optional[int] = None
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    @staticmethod
    def validate_level(level) -> int:
        if isinstance(level, bool) or not isinstance(level, (int, float)):
            raise ValidationError(f"chaos level must be a number, got {level!r}")
        if isinstance(level, float) and not level.is_integer():
            raise ValidationError(f"chaos level must be a whole number, got {level}")
        value = int(level)
        if value < MIN_CHAOS or value > MAX_CHAOS:
            raise ValidationError(f"chaos level must be between {MIN_CHAOS} and {MAX_CHAOS}, got {value}")
        return value

    async def ensure_runtime(self) -> SystemConfigEntity:
        """
        Create the runtime config with the default level if it does not exist yet.
        """
        cfg = await self._system_repo.get_runtime()
        if cfg is None:
            cfg = SystemConfigEntity(key=RUNTIME_CONFIG_KEY, global_chaos_level=self._default_level, extras={})
            await self._system_repo.upsert_runtime(cfg)
        self._global_level = int(cfg.global_chaos_level)
        return cfg

    async def refresh(self) -> int:
        cfg = await self._system_repo.get_runtime()
        self._global_level = int(cfg.global_chaos_level) if cfg is not None else self._default_level
        return self._global_level

    async def global_level(self) -> int:
        if self._global_level is None:
            return await self.refresh()
        return self._global_level

    async def resolve(self, pair: PairEntity) -> int:
        if pair.chaos_override is not None:
            return int(pair.chaos_override)
        return await self.global_level()

    async def effective_level(self, symbol: str) -> int:
        pair = await self._pairs.get(symbol)
        if pair is None:
            raise UnknownSymbolError(symbol)
        return await self.resolve(pair)

    async def set_global_level(self, level: int) -> int:
        value = self.validate_level(level)
        await self._system_repo.set_global_chaos_level(value)
        self._global_level = value
        self._logger.info("Global chaos level set to %s", value)
        self._publish({"kind": "global", "level": value})
        return value

    async def set_override(self, symbol: str, level: Optional[int]) -> Optional[int]:
        value = self.validate_level(level) if level is not None else None
        found = await self._pairs.set_chaos_override(symbol, value)
        if not found:
            raise UnknownSymbolError(symbol)
        self._logger.info("Chaos override for %s set to %s", symbol, value)
        self._publish({"kind": "override", "symbol": symbol, "level": value}, symbol=symbol)
        return value

    def subscribe(self, *, symbol: Optional[str] = None) -> Subscription:
        """
        Change notifications (global changes reach every subscriber).
        """
        if self._bus is None:
            raise ConfigurationError("chaos change notifications need an event bus")
        return self._bus.subscribe(TOPIC_CHAOS, symbol=symbol)

    def _publish(self, payload: dict, *, symbol: Optional[str] = None) -> None:
        if self._bus is not None:
            self._bus.publish(TOPIC_CHAOS, payload, symbol=symbol)
