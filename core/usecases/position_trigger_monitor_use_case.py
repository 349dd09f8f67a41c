from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from core.domain.entities.position_entity import PositionEntity
from core.domain.errors import ConfigurationError, PositionAlreadyClosedError, PositionNotFoundError
from core.repositories.position_repository import PositionRepository
from core.services.event_bus_service import TOPIC_CANDLES, EventBusService, Subscription
from core.services.position_math_service import TriggerKind
from core.usecases.position_lifecycle_use_case import PositionLifecycleUseCase


@dataclass
class TriggerResult:
    position_id: str
    kind: TriggerKind
    price: float
    position: PositionEntity


class PositionTriggerMonitor:
    """
    Applies liquidation / stop-loss / take-profit to open positions when the price moves.

    It listens to the `candles` topic in its own task, so a slow sweep only
    delays later sweeps, never candle generation. Each position gets at most
    one action per sweep, chosen in priority order (liquidation, stop-loss,
    take-profit). Positions with an action already in flight are skipped;
    sweeping the same price twice is harmless.
    """

    def __init__(
        self,
        *,
        lifecycle: PositionLifecycleUseCase,
        position_repo: PositionRepository,
        event_bus: Optional[EventBusService] = None,
        poll_timeout_s: float = 0.5,
        logger: logging.Logger | None = None,
    ) -> None:
        self._lifecycle = lifecycle
        self._positions = position_repo
        self._bus = event_bus
        self._poll_timeout_s = float(poll_timeout_s)
        self._logger = logger or logging.getLogger(self.__class__.__name__)

        self._sub: Subscription | None = None
        self._task: asyncio.Task | None = None
        self._stop = asyncio.Event()

    async def sweep(self, symbol: str, price: float, *, now: Optional[int] = None) -> List[TriggerResult]:
        results: List[TriggerResult] = []
        math = self._lifecycle.math

        for position in await self._positions.list_open_by_symbol(symbol):
            if position.id is None or self._lifecycle.is_in_flight(position.id):
                continue
            kind = math.evaluate(position, price)
            if kind is None:
                continue
            try:
                if kind == TriggerKind.LIQUIDATION:
                    updated = await self._lifecycle.liquidate_position(position.id, price, now=now)
                else:
                    updated = await self._lifecycle.close_position(position.id, price, now=now)
            except (PositionAlreadyClosedError, PositionNotFoundError) as exc:
                self._logger.debug("Trigger %s on %s skipped: %s", kind.value, position.id, exc)
                continue
            except Exception as exc:
                self._logger.exception("Trigger %s on %s failed: %s", kind.value, position.id, exc)
                continue

            self._logger.info("Trigger %s fired for %s %s at %s", kind.value, symbol, position.id, price)
            results.append(TriggerResult(position_id=position.id, kind=kind, price=float(price), position=updated))
        return results

    def start(self) -> None:
        """Start consuming price events in background."""
        if self._bus is None:
            raise ConfigurationError("trigger monitor needs an event bus")
        if self._task is None:
            self._stop.clear()
            self._sub = self._bus.subscribe(TOPIC_CANDLES)
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the consumer loop gracefully."""
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None
        if self._sub is not None and self._bus is not None:
            self._bus.unsubscribe(self._sub)
            self._sub = None

    async def _run(self) -> None:
        assert self._sub is not None
        while not self._stop.is_set():
            try:
                event = await asyncio.wait_for(self._sub.get(), timeout=self._poll_timeout_s)
            except asyncio.TimeoutError:
                continue

            try:
                candle = event.payload.get("candle") or {}
                # The payload carries the symbol as stored; the bus upper-cases its routing key.
                symbol = event.payload.get("symbol") or event.symbol
                if symbol and candle.get("close") is not None:
                    await self.sweep(symbol, float(candle["close"]), now=candle.get("time"))
            except Exception as exc:
                self._logger.exception("Trigger sweep error symbol=%s: %s", event.symbol, exc)
