from __future__ import annotations

import asyncio
import logging
import random
import time as _time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from core.domain.entities.candle_entity import CandleEntity
from core.domain.entities.pair_entity import PairEntity
from core.domain.errors import (
    ChaosMarketError,
    OutOfOrderCandleError,
    TransientStoreError,
    UnknownSymbolError,
    ValidationError,
)
from core.repositories.candle_repository import CandleRepository
from core.repositories.pair_repository import PairRepository
from core.services.chaos_level_service import ChaosLevelService
from core.services.event_bus_service import TOPIC_CANDLES, EventBusService
from core.services.price_process_service import PriceProcessService
from core.usecases.aggregate_candles_use_case import AggregateCandlesUseCase


@dataclass
class GeneratedCandle:
    symbol: str
    candle: CandleEntity
    chaos_level: int

    def to_event(self) -> dict:
        return {
            "symbol": self.symbol,
            "chaos_level": self.chaos_level,
            "candle": self.candle.to_dict(),
        }


class GenerateCandlesUseCase:
    """
    Produces one raw candle per pair per tick.

    Per symbol, under that symbol's lock:
      1) skip if a candle for this second (or a later one) already exists
      2) draw the next candle from the pair's last close and effective chaos level
      3) write the raw candle (one retry on a store error, then drop the tick)
    Steps 1-3 must finish within `per_symbol_timeout_s`; on timeout the
    candle is discarded and the price does not advance this second. Once the
    raw candle is written the tick always completes:
      4) record the close as the pair's current price
      5) contribute to the aggregated series
      6) publish on the `candles` topic

    Symbols are processed concurrently; one symbol failing or timing out
    never affects the others. Only the leader instance should call `execute`.
    """

    def __init__(
        self,
        *,
        candle_repo: CandleRepository,
        pair_repo: PairRepository,
        chaos_service: ChaosLevelService,
        aggregator: AggregateCandlesUseCase,
        event_bus: Optional[EventBusService] = None,
        rng: Optional[random.Random] = None,
        per_symbol_timeout_s: float = 0.8,
        retry_delay_s: float = 0.05,
        logger: logging.Logger | None = None,
    ) -> None:
        self._candles = candle_repo
        self._pairs = pair_repo
        self._chaos = chaos_service
        self._aggregator = aggregator
        self._bus = event_bus
        self._rng = rng
        self._timeout_s = float(per_symbol_timeout_s)
        self._retry_delay_s = float(retry_delay_s)
        self._logger = logger or logging.getLogger(self.__class__.__name__)
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, symbol: str) -> asyncio.Lock:
        lock = self._locks.get(symbol)
        if lock is None:
            lock = self._locks[symbol] = asyncio.Lock()
        return lock

    async def execute(self, now: Optional[int] = None) -> List[GeneratedCandle]:
        now = int(now if now is not None else _time.time())

        try:
            await self._chaos.refresh()
        except TransientStoreError as exc:
            self._logger.warning("Chaos level refresh failed, using last known level: %s", exc)

        pairs = await self._pairs.list_all()
        results = await asyncio.gather(*(self._tick_guarded(p, now) for p in pairs))
        generated = [r for r in results if r is not None]
        self._logger.debug("Tick %s generated=%s pairs=%s", now, len(generated), len(pairs))
        return generated

    async def _tick_guarded(self, pair: PairEntity, now: int) -> Optional[GeneratedCandle]:
        try:
            return await self._tick_symbol(pair.symbol, now)
        except Exception as exc:
            self._logger.exception("Tick %s for %s failed: %s", now, pair.symbol, exc)
        return None

    async def _tick_symbol(self, symbol: str, now: int) -> Optional[GeneratedCandle]:
        async with self._lock_for(symbol):
            attempted: List[CandleEntity] = []
            try:
                drawn = await asyncio.wait_for(self._draw_and_write(symbol, now, attempted), timeout=self._timeout_s)
            except asyncio.TimeoutError:
                self._logger.warning("Tick %s for %s timed out after %.2fs, skipped", now, symbol, self._timeout_s)
                if attempted:
                    await self._discard_raw(symbol, now)
                return None
            if drawn is None:
                return None

            # The raw candle is durable: finish the tick so price, aggregates and raw history agree.
            candle, level = drawn
            try:
                await self._pairs.update_current_price(symbol, price=candle.close, candle_time=now)
            except Exception:
                await self._discard_raw(symbol, now)
                raise

            try:
                await self._aggregator.contribute(symbol, candle)
            except OutOfOrderCandleError as exc:
                self._logger.warning("Aggregator rejected candle: %s", exc)
            except ChaosMarketError as exc:
                self._logger.exception("Aggregation of %s at %s failed: %s", symbol, now, exc)

            generated = GeneratedCandle(symbol=symbol, candle=candle, chaos_level=level)
            if self._bus is not None:
                self._bus.publish(TOPIC_CANDLES, generated.to_event(), symbol=symbol)
            return generated

    async def _draw_and_write(
        self,
        symbol: str,
        now: int,
        attempted: List[CandleEntity],
    ) -> Optional[Tuple[CandleEntity, int]]:
        pair = await self._pairs.get(symbol)
        if pair is None:
            return None
        if pair.last_candle_time is not None and int(pair.last_candle_time) >= now:
            self._logger.debug("Skipping %s at %s: already generated through %s", symbol, now, pair.last_candle_time)
            return None

        level = await self._chaos.resolve(pair)
        candle = PriceProcessService.next_candle(pair.reference_price(), level, now, symbol=symbol, rng=self._rng)

        attempted.append(candle)
        if not await self._write_raw(candle):
            return None
        return candle, level

    async def _discard_raw(self, symbol: str, now: int) -> None:
        # A write cut off by the deadline may still have landed.
        try:
            await self._candles.delete_raw_at(symbol, now)
        except TransientStoreError as exc:
            self._logger.error("Could not discard abandoned candle %s at %s: %s", symbol, now, exc)

    async def _write_raw(self, candle: CandleEntity) -> bool:
        try:
            await self._candles.upsert_raw(candle)
            return True
        except TransientStoreError as exc:
            self._logger.warning("Raw candle write failed for %s at %s, retrying: %s", candle.symbol, candle.time, exc)

        await asyncio.sleep(self._retry_delay_s)
        try:
            await self._candles.upsert_raw(candle)
            return True
        except TransientStoreError as exc:
            self._logger.error("Dropping tick %s for %s after retry: %s", candle.time, candle.symbol, exc)
            return False

    async def reset_history(self, symbol: str, now: Optional[int] = None, seconds: int = 300) -> int:
        """
        Throw away a pair's raw and aggregated history and regenerate `seconds`
        one-second candles ending at `now`, starting from the pair's initial
        price. Returns the number of raw candles written.
        """
        if int(seconds) < 1:
            raise ValidationError(f"seconds must be >= 1, got {seconds}")
        now = int(now if now is not None else _time.time())

        async with self._lock_for(symbol):
            pair = await self._pairs.get(symbol)
            if pair is None:
                raise UnknownSymbolError(symbol)

            level = await self._chaos.resolve(pair)
            seed = PriceProcessService.initial_history(
                pair.initial_price,
                level,
                count=int(seconds),
                interval_seconds=1,
                end_time=now + 1,
                symbol=symbol,
                rng=self._rng,
            )

            await self._candles.delete_raw_for_symbol(symbol)
            await self._candles.upsert_raw_many(seed)
            await self._pairs.update_current_price(symbol, price=seed[-1].close, candle_time=seed[-1].time)

            purged = await self._aggregator.purge_before_raw(symbol)
            purged += await self._aggregator.purge_from(symbol, seed[0].time)
            await self._aggregator.contribute_batch(symbol, seed)

        self._logger.info(
            "Reset %s: %s raw candles from %s to %s, %s aggregated purged",
            symbol,
            len(seed),
            seed[0].time,
            seed[-1].time,
            purged,
        )
        if self._bus is not None:
            self._bus.publish(
                TOPIC_CANDLES,
                {"symbol": symbol, "chaos_level": level, "candle": seed[-1].to_dict(), "reset": True},
                symbol=symbol,
            )
        return len(seed)
