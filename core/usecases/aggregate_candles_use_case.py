from __future__ import annotations

import asyncio
import logging
import time as _time
from collections import OrderedDict
from typing import Dict, List, Optional, Sequence

from core.domain.entities.candle_entity import AggregatedCandleEntity, CandleEntity
from core.domain.errors import OutOfOrderCandleError
from core.repositories.candle_repository import CandleRepository
from core.repositories.pair_repository import PairRepository
from core.services.candle_fold_service import CandleFoldService
from core.services.timeframe_service import RAW_RETENTION_SECONDS, Timeframe, TimeframeService

# Out-of-order checks look at the finest aggregated series.
_ORDER_TIMEFRAME = "1m"


class AggregateCandlesUseCase:
    """
    Maintains the aggregated candle series (1m..1d) of every pair.

    Two paths write buckets:
    - live: `contribute` folds each new raw candle into all six timeframes;
    - repair: `backfill` rebuilds missing closed buckets from the next-finer
      series (1m <- raw, 5m <- 1m, ..., 1d <- 4h).

    Both use the same fold, so a bucket built live and one built by backfill
    from the same sources are identical.
    """

    def __init__(
        self,
        *,
        candle_repo: CandleRepository,
        pair_repo: PairRepository,
        backfill_max_buckets: Optional[int] = 500,
        logger: logging.Logger | None = None,
    ) -> None:
        self._candles = candle_repo
        self._pairs = pair_repo
        self._max_buckets = backfill_max_buckets
        self._logger = logger or logging.getLogger(self.__class__.__name__)
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, symbol: str) -> asyncio.Lock:
        lock = self._locks.get(symbol)
        if lock is None:
            lock = self._locks[symbol] = asyncio.Lock()
        return lock

    async def _aggregated_through(self, symbol: str) -> Optional[int]:
        latest = await self._candles.get_latest_aggregated(symbol, _ORDER_TIMEFRAME)
        if latest is None:
            return None
        return int(latest.last_time) if latest.last_time is not None else int(latest.time)

    # ---- live path ----

    async def contribute(self, symbol: str, candle: CandleEntity) -> List[AggregatedCandleEntity]:
        """
        Fold one raw candle into its bucket of every timeframe.

        Raises:
            OutOfOrderCandleError: the candle is not newer than data already aggregated.
        """
        async with self._lock_for(symbol):
            through = await self._aggregated_through(symbol)
            if through is not None and int(candle.time) <= through:
                raise OutOfOrderCandleError(symbol=symbol, time=candle.time, aggregated_through=through)

            updated: List[AggregatedCandleEntity] = []
            for tf in TimeframeService.TIMEFRAMES:
                bucket = TimeframeService.bucket_start(candle.time, tf.seconds)
                existing = await self._candles.get_aggregated(symbol, tf.name, bucket)
                if existing is None:
                    agg = CandleFoldService.start_bucket(candle, timeframe=tf.name, bucket_time=bucket)
                else:
                    agg = CandleFoldService.fold(existing, candle)
                await self._candles.upsert_aggregated(agg)
                updated.append(agg)
            return updated

    async def contribute_batch(self, symbol: str, candles: Sequence[CandleEntity]) -> int:
        """
        Fold many raw candles at once; same result as contributing them one by
        one in time order. Returns the number of buckets written.
        """
        if not candles:
            return 0
        ordered = sorted(candles, key=lambda c: int(c.time))

        async with self._lock_for(symbol):
            through = await self._aggregated_through(symbol)
            previous = through
            for c in ordered:
                if previous is not None and int(c.time) <= previous:
                    raise OutOfOrderCandleError(symbol=symbol, time=c.time, aggregated_through=previous)
                previous = int(c.time)

            written = 0
            for tf in TimeframeService.TIMEFRAMES:
                for bucket, group in self._group_by_bucket(ordered, tf).items():
                    existing = await self._candles.get_aggregated(symbol, tf.name, bucket)
                    agg = CandleFoldService.aggregate(group, timeframe=tf.name, bucket_time=bucket, existing=existing)
                    await self._candles.upsert_aggregated(agg)
                    written += 1
            return written

    @staticmethod
    def _group_by_bucket(candles: Sequence[CandleEntity], tf: Timeframe) -> "OrderedDict[int, List[CandleEntity]]":
        groups: "OrderedDict[int, List[CandleEntity]]" = OrderedDict()
        for c in candles:
            groups.setdefault(TimeframeService.bucket_start(c.time, tf.seconds), []).append(c)
        return groups

    # ---- repair path ----

    async def backfill(
        self,
        symbol: str,
        timeframe: str,
        now: Optional[int] = None,
        max_buckets: Optional[int] = None,
    ) -> int:
        """
        Build closed buckets of `timeframe` that are missing, from the oldest
        source record forward. Existing buckets are left alone, so running it
        twice writes nothing the second time. Returns the number of buckets created.
        """
        tf = TimeframeService.get(timeframe)
        now = int(now if now is not None else _time.time())
        limit = max_buckets if max_buckets is not None else self._max_buckets

        async with self._lock_for(symbol):
            if tf.source is None:
                earliest = await self._candles.get_earliest_raw_time(symbol)
            else:
                earliest = await self._candles.get_earliest_aggregated_time(symbol, tf.source)
            if earliest is None:
                return 0

            start = TimeframeService.bucket_start(earliest, tf.seconds)
            # The current bucket is still open; it is only written by the live path.
            end = TimeframeService.bucket_start(now, tf.seconds)
            if start >= end:
                return 0

            have = await self._candles.list_aggregated_times(symbol, tf.name, from_time=start, to_time=end)
            if tf.source is None:
                sources: Sequence[CandleEntity] = await self._candles.list_raw(symbol, from_time=start, to_time=end)
            else:
                sources = await self._candles.list_aggregated(symbol, tf.source, from_time=start, to_time=end)

            created = 0
            for bucket, group in self._group_by_bucket(sources, tf).items():
                if bucket in have:
                    continue
                if limit is not None and created >= int(limit):
                    break
                agg = CandleFoldService.aggregate(group, timeframe=tf.name, bucket_time=bucket)
                await self._candles.upsert_aggregated(agg)
                created += 1

        if created:
            self._logger.info("Backfilled %s %s buckets for %s", created, tf.name, symbol)
        return created

    async def prune(self, now: Optional[int] = None) -> int:
        """
        Apply the retention windows to raw and aggregated candles. Returns the number deleted.
        """
        now = int(now if now is not None else _time.time())
        cleaned = await self._candles.delete_raw_before(now - RAW_RETENTION_SECONDS)
        for tf in TimeframeService.TIMEFRAMES:
            cleaned += await self._candles.delete_aggregated_before(tf.name, now - tf.retention_seconds)
        if cleaned:
            self._logger.info("Pruned %s candles past retention", cleaned)
        return cleaned

    async def purge_before_raw(self, symbol: str) -> int:
        """
        Delete aggregated buckets at or before the bucket holding the earliest
        raw candle, for every timeframe, so aggregated history never starts
        earlier than the raw history it is derived from.
        """
        earliest = await self._candles.get_earliest_raw_time(symbol)
        if earliest is None:
            return 0
        async with self._lock_for(symbol):
            purged = 0
            for tf in TimeframeService.TIMEFRAMES:
                cutoff = TimeframeService.bucket_start(earliest, tf.seconds) + 1
                purged += await self._candles.delete_aggregated_before(tf.name, cutoff, symbol=symbol)
        if purged:
            self._logger.info("Purged %s aggregated candles older than raw history for %s", purged, symbol)
        return purged

    async def purge_from(self, symbol: str, from_time: int) -> int:
        """
        Delete aggregated buckets that overlap history starting at `from_time`.
        """
        async with self._lock_for(symbol):
            purged = 0
            for tf in TimeframeService.TIMEFRAMES:
                bucket = TimeframeService.bucket_start(from_time, tf.seconds)
                purged += await self._candles.delete_aggregated_from(tf.name, bucket, symbol=symbol)
            return purged

    async def run(self, now: Optional[int] = None, *, symbol: Optional[str] = None) -> Dict[str, int]:
        """
        One aggregation pass: backfill every pair (or just `symbol`) through the
        timeframe chain, then prune.
        """
        now = int(now if now is not None else _time.time())
        if symbol is not None:
            symbols = [symbol]
        else:
            symbols = [p.symbol for p in await self._pairs.list_all()]

        aggregated = 0
        for sym in symbols:
            try:
                for tf in TimeframeService.TIMEFRAMES:
                    aggregated += await self.backfill(sym, tf.name, now)
            except Exception as exc:
                self._logger.exception("Aggregation failed for %s: %s", sym, exc)

        cleaned = await self.prune(now)
        return {"aggregated": aggregated, "cleaned": cleaned}
