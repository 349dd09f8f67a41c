from __future__ import annotations

from typing import Optional, Sequence

from core.domain.entities.candle_entity import AggregatedCandleEntity, CandleEntity


class CandleFoldService:
    """
    The OHLCV fold used for every aggregation path.

    open  = time-earliest contributor's open
    high  = max of highs
    low   = min of lows
    close = time-latest contributor's close
    volume = sum of volumes

    Folding one candle at a time in time order and folding the sorted batch
    give the same result.
    """

    @staticmethod
    def start_bucket(
        candle: CandleEntity,
        *,
        timeframe: str,
        bucket_time: int,
    ) -> AggregatedCandleEntity:
        return AggregatedCandleEntity(
            symbol=candle.symbol,
            timeframe=timeframe,
            time=int(bucket_time),
            open=float(candle.open),
            high=float(candle.high),
            low=float(candle.low),
            close=float(candle.close),
            volume=float(candle.volume),
            last_time=_source_last_time(candle),
        )

    @staticmethod
    def fold(existing: AggregatedCandleEntity, candle: CandleEntity) -> AggregatedCandleEntity:
        """
        Merge a newer candle into an existing bucket (returns a new entity).
        """
        merged = existing.model_copy()
        merged.high = max(float(existing.high), float(candle.high))
        merged.low = min(float(existing.low), float(candle.low))
        merged.close = float(candle.close)
        merged.volume = float(existing.volume) + float(candle.volume)
        merged.last_time = _source_last_time(candle)
        return merged

    @classmethod
    def aggregate(
        cls,
        candles: Sequence[CandleEntity],
        *,
        timeframe: str,
        bucket_time: int,
        existing: Optional[AggregatedCandleEntity] = None,
    ) -> AggregatedCandleEntity:
        """
        Fold a batch (sorted by time here) into a bucket, optionally on top of
        an existing record.
        """
        if not candles:
            raise ValueError("Cannot aggregate empty candle batch")

        ordered = sorted(candles, key=lambda c: int(c.time))
        acc = existing
        for c in ordered:
            if acc is None:
                acc = cls.start_bucket(c, timeframe=timeframe, bucket_time=bucket_time)
            else:
                acc = cls.fold(acc, c)
        return acc


def _source_last_time(candle: CandleEntity) -> int:
    # An aggregated source carries the time of its own latest contributor.
    last = getattr(candle, "last_time", None)
    return int(last) if last is not None else int(candle.time)
