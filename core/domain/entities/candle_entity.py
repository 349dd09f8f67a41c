# core/domain/entities/candle_entity.py
from __future__ import annotations

from typing import Optional

from core.domain.entities.base_entity import MongoEntity


class CandleEntity(MongoEntity):
    """
    Represents one OHLCV bar for a symbol.

    Raw candles are the 1-second bars written by the generator, keyed by
    (symbol, time). `time` is unix seconds.
    """

    symbol: str
    time: int

    open: float
    high: float
    low: float
    close: float

    volume: float = 0.0

    def is_well_formed(self) -> bool:
        """True when low <= min(open, close) <= max(open, close) <= high and prices are positive."""
        return (
            0.0 < self.low <= min(self.open, self.close)
            and max(self.open, self.close) <= self.high
            and self.volume >= 0.0
        )


class AggregatedCandleEntity(CandleEntity):
    """
    A candle folded from finer candles into a fixed-resolution bucket.

    Keyed by (symbol, timeframe, time) where `time` is the bucket start and
    `time % resolution_seconds == 0`.

    `last_time` is the time of the latest source candle folded in; it lets the
    aggregator reject contributions that arrive out of order.
    """

    timeframe: str
    last_time: Optional[int] = None
