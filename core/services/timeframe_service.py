from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from core.domain.errors import ValidationError

RAW_TIMEFRAME = "1s"
RAW_RETENTION_SECONDS = 3600

_DAY = 86_400


@dataclass(frozen=True)
class Timeframe:
    name: str
    seconds: int
    source: Optional[str]  # None = built from raw 1-second candles
    retention_seconds: int
    max_candles: int


class TimeframeService:
    """
    Fixed aggregation resolutions and bucket arithmetic.

    Rules:
    - Buckets are half-open: [bucket_start, bucket_start + seconds).
    - bucket_start(t) = floor(t / seconds) * seconds (floor division, so
      negative times still land on the bucket below).
    - Each resolution is rebuilt from the next finer one during backfill:
      1m <- raw, 5m <- 1m, 15m <- 5m, 1h <- 15m, 4h <- 1h, 1d <- 4h.
    """

    TIMEFRAMES: List[Timeframe] = [
        Timeframe("1m", 60, None, 7 * _DAY, 10_080),
        Timeframe("5m", 300, "1m", 30 * _DAY, 8_640),
        Timeframe("15m", 900, "5m", 90 * _DAY, 8_640),
        Timeframe("1h", 3_600, "15m", 365 * _DAY, 8_760),
        Timeframe("4h", 14_400, "1h", 730 * _DAY, 4_380),
        Timeframe("1d", 86_400, "4h", 1_825 * _DAY, 1_825),
    ]

    _BY_NAME: Dict[str, Timeframe] = {tf.name: tf for tf in TIMEFRAMES}

    @staticmethod
    def bucket_start(time: int, resolution_seconds: int) -> int:
        if resolution_seconds <= 0:
            raise ValidationError(f"resolution must be positive, got {resolution_seconds}")
        return (int(time) // int(resolution_seconds)) * int(resolution_seconds)

    @classmethod
    def get(cls, name: str) -> Timeframe:
        tf = cls._BY_NAME.get((name or "").strip())
        if tf is None:
            raise ValidationError(
                f"unknown timeframe: {name!r} (expected one of {', '.join(cls.names())})"
            )
        return tf

    @classmethod
    def names(cls) -> List[str]:
        return [tf.name for tf in cls.TIMEFRAMES]

    @classmethod
    def is_raw(cls, name: str) -> bool:
        return (name or "").strip() == RAW_TIMEFRAME
