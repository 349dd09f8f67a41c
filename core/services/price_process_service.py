from __future__ import annotations

import math
import random
import time as _time
from typing import List, Optional

from core.domain.entities.candle_entity import CandleEntity
from core.domain.errors import ValidationError

# Prices never go below this; percentage math downstream divides by price.
PRICE_FLOOR = 1e-9

BASE_VOLUME = 100_000

_DEFAULT_RNG = random.Random()


class PriceProcessService:
    """
    Stochastic price process behind the synthetic pairs ("chaos engine").

    One call produces the next 1-second OHLCV bar from the previous close:

    - chaos level (0..100) is normalized to chaos_factor in [0, 1]
    - volatility goes from 0.05% (calm) to 2% (mayhem) per tick
    - a small positive drift, stronger when calm
    - wicks extend beyond the body, longer with more chaos
    - volume grows with chaos

    Randomness comes from a `random.Random` so tests can seed it; when none is
    given the module-level generator is used.
    """

    @staticmethod
    def chaos_factor(chaos_level: float) -> float:
        return max(0.0, min(100.0, float(chaos_level))) / 100.0

    @staticmethod
    def volatility(chaos_factor: float) -> float:
        return 0.0005 + chaos_factor * 0.0195

    @staticmethod
    def up_bias(chaos_factor: float) -> float:
        return 0.0001 + 0.0003 * (1.0 - chaos_factor)

    @staticmethod
    def standard_normal(rng: random.Random) -> float:
        """Box-Muller transform; u1 is drawn from (0, 1] so log() is defined."""
        u1 = 1.0 - rng.random()
        u2 = rng.random()
        return math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)

    @classmethod
    def next_candle(
        cls,
        previous_close: float,
        chaos_level: float,
        time: int,
        *,
        symbol: str = "",
        rng: Optional[random.Random] = None,
    ) -> CandleEntity:
        previous_close = float(previous_close)
        if not math.isfinite(previous_close) or previous_close <= 0:
            raise ValidationError(f"previous close must be a positive number, got {previous_close}")

        rng = rng or _DEFAULT_RNG

        factor = cls.chaos_factor(chaos_level)
        vol = cls.volatility(factor)

        z = cls.standard_normal(rng)
        change = z * vol + cls.up_bias(factor)

        open_ = max(previous_close, PRICE_FLOOR)
        close = max(open_ * (1.0 + change), PRICE_FLOOR)

        wick = vol * (1.5 + 1.5 * factor)
        high = max(open_, close) * (1.0 + rng.random() * wick)
        low = max(min(open_, close) * (1.0 - rng.random() * wick), PRICE_FLOOR)

        volume = math.floor(BASE_VOLUME + rng.random() * BASE_VOLUME * (1.0 + factor * 10.0))

        return CandleEntity(
            symbol=symbol,
            time=int(time),
            open=open_,
            high=high,
            low=low,
            close=close,
            volume=float(volume),
        )

    @classmethod
    def initial_history(
        cls,
        initial_price: float,
        chaos_level: float,
        count: int = 100,
        interval_seconds: int = 60,
        *,
        end_time: Optional[int] = None,
        symbol: str = "",
        rng: Optional[random.Random] = None,
    ) -> List[CandleEntity]:
        """
        Seed series of `count` candles spaced `interval_seconds` apart, the
        first one `count * interval_seconds` seconds before `end_time`.
        """
        if count < 0:
            raise ValidationError(f"count must be >= 0, got {count}")
        if interval_seconds <= 0:
            raise ValidationError(f"interval_seconds must be positive, got {interval_seconds}")

        end = int(end_time) if end_time is not None else int(_time.time())
        current_time = end - count * int(interval_seconds)
        price = float(initial_price)

        history: List[CandleEntity] = []
        for _ in range(count):
            candle = cls.next_candle(price, chaos_level, current_time, symbol=symbol, rng=rng)
            history.append(candle)
            price = candle.close
            current_time += int(interval_seconds)
        return history
