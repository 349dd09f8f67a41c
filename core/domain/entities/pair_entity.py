from __future__ import annotations

from typing import Optional

from core.domain.entities.base_entity import MongoEntity


class PairEntity(MongoEntity):
    """
    A tradable instrument.

    `current_price` is the last generated close and is written only by the
    candle generator. `chaos_override`, when set, replaces the global chaos
    level for this pair.
    """

    symbol: str
    name: str
    description: Optional[str] = None

    initial_price: float
    current_price: Optional[float] = None
    chaos_override: Optional[int] = None

    last_candle_time: Optional[int] = None

    def reference_price(self) -> float:
        """Price the next candle opens from: last close, else the seed price."""
        if self.current_price is not None and self.current_price > 0:
            return float(self.current_price)
        return float(self.initial_price)
