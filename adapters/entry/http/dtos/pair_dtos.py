from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class PairOutDTO(BaseModel):
    """
    Response DTO for tradable pairs.
    """
    symbol: str
    name: str
    description: Optional[str] = None

    initial_price: float
    current_price: Optional[float] = None
    chaos_override: Optional[int] = None
    effective_chaos_level: Optional[int] = None

    last_candle_time: Optional[int] = None
