from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class CandleOutDTO(BaseModel):
    """
    Response DTO for raw and aggregated candles.
    """
    symbol: str
    time: int

    open: float
    high: float
    low: float
    close: float
    volume: float

    timeframe: Optional[str] = None
