from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from .candle_dtos import CandleOutDTO


class GenerateTickDTO(BaseModel):
    """
    Request DTO for a manual generation tick. `now` defaults to the current second.
    """
    now: Optional[int] = Field(default=None, ge=0)


class GeneratedCandleOutDTO(BaseModel):
    symbol: str
    chaos_level: int
    candle: CandleOutDTO


class GenerateTickOutDTO(BaseModel):
    now: int
    generated: List[GeneratedCandleOutDTO]


class AggregateOutDTO(BaseModel):
    aggregated: int
    cleaned: int


class ResetHistoryDTO(BaseModel):
    """
    Request DTO for regenerating a pair's history from its initial price.
    """
    seconds: int = Field(default=300, ge=1, le=3600, description="Length of the new 1-second history")


class ResetHistoryOutDTO(BaseModel):
    symbol: str
    candles: int
