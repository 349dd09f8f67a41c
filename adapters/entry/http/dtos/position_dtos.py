from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class OpenPositionDTO(BaseModel):
    """
    Request DTO for opening a leveraged position.

    When `entry_price` is omitted the pair's current price is used.
    """
    user_id: str = Field(..., description="Opaque user id resolved by the identity service")
    symbol: str = Field(..., description="Pair symbol, e.g. SHIT")
    side: str = Field(..., description="long | short")
    size: float = Field(..., gt=0, description="Margin posted, in quote units")
    leverage: int = Field(..., description="Whole number between 1 and MAX_LEVERAGE")
    entry_price: Optional[float] = Field(default=None, gt=0)
    stop_loss: Optional[float] = Field(default=None, gt=0)
    take_profit: Optional[float] = Field(default=None, gt=0)

    @field_validator("user_id")
    @classmethod
    def _validate_user_id(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("user_id is required")
        return v

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, v: str) -> str:
        v = (v or "").strip().upper()
        if not v:
            raise ValueError("symbol is required")
        return v

    @field_validator("side")
    @classmethod
    def _validate_side(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if v not in ("long", "short"):
            raise ValueError("side must be 'long' or 'short'")
        return v


class ClosePositionDTO(BaseModel):
    """
    Request DTO for closing a position. Without `exit_price` the pair's current price is used.
    """
    exit_price: Optional[float] = Field(default=None, gt=0)


class PositionOutDTO(BaseModel):
    """
    Response DTO for positions.
    """
    id: str
    user_id: str
    symbol: str
    side: str
    size: float
    leverage: int

    entry_price: float
    liquidation_price: float
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None

    status: str
    exit_price: Optional[float] = None
    realized_pnl: Optional[float] = None
    unrealized_pnl: Optional[float] = None
    closed_at: Optional[int] = None

    created_at: Optional[int] = None
    created_at_iso: Optional[str] = None
    updated_at: Optional[int] = None
    updated_at_iso: Optional[str] = None
