from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class TradeOutDTO(BaseModel):
    """
    Response DTO for the public order feed.
    """
    id: Optional[str] = None
    user_id: Optional[str] = None
    is_bot: bool = False

    symbol: str
    side: str
    size: float
    price: float
    leverage: int = 1

    position_id: Optional[str] = None
    action: Optional[str] = None
    realized_pnl: Optional[float] = None

    created_at: Optional[int] = None
    created_at_iso: Optional[str] = None
