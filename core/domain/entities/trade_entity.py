from __future__ import annotations

from enum import Enum
from typing import Optional

from core.domain.entities.base_entity import MongoEntity


class TradeAction(str, Enum):
    OPEN = "open"
    CLOSE = "close"
    LIQUIDATE = "liquidate"


class TradeEntity(MongoEntity):
    """
    A trade/history entry shown in the public order feed and user history.

    Opening a long is a "buy"; closing or liquidating it is a "sell" (and the
    other way round for shorts). `size` is the posted margin.
    """

    user_id: Optional[str] = None
    is_bot: bool = False

    symbol: str
    side: str  # "buy" | "sell"
    size: float
    price: float
    leverage: int = 1

    position_id: Optional[str] = None
    action: Optional[TradeAction] = None
    realized_pnl: Optional[float] = None
