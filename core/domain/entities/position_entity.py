from __future__ import annotations

from enum import Enum
from typing import Optional

from core.domain.entities.base_entity import MongoEntity


class PositionSide(str, Enum):
    LONG = "long"
    SHORT = "short"


class PositionStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    LIQUIDATED = "liquidated"


class PositionEntity(MongoEntity):
    """
    A leveraged bet on a pair.

    `size` is the margin posted in quote units. `liquidation_price` is fixed
    at open time. Status moves open -> closed or open -> liquidated, never back.
    """

    user_id: str
    symbol: str
    side: PositionSide
    size: float
    leverage: int

    entry_price: float
    liquidation_price: float

    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None

    status: PositionStatus = PositionStatus.OPEN
    exit_price: Optional[float] = None
    realized_pnl: Optional[float] = None
    closed_at: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self.status == PositionStatus.OPEN.value

    @property
    def direction(self) -> int:
        return 1 if self.side == PositionSide.LONG.value else -1
