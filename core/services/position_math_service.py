from __future__ import annotations

import math
from enum import Enum
from typing import Optional

from core.domain.entities.position_entity import PositionEntity, PositionSide
from core.domain.errors import ValidationError

DEFAULT_LIQUIDATION_BUFFER = 0.02
DEFAULT_MAX_LEVERAGE = 100


class TriggerKind(str, Enum):
    LIQUIDATION = "liquidation"
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"


class PositionMathService:
    """
    Margin, P&L and trigger math for leveraged positions. No I/O.

    Liquidation price:
      long  = entry * (1 - 1/leverage - buffer)
      short = entry * (1 + 1/leverage + buffer)

    The buffer is a deliberate product choice: it pushes the liquidation price
    further from entry than a maintenance-margin formula would, so positions
    get more room before being wiped.
    """

    def __init__(
        self,
        *,
        liquidation_buffer: float = DEFAULT_LIQUIDATION_BUFFER,
        max_leverage: int = DEFAULT_MAX_LEVERAGE,
    ) -> None:
        if liquidation_buffer < 0:
            raise ValidationError("liquidation buffer must be >= 0")
        if int(max_leverage) < 1:
            raise ValidationError("max leverage must be >= 1")
        self._buffer = float(liquidation_buffer)
        self._max_leverage = int(max_leverage)

    @property
    def liquidation_buffer(self) -> float:
        return self._buffer

    @property
    def max_leverage(self) -> int:
        return self._max_leverage

    # ---- validation ----

    def validate_leverage(self, leverage) -> int:
        if isinstance(leverage, bool) or not isinstance(leverage, (int, float)):
            raise ValidationError(f"leverage must be an integer, got {leverage!r}")
        if isinstance(leverage, float):
            if not leverage.is_integer():
                raise ValidationError(f"leverage must be a whole number, got {leverage}")
            leverage = int(leverage)
        if leverage < 1 or leverage > self._max_leverage:
            raise ValidationError(f"leverage must be between 1 and {self._max_leverage}, got {leverage}")
        return leverage

    @staticmethod
    def validate_price(value: float, *, field: str = "price") -> float:
        try:
            v = float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{field} must be a number, got {value!r}") from None
        if not math.isfinite(v) or v <= 0:
            raise ValidationError(f"{field} must be a positive number, got {value}")
        return v

    @staticmethod
    def validate_side(side) -> str:
        value = getattr(side, "value", side)
        value = str(value or "").strip().lower()
        if value not in (PositionSide.LONG.value, PositionSide.SHORT.value):
            raise ValidationError(f"side must be 'long' or 'short', got {side!r}")
        return value

    # ---- pricing ----

    def liquidation_price(self, entry_price: float, leverage: int, side) -> float:
        entry = self.validate_price(entry_price, field="entry price")
        lev = self.validate_leverage(leverage)
        s = self.validate_side(side)

        if s == PositionSide.LONG.value:
            # With buffer > 0 and leverage 1 this would go negative; a long can't be liquidated below zero.
            return max(entry * (1.0 - 1.0 / lev - self._buffer), 0.0)
        return entry * (1.0 + 1.0 / lev + self._buffer)

    @staticmethod
    def unrealized_pnl(position: PositionEntity, current_price: float) -> float:
        move = (float(current_price) - position.entry_price) / position.entry_price
        return move * position.direction * position.size * position.leverage

    @staticmethod
    def pnl_percent(position: PositionEntity, current_price: float) -> float:
        move = (float(current_price) - position.entry_price) / position.entry_price
        return move * 100.0 * position.direction * position.leverage

    # ---- triggers ----

    @staticmethod
    def should_liquidate(position: PositionEntity, current_price: float) -> bool:
        if position.side == PositionSide.LONG.value:
            return current_price <= position.liquidation_price
        return current_price >= position.liquidation_price

    @staticmethod
    def should_trigger_stop_loss(position: PositionEntity, current_price: float) -> bool:
        if position.stop_loss is None:
            return False
        if position.side == PositionSide.LONG.value:
            return current_price <= position.stop_loss
        return current_price >= position.stop_loss

    @staticmethod
    def should_trigger_take_profit(position: PositionEntity, current_price: float) -> bool:
        if position.take_profit is None:
            return False
        if position.side == PositionSide.LONG.value:
            return current_price >= position.take_profit
        return current_price <= position.take_profit

    def evaluate(self, position: PositionEntity, current_price: float) -> Optional[TriggerKind]:
        """
        First matching trigger in priority order: liquidation, stop-loss, take-profit.
        """
        if not position.is_open:
            return None
        if self.should_liquidate(position, current_price):
            return TriggerKind.LIQUIDATION
        if self.should_trigger_stop_loss(position, current_price):
            return TriggerKind.STOP_LOSS
        if self.should_trigger_take_profit(position, current_price):
            return TriggerKind.TAKE_PROFIT
        return None
