from __future__ import annotations

import asyncio
import logging
import time as _time
from typing import Dict, List, Optional

from core.domain.entities.position_entity import PositionEntity, PositionSide, PositionStatus
from core.domain.entities.trade_entity import TradeAction, TradeEntity
from core.domain.errors import (
    ChaosMarketError,
    ConcurrencyConflictError,
    ConfigurationError,
    InsufficientBalanceError,
    PositionAlreadyClosedError,
    PositionNotFoundError,
    UnknownSymbolError,
    ValidationError,
)
from core.repositories.balance_repository import BalanceRepository
from core.repositories.pair_repository import PairRepository
from core.repositories.position_repository import PositionRepository
from core.repositories.trade_repository import TradeRepository
from core.services.position_math_service import PositionMathService


class PositionLifecycleUseCase:
    """
    Opens, closes and liquidates leveraged positions.

    State machine: open -> closed | liquidated (both terminal).

    Money rules:
    - open: debit the margin (`size`) from the user's balance.
    - close: credit `size + realized_pnl`, floored so the balance never goes negative.
      If the credit fails the close is reverted, so the payout is never lost.
    - liquidate: realized_pnl = -size, nothing is credited.

    Serialization: one lock per user around open (balance check + debit +
    insert), one lock per position around terminal transitions, plus a
    compare-and-set on status in the repository for racing instances.
    The loser of a race gets PositionAlreadyClosedError.
    """

    def __init__(
        self,
        *,
        position_repo: PositionRepository,
        balance_repo: BalanceRepository,
        pair_repo: PairRepository,
        trade_repo: Optional[TradeRepository] = None,
        math_service: Optional[PositionMathService] = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if position_repo is None or balance_repo is None or pair_repo is None:
            raise ConfigurationError("position, balance and pair stores are required")
        self._positions = position_repo
        self._balances = balance_repo
        self._pairs = pair_repo
        self._trades = trade_repo
        self._math = math_service or PositionMathService()
        self._logger = logger or logging.getLogger(self.__class__.__name__)

        self._user_locks: Dict[str, asyncio.Lock] = {}
        self._position_locks: Dict[str, asyncio.Lock] = {}

    @property
    def math(self) -> PositionMathService:
        return self._math

    def _user_lock(self, user_id: str) -> asyncio.Lock:
        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = self._user_locks[user_id] = asyncio.Lock()
        return lock

    def _position_lock(self, position_id: str) -> asyncio.Lock:
        lock = self._position_locks.get(position_id)
        if lock is None:
            lock = self._position_locks[position_id] = asyncio.Lock()
        return lock

    def is_in_flight(self, position_id: str) -> bool:
        lock = self._position_locks.get(position_id)
        return lock is not None and lock.locked()

    # ---- open ----

    async def open_position(
        self,
        *,
        user_id: str,
        symbol: str,
        side: str,
        size: float,
        leverage: int,
        entry_price: float,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
        is_bot: bool = False,
    ) -> PositionEntity:
        user_id = (user_id or "").strip()
        if not user_id:
            raise ValidationError("user_id is required")
        side = self._math.validate_side(side)
        size = self._math.validate_price(size, field="size")
        lev = self._math.validate_leverage(leverage)
        entry = self._math.validate_price(entry_price, field="entry price")
        sl = self._math.validate_price(stop_loss, field="stop loss") if stop_loss is not None else None
        tp = self._math.validate_price(take_profit, field="take profit") if take_profit is not None else None
        self._validate_triggers(side, entry, sl, tp)

        if await self._pairs.get(symbol) is None:
            raise UnknownSymbolError(symbol)

        position = PositionEntity(
            user_id=user_id,
            symbol=symbol,
            side=side,
            size=size,
            leverage=lev,
            entry_price=entry,
            liquidation_price=self._math.liquidation_price(entry, lev, side),
            stop_loss=sl,
            take_profit=tp,
            status=PositionStatus.OPEN,
        )

        async with self._user_lock(user_id):
            available = await self._balances.get_balance(user_id)
            if size > available:
                raise InsufficientBalanceError(user_id=user_id, required=size, available=available)

            await self._balances.debit(user_id, size)
            try:
                stored = await self._positions.insert(position)
            except Exception:
                # Give the margin back before surfacing the failure.
                await self._balances.credit(user_id, size)
                self._logger.warning("Position insert failed for user=%s; refunded margin %s", user_id, size)
                raise

        self._logger.info(
            "Opened %s %s x%s size=%s entry=%s liq=%s id=%s user=%s",
            stored.side,
            stored.symbol,
            stored.leverage,
            stored.size,
            stored.entry_price,
            stored.liquidation_price,
            stored.id,
            user_id,
        )
        await self._record_trade(stored, action=TradeAction.OPEN, price=entry, is_bot=is_bot)
        return stored

    @staticmethod
    def _validate_triggers(side: str, entry: float, sl: Optional[float], tp: Optional[float]) -> None:
        if side == PositionSide.LONG.value:
            if sl is not None and sl >= entry:
                raise ValidationError(f"stop loss {sl} must be below entry {entry} for a long")
            if tp is not None and tp <= entry:
                raise ValidationError(f"take profit {tp} must be above entry {entry} for a long")
        else:
            if sl is not None and sl <= entry:
                raise ValidationError(f"stop loss {sl} must be above entry {entry} for a short")
            if tp is not None and tp >= entry:
                raise ValidationError(f"take profit {tp} must be below entry {entry} for a short")

    # ---- terminal transitions ----

    async def close_position(self, position_id: str, exit_price: float, *, now: Optional[int] = None) -> PositionEntity:
        exit_ = self._math.validate_price(exit_price, field="exit price")
        closed_at = int(now if now is not None else _time.time())

        async with self._position_lock(position_id):
            position = await self._load_open(position_id)
            pnl = self._math.unrealized_pnl(position, exit_)
            updated = await self._transition(
                position_id,
                {
                    "status": PositionStatus.CLOSED,
                    "exit_price": exit_,
                    "realized_pnl": pnl,
                    "closed_at": closed_at,
                },
            )
            try:
                balance = await self._balances.credit(position.user_id, position.size + pnl)
            except Exception:
                # No payout, no close: put the position back so the close can be retried.
                reverted = await self._positions.reopen(position_id, closed_at=closed_at)
                self._logger.warning(
                    "Payout failed for %s user=%s; position reopened=%s", position_id, position.user_id, reverted
                )
                raise

        self._logger.info(
            "Closed %s at %s pnl=%.8f user=%s balance=%.8f", position_id, exit_, pnl, position.user_id, balance
        )
        await self._record_trade(updated, action=TradeAction.CLOSE, price=exit_)
        return updated

    async def liquidate_position(
        self,
        position_id: str,
        liquidation_price: float,
        *,
        now: Optional[int] = None,
    ) -> PositionEntity:
        price = self._math.validate_price(liquidation_price, field="liquidation price")
        closed_at = int(now if now is not None else _time.time())

        async with self._position_lock(position_id):
            position = await self._load_open(position_id)
            updated = await self._transition(
                position_id,
                {
                    "status": PositionStatus.LIQUIDATED,
                    "exit_price": price,
                    "realized_pnl": -position.size,
                    "closed_at": closed_at,
                },
            )

        self._logger.info("Liquidated %s at %s margin lost=%s user=%s", position_id, price, position.size, position.user_id)
        await self._record_trade(updated, action=TradeAction.LIQUIDATE, price=price)
        return updated

    async def _load_open(self, position_id: str) -> PositionEntity:
        position = await self._positions.get(position_id)
        if position is None:
            raise PositionNotFoundError(position_id)
        if not position.is_open:
            raise PositionAlreadyClosedError(position_id, position.status)
        return position

    async def _transition(self, position_id: str, updates: dict) -> PositionEntity:
        try:
            return await self._positions.transition_from_open(position_id, updates)
        except ConcurrencyConflictError:
            current = await self._positions.get(position_id)
            raise PositionAlreadyClosedError(position_id, current.status if current else None) from None

    # ---- reads ----

    async def get_position(self, position_id: str) -> PositionEntity:
        position = await self._positions.get(position_id)
        if position is None:
            raise PositionNotFoundError(position_id)
        return position

    async def list_positions(self, user_id: str, *, status: Optional[str] = None) -> List[PositionEntity]:
        if status is not None and status not in {s.value for s in PositionStatus}:
            raise ValidationError(f"unknown status: {status!r}")
        return await self._positions.list_by_user(user_id, status=status)

    async def get_balance(self, user_id: str) -> float:
        return await self._balances.get_balance(user_id)

    async def deposit(self, user_id: str, amount: float) -> float:
        """
        Credit funds from outside the trading flow (faucet / custody top-up).
        """
        value = self._math.validate_price(amount, field="amount")
        async with self._user_lock(user_id):
            balance = await self._balances.credit(user_id, value)
        self._logger.info("Deposited %s for user=%s balance=%s", value, user_id, balance)
        return balance

    # ---- history ----

    async def _record_trade(
        self,
        position: PositionEntity,
        *,
        action: TradeAction,
        price: float,
        is_bot: bool = False,
    ) -> None:
        if self._trades is None:
            return
        opening = action == TradeAction.OPEN
        long_ = position.side == PositionSide.LONG.value
        trade = TradeEntity(
            user_id=position.user_id,
            is_bot=is_bot,
            symbol=position.symbol,
            side="buy" if opening == long_ else "sell",
            size=position.size,
            price=price,
            leverage=position.leverage,
            position_id=position.id,
            action=action,
            realized_pnl=position.realized_pnl,
        )
        try:
            await self._trades.insert(trade)
        except ChaosMarketError as exc:
            # The position change is already durable; history is best effort.
            self._logger.exception("Failed to record %s trade for position %s: %s", action.value, position.id, exc)
