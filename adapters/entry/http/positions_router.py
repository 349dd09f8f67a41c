from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from core.domain.entities.position_entity import PositionEntity
from core.domain.errors import ValidationError
from workers.market_supervisor import MarketContainer

from .deps import get_market
from .dtos.balance_dtos import BalanceOutDTO
from .dtos.position_dtos import ClosePositionDTO, OpenPositionDTO, PositionOutDTO

router = APIRouter(tags=["positions"])


async def _current_price(market: MarketContainer, symbol: str) -> float:
    pair = await market.market_query.get_pair(symbol)
    if pair.current_price is None:
        raise ValidationError(f"no price yet for {symbol}; pass an explicit price")
    return float(pair.current_price)


async def _position_out(market: MarketContainer, position: PositionEntity) -> PositionOutDTO:
    out = PositionOutDTO.model_validate(position.model_dump())
    if position.is_open:
        pair = await market.pair_repo.get(position.symbol)
        if pair is not None and pair.current_price is not None:
            out.unrealized_pnl = market.lifecycle.math.unrealized_pnl(position, pair.current_price)
    return out


@router.post("/positions", response_model=PositionOutDTO)
async def open_position(dto: OpenPositionDTO, market: MarketContainer = Depends(get_market)) -> PositionOutDTO:
    """
    Open a leveraged position; the margin (`size`) is debited from the user's balance.
    """
    entry = dto.entry_price if dto.entry_price is not None else await _current_price(market, dto.symbol)
    position = await market.lifecycle.open_position(
        user_id=dto.user_id,
        symbol=dto.symbol,
        side=dto.side,
        size=dto.size,
        leverage=dto.leverage,
        entry_price=entry,
        stop_loss=dto.stop_loss,
        take_profit=dto.take_profit,
    )
    return await _position_out(market, position)


@router.post("/positions/{position_id}/close", response_model=PositionOutDTO)
async def close_position(
    position_id: str,
    dto: Optional[ClosePositionDTO] = None,
    market: MarketContainer = Depends(get_market),
) -> PositionOutDTO:
    """
    Close an open position and credit margin + P&L back to the user.
    """
    exit_price = dto.exit_price if dto is not None else None
    if exit_price is None:
        position = await market.lifecycle.get_position(position_id)
        exit_price = await _current_price(market, position.symbol)
    closed = await market.lifecycle.close_position(position_id, exit_price)
    return await _position_out(market, closed)


@router.get("/positions", response_model=List[PositionOutDTO])
async def list_positions(
    user_id: str = Query(...),
    status: Optional[str] = Query(None, description="open | closed | liquidated"),
    market: MarketContainer = Depends(get_market),
) -> List[PositionOutDTO]:
    positions = await market.lifecycle.list_positions(user_id, status=status.lower() if status else None)
    return [await _position_out(market, p) for p in positions]


@router.get("/positions/{position_id}", response_model=PositionOutDTO)
async def get_position(position_id: str, market: MarketContainer = Depends(get_market)) -> PositionOutDTO:
    return await _position_out(market, await market.lifecycle.get_position(position_id))


@router.get("/balances/{user_id}", response_model=BalanceOutDTO)
async def get_balance(user_id: str, market: MarketContainer = Depends(get_market)) -> BalanceOutDTO:
    return BalanceOutDTO(user_id=user_id, amount=await market.lifecycle.get_balance(user_id))
