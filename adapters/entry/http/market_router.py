from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from core.domain.entities.pair_entity import PairEntity
from workers.market_supervisor import MarketContainer

from .deps import get_market
from .dtos.candle_dtos import CandleOutDTO
from .dtos.pair_dtos import PairOutDTO
from .dtos.trade_dtos import TradeOutDTO

router = APIRouter(tags=["market"])


async def _pair_out(market: MarketContainer, pair: PairEntity) -> PairOutDTO:
    out = PairOutDTO.model_validate(pair.model_dump())
    out.effective_chaos_level = await market.chaos.resolve(pair)
    return out


@router.get("/pairs", response_model=List[PairOutDTO])
async def list_pairs(market: MarketContainer = Depends(get_market)) -> List[PairOutDTO]:
    """
    List every pair with its current price and effective chaos level.
    """
    return [await _pair_out(market, p) for p in await market.market_query.list_pairs()]


@router.get("/pairs/{symbol}", response_model=PairOutDTO)
async def get_pair(symbol: str, market: MarketContainer = Depends(get_market)) -> PairOutDTO:
    pair = await market.market_query.get_pair(symbol.upper())
    return await _pair_out(market, pair)


@router.get("/candles", response_model=List[CandleOutDTO])
async def list_candles(
    symbol: str = Query(..., description="e.g. SHIT"),
    timeframe: str = Query("1m", description="1s (raw), 1m, 5m, 15m, 1h, 4h or 1d"),
    from_time: Optional[int] = Query(None, description="Unix seconds, inclusive"),
    limit: int = Query(500, ge=1, le=1000),
    market: MarketContainer = Depends(get_market),
) -> List[CandleOutDTO]:
    """
    Candles for a chart, ascending by time.

    Without from_time the latest `limit` slots are returned.
    """
    candles = await market.market_query.get_candles(
        symbol.upper(),
        timeframe,
        from_time=from_time,
        limit=int(limit),
    )
    return [CandleOutDTO.model_validate(c.model_dump()) for c in candles]


@router.get("/trades", response_model=List[TradeOutDTO])
async def list_trades(
    symbol: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=1000),
    market: MarketContainer = Depends(get_market),
) -> List[TradeOutDTO]:
    """
    Recent trade history entries, newest first.
    """
    trades = await market.market_query.list_trades(symbol=symbol.upper() if symbol else None, limit=int(limit))
    return [TradeOutDTO.model_validate(t.model_dump()) for t in trades]
