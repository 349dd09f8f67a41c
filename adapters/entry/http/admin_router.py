from __future__ import annotations

import time
from typing import Optional

from fastapi import APIRouter, Depends

from workers.market_supervisor import MarketContainer

from .deps import get_market
from .dtos.admin_dtos import (
    AggregateOutDTO,
    GeneratedCandleOutDTO,
    GenerateTickDTO,
    GenerateTickOutDTO,
    ResetHistoryDTO,
    ResetHistoryOutDTO,
)
from .dtos.balance_dtos import BalanceOutDTO, CreditBalanceDTO
from .dtos.candle_dtos import CandleOutDTO

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/generate-tick", response_model=GenerateTickOutDTO)
async def generate_tick(
    dto: Optional[GenerateTickDTO] = None,
    market: MarketContainer = Depends(get_market),
) -> GenerateTickOutDTO:
    """
    Run one generation tick now (for an external scheduler or manual testing).

    This bypasses the leader lease: the caller is responsible for not running
    it alongside an active generation worker.
    """
    now = int(dto.now) if dto is not None and dto.now is not None else int(time.time())
    generated = await market.generator.execute(now)
    return GenerateTickOutDTO(
        now=now,
        generated=[
            GeneratedCandleOutDTO(
                symbol=g.symbol,
                chaos_level=g.chaos_level,
                candle=CandleOutDTO.model_validate(g.candle.model_dump()),
            )
            for g in generated
        ],
    )


@router.post("/aggregate", response_model=AggregateOutDTO)
async def aggregate(
    symbol: Optional[str] = None,
    market: MarketContainer = Depends(get_market),
) -> AggregateOutDTO:
    """
    Backfill missing aggregated candles and apply retention.
    """
    result = await market.aggregator.run(symbol=symbol.upper() if symbol else None)
    return AggregateOutDTO(**result)


@router.post("/pairs/{symbol}/reset", response_model=ResetHistoryOutDTO)
async def reset_pair_history(
    symbol: str,
    dto: Optional[ResetHistoryDTO] = None,
    market: MarketContainer = Depends(get_market),
) -> ResetHistoryOutDTO:
    """
    Regenerate a pair's history from its initial price.

    Old raw and aggregated candles of the pair are dropped, so charts never show
    aggregated data older than the new raw history.
    """
    seconds = dto.seconds if dto is not None else ResetHistoryDTO().seconds
    count = await market.generator.reset_history(symbol.upper(), seconds=seconds)
    return ResetHistoryOutDTO(symbol=symbol.upper(), candles=count)


@router.post("/balances/{user_id}/credit", response_model=BalanceOutDTO)
async def credit_balance(
    user_id: str,
    dto: CreditBalanceDTO,
    market: MarketContainer = Depends(get_market),
) -> BalanceOutDTO:
    """
    Credit a user's balance (stand-in for the external faucet / custody service).
    """
    amount = await market.lifecycle.deposit(user_id, dto.amount)
    return BalanceOutDTO(user_id=user_id, amount=amount)
