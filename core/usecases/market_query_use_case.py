from __future__ import annotations

import time as _time
from typing import List, Optional, Sequence

from core.domain.entities.candle_entity import CandleEntity
from core.domain.entities.pair_entity import PairEntity
from core.domain.entities.trade_entity import TradeEntity
from core.domain.errors import UnknownSymbolError, ValidationError
from core.repositories.candle_repository import CandleRepository
from core.repositories.pair_repository import PairRepository
from core.repositories.trade_repository import TradeRepository
from core.services.timeframe_service import TimeframeService

DEFAULT_CANDLE_LIMIT = 500
MAX_CANDLE_LIMIT = 1_000


class MarketQueryUseCase:
    """
    Read side for charts and pair lists.

    Candles come back in ascending time order. Without `from_time` the most
    recent `limit` slots are returned; timeframe "1s" reads raw candles.
    """

    def __init__(
        self,
        *,
        candle_repo: CandleRepository,
        pair_repo: PairRepository,
        trade_repo: Optional[TradeRepository] = None,
    ) -> None:
        self._candles = candle_repo
        self._pairs = pair_repo
        self._trades = trade_repo

    async def list_pairs(self) -> List[PairEntity]:
        return await self._pairs.list_all()

    async def get_pair(self, symbol: str) -> PairEntity:
        pair = await self._pairs.get(symbol)
        if pair is None:
            raise UnknownSymbolError(symbol)
        return pair

    async def get_candles(
        self,
        symbol: str,
        timeframe: str,
        *,
        from_time: Optional[int] = None,
        limit: int = DEFAULT_CANDLE_LIMIT,
        now: Optional[int] = None,
    ) -> Sequence[CandleEntity]:
        if limit < 1 or limit > MAX_CANDLE_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_CANDLE_LIMIT}, got {limit}")
        await self.get_pair(symbol)

        if TimeframeService.is_raw(timeframe):
            seconds = 1
        else:
            seconds = TimeframeService.get(timeframe).seconds

        if from_time is None:
            now = int(now if now is not None else _time.time())
            from_time = TimeframeService.bucket_start(now, seconds) - (int(limit) - 1) * seconds

        if seconds == 1:
            return await self._candles.list_raw(symbol, from_time=from_time, limit=limit)
        return await self._candles.list_aggregated(symbol, timeframe, from_time=from_time, limit=limit)

    async def list_trades(self, *, symbol: Optional[str] = None, limit: int = 50) -> List[TradeEntity]:
        if self._trades is None:
            return []
        if limit < 1 or limit > MAX_CANDLE_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_CANDLE_LIMIT}, got {limit}")
        return await self._trades.list_recent(symbol=symbol, limit=limit)
