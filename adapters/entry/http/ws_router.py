from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from core.services.event_bus_service import TOPIC_CANDLES
from workers.market_supervisor import MarketContainer

from .deps import get_market_ws

router = APIRouter(tags=["realtime"])

logger = logging.getLogger(__name__)


@router.websocket("/ws/prices/{symbol}")
async def stream_prices(
    websocket: WebSocket,
    symbol: str,
    market: MarketContainer = Depends(get_market_ws),
) -> None:
    """
    Push every generated candle of `symbol` to the client as JSON.

    Read-only: messages sent by the client are ignored. A slow client misses
    candles rather than slowing the generator down.
    """
    symbol = symbol.upper()
    pair = await market.pair_repo.get(symbol)
    if pair is None:
        await websocket.close(code=4404, reason=f"unknown symbol: {symbol}")
        return

    await websocket.accept()
    sub = market.event_bus.subscribe(TOPIC_CANDLES, symbol=symbol)
    try:
        await websocket.send_json(
            {"type": "snapshot", "symbol": symbol, "current_price": pair.current_price}
        )
        while True:
            event = await sub.get()
            await websocket.send_json({"type": "candle", **event.payload})
    except WebSocketDisconnect:
        logger.debug("Price stream client for %s disconnected", symbol)
    finally:
        market.event_bus.unsubscribe(sub)
