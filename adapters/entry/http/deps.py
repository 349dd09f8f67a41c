from __future__ import annotations

from fastapi import Request, WebSocket

from core.domain.errors import ConfigurationError
from workers.market_supervisor import MarketContainer


def _container(state) -> MarketContainer:
    container = getattr(state, "market", None)
    if container is None:
        raise ConfigurationError("market is not ready (store not initialized)")
    return container


def get_market(request: Request) -> MarketContainer:
    """
    FastAPI dependency returning the wired market (set by the app lifespan).
    """
    return _container(request.app.state)


def get_market_ws(websocket: WebSocket) -> MarketContainer:
    return _container(websocket.app.state)
