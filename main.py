import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from adapters.entry.http.admin_config_router import router as admin_config_router
from adapters.entry.http.admin_router import router as admin_router
from adapters.entry.http.error_handlers import register_error_handlers
from adapters.entry.http.market_router import router as market_router
from adapters.entry.http.positions_router import router as positions_router
from adapters.entry.http.ws_router import router as ws_router
from config.settings import settings
from workers.market_supervisor import MarketSupervisor


def _setup_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(supervisor: Optional[MarketSupervisor] = None) -> FastAPI:
    supervisor = supervisor or MarketSupervisor()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _setup_logging()
        logging.getLogger(__name__).info("Starting %s (lifespan startup)...", settings.APP_NAME)

        await supervisor.start()
        app.state.db = supervisor.db
        app.state.market = supervisor.container

        try:
            yield
        finally:
            logging.getLogger(__name__).info("Shutting down %s (lifespan shutdown)...", settings.APP_NAME)
            await supervisor.stop()
            app.state.market = None

    app = FastAPI(title=settings.APP_NAME, version="0.1.0", lifespan=lifespan)
    register_error_handlers(app)

    app.include_router(market_router)
    app.include_router(positions_router)
    app.include_router(admin_router)
    app.include_router(admin_config_router)
    app.include_router(ws_router)

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok"}

    return app


app = create_app()
