from __future__ import annotations

from motor.motor_asyncio import AsyncIOMotorClient

from config.settings import settings


def get_mongo_client() -> AsyncIOMotorClient:
    """
    Build the Motor client for the configured MONGODB_URL.

    Driver timeouts are ten times STORE_TIMEOUT_S (the per-symbol budget of a
    generation tick), so an unreachable database fails a request instead of
    hanging it.
    """
    timeout_ms = max(int(settings.STORE_TIMEOUT_S * 1000), 1)
    return AsyncIOMotorClient(
        settings.MONGODB_URL,
        serverSelectionTimeoutMS=timeout_ms * 10,
        socketTimeoutMS=timeout_ms * 10,
        tz_aware=True,
    )
