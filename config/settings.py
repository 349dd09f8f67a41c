"""
Application configuration for api-chaos-market.

Centralizes environment variables using python-dotenv.

Note:
- The global chaos level is runtime state stored in the `system_config` collection.
  DEFAULT_GLOBAL_CHAOS_LEVEL only seeds it when the document does not exist yet.
- Exactly one deployment should run with GENERATOR_ENABLED=true per store; the
  leader lease in the store is the second line of defence.
"""

import os
import socket
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """
    Configuration settings for the api-chaos-market service.
    """

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    APP_NAME: str = os.getenv("APP_NAME", "api-chaos-market")

    # Storage: "mongo" for deployments, "memory" for local runs and tests
    STORE_BACKEND: str = os.getenv("STORE_BACKEND", "mongo").lower().strip()
    MONGODB_URL: str = os.getenv("MONGODB_URL", "mongodb://mongo-chaos-market:27017")
    MONGODB_DB_NAME: str = os.getenv("MONGODB_DB_NAME", "api_chaos_market")
    STORE_TIMEOUT_S: float = float(os.getenv("STORE_TIMEOUT_S", "0.8"))

    # Candle generation (single writer)
    GENERATOR_ENABLED: bool = _env_bool("GENERATOR_ENABLED", "true")
    GENERATOR_INSTANCE_ID: str = os.getenv("GENERATOR_INSTANCE_ID", f"{socket.gethostname()}:{os.getpid()}")
    GENERATION_INTERVAL_S: float = float(os.getenv("GENERATION_INTERVAL_S", "1.0"))
    LEADER_LEASE_TTL_S: int = int(os.getenv("LEADER_LEASE_TTL_S", "5"))

    # Aggregation / retention
    AGGREGATION_INTERVAL_S: float = float(os.getenv("AGGREGATION_INTERVAL_S", "60"))
    BACKFILL_MAX_BUCKETS: int = int(os.getenv("BACKFILL_MAX_BUCKETS", "500"))

    # Market parameters
    DEFAULT_GLOBAL_CHAOS_LEVEL: int = int(os.getenv("DEFAULT_GLOBAL_CHAOS_LEVEL", "50"))
    LIQUIDATION_BUFFER: float = float(os.getenv("LIQUIDATION_BUFFER", "0.02"))
    MAX_LEVERAGE: int = int(os.getenv("MAX_LEVERAGE", "100"))

    # Bootstrap (used only if the pairs collection is empty)
    BOOTSTRAP_SEED_PAIRS: bool = _env_bool("BOOTSTRAP_SEED_PAIRS", "true")
    BOOTSTRAP_HISTORY_SECONDS: int = int(os.getenv("BOOTSTRAP_HISTORY_SECONDS", "300"))

    # Fan-out
    FANOUT_WEBHOOK_URL: str = os.getenv("FANOUT_WEBHOOK_URL", "")
    TRIGGER_MONITOR_ENABLED: bool = _env_bool("TRIGGER_MONITOR_ENABLED", "true")


settings = Settings()
