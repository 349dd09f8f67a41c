from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import Field

from core.domain.entities.base_entity import MongoEntity

RUNTIME_CONFIG_KEY = "runtime"


class SystemConfigEntity(MongoEntity):
    """
    Operator-controlled market settings, one document per key.

    Only the "runtime" document is used: it holds the global chaos level
    (0 = calm, 100 = mayhem) that applies to every pair without an override.
    """

    key: str = RUNTIME_CONFIG_KEY
    global_chaos_level: int = Field(50, ge=0, le=100)

    extras: Optional[Dict[str, Any]] = None
