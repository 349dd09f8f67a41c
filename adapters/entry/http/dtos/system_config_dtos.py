from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


def _check_level(v: Optional[int]) -> Optional[int]:
    if v is not None and not 0 <= v <= 100:
        raise ValueError("chaos level must be between 0 and 100")
    return v


class ChaosConfigUpdateDTO(BaseModel):
    """
    DTO for updating the global chaos level.

    The level is stored in the runtime config and picked up by the generator on its next tick.
    """

    global_chaos_level: int = Field(..., description="0 = calm, 100 = mayhem")

    @field_validator("global_chaos_level")
    @classmethod
    def _validate_level(cls, v: int) -> int:
        return _check_level(v)


class PairChaosOverrideDTO(BaseModel):
    """
    DTO for setting (0..100) or clearing (null) a pair's chaos override.
    """

    level: Optional[int] = Field(None, description="null clears the override")

    @field_validator("level")
    @classmethod
    def _validate_level(cls, v: Optional[int]) -> Optional[int]:
        return _check_level(v)


class ChaosConfigOutDTO(BaseModel):
    """
    DTO returned by API for runtime chaos configuration.
    """

    key: str
    global_chaos_level: int
    extras: Optional[Dict[str, Any]] = None
    effective_levels: Dict[str, int] = Field(default_factory=dict)
