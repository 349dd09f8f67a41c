from __future__ import annotations

from pydantic import BaseModel, Field


class BalanceOutDTO(BaseModel):
    user_id: str
    amount: float


class CreditBalanceDTO(BaseModel):
    """
    Request DTO for crediting a user's balance (stand-in for the external faucet).
    """
    amount: float = Field(..., gt=0)
