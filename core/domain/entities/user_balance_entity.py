from __future__ import annotations

from core.domain.entities.base_entity import MongoEntity


class UserBalanceEntity(MongoEntity):
    """
    Margin wallet balance of a user in the simulated quote currency.
    """

    user_id: str
    amount: float = 0.0
