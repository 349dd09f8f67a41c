from __future__ import annotations

from core.domain.entities.base_entity import MongoEntity


class LeaderLeaseEntity(MongoEntity):
    """
    Time-bounded leadership claim for a named singleton role (e.g. "candle-generator").

    The holder must renew before `expires_at` (unix seconds) or another
    instance may take the role over.
    """

    name: str
    holder_id: str
    expires_at: int
