from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from core.domain.entities.position_entity import PositionEntity


class PositionRepository(ABC):
    """
    Abstraction for leveraged positions.

    Terminal transitions go through `transition_from_open`, a compare-and-set
    on status so that two racing closes cannot both succeed.
    """

    @abstractmethod
    async def ensure_indexes(self) -> None: ...

    @abstractmethod
    async def insert(self, position: PositionEntity) -> PositionEntity:
        """
        Persist a new position and return it with `id` and timestamps set.
        """
        raise NotImplementedError

    @abstractmethod
    async def get(self, position_id: str) -> Optional[PositionEntity]:
        raise NotImplementedError

    @abstractmethod
    async def list_by_user(self, user_id: str, *, status: Optional[str] = None) -> List[PositionEntity]:
        """
        List a user's positions, newest first, optionally filtered by status.
        """
        raise NotImplementedError

    @abstractmethod
    async def list_open_by_symbol(self, symbol: str) -> List[PositionEntity]:
        raise NotImplementedError

    @abstractmethod
    async def transition_from_open(self, position_id: str, updates: Dict[str, Any]) -> PositionEntity:
        """
        Apply `updates` only if the position is still open.

        Raises:
            ConcurrencyConflictError: the position exists but is no longer open.
            PositionNotFoundError: no such position.
        """
        raise NotImplementedError

    @abstractmethod
    async def reopen(self, position_id: str, *, closed_at: int) -> bool:
        """
        Undo a close whose payout failed: move the position back to open only
        if it is still closed with this `closed_at`. Returns True when reverted.
        """
        raise NotImplementedError
