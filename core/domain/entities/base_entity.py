# core/domain/entities/base_entity.py
from __future__ import annotations

from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict

E = TypeVar("E", bound="MongoEntity")


class MongoEntity(BaseModel):
    """
    Base entity for documents persisted by the repositories.

    - Maps Mongo's `_id` to `id` (string) on read; `id` back to `_id` on write.
    - Carries common timestamps (stamped by the repositories, not by the core).
    - Ignores unknown fields so older documents keep loading after schema changes.

    The in-memory repositories store the same `to_mongo()` payloads, so both
    backends round-trip entities through one representation.
    """

    id: Optional[str] = None  # maps _id
    created_at: Optional[int] = None
    created_at_iso: Optional[str] = None
    updated_at: Optional[int] = None
    updated_at_iso: Optional[str] = None

    model_config = ConfigDict(
        extra="ignore",
        use_enum_values=True,
        validate_assignment=False,
    )

    @classmethod
    def from_mongo(cls: Type[E], doc: Optional[dict[str, Any]]) -> Optional[E]:
        """
        Build an entity from a stored document.

        Args:
            doc: Raw document (may include `_id`).

        Returns:
            An entity instance or None if doc is falsy.
        """
        if not doc:
            return None
        data = dict(doc)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)

    def to_mongo(self) -> dict[str, Any]:
        """
        Document payload for insert/update (`id` -> `_id`, None fields dropped).
        """
        data = self.model_dump(mode="python", exclude_none=True)
        if "id" in data:
            data["_id"] = data.pop("id")
        return data

    def to_dict(self) -> Dict[str, Any]:
        """
        JSON-safe dict for HTTP payloads, fan-out events and logging.
        """
        return self.model_dump(mode="json", exclude_none=True)
