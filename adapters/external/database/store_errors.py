from __future__ import annotations

import functools
from typing import Any, Awaitable, Callable, TypeVar

from pymongo.errors import PyMongoError

from core.domain.errors import TransientStoreError

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


def translate_store_errors(fn: F) -> F:
    """
    Re-raise driver failures from a repository coroutine as TransientStoreError.
    """

    @functools.wraps(fn)
    async def wrapper(self, *args, **kwargs):
        try:
            return await fn(self, *args, **kwargs)
        except PyMongoError as exc:
            raise TransientStoreError(f"{self.__class__.__name__}.{fn.__name__} failed: {exc}") from exc

    return wrapper  # type: ignore[return-value]
