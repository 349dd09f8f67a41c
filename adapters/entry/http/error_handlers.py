from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from core.domain.errors import (
    ChaosMarketError,
    ConcurrencyConflictError,
    ConfigurationError,
    InsufficientBalanceError,
    OutOfOrderCandleError,
    PositionAlreadyClosedError,
    PositionNotFoundError,
    TransientStoreError,
    UnknownSymbolError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first: lookup walks this list in order.
_STATUS_BY_ERROR = [
    (UnknownSymbolError, 404),
    (PositionNotFoundError, 404),
    (ValidationError, 400),
    (InsufficientBalanceError, 400),
    (PositionAlreadyClosedError, 409),
    (ConcurrencyConflictError, 409),
    (OutOfOrderCandleError, 409),
    (TransientStoreError, 503),
    (ConfigurationError, 503),
]


def status_for(exc: ChaosMarketError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


async def _handle_domain_error(request: Request, exc: ChaosMarketError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)

    body = {"detail": str(exc), "error": exc.__class__.__name__}
    if isinstance(exc, InsufficientBalanceError):
        body["required"] = exc.required
        body["available"] = exc.available
    return JSONResponse(status_code=status, content=body)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ChaosMarketError, _handle_domain_error)
