from __future__ import annotations

from typing import Optional


class ChaosMarketError(Exception):
    """Base class for domain errors surfaced by the core."""


class ConfigurationError(ChaosMarketError):
    """A required collaborator (store, ledger, ...) is not wired."""


class ValidationError(ChaosMarketError):
    """Malformed input. Nothing was mutated."""


class UnknownSymbolError(ValidationError):
    def __init__(self, symbol: str):
        super().__init__(f"unknown symbol: {symbol}")
        self.symbol = symbol


class InsufficientBalanceError(ChaosMarketError):
    def __init__(self, *, user_id: str, required: float, available: float):
        super().__init__(
            f"insufficient balance: margin {required:.2f} exceeds available {available:.2f}"
        )
        self.user_id = user_id
        self.required = float(required)
        self.available = float(available)


class PositionNotFoundError(ChaosMarketError):
    def __init__(self, position_id: str):
        super().__init__(f"position not found: {position_id}")
        self.position_id = position_id


class PositionAlreadyClosedError(ChaosMarketError):
    def __init__(self, position_id: str, status: Optional[str] = None):
        detail = f" (status={status})" if status else ""
        super().__init__(f"position is already closed: {position_id}{detail}")
        self.position_id = position_id
        self.status = status


class TransientStoreError(ChaosMarketError):
    """Read/write failure against a store. Safe to retry."""


class ConcurrencyConflictError(ChaosMarketError):
    """A compare-and-set on a record lost against a concurrent writer."""


class OutOfOrderCandleError(ChaosMarketError):
    def __init__(self, *, symbol: str, time: int, aggregated_through: int):
        super().__init__(
            f"out-of-order candle for {symbol}: time={time} but aggregated through {aggregated_through}"
        )
        self.symbol = symbol
        self.time = int(time)
        self.aggregated_through = int(aggregated_through)
