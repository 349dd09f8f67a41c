"""
Shared fixtures.

- Every store is the in-memory adapter, so tests need no database.
- Randomness is seeded.
- Async code runs inside a single `asyncio.run(...)` per test.
"""

import logging
import random
from dataclasses import dataclass
from typing import Optional

import pytest

from adapters.external.memory.balance_repository_memory import BalanceRepositoryMemory
from adapters.external.memory.candle_repository_memory import CandleRepositoryMemory
from adapters.external.memory.leader_lease_repository_memory import LeaderLeaseRepositoryMemory
from adapters.external.memory.pair_repository_memory import PairRepositoryMemory
from adapters.external.memory.position_repository_memory import PositionRepositoryMemory
from adapters.external.memory.system_config_repository_memory import SystemConfigRepositoryMemory
from adapters.external.memory.trade_repository_memory import TradeRepositoryMemory
from core.domain.entities.pair_entity import PairEntity
from core.services.chaos_level_service import ChaosLevelService
from core.services.event_bus_service import EventBusService
from core.services.position_math_service import PositionMathService
from core.usecases.aggregate_candles_use_case import AggregateCandlesUseCase
from core.usecases.generate_candles_use_case import GenerateCandlesUseCase
from core.usecases.position_lifecycle_use_case import PositionLifecycleUseCase
from core.usecases.position_trigger_monitor_use_case import PositionTriggerMonitor


@dataclass
class Market:
    candles: CandleRepositoryMemory
    pairs: PairRepositoryMemory
    system: SystemConfigRepositoryMemory
    positions: PositionRepositoryMemory
    balances: BalanceRepositoryMemory
    trades: TradeRepositoryMemory
    leases: LeaderLeaseRepositoryMemory
    bus: EventBusService
    chaos: ChaosLevelService
    aggregator: AggregateCandlesUseCase
    generator: GenerateCandlesUseCase
    lifecycle: PositionLifecycleUseCase
    monitor: PositionTriggerMonitor

    async def add_pair(
        self,
        symbol: str = "SHIT",
        initial_price: float = 1.0,
        chaos_override: Optional[int] = None,
    ) -> PairEntity:
        pair = PairEntity(
            symbol=symbol,
            name=f"{symbol} token",
            initial_price=initial_price,
            chaos_override=chaos_override,
        )
        await self.pairs.upsert(pair)
        return pair


def build_market(
    *,
    seed: int = 1234,
    candles: Optional[CandleRepositoryMemory] = None,
    positions: Optional[PositionRepositoryMemory] = None,
    trades: Optional[TradeRepositoryMemory] = None,
    balances: Optional[BalanceRepositoryMemory] = None,
    pairs: Optional[PairRepositoryMemory] = None,
    per_symbol_timeout_s: float = 0.8,
) -> Market:
    candles = candles or CandleRepositoryMemory()
    positions = positions or PositionRepositoryMemory()
    trades = trades or TradeRepositoryMemory()
    pairs = pairs or PairRepositoryMemory()
    system = SystemConfigRepositoryMemory()
    balances = balances or BalanceRepositoryMemory()
    bus = EventBusService()

    chaos = ChaosLevelService(system_config_repo=system, pair_repo=pairs, event_bus=bus, default_level=50)
    aggregator = AggregateCandlesUseCase(candle_repo=candles, pair_repo=pairs)
    generator = GenerateCandlesUseCase(
        candle_repo=candles,
        pair_repo=pairs,
        chaos_service=chaos,
        aggregator=aggregator,
        event_bus=bus,
        rng=random.Random(seed),
        per_symbol_timeout_s=per_symbol_timeout_s,
        retry_delay_s=0.0,
    )
    lifecycle = PositionLifecycleUseCase(
        position_repo=positions,
        balance_repo=balances,
        pair_repo=pairs,
        trade_repo=trades,
        math_service=PositionMathService(liquidation_buffer=0.02, max_leverage=100),
    )
    monitor = PositionTriggerMonitor(lifecycle=lifecycle, position_repo=positions, event_bus=bus, poll_timeout_s=0.05)

    return Market(
        candles=candles,
        pairs=pairs,
        system=system,
        positions=positions,
        balances=balances,
        trades=trades,
        leases=LeaderLeaseRepositoryMemory(),
        bus=bus,
        chaos=chaos,
        aggregator=aggregator,
        generator=generator,
        lifecycle=lifecycle,
        monitor=monitor,
    )


@pytest.fixture
def market() -> Market:
    return build_market()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture(scope="session", autouse=True)
def quiet_logs():
    logging.getLogger("httpx").setLevel(logging.WARNING)
