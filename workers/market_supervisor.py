from __future__ import annotations

import contextlib
import logging
import random
import time
from dataclasses import dataclass
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from adapters.external.database.balance_repository_mongodb import BalanceRepositoryMongoDB
from adapters.external.database.candle_repository_mongodb import CandleRepositoryMongoDB
from adapters.external.database.leader_lease_repository_mongodb import LeaderLeaseRepositoryMongoDB
from adapters.external.database.mongodb_client import get_mongo_client
from adapters.external.database.pair_repository_mongodb import PairRepositoryMongoDB
from adapters.external.database.position_repository_mongodb import PositionRepositoryMongoDB
from adapters.external.database.system_config_repository_mongodb import SystemConfigRepositoryMongoDB
from adapters.external.database.trade_repository_mongodb import TradeRepositoryMongoDB
from adapters.external.fanout.webhook_fanout_publisher import WebhookFanoutPublisher
from adapters.external.memory.balance_repository_memory import BalanceRepositoryMemory
from adapters.external.memory.candle_repository_memory import CandleRepositoryMemory
from adapters.external.memory.leader_lease_repository_memory import LeaderLeaseRepositoryMemory
from adapters.external.memory.pair_repository_memory import PairRepositoryMemory
from adapters.external.memory.position_repository_memory import PositionRepositoryMemory
from adapters.external.memory.system_config_repository_memory import SystemConfigRepositoryMemory
from adapters.external.memory.trade_repository_memory import TradeRepositoryMemory
from config.settings import settings
from core.domain.entities.pair_entity import PairEntity
from core.domain.errors import ConfigurationError
from core.repositories.balance_repository import BalanceRepository
from core.repositories.candle_repository import CandleRepository
from core.repositories.leader_lease_repository import LeaderLeaseRepository
from core.repositories.pair_repository import PairRepository
from core.repositories.position_repository import PositionRepository
from core.repositories.system_config_repository import SystemConfigRepository
from core.repositories.trade_repository import TradeRepository
from core.services.chaos_level_service import ChaosLevelService
from core.services.event_bus_service import TOPIC_CANDLES, TOPIC_CHAOS, EventBusService
from core.services.leader_election_service import LeaderElectionService
from core.services.position_math_service import PositionMathService
from core.usecases.admin_config_use_case import AdminConfigUseCase
from core.usecases.aggregate_candles_use_case import AggregateCandlesUseCase
from core.usecases.generate_candles_use_case import GenerateCandlesUseCase
from core.usecases.market_query_use_case import MarketQueryUseCase
from core.usecases.position_lifecycle_use_case import PositionLifecycleUseCase
from core.usecases.position_trigger_monitor_use_case import PositionTriggerMonitor
from workers.fanout_relay_worker import FanoutRelayWorker
from workers.periodic_worker import PeriodicWorker

# Seeded on first start when the pairs collection is empty.
DEFAULT_PAIRS: List[PairEntity] = [
    PairEntity(
        symbol="SHIT",
        name="Sovereign Hedge Inflation Token",
        description="The gold standard of nothing.",
        initial_price=1.0,
        chaos_override=65,
    ),
    PairEntity(
        symbol="HODL",
        name="Hold On for Dear Life",
        description="Only goes up if you look away.",
        initial_price=420.69,
        chaos_override=40,
    ),
    PairEntity(
        symbol="DEGEN",
        name="Degen Coin",
        description="High volatility, high stress.",
        initial_price=0.0000001,
        chaos_override=85,
    ),
    PairEntity(
        symbol="RUG",
        name="Rug Pull Protocol",
        description="It works until it doesn't.",
        initial_price=100.0,
        chaos_override=95,
    ),
    PairEntity(
        symbol="COPE",
        name="Cope Inu",
        description="For when you missed the pump.",
        initial_price=13.37,
        chaos_override=30,
    ),
    PairEntity(
        symbol="WAGMI",
        name="We Are All Gonna Make It",
        description="Optimism in token form.",
        initial_price=777.0,
        chaos_override=55,
    ),
]


@dataclass
class MarketContainer:
    """
    Everything the HTTP layer needs, wired for one backend.
    """

    candle_repo: CandleRepository
    pair_repo: PairRepository
    system_config_repo: SystemConfigRepository
    position_repo: PositionRepository
    balance_repo: BalanceRepository
    trade_repo: TradeRepository
    lease_repo: LeaderLeaseRepository

    event_bus: EventBusService
    chaos: ChaosLevelService
    leader: LeaderElectionService

    aggregator: AggregateCandlesUseCase
    generator: GenerateCandlesUseCase
    lifecycle: PositionLifecycleUseCase
    trigger_monitor: PositionTriggerMonitor
    admin_config: AdminConfigUseCase
    market_query: MarketQueryUseCase


class MarketSupervisor:
    """
    High-level supervisor for api-chaos-market.

    Responsibilities:
    - Pick the store backend (MongoDB or in-memory) and ensure indexes.
    - Ensure the runtime config exists and seed the default pairs if none exist.
    - Start the background workers:
        * candle generation (only with GENERATOR_ENABLED, and only while holding the leader lease)
        * aggregation + retention
        * position trigger monitor
        * webhook fan-out (when FANOUT_WEBHOOK_URL is set)

    Constructor arguments override the matching settings (used by tests).
    """

    def __init__(
        self,
        *,
        backend: Optional[str] = None,
        generator_enabled: Optional[bool] = None,
        trigger_monitor_enabled: Optional[bool] = None,
        seed_pairs: Optional[bool] = None,
        start_workers: bool = True,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._logger = logging.getLogger(self.__class__.__name__)
        self._backend = (backend or settings.STORE_BACKEND).lower().strip()
        self._generator_enabled = settings.GENERATOR_ENABLED if generator_enabled is None else generator_enabled
        self._trigger_monitor_enabled = (
            settings.TRIGGER_MONITOR_ENABLED if trigger_monitor_enabled is None else trigger_monitor_enabled
        )
        self._seed_pairs = settings.BOOTSTRAP_SEED_PAIRS if seed_pairs is None else seed_pairs
        self._start_workers = start_workers
        self._rng = rng

        self._mongo_client: AsyncIOMotorClient | None = None
        self._db: AsyncIOMotorDatabase | None = None
        self._container: MarketContainer | None = None

        self._workers: List[PeriodicWorker] = []
        self._relay: FanoutRelayWorker | None = None
        self._monitor_started = False

    @property
    def db(self) -> AsyncIOMotorDatabase | None:
        """
        Expose the database handle after start() (None for the memory backend).
        """
        return self._db

    @property
    def container(self) -> MarketContainer:
        if self._container is None:
            raise ConfigurationError("market supervisor is not started")
        return self._container

    async def start(self) -> None:
        """
        Initialize stores, ensure indexes, bootstrap data, and start workers.
        """
        container = self._build()
        self._container = container

        for repo in (
            container.candle_repo,
            container.pair_repo,
            container.system_config_repo,
            container.position_repo,
            container.balance_repo,
            container.trade_repo,
            container.lease_repo,
        ):
            await repo.ensure_indexes()

        runtime_cfg = await container.chaos.ensure_runtime()
        self._logger.info("Runtime config loaded. global_chaos_level=%s", runtime_cfg.global_chaos_level)

        if self._seed_pairs and await container.pair_repo.count_all() == 0:
            await self._bootstrap_pairs(container)

        if self._start_workers:
            self._start_background(container)

        self._logger.info(
            "Market started. backend=%s generator=%s trigger_monitor=%s",
            self._backend,
            self._generator_enabled,
            self._trigger_monitor_enabled,
        )

    async def stop(self) -> None:
        """
        Stop workers, release leadership and close external clients.
        """
        for w in self._workers:
            with contextlib.suppress(Exception):
                await w.stop()
        self._workers.clear()

        if self._container is not None:
            if self._monitor_started:
                with contextlib.suppress(Exception):
                    await self._container.trigger_monitor.stop()
                self._monitor_started = False
            with contextlib.suppress(Exception):
                await self._container.leader.release()

        if self._relay is not None:
            with contextlib.suppress(Exception):
                await self._relay.stop()
            self._relay = None

        if self._mongo_client:
            self._mongo_client.close()
            self._mongo_client = None

    # ---- wiring ----

    def _build(self) -> MarketContainer:
        if self._backend == "mongo":
            self._mongo_client = get_mongo_client()
            self._db = self._mongo_client[settings.MONGODB_DB_NAME]
            candle_repo = CandleRepositoryMongoDB(self._db)
            pair_repo = PairRepositoryMongoDB(self._db)
            system_repo = SystemConfigRepositoryMongoDB(self._db)
            position_repo = PositionRepositoryMongoDB(self._db)
            balance_repo = BalanceRepositoryMongoDB(self._db)
            trade_repo = TradeRepositoryMongoDB(self._db)
            lease_repo = LeaderLeaseRepositoryMongoDB(self._db)
        elif self._backend == "memory":
            candle_repo = CandleRepositoryMemory()
            pair_repo = PairRepositoryMemory()
            system_repo = SystemConfigRepositoryMemory()
            position_repo = PositionRepositoryMemory()
            balance_repo = BalanceRepositoryMemory()
            trade_repo = TradeRepositoryMemory()
            lease_repo = LeaderLeaseRepositoryMemory()
        else:
            raise ConfigurationError(f"unknown STORE_BACKEND: {self._backend!r} (expected 'mongo' or 'memory')")

        bus = EventBusService()
        chaos = ChaosLevelService(
            system_config_repo=system_repo,
            pair_repo=pair_repo,
            event_bus=bus,
            default_level=settings.DEFAULT_GLOBAL_CHAOS_LEVEL,
        )
        leader = LeaderElectionService(
            lease_repo=lease_repo,
            holder_id=settings.GENERATOR_INSTANCE_ID,
            ttl_s=settings.LEADER_LEASE_TTL_S,
        )
        aggregator = AggregateCandlesUseCase(
            candle_repo=candle_repo,
            pair_repo=pair_repo,
            backfill_max_buckets=settings.BACKFILL_MAX_BUCKETS,
        )
        generator = GenerateCandlesUseCase(
            candle_repo=candle_repo,
            pair_repo=pair_repo,
            chaos_service=chaos,
            aggregator=aggregator,
            event_bus=bus,
            rng=self._rng,
            per_symbol_timeout_s=settings.STORE_TIMEOUT_S,
        )
        lifecycle = PositionLifecycleUseCase(
            position_repo=position_repo,
            balance_repo=balance_repo,
            pair_repo=pair_repo,
            trade_repo=trade_repo,
            math_service=PositionMathService(
                liquidation_buffer=settings.LIQUIDATION_BUFFER,
                max_leverage=settings.MAX_LEVERAGE,
            ),
        )
        monitor = PositionTriggerMonitor(lifecycle=lifecycle, position_repo=position_repo, event_bus=bus)

        return MarketContainer(
            candle_repo=candle_repo,
            pair_repo=pair_repo,
            system_config_repo=system_repo,
            position_repo=position_repo,
            balance_repo=balance_repo,
            trade_repo=trade_repo,
            lease_repo=lease_repo,
            event_bus=bus,
            chaos=chaos,
            leader=leader,
            aggregator=aggregator,
            generator=generator,
            lifecycle=lifecycle,
            trigger_monitor=monitor,
            admin_config=AdminConfigUseCase(system_config_repo=system_repo, pair_repo=pair_repo, chaos_service=chaos),
            market_query=MarketQueryUseCase(candle_repo=candle_repo, pair_repo=pair_repo, trade_repo=trade_repo),
        )

    async def _bootstrap_pairs(self, container: MarketContainer) -> None:
        """
        Create the default pairs and give each a short 1-second history so
        charts are not empty on first start.
        """
        now = int(time.time())
        for pair in DEFAULT_PAIRS:
            await container.pair_repo.upsert(pair.model_copy())
            if settings.BOOTSTRAP_HISTORY_SECONDS > 0:
                await container.generator.reset_history(pair.symbol, now, settings.BOOTSTRAP_HISTORY_SECONDS)
        self._logger.info("Bootstrapped %s default pairs", len(DEFAULT_PAIRS))

    def _start_background(self, container: MarketContainer) -> None:
        if self._generator_enabled:

            async def generation_tick() -> None:
                now = int(time.time())
                if await container.leader.ensure(now):
                    await container.generator.execute(now)

            self._workers.append(
                PeriodicWorker(name="candle-generation", interval_s=settings.GENERATION_INTERVAL_S, job=generation_tick)
            )

        self._workers.append(
            PeriodicWorker(
                name="candle-aggregation",
                interval_s=settings.AGGREGATION_INTERVAL_S,
                job=container.aggregator.run,
            )
        )
        for w in self._workers:
            w.start()

        if self._trigger_monitor_enabled:
            container.trigger_monitor.start()
            self._monitor_started = True

        if settings.FANOUT_WEBHOOK_URL:
            self._relay = FanoutRelayWorker(
                event_bus=container.event_bus,
                publisher=WebhookFanoutPublisher(base_url=settings.FANOUT_WEBHOOK_URL),
                topics=[TOPIC_CANDLES, TOPIC_CHAOS],
            )
            self._relay.start()
