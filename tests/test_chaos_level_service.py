import asyncio

import pytest

from core.domain.errors import ConfigurationError, UnknownSymbolError, ValidationError
from core.services.chaos_level_service import ChaosLevelService


def test_runtime_config_created_with_default(market):
    async def scenario():
        cfg = await market.chaos.ensure_runtime()
        assert cfg.global_chaos_level == 50
        assert (await market.system.get_runtime()).global_chaos_level == 50

        await market.chaos.set_global_level(70)
        again = await market.chaos.ensure_runtime()
        assert again.global_chaos_level == 70

    asyncio.run(scenario())


def test_override_takes_precedence_over_global(market):
    async def scenario():
        await market.chaos.ensure_runtime()
        await market.add_pair("SHIT")
        await market.add_pair("RUG", 100.0)

        await market.chaos.set_global_level(20)
        await market.chaos.set_override("RUG", 95)

        assert await market.chaos.effective_level("SHIT") == 20
        assert await market.chaos.effective_level("RUG") == 95

        await market.chaos.set_override("RUG", None)
        assert await market.chaos.effective_level("RUG") == 20

    asyncio.run(scenario())


def test_refresh_picks_up_external_changes(market):
    async def scenario():
        await market.chaos.ensure_runtime()
        await market.system.set_global_chaos_level(33)
        assert await market.chaos.refresh() == 33
        assert await market.chaos.global_level() == 33

    asyncio.run(scenario())


@pytest.mark.parametrize("bad", [-1, 101, 50.5, True, "50", None])
def test_invalid_levels_rejected(market, bad):
    async def scenario():
        await market.chaos.ensure_runtime()
        with pytest.raises(ValidationError):
            await market.chaos.set_global_level(bad)
        assert await market.chaos.global_level() == 50

    asyncio.run(scenario())


def test_override_for_unknown_symbol(market):
    async def scenario():
        with pytest.raises(UnknownSymbolError):
            await market.chaos.set_override("NOPE", 10)
        with pytest.raises(UnknownSymbolError):
            await market.chaos.effective_level("NOPE")

    asyncio.run(scenario())


def test_change_notifications(market):
    async def scenario():
        await market.chaos.ensure_runtime()
        await market.add_pair("SHIT")
        await market.add_pair("RUG", 100.0)

        everything = market.chaos.subscribe()
        shit_only = market.chaos.subscribe(symbol="SHIT")

        await market.chaos.set_global_level(80)
        await market.chaos.set_override("RUG", 99)
        await market.chaos.set_override("SHIT", 5)

        kinds = []
        while (event := everything.get_nowait()) is not None:
            kinds.append((event.payload["kind"], event.payload.get("symbol"), event.payload["level"]))
        assert kinds == [("global", None, 80), ("override", "RUG", 99), ("override", "SHIT", 5)]

        scoped = []
        while (event := shit_only.get_nowait()) is not None:
            scoped.append(event.payload["kind"])
        assert scoped == ["global", "override"]

    asyncio.run(scenario())


def test_subscribing_without_a_bus_is_a_wiring_error(market):
    chaos = ChaosLevelService(system_config_repo=market.system, pair_repo=market.pairs)
    with pytest.raises(ConfigurationError):
        chaos.subscribe()
