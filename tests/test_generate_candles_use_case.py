import asyncio

import pytest

from adapters.external.memory.candle_repository_memory import CandleRepositoryMemory
from adapters.external.memory.pair_repository_memory import PairRepositoryMemory
from core.domain.errors import TransientStoreError, UnknownSymbolError, ValidationError
from core.services.event_bus_service import TOPIC_CANDLES
from core.services.timeframe_service import TimeframeService

from conftest import build_market

NOW = 1_700_000_000


class FlakyCandleRepository(CandleRepositoryMemory):
    """Fails the first `failures` raw writes of the given symbols."""

    def __init__(self, failures, symbols):
        super().__init__()
        self.remaining = {s: failures for s in symbols}
        self.attempts = 0

    async def upsert_raw(self, candle):
        self.attempts += 1
        if self.remaining.get(candle.symbol, 0) > 0:
            self.remaining[candle.symbol] -= 1
            raise TransientStoreError("write timed out")
        await super().upsert_raw(candle)


class LateCandleRepository(CandleRepositoryMemory):
    """The write lands, then the acknowledgement stalls past the deadline."""

    async def upsert_raw(self, candle):
        await super().upsert_raw(candle)
        await asyncio.sleep(5)


class StallingPairRepository(PairRepositoryMemory):
    async def update_current_price(self, symbol, *, price, candle_time):
        await asyncio.sleep(0.2)
        await super().update_current_price(symbol, price=price, candle_time=candle_time)


class BrokenPairRepository(PairRepositoryMemory):
    async def update_current_price(self, symbol, *, price, candle_time):
        raise TransientStoreError("pair update timed out")


class SlowCandleRepository(CandleRepositoryMemory):
    def __init__(self, slow_symbol):
        super().__init__()
        self.slow_symbol = slow_symbol

    async def upsert_raw(self, candle):
        if candle.symbol == self.slow_symbol:
            await asyncio.sleep(5)
        await super().upsert_raw(candle)


def test_tick_generates_one_candle_per_pair(market):
    async def scenario():
        await market.chaos.ensure_runtime()
        await market.add_pair("SHIT", 1.0)
        await market.add_pair("HODL", 420.69)
        sub = market.bus.subscribe(TOPIC_CANDLES)

        generated = await market.generator.execute(NOW)

        assert sorted(g.symbol for g in generated) == ["HODL", "SHIT"]
        for g in generated:
            assert g.candle.time == NOW
            assert g.candle.is_well_formed()
            pair = await market.pairs.get(g.symbol)
            assert pair.current_price == g.candle.close
            assert pair.last_candle_time == NOW
            assert [c.time for c in await market.candles.list_raw(g.symbol)] == [NOW]
            minute = await market.candles.get_aggregated(g.symbol, "1m", TimeframeService.bucket_start(NOW, 60))
            assert minute.close == g.candle.close

        hodl = next(g for g in generated if g.symbol == "HODL")
        assert hodl.candle.open == pytest.approx(420.69)

        events = [sub.get_nowait(), sub.get_nowait()]
        assert sorted(e.symbol for e in events) == ["HODL", "SHIT"]
        assert sub.get_nowait() is None

    asyncio.run(scenario())


def test_consecutive_ticks_chain_closes(market):
    async def scenario():
        await market.add_pair("DEGEN", 1e-7)
        first = (await market.generator.execute(NOW))[0]
        second = (await market.generator.execute(NOW + 1))[0]
        assert second.candle.open == first.candle.close

    asyncio.run(scenario())


def test_replayed_second_is_skipped(market):
    async def scenario():
        await market.add_pair("SHIT")
        assert len(await market.generator.execute(NOW)) == 1
        price = (await market.pairs.get("SHIT")).current_price

        assert await market.generator.execute(NOW) == []
        assert await market.generator.execute(NOW - 5) == []

        assert len(await market.candles.list_raw("SHIT")) == 1
        assert (await market.pairs.get("SHIT")).current_price == price

    asyncio.run(scenario())


def test_effective_chaos_level_is_used(market):
    async def scenario():
        await market.chaos.ensure_runtime()
        await market.chaos.set_global_level(10)
        await market.add_pair("SHIT")
        await market.add_pair("RUG", 100.0, chaos_override=95)

        generated = {g.symbol: g for g in await market.generator.execute(NOW)}

        assert generated["SHIT"].chaos_level == 10
        assert generated["RUG"].chaos_level == 95

    asyncio.run(scenario())


def test_single_write_failure_is_retried():
    candles = FlakyCandleRepository(failures=1, symbols=["SHIT"])
    market = build_market(candles=candles)

    async def scenario():
        await market.add_pair("SHIT")
        generated = await market.generator.execute(NOW)
        assert len(generated) == 1
        assert candles.attempts == 2
        assert len(await candles.list_raw("SHIT")) == 1

    asyncio.run(scenario())


def test_repeated_write_failure_drops_only_that_symbol():
    candles = FlakyCandleRepository(failures=2, symbols=["RUG"])
    market = build_market(candles=candles)

    async def scenario():
        await market.add_pair("SHIT")
        await market.add_pair("RUG", 100.0)

        generated = await market.generator.execute(NOW)

        assert [g.symbol for g in generated] == ["SHIT"]
        rug = await market.pairs.get("RUG")
        assert rug.current_price is None
        assert rug.last_candle_time is None
        assert await candles.list_raw("RUG") == []

        # The next tick goes through again.
        assert sorted(g.symbol for g in await market.generator.execute(NOW + 1)) == ["RUG", "SHIT"]

    asyncio.run(scenario())


def test_slow_symbol_does_not_hold_up_others():
    market = build_market(candles=SlowCandleRepository("COPE"), per_symbol_timeout_s=0.05)

    async def scenario():
        await market.add_pair("SHIT")
        await market.add_pair("COPE", 13.37)

        generated = await market.generator.execute(NOW)

        assert [g.symbol for g in generated] == ["SHIT"]
        assert (await market.pairs.get("COPE")).current_price is None
        assert await market.candles.list_raw("COPE") == []

    asyncio.run(scenario())


def test_write_landing_after_deadline_is_discarded():
    candles = LateCandleRepository()
    market = build_market(candles=candles, per_symbol_timeout_s=0.05)

    async def scenario():
        await market.add_pair("COPE", 13.37)

        assert await market.generator.execute(NOW) == []

        assert await candles.list_raw("COPE") == []
        pair = await market.pairs.get("COPE")
        assert pair.current_price is None
        assert pair.last_candle_time is None
        assert await candles.get_latest_aggregated("COPE", "1m") is None

    asyncio.run(scenario())


def test_slow_price_update_still_completes_the_tick():
    market = build_market(pairs=StallingPairRepository(), per_symbol_timeout_s=0.05)

    async def scenario():
        await market.add_pair("SHIT")

        first = await market.generator.execute(NOW)
        assert len(first) == 1
        second = await market.generator.execute(NOW + 1)
        assert len(second) == 1

        raw = await market.candles.list_raw("SHIT")
        assert [c.time for c in raw] == [NOW, NOW + 1]
        assert raw[1].open == raw[0].close
        assert (await market.pairs.get("SHIT")).current_price == raw[1].close

        minute = await market.candles.get_aggregated("SHIT", "1m", TimeframeService.bucket_start(NOW, 60))
        assert minute.volume == pytest.approx(sum(c.volume for c in raw))
        assert minute.close == raw[1].close

    asyncio.run(scenario())


def test_failed_price_update_discards_the_raw_candle():
    market = build_market(pairs=BrokenPairRepository())

    async def scenario():
        await market.add_pair("SHIT")

        assert await market.generator.execute(NOW) == []
        assert await market.candles.list_raw("SHIT") == []
        assert await market.candles.get_latest_aggregated("SHIT", "1m") is None

    asyncio.run(scenario())


def test_reset_history_regenerates_and_purges(market):
    async def scenario():
        await market.add_pair("SHIT")
        for t in range(NOW, NOW + 120):
            await market.generator.execute(t)

        written = await market.generator.reset_history("SHIT", now=NOW + 1000, seconds=120)

        assert written == 120
        raw = await market.candles.list_raw("SHIT")
        assert [c.time for c in raw] == list(range(NOW + 881, NOW + 1001))
        assert raw[0].open == pytest.approx(1.0)

        pair = await market.pairs.get("SHIT")
        assert pair.current_price == raw[-1].close
        assert pair.last_candle_time == NOW + 1000

        for tf in TimeframeService.TIMEFRAMES:
            series = await market.candles.list_aggregated("SHIT", tf.name)
            assert series
            assert series[0].time >= TimeframeService.bucket_start(NOW + 881, tf.seconds)

        # Live generation continues from the regenerated history.
        nxt = (await market.generator.execute(NOW + 1001))[0]
        assert nxt.candle.open == raw[-1].close

    asyncio.run(scenario())


def test_reset_history_rejects_bad_input(market):
    async def scenario():
        await market.add_pair("SHIT")
        with pytest.raises(UnknownSymbolError):
            await market.generator.reset_history("NOPE", now=NOW)
        with pytest.raises(ValidationError):
            await market.generator.reset_history("SHIT", now=NOW, seconds=0)

    asyncio.run(scenario())
