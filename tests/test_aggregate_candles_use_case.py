import asyncio
import random

import pytest

from core.domain.errors import OutOfOrderCandleError, ValidationError
from core.services.price_process_service import PriceProcessService
from core.services.timeframe_service import TimeframeService

from conftest import build_market

# A UTC day boundary, so every timeframe's buckets line up with it.
T0 = 1_699_920_000


def _raw(start, count, seed=21, symbol="SHIT"):
    return PriceProcessService.initial_history(
        1.0, 60, count=count, interval_seconds=1, end_time=start + count, symbol=symbol, rng=random.Random(seed)
    )


def test_contribute_folds_into_every_timeframe(market):
    async def scenario():
        candles = _raw(T0 + 125, 3)
        for c in candles:
            await market.aggregator.contribute("SHIT", c)

        for tf in TimeframeService.TIMEFRAMES:
            bucket = TimeframeService.bucket_start(T0 + 125, tf.seconds)
            agg = await market.candles.get_aggregated("SHIT", tf.name, bucket)
            assert agg is not None
            assert agg.time % tf.seconds == 0
            assert agg.open == candles[0].open
            assert agg.close == candles[-1].close
            assert agg.high == max(c.high for c in candles)
            assert agg.last_time == T0 + 127

    asyncio.run(scenario())


def test_buckets_are_aligned_and_strictly_increasing(market):
    async def scenario():
        for c in _raw(T0, 900):
            await market.aggregator.contribute("SHIT", c)

        for tf in TimeframeService.TIMEFRAMES:
            series = await market.candles.list_aggregated("SHIT", tf.name)
            times = [b.time for b in series]
            assert times == sorted(set(times))
            assert all(t % tf.seconds == 0 for t in times)

        minutes = await market.candles.list_aggregated("SHIT", "1m")
        assert len(minutes) == 15
        assert all(b.is_well_formed() for b in minutes)

    asyncio.run(scenario())


def test_out_of_order_candle_is_rejected_without_mutation(market):
    async def scenario():
        candles = _raw(T0, 10)
        for c in candles:
            await market.aggregator.contribute("SHIT", c)
        before = await market.candles.get_aggregated("SHIT", "1m", T0)

        with pytest.raises(OutOfOrderCandleError):
            await market.aggregator.contribute("SHIT", candles[3])
        with pytest.raises(OutOfOrderCandleError):
            await market.aggregator.contribute("SHIT", candles[-1])

        after = await market.candles.get_aggregated("SHIT", "1m", T0)
        assert after.model_dump() == before.model_dump()

    asyncio.run(scenario())


def test_batch_contribution_matches_one_by_one():
    one_by_one = build_market()
    batched = build_market()
    candles = _raw(T0 + 30, 400)

    async def scenario():
        for c in candles:
            await one_by_one.aggregator.contribute("SHIT", c)
        written = await batched.aggregator.contribute_batch("SHIT", list(reversed(candles)))
        assert written > 0

        for tf in TimeframeService.TIMEFRAMES:
            a = await one_by_one.candles.list_aggregated("SHIT", tf.name)
            b = await batched.candles.list_aggregated("SHIT", tf.name)
            assert [x.time for x in a] == [x.time for x in b]
            for x, y in zip(a, b):
                assert (x.open, x.high, x.low, x.close, x.last_time) == (y.open, y.high, y.low, y.close, y.last_time)
                assert x.volume == pytest.approx(y.volume)

    asyncio.run(scenario())


def test_batch_with_duplicate_times_rejected(market):
    candles = _raw(T0, 5)

    async def scenario():
        with pytest.raises(OutOfOrderCandleError):
            await market.aggregator.contribute_batch("SHIT", candles + [candles[2]])
        assert await market.candles.list_aggregated("SHIT", "1m") == []

    asyncio.run(scenario())


def test_backfill_builds_closed_buckets_from_finer_source(market):
    raw = _raw(1000, 300)

    async def scenario():
        await market.candles.upsert_raw_many(raw)

        assert await market.aggregator.backfill("SHIT", "1m", now=1500) == 6
        assert await market.aggregator.backfill("SHIT", "5m", now=1500) == 2

        minutes = await market.candles.list_aggregated("SHIT", "1m")
        assert [m.time for m in minutes] == [960, 1020, 1080, 1140, 1200, 1260]

        five = await market.candles.get_aggregated("SHIT", "5m", 900)
        window = [c for c in raw if 900 <= c.time < 1200]
        assert five.open == window[0].open
        assert five.close == window[-1].close
        assert five.high == max(c.high for c in window)
        assert five.low == min(c.low for c in window)
        assert five.volume == pytest.approx(sum(c.volume for c in window))

        # Nothing is missing any more.
        assert await market.aggregator.backfill("SHIT", "1m", now=1500) == 0
        assert await market.aggregator.backfill("SHIT", "5m", now=1500) == 0
        again = await market.candles.list_aggregated("SHIT", "1m")
        assert [m.model_dump() for m in again] == [m.model_dump() for m in minutes]

    asyncio.run(scenario())


def test_backfill_leaves_the_open_bucket_alone(market):
    async def scenario():
        await market.candles.upsert_raw_many(_raw(1000, 300))
        assert await market.aggregator.backfill("SHIT", "1m", now=1290) == 5
        assert await market.candles.get_aggregated("SHIT", "1m", 1260) is None

    asyncio.run(scenario())


def test_backfill_respects_bucket_limit(market):
    async def scenario():
        await market.candles.upsert_raw_many(_raw(1000, 300))
        assert await market.aggregator.backfill("SHIT", "1m", now=1500, max_buckets=2) == 2
        assert await market.aggregator.backfill("SHIT", "1m", now=1500, max_buckets=2) == 2
        assert await market.aggregator.backfill("SHIT", "1m", now=1500, max_buckets=2) == 2
        assert await market.aggregator.backfill("SHIT", "1m", now=1500, max_buckets=2) == 0

    asyncio.run(scenario())


def test_backfill_unknown_timeframe(market):
    async def scenario():
        with pytest.raises(ValidationError):
            await market.aggregator.backfill("SHIT", "3m", now=1500)

    asyncio.run(scenario())


def test_prune_applies_retention(market):
    now = 10_000_000

    async def scenario():
        await market.candles.upsert_raw_many(_raw(now - 4000, 1) + _raw(now - 100, 1))
        old_minute = _raw(now - 8 * 86_400, 1)[0]
        await market.aggregator.contribute("SHIT", old_minute)

        cleaned = await market.aggregator.prune(now)

        assert cleaned >= 2
        assert [c.time for c in await market.candles.list_raw("SHIT")] == [now - 100]
        assert await market.candles.list_aggregated("SHIT", "1m") == []
        # Coarser series keep the same bucket for much longer.
        assert len(await market.candles.list_aggregated("SHIT", "1d")) == 1

    asyncio.run(scenario())


def test_purge_keeps_aggregates_within_raw_history(market):
    async def scenario():
        for c in _raw(T0, 600):
            await market.aggregator.contribute("SHIT", c)
        await market.candles.delete_raw_before(T0 + 300, symbol="SHIT")

        purged = await market.aggregator.purge_before_raw("SHIT")
        assert purged > 0

        earliest = await market.candles.get_earliest_raw_time("SHIT")
        for tf in TimeframeService.TIMEFRAMES:
            for bucket in await market.candles.list_aggregated("SHIT", tf.name):
                assert bucket.time > TimeframeService.bucket_start(earliest, tf.seconds)

        minutes = await market.candles.list_aggregated("SHIT", "1m")
        assert [m.time for m in minutes] == [T0 + 360, T0 + 420, T0 + 480, T0 + 540]

    asyncio.run(scenario())


def test_purge_from_drops_overlapping_buckets(market):
    async def scenario():
        for c in _raw(T0, 180):
            await market.aggregator.contribute("SHIT", c)
        await market.aggregator.purge_from("SHIT", T0 + 90)

        assert [m.time for m in await market.candles.list_aggregated("SHIT", "1m")] == [T0]
        assert await market.candles.list_aggregated("SHIT", "1d") == []

    asyncio.run(scenario())


def test_run_backfills_every_pair(market):
    async def scenario():
        await market.add_pair("SHIT")
        await market.add_pair("HODL", initial_price=420.69)
        await market.candles.upsert_raw_many(_raw(1000, 120, symbol="SHIT") + _raw(1000, 120, symbol="HODL"))

        result = await market.aggregator.run(now=1200)

        assert set(result) == {"aggregated", "cleaned"}
        assert result["aggregated"] > 0
        assert await market.candles.get_aggregated("HODL", "1m", 1020) is not None

    asyncio.run(scenario())
