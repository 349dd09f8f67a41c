import asyncio

from core.services.event_bus_service import TOPIC_CANDLES
from core.services.position_math_service import TriggerKind


async def _setup(market):
    await market.add_pair("SHIT", 1.0)
    await market.lifecycle.deposit("alice", 1000.0)
    open_ = market.lifecycle.open_position
    liq = await open_(user_id="alice", symbol="SHIT", side="long", size=100.0, leverage=10, entry_price=1.0)
    sl = await open_(
        user_id="alice", symbol="SHIT", side="long", size=100.0, leverage=2, entry_price=1.0, stop_loss=0.9
    )
    tp = await open_(
        user_id="alice", symbol="SHIT", side="long", size=100.0, leverage=2, entry_price=1.0, take_profit=1.2
    )
    return liq, sl, tp


def test_sweep_applies_highest_priority_trigger(market):
    async def scenario():
        liq, sl, tp = await _setup(market)

        results = await market.monitor.sweep("SHIT", 0.85, now=500)

        kinds = {r.position_id: r.kind for r in results}
        assert kinds == {liq.id: TriggerKind.LIQUIDATION, sl.id: TriggerKind.STOP_LOSS}
        assert (await market.positions.get(liq.id)).status == "liquidated"
        closed = await market.positions.get(sl.id)
        assert closed.status == "closed"
        assert closed.exit_price == 0.85
        assert (await market.positions.get(tp.id)).status == "open"

        # Same price again: nothing left to do.
        assert await market.monitor.sweep("SHIT", 0.85, now=501) == []

        # Balance: 700 left after three opens, +70 back from the stop-loss, liquidation pays nothing.
        assert abs(await market.lifecycle.get_balance("alice") - 770.0) < 1e-9

    asyncio.run(scenario())


def test_take_profit_sweep(market):
    async def scenario():
        _, _, tp = await _setup(market)
        results = await market.monitor.sweep("SHIT", 1.25)
        assert [(r.position_id, r.kind) for r in results] == [(tp.id, TriggerKind.TAKE_PROFIT)]

    asyncio.run(scenario())


def test_monitor_reacts_to_candle_events(market):
    async def scenario():
        liq, _, _ = await _setup(market)
        market.monitor.start()
        try:
            market.bus.publish(
                TOPIC_CANDLES,
                {"symbol": "SHIT", "candle": {"time": 900, "close": 0.8}},
                symbol="SHIT",
            )
            for _ in range(100):
                if (await market.positions.get(liq.id)).status != "open":
                    break
                await asyncio.sleep(0.01)
        finally:
            await market.monitor.stop()

        assert (await market.positions.get(liq.id)).status == "liquidated"
        assert market.bus.subscriber_count(TOPIC_CANDLES) == 0

    asyncio.run(scenario())


def test_monitor_sweeps_the_symbol_as_stored(market):
    async def scenario():
        await market.add_pair("moon", 1.0)
        await market.lifecycle.deposit("bob", 500.0)
        pos = await market.lifecycle.open_position(
            user_id="bob", symbol="moon", side="long", size=100.0, leverage=10, entry_price=1.0
        )
        market.monitor.start()
        try:
            market.bus.publish(
                TOPIC_CANDLES,
                {"symbol": "moon", "candle": {"time": 900, "close": 0.8}},
                symbol="moon",
            )
            for _ in range(100):
                if (await market.positions.get(pos.id)).status != "open":
                    break
                await asyncio.sleep(0.01)
        finally:
            await market.monitor.stop()

        assert (await market.positions.get(pos.id)).status == "liquidated"

    asyncio.run(scenario())
