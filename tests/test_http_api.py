import random
import time

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from main import create_app
from workers.market_supervisor import DEFAULT_PAIRS, MarketSupervisor


@pytest.fixture
def client():
    supervisor = MarketSupervisor(backend="memory", start_workers=False, seed_pairs=True, rng=random.Random(7))
    with TestClient(create_app(supervisor)) as c:
        yield c


def _open(client, **overrides):
    body = {"user_id": "alice", "symbol": "SHIT", "side": "long", "size": 100, "leverage": 10}
    body.update(overrides)
    return client.post("/positions", json=body)


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_pairs_are_seeded_with_history(client):
    pairs = client.get("/pairs").json()
    assert {p["symbol"] for p in pairs} == {p.symbol for p in DEFAULT_PAIRS}
    for p in pairs:
        assert p["current_price"] > 0
        assert p["effective_chaos_level"] == p["chaos_override"]

    rug = client.get("/pairs/rug").json()
    assert rug["effective_chaos_level"] == 95

    resp = client.get("/pairs/NOPE")
    assert resp.status_code == 404
    assert resp.json()["error"] == "UnknownSymbolError"


def test_candles(client):
    raw = client.get("/candles", params={"symbol": "SHIT", "timeframe": "1s", "limit": 50}).json()
    assert 0 < len(raw) <= 50
    times = [c["time"] for c in raw]
    assert times == sorted(times)

    minutes = client.get("/candles", params={"symbol": "shit", "timeframe": "1m", "limit": 10}).json()
    assert minutes
    assert all(c["time"] % 60 == 0 and c["timeframe"] == "1m" for c in minutes)

    assert client.get("/candles", params={"symbol": "SHIT", "timeframe": "2m"}).status_code == 400
    assert client.get("/candles", params={"symbol": "NOPE", "timeframe": "1m"}).status_code == 404
    assert client.get("/candles", params={"symbol": "SHIT", "limit": 0}).status_code == 422


def test_position_round_trip(client):
    assert client.post("/admin/balances/alice/credit", json={"amount": 1000}).json()["amount"] == 1000

    resp = _open(client)
    assert resp.status_code == 200
    position = resp.json()
    assert position["status"] == "open"
    assert position["unrealized_pnl"] is not None
    assert client.get("/balances/alice").json()["amount"] == pytest.approx(900)

    closed = client.post(f"/positions/{position['id']}/close", json={"exit_price": position["entry_price"]})
    assert closed.status_code == 200
    assert closed.json()["realized_pnl"] == 0
    assert client.get("/balances/alice").json()["amount"] == pytest.approx(1000)

    again = client.post(f"/positions/{position['id']}/close", json={"exit_price": 1.0})
    assert again.status_code == 409

    listed = client.get("/positions", params={"user_id": "alice", "status": "closed"}).json()
    assert [p["id"] for p in listed] == [position["id"]]
    assert client.get(f"/positions/{position['id']}").json()["status"] == "closed"
    assert client.get("/positions/missing").status_code == 404

    trades = client.get("/trades", params={"symbol": "SHIT"}).json()
    assert [t["action"] for t in trades] == ["close", "open"]


def test_open_position_errors(client):
    client.post("/admin/balances/bob/credit", json={"amount": 10})

    resp = _open(client, user_id="bob")
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "InsufficientBalanceError"
    assert body["required"] == 100
    assert body["available"] == 10

    assert _open(client, user_id="bob", size=5, leverage=500).status_code == 400
    assert _open(client, user_id="bob", size=5, side="sideways").status_code == 422
    assert _open(client, user_id="bob", size=5, symbol="NOPE").status_code == 404
    assert client.get("/balances/bob").json()["amount"] == 10


def test_chaos_config(client):
    cfg = client.get("/admin/config/chaos").json()
    assert cfg["global_chaos_level"] == 50
    assert cfg["effective_levels"]["RUG"] == 95

    updated = client.put("/admin/config/chaos", json={"global_chaos_level": 77}).json()
    assert updated["global_chaos_level"] == 77
    assert client.put("/admin/config/chaos", json={"global_chaos_level": 150}).status_code == 422

    pair = client.put("/admin/config/pairs/shit/chaos-override", json={"level": None}).json()
    assert pair["chaos_override"] is None
    assert pair["effective_chaos_level"] == 77
    assert client.get("/admin/config/chaos").json()["effective_levels"]["SHIT"] == 77

    assert client.put("/admin/config/pairs/NOPE/chaos-override", json={"level": 5}).status_code == 404


def test_generate_tick_and_replay(client):
    now = int(time.time()) + 5

    first = client.post("/admin/generate-tick", json={"now": now}).json()
    assert first["now"] == now
    assert len(first["generated"]) == len(DEFAULT_PAIRS)
    assert all(g["candle"]["time"] == now for g in first["generated"])

    replay = client.post("/admin/generate-tick", json={"now": now}).json()
    assert replay["generated"] == []


def test_reset_and_aggregate(client):
    resp = client.post("/admin/pairs/shit/reset", json={"seconds": 60})
    assert resp.json() == {"symbol": "SHIT", "candles": 60}

    raw = client.get("/candles", params={"symbol": "SHIT", "timeframe": "1s", "limit": 1000}).json()
    assert len(raw) == 60

    assert client.post("/admin/pairs/NOPE/reset", json={"seconds": 60}).status_code == 404
    assert client.post("/admin/pairs/SHIT/reset", json={"seconds": 0}).status_code == 422

    result = client.post("/admin/aggregate", params={"symbol": "SHIT"}).json()
    assert set(result) == {"aggregated", "cleaned"}


def test_price_stream(client):
    with client.websocket_connect("/ws/prices/shit") as ws:
        snapshot = ws.receive_json()
        assert snapshot["type"] == "snapshot"
        assert snapshot["symbol"] == "SHIT"

        client.post("/admin/generate-tick", json={"now": int(time.time()) + 10})

        event = ws.receive_json()
        assert event["type"] == "candle"
        assert event["symbol"] == "SHIT"
        assert event["candle"]["close"] > 0


def test_price_stream_unknown_symbol(client):
    with pytest.raises(WebSocketDisconnect) as info:
        with client.websocket_connect("/ws/prices/NOPE") as ws:
            ws.receive_json()
    assert info.value.code == 4404
