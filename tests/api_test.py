import pytest
from fastapi.testclient import TestClient

from ticksim.api.server import create_app
from ticksim.simulation import MarketSimulation


@pytest.fixture
def sim(quiet_config):
    return MarketSimulation(config=quiet_config, seed=5, clock=lambda: 1_000)


@pytest.fixture
def client(sim):
    return TestClient(create_app(sim))


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_order_lifecycle(client, sim):
    response = client.post("/orders", json={"side": "buy", "type": "limit", "qty": 10, "price": 0.00005})
    assert response.status_code == 200
    order_id = response.json()["id"]

    assert client.delete(f"/orders/{order_id}").json()["status"] == "canceled"
    assert client.delete(f"/orders/{order_id}").status_code == 404

    rejected = client.post("/orders", json={"side": "buy", "qty": 0})
    assert rejected.status_code == 400
    assert rejected.json()["detail"] == "qty<=0"

    assert client.post("/orders", json={"side": "up", "qty": 1}).status_code == 422


def test_position_routes(client, sim):
    assert client.post("/position/close", json={"pct": 0.5}).status_code == 404
    assert client.post("/position/sltp", json={"stop_loss": 0.00009}).status_code == 404

    client.post("/orders", json={"side": "buy", "qty": 1_000})
    sim.step(0.1, 1_100)

    sltp = client.post("/position/sltp", json={"stop_loss": 0.00001})
    assert sltp.status_code == 200
    assert sltp.json()["stop_loss"] == 0.00001

    closed = client.post("/position/close", json={"pct": 0.5})
    assert closed.status_code == 200
    assert closed.json()["qty"] == pytest.approx(500)
    assert client.post("/position/close", json={"pct": 1.5}).status_code == 422


def test_state_lists_ledgers(client, sim):
    client.post("/orders", json={"side": "buy", "qty": 100})
    sim.step(0.1, 1_100)

    state = client.get("/state", params={"limit": 5}).json()
    assert state["regime"] == sim.price_engine.regime.value
    assert state["price"] == sim.price
    assert len(state["account"]["trades"]) == 1
    assert state["account"]["positions"][0]["qty"] == 100


def test_events_and_controls(client, sim):
    assert client.post("/events/Unknown").status_code == 404
    event = client.post("/events/CT_Hype")
    assert event.status_code == 200
    assert event.json()["type"] == "CT_Hype"
    assert len(sim.event_engine.active_events) == 1

    controls = client.post("/controls", json={"speed": 3, "volatility": 0.1}).json()
    assert controls["speed"] == 3
    assert controls["volatility"] == 0.2


def test_timeframe(client, sim):
    for i in range(30):
        sim.step(0.1, 2_000 + i * 100)

    response = client.post("/timeframe", json={"tf_sec": 2})
    assert response.status_code == 200
    assert len(response.json()["candles"]) == 2
    assert client.post("/timeframe", json={"tf_sec": 0}).status_code == 422


def test_batch_run(client):
    response = client.post("/api/simulation/run", json={
        "seed": 3,
        "duration_seconds": 2,
        "orders": [{"at_sec": 0.5, "side": "buy", "qty": 10}]
    })
    assert response.status_code == 200
    body = response.json()
    assert body["summary"]["steps"] == 20
    assert body["summary"]["trades"] == 1
    assert len(body["regimes"]) == 20


def test_reverse_and_margin_view(client, sim):
    assert client.post("/position/reverse").status_code == 404

    client.post("/orders", json={"side": "buy", "qty": 1_000})
    sim.step(0.1, 1_100)

    position = client.get("/state").json()["account"]["positions"][0]
    entry = position["entry_price"]
    assert position["leverage"] == 3.0
    assert position["liquidation_price"] == pytest.approx(entry * (1 - 1 / 3))
    assert position["margin"] == pytest.approx(entry * 1_000 / 3)

    reversed_order = client.post("/position/reverse")
    assert reversed_order.status_code == 200
    assert reversed_order.json()["side"] == "sell"
    assert reversed_order.json()["qty"] == pytest.approx(2_000)
