import asyncio
import json

from ticksim.simulation import MarketSimulation
from ticksim.streaming.data_stream import BoundedTickStream
from ticksim.streaming.serialization import serialize_tick_result
from ticksim.streaming.websocket import AsyncWebSocketServer


def test_stream_fans_out_and_drops_when_full():
    async def scenario():
        stream = BoundedTickStream(maxsize=2)
        received = []

        async def consume():
            async for item in stream.subscribe():
                received.append(item)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0.01)
        assert stream.get_stats().active_subscribers == 1

        results = [stream.publish_nowait(i) for i in range(3)]
        await asyncio.sleep(0.01)
        await stream.close()
        await asyncio.wait_for(task, timeout=1)
        return stream, received, results

    stream, received, results = asyncio.run(scenario())
    assert results == [True, True, False]
    assert received == [0, 1]
    assert stream.stats.messages_dropped == 1
    assert stream.stats.active_subscribers == 0


def test_publish_without_subscribers():
    stream = BoundedTickStream()
    assert stream.publish_nowait("x")
    assert stream.stats.messages_published == 1


def test_tick_result_serializes_to_json(quiet_config):
    sim = MarketSimulation(config=quiet_config, seed=3, clock=lambda: 0)
    sim.account.place_order("buy", "market", 10, timestamp=0)
    result = sim.step(0.1, 1_000)

    message = json.loads(json.dumps(serialize_tick_result(result)))
    assert message["type"] == "tick"
    assert message["time"] == 1_000
    assert message["regime"] == result.regime.value
    assert message["candle"]["mode"] == "new"
    assert message["account"]["positions"][0]["side"] == "buy"
    assert len(message["account"]["fills"]) == 1


def test_commands_drive_the_simulation(quiet_config):
    sim = MarketSimulation(config=quiet_config, seed=3, clock=lambda: 0)
    server = AsyncWebSocketServer(sim.output_stream, simulation=sim)

    placed = server.process_command({"action": "place_order", "side": "buy", "qty": 5})
    assert placed["success"]
    assert placed["order"]["status"] == "new"

    rejected = server.process_command({"action": "place_order", "side": "buy", "qty": 0})
    assert not rejected["success"]
    assert rejected["error"] == "qty<=0"

    assert server.process_command({"action": "set_speed", "value": 4})["success"]
    assert sim.scheduler.speed_multiplier == 4.0

    event = server.process_command({"action": "inject_event", "event_type": "CT_Hype"})
    assert event["event"]["type"] == "CT_Hype"

    sim.step(0.1, 1_000)
    closed = server.process_command({"action": "close_pct", "pct": 1.0})
    assert closed["order"]["reduce_only"]

    no_position = AsyncWebSocketServer(sim.output_stream, simulation=MarketSimulation(seed=1, clock=lambda: 0))
    assert no_position.process_command({"action": "reverse"})["error"] == "no open position"

    sim.step(0.1, 1_100)
    server.process_command({"action": "place_order", "side": "buy", "qty": 3})
    sim.step(0.1, 1_200)
    reverse = server.process_command({"action": "reverse"})
    assert reverse["success"]
    assert reverse["order"]["type"] == "market"

    unknown = server.process_command({"action": "moon"})
    assert not unknown["success"]
