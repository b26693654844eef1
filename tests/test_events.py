import asyncio
import json
import time

import pytest

import cache
import config
import database
from main import display_event_stream
from services import add_patient


class FakePubSub:
    def __init__(self, messages=()):
        self.messages = list(messages)
        self.subscribed = []
        self.closed = False

    def subscribe(self, channel):
        self.subscribed.append(channel)

    def get_message(self, timeout=0.0):
        # Blocks like the real client waiting on its socket.
        time.sleep(timeout)
        if self.messages:
            return self.messages.pop(0)
        return None

    def close(self):
        self.closed = True


class PubSubRedis:
    def __init__(self, pubsub):
        self._pubsub = pubsub

    def pubsub(self):
        return self._pubsub


def collect(stream, count):
    async def run():
        received = []
        try:
            async for chunk in stream:
                assert chunk.startswith("data: ") and chunk.endswith("\n\n")
                received.append(json.loads(chunk[len("data: "):]))
                if len(received) == count:
                    break
        finally:
            await stream.aclose()
        return received

    return asyncio.run(run())


@pytest.fixture
def board_engine(engine, monkeypatch):
    monkeypatch.setattr(database, "engine", engine)
    return engine


def test_stream_without_redis_sends_snapshots(board_engine, session, monkeypatch):
    monkeypatch.setattr(config, "BOARD_POLL_SECONDS", 0)
    add_patient(session, "Jane Roe", "1234567890", 2)

    events = collect(display_event_stream(), 2)

    assert [e["type"] for e in events] == ["display", "display"]
    assert events[0]["data"] == [{
        "id_last_three": "890",
        "full_name": "Jane Roe",
        "consultation_room": 2,
        "status": "waiting",
    }]


def test_stream_with_redis_relays_updates_then_heartbeats(board_engine, monkeypatch):
    monkeypatch.setattr(config, "BOARD_POLL_SECONDS", 0.01)
    update = json.dumps({"type": "board_update", "event": "called", "patient_id": 1})
    pubsub = FakePubSub([{"type": "message", "data": update}])

    events = collect(display_event_stream(PubSubRedis(pubsub)), 3)

    assert events[0] == {"type": "display", "data": []}
    assert events[1] == json.loads(update)
    assert events[2] == {"type": "heartbeat"}
    assert pubsub.subscribed == [cache.UPDATES_CHANNEL]
    assert pubsub.closed


def test_waiting_for_redis_leaves_the_event_loop_free(board_engine, monkeypatch):
    monkeypatch.setattr(config, "BOARD_POLL_SECONDS", 0.3)
    stream = display_event_stream(PubSubRedis(FakePubSub()))

    async def run():
        ticks = 0
        stop = asyncio.Event()

        async def ticker():
            nonlocal ticks
            while not stop.is_set():
                ticks += 1
                await asyncio.sleep(0.01)

        task = asyncio.create_task(ticker())
        try:
            await stream.__anext__()
            before = ticks
            heartbeat = await stream.__anext__()
            return heartbeat, ticks - before
        finally:
            await stream.aclose()
            stop.set()
            await task

    heartbeat, ticks_while_waiting = asyncio.run(run())

    assert json.loads(heartbeat[len("data: "):]) == {"type": "heartbeat"}
    assert ticks_while_waiting > 5
