"""Tests for Broadcaster fan-out without Redis."""

import asyncio

import orjson

from navtrack.core.broadcaster import Broadcaster


def test_publish_fans_out_to_subscribers():
    async def main():
        b = Broadcaster(redis_url="")
        await b.connect()
        q1, q2 = b.subscribe(), b.subscribe()
        await b.publish("progress", {"leg_index": 0}, retain=True)
        return orjson.loads(await q1.get()), orjson.loads(await q2.get()), b

    first, second, b = asyncio.run(main())
    assert first == {"type": "progress", "leg_index": 0}
    assert first == second
    assert b.published_total == 1
    assert orjson.loads(b.snapshot()["progress"])["leg_index"] == 0


def test_snapshot_keeps_latest_per_kind():
    async def main():
        b = Broadcaster(redis_url="")
        await b.publish("progress", {"n": 1}, retain=True)
        await b.publish("camera", {"zoom": 15.0}, retain=True)
        await b.publish("progress", {"n": 2}, retain=True)
        await b.publish("reroute", {"n": 3})
        return b.snapshot()

    snap = asyncio.run(main())
    assert set(snap) == {"progress", "camera"}
    assert orjson.loads(snap["progress"])["n"] == 2


def test_clear_state_forgets_snapshot():
    async def main():
        b = Broadcaster(redis_url="")
        await b.publish("progress", {"n": 1}, retain=True)
        b.clear_state()
        return b.snapshot()

    assert asyncio.run(main()) == {}


def test_lagging_subscriber_dropped():
    async def main():
        b = Broadcaster(redis_url="")
        slow = b.subscribe()
        fast = b.subscribe()
        for i in range(11):
            await b.publish("progress", {"n": i})
            if not fast.empty():
                fast.get_nowait()
        return b, slow

    b, slow = asyncio.run(main())
    assert b.subscriber_count == 1
    assert slow.qsize() == 10


def test_unsubscribe():
    b = Broadcaster(redis_url="")
    q = b.subscribe()
    b.unsubscribe(q)
    assert b.subscriber_count == 0
