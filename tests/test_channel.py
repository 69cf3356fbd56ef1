import asyncio

import pytest

from conftest import run
from signbank.errors import InvalidInput
from signbank.models import AccelerationSample
from signbank.models.acceleration import now_ms
from signbank.network import AccelerationChannel, ConsumerState
from signbank.network.consumer import HISTORY_EVENT, UPDATE_EVENT


def sample(ts: int) -> AccelerationSample:
    return AccelerationSample(x=ts * 0.1, y=-ts * 0.1, z=9.8, timestamp=ts)


class Recorder:

    def __init__(self, fail: bool = False):
        self.messages = []
        self.fail = fail

    async def __call__(self, message):
        if self.fail:
            raise ConnectionError("socket gone")
        self.messages.append(message)


async def drain():
    # Let consumer tasks flush their queues
    for _ in range(10):
        await asyncio.sleep(0)


def test_history_is_capped_to_last_samples():
    channel = AccelerationChannel(history_size=100)
    for ts in range(150):
        channel.publish(sample(ts))

    history = channel.history()
    assert len(history) == 100
    assert [s.timestamp for s in history] == list(range(50, 150))


def test_late_joiner_gets_history_burst_then_updates():
    async def scenario():
        channel = AccelerationChannel(history_size=100)
        for ts in range(150):
            channel.publish(sample(ts))

        recorder = Recorder()
        consumer = channel.subscribe(recorder)
        task = asyncio.create_task(consumer.run())
        channel.publish(sample(150))
        channel.publish(sample(151))
        await drain()
        channel.unsubscribe(consumer)
        await task

        burst, *updates = recorder.messages
        assert burst["event"] == HISTORY_EVENT
        assert len(burst["data"]) == 100
        assert [s["timestamp"] for s in burst["data"]] == list(range(50, 150))
        assert [u["event"] for u in updates] == [UPDATE_EVENT, UPDATE_EVENT]
        assert [u["data"]["timestamp"] for u in updates] == [150, 151]
        assert consumer.state is ConsumerState.DISCONNECTED

    run(scenario())


def test_empty_history_burst():
    async def scenario():
        channel = AccelerationChannel()
        recorder = Recorder()
        consumer = channel.subscribe(recorder)
        assert consumer.state is ConsumerState.STREAMING
        task = asyncio.create_task(consumer.run())
        await drain()
        channel.close()
        await task
        assert recorder.messages == [{"event": HISTORY_EVENT, "data": []}]

    run(scenario())


def test_every_consumer_receives_each_sample_in_order():
    async def scenario():
        channel = AccelerationChannel()
        recorders = [Recorder() for _ in range(5)]
        consumers = [channel.subscribe(r) for r in recorders]
        tasks = [asyncio.create_task(c.run()) for c in consumers]
        for ts in range(20):
            assert channel.publish(sample(ts)) == 5
            if ts % 3 == 0:
                await asyncio.sleep(0)
        await drain()
        channel.close()
        await asyncio.gather(*tasks)

        for recorder in recorders:
            updates = [m["data"]["timestamp"] for m in recorder.messages[1:]]
            assert updates == list(range(20))

    run(scenario())


def test_slow_consumer_is_dropped_without_affecting_others():
    async def scenario():
        channel = AccelerationChannel(queue_size=2)
        slow = channel.subscribe(Recorder())
        fast_recorder = Recorder()
        fast = channel.subscribe(fast_recorder)
        fast_task = asyncio.create_task(fast.run())

        for ts in range(5):
            channel.publish(sample(ts))
            await asyncio.sleep(0)

        assert slow.state is ConsumerState.DISCONNECTED
        assert slow.disconnect_reason == "SlowConsumer"
        assert slow not in channel.consumers()
        assert fast in channel.consumers()

        await drain()
        channel.close()
        await fast_task
        assert [m["data"]["timestamp"] for m in fast_recorder.messages[1:]] == list(range(5))

    run(scenario())


def test_failed_send_is_isolated():
    async def scenario():
        channel = AccelerationChannel()
        broken = channel.subscribe(Recorder(fail=True))
        healthy_recorder = Recorder()
        healthy = channel.subscribe(healthy_recorder)
        tasks = [asyncio.create_task(c.run()) for c in (broken, healthy)]
        await drain()

        assert broken.disconnect_reason == "send failed"
        assert channel.publish(sample(1)) == 1
        assert channel.consumers() == [healthy]

        await drain()
        channel.close()
        await asyncio.gather(*tasks)
        assert healthy_recorder.messages[-1]["data"]["timestamp"] == 1

    run(scenario())


def test_out_of_order_sample_is_rejected():
    channel = AccelerationChannel()
    channel.publish(sample(10))
    channel.publish(sample(10))
    with pytest.raises(InvalidInput):
        channel.publish(sample(5))
    assert [s.timestamp for s in channel.history()] == [10, 10]


def test_disconnected_consumer_gets_nothing_more():
    async def scenario():
        channel = AccelerationChannel()
        recorder = Recorder()
        consumer = channel.subscribe(recorder)
        task = asyncio.create_task(consumer.run())
        channel.unsubscribe(consumer)
        await task
        assert channel.publish(sample(1)) == 0
        assert recorder.messages == []

    run(scenario())


def test_simulator_publishes_ascending_samples():
    from signbank.services.acceleration_simulator import simulate_acceleration

    async def scenario():
        channel = AccelerationChannel(history_size=10)
        task = asyncio.create_task(simulate_acceleration(channel, interval=0.001))
        await asyncio.sleep(0.05)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        return channel

    channel = run(scenario())
    timestamps = [s.timestamp for s in channel.history()]
    assert channel.published > 1
    assert timestamps == sorted(timestamps)
    assert len(timestamps) <= 10


def test_simulator_survives_samples_from_the_future():
    from signbank.services.acceleration_simulator import simulate_acceleration

    async def scenario():
        channel = AccelerationChannel(history_size=10)
        task = asyncio.create_task(simulate_acceleration(channel, interval=0.001))
        await asyncio.sleep(0.01)
        ahead = now_ms() + 60_000
        channel.publish(AccelerationSample(x=0.0, y=0.0, z=9.8, timestamp=ahead))
        published = channel.published
        await asyncio.sleep(0.05)
        assert not task.done()
        assert channel.published > published
        assert all(s.timestamp >= ahead for s in channel.history()[-2:])
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    run(scenario())
