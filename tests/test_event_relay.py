import asyncio
import json

from vidguard.core.event_relay import EventRelay, RedisEventPublisher
from vidguard.core.events import ANALYSIS_COMPLETE, PROGRESS
from vidguard.services.analysis.progress import AnalysisStage, ProgressReporter


class FakeBroker:
    """In-memory pub/sub channel shared by the sync and async fakes."""

    def __init__(self):
        self.queue = asyncio.Queue()
        self.published = []


class FakeSyncRedis:
    def __init__(self, broker):
        self.broker = broker
        self.closed = False

    def publish(self, channel, message):
        self.broker.published.append((channel, message))
        self.broker.queue.put_nowait({"type": "message", "channel": channel, "data": message.encode()})
        return 1

    def close(self):
        self.closed = True


class FakePubSub:
    def __init__(self, broker):
        self.broker = broker
        self.channels = []

    async def subscribe(self, channel):
        self.channels.append(channel)
        await self.broker.queue.put({"type": "subscribe", "channel": channel, "data": 1})

    async def listen(self):
        while True:
            yield await self.broker.queue.get()

    async def aclose(self):
        pass


class FakeAsyncRedis:
    def __init__(self, broker):
        self.broker = broker
        self.closed = False

    def pubsub(self):
        return FakePubSub(self.broker)

    async def aclose(self):
        self.closed = True


def test_publisher_serializes_hub_calls():
    broker = FakeBroker()
    publisher = RedisEventPublisher(channel="events", client=FakeSyncRedis(broker))

    ProgressReporter(publisher, "v1").tick(AnalysisStage.QUEUED)

    channel, raw = broker.published[0]
    assert channel == "events"
    assert json.loads(raw) == {
        "event": PROGRESS,
        "payload": {"video_id": "v1", "progress": 5, "stage": "queued"},
    }


def test_dispatch_emits_into_local_hub(hub):
    relay = EventRelay(hub, client=FakeAsyncRedis(FakeBroker()))
    message = json.dumps({"event": ANALYSIS_COMPLETE, "payload": {"video_id": "v1", "success": True}})

    event = relay.dispatch(message.encode())

    assert event.sequence == 1
    assert hub.replay("v1")[0].data == {"success": True}
    assert relay.relayed == 1


def test_dispatch_skips_malformed_messages(hub):
    relay = EventRelay(hub, client=FakeAsyncRedis(FakeBroker()))
    assert relay.dispatch(b"not json") is None
    assert relay.dispatch(json.dumps({"event": PROGRESS}).encode()) is None
    assert relay.dispatch(json.dumps({"event": PROGRESS, "payload": {"progress": 5}})) is None
    assert hub.get_stats()["total_events_emitted"] == 0


async def test_worker_events_reach_api_subscribers(hub):
    broker = FakeBroker()
    client = FakeAsyncRedis(broker)
    relay = EventRelay(hub, channel="events", client=client)
    subscriber = hub.subscribe("v1")
    relay.start()

    worker_hub = RedisEventPublisher(channel="events", client=FakeSyncRedis(broker))
    reporter = ProgressReporter(worker_hub, "v1")
    reporter.tick(AnalysisStage.QUEUED)
    reporter.complete(True, "processed", "safe", 1.0, "normal visual content detected", 0.5)

    first = await asyncio.wait_for(subscriber.get(), timeout=1)
    second = await asyncio.wait_for(subscriber.get(), timeout=1)
    assert (first.event, first.sequence) == (PROGRESS, 1)
    assert (second.event, second.sequence) == (ANALYSIS_COMPLETE, 2)
    assert second.data["success"] is True

    await relay.stop()
    assert client.closed
