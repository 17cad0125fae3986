"""
Tests for the change notifier and the cross-process change channel
"""
import asyncio

from liveboard.core.hub import BroadcastHub
from liveboard.core.notifier import ChangeNotifier, decode_event
from liveboard.core.store import MemoryRankingStore
from liveboard.errors import StoreUnavailable
from liveboard.models import ChangeEvent, ScoreChange


class RecordingChannel:
    def __init__(self, fail=False):
        self.published = []
        self.fail = fail
        self.handler = None
        self.stopped = False

    async def publish(self, event):
        if self.fail:
            raise StoreUnavailable("publish failed")
        self.published.append(event)

    async def start(self, handler):
        self.handler = handler

    async def stop(self):
        self.stopped = True


def scores(message):
    return {entry["participantId"]: entry["score"] for entry in message["data"]}


def test_notify_broadcasts_fresh_snapshot(connection_cls):
    store = MemoryRankingStore({"a": 5, "b": 7})
    hub = BroadcastHub(store)
    notifier = ChangeNotifier(store, hub)
    conn = connection_cls()

    async def scenario():
        await hub.join(conn)
        new_score = await store.increment_score("a", 10)
        notifier.notify(ScoreChange(participant_id="a", delta=10, new_score=new_score))
        await notifier.drain()

    asyncio.run(scenario())

    assert scores(conn.sent[-1]) == {"a": 15.0, "b": 7.0}
    assert [e["participantId"] for e in conn.sent[-1]["data"]] == ["a", "b"]


def test_burst_of_changes_ends_with_latest_state(connection_cls):
    """Coalesced refreshes never leave observers behind the store"""
    store = MemoryRankingStore({"a": 0})
    hub = BroadcastHub(store)
    notifier = ChangeNotifier(store, hub)
    conn = connection_cls()

    async def scenario():
        await hub.join(conn)
        for _ in range(20):
            new_score = await store.increment_score("a", 1)
            notifier.notify(ScoreChange(participant_id="a", delta=1, new_score=new_score))
            await asyncio.sleep(0)
        await notifier.drain()

    asyncio.run(scenario())

    assert scores(conn.sent[-1]) == {"a": 20.0}
    assert len(conn.sent) <= 21


def test_notify_publishes_change_event():
    store = MemoryRankingStore()
    channel = RecordingChannel()
    notifier = ChangeNotifier(store, BroadcastHub(store), channel=channel, instance_id="node-1")

    async def scenario():
        notifier.notify(ScoreChange(participant_id="a", delta=2, new_score=2))
        await notifier.drain()

    asyncio.run(scenario())

    assert channel.published == [ChangeEvent(participant_id="a", delta=2, new_score=2, origin="node-1")]


def test_publish_failure_is_contained():
    store = MemoryRankingStore()
    notifier = ChangeNotifier(store, BroadcastHub(store), channel=RecordingChannel(fail=True))

    async def scenario():
        notifier.notify(ScoreChange(participant_id="a", delta=2, new_score=2))
        await notifier.drain()

    asyncio.run(scenario())


def test_store_outage_skips_broadcast(connection_cls, unreachable_store):
    hub = BroadcastHub(MemoryRankingStore({"a": 1}))
    conn = connection_cls()
    notifier = ChangeNotifier(unreachable_store, hub)

    async def scenario():
        await hub.join(conn)
        return await notifier.refresh()

    assert asyncio.run(scenario()) == 0
    assert len(conn.sent) == 1
    assert conn.is_open


def test_peer_event_refreshes_local_observers(connection_cls):
    store = MemoryRankingStore({"a": 1})
    hub = BroadcastHub(store)
    notifier = ChangeNotifier(store, hub, instance_id="node-1")
    conn = connection_cls()

    async def scenario():
        await hub.join(conn)
        # Another instance wrote to the shared store
        await store.increment_score("a", 4)
        await notifier.handle_peer_event(ChangeEvent(participant_id="a", delta=4, new_score=5, origin="node-2"))

    asyncio.run(scenario())

    assert scores(conn.sent[-1]) == {"a": 5.0}


def test_own_peer_event_is_ignored(connection_cls):
    store = MemoryRankingStore({"a": 1})
    hub = BroadcastHub(store)
    notifier = ChangeNotifier(store, hub, instance_id="node-1")
    conn = connection_cls()

    async def scenario():
        await hub.join(conn)
        await notifier.handle_peer_event(ChangeEvent(participant_id="a", delta=1, new_score=1, origin="node-1"))

    asyncio.run(scenario())

    assert len(conn.sent) == 1


def test_start_and_stop_manage_channel():
    store = MemoryRankingStore()
    channel = RecordingChannel()
    notifier = ChangeNotifier(store, BroadcastHub(store), channel=channel)

    async def scenario():
        await notifier.start()
        await notifier.stop()

    asyncio.run(scenario())

    assert channel.handler == notifier.handle_peer_event
    assert channel.stopped


def test_decode_event():
    event = decode_event('{"participantId": "a", "scoreIncrement": 3, "newScore": 8, "origin": "x"}')
    assert event == ChangeEvent(participant_id="a", delta=3, new_score=8, origin="x")
    assert decode_event("{broken") is None
    assert decode_event('{"participantId": "a"}') is None
    assert decode_event(None) is None
