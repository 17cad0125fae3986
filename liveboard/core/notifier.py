"""
Change notifier - bridges score mutations to snapshot broadcasts

After each successful mutation the notifier schedules a refresh: read the full
ranking from the store and hand it to the broadcast hub. Refreshes run one at a
time. A refresh that has been scheduled but has not read the store yet covers
every mutation that completes before its read, so further notifications are
coalesced into it instead of queueing duplicate reads.

Change events are also published on a Redis pub/sub channel so that other
instances sharing the same store can refresh their own observers.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

from pydantic import ValidationError
from redis import exceptions as redis_errors

from liveboard.errors import StoreUnavailable
from liveboard.models import ChangeEvent, ScoreChange
from liveboard.utils import new_instance_id


logger = logging.getLogger(__name__)

EventHandler = Callable[[ChangeEvent], Awaitable[None]]


class RedisChangeChannel:
    """Cross-process change events over Redis pub/sub"""

    def __init__(self, client, channel: str = "score-updates"):
        self.client = client
        self.channel = channel
        self._pubsub = None
        self._task: Optional[asyncio.Task] = None

    async def publish(self, event: ChangeEvent) -> None:
        try:
            await self.client.publish(self.channel, event.model_dump_json(by_alias=True))
        except (redis_errors.ConnectionError, redis_errors.TimeoutError) as exc:
            raise StoreUnavailable(f"publish to {self.channel} failed: {exc}") from exc

    async def start(self, handler: EventHandler) -> None:
        self._pubsub = self.client.pubsub(ignore_subscribe_messages=True)
        await self._pubsub.subscribe(self.channel)
        self._task = asyncio.create_task(self._listen(handler))
        logger.info(f"📡 Subscribed to change channel '{self.channel}'")

    @property
    def is_listening(self) -> bool:
        return self._task is not None and not self._task.done()

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception as exc:
                logger.error(f"❌ Change listener on '{self.channel}' had failed: {exc!r}")
            self._task = None
        if self._pubsub is not None:
            try:
                await self._pubsub.unsubscribe(self.channel)
            except (redis_errors.ConnectionError, redis_errors.TimeoutError) as exc:
                logger.warning(f"⚠️ Unsubscribe from '{self.channel}' failed: {exc}")
            finally:
                await self._pubsub.aclose()
                self._pubsub = None

    async def _listen(self, handler: EventHandler) -> None:
        try:
            async for message in self._pubsub.listen():
                if message.get("type") != "message":
                    continue
                event = decode_event(message.get("data"))
                if event is None:
                    continue
                try:
                    await handler(event)
                except Exception as exc:
                    logger.error(f"❌ Change event handler failed for {event.participant_id}: {exc!r}")
        except (redis_errors.ConnectionError, redis_errors.TimeoutError) as exc:
            # Task ends; is_listening turns False and /health reports it
            logger.error(f"❌ Change channel '{self.channel}' lost, peer events stopped: {exc}")


def decode_event(payload) -> Optional[ChangeEvent]:
    """Parse a channel payload; None (and a log line) when malformed"""
    try:
        return ChangeEvent.model_validate_json(payload)
    except (ValidationError, TypeError, ValueError) as exc:
        logger.warning(f"Ignoring malformed change event {payload!r}: {exc}")
        return None


class ChangeNotifier:
    """Recomputes the ranking after each change and pushes it to the hub"""

    def __init__(self, store, hub, channel: Optional[RedisChangeChannel] = None,
                 instance_id: Optional[str] = None):
        self.store = store
        self.hub = hub
        self.channel = channel
        self.instance_id = instance_id or new_instance_id()
        self._lock = asyncio.Lock()
        self._refresh_pending = False
        self._tasks: Set[asyncio.Task] = set()

    def notify(self, change: ScoreChange) -> None:
        """
        Schedule fan-out for a completed mutation and return immediately

        Must be called from within the running event loop.
        """
        if not self._refresh_pending:
            self._refresh_pending = True
            self._spawn(self._refresh("local change"))
        if self.channel is not None:
            event = ChangeEvent(
                participant_id=change.participant_id,
                delta=change.delta,
                new_score=change.new_score,
                origin=self.instance_id,
            )
            self._spawn(self._publish(event))

    async def refresh(self) -> int:
        """Recompute and broadcast now; returns the number of observers reached"""
        self._refresh_pending = True
        return await self._refresh("explicit refresh")

    async def handle_peer_event(self, event: ChangeEvent) -> None:
        if event.origin == self.instance_id:
            return
        logger.info(
            f"🔁 Peer {event.origin or 'unknown'} changed {event.participant_id} "
            f"by {event.delta:+g} -> {event.new_score:g}"
        )
        # Only our own observers need a fresh view
        if self.hub.connection_count and not self._refresh_pending:
            self._refresh_pending = True
            await self._refresh(f"peer {event.origin}")

    async def _refresh(self, reason: str) -> int:
        async with self._lock:
            # Mutations finishing after this point schedule another refresh
            self._refresh_pending = False
            try:
                snapshot = await self.store.top_n()
            except StoreUnavailable as exc:
                logger.error(f"❌ Skipping broadcast ({reason}): {exc}")
                return 0
            return await self.hub.broadcast_snapshot(snapshot)

    async def _publish(self, event: ChangeEvent) -> None:
        try:
            await self.channel.publish(event)
        except StoreUnavailable as exc:
            logger.error(f"❌ Change event for {event.participant_id} not published: {exc}")

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def peer_channel_status(self) -> str:
        """'disabled', 'listening' or 'down'"""
        if self.channel is None:
            return "disabled"
        return "listening" if self.channel.is_listening else "down"

    async def start(self) -> None:
        if self.channel is not None:
            await self.channel.start(self.handle_peer_event)

    async def drain(self) -> None:
        """Wait until every scheduled refresh/publish has finished"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def stop(self) -> None:
        await self.drain()
        if self.channel is not None:
            await self.channel.stop()
