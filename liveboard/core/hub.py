"""
Broadcast hub - live observer registry and snapshot fan-out

Each observer connection moves CONNECTING -> OPEN -> CLOSED and never reopens;
a reconnecting client gets a new connection object. The hub owns the registry
(handle -> connection). Registry changes happen without suspension points, and
fan-out iterates over a copy, so a connection removed mid-broadcast is either
skipped or attempted once and dropped.
"""
import asyncio
import logging
import uuid
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional

from pydantic import ValidationError
from starlette.websockets import WebSocket, WebSocketDisconnect

from liveboard.errors import DeliveryFailure, InvalidInput, StoreUnavailable
from liveboard.models import SCORE_DELTA, InboundMessage, ScoreDeltaData, Snapshot, snapshot_message


logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class ObserverConnection:
    """One live channel to an external client.

    Subclasses provide the transport: `accept` (handshake), `_transmit`,
    `receive_text` (None once the peer is gone) and `_shutdown`.
    """

    def __init__(self, handle: Optional[str] = None):
        self.handle = handle or uuid.uuid4().hex
        self.state = ConnectionState.CONNECTING

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN

    def mark_open(self) -> None:
        if self.state is not ConnectionState.CONNECTING:
            raise ValueError(f"connection {self.handle} is {self.state.value}, cannot open")
        self.state = ConnectionState.OPEN

    def mark_closed(self) -> None:
        self.state = ConnectionState.CLOSED

    async def accept(self) -> None:
        raise NotImplementedError

    async def receive_text(self) -> Optional[str]:
        raise NotImplementedError

    async def _transmit(self, message: dict) -> None:
        raise NotImplementedError

    async def _shutdown(self) -> None:
        return None

    async def send(self, message: dict) -> None:
        if not self.is_open:
            raise DeliveryFailure(self.handle, f"connection is {self.state.value}")
        await self._transmit(message)

    async def close(self) -> None:
        self.mark_closed()
        await self._shutdown()


class WebSocketConnection(ObserverConnection):
    """Observer backed by a Starlette/FastAPI WebSocket"""

    def __init__(self, websocket: WebSocket):
        super().__init__()
        self.websocket = websocket

    async def accept(self) -> None:
        try:
            await self.websocket.accept()
        except (RuntimeError, OSError) as exc:
            raise DeliveryFailure(self.handle, f"handshake failed: {exc}") from exc

    async def receive_text(self) -> Optional[str]:
        try:
            message = await self.websocket.receive()
        except (WebSocketDisconnect, RuntimeError):
            # RuntimeError: socket already closed on our side
            return None
        if message["type"] == "websocket.disconnect":
            return None
        if message.get("text") is not None:
            return message["text"]
        return (message.get("bytes") or b"").decode("utf-8", errors="replace")

    async def _transmit(self, message: dict) -> None:
        try:
            await self.websocket.send_json(message)
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            raise DeliveryFailure(self.handle, str(exc) or type(exc).__name__) from exc

    async def _shutdown(self) -> None:
        try:
            await self.websocket.close()
        except (WebSocketDisconnect, RuntimeError, OSError):
            pass  # already closed


MessageHandler = Callable[[ObserverConnection, dict], Awaitable[None]]


class BroadcastHub:
    """Tracks live observers and pushes ranking snapshots to them"""

    def __init__(self, store, send_timeout: float = 5.0):
        self.store = store
        self.send_timeout = send_timeout
        self._connections: Dict[str, ObserverConnection] = {}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def is_member(self, connection: ObserverConnection) -> bool:
        return self._connections.get(connection.handle) is connection

    async def join(self, connection: ObserverConnection) -> bool:
        """
        Register an observer and push the current snapshot (catch-up)

        Returns:
            False when the connection could not be opened or the catch-up
            push failed (the connection is dropped in that case)
        """
        if connection.state is ConnectionState.CLOSED:
            return False
        if connection.state is ConnectionState.CONNECTING:
            connection.mark_open()
        self._connections[connection.handle] = connection
        logger.info(f"👀 Observer {connection.handle} joined ({self.connection_count} live)")

        try:
            snapshot = await self.store.top_n()
        except StoreUnavailable as exc:
            # Stays joined; the next broadcast brings it up to date
            logger.error(f"❌ Catch-up snapshot unavailable for {connection.handle}: {exc}")
            return True

        return await self._deliver(connection, snapshot_message(snapshot))

    def leave(self, connection: ObserverConnection) -> bool:
        """Remove an observer. Idempotent; True only if it was registered.

        A connection that never joined is left untouched.
        """
        if self._connections.get(connection.handle) is not connection:
            return False
        del self._connections[connection.handle]
        connection.mark_closed()
        logger.info(f"👋 Observer {connection.handle} left ({self.connection_count} live)")
        return True

    async def broadcast_snapshot(self, snapshot: Snapshot) -> int:
        """
        Deliver a snapshot to every open observer

        Sends run concurrently and each is bounded by `send_timeout`, so one
        slow or broken observer cannot hold up the others.

        Returns:
            Number of observers that received the snapshot
        """
        targets = [conn for conn in list(self._connections.values()) if conn.is_open]
        if not targets:
            return 0
        message = snapshot_message(snapshot)
        results = await asyncio.gather(*(self._deliver(conn, message) for conn in targets))
        delivered = sum(1 for ok in results if ok)
        logger.debug(f"Snapshot of {len(snapshot)} entries delivered to {delivered}/{len(targets)} observers")
        return delivered

    async def _deliver(self, connection: ObserverConnection, message: dict) -> bool:
        if not connection.is_open:
            return False
        try:
            await asyncio.wait_for(connection.send(message), timeout=self.send_timeout)
        except DeliveryFailure as exc:
            logger.warning(f"⚠️ {exc}; dropping observer")
            self.leave(connection)
            return False
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ Observer {connection.handle} timed out after {self.send_timeout}s; dropping")
            self.leave(connection)
            return False
        return True

    async def serve(self, connection: ObserverConnection, gateway) -> None:
        """
        Run one observer's lifecycle: handshake, join, dispatch loop, leave

        Inbound messages are processed one at a time per connection; other
        connections are served by their own `serve` coroutine.
        """
        try:
            await connection.accept()
        except DeliveryFailure as exc:
            logger.warning(f"⚠️ {exc}")
            connection.mark_closed()
            return

        handlers: Dict[str, MessageHandler] = {
            SCORE_DELTA: lambda conn, data: self._on_score_delta(conn, data, gateway),
        }

        try:
            await self.join(connection)
            while connection.is_open:
                raw = await connection.receive_text()
                if raw is None:
                    break
                await self.dispatch(connection, raw, handlers)
        finally:
            self.leave(connection)
            await connection.close()

    async def dispatch(self, connection: ObserverConnection, raw: str, handlers: Dict[str, MessageHandler]) -> None:
        """Route one inbound message; unknown or malformed messages are ignored"""
        try:
            message = InboundMessage.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning(f"Ignoring malformed message from {connection.handle}: {exc.error_count()} error(s)")
            return

        handler = handlers.get(message.type)
        if handler is None:
            logger.debug(f"Ignoring message type {message.type!r} from {connection.handle}")
            return
        await handler(connection, message.data or {})

    async def _on_score_delta(self, connection: ObserverConnection, data: dict, gateway) -> None:
        try:
            intent = ScoreDeltaData.model_validate(data)
        except ValidationError:
            logger.warning(f"Ignoring malformed {SCORE_DELTA} payload from {connection.handle}: {data!r}")
            return

        try:
            await gateway.apply_score_delta(intent.participant_id, intent.delta)
        except InvalidInput as exc:
            logger.warning(f"Rejected {SCORE_DELTA} from {connection.handle}: {exc}")
        except StoreUnavailable as exc:
            logger.error(f"❌ Score update from {connection.handle} failed: {exc}")

    async def close_all(self) -> None:
        """Close every observer (process shutdown)"""
        connections = list(self._connections.values())
        for connection in connections:
            self.leave(connection)
        for connection in connections:
            await connection.close()
        if connections:
            logger.info(f"🛑 Closed {len(connections)} observer connection(s)")
