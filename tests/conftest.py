"""
Shared test doubles
"""
import asyncio
from typing import List, Optional

import pytest

from liveboard.core.hub import ObserverConnection
from liveboard.errors import DeliveryFailure, StoreUnavailable
from liveboard.core.store import MemoryRankingStore


class RecordingConnection(ObserverConnection):
    """In-memory observer that records every message pushed to it"""

    def __init__(self, inbound=(), fail: bool = False, delay: float = 0.0, refuse: bool = False):
        super().__init__()
        self.sent: List[dict] = []
        self.inbound = list(inbound)
        self.fail = fail
        self.delay = delay
        self.refuse = refuse
        self.shutdown_called = False

    async def accept(self) -> None:
        if self.refuse:
            raise DeliveryFailure(self.handle, "handshake refused")

    async def receive_text(self) -> Optional[str]:
        if self.inbound:
            return self.inbound.pop(0)
        return None

    async def _transmit(self, message: dict) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise DeliveryFailure(self.handle, "broken pipe")
        self.sent.append(message)

    async def _shutdown(self) -> None:
        self.shutdown_called = True


class UnreachableStore(MemoryRankingStore):
    """Store whose backend is down for every operation"""

    async def upsert(self, participant_id, initial_score=0.0):
        raise StoreUnavailable("connection refused")

    async def increment_score(self, participant_id, delta):
        raise StoreUnavailable("connection refused")

    async def top_n(self, n=None):
        raise StoreUnavailable("connection refused")

    async def rank_of(self, participant_id):
        raise StoreUnavailable("connection refused")

    async def count(self):
        raise StoreUnavailable("connection refused")

    async def ping(self):
        raise StoreUnavailable("connection refused")


@pytest.fixture
def connection_cls():
    return RecordingConnection


@pytest.fixture
def unreachable_store():
    return UnreachableStore()
