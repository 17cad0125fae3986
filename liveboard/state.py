"""
Global application state
Shared components, wired at startup by the lifespan handler in liveboard.main
"""
from typing import Optional

from liveboard.core.hub import BroadcastHub
from liveboard.core.notifier import ChangeNotifier
from liveboard.core.store import RankingStore
from liveboard.models import Settings
from liveboard.services.gateway import MutationGateway


SETTINGS: Optional[Settings] = None

STORE: Optional[RankingStore] = None

HUB: Optional[BroadcastHub] = None

NOTIFIER: Optional[ChangeNotifier] = None

GATEWAY: Optional[MutationGateway] = None
