"""
FastAPI main application
Real-time leaderboard server

Modular architecture with separated API routers in liveboard/api/:
- health.py: Health check and system status
- players.py: Participant registration, score deltas, rank lookup
- leaderboard.py: Ranking snapshot over HTTP
- realtime.py: WebSocket observers (snapshot pushes, inbound score deltas)

All routers access shared components via the liveboard.state module.
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from liveboard import state
from liveboard.config import load_config
from liveboard.core.hub import BroadcastHub
from liveboard.core.notifier import ChangeNotifier, RedisChangeChannel
from liveboard.core.store import MemoryRankingStore, RedisRankingStore
from liveboard.errors import StoreUnavailable
from liveboard.models import Settings
from liveboard.services.gateway import MutationGateway
from liveboard.utils import create_redis_client, describe_redis_url
from liveboard.version import VERSION

# Import all API routers
from liveboard.api import health, players, leaderboard, realtime


# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def wire(settings: Settings) -> None:
    """Build store, hub, notifier and gateway into global state"""
    channel = None
    if settings.backend == "redis":
        client = create_redis_client(settings.redis_url)
        store = RedisRankingStore(client, key=settings.leaderboard_key)
        if settings.publish_changes:
            channel = RedisChangeChannel(client, channel=settings.channel)
    else:
        store = MemoryRankingStore()

    hub = BroadcastHub(store, send_timeout=settings.send_timeout)
    notifier = ChangeNotifier(store, hub, channel=channel)

    state.SETTINGS = settings
    state.STORE = store
    state.HUB = hub
    state.NOTIFIER = notifier
    state.GATEWAY = MutationGateway(store, notifier)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    settings = load_config()
    logging.getLogger().setLevel(settings.log_level.upper())
    wire(settings)

    try:
        await state.STORE.ping()
        await state.NOTIFIER.start()
    except StoreUnavailable as e:
        logger.error(f"❌ Ranking store unreachable at startup: {e}")
        await state.STORE.close()
        raise

    target = describe_redis_url(settings.redis_url) if settings.backend == "redis" else "memory"
    logger.info(f"✅ Leaderboard server started (store: {target}, instance {state.NOTIFIER.instance_id})")

    yield

    # Shutdown
    logger.info("🛑 Closing observers and store connections...")
    try:
        await state.NOTIFIER.stop()
    finally:
        try:
            await state.HUB.close_all()
        finally:
            await state.STORE.close()


# Create FastAPI app
app = FastAPI(
    title="Liveboard",
    description="Live-ranked leaderboard with real-time WebSocket fan-out",
    version=VERSION,
    lifespan=lifespan
)

# CORS middleware (allow all origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== INCLUDE ROUTERS ====================

# Health check (GET /health)
app.include_router(health.router)

# Participant endpoints (POST /player, POST /player/{id}/score, GET /player/{id}/rank)
app.include_router(players.router)

# Ranking snapshot (GET /leaderboard)
app.include_router(leaderboard.router)

# Observers (WS /ws)
app.include_router(realtime.router)


# ==================== RUN SERVER ====================

if __name__ == "__main__":
    import uvicorn
    settings = load_config()
    uvicorn.run(app, host=settings.host, port=settings.port)
