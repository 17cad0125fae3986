"""
Data models for the leaderboard service
"""
from typing import Any, List, Literal, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


# Message types on the real-time transport
SCORE_DELTA = "score:delta"
RANKING_UPDATE = "ranking:update"


class RankedEntry(BaseModel):
    """Read-only projection of one participant at a point in time"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    participant_id: str = Field(alias="participantId")
    score: float


# Score-descending, ties by participant id ascending
Snapshot = Tuple[RankedEntry, ...]


class ScoreChange(BaseModel):
    """Result of one successful score mutation"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    participant_id: str = Field(alias="participantId")
    delta: float
    new_score: float = Field(alias="newScore")


class ChangeEvent(BaseModel):
    """Lightweight cross-process notification published after a mutation"""
    model_config = ConfigDict(populate_by_name=True)

    participant_id: str = Field(alias="participantId")
    delta: float = Field(validation_alias=AliasChoices("delta", "scoreIncrement"))
    new_score: float = Field(alias="newScore")
    origin: str = ""  # instance id of the publisher


class InboundMessage(BaseModel):
    """Envelope of every message received from an observer"""
    type: str
    data: Optional[dict] = None


class ScoreDeltaData(BaseModel):
    """Payload of a `score:delta` message"""
    model_config = ConfigDict(populate_by_name=True)

    participant_id: str = Field(validation_alias=AliasChoices("participantId", "playerId"))
    # Checked by the gateway, so both transports apply the same number rules
    delta: Any = Field(validation_alias=AliasChoices("delta", "scoreIncrement"))


class RankingUpdate(BaseModel):
    """Snapshot push sent to every observer"""
    type: Literal["ranking:update"] = RANKING_UPDATE
    data: List[RankedEntry] = []


class Settings(BaseModel):
    """Service configuration (config file + environment overrides)"""
    backend: Literal["redis", "memory"] = "redis"
    redis_url: str = "redis://localhost:6379"
    leaderboard_key: str = "game:leaderboard"
    channel: str = "score-updates"   # cross-process pub/sub channel
    publish_changes: bool = True
    host: str = "0.0.0.0"
    port: int = 3000
    send_timeout: float = 5.0        # seconds allowed per observer send
    log_level: str = "INFO"


def snapshot_message(snapshot: Snapshot) -> dict:
    """Wire form of a snapshot push"""
    return RankingUpdate(data=list(snapshot)).model_dump(by_alias=True)
