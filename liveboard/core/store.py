"""
Ranking store - authoritative participant -> score mapping

Two backends share one contract:

- RedisRankingStore: a Redis sorted set. Every mutation is a single server-side
  primitive (ZADD NX, ZINCRBY) and every read is a single command or Lua script,
  so reads never observe a half-applied mutation.
- MemoryRankingStore: in-process dict for local development and tests. Mutations
  run without suspension points, which makes them atomic on the event loop.

Ordering: score descending, ties broken by participant id ascending. Redis
returns equal-score members in reverse lexicographic order from ZREVRANGE, so
the adapter re-applies the tie-break instead of relying on backend order.
"""
import heapq
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional, Tuple

from redis import exceptions as redis_errors

from liveboard.errors import StoreUnavailable
from liveboard.models import RankedEntry, Snapshot


logger = logging.getLogger(__name__)


def ranking_key(item: Tuple[str, float]) -> Tuple[float, str]:
    """Sort key placing higher scores first, ties by id ascending"""
    participant_id, score = item
    return (-score, participant_id)


def to_snapshot(items: Iterable[Tuple[str, float]], limit: Optional[int] = None) -> Snapshot:
    if limit is None:
        ordered = sorted(items, key=ranking_key)
    else:
        ordered = heapq.nsmallest(limit, items, key=ranking_key)
    return tuple(RankedEntry(participant_id=pid, score=score) for pid, score in ordered)


class RankingStore(ABC):
    """Contract shared by all ranking store backends"""

    @abstractmethod
    async def upsert(self, participant_id: str, initial_score: float = 0.0) -> bool:
        """Insert if absent, keep the existing score otherwise. True when inserted."""

    @abstractmethod
    async def increment_score(self, participant_id: str, delta: float) -> float:
        """Atomically add delta (creating the participant at delta) and return the new score"""

    @abstractmethod
    async def top_n(self, n: Optional[int] = None) -> Snapshot:
        """Top n entries, or every entry when n is None"""

    @abstractmethod
    async def rank_of(self, participant_id: str) -> Optional[int]:
        """1-based descending rank, None when the participant is unknown"""

    @abstractmethod
    async def count(self) -> int:
        ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class MemoryRankingStore(RankingStore):
    """In-process backend (single event loop, no persistence)"""

    def __init__(self, initial: Optional[Dict[str, float]] = None):
        self._scores: Dict[str, float] = dict(initial or {})

    async def upsert(self, participant_id: str, initial_score: float = 0.0) -> bool:
        if participant_id in self._scores:
            return False
        self._scores[participant_id] = float(initial_score)
        return True

    async def increment_score(self, participant_id: str, delta: float) -> float:
        new_score = self._scores.get(participant_id, 0.0) + float(delta)
        self._scores[participant_id] = new_score
        return new_score

    async def top_n(self, n: Optional[int] = None) -> Snapshot:
        if n is not None and n <= 0:
            return ()
        return to_snapshot(list(self._scores.items()), n)

    async def rank_of(self, participant_id: str) -> Optional[int]:
        score = self._scores.get(participant_id)
        if score is None:
            return None
        target = ranking_key((participant_id, score))
        ahead = sum(1 for item in self._scores.items() if ranking_key(item) < target)
        return ahead + 1

    async def count(self) -> int:
        return len(self._scores)


# Top-n read in one atomic script. Members tied with the last returned score
# are appended so the id tie-break can be applied across the cut-off.
TOP_N_SCRIPT = """
local limit = tonumber(ARGV[1])
if limit < 0 then
  return redis.call('ZREVRANGE', KEYS[1], 0, -1, 'WITHSCORES')
end
local head = redis.call('ZREVRANGE', KEYS[1], 0, limit - 1, 'WITHSCORES')
if #head < limit * 2 then
  return head
end
local cutoff = head[#head]
local tied = redis.call('ZRANGEBYSCORE', KEYS[1], cutoff, cutoff, 'WITHSCORES')
for i = 1, #tied do
  head[#head + 1] = tied[i]
end
return head
"""

# Rank consistent with the top-n ordering: members strictly above plus
# equal-score members with a smaller id. Ids are compared byte by byte;
# Lua string "<" follows the server locale (strcoll).
RANK_SCRIPT = """
local function bytes_before(a, b)
  local n = math.min(#a, #b)
  for i = 1, n do
    local x, y = string.byte(a, i), string.byte(b, i)
    if x ~= y then
      return x < y
    end
  end
  return #a < #b
end

local score = redis.call('ZSCORE', KEYS[1], ARGV[1])
if not score then
  return false
end
local above = redis.call('ZCOUNT', KEYS[1], '(' .. score, '+inf')
local tied = redis.call('ZRANGEBYSCORE', KEYS[1], score, score)
local before = 0
for i = 1, #tied do
  if bytes_before(tied[i], ARGV[1]) then
    before = before + 1
  end
end
return above + before + 1
"""


@contextmanager
def unavailable_on_connection_error(operation: str):
    """Translate redis connectivity errors into StoreUnavailable"""
    try:
        yield
    except (redis_errors.ConnectionError, redis_errors.TimeoutError) as exc:
        logger.error(f"❌ Ranking store unreachable during {operation}: {exc}")
        raise StoreUnavailable(f"{operation} failed: {exc}") from exc


def score_pairs(raw: List) -> List[Tuple[str, float]]:
    """[member, score, member, score, ...] -> [(member, score), ...]"""
    pairs = []
    for i in range(0, len(raw), 2):
        member = raw[i]
        if isinstance(member, bytes):
            member = member.decode("utf-8")
        pairs.append((member, float(raw[i + 1])))
    return pairs


class RedisRankingStore(RankingStore):
    """Sorted-set backend; the client should use decode_responses=True"""

    def __init__(self, client, key: str = "game:leaderboard"):
        self.client = client
        self.key = key
        self._top_n = client.register_script(TOP_N_SCRIPT)
        self._rank = client.register_script(RANK_SCRIPT)

    async def upsert(self, participant_id: str, initial_score: float = 0.0) -> bool:
        with unavailable_on_connection_error("upsert"):
            added = await self.client.zadd(self.key, {participant_id: float(initial_score)}, nx=True)
        return bool(added)

    async def increment_score(self, participant_id: str, delta: float) -> float:
        with unavailable_on_connection_error("increment_score"):
            new_score = await self.client.zincrby(self.key, float(delta), participant_id)
        return float(new_score)

    async def top_n(self, n: Optional[int] = None) -> Snapshot:
        if n is not None and n <= 0:
            return ()
        with unavailable_on_connection_error("top_n"):
            raw = await self._top_n(keys=[self.key], args=[-1 if n is None else n])
        # Tied members may appear twice (head + tie scan)
        unique = dict(score_pairs(raw))
        return to_snapshot(unique.items(), n)

    async def rank_of(self, participant_id: str) -> Optional[int]:
        with unavailable_on_connection_error("rank_of"):
            rank = await self._rank(keys=[self.key], args=[participant_id])
        return int(rank) if rank is not None else None

    async def count(self) -> int:
        with unavailable_on_connection_error("count"):
            return int(await self.client.zcard(self.key))

    async def ping(self) -> bool:
        with unavailable_on_connection_error("ping"):
            return bool(await self.client.ping())

    async def close(self) -> None:
        await self.client.aclose()
