"""
Leaderboard service - Assemble and format leaderboard read models
"""
from typing import Dict, Optional

from liveboard.errors import InvalidInput
from liveboard.services.gateway import validate_participant_id


async def get_leaderboard_data(store, limit: Optional[int] = None) -> Dict:
    """
    Get leaderboard data for display

    Args:
        store: Ranking store
        limit: Optional number of top entries (all when None)

    Returns:
        Formatted leaderboard data
    """
    if limit is not None and limit < 0:
        raise InvalidInput("limit must not be negative")

    snapshot = await store.top_n(limit)
    return {
        "data": [entry.model_dump(by_alias=True) for entry in snapshot],
        "total": await store.count(),
    }


async def get_player_rank(store, participant_id: str) -> Optional[Dict]:
    """Rank lookup; None when the participant is unknown"""
    participant_id = validate_participant_id(participant_id)
    rank = await store.rank_of(participant_id)
    if rank is None:
        return None
    return {"participantId": participant_id, "rank": rank}
