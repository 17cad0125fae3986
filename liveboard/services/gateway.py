"""
Mutation gateway - validates score-changing intents and applies them

Every mutation is a single atomic store primitive. A successful score change
is handed to the change notifier, which schedules fan-out in the background;
callers get the new score without waiting for delivery.
"""
import logging
import math
from typing import Optional

from liveboard.errors import InvalidInput
from liveboard.models import ScoreChange


logger = logging.getLogger(__name__)


def validate_participant_id(participant_id) -> str:
    if not isinstance(participant_id, str) or not participant_id.strip():
        raise InvalidInput("participantId is required")
    return participant_id


def validate_number(value, field: str) -> float:
    # JSON numbers only; bool is an int subclass and is rejected explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidInput(f"{field} must be a number")
    try:
        number = float(value)
    except OverflowError as exc:
        raise InvalidInput(f"{field} must be a number") from exc
    if not math.isfinite(number):
        raise InvalidInput(f"{field} must be finite")
    return number


class MutationGateway:
    """Single entry point for every change to the ranking store"""

    def __init__(self, store, notifier=None):
        self.store = store
        self.notifier = notifier

    async def register_participant(self, participant_id, initial_score=0.0) -> bool:
        """
        Register a participant once

        Re-registering keeps the existing score. Registration is not a ranking
        change, so nothing is broadcast.

        Returns:
            True if the participant was created, False if it already existed
        """
        participant_id = validate_participant_id(participant_id)
        initial_score = validate_number(0.0 if initial_score is None else initial_score, "initialScore")

        created = await self.store.upsert(participant_id, initial_score)
        if created:
            logger.info(f"✅ Registered {participant_id} with score {initial_score:g}")
        else:
            logger.info(f"Participant {participant_id} already registered; score preserved")
        return created

    async def mutate(self, participant_id, delta) -> ScoreChange:
        """Apply a delta without notifying anyone"""
        participant_id = validate_participant_id(participant_id)
        delta = validate_number(delta, "delta")

        new_score = await self.store.increment_score(participant_id, delta)
        return ScoreChange(participant_id=participant_id, delta=delta, new_score=new_score)

    async def apply_score_delta(self, participant_id, delta) -> float:
        """
        Add delta to a participant's score and trigger fan-out

        Raises:
            InvalidInput: empty id or non-numeric delta (store untouched)
            StoreUnavailable: store unreachable (nothing broadcast)
        """
        change = await self.mutate(participant_id, delta)
        logger.info(f"📈 {change.participant_id} {change.delta:+g} -> {change.new_score:g}")
        if self.notifier is not None:
            self.notifier.notify(change)
        return change.new_score
