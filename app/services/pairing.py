from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from app.core.errors import InfeasibleError, ValidationError
from app.services.exclusions import ExclusionSet

DEFAULT_MAX_STEPS = 200_000

INFEASIBLE_MESSAGE = (
    "Unable to create Secret Santa assignments: the exclusions make a valid draw impossible."
)


@dataclass(frozen=True)
class DrawnPairing:
    giver_user_id: str
    recipient_user_id: str


def _allowed_recipients(
    participants: Sequence[str],
    exclusions: ExclusionSet,
    rng: random.Random,
) -> Dict[str, List[str]]:
    allowed: Dict[str, List[str]] = {}
    for giver in participants:
        choices = [
            recipient
            for recipient in participants
            if recipient != giver and not exclusions.forbids(giver, recipient)
        ]
        rng.shuffle(choices)
        allowed[giver] = choices
    return allowed


def generate_pairings(
    participant_ids: Sequence[str],
    exclusions: Optional[ExclusionSet] = None,
    seed: Optional[int] = None,
    rng: Optional[random.Random] = None,
    max_steps: int = DEFAULT_MAX_STEPS,
) -> List[DrawnPairing]:
    """Draw a derangement of ``participant_ids`` that avoids every exclusion.

    Givers are visited in a shuffled order and each giver tries its own
    shuffled candidate list, backtracking on dead ends with an explicit stack.
    The search is exhaustive, so ``InfeasibleError`` means no valid draw
    exists; it is also raised when ``max_steps`` candidate checks run out.
    """
    participants = list(dict.fromkeys(str(participant_id) for participant_id in participant_ids))
    if len(participants) < 2:
        raise ValidationError("At least 2 participants are required.")

    exclusions = (exclusions or ExclusionSet()).restricted_to(participants)
    rng = rng or random.Random(seed)

    order = list(participants)
    rng.shuffle(order)
    allowed = _allowed_recipients(order, exclusions, rng)

    if any(not choices for choices in allowed.values()):
        raise InfeasibleError(INFEASIBLE_MESSAGE)
    reachable = {recipient for choices in allowed.values() for recipient in choices}
    if len(reachable) < len(order):
        raise InfeasibleError(INFEASIBLE_MESSAGE)

    size = len(order)
    cursor = [0] * size
    chosen: List[Optional[str]] = [None] * size
    used = set()
    position = 0
    steps = 0

    while 0 <= position < size:
        giver = order[position]
        if chosen[position] is not None:
            used.discard(chosen[position])
            chosen[position] = None

        choices = allowed[giver]
        while cursor[position] < len(choices):
            steps += 1
            if steps > max_steps:
                raise InfeasibleError(INFEASIBLE_MESSAGE)
            candidate = choices[cursor[position]]
            cursor[position] += 1
            if candidate not in used:
                chosen[position] = candidate
                used.add(candidate)
                break

        if chosen[position] is None:
            cursor[position] = 0
            position -= 1
        else:
            position += 1

    if position < 0:
        raise InfeasibleError(INFEASIBLE_MESSAGE)

    return [
        DrawnPairing(giver_user_id=giver, recipient_user_id=recipient)
        for giver, recipient in zip(order, chosen)
    ]
