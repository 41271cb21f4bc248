"""Vote tally: turns a set of votes into an elimination or a tie-break.

Everything here is pure; callers load votes and players from the database
and persist whatever outcome comes back.
"""

import random
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from liarcard.models import WINNER_LIAR, WINNER_PLAYERS

NO_VOTES = 'no-votes'
PLURALITY = 'plurality'
TIE_BREAKER = 'tie-breaker'
TIE_BREAKER_TIMEOUT = 'tie-breaker-timeout'


@dataclass(frozen=True)
class Elimination:
    target_id: Optional[int]
    reason: str


@dataclass(frozen=True)
class TieBreak:
    candidates: Tuple[int, ...]
    tie_breaker_id: int


Outcome = Union[Elimination, TieBreak]


def quorum_reached(vote_count: int, player_count: int) -> bool:
    return player_count > 0 and vote_count >= player_count


def winner_for(eliminated_id: Optional[int], liar_id: Optional[int]) -> str:
    if eliminated_id is not None and eliminated_id == liar_id:
        return WINNER_PLAYERS
    return WINNER_LIAR


def first_non_liar(player_ids: Sequence[int], liar_id: Optional[int]) -> Optional[int]:
    return next((pid for pid in player_ids if pid != liar_id), None)


def tally_votes(
    votes: Iterable[Tuple[int, int]],
    player_ids: Sequence[int],
    liar_id: Optional[int],
    rng: Optional[random.Random] = None,
) -> Outcome:
    """Resolve a closed voting window.

    ``player_ids`` must be ordered by player order; that order breaks every
    tie deterministically. Votes from or against non-members are ignored.
    """
    rng = rng or random
    members = set(player_ids)
    counts = Counter(
        target for voter, target in votes
        if voter in members and target in members
    )
    if not counts:
        return Elimination(first_non_liar(player_ids, liar_id), NO_VOTES)

    top = max(counts.values())
    leaders = [pid for pid in player_ids if counts.get(pid) == top]
    if len(leaders) == 1:
        return Elimination(leaders[0], PLURALITY)

    eligible = [pid for pid in player_ids if pid != liar_id]
    if not eligible:
        return Elimination(leaders[0], TIE_BREAKER_TIMEOUT)
    return TieBreak(candidates=tuple(leaders), tie_breaker_id=rng.choice(eligible))


def resolve_tie_break(
    candidates: Sequence[int],
    player_ids: Sequence[int],
    liar_id: Optional[int],
    choice: Optional[int] = None,
) -> Elimination:
    """Final say of a tie-break: the tie-breaker's choice, else the first candidate still present."""
    members = set(player_ids)
    if choice is not None and choice in members:
        return Elimination(choice, TIE_BREAKER)
    remaining: List[int] = [pid for pid in candidates if pid in members]
    if remaining:
        return Elimination(remaining[0], TIE_BREAKER_TIMEOUT)
    return Elimination(first_non_liar(player_ids, liar_id), TIE_BREAKER_TIMEOUT)
