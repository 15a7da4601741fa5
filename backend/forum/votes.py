"""
Vote engine shared by the REST and WebSocket paths.

A vote is not stored on its own: it is membership of a user id in a target's
liked_by / disliked_by sets. This module only computes the next membership;
applying it to the database is the store's job (see store.apply_vote).
"""
from dataclasses import dataclass


LIKE = 'like'
DISLIKE = 'dislike'
VOTE_ACTIONS = (LIKE, DISLIKE)

LIKED = 'liked'
DISLIKED = 'disliked'
REMOVED = 'removed'


@dataclass(frozen=True)
class VoteResult:
    liked: frozenset
    disliked: frozenset
    outcome: str

    @property
    def score(self):
        return score(self.liked, self.disliked)


def score(liked, disliked):
    """Score is always recomputed from the sets, never kept as a counter."""
    return len(liked) - len(disliked)


def apply_vote(liked, disliked, user_id, action):
    """
    Return the membership after ``user_id`` casts ``action`` on a target.

    Any prior vote is cleared first. Repeating the vote the user already
    holds is a toggle-off and leaves the user in neither set.
    """
    if action not in VOTE_ACTIONS:
        raise ValueError(f"Unknown vote action: {action!r}")

    previous = LIKE if user_id in liked else DISLIKE if user_id in disliked else None

    next_liked = set(liked)
    next_disliked = set(disliked)
    next_liked.discard(user_id)
    next_disliked.discard(user_id)

    if previous == action:
        outcome = REMOVED
    elif action == LIKE:
        next_liked.add(user_id)
        outcome = LIKED
    else:
        next_disliked.add(user_id)
        outcome = DISLIKED

    return VoteResult(frozenset(next_liked), frozenset(next_disliked), outcome)
