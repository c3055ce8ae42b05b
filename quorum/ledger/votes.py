"""Per-suggestion vote ledger.

One vote per user per suggestion. Casting the same direction twice clears
the vote; casting the opposite direction replaces it. Each cast carries a
monotonic sequence number so callers can tell which vote is more recent.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Iterable
from dataclasses import dataclass

from quorum.schemas.annotation import BucketKey, VoteDirection
from quorum.schemas.consensus import VoterSets

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Cast:
    direction: VoteDirection
    sequence: int


class VoteLedger:
    """Stores direct votes keyed by (bucket, suggestion id)."""

    def __init__(self) -> None:
        self._votes: dict[tuple[BucketKey, str], dict[str, _Cast]] = {}
        self._sequence = itertools.count(1)

    def vote(
        self,
        bucket: BucketKey,
        suggestion_id: str,
        user: str,
        direction: VoteDirection,
    ) -> VoteDirection | None:
        """Toggle a user's vote.

        Returns:
            The direction now recorded, or None if the vote was cleared.
        """
        casts = self._votes.setdefault((bucket, suggestion_id), {})
        current = casts.get(user)
        if current is not None and current.direction is direction:
            del casts[user]
            if not casts:
                del self._votes[(bucket, suggestion_id)]
            logger.debug("Vote cleared: %s on %s/%s", user, bucket, suggestion_id)
            return None

        casts[user] = _Cast(direction, next(self._sequence))
        logger.debug(
            "Vote recorded: %s %s on %s/%s", user, direction.value, bucket, suggestion_id,
        )
        return direction

    def voters_of(self, bucket: BucketKey, suggestion_id: str) -> VoterSets:
        casts = self._votes.get((bucket, suggestion_id), {})
        return VoterSets(
            up=frozenset(u for u, c in casts.items() if c.direction is VoteDirection.UP),
            down=frozenset(u for u, c in casts.items() if c.direction is VoteDirection.DOWN),
        )

    def direct_vote_of(
        self, bucket: BucketKey, suggestion_id: str, user: str,
    ) -> VoteDirection | None:
        cast = self._votes.get((bucket, suggestion_id), {}).get(user)
        return cast.direction if cast else None

    def sequence_of(self, bucket: BucketKey, suggestion_id: str, user: str) -> int | None:
        """Recency stamp of a user's vote; higher means more recent."""
        cast = self._votes.get((bucket, suggestion_id), {}).get(user)
        return cast.sequence if cast else None

    def votes_on(self, bucket: BucketKey, suggestion_id: str) -> dict[str, VoteDirection]:
        """All direct votes on one suggestion as user -> direction."""
        return {
            user: cast.direction
            for user, cast in self._votes.get((bucket, suggestion_id), {}).items()
        }

    def drop(self, bucket: BucketKey, suggestion_id: str) -> int:
        """Remove every vote on a suggestion; returns how many were removed."""
        return len(self._votes.pop((bucket, suggestion_id), {}))

    def restore(
        self,
        bucket: BucketKey,
        suggestion_id: str,
        up: Iterable[str],
        down: Iterable[str],
    ) -> None:
        """Bulk-load votes from a snapshot.

        A user listed under both directions is kept as an upvote only.
        """
        casts: dict[str, _Cast] = {}
        for user in up:
            if user and user not in casts:
                casts[user] = _Cast(VoteDirection.UP, next(self._sequence))
        for user in down:
            if user and user not in casts:
                casts[user] = _Cast(VoteDirection.DOWN, next(self._sequence))
        if casts:
            self._votes[(bucket, suggestion_id)] = casts
        else:
            self._votes.pop((bucket, suggestion_id), None)

    def clear(self) -> None:
        self._votes.clear()

    def keys(self) -> list[tuple[BucketKey, str]]:
        return list(self._votes)
