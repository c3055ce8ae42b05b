"""Bundle vote aggregation.

A bundle is a root suggestion plus every suggestion whose merge chain
resolves to it. Users are counted at most once per bundle:

- a direct vote on the root is authoritative;
- otherwise the majority of the user's votes on merged members decides;
- an even split falls back to the configured TieBreak policy.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from quorum.ledger.votes import VoteLedger
from quorum.merge.graph import MergeGraph
from quorum.schemas.annotation import BucketKey, VoteDirection
from quorum.schemas.consensus import BundleTally, BundleVoteInfo, TieBreak, VoteSource

logger = logging.getLogger(__name__)


class BundleVoteAggregator:
    """Computes deduplicated tallies and effective votes for bundles."""

    def __init__(
        self,
        votes: VoteLedger,
        graph: MergeGraph,
        tie_break: TieBreak = TieBreak.UP_FIRST,
    ) -> None:
        self._votes = votes
        self._graph = graph
        self.tie_break = tie_break

    # ── Bundle structure ────────────────────────────────────────────

    def canonical_of(self, bucket: BucketKey, suggestion_id: str, live_ids: Sequence[str]) -> str:
        """Root of the bundle a live suggestion is displayed in.

        Cycles and chains ending at a suggestion that no longer exists
        degrade to a singleton bundle.
        """
        resolved = self._graph.resolve(bucket, suggestion_id)
        if resolved is None or resolved not in live_ids:
            return suggestion_id
        return resolved

    def bundles(self, bucket: BucketKey, live_ids: Sequence[str]) -> dict[str, list[str]]:
        """Root id -> merged member ids (excluding the root), in insertion order."""
        groups: dict[str, list[str]] = {}
        for sid in live_ids:
            root = self.canonical_of(bucket, sid, live_ids)
            groups.setdefault(root, [])
            if root != sid:
                groups[root].append(sid)
        # Roots must appear in their own insertion position.
        return {sid: groups[sid] for sid in live_ids if sid in groups}

    def members_of(self, bucket: BucketKey, root_id: str, live_ids: Sequence[str]) -> list[str]:
        """Live merged members of a bundle root, excluding the root."""
        if self.canonical_of(bucket, root_id, live_ids) != root_id:
            return []
        return [
            sid for sid in self._graph.bundle_members_of(bucket, root_id, live_ids)
            if sid in live_ids
        ]

    # ── Per-user resolution ─────────────────────────────────────────

    def _split(
        self, bucket: BucketKey, user: str, members: Sequence[str],
    ) -> tuple[int, int]:
        up = down = 0
        for sid in members:
            direction = self._votes.direct_vote_of(bucket, sid, user)
            if direction is VoteDirection.UP:
                up += 1
            elif direction is VoteDirection.DOWN:
                down += 1
        return up, down

    def _most_recent(
        self, bucket: BucketKey, user: str, members: Sequence[str],
    ) -> VoteDirection | None:
        latest: tuple[int, VoteDirection] | None = None
        for sid in members:
            direction = self._votes.direct_vote_of(bucket, sid, user)
            sequence = self._votes.sequence_of(bucket, sid, user)
            if direction is None or sequence is None:
                continue
            if latest is None or sequence > latest[0]:
                latest = (sequence, direction)
        return latest[1] if latest else None

    def effective_vote(
        self,
        bucket: BucketKey,
        root_id: str,
        members: Sequence[str],
        user: str,
    ) -> VoteDirection | None:
        """The single vote a user contributes to a bundle's tally."""
        direct = self._votes.direct_vote_of(bucket, root_id, user)
        if direct is not None:
            return direct

        up, down = self._split(bucket, user, members)
        if up > down:
            return VoteDirection.UP
        if down > up:
            return VoteDirection.DOWN
        if up == 0:
            return None

        if self.tie_break is TieBreak.UP_FIRST:
            return VoteDirection.UP
        if self.tie_break is TieBreak.MOST_RECENT:
            return self._most_recent(bucket, user, members)
        return None

    # ── Public results ──────────────────────────────────────────────

    def tally(self, bucket: BucketKey, root_id: str, live_ids: Sequence[str]) -> BundleTally:
        """Deduplicated up/down voters for the bundle rooted at ``root_id``."""
        members = self.members_of(bucket, root_id, live_ids)
        users: set[str] = set()
        for sid in (root_id, *members):
            users.update(self._votes.votes_on(bucket, sid))

        upvoters: list[str] = []
        downvoters: list[str] = []
        for user in sorted(users):
            direction = self.effective_vote(bucket, root_id, members, user)
            if direction is VoteDirection.UP:
                upvoters.append(user)
            elif direction is VoteDirection.DOWN:
                downvoters.append(user)

        return BundleTally(
            root_id=root_id,
            member_ids=members,
            upvoters=upvoters,
            downvoters=downvoters,
        )

    def my_bundle_vote_info(
        self,
        bucket: BucketKey,
        suggestion_id: str,
        user: str,
        live_ids: Sequence[str],
    ) -> BundleVoteInfo:
        """How a user's vote shows on a bundle card.

        A direct vote on the card wins. Delegation only applies to a bundle
        root, by majority of the user's own votes on merged members; an
        even split reports ``none`` with the raw counts.
        """
        direct = self._votes.direct_vote_of(bucket, suggestion_id, user)
        if direct is not None:
            return BundleVoteInfo(vote=direct, source=VoteSource.DIRECT)

        members = self.members_of(bucket, suggestion_id, live_ids)
        if not members:
            return BundleVoteInfo()

        up, down = self._split(bucket, user, members)
        if up > down:
            return BundleVoteInfo(
                vote=VoteDirection.UP, source=VoteSource.DELEGATED,
                delegated_up=up, delegated_down=down,
            )
        if down > up:
            return BundleVoteInfo(
                vote=VoteDirection.DOWN, source=VoteSource.DELEGATED,
                delegated_up=up, delegated_down=down,
            )
        return BundleVoteInfo(delegated_up=up, delegated_down=down)
