"""Moderation merge graph.

Per bucket, a forest of ``from -> into`` edges recorded by moderators.
Each source id has at most one active outgoing edge. Merges are recorded
optimistically: only self-merges are rejected at insert time, and cycles
are detected lazily by ``resolve``, which fails closed by returning None.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from quorum.errors import AuthorizationError, ValidationError
from quorum.schemas.annotation import BucketKey, MergeEdge, utc_now

logger = logging.getLogger(__name__)


class MergeGraph:
    """Owns merge edges and resolves suggestion ids to their bundle root."""

    def __init__(
        self,
        is_moderator: Callable[[str], bool],
        max_note_len: int = 512,
    ) -> None:
        self._is_moderator = is_moderator
        self._max_note_len = max_note_len
        self._edges: dict[BucketKey, dict[str, MergeEdge]] = {}

    # ── Validation ──────────────────────────────────────────────────

    def _authorize(self, by: str, action: str) -> None:
        if not self._is_moderator(by):
            raise AuthorizationError(f"only moderators can {action}")

    def _clean_note(self, note: str | None) -> str | None:
        cleaned = str(note or "").strip()
        if len(cleaned) > self._max_note_len:
            raise ValidationError(
                f"merge note exceeds {self._max_note_len} characters ({len(cleaned)})"
            )
        return cleaned or None

    def _require_edge(self, bucket: BucketKey, from_id: str) -> MergeEdge:
        edge = self._edges.get(bucket, {}).get(from_id)
        if edge is None:
            raise ValidationError(f"no merge recorded for {from_id} in {bucket}")
        return edge

    # ── Resolution ──────────────────────────────────────────────────

    def resolve(self, bucket: BucketKey, from_id: str) -> str | None:
        """Follow the merge chain from ``from_id`` to its terminal id.

        Returns:
            The canonical id (``from_id`` itself when it has no outgoing
            edge), or None when the chain revisits a node.
        """
        edges = self._edges.get(bucket, {})
        current = from_id
        seen = {current}
        while current in edges:
            nxt = edges[current].into_suggestion_id
            if nxt in seen:
                logger.warning("Merge cycle in %s reached from %s via %s", bucket, from_id, nxt)
                return None
            seen.add(nxt)
            current = nxt
        return current

    def bundle_members_of(
        self,
        bucket: BucketKey,
        canonical_id: str,
        candidates: Iterable[str] = (),
    ) -> list[str]:
        """Ids whose chain resolves to ``canonical_id``, excluding the root.

        Scans every edge source in the bucket plus any extra ``candidates``.
        """
        ordered: list[str] = []
        for sid in [*candidates, *self._edges.get(bucket, {})]:
            if sid not in ordered:
                ordered.append(sid)
        return [
            sid for sid in ordered
            if sid != canonical_id and self.resolve(bucket, sid) == canonical_id
        ]

    def unresolved(self, bucket: BucketKey) -> list[str]:
        """Edge sources whose chains end in a cycle."""
        return [sid for sid in self._edges.get(bucket, {}) if self.resolve(bucket, sid) is None]

    # ── Queries ─────────────────────────────────────────────────────

    def edge_for(self, bucket: BucketKey, from_id: str) -> MergeEdge | None:
        return self._edges.get(bucket, {}).get(from_id)

    def edges(self, bucket: BucketKey | None = None) -> list[MergeEdge]:
        """Edges sorted by bucket then source id."""
        if bucket is not None:
            selected = list(self._edges.get(bucket, {}).values())
        else:
            selected = [e for per_bucket in self._edges.values() for e in per_bucket.values()]
        return sorted(selected, key=lambda e: (str(e.bucket), e.from_suggestion_id))

    def edges_into(self, bucket: BucketKey, into_id: str) -> list[MergeEdge]:
        return [
            e for e in self._edges.get(bucket, {}).values()
            if e.into_suggestion_id == into_id
        ]

    # ── Mutations ───────────────────────────────────────────────────

    def add_merge(
        self,
        bucket: BucketKey,
        from_id: str,
        into_id: str,
        note: str | None,
        by: str,
    ) -> MergeEdge:
        """Record ``from_id -> into_id``, replacing any edge from ``from_id``."""
        self._authorize(by, "merge suggestions")
        if from_id == into_id:
            raise ValidationError("cannot merge a suggestion into itself")
        edge = MergeEdge(
            bucket=bucket,
            from_suggestion_id=from_id,
            into_suggestion_id=into_id,
            note=self._clean_note(note),
            by=by,
        )
        per_bucket = self._edges.setdefault(bucket, {})
        replaced = per_bucket.pop(from_id, None)
        per_bucket[from_id] = edge
        if replaced is not None:
            logger.info(
                "Merge %s -> %s in %s replaced by -> %s (%s)",
                from_id, replaced.into_suggestion_id, bucket, into_id, by,
            )
        else:
            logger.info("Merge %s -> %s recorded in %s by %s", from_id, into_id, bucket, by)
        return edge

    def _remove(self, bucket: BucketKey, from_id: str) -> MergeEdge:
        per_bucket = self._edges[bucket]
        edge = per_bucket.pop(from_id)
        if not per_bucket:
            del self._edges[bucket]
        return edge

    def detach(self, bucket: BucketKey, from_id: str, by: str) -> MergeEdge:
        """Remove the outgoing edge of ``from_id``, restoring its own bundle."""
        self._authorize(by, "detach merges")
        self._require_edge(bucket, from_id)
        edge = self._remove(bucket, from_id)
        logger.info("Merge %s -> %s detached in %s by %s", from_id, edge.into_suggestion_id, bucket, by)
        return edge

    def detach_last(
        self, bucket: BucketKey, by: str, into_id: str | None = None,
    ) -> MergeEdge | None:
        """Detach the most recently recorded edge in a bucket.

        With ``into_id``, only edges whose chain ends at the same root as
        ``into_id`` are considered.
        """
        self._authorize(by, "detach merges")
        per_bucket = self._edges.get(bucket, {})
        target = (self.resolve(bucket, into_id) or into_id) if into_id else None

        best: tuple[object, int, str] | None = None
        for position, (from_id, edge) in enumerate(per_bucket.items()):
            if target is not None and (self.resolve(bucket, from_id) or from_id) != target:
                continue
            rank = (edge.at, position, from_id)
            if best is None or rank[:2] > best[:2]:
                best = rank
        if best is None:
            return None
        return self.detach(bucket, best[2], by)

    def edit_note(self, bucket: BucketKey, from_id: str, note: str | None, by: str) -> MergeEdge:
        """Replace the note of an existing edge without touching the merge."""
        self._authorize(by, "edit merge notes")
        edge = self._require_edge(bucket, from_id)
        updated = edge.model_copy(update={"note": self._clean_note(note), "edited_at": utc_now()})
        self._edges[bucket][from_id] = updated
        return updated

    def drop_suggestion(self, bucket: BucketKey, suggestion_id: str) -> list[MergeEdge]:
        """Remove every edge that starts or ends at a deleted suggestion."""
        per_bucket = self._edges.get(bucket, {})
        doomed = [
            from_id for from_id, edge in per_bucket.items()
            if suggestion_id in (from_id, edge.into_suggestion_id)
        ]
        removed = [self._remove(bucket, from_id) for from_id in doomed]
        for edge in removed:
            if edge.into_suggestion_id == suggestion_id:
                logger.warning(
                    "Merge %s -> %s in %s detached: target deleted",
                    edge.from_suggestion_id, suggestion_id, bucket,
                )
        return removed

    def replace_all(self, edges: Iterable[MergeEdge]) -> None:
        """Load edges, keeping the newest per (bucket, source).

        Newer ``at`` wins; equal timestamps fall back to the later position.
        Self-merges are dropped.
        """
        newest: dict[tuple[BucketKey, str], MergeEdge] = {}
        for edge in edges:
            if edge.from_suggestion_id == edge.into_suggestion_id:
                continue
            key = (edge.bucket, edge.from_suggestion_id)
            previous = newest.get(key)
            if previous is None or edge.at >= previous.at:
                newest.pop(key, None)
                newest[key] = edge

        self._edges = {}
        for (bucket, from_id), edge in newest.items():
            self._edges.setdefault(bucket, {})[from_id] = edge

    def clear(self) -> None:
        self._edges.clear()
