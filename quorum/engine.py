"""Annotation engine: the public operation surface.

Wires the suggestion store, vote ledger, comment threads, merge graph,
bundle aggregator and consensus classifier together. Every mutating
operation validates and authorizes first, applies the change, and only
then emits a single ``changed`` event.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from quorum.consensus.aggregator import BundleVoteAggregator
from quorum.consensus.classifier import ConsensusClassifier
from quorum.consensus.duplicates import find_duplicates
from quorum.errors import AuthorizationError, ValidationError
from quorum.events import ChangeEventBus, ChangeListener, Unsubscribe
from quorum.identity import IdentityContext, StaticIdentity, normalize_username, require_username
from quorum.ledger.suggestions import SuggestionStore
from quorum.merge.graph import MergeGraph
from quorum.schemas.annotation import (
    BucketKey,
    Comment,
    MergeEdge,
    Suggestion,
    SuggestionDraft,
    SuggestionPatch,
    VoteDirection,
    utc_now,
)
from quorum.schemas.config import EngineConfig
from quorum.schemas.consensus import BundleVoteInfo, ConsensusResult, ConsensusSettings
from quorum.schemas.snapshot import MergesDocument, StateSnapshot, VoterRecord

logger = logging.getLogger(__name__)

BucketLike = BucketKey | tuple[str, int]


def as_bucket(bucket: BucketLike) -> BucketKey:
    """Accept a BucketKey or a ``(field_key, category_index)`` pair."""
    if isinstance(bucket, BucketKey):
        return bucket
    try:
        field_key, category_index = bucket
        return BucketKey(field_key=str(field_key).strip(), category_index=category_index)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"invalid bucket: {bucket!r}") from e


def _validate_model(model: type, payload: Any, what: str) -> Any:
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(f"invalid {what}: {e}") from e


class AnnotationEngine:
    """Community annotation state for one dataset.

    Users can be passed explicitly to every operation; when omitted, the
    identity context's current user acts.
    """

    def __init__(
        self,
        identity: IdentityContext | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self.identity = identity or StaticIdentity()
        self.config = config or EngineConfig()
        self._bus = ChangeEventBus()
        self._classifier = ConsensusClassifier(self.config.consensus)
        self._annotated_fields: list[str] = []
        self._closed_fields: set[str] = set()
        self._field_settings: dict[str, ConsensusSettings] = {}
        self._store, self._graph, self._aggregator = self._build_components()

    def _build_components(self) -> tuple[SuggestionStore, MergeGraph, BundleVoteAggregator]:
        store = SuggestionStore(self.config.limits)
        graph = MergeGraph(
            self._is_moderator, max_note_len=self.config.limits.max_merge_note_len,
        )
        aggregator = BundleVoteAggregator(store.votes, graph, self.config.tie_break)
        return store, graph, aggregator

    # ── Helpers ─────────────────────────────────────────────────────

    def _user(self, user: str | None) -> str:
        return require_username(self.identity.current_user if user is None else user)

    def _is_moderator(self, user: str) -> bool:
        return bool(user) and self.identity.is_author(user)

    def _require_author(self, user: str, action: str) -> None:
        if not self._is_moderator(user):
            raise AuthorizationError(f"only authors can {action}")

    @staticmethod
    def _field(field_key: str) -> str:
        key = str(field_key or "").strip()
        if not key:
            raise ValidationError("field_key required")
        return key

    @staticmethod
    def _direction(direction: VoteDirection | str) -> VoteDirection:
        try:
            return VoteDirection(direction)
        except ValueError as e:
            raise ValidationError(f"invalid vote direction: {direction!r}") from e

    def _check_writable(self, bucket: BucketKey, user: str) -> None:
        field_key = bucket.field_key
        if self.config.require_annotated_fields and not self.is_field_annotated(field_key):
            raise ValidationError(f"field {field_key!r} is not enabled for annotation")
        if self.is_field_closed(field_key) and not self._is_moderator(user):
            raise AuthorizationError(f"field {field_key!r} is closed for annotation")

    def _live(self, bucket: BucketKey) -> list[str]:
        return self._store.ids(bucket)

    def _emit(self, operation: str, bucket: BucketKey | None = None, **data: Any) -> None:
        self._bus.emit(operation, bucket, **data)

    # ── Construction and buckets ────────────────────────────────────

    @classmethod
    def from_snapshot(
        cls,
        snapshot: StateSnapshot | Mapping[str, Any],
        identity: IdentityContext | None = None,
        config: EngineConfig | None = None,
    ) -> AnnotationEngine:
        engine = cls(identity=identity, config=config)
        engine.load_state(snapshot)
        return engine

    def get_buckets(self) -> list[BucketKey]:
        """Buckets holding at least one suggestion, by field then category."""
        return sorted(self._store.buckets(), key=lambda b: (b.field_key, b.category_index))

    # ── Events ──────────────────────────────────────────────────────

    def on_changed(self, listener: ChangeListener) -> Unsubscribe:
        """Subscribe to the ``changed`` event; returns an unsubscribe handle."""
        return self._bus.subscribe(listener)

    # ── Votes ───────────────────────────────────────────────────────

    def vote(
        self,
        bucket: BucketLike,
        suggestion_id: str,
        user: str | None,
        direction: VoteDirection | str,
    ) -> VoteDirection | None:
        """Toggle a vote; returns the recorded direction or None if cleared."""
        key = as_bucket(bucket)
        voter = self._user(user)
        dir_ = self._direction(direction)
        self._store.find(key, suggestion_id)
        self._check_writable(key, voter)

        result = self._store.votes.vote(key, suggestion_id, voter, dir_)
        self._emit(
            "vote", key, suggestion_id=suggestion_id, user=voter,
            direction=result.value if result else None,
        )
        return result

    def get_my_vote_direct(
        self, bucket: BucketLike, suggestion_id: str, user: str | None = None,
    ) -> VoteDirection | None:
        key = as_bucket(bucket)
        self._store.find(key, suggestion_id)
        return self._store.votes.direct_vote_of(key, suggestion_id, self._user(user))

    def get_my_bundle_vote_info(
        self, bucket: BucketLike, suggestion_id: str, user: str | None = None,
    ) -> BundleVoteInfo:
        key = as_bucket(bucket)
        self._store.find(key, suggestion_id)
        return self._aggregator.my_bundle_vote_info(
            key, suggestion_id, self._user(user), self._live(key),
        )

    # ── Suggestions ─────────────────────────────────────────────────

    def add_suggestion(
        self,
        bucket: BucketLike,
        draft: SuggestionDraft | Mapping[str, Any],
        proposed_by: str | None = None,
    ) -> str:
        """Propose a label; returns the new suggestion id."""
        key = as_bucket(bucket)
        proposer = self._user(proposed_by)
        payload = _validate_model(SuggestionDraft, draft, "suggestion")
        self._check_writable(key, proposer)

        suggestion_id = self._store.add_suggestion(key, payload, proposer)
        self._emit("add_suggestion", key, suggestion_id=suggestion_id)
        return suggestion_id

    def edit_suggestion(
        self,
        bucket: BucketLike,
        suggestion_id: str,
        patch: SuggestionPatch | Mapping[str, Any],
        requesting_user: str | None = None,
    ) -> Suggestion:
        key = as_bucket(bucket)
        user = self._user(requesting_user)
        changes = _validate_model(SuggestionPatch, patch, "suggestion patch")
        self._store.find(key, suggestion_id)
        self._check_writable(key, user)

        self._store.edit_suggestion(key, suggestion_id, changes, user)
        self._emit(
            "edit_suggestion", key, suggestion_id=suggestion_id,
            fields=sorted(changes.model_fields_set),
        )
        return self._store.view(key, suggestion_id)

    def delete_suggestion(
        self, bucket: BucketLike, suggestion_id: str, requesting_user: str | None = None,
    ) -> None:
        """Delete a suggestion with its votes, comments and merge edges."""
        key = as_bucket(bucket)
        user = self._user(requesting_user)
        self._store.find(key, suggestion_id)
        self._check_writable(key, user)

        self._store.delete_suggestion(key, suggestion_id, user)
        detached = self._graph.drop_suggestion(key, suggestion_id)
        self._emit(
            "delete_suggestion", key, suggestion_id=suggestion_id,
            detached_merges=[e.from_suggestion_id for e in detached],
        )

    def get_suggestions(self, bucket: BucketLike) -> list[Suggestion]:
        """Bundle cards in insertion order.

        Merged members are folded into their root's ``merged_from`` and the
        root carries the bundle's deduplicated votes.
        """
        key = as_bucket(bucket)
        live = self._live(key)
        cards: list[Suggestion] = []
        for root, members in self._aggregator.bundles(key, live).items():
            card = self._store.view(key, root)
            if not members:
                cards.append(card)
                continue

            tally = self._aggregator.tally(key, root, live)
            merged_from = sorted(
                (self._store.view(key, sid) for sid in members),
                key=lambda s: (-s.net_votes, s.label.casefold()),
            )
            notes = [
                edge.note for sid in members
                if (edge := self._graph.edge_for(key, sid)) is not None and edge.note
            ]
            cards.append(card.model_copy(update={
                "upvotes": tally.upvoters,
                "downvotes": tally.downvoters,
                "merged_from": merged_from,
                "merge_notes": notes,
                "comment_count": card.comment_count + sum(m.comment_count for m in merged_from),
            }))
        return cards

    def find_duplicate_suggestions(self, bucket: BucketLike) -> list[list[str]]:
        """Advisory groups of bundle roots whose labels normalize equal."""
        key = as_bucket(bucket)
        live = self._live(key)
        roots = self._aggregator.bundles(key, live)
        return find_duplicates(self._store.find(key, sid) for sid in roots)

    # ── Comments ────────────────────────────────────────────────────

    def add_comment(
        self,
        bucket: BucketLike,
        suggestion_id: str,
        text: str,
        author: str | None = None,
    ) -> str:
        key = as_bucket(bucket)
        user = self._user(author)
        self._store.find(key, suggestion_id)
        self._check_writable(key, user)

        comment_id = self._store.comments.add(key, suggestion_id, user, text)
        self._emit("add_comment", key, suggestion_id=suggestion_id, comment_id=comment_id)
        return comment_id

    def _locate_comment(self, bucket: BucketKey, suggestion_id: str, comment_id: str) -> None:
        """Ensure a comment lives in the same bundle as ``suggestion_id``."""
        live = self._live(bucket)
        owner = self._store.comments.owner_of(comment_id)
        if owner is None or owner[0] != bucket or owner[1] not in live:
            raise ValidationError(f"unknown comment: {comment_id}")
        canonical = self._aggregator.canonical_of
        if canonical(bucket, owner[1], live) != canonical(bucket, suggestion_id, live):
            raise ValidationError(f"comment {comment_id} does not belong to {suggestion_id}")

    def edit_comment(
        self,
        bucket: BucketLike,
        suggestion_id: str,
        comment_id: str,
        new_text: str,
        author: str | None = None,
    ) -> Comment:
        key = as_bucket(bucket)
        user = self._user(author)
        self._store.find(key, suggestion_id)
        self._locate_comment(key, suggestion_id, comment_id)
        self._check_writable(key, user)

        comment = self._store.comments.edit(comment_id, user, new_text)
        self._emit("edit_comment", key, suggestion_id=suggestion_id, comment_id=comment_id)
        return comment

    def delete_comment(
        self,
        bucket: BucketLike,
        suggestion_id: str,
        comment_id: str,
        author: str | None = None,
    ) -> None:
        key = as_bucket(bucket)
        user = self._user(author)
        self._store.find(key, suggestion_id)
        self._locate_comment(key, suggestion_id, comment_id)
        self._check_writable(key, user)

        self._store.comments.delete(comment_id, user)
        self._emit("delete_comment", key, suggestion_id=suggestion_id, comment_id=comment_id)

    def get_comments(
        self, bucket: BucketLike, suggestion_id: str, include_merged: bool = True,
    ) -> list[Comment]:
        """Comments newest first.

        For a bundle root, ``include_merged`` adds the comments left on its
        merged members.
        """
        key = as_bucket(bucket)
        self._store.find(key, suggestion_id)
        sources = [suggestion_id]
        if include_merged:
            sources += self._aggregator.members_of(key, suggestion_id, self._live(key))
        if len(sources) == 1:
            return self._store.comments.comments_for(key, suggestion_id)
        combined = [c for sid in sources for c in self._store.comments.history(key, sid)]
        return sorted(reversed(combined), key=lambda c: c.created_at, reverse=True)

    # ── Moderation merges ───────────────────────────────────────────

    def add_moderation_merge(
        self,
        bucket: BucketLike,
        from_suggestion_id: str,
        into_suggestion_id: str,
        note: str | None = None,
        by: str | None = None,
    ) -> MergeEdge:
        key = as_bucket(bucket)
        moderator = self._user(by)
        self._require_author(moderator, "merge suggestions")
        self._store.find(key, from_suggestion_id)
        self._store.find(key, into_suggestion_id)

        edge = self._graph.add_merge(key, from_suggestion_id, into_suggestion_id, note, moderator)
        self._emit(
            "add_moderation_merge", key,
            from_suggestion_id=from_suggestion_id, into_suggestion_id=into_suggestion_id,
        )
        return edge.model_copy()

    def detach_moderation_merge(
        self, bucket: BucketLike, from_suggestion_id: str, by: str | None = None,
    ) -> MergeEdge:
        key = as_bucket(bucket)
        edge = self._graph.detach(key, from_suggestion_id, self._user(by))
        self._emit("detach_moderation_merge", key, from_suggestion_id=from_suggestion_id)
        return edge

    def detach_last_moderation_merge(
        self,
        bucket: BucketLike,
        into_suggestion_id: str | None = None,
        by: str | None = None,
    ) -> MergeEdge | None:
        """Undo the most recent merge in a bucket (optionally within one bundle)."""
        key = as_bucket(bucket)
        edge = self._graph.detach_last(key, self._user(by), into_suggestion_id)
        if edge is not None:
            self._emit(
                "detach_moderation_merge", key, from_suggestion_id=edge.from_suggestion_id,
            )
        return edge

    def edit_moderation_merge_note(
        self,
        bucket: BucketLike,
        from_suggestion_id: str,
        note: str | None,
        by: str | None = None,
    ) -> MergeEdge:
        key = as_bucket(bucket)
        edge = self._graph.edit_note(key, from_suggestion_id, note, self._user(by))
        self._emit("edit_moderation_merge_note", key, from_suggestion_id=from_suggestion_id)
        return edge.model_copy()

    def get_moderation_merges(self, bucket: BucketLike | None = None) -> list[MergeEdge]:
        key = as_bucket(bucket) if bucket is not None else None
        return [edge.model_copy() for edge in self._graph.edges(key)]

    def get_unresolved_merges(self, bucket: BucketLike) -> list[str]:
        """Suggestion ids whose merge chain ends in a cycle."""
        return self._graph.unresolved(as_bucket(bucket))

    def build_moderation_merges_document(self) -> MergesDocument:
        return MergesDocument(
            updated_at=utc_now().isoformat(),
            merges=self.get_moderation_merges(),
        )

    def set_moderation_merges_from_document(
        self, document: MergesDocument | Mapping[str, Any],
    ) -> None:
        """Replace all merges with a published document (newest edge per source wins)."""
        doc = _validate_model(MergesDocument, document, "merges document")
        self._graph.replace_all(doc.merges)
        self._emit("set_moderation_merges", count=len(doc.merges))

    # ── Consensus ───────────────────────────────────────────────────

    def compute_consensus(
        self,
        bucket: BucketLike,
        settings: ConsensusSettings | Mapping[str, Any] | None = None,
    ) -> ConsensusResult:
        key = as_bucket(bucket)
        if settings is None:
            effective = self.get_consensus_settings(key.field_key)
        else:
            effective = _validate_model(ConsensusSettings, settings, "consensus settings")

        live = self._live(key)
        tallies = [
            self._aggregator.tally(key, root, live)
            for root in self._aggregator.bundles(key, live)
        ]
        labels = {t.root_id: self._store.find(key, t.root_id).label for t in tallies}
        return self._classifier.compute(tallies, labels, self._count_voters(key, live), effective)

    def _count_voters(self, bucket: BucketKey, live: Sequence[str]) -> int:
        users: set[str] = set()
        for sid in live:
            users.update(self._store.votes.votes_on(bucket, sid))
        return len(users)

    # ── Field switches ──────────────────────────────────────────────

    def get_annotated_fields(self) -> list[str]:
        return list(self._annotated_fields)

    def is_field_annotated(self, field_key: str) -> bool:
        return str(field_key or "").strip() in self._annotated_fields

    def set_field_annotated(self, field_key: str, enabled: bool, by: str | None = None) -> None:
        """Enable or disable annotation on a field.

        Disabling also reopens the field and drops its consensus settings.
        """
        key = self._field(field_key)
        self._require_author(self._user(by), "change annotated fields")
        enabled = bool(enabled)
        if enabled == self.is_field_annotated(key):
            return
        if enabled:
            self._annotated_fields.append(key)
        else:
            self._annotated_fields.remove(key)
            self._closed_fields.discard(key)
            self._field_settings.pop(key, None)
        logger.info("Field %r annotation %s", key, "enabled" if enabled else "disabled")
        self._emit("set_field_annotated", field_key=key, enabled=enabled)

    def is_field_closed(self, field_key: str) -> bool:
        key = str(field_key or "").strip()
        return key in self._closed_fields and self.is_field_annotated(key)

    def get_closed_fields(self) -> list[str]:
        return sorted(k for k in self._closed_fields if self.is_field_annotated(k))

    def set_field_closed(self, field_key: str, closed: bool, by: str | None = None) -> None:
        """Lock or unlock an annotated field for non-authors."""
        key = self._field(field_key)
        self._require_author(self._user(by), "close fields")
        if not self.is_field_annotated(key):
            raise ValidationError(f"field {key!r} is not enabled for annotation")
        closed = bool(closed)
        if closed == self.is_field_closed(key):
            return
        if closed:
            self._closed_fields.add(key)
        else:
            self._closed_fields.discard(key)
        logger.info("Field %r %s", key, "closed" if closed else "reopened")
        self._emit("set_field_closed", field_key=key, closed=closed)

    def get_consensus_settings(self, field_key: str) -> ConsensusSettings:
        key = str(field_key or "").strip()
        override = self._field_settings.get(key)
        return (override or self.config.consensus).model_copy()

    def set_consensus_settings(
        self,
        field_key: str,
        settings: ConsensusSettings | Mapping[str, Any],
        by: str | None = None,
    ) -> ConsensusSettings:
        key = self._field(field_key)
        self._require_author(self._user(by), "change consensus settings")
        effective = _validate_model(ConsensusSettings, settings, "consensus settings")
        self._field_settings[key] = effective
        self._emit("set_consensus_settings", field_key=key)
        return effective.model_copy()

    # ── Snapshot boundary ───────────────────────────────────────────

    def get_state_snapshot(self) -> StateSnapshot:
        """Independent copy of the complete state."""
        suggestions: dict[str, list] = {}
        votes: dict[str, dict[str, VoterRecord]] = {}
        comments: dict[str, dict[str, list[Comment]]] = {}
        for bucket in self._store.buckets():
            name = str(bucket)
            suggestions[name] = self._store.records(bucket)
            for sid in self._store.ids(bucket):
                voters = self._store.votes.voters_of(bucket, sid)
                if voters.up or voters.down:
                    votes.setdefault(name, {})[sid] = VoterRecord(
                        up=sorted(voters.up), down=sorted(voters.down),
                    )
                history = self._store.comments.history(bucket, sid)
                if history:
                    comments.setdefault(name, {})[sid] = history

        snapshot = StateSnapshot(
            annotated_fields=list(self._annotated_fields),
            closed_fields=self.get_closed_fields(),
            field_settings=dict(self._field_settings),
            suggestions=suggestions,
            votes=votes,
            comments=comments,
            merges=self._graph.edges(),
        )
        return snapshot.model_copy(deep=True)

    def load_state(self, snapshot: StateSnapshot | Mapping[str, Any]) -> None:
        """Replace the whole state with a snapshot.

        The snapshot is validated and loaded into fresh components before
        anything is swapped in, so a bad snapshot leaves the engine as it was.
        """
        snap = _validate_model(StateSnapshot, snapshot, "state snapshot").model_copy(deep=True)
        store, graph, aggregator = self._build_components()

        for raw_bucket, records in snap.suggestions.items():
            bucket = BucketKey.parse(raw_bucket)
            store.restore(bucket, records)
        for raw_bucket, per_suggestion in snap.votes.items():
            bucket = BucketKey.parse(raw_bucket)
            for sid, voters in per_suggestion.items():
                if store.has(bucket, sid):
                    store.votes.restore(
                        bucket, sid,
                        [normalize_username(u) for u in voters.up],
                        [normalize_username(u) for u in voters.down],
                    )
        for raw_bucket, per_suggestion in snap.comments.items():
            bucket = BucketKey.parse(raw_bucket)
            for sid, thread in per_suggestion.items():
                if store.has(bucket, sid):
                    store.comments.restore(bucket, sid, thread)
        graph.replace_all(snap.merges)

        annotated: list[str] = []
        for field_key in snap.annotated_fields:
            key = str(field_key).strip()
            if key and key not in annotated:
                annotated.append(key)

        self._store, self._graph, self._aggregator = store, graph, aggregator
        self._annotated_fields = annotated
        self._closed_fields = {k for k in snap.closed_fields if k in annotated}
        self._field_settings = dict(snap.field_settings)
        logger.info(
            "State loaded: %d buckets, %d merges",
            len(snap.suggestions), len(snap.merges),
        )
        self._emit("load_state")
