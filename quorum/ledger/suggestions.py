"""Suggestion store: label proposals per bucket, with their votes and comments.

The store is the sole owner of suggestion, vote and comment records. Every
operation validates before it mutates, so a raised error leaves the store
unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from quorum.errors import AuthorizationError, ValidationError
from quorum.identity import normalize_username
from quorum.ledger.comments import CommentThread
from quorum.ledger.votes import VoteLedger
from quorum.schemas.annotation import (
    BucketKey,
    Suggestion,
    SuggestionDraft,
    SuggestionPatch,
    SuggestionRecord,
)
from quorum.schemas.config import Limits

logger = logging.getLogger(__name__)


def _clamp(value: str | None, max_len: int) -> str:
    return str(value or "").strip()[:max_len].strip()


def normalize_markers(markers: Iterable[str] | None, limit: int = 50, max_len: int = 64) -> list[str]:
    """Trim, drop blanks, dedupe case-insensitively (first spelling wins), cap."""
    out: list[str] = []
    seen: set[str] = set()
    for raw in markers or []:
        gene = str(raw or "").strip()[:max_len]
        if not gene or gene.casefold() in seen:
            continue
        seen.add(gene.casefold())
        out.append(gene)
        if len(out) >= limit:
            break
    return out


class SuggestionStore:
    """Owns suggestions keyed by bucket, plus one vote ledger and comment thread."""

    def __init__(self, limits: Limits | None = None) -> None:
        self.limits = limits or Limits()
        self.votes = VoteLedger()
        self.comments = CommentThread(
            max_len=self.limits.max_comment_len,
            max_per_suggestion=self.limits.max_comments_per_suggestion,
        )
        self._buckets: dict[BucketKey, dict[str, SuggestionRecord]] = {}

    # ── Validation ──────────────────────────────────────────────────

    def _clean_label(self, label: str | None) -> str:
        cleaned = str(label or "").strip()
        if not cleaned:
            raise ValidationError("label required")
        if len(cleaned) > self.limits.max_label_len:
            raise ValidationError(
                f"label exceeds {self.limits.max_label_len} characters ({len(cleaned)})"
            )
        return cleaned

    @staticmethod
    def _clean_optional(value: str | None, max_len: int, name: str) -> str | None:
        cleaned = str(value or "").strip()
        if len(cleaned) > max_len:
            raise ValidationError(f"{name} exceeds {max_len} characters ({len(cleaned)})")
        return cleaned or None

    def _markers(self, markers: Iterable[str] | None) -> list[str]:
        return normalize_markers(
            markers, limit=self.limits.max_markers, max_len=self.limits.max_marker_len,
        )

    # ── Queries ─────────────────────────────────────────────────────

    def buckets(self) -> list[BucketKey]:
        return list(self._buckets)

    def ids(self, bucket: BucketKey) -> list[str]:
        """Suggestion ids of a bucket in insertion order."""
        return list(self._buckets.get(bucket, {}))

    def has(self, bucket: BucketKey, suggestion_id: str) -> bool:
        return suggestion_id in self._buckets.get(bucket, {})

    def find(self, bucket: BucketKey, suggestion_id: str) -> SuggestionRecord:
        records = self._buckets.get(bucket)
        if records is None:
            raise ValidationError(f"unknown bucket: {bucket}")
        record = records.get(suggestion_id)
        if record is None:
            raise ValidationError(f"unknown suggestion {suggestion_id} in {bucket}")
        return record

    def records(self, bucket: BucketKey) -> list[SuggestionRecord]:
        return list(self._buckets.get(bucket, {}).values())

    def view(self, bucket: BucketKey, suggestion_id: str) -> Suggestion:
        """Read model of one suggestion with its direct votes and comment count."""
        record = self.find(bucket, suggestion_id)
        voters = self.votes.voters_of(bucket, suggestion_id)
        return Suggestion(
            **record.model_dump(),
            upvotes=sorted(voters.up),
            downvotes=sorted(voters.down),
            comment_count=self.comments.count(bucket, suggestion_id),
        )

    def get(self, bucket: BucketKey) -> list[Suggestion]:
        """Suggestions in insertion order with live vote lists and comment counts."""
        return [self.view(bucket, sid) for sid in self.ids(bucket)]

    # ── Mutations ───────────────────────────────────────────────────

    def add_suggestion(
        self, bucket: BucketKey, draft: SuggestionDraft, proposed_by: str,
    ) -> str:
        label = self._clean_label(draft.label)
        ontology_id = self._clean_optional(
            draft.ontology_id, self.limits.max_ontology_len, "ontology_id",
        )
        evidence = self._clean_optional(
            draft.evidence, self.limits.max_evidence_len, "evidence",
        )
        existing = self._buckets.get(bucket, {})
        if len(existing) >= self.limits.max_suggestions_per_bucket:
            raise ValidationError(
                f"{bucket} already holds {self.limits.max_suggestions_per_bucket} suggestions"
            )

        record = SuggestionRecord(
            label=label,
            ontology_id=ontology_id,
            evidence=evidence,
            markers=self._markers(draft.markers),
            proposed_by=proposed_by,
        )
        self._buckets.setdefault(bucket, {})[record.id] = record
        logger.debug("Suggestion %s (%r) added to %s by %s", record.id, label, bucket, proposed_by)
        return record.id

    def _authorize_owner(self, record: SuggestionRecord, requesting_user: str, action: str) -> None:
        if record.proposed_by != requesting_user:
            raise AuthorizationError(
                f"cannot {action} a suggestion proposed by someone else"
            )

    def edit_suggestion(
        self,
        bucket: BucketKey,
        suggestion_id: str,
        patch: SuggestionPatch,
        requesting_user: str,
    ) -> SuggestionRecord:
        record = self.find(bucket, suggestion_id)
        self._authorize_owner(record, requesting_user, "edit")

        changes: dict[str, object] = {}
        fields = patch.model_fields_set
        if "label" in fields:
            changes["label"] = self._clean_label(patch.label)
        if "ontology_id" in fields:
            changes["ontology_id"] = self._clean_optional(
                patch.ontology_id, self.limits.max_ontology_len, "ontology_id",
            )
        if "evidence" in fields:
            changes["evidence"] = self._clean_optional(
                patch.evidence, self.limits.max_evidence_len, "evidence",
            )
        if "markers" in fields:
            changes["markers"] = self._markers(patch.markers)

        updated = record.model_copy(update=changes)
        self._buckets[bucket][suggestion_id] = updated
        return updated

    def delete_suggestion(
        self, bucket: BucketKey, suggestion_id: str, requesting_user: str,
    ) -> SuggestionRecord:
        """Remove a suggestion with its votes and comments."""
        record = self.find(bucket, suggestion_id)
        self._authorize_owner(record, requesting_user, "delete")

        del self._buckets[bucket][suggestion_id]
        if not self._buckets[bucket]:
            del self._buckets[bucket]
        dropped_votes = self.votes.drop(bucket, suggestion_id)
        dropped_comments = self.comments.drop(bucket, suggestion_id)
        logger.debug(
            "Suggestion %s deleted from %s (%d votes, %d comments removed)",
            suggestion_id, bucket, dropped_votes, dropped_comments,
        )
        return record

    def _sanitize(self, record: SuggestionRecord) -> SuggestionRecord | None:
        """Clamp a persisted record to the current limits; None if its label is blank."""
        label = _clamp(record.label, self.limits.max_label_len)
        if not label:
            return None
        return record.model_copy(update={
            "label": label,
            "ontology_id": _clamp(record.ontology_id, self.limits.max_ontology_len) or None,
            "evidence": _clamp(record.evidence, self.limits.max_evidence_len) or None,
            "markers": self._markers(record.markers),
            "proposed_by": normalize_username(record.proposed_by) or "local",
        })

    def restore(self, bucket: BucketKey, records: Iterable[SuggestionRecord]) -> None:
        """Bulk-load a bucket from a snapshot.

        Records are clamped to the limits; duplicate ids, blank labels and
        anything past the bucket cap are skipped.
        """
        loaded: dict[str, SuggestionRecord] = {}
        for record in records:
            if record.id in loaded:
                continue
            cleaned = self._sanitize(record)
            if cleaned is None:
                logger.warning("Skipping suggestion %s in %s: blank label", record.id, bucket)
                continue
            loaded[record.id] = cleaned
            if len(loaded) >= self.limits.max_suggestions_per_bucket:
                break
        if loaded:
            self._buckets[bucket] = loaded

    def clear(self) -> None:
        self._buckets.clear()
        self.votes.clear()
        self.comments.clear()
