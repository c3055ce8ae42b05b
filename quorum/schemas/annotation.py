"""Annotation record schemas.

Defines the bucket key (BucketKey), vote direction (VoteDirection), the
stored suggestion record and its read model (SuggestionRecord, Suggestion),
the create/update payloads (SuggestionDraft, SuggestionPatch), comments
(Comment) and moderation merge edges (MergeEdge).
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field


def new_id() -> str:
    """Opaque unique identifier for suggestions and comments."""
    return uuid.uuid4().hex


def utc_now() -> datetime:
    return datetime.now(UTC)


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps from older snapshots are taken as UTC.
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class VoteDirection(StrEnum):
    """Direction of a single vote."""

    UP = "up"
    DOWN = "down"

    @property
    def opposite(self) -> VoteDirection:
        return VoteDirection.DOWN if self is VoteDirection.UP else VoteDirection.UP


class BucketKey(BaseModel):
    """One votable category: a category index within a categorical field.

    Frozen so it can be used directly as a dictionary key.
    """

    model_config = ConfigDict(frozen=True)

    field_key: str = Field(min_length=1, description="Categorical field identifier")
    category_index: int = Field(ge=0, description="Category position within the field")

    @classmethod
    def of(cls, field_key: str, category_index: int) -> BucketKey:
        return cls(field_key=field_key, category_index=category_index)

    @classmethod
    def parse(cls, raw: str) -> BucketKey:
        """Parse the ``field:index`` form used at the snapshot boundary.

        Splits on the last colon so field keys may contain colons.
        """
        field_key, sep, index = str(raw).rpartition(":")
        if not sep or not field_key:
            raise ValueError(f"Invalid bucket key: {raw!r}")
        return cls(field_key=field_key, category_index=int(index))

    def __str__(self) -> str:
        return f"{self.field_key}:{self.category_index}"


class SuggestionDraft(BaseModel):
    """Payload for proposing a new label."""

    label: str = Field(description="Proposed cell-type label")
    ontology_id: str | None = Field(default=None, description="Ontology term id (e.g. CL:0000235)")
    evidence: str | None = Field(default=None, description="Free-text supporting evidence")
    markers: list[str] | None = Field(default=None, description="Supporting marker gene symbols")


class SuggestionPatch(BaseModel):
    """Partial update of a suggestion.

    Only fields explicitly set are applied; an explicit ``None`` clears an
    optional field. ``label`` can be changed but never cleared.
    """

    label: str | None = None
    ontology_id: str | None = None
    evidence: str | None = None
    markers: list[str] | None = None


class SuggestionRecord(BaseModel):
    """A stored label proposal for one bucket."""

    id: str = Field(default_factory=new_id, description="Unique suggestion id")
    label: str = Field(description="Proposed label")
    ontology_id: str | None = Field(default=None, description="Ontology term id")
    evidence: str | None = Field(default=None, description="Supporting evidence")
    markers: list[str] = Field(default_factory=list, description="Marker gene symbols")
    proposed_by: str = Field(description="Normalized username of the proposer")
    proposed_at: UtcDatetime = Field(default_factory=utc_now, description="Creation time (UTC)")


class Suggestion(SuggestionRecord):
    """Read model of a suggestion with live votes, comments and merge info."""

    upvotes: list[str] = Field(default_factory=list, description="Users voting up")
    downvotes: list[str] = Field(default_factory=list, description="Users voting down")
    comment_count: int = Field(default=0, ge=0, description="Number of comments")
    merged_from: list[Suggestion] = Field(
        default_factory=list,
        description="Suggestions folded into this one by moderation merges",
    )
    merge_notes: list[str] = Field(
        default_factory=list,
        description="Notes of the merges that folded suggestions into this one",
    )

    @property
    def net_votes(self) -> int:
        return len(self.upvotes) - len(self.downvotes)


Suggestion.model_rebuild()


class Comment(BaseModel):
    """A discussion comment attached to one suggestion."""

    id: str = Field(default_factory=new_id, description="Unique comment id")
    suggestion_id: str = Field(description="Suggestion the comment belongs to")
    author_username: str = Field(description="Normalized username of the author")
    text: str = Field(description="Comment body")
    created_at: UtcDatetime = Field(default_factory=utc_now, description="Creation time (UTC)")
    edited_at: UtcDatetime | None = Field(default=None, description="Last edit time (UTC)")


class MergeEdge(BaseModel):
    """A moderator decision folding one suggestion into another."""

    bucket: BucketKey = Field(description="Bucket both suggestions belong to")
    from_suggestion_id: str = Field(min_length=1, description="Suggestion being merged away")
    into_suggestion_id: str = Field(min_length=1, description="Suggestion receiving the merge")
    note: str | None = Field(default=None, description="Why the merge was made")
    by: str = Field(default="", description="Moderator who recorded the merge")
    at: UtcDatetime = Field(default_factory=utc_now, description="When the merge was recorded")
    edited_at: UtcDatetime | None = Field(default=None, description="Last note edit time")
