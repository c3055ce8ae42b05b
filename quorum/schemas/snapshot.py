"""State snapshot schema.

The snapshot is the only serialization contract of the engine: the external
sync layer loads one in with ``load_state`` and publishes one out from
``get_state_snapshot``. Bucket keys appear in their ``field:index`` form.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from quorum.schemas.annotation import BucketKey, Comment, MergeEdge, SuggestionRecord
from quorum.schemas.consensus import ConsensusSettings

SNAPSHOT_VERSION = 1


class VoterRecord(BaseModel):
    """Direct voters on one suggestion."""

    up: list[str] = Field(default_factory=list)
    down: list[str] = Field(default_factory=list)


class StateSnapshot(BaseModel):
    """Complete engine state as plain structured data."""

    version: int = Field(default=SNAPSHOT_VERSION, description="Snapshot schema version")
    annotated_fields: list[str] = Field(
        default_factory=list, description="Fields enabled for annotation",
    )
    closed_fields: list[str] = Field(
        default_factory=list, description="Annotated fields locked by an author",
    )
    field_settings: dict[str, ConsensusSettings] = Field(
        default_factory=dict, description="Per-field consensus settings overrides",
    )
    suggestions: dict[str, list[SuggestionRecord]] = Field(
        default_factory=dict, description="Bucket -> suggestions in insertion order",
    )
    votes: dict[str, dict[str, VoterRecord]] = Field(
        default_factory=dict, description="Bucket -> suggestion id -> voters",
    )
    comments: dict[str, dict[str, list[Comment]]] = Field(
        default_factory=dict, description="Bucket -> suggestion id -> comments (oldest first)",
    )
    merges: list[MergeEdge] = Field(default_factory=list, description="Moderation merge edges")

    @field_validator("suggestions", "votes", "comments")
    @classmethod
    def _bucket_keys_parse(cls, value: dict) -> dict:
        for raw in value:
            BucketKey.parse(raw)
        return value


class MergesDocument(BaseModel):
    """Published list of moderation merges."""

    version: int = Field(default=1)
    updated_at: str = Field(default="", description="ISO timestamp of publication")
    merges: list[MergeEdge] = Field(default_factory=list)
