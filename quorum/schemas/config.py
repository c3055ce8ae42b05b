"""Engine configuration schemas.

Loaded from quorum/config/defaults.toml by quorum.settings.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from quorum.schemas.consensus import ConsensusSettings, TieBreak


class Limits(BaseModel):
    """Size limits applied to user-supplied text and collections."""

    max_label_len: int = Field(default=120, gt=0, description="Max suggestion label length")
    max_ontology_len: int = Field(default=64, gt=0, description="Max ontology id length")
    max_evidence_len: int = Field(default=2000, gt=0, description="Max evidence text length")
    max_markers: int = Field(default=50, gt=0, description="Max marker genes per suggestion")
    max_marker_len: int = Field(default=64, gt=0, description="Max length of one gene symbol")
    max_suggestions_per_bucket: int = Field(
        default=200, gt=0, description="Max suggestions in a single bucket",
    )
    max_comment_len: int = Field(default=500, gt=0, description="Max comment length")
    max_comments_per_suggestion: int = Field(
        default=800, gt=0, description="Max comments on a single suggestion",
    )
    max_merge_note_len: int = Field(default=512, gt=0, description="Max merge note length")


class EngineConfig(BaseModel):
    """Top-level engine configuration."""

    consensus: ConsensusSettings = Field(
        default_factory=ConsensusSettings,
        description="Default consensus thresholds for fields without overrides",
    )
    tie_break: TieBreak = Field(
        default=TieBreak.UP_FIRST,
        description="How split votes across merged members resolve",
    )
    limits: Limits = Field(default_factory=Limits, description="Input size limits")
    require_annotated_fields: bool = Field(
        default=False,
        description="Reject mutations on fields not enabled for annotation",
    )
