"""Consensus schemas.

Defines vote aggregation results for merged bundles (BundleTally,
BundleVoteInfo), consensus classification inputs and outputs
(ConsensusSettings, ConsensusResult), and the enums that drive them.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field, field_validator, model_validator

from quorum.schemas.annotation import VoteDirection


class ConsensusStatus(StrEnum):
    """Outcome of classifying a bucket's votes."""

    PENDING = "pending"
    DISPUTED = "disputed"
    CONSENSUS = "consensus"


class VoteSource(StrEnum):
    """Where a user's effective bundle vote comes from."""

    DIRECT = "direct"
    DELEGATED = "delegated"
    NONE = "none"


class TieBreak(StrEnum):
    """Policy for a user whose votes across merged members are split evenly.

    ``UP_FIRST`` stays the default even though the vote ledger records a
    sequence per cast: a merge is a moderator's call that the members mean
    the same label, so an earlier upvote on one of them is not taken back
    by a later downvote on another.
    """

    UP_FIRST = "up_first"
    MOST_RECENT = "most_recent"
    ABSTAIN = "abstain"


class ConsensusSettings(BaseModel):
    """Per-field thresholds for consensus classification.

    Values are clamped rather than rejected: ``min_voters`` to [0, 50] and
    both thresholds to [0, 1], with the dispute threshold never above the
    consensus threshold.
    """

    min_voters: int = Field(default=1, description="Voters required before a result counts")
    consensus_threshold: float = Field(
        default=0.5, description="Leader confidence needed for consensus",
    )
    dispute_threshold: float = Field(
        default=0.0,
        description="Leader confidence below which a result stays pending",
    )

    @field_validator("min_voters", mode="before")
    @classmethod
    def _clamp_min_voters(cls, value: object) -> int:
        try:
            number = int(float(value))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 1
        return max(0, min(50, number))

    @field_validator("consensus_threshold", "dispute_threshold", mode="before")
    @classmethod
    def _clamp_threshold(cls, value: object) -> float:
        try:
            number = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0.0
        if number != number:  # NaN
            return 0.0
        return max(0.0, min(1.0, number))

    @model_validator(mode="after")
    def _order_thresholds(self) -> ConsensusSettings:
        if self.dispute_threshold > self.consensus_threshold:
            self.dispute_threshold = self.consensus_threshold
        return self


class VoterSets(BaseModel):
    """Direct voters on a single suggestion."""

    up: frozenset[str] = Field(default_factory=frozenset)
    down: frozenset[str] = Field(default_factory=frozenset)


class BundleTally(BaseModel):
    """Deduplicated vote totals for one bundle (root plus merged members)."""

    root_id: str = Field(description="Canonical suggestion id of the bundle")
    member_ids: list[str] = Field(
        default_factory=list, description="Merged member ids, excluding the root",
    )
    upvoters: list[str] = Field(default_factory=list, description="Users counted as up")
    downvoters: list[str] = Field(default_factory=list, description="Users counted as down")

    @property
    def up(self) -> int:
        return len(self.upvoters)

    @property
    def down(self) -> int:
        return len(self.downvoters)

    @property
    def net(self) -> int:
        return self.up - self.down


class BundleVoteInfo(BaseModel):
    """A single user's effective vote on a bundle card."""

    vote: VoteDirection | None = Field(default=None, description="Effective vote, if any")
    source: VoteSource = Field(default=VoteSource.NONE, description="Where the vote comes from")
    delegated_up: int = Field(default=0, ge=0, description="User's up votes on merged members")
    delegated_down: int = Field(default=0, ge=0, description="User's down votes on merged members")


class ConsensusResult(BaseModel):
    """Consensus outcome for one bucket."""

    status: ConsensusStatus = Field(description="pending, disputed or consensus")
    label: str | None = Field(default=None, description="Label of the leading bundle")
    confidence: float = Field(
        default=0.0, ge=0.0, le=1.0, description="Leader upvotes over distinct voters",
    )
    voters: int = Field(default=0, ge=0, description="Distinct users who voted in the bucket")
    net_votes: int = Field(default=0, description="Leader upvotes minus downvotes")
    suggestion_id: str | None = Field(default=None, description="Leading bundle root id")
