"""Quorum schema definitions.

All Pydantic v2 models used by the ledger, merge graph, consensus and
snapshot layers.
"""

from quorum.schemas.annotation import (
    BucketKey,
    Comment,
    MergeEdge,
    Suggestion,
    SuggestionDraft,
    SuggestionPatch,
    SuggestionRecord,
    VoteDirection,
)
from quorum.schemas.config import EngineConfig, Limits
from quorum.schemas.consensus import (
    BundleTally,
    BundleVoteInfo,
    ConsensusResult,
    ConsensusSettings,
    ConsensusStatus,
    TieBreak,
    VoterSets,
    VoteSource,
)
from quorum.schemas.snapshot import MergesDocument, StateSnapshot, VoterRecord

__all__ = [
    "BucketKey",
    "BundleTally",
    "BundleVoteInfo",
    "Comment",
    "ConsensusResult",
    "ConsensusSettings",
    "ConsensusStatus",
    "EngineConfig",
    "Limits",
    "MergeEdge",
    "MergesDocument",
    "StateSnapshot",
    "Suggestion",
    "SuggestionDraft",
    "SuggestionPatch",
    "SuggestionRecord",
    "TieBreak",
    "VoteDirection",
    "VoteSource",
    "VoterRecord",
    "VoterSets",
]
