"""Consensus layer for Quorum.

Provides bundle vote aggregation across moderation merges, leader
selection and consensus classification, and advisory duplicate detection.
"""

from quorum.consensus.aggregator import BundleVoteAggregator
from quorum.consensus.classifier import (
    ConsensusClassifier,
    classify,
    confidence_of,
    select_leader,
)
from quorum.consensus.duplicates import find_duplicates, normalize_label

__all__ = [
    "BundleVoteAggregator",
    "ConsensusClassifier",
    "classify",
    "confidence_of",
    "find_duplicates",
    "normalize_label",
    "select_leader",
]
