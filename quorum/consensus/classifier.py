"""Consensus classification.

Competes the bundles of a bucket against each other, picks the leader by
net score and classifies it against the field's ConsensusSettings.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from quorum.schemas.consensus import (
    BundleTally,
    ConsensusResult,
    ConsensusSettings,
    ConsensusStatus,
)

logger = logging.getLogger(__name__)


def select_leader(tallies: Sequence[BundleTally]) -> BundleTally | None:
    """Bundle with the highest net score.

    Ties go to the higher upvote count, then to the earlier bundle.
    """
    leader: BundleTally | None = None
    for tally in tallies:
        if leader is None or (tally.net, tally.up) > (leader.net, leader.up):
            leader = tally
    return leader


def confidence_of(up: int, voters: int) -> float:
    """Share of all bucket voters backing the leader, in [0, 1]."""
    if voters <= 0:
        return 0.0
    return max(0.0, min(1.0, up / voters))


def classify(confidence: float, voters: int, settings: ConsensusSettings) -> ConsensusStatus:
    if voters < settings.min_voters:
        return ConsensusStatus.PENDING
    if confidence >= settings.consensus_threshold:
        return ConsensusStatus.CONSENSUS
    if confidence < settings.dispute_threshold:
        return ConsensusStatus.PENDING
    return ConsensusStatus.DISPUTED


class ConsensusClassifier:
    """Turns bundle tallies into a ConsensusResult."""

    def __init__(self, defaults: ConsensusSettings | None = None) -> None:
        self.defaults = defaults or ConsensusSettings()

    def compute(
        self,
        tallies: Sequence[BundleTally],
        labels: dict[str, str],
        voters: int,
        settings: ConsensusSettings | None = None,
    ) -> ConsensusResult:
        """Classify a bucket.

        Args:
            tallies: One tally per bundle root, in display order.
            labels: Root id -> label.
            voters: Distinct users with a direct vote anywhere in the bucket.
            settings: Thresholds; the classifier defaults when omitted.

        Returns:
            ConsensusResult for the leading bundle.
        """
        settings = settings or self.defaults
        leader = select_leader(tallies)
        if leader is None:
            return ConsensusResult(status=ConsensusStatus.PENDING, voters=voters)

        confidence = confidence_of(leader.up, voters)
        status = classify(confidence, voters, settings)
        logger.debug(
            "Leader %s: %d up / %d down of %d voters -> %s (%.2f)",
            leader.root_id, leader.up, leader.down, voters, status.value, confidence,
        )
        return ConsensusResult(
            status=status,
            label=labels.get(leader.root_id),
            confidence=confidence,
            voters=voters,
            net_votes=leader.net,
            suggestion_id=leader.root_id,
        )
