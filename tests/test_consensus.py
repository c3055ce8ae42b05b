"""Tests for quorum.consensus.classifier, duplicates and ConsensusSettings."""

from quorum.consensus.classifier import ConsensusClassifier, classify, confidence_of, select_leader
from quorum.consensus.duplicates import find_duplicates, normalize_label
from quorum.schemas.annotation import SuggestionRecord
from quorum.schemas.consensus import BundleTally, ConsensusSettings, ConsensusStatus


# ── Factories ──────────────────────────────────────────────────────


def _make_tally(root: str, up: list[str] = (), down: list[str] = ()) -> BundleTally:
    return BundleTally(root_id=root, upvoters=list(up), downvoters=list(down))


def _make_record(sid: str, label: str) -> SuggestionRecord:
    return SuggestionRecord(id=sid, label=label, proposed_by="alice")


class TestConsensusSettings:
    def test_defaults(self):
        settings = ConsensusSettings()
        assert settings.min_voters == 1
        assert settings.consensus_threshold == 0.5
        assert settings.dispute_threshold == 0.0

    def test_values_are_clamped(self):
        settings = ConsensusSettings(min_voters=500, consensus_threshold=1.7, dispute_threshold=-2)
        assert settings.min_voters == 50
        assert settings.consensus_threshold == 1.0
        assert settings.dispute_threshold == 0.0

    def test_garbage_falls_back(self):
        settings = ConsensusSettings(min_voters="many", consensus_threshold="nan")
        assert settings.min_voters == 1
        assert settings.consensus_threshold == 0.0

    def test_dispute_never_above_consensus(self):
        settings = ConsensusSettings(consensus_threshold=0.4, dispute_threshold=0.9)
        assert settings.dispute_threshold == 0.4


class TestSelectLeader:
    def test_highest_net_wins(self):
        leader = select_leader([
            _make_tally("a", up=["x"]),
            _make_tally("b", up=["x", "y"], down=["z"]),
            _make_tally("c", up=["x", "y"]),
        ])
        assert leader.root_id == "c"

    def test_net_tie_goes_to_more_upvotes(self):
        leader = select_leader([
            _make_tally("a", up=["x"]),
            _make_tally("b", up=["x", "y"], down=["z"]),
        ])
        assert leader.root_id == "b"

    def test_full_tie_goes_to_earlier(self):
        leader = select_leader([_make_tally("a", up=["x"]), _make_tally("b", up=["y"])])
        assert leader.root_id == "a"

    def test_empty(self):
        assert select_leader([]) is None


class TestClassify:
    def test_confidence_bounds(self):
        assert confidence_of(2, 2) == 1.0
        assert confidence_of(0, 0) == 0.0
        assert confidence_of(1, 4) == 0.25

    def test_too_few_voters_is_pending(self):
        assert classify(1.0, 1, ConsensusSettings(min_voters=2)) is ConsensusStatus.PENDING

    def test_above_threshold_is_consensus(self):
        settings = ConsensusSettings(min_voters=2, consensus_threshold=0.66)
        assert classify(0.75, 4, settings) is ConsensusStatus.CONSENSUS

    def test_below_threshold_is_disputed(self):
        settings = ConsensusSettings(min_voters=2, consensus_threshold=0.66)
        assert classify(0.5, 4, settings) is ConsensusStatus.DISPUTED

    def test_below_dispute_threshold_is_pending(self):
        settings = ConsensusSettings(consensus_threshold=0.66, dispute_threshold=0.3)
        assert classify(0.25, 4, settings) is ConsensusStatus.PENDING

    def test_monotonic_in_leader_upvotes(self):
        settings = ConsensusSettings(min_voters=3, consensus_threshold=0.6)
        rank = {
            ConsensusStatus.PENDING: 0,
            ConsensusStatus.DISPUTED: 1,
            ConsensusStatus.CONSENSUS: 2,
        }
        previous = -1
        for up in range(0, 6):
            status = classify(confidence_of(up, 5), 5, settings)
            assert rank[status] >= previous
            previous = rank[status]


class TestConsensusClassifier:
    def test_empty_bucket_is_pending(self):
        result = ConsensusClassifier().compute([], {}, 0)
        assert result.status is ConsensusStatus.PENDING
        assert result.label is None
        assert result.confidence == 0.0

    def test_result_describes_leader(self):
        result = ConsensusClassifier(ConsensusSettings(min_voters=2)).compute(
            [_make_tally("a", up=["bob", "carol"]), _make_tally("b", down=["dave"])],
            {"a": "Macrophage", "b": "Monocyte"},
            voters=3,
        )
        assert result.status is ConsensusStatus.CONSENSUS
        assert result.label == "Macrophage"
        assert result.suggestion_id == "a"
        assert result.net_votes == 2
        assert round(result.confidence, 3) == 0.667

    def test_explicit_settings_override_defaults(self):
        classifier = ConsensusClassifier(ConsensusSettings(min_voters=1))
        result = classifier.compute(
            [_make_tally("a", up=["bob"])], {"a": "Macrophage"}, 1,
            ConsensusSettings(min_voters=5),
        )
        assert result.status is ConsensusStatus.PENDING


class TestDuplicates:
    def test_normalize_label(self):
        assert normalize_label("  Macrophage\t  Cell ") == "macrophage cell"
        assert normalize_label("ＭＡＣＲＯＰＨＡＧＥ") == "macrophage"
        assert normalize_label(None) == ""

    def test_groups_equal_labels(self):
        groups = find_duplicates([
            _make_record("s1", "Macrophage"),
            _make_record("s2", "Monocyte"),
            _make_record("s3", "macrophage "),
            _make_record("s4", "MACROPHAGE"),
        ])
        assert groups == [["s1", "s3", "s4"]]

    def test_no_duplicates(self):
        assert find_duplicates([_make_record("s1", "A"), _make_record("s2", "B")]) == []
