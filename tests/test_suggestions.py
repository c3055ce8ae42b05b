"""Tests for quorum.ledger.suggestions: validation, ownership and cascades."""

import pytest

from quorum.errors import AuthorizationError, ValidationError
from quorum.ledger.suggestions import SuggestionStore, normalize_markers
from quorum.schemas.annotation import BucketKey, SuggestionDraft, SuggestionPatch, VoteDirection
from quorum.schemas.config import Limits

BUCKET = BucketKey.of("cell_type", 3)


# ── Factories ──────────────────────────────────────────────────────


def _make_draft(label: str = "Macrophage", **overrides) -> SuggestionDraft:
    return SuggestionDraft(label=label, **overrides)


def _make_store(**limits) -> SuggestionStore:
    return SuggestionStore(Limits(**limits))


class TestNormalizeMarkers:
    def test_trims_dedupes_and_keeps_first_spelling(self):
        assert normalize_markers([" CD68 ", "cd68", "", "LYZ", None]) == ["CD68", "LYZ"]

    def test_caps_count_and_length(self):
        markers = [f"G{i}" for i in range(60)]
        assert len(normalize_markers(markers)) == 50
        assert normalize_markers(["X" * 80]) == ["X" * 64]

    def test_none_is_empty(self):
        assert normalize_markers(None) == []


class TestAddSuggestion:
    def test_label_is_stripped(self):
        store = _make_store()
        sid = store.add_suggestion(BUCKET, _make_draft("  Macrophage  "), "alice")
        record = store.find(BUCKET, sid)
        assert record.label == "Macrophage"
        assert record.proposed_by == "alice"

    def test_proposer_does_not_auto_vote(self):
        store = _make_store()
        sid = store.add_suggestion(BUCKET, _make_draft(), "alice")
        assert store.view(BUCKET, sid).upvotes == []

    def test_blank_label_rejected(self):
        with pytest.raises(ValidationError, match="label required"):
            _make_store().add_suggestion(BUCKET, _make_draft("   "), "alice")

    def test_label_too_long_rejected(self):
        with pytest.raises(ValidationError, match="label exceeds"):
            _make_store().add_suggestion(BUCKET, _make_draft("x" * 121), "alice")

    def test_ontology_too_long_rejected(self):
        with pytest.raises(ValidationError, match="ontology_id"):
            _make_store().add_suggestion(
                BUCKET, _make_draft(ontology_id="C" * 65), "alice",
            )

    def test_bucket_cap(self):
        store = _make_store(max_suggestions_per_bucket=2)
        store.add_suggestion(BUCKET, _make_draft("A"), "alice")
        store.add_suggestion(BUCKET, _make_draft("B"), "alice")
        with pytest.raises(ValidationError, match="already holds 2"):
            store.add_suggestion(BUCKET, _make_draft("C"), "alice")

    def test_ids_keep_insertion_order(self):
        store = _make_store()
        ids = [store.add_suggestion(BUCKET, _make_draft(lbl), "alice") for lbl in "ABC"]
        assert store.ids(BUCKET) == ids


class TestEditSuggestion:
    def test_owner_can_edit_selected_fields(self):
        store = _make_store()
        sid = store.add_suggestion(
            BUCKET, _make_draft(ontology_id="CL:0000235", evidence="CD68+"), "alice",
        )
        store.edit_suggestion(BUCKET, sid, SuggestionPatch(label="Kupffer cell"), "alice")
        record = store.find(BUCKET, sid)
        assert record.label == "Kupffer cell"
        assert record.ontology_id == "CL:0000235"
        assert record.evidence == "CD68+"

    def test_explicit_none_clears_optional_field(self):
        store = _make_store()
        sid = store.add_suggestion(BUCKET, _make_draft(evidence="CD68+"), "alice")
        store.edit_suggestion(BUCKET, sid, SuggestionPatch(evidence=None), "alice")
        assert store.find(BUCKET, sid).evidence is None

    def test_label_cannot_be_cleared(self):
        store = _make_store()
        sid = store.add_suggestion(BUCKET, _make_draft(), "alice")
        with pytest.raises(ValidationError):
            store.edit_suggestion(BUCKET, sid, SuggestionPatch(label=None), "alice")
        assert store.find(BUCKET, sid).label == "Macrophage"

    def test_non_owner_rejected(self):
        store = _make_store()
        sid = store.add_suggestion(BUCKET, _make_draft(), "alice")
        with pytest.raises(AuthorizationError):
            store.edit_suggestion(BUCKET, sid, SuggestionPatch(label="Other"), "bob")
        assert store.find(BUCKET, sid).label == "Macrophage"

    def test_unknown_suggestion(self):
        with pytest.raises(ValidationError, match="unknown"):
            _make_store().edit_suggestion(BUCKET, "nope", SuggestionPatch(), "alice")


class TestDeleteSuggestion:
    def test_delete_cascades_votes_and_comments(self):
        store = _make_store()
        sid = store.add_suggestion(BUCKET, _make_draft(), "alice")
        store.votes.vote(BUCKET, sid, "bob", VoteDirection.UP)
        store.comments.add(BUCKET, sid, "bob", "agreed")

        store.delete_suggestion(BUCKET, sid, "alice")

        assert not store.has(BUCKET, sid)
        assert store.votes.keys() == []
        assert store.comments.keys() == []
        assert store.buckets() == []

    def test_non_owner_rejected(self):
        store = _make_store()
        sid = store.add_suggestion(BUCKET, _make_draft(), "alice")
        with pytest.raises(AuthorizationError):
            store.delete_suggestion(BUCKET, sid, "bob")
        assert store.has(BUCKET, sid)


class TestView:
    def test_view_attaches_votes_and_comment_count(self):
        store = _make_store()
        sid = store.add_suggestion(BUCKET, _make_draft(), "alice")
        store.votes.vote(BUCKET, sid, "carol", VoteDirection.UP)
        store.votes.vote(BUCKET, sid, "bob", VoteDirection.UP)
        store.votes.vote(BUCKET, sid, "dave", VoteDirection.DOWN)
        store.comments.add(BUCKET, sid, "bob", "agreed")

        view = store.view(BUCKET, sid)
        assert view.upvotes == ["bob", "carol"]
        assert view.downvotes == ["dave"]
        assert view.net_votes == 1
        assert view.comment_count == 1
        assert view.merged_from == []
