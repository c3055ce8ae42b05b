"""Tests for quorum.export: JSON and Markdown reports."""

import json

from quorum.engine import AnnotationEngine
from quorum.export import export_json, export_markdown
from quorum.identity import StaticIdentity
from quorum.schemas.annotation import BucketKey

BUCKET = BucketKey.of("cell_type", 3)


# ── Factories ──────────────────────────────────────────────────────


def _make_engine() -> AnnotationEngine:
    engine = AnnotationEngine(identity=StaticIdentity(current_user="alice", authors=["mod"]))
    s1 = engine.add_suggestion(BUCKET, {"label": "Macrophage", "ontology_id": "CL:0000235"})
    s2 = engine.add_suggestion(BUCKET, {"label": "Macrophage "}, proposed_by="dave")
    engine.add_suggestion(BUCKET, {"label": "Mono|cyte"}, proposed_by="erin")
    engine.vote(BUCKET, s1, "bob", "up")
    engine.vote(BUCKET, s1, "carol", "up")
    engine.add_moderation_merge(BUCKET, s2, s1, note="trailing space", by="mod")
    return engine


class TestExportJson:
    def test_is_valid_json_snapshot(self):
        data = json.loads(export_json(_make_engine().get_state_snapshot()))
        assert data["version"] == 1
        assert "cell_type:3" in data["suggestions"]
        assert len(data["merges"]) == 1


class TestExportMarkdown:
    def test_report_sections(self):
        md = export_markdown(_make_engine())
        assert md.startswith("# Annotation Consensus Report")
        assert "## cell_type / category 3" in md
        assert "- **Status:** CONSENSUS" in md
        assert "- **Label:** Macrophage" in md
        assert "- **Voters:** 2" in md
        assert "*Generated by Quorum*" in md

    def test_bundle_rows_and_notes(self):
        md = export_markdown(_make_engine())
        assert "| Macrophage | CL:0000235 | 2 | 0 | +2 | @alice | Macrophage |" in md
        assert "- trailing space" in md

    def test_pipes_are_escaped(self):
        assert "Mono\\|cyte" in export_markdown(_make_engine())

    def test_empty_engine(self):
        md = export_markdown(AnnotationEngine())
        assert "- **Buckets:** 0" in md
        assert "##" not in md
