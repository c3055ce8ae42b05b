"""Tests for the Quorum CLI.

Covers every command, --help output and error exits via CliRunner.
"""

from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from quorum import __version__
from quorum.cli import app
from quorum.engine import AnnotationEngine
from quorum.export import export_json
from quorum.identity import StaticIdentity
from quorum.schemas.annotation import BucketKey

# NO_COLOR=1 keeps Rich from injecting ANSI codes into the output.
# COLUMNS=200 prevents wrapping that could split values across lines.
runner = CliRunner(env={"NO_COLOR": "1", "COLUMNS": "200"})

BUCKET = BucketKey.of("cell_type", 3)


# ── Factories ──────────────────────────────────────────────────────


def _make_snapshot(tmp_path: Path, cycle: bool = False) -> Path:
    engine = AnnotationEngine(identity=StaticIdentity(current_user="alice", authors=["mod"]))
    s1 = engine.add_suggestion(BUCKET, {"label": "Macrophage"})
    s2 = engine.add_suggestion(BUCKET, {"label": "macrophage"}, proposed_by="dave")
    s3 = engine.add_suggestion(BUCKET, {"label": "Monocyte"}, proposed_by="erin")
    engine.add_suggestion(("batch", 0), {"label": "Batch A"}, proposed_by="erin")
    engine.vote(BUCKET, s1, "bob", "up")
    engine.vote(BUCKET, s1, "carol", "up")
    if cycle:
        engine.add_moderation_merge(BUCKET, s2, s3, by="mod")
        engine.add_moderation_merge(BUCKET, s3, s2, by="mod")
    else:
        engine.add_moderation_merge(BUCKET, s2, s1, note="case only", by="mod")

    path = tmp_path / "state.json"
    path.write_text(export_json(engine.get_state_snapshot()), encoding="utf-8")
    return path


class TestHelpAndVersion:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("consensus", "suggestions", "merges", "duplicates", "report", "config"):
            assert command in result.output


class TestConsensusCommand:
    def test_table(self, tmp_path):
        result = runner.invoke(app, ["consensus", str(_make_snapshot(tmp_path))])
        assert result.exit_code == 0
        assert "cell_type" in result.output
        assert "consensus" in result.output
        assert "Macrophage" in result.output

    def test_field_filter(self, tmp_path):
        result = runner.invoke(
            app, ["consensus", str(_make_snapshot(tmp_path)), "--field", "batch"],
        )
        assert result.exit_code == 0
        assert "Batch A" in result.output
        assert "Macrophage" not in result.output

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["consensus", str(tmp_path / "missing.json")])
        assert result.exit_code == 1
        assert "Cannot read snapshot" in result.output

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        result = runner.invoke(app, ["consensus", str(path)])
        assert result.exit_code == 1
        assert "Invalid snapshot" in result.output

    def test_custom_config(self, tmp_path):
        config = tmp_path / "engine.toml"
        config.write_text("[consensus]\nmin_voters = 5\n")
        snapshot = _make_snapshot(tmp_path)
        result = runner.invoke(app, ["--config", str(config), "consensus", str(snapshot)])
        assert result.exit_code == 0
        assert "pending" in result.output


class TestSuggestionsCommand:
    def test_bundle_cards(self, tmp_path):
        result = runner.invoke(
            app, ["suggestions", str(_make_snapshot(tmp_path)), "cell_type", "3"],
        )
        assert result.exit_code == 0
        assert "Macrophage" in result.output
        assert "macrophage" in result.output  # listed under Merged From
        assert "@alice" in result.output

    def test_empty_bucket(self, tmp_path):
        result = runner.invoke(
            app, ["suggestions", str(_make_snapshot(tmp_path)), "cell_type", "9"],
        )
        assert result.exit_code == 0
        assert "No suggestions" in result.output


class TestMergesCommand:
    def test_lists_edges(self, tmp_path):
        result = runner.invoke(app, ["merges", str(_make_snapshot(tmp_path))])
        assert result.exit_code == 0
        assert "case only" in result.output
        assert "ok" in result.output

    def test_flags_cycles(self, tmp_path):
        result = runner.invoke(app, ["merges", str(_make_snapshot(tmp_path, cycle=True))])
        assert result.exit_code == 0
        assert "cycle" in result.output


class TestDuplicatesCommand:
    def test_reports_groups(self, tmp_path):
        result = runner.invoke(app, ["duplicates", str(_make_snapshot(tmp_path, cycle=True))])
        assert result.exit_code == 0
        assert "'Macrophage'" in result.output
        assert "'macrophage'" in result.output

    def test_none_found(self, tmp_path):
        result = runner.invoke(app, ["duplicates", str(_make_snapshot(tmp_path))])
        assert result.exit_code == 0
        assert "No duplicate labels" in result.output


class TestReportCommand:
    def test_markdown_to_file(self, tmp_path):
        out = tmp_path / "report.md"
        result = runner.invoke(
            app, ["report", str(_make_snapshot(tmp_path)), "--output", str(out)],
        )
        assert result.exit_code == 0
        assert out.read_text().startswith("# Annotation Consensus Report")

    def test_json_to_stdout(self, tmp_path):
        result = runner.invoke(
            app, ["report", str(_make_snapshot(tmp_path)), "--format", "json"],
        )
        assert result.exit_code == 0
        assert '"cell_type:3"' in result.output

    def test_invalid_format(self, tmp_path):
        result = runner.invoke(
            app, ["report", str(_make_snapshot(tmp_path)), "--format", "pdf"],
        )
        assert result.exit_code == 1
        assert "Invalid format" in result.output


class TestConfigCommands:
    def test_show(self):
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "Min Voters" in result.output
        assert "up_first" in result.output
        assert "max_label_len" in result.output

    def test_show_bad_config(self, tmp_path):
        result = runner.invoke(app, ["--config", str(tmp_path / "nope.toml"), "config", "show"])
        assert result.exit_code == 1
        assert "Error loading config" in result.output

    def test_path(self):
        result = runner.invoke(app, ["config", "path"])
        assert result.exit_code == 0
        assert "defaults.toml" in result.output
        assert "found" in result.output
