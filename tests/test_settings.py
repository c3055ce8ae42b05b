"""Tests for quorum.settings: TOML engine config loading."""

from pathlib import Path

import pytest

from quorum.schemas.config import EngineConfig
from quorum.schemas.consensus import TieBreak
from quorum.settings import CONFIG_DIR, load_engine_config

# Path to the real config file shipped with the package
_DEFAULTS = Path(__file__).parent.parent / "quorum" / "config" / "defaults.toml"


class TestLoadEngineConfig:
    def test_loads_shipped_defaults(self):
        config = load_engine_config(_DEFAULTS)
        assert isinstance(config, EngineConfig)
        assert config.consensus.min_voters == 1
        assert config.consensus.consensus_threshold == 0.5
        assert config.tie_break is TieBreak.UP_FIRST
        assert config.limits.max_label_len == 120
        assert config.limits.max_comments_per_suggestion == 800
        assert config.require_annotated_fields is False

    def test_default_path_matches_package(self):
        assert (CONFIG_DIR / "defaults.toml").exists()
        assert load_engine_config() == load_engine_config(_DEFAULTS)

    def test_shipped_defaults_match_model_defaults(self):
        assert load_engine_config(_DEFAULTS) == EngineConfig()

    def test_partial_file_keeps_defaults(self, tmp_path):
        path = tmp_path / "engine.toml"
        path.write_text('[consensus]\nmin_voters = 3\ntie_break = "abstain"\n')
        config = load_engine_config(path)
        assert config.consensus.min_voters == 3
        assert config.consensus.consensus_threshold == 0.5
        assert config.tie_break is TieBreak.ABSTAIN
        assert config.limits.max_merge_note_len == 512

    def test_thresholds_are_clamped(self, tmp_path):
        path = tmp_path / "engine.toml"
        path.write_text("[consensus]\nconsensus_threshold = 2.5\nmin_voters = -4\n")
        config = load_engine_config(path)
        assert config.consensus.consensus_threshold == 1.0
        assert config.consensus.min_voters == 0

    def test_missing_file_raises(self):
        with pytest.raises(FileNotFoundError):
            load_engine_config(Path("/nonexistent/engine.toml"))

    def test_malformed_toml_raises(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text("[consensus\nmin_voters = ")
        with pytest.raises(ValueError, match="Invalid TOML"):
            load_engine_config(path)

    def test_section_must_be_table(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text('limits = "big"\n')
        with pytest.raises(ValueError, match=r"\[limits\] must be a table"):
            load_engine_config(path)

    def test_unknown_tie_break_raises(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text('[consensus]\ntie_break = "coin_flip"\n')
        with pytest.raises(ValueError, match="Invalid engine config"):
            load_engine_config(path)

    def test_invalid_limit_raises(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text("[limits]\nmax_label_len = 0\n")
        with pytest.raises(ValueError, match="Invalid engine config"):
            load_engine_config(path)
