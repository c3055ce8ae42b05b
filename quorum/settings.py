"""Engine configuration loader.

Loads consensus defaults, input limits and engine switches from
defaults.toml into an EngineConfig.
"""

from __future__ import annotations

import tomllib
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from quorum.schemas.config import EngineConfig, Limits
from quorum.schemas.consensus import ConsensusSettings, TieBreak

# Default config directory relative to the quorum package
CONFIG_DIR = Path(__file__).parent / "config"


def load_engine_config(config_path: Path | None = None) -> EngineConfig:
    """Load engine configuration from a TOML file.

    Args:
        config_path: Path to a TOML file. Defaults to quorum/config/defaults.toml.

    Returns:
        EngineConfig with values from the file; missing keys keep their defaults.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the TOML is malformed or holds invalid values.
    """
    path = config_path or CONFIG_DIR / "defaults.toml"
    if not path.exists():
        raise FileNotFoundError(f"Engine config not found: {path}")

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {path}: {e}") from e

    consensus_section = raw.get("consensus", {})
    limits_section = raw.get("limits", {})
    engine_section = raw.get("engine", {})
    for name, section in (
        ("consensus", consensus_section),
        ("limits", limits_section),
        ("engine", engine_section),
    ):
        if not isinstance(section, dict):
            raise ValueError(f"[{name}] must be a table in {path}")

    consensus_section = dict(consensus_section)
    # tie_break lives beside the thresholds in the file but not in ConsensusSettings
    tie_break_raw = consensus_section.pop("tie_break", TieBreak.UP_FIRST.value)

    try:
        return EngineConfig(
            consensus=ConsensusSettings(**consensus_section),
            tie_break=TieBreak(tie_break_raw),
            limits=Limits(**limits_section),
            require_annotated_fields=engine_section.get("require_annotated_fields", False),
        )
    except (PydanticValidationError, ValueError) as e:
        raise ValueError(f"Invalid engine config in {path}: {e}") from e
