# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Configuration management for SpeechCreek.
Handles loading and saving settings from a YAML config file, and turns the
sync section into the SyncConfig value object used by the sync core.
"""

import copy
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, TypedDict

import yaml

CONFIG_FILENAME: str = ".speechcreek.yaml"

LOW_CONFIDENCE_POLICIES: frozenset[str] = frozenset(["damped", "suppress"])
RATE_POLICIES: frozenset[str] = frozenset(["buckets", "linear"])


class RecognitionSettings(TypedDict):
    """Type definition for speech recognition settings."""
    language: str
    model_path: str | None  # Optional custom Vosk model directory
    sample_rate: int
    auto_restart: bool


class SyncSettings(TypedDict):
    """Type definition for synchronization tuning settings."""
    smoothness: float
    min_confidence: float
    max_low_confidence_adjustment: float
    low_confidence_policy: str  # "damped" or "suppress"
    speed_base: float
    speed_distance: float
    ideal_fraction: float
    band_top_fraction: float
    band_bottom_fraction: float
    control_panel_allowance: float
    match_floor: float
    min_word_length: int
    fuzzy_threshold: float
    rate_policy: str  # "buckets" or "linear"
    frame_interval: float
    char_height_ratio: float


class Config(TypedDict):
    """Type definition for the complete configuration."""
    # Server settings
    host: str
    port: int
    audio_device: int | None
    chunk_ms: int
    recognition: RecognitionSettings
    sync: SyncSettings


# Default configuration values
DEFAULT_CONFIG: Config = {
    # Server settings
    "host": "127.0.0.1",
    "port": 8000,
    "audio_device": None,
    "chunk_ms": 100,

    "recognition": {
        "language": "en-US",
        "model_path": None,
        "sample_rate": 16000,
        # Re-issue start() when the recognizer ends on its own
        "auto_restart": True,
    },

    # Synchronization tuning
    "sync": {
        "smoothness": 0.8,
        # Values as low as 0.05 also work, with more movement on weak matches
        "min_confidence": 0.3,
        "max_low_confidence_adjustment": 100.0,
        "low_confidence_policy": "damped",
        "speed_base": 1.8,
        "speed_distance": 2.0,
        "ideal_fraction": 0.3,
        "band_top_fraction": 1 / 3,
        "band_bottom_fraction": 0.7,
        "control_panel_allowance": 80.0,
        "match_floor": 0.0,
        "min_word_length": 3,
        "fuzzy_threshold": 0.75,
        "rate_policy": "buckets",
        "frame_interval": 1 / 60,
        # Estimated scroll units per character when the renderer
        # has not measured paragraph offsets (30px lines / 50 chars)
        "char_height_ratio": 0.6,
    },
}


@dataclass(frozen=True)
class SyncConfig:
    """Every tunable of the sync core, with its default.

    Attributes:
        smoothness: Fraction of the remaining distance kept per tick (0-1).
        min_confidence: Confidence at which a target is accepted outright.
        max_low_confidence_adjustment: Largest nudge for a weaker match.
        low_confidence_policy: "damped" nudges toward weak matches,
            "suppress" ignores them.
        speed_base: Growth base of the speed curve per level.
        speed_distance: Distance projected ahead at the medium level.
        ideal_fraction: Viewport fraction above the active paragraph.
        band_top_fraction: Paragraphs above this fraction trigger a move.
        band_bottom_fraction: Paragraphs below this fraction (less the
            control panel allowance) trigger a move.
        control_panel_allowance: Viewport height hidden by controls.
        match_floor: Confidence at or below this is treated as no match.
        min_word_length: Shorter tokens are ignored when matching.
        fuzzy_threshold: Lowest edit-distance similarity counted as a match.
        rate_policy: "buckets" or "linear" words-per-minute mapping.
        frame_interval: Seconds between animation ticks.
        char_height_ratio: Scroll units per character for estimated offsets.
        language: Recognition language tag.
    """
    smoothness: float = 0.8
    min_confidence: float = 0.3
    max_low_confidence_adjustment: float = 100.0
    low_confidence_policy: str = "damped"
    speed_base: float = 1.8
    speed_distance: float = 2.0
    ideal_fraction: float = 0.3
    band_top_fraction: float = 1 / 3
    band_bottom_fraction: float = 0.7
    control_panel_allowance: float = 80.0
    match_floor: float = 0.0
    min_word_length: int = 3
    fuzzy_threshold: float = 0.75
    rate_policy: str = "buckets"
    frame_interval: float = 1 / 60
    char_height_ratio: float = 0.6
    language: str = "en-US"

    def __post_init__(self) -> None:
        for name in ("smoothness", "min_confidence", "ideal_fraction",
                     "band_top_fraction", "band_bottom_fraction",
                     "match_floor", "fuzzy_threshold"):
            value: float = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be between 0 and 1, got {value}")
        if self.min_confidence <= 0.0:
            raise ValueError("min_confidence must be greater than 0")
        if self.smoothness >= 1.0:
            raise ValueError("smoothness must be less than 1")
        if self.max_low_confidence_adjustment < 0:
            raise ValueError("max_low_confidence_adjustment must not be negative")
        if self.speed_base <= 0:
            raise ValueError("speed_base must be positive")
        if self.frame_interval <= 0:
            raise ValueError("frame_interval must be positive")
        if self.min_word_length < 1:
            raise ValueError("min_word_length must be at least 1")
        if self.low_confidence_policy not in LOW_CONFIDENCE_POLICIES:
            raise ValueError(
                f"Unknown low_confidence_policy: {self.low_confidence_policy}. "
                f"Choose from: {sorted(LOW_CONFIDENCE_POLICIES)}"
            )
        if self.rate_policy not in RATE_POLICIES:
            raise ValueError(
                f"Unknown rate_policy: {self.rate_policy}. "
                f"Choose from: {sorted(RATE_POLICIES)}"
            )

    @classmethod
    def from_settings(
        cls,
        settings: SyncSettings | dict[str, Any] | None = None,
        language: str | None = None
    ) -> 'SyncConfig':
        """
        Build a SyncConfig from a settings dictionary.

        Unknown keys are ignored so older config files keep loading.

        Args:
            settings: The "sync" section of a config, or None for defaults.
            language: Optional recognition language tag.

        Returns:
            Validated SyncConfig.
        """
        known: set[str] = {f.name for f in fields(cls)}
        values: dict[str, Any] = {
            k: v for k, v in (settings or {}).items() if k in known
        }
        if language:
            values["language"] = language
        return cls(**values)


def get_config_path() -> Path:
    """Get the path to the config file in the current working directory."""
    return Path.cwd() / CONFIG_FILENAME


def _deep_merge(base, override):
    """
    Deep merge two dictionaries, with override taking precedence.
    Returns a new dictionary without modifying the originals.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file, merged with defaults.

    Args:
        config_path: Optional path to config file. If None, uses default location.

    Returns:
        Configuration dictionary with all values (defaults + overrides from file).
    """
    if config_path is None:
        config_path = get_config_path()

    config: dict[str, Any] = copy.deepcopy(dict(DEFAULT_CONFIG))

    if config_path.exists():
        try:
            with open(config_path, encoding='utf-8') as f:
                file_config: dict[str, Any] | None = yaml.safe_load(f)
                if file_config:
                    config = _deep_merge(config, file_config)
        except (OSError, yaml.YAMLError) as e:
            print(f"Warning: Could not load config from {config_path}: {e}")

    return config  # type: ignore[return-value]


def save_config(config: Config, config_path: Path | None = None) -> bool:
    """
    Save configuration to file.

    Returns:
        True if save was successful, False otherwise.
    """
    if config_path is None:
        config_path = get_config_path()

    try:
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(dict(config), f, default_flow_style=False, sort_keys=False)
        return True
    except (OSError, yaml.YAMLError) as e:
        print(f"Error saving config to {config_path}: {e}")
        return False


def get_sync_config(config: Config) -> SyncConfig:
    """
    Build the sync core's configuration object from a loaded config.

    Args:
        config: Configuration dictionary.

    Returns:
        SyncConfig including the recognition language.
    """
    sync_settings = config.get("sync", DEFAULT_CONFIG["sync"])
    recognition = get_recognition_settings(config)
    return SyncConfig.from_settings(sync_settings, language=recognition["language"])


def get_recognition_settings(config: Config) -> RecognitionSettings:
    """
    Extract recognition settings from config.

    Args:
        config: Configuration dictionary.

    Returns:
        Recognition settings dictionary.
    """
    return config.get("recognition",
                      DEFAULT_CONFIG["recognition"]
                      ).copy()  # type: ignore[return-value]
