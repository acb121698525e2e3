"""
Player configuration.

Stored as ``config.json`` next to the save slots and edited from the
settings menu. Values are validated on load; a broken file is reset to
defaults by ``load_typed_file``.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field

from engine.core.model import DataModel
from engine.resources.data_io import load_typed_file, save_typed_file

CONFIG_FILE_NAME = "config.json"

HEX_COLOR_PATTERN = r"^[0-9A-Fa-f]{8}$"


class ConfigData(DataModel):
    """
    Settings that shape text playback and audio.

    Attributes:
        text_speed: Characters revealed per second
        auto_forward_time: Auto mode delay multiplier after a line completes
        time_per_character: Auto mode reading time per character of raw text
        fast_forward_time: Seconds between lines in fast-forward
        skip_after_choices: Keep fast-forwarding after a decision is made
        dialogue_color: Text colour for spoken lines (hex RGBA, no '#')
        internal_color: Text colour for narration and inner monologue
        emphasis_color: Colour substituted for ``[emp]...[/emp]``
    """

    # Skip
    skip_unseen_text: bool = False
    skip_after_choices: bool = False
    skip_transitions: bool = False

    # Text
    text_speed: int = Field(default=40, gt=0)
    auto_forward_time: float = Field(default=0.5, ge=0.0)
    time_per_character: float = Field(default=0.1, ge=0.0)
    fast_forward_time: float = Field(default=0.25, ge=0.0)
    dialogue_color: str = Field(default="FFFFFFFF", pattern=HEX_COLOR_PATTERN)
    internal_color: str = Field(default="A8C8FFFF", pattern=HEX_COLOR_PATTERN)
    emphasis_color: str = Field(default="FFD966FF", pattern=HEX_COLOR_PATTERN)

    # Audio
    music_volume: float = Field(default=0.5, ge=0.0, le=1.0)
    sound_volume: float = Field(default=0.5, ge=0.0, le=1.0)
    mute_all: bool = False

    @property
    def seconds_per_character(self) -> float:
        return 1.0 / self.text_speed


def load_config(directory: str | Path) -> ConfigData:
    return load_typed_file(Path(directory) / CONFIG_FILE_NAME, ConfigData)


def save_config(directory: str | Path, config: ConfigData) -> None:
    save_typed_file(Path(directory) / CONFIG_FILE_NAME, config)
