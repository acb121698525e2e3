"""
Base class for persisted data models.

Models are plain data containers. Node structures, traversal state, save
slots and configuration all derive from DataModel so that:
- Serialization to JSON save files is trivial
- Loaded files are validated before they touch runtime state
- Defaults live next to the field they describe

Usage:
    class ConfigData(DataModel):
        text_speed: int = 40
        mute_all: bool = False
"""

from __future__ import annotations

from typing import TypeVar

from pydantic import BaseModel, ConfigDict

M = TypeVar("M", bound="DataModel")


class DataModel(BaseModel):
    """
    Base class for all persisted models.

    Uses Pydantic for:
    - Automatic validation
    - JSON serialization
    - Default values
    """

    model_config = ConfigDict(
        # Validate on assignment
        validate_assignment=True,
        # Old save files must not smuggle unknown fields into state
        extra='forbid',
    )

    def clone(self: M) -> M:
        """Create a deep copy of this model."""
        return self.model_copy(deep=True)
