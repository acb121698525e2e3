"""
Typed JSON persistence.

Every persisted file (config, persistent data, save slots) is a DataModel
written as indented JSON. Loading never leaves the caller empty-handed: a
missing file is created from the model's defaults and an unreadable or
invalid one is reset to defaults.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TypeVar

from pydantic import ValidationError

from engine.core.model import DataModel

M = TypeVar("M", bound=DataModel)

logger = logging.getLogger(__name__)


def load_typed_file(path: str | Path, model_type: type[M]) -> M:
    """
    Load a model from a JSON file.

    Args:
        path: File to read (parent directories are created if needed)
        model_type: DataModel subclass with defaults for every field

    Returns:
        The loaded model, or a default instance if the file was missing or invalid.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if not path.exists():
        data = model_type()
        save_typed_file(path, data)
        logger.info("%s file created at %s", model_type.__name__, path)
        return data

    try:
        data = model_type.model_validate_json(path.read_text(encoding="utf-8"))
    except (ValidationError, ValueError, OSError) as e:
        logger.warning("%s file at %s was invalid (%s). Resetting to default.",
                       model_type.__name__, path, e)
        data = model_type()
        save_typed_file(path, data)
        return data

    logger.debug("%s file loaded from %s", model_type.__name__, path)
    return data


def save_typed_file(path: str | Path, data: DataModel) -> None:
    """Write a model to a JSON file, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(data.model_dump_json(indent=2), encoding="utf-8")
    logger.debug("%s file saved to %s", type(data).__name__, path)
