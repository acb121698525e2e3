"""
Save slots - session persistence.

Provides:
- Auto, quick and manual save slots as JSON files
- Auto-save rotation across six slots, remembered between runs
- Save integrity validation (checksum)
- Event publishing for save/load operations
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from pydantic import ValidationError

from engine.core.events import DialogueEvent, Event, EventBus, SaveEvent
from engine.core.model import DataModel
from engine.resources.data_io import load_typed_file, save_typed_file
from dialogue.errors import DialogueError
from dialogue.state import TraversalState

if TYPE_CHECKING:
    from dialogue.runtime import DialogueRuntime

logger = logging.getLogger(__name__)

SAVE_EXTENSION = ".save"
PERSISTENT_FILE_NAME = "persistent.json"
TIMESTAMP_FORMAT = "%A, %B %d %Y, %H:%M"


class SaveType(Enum):
    """Kinds of save slot. Values are the file name prefixes."""
    AUTO = "auto_"
    QUICK = "quick_"
    MANUAL = ""


class SaveData(DataModel):
    """
    Contents of one save slot.

    Attributes:
        slot_index: Slot number within its save type (1-based)
        save_type: Auto, quick or manual
        timestamp: Human readable save time
        screenshot_data: Base64 encoded thumbnail supplied by the host
        state: The traversal state to resume
    """
    slot_index: int
    save_type: SaveType
    timestamp: str
    screenshot_data: str = ""
    state: TraversalState


class PersistentData(DataModel):
    """Data kept across sessions, independent of any slot."""
    first_application_run: bool = True
    current_auto_save_slot: int = 0


class SaveManager:
    """
    Manages saving and loading dialogue sessions.

    When given an event bus the manager answers the runtime's auto-save
    requests by itself.

    Usage:
        saves = SaveManager("saves", runtime=runtime, event_bus=events)
        saves.save(SaveType.MANUAL, 3, screenshot_data=thumbnail)
        saves.load(SaveType.MANUAL, 3)
    """

    AUTO_SAVE_SLOTS = 6
    QUICK_SAVE_SLOTS = 6
    MAX_SLOTS = 30

    def __init__(
        self,
        save_path: str | Path = "saves",
        runtime: Optional[DialogueRuntime] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.save_path = Path(save_path)
        self.save_path.mkdir(parents=True, exist_ok=True)
        self.runtime = runtime
        self.event_bus = event_bus

        # Latest thumbnail handed over by the host, used for auto-saves
        self.current_screenshot = ""

        if event_bus:
            event_bus.subscribe(DialogueEvent.AUTO_SAVE_REQUESTED, self._on_auto_save_requested)

    def _on_auto_save_requested(self, event: Event) -> None:
        self.auto_save()

    def slot_path(self, save_type: SaveType, slot_index: int) -> Path:
        """``auto_save_01.save``, ``quick_save_01.save`` or ``save_01.save``."""
        return self.save_path / f"{save_type.value}save_{slot_index:02d}{SAVE_EXTENSION}"

    def slot_count(self, save_type: SaveType) -> int:
        if save_type is SaveType.AUTO:
            return self.AUTO_SAVE_SLOTS
        if save_type is SaveType.QUICK:
            return self.QUICK_SAVE_SLOTS
        return self.MAX_SLOTS

    # --- Save ---

    def save(
        self,
        save_type: SaveType,
        slot_index: int,
        screenshot_data: Optional[str] = None,
        state: Optional[TraversalState] = None,
    ) -> Optional[SaveData]:
        """
        Write a save slot.

        Args:
            save_type: Slot kind
            slot_index: Slot number
            screenshot_data: Thumbnail; defaults to ``current_screenshot``
            state: State to save; defaults to the runtime's current state

        Returns:
            The saved data, or None if saving failed.
        """
        try:
            if state is None:
                if self.runtime is None:
                    raise ValueError("No runtime or state to save")
                state = TraversalState.model_validate_json(self.runtime.serialize_traversal_state())

            save_data = SaveData(
                slot_index=slot_index,
                save_type=save_type,
                timestamp=datetime.now().strftime(TIMESTAMP_FORMAT),
                screenshot_data=self.current_screenshot if screenshot_data is None else screenshot_data,
                state=state,
            )

            save_dict = save_data.model_dump(mode="json")
            save_dict["checksum"] = self._calculate_checksum(save_dict)

            path = self.slot_path(save_type, slot_index)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(save_dict, indent=2), encoding="utf-8")

        except (OSError, ValueError) as e:
            logger.error("Save to %s slot %d failed: %s", save_type.name, slot_index, e)
            if self.event_bus:
                self.event_bus.publish(
                    SaveEvent.SAVE_FAILED,
                    save_type=save_type,
                    slot=slot_index,
                    error=str(e),
                )
            return None

        logger.info("Saved %s slot %d to %s", save_type.name, slot_index, path)
        if self.event_bus:
            self.event_bus.publish(SaveEvent.SAVE_COMPLETED, save_type=save_type, slot=slot_index)
        return save_data

    def auto_save(self, screenshot_data: Optional[str] = None) -> Optional[SaveData]:
        """Save to the next auto slot, cycling 1..AUTO_SAVE_SLOTS."""
        persistent_path = self.save_path / PERSISTENT_FILE_NAME
        persistent = load_typed_file(persistent_path, PersistentData)

        slot_index = (persistent.current_auto_save_slot % self.AUTO_SAVE_SLOTS) + 1
        save_data = self.save(SaveType.AUTO, slot_index, screenshot_data)
        if save_data is None:
            return None

        persistent.current_auto_save_slot = slot_index
        save_typed_file(persistent_path, persistent)
        return save_data

    # --- Load ---

    def read(self, save_type: SaveType, slot_index: int, validate: bool = True) -> Optional[SaveData]:
        """
        Read a slot without restoring it.

        Raises:
            ValueError: If the file is corrupt, fails its checksum or is invalid.
            OSError: If the file cannot be read.
        """
        path = self.slot_path(save_type, slot_index)
        if not path.exists():
            return None

        save_dict = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(save_dict, dict):
            raise ValueError(f"Save file {path.name} does not hold a save object")
        checksum = save_dict.pop("checksum", None)
        if validate and checksum and self._calculate_checksum(save_dict) != checksum:
            raise ValueError("Checksum validation failed")

        return SaveData.model_validate(save_dict)

    def load(self, save_type: SaveType, slot_index: int, validate: bool = True) -> Optional[SaveData]:
        """
        Load a slot and, if a runtime is attached, resume it.

        Returns:
            The loaded data, or None if the slot is empty or could not be loaded.
        """
        try:
            save_data = self.read(save_type, slot_index, validate)
            if save_data is None:
                logger.warning("No save in %s slot %d", save_type.name, slot_index)
                return None

            if self.runtime is not None:
                self.runtime.restore_traversal_state(save_data.state.model_dump_json())

        except (OSError, ValueError, DialogueError) as e:
            logger.error("Load from %s slot %d failed: %s", save_type.name, slot_index, e)
            if self.event_bus:
                self.event_bus.publish(
                    SaveEvent.LOAD_FAILED,
                    save_type=save_type,
                    slot=slot_index,
                    error=str(e),
                )
            return None

        logger.info("Loaded %s slot %d", save_type.name, slot_index)
        if self.event_bus:
            self.event_bus.publish(SaveEvent.LOAD_COMPLETED, save_type=save_type, slot=slot_index)
        return save_data

    def list_slots(self, save_type: SaveType) -> list[Optional[SaveData]]:
        """Every slot of a type in order; empty or unreadable slots are None."""
        slots: list[Optional[SaveData]] = []
        for slot_index in range(1, self.slot_count(save_type) + 1):
            try:
                slots.append(self.read(save_type, slot_index))
            except (OSError, ValueError, ValidationError) as e:
                logger.warning("Unreadable %s slot %d: %s", save_type.name, slot_index, e)
                slots.append(None)
        return slots

    def delete(self, save_type: SaveType, slot_index: int) -> bool:
        path = self.slot_path(save_type, slot_index)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as e:
            logger.error("Failed to delete %s: %s", path, e)
            return False
        return True

    def validate_save(self, save_type: SaveType, slot_index: int) -> bool:
        """True if the slot exists and passes its checksum and schema."""
        try:
            return self.read(save_type, slot_index) is not None
        except (OSError, ValueError):
            return False

    # --- Checksum ---

    def _calculate_checksum(self, data: dict) -> str:
        json_str = json.dumps(data, sort_keys=True, separators=(',', ':'))
        hash_bytes = hashlib.sha256(json_str.encode('utf-8')).digest()
        return base64.b64encode(hash_bytes).decode('ascii')
