"""
Core engine module.

Exports:
- EventBus, Event: Event system
- DialogueEvent, AudioEvent, SaveEvent: Built-in event types
- DataModel: Pydantic base for persisted data
"""

from engine.core.events import EventBus, Event, DialogueEvent, AudioEvent, SaveEvent
from engine.core.model import DataModel

__all__ = [
    # Events
    "EventBus",
    "Event",
    "DialogueEvent",
    "AudioEvent",
    "SaveEvent",
    # Data
    "DataModel",
]
