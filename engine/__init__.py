"""
Visual novel engine infrastructure.

Reusable pieces the dialogue package builds on: a typed event bus, the
pydantic data-model base, pygame audio and CG layers, and typed JSON
persistence.

Quick Start:
    from engine import AudioManager, CGLayer, EventBus

    events = EventBus()
    audio = AudioManager(event_bus=events, bgm_path="assets/audio/bgm")
    audio.init()
    audio.play_music("Harbor")
"""

__version__ = "0.1.0"
__author__ = "Developer"

# Re-export core components for convenience
from engine.core import (
    EventBus,
    Event,
    DialogueEvent,
    AudioEvent,
    SaveEvent,
    DataModel,
)
from engine.audio import AudioManager, MusicPlayer
from engine.graphics import CGLayer
from engine.resources import load_typed_file, save_typed_file

__all__ = [
    # Events
    "EventBus",
    "Event",
    "DialogueEvent",
    "AudioEvent",
    "SaveEvent",
    # Data
    "DataModel",
    "load_typed_file",
    "save_typed_file",
    # Audio / graphics
    "AudioManager",
    "MusicPlayer",
    "CGLayer",
]
