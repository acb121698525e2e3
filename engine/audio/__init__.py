"""
Audio module - pygame mixer backed music and sound effects.
"""

from engine.audio.manager import AudioManager
from engine.audio.music import MusicPlayer

__all__ = [
    "AudioManager",
    "MusicPlayer",
]
