"""
Background music channel on top of pygame.mixer.music.

Only one track plays at a time. Tracks are remembered by the name the
script used, so asking for the track that is already playing keeps it
going instead of restarting it (restoring a save replays every
``[Music=...]`` command in order).
"""

from __future__ import annotations

import logging

import pygame

logger = logging.getLogger(__name__)


class MusicPlayer:
    """
    Looping BGM channel.

    Attributes:
        current_track: Name of the track playing ("" when stopped)
        current_file: File the track was loaded from
    """

    def __init__(self):
        self.current_track = ""
        self.current_file = ""
        self._volume = 1.0
        self._paused = False

    @property
    def volume(self) -> float:
        return self._volume

    @volume.setter
    def volume(self, value: float) -> None:
        self._volume = max(0.0, min(1.0, value))
        if pygame.mixer.get_init():
            pygame.mixer.music.set_volume(self._volume)

    @property
    def paused(self) -> bool:
        return self._paused

    def play(self, name: str, file_path: str, loops: int = -1, fade_ms: int = 0) -> bool:
        """
        Start ``name`` from ``file_path``.

        Returns:
            True if the track is playing afterwards.
        """
        if not pygame.mixer.get_init():
            logger.warning("Mixer not initialized, cannot play '%s'", name)
            return False

        if name == self.current_track and not self._paused and self.is_playing():
            logger.debug("BGM '%s' already playing", name)
            return True

        try:
            pygame.mixer.music.load(file_path)
            pygame.mixer.music.set_volume(self._volume)
            pygame.mixer.music.play(loops=loops, fade_ms=fade_ms)
        except pygame.error as e:
            logger.error("Failed to play BGM '%s' from %s: %s", name, file_path, e)
            return False

        self.current_track = name
        self.current_file = file_path
        self._paused = False
        logger.info("BGM '%s' started", name)
        return True

    def stop(self, fade_ms: int = 0) -> None:
        self.current_track = ""
        self.current_file = ""
        self._paused = False
        if not pygame.mixer.get_init():
            return
        if fade_ms > 0:
            pygame.mixer.music.fadeout(fade_ms)
        else:
            pygame.mixer.music.stop()

    def pause(self) -> None:
        if self.current_track and pygame.mixer.get_init():
            pygame.mixer.music.pause()
            self._paused = True

    def unpause(self) -> None:
        if self._paused and pygame.mixer.get_init():
            pygame.mixer.music.unpause()
            self._paused = False

    def is_playing(self) -> bool:
        return bool(pygame.mixer.get_init() and pygame.mixer.music.get_busy())
