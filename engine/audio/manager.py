"""
Core Audio Manager.

Implements the audio collaborator used by dialogue scripts: music and sound
effects are addressed by name (``[Music=Theme1]``) and resolved to files
under the configured BGM / SFX folders.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import pygame

from engine.audio.music import MusicPlayer
from engine.core.events import EventBus, AudioEvent

if TYPE_CHECKING:
    from dialogue.config import ConfigData

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = (".ogg", ".wav", ".mp3")


class AudioManager:
    """
    Central audio manager for the engine.

    Handles:
    - BGM via MusicPlayer
    - SFX caching and playback
    - Named asset lookup (missing assets are a logged no-op)
    - Volume categories (Master, BGM, SFX)
    """

    def __init__(
        self,
        event_bus: EventBus | None = None,
        bgm_path: str | Path = "assets/audio/bgm",
        sfx_path: str | Path = "assets/audio/sfx",
    ):
        self.music = MusicPlayer()
        self.event_bus = event_bus
        self.bgm_path = Path(bgm_path)
        self.sfx_path = Path(sfx_path)

        self._master_volume: float = 1.0
        self._category_volumes: dict[str, float] = {
            "bgm": 1.0,
            "sfx": 1.0,
        }
        self._muted: bool = False

        self._sound_cache: dict[str, pygame.mixer.Sound] = {}
        self._initialized: bool = False

    def init(self, frequency: int = 44100, size: int = -16, channels: int = 2, buffer: int = 512) -> None:
        """Initialize the audio system."""
        if pygame.mixer.get_init():
            self._initialized = True
            return

        try:
            pygame.mixer.init(frequency=frequency, size=size, channels=channels, buffer=buffer)
            pygame.mixer.set_num_channels(16)
            self._initialized = True
            logger.info("Audio system initialized.")
        except pygame.error as e:
            logger.error("Failed to initialize audio system: %s", e)

    def quit(self) -> None:
        """Shutdown audio system."""
        pygame.mixer.quit()
        self._initialized = False

    # --- Volume Control ---

    def set_master_volume(self, volume: float) -> None:
        """Set master volume (0.0 to 1.0)."""
        self._master_volume = max(0.0, min(1.0, volume))
        self._update_music_volume()

    def set_category_volume(self, category: str, volume: float) -> None:
        """Set volume for a specific category."""
        if category in self._category_volumes:
            self._category_volumes[category] = max(0.0, min(1.0, volume))
            if category == "bgm":
                self._update_music_volume()

    def set_muted(self, muted: bool) -> None:
        self._muted = muted
        self._update_music_volume()

    def _effective_volume(self, category: str) -> float:
        if self._muted:
            return 0.0
        return self._master_volume * self._category_volumes.get(category, 1.0)

    def _update_music_volume(self) -> None:
        self.music.volume = self._effective_volume("bgm")

    def apply_config(self, config: ConfigData) -> None:
        """Apply the player's volume settings."""
        self.set_category_volume("bgm", config.music_volume)
        self.set_category_volume("sfx", config.sound_volume)
        self.set_muted(config.mute_all)

    # --- Asset lookup ---

    def _resolve(self, folder: Path, name: str) -> Path | None:
        candidate = folder / name
        if candidate.suffix and candidate.exists():
            return candidate
        for ext in AUDIO_EXTENSIONS:
            path = folder / f"{name}{ext}"
            if path.exists():
                return path
        return None

    # --- BGM ---

    def play_music(self, name: str, loop: bool = True, fade_ms: int = 0) -> bool:
        """Play a named background track. Missing tracks are ignored."""
        path = self._resolve(self.bgm_path, name)
        if path is None:
            logger.warning("Music '%s' could not be found in %s", name, self.bgm_path)
            return False

        if not self.music.play(name, str(path), loops=-1 if loop else 0, fade_ms=fade_ms):
            return False
        if self.event_bus:
            self.event_bus.publish(AudioEvent.BGM_STARTED, name=name, file=str(path))
        return True

    def stop_music(self, fade_ms: int = 0) -> None:
        """Stop background music."""
        self.music.stop(fade_ms=fade_ms)
        if self.event_bus:
            self.event_bus.publish(AudioEvent.BGM_STOPPED)

    def pause_all(self) -> None:
        self.music.pause()
        if self._initialized:
            pygame.mixer.pause()

    def resume_all(self) -> None:
        self.music.unpause()
        if self._initialized:
            pygame.mixer.unpause()

    # --- SFX ---

    def _get_sound(self, file_path: str) -> pygame.mixer.Sound | None:
        """Load or retrieve sound from cache."""
        if not self._initialized:
            return None

        if file_path not in self._sound_cache:
            try:
                self._sound_cache[file_path] = pygame.mixer.Sound(file_path)
            except pygame.error as e:
                logger.error("Failed to load sound %s: %s", file_path, e)
                return None

        return self._sound_cache[file_path]

    def play_sfx(self, name: str, volume: float = 1.0) -> pygame.mixer.Channel | None:
        """
        Play a named sound effect.

        Returns:
            The channel used, or None if the sound is missing or no channel is free.
        """
        path = self._resolve(self.sfx_path, name)
        if path is None:
            logger.warning("Sound '%s' could not be found in %s", name, self.sfx_path)
            return None

        sound = self._get_sound(str(path))
        if not sound:
            return None

        channel = pygame.mixer.find_channel(True)
        if not channel:
            return None

        channel.set_volume(self._effective_volume("sfx") * volume)
        channel.play(sound)

        if self.event_bus:
            self.event_bus.publish(AudioEvent.SFX_PLAYED, name=name, file=str(path))

        return channel
