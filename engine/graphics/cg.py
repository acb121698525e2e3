"""
CG layer - full-screen event illustrations shown by dialogue scripts.

``[CG=beach_sunset]`` shows ``<cg_path>/beach_sunset.png``; ``[HideCG]``
clears it. The layer only owns the loaded surface and its visibility; the
host's renderer draws ``surface`` at ``alpha`` every frame.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import pygame

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".bmp")


class CGLayer:
    """
    Loads and tracks the currently displayed CG.

    Images are cached by name. A missing image leaves the current CG
    untouched and logs a warning.
    """

    def __init__(self, cg_path: str | Path = "assets/cg"):
        self.cg_path = Path(cg_path)
        self._cache: dict[str, pygame.Surface] = {}
        self.current: Optional[str] = None
        self.surface: Optional[pygame.Surface] = None
        self.alpha: float = 0.0

    @property
    def visible(self) -> bool:
        return self.surface is not None and self.alpha > 0.0

    def _find_file(self, name: str) -> Optional[Path]:
        for ext in IMAGE_EXTENSIONS:
            path = self.cg_path / f"{name}{ext}"
            if path.exists():
                return path
        return None

    def _load(self, name: str) -> Optional[pygame.Surface]:
        if name in self._cache:
            return self._cache[name]

        path = self._find_file(name)
        if path is None:
            logger.warning("CG '%s' could not be found in %s", name, self.cg_path)
            return None

        try:
            surface = pygame.image.load(str(path))
        except pygame.error as e:
            logger.error("Failed to load CG %s: %s", path, e)
            return None

        self._cache[name] = surface
        return surface

    def show(self, name: str) -> bool:
        """Show a CG by name (file name without extension)."""
        surface = self._load(name)
        if surface is None:
            return False

        self.current = name
        self.surface = surface
        self.alpha = 1.0
        return True

    def hide(self) -> None:
        """Hide the current CG."""
        self.current = None
        self.surface = None
        self.alpha = 0.0
