"""
Collaborator interfaces consumed by the dialogue runtime.

The runtime never renders, tweens or mixes anything itself. Hosts pass in
objects satisfying these protocols; ``engine.audio.AudioManager`` and
``engine.graphics.CGLayer`` are the stock pygame implementations of the
audio and CG collaborators.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Protocol


@dataclass
class PresentedLine:
    """A line handed to the text presenter after interpolation and tag processing."""
    speaker: str
    text: str
    color: str
    show_name_box: bool


class CameraMover(Protocol):
    def move_to(self, target_id: str, on_complete: Optional[Callable[[], None]] = None) -> None: ...

    def show_player(self) -> None: ...

    def hide_player(self) -> None: ...


class CGDisplay(Protocol):
    def show(self, name: str) -> bool: ...

    def hide(self) -> None: ...


class AudioPlayer(Protocol):
    def play_music(self, name: str) -> bool: ...

    def stop_music(self) -> None: ...

    def play_sfx(self, name: str): ...


class TextPresenter(Protocol):
    def present(self, line: PresentedLine) -> None: ...

    def update_text(self, visible_text: str) -> None: ...


class DecisionPresenter(Protocol):
    def show_decisions(self, labels: list[str]) -> None: ...

    def hide_decisions(self) -> None: ...
