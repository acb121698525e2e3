"""
Inline script commands.

A command is a content line wrapped in brackets, optionally carrying one
argument:

    [ShowPlayer]
    [CG=harbor_sunset]
    [GoTo=harbor_night]

Commands are executed when the runtime reaches them and recorded in the
command history, which is replayed on load to rebuild CG, music and camera
state before the saved line is shown again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from engine.core.events import DialogueEvent, EventBus
from dialogue.interfaces import AudioPlayer, CameraMover, CGDisplay

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Command:
    """A parsed ``[Name]`` or ``[Name=Argument]`` line."""
    name: str
    argument: str = ""

    @property
    def source(self) -> str:
        if self.argument:
            return f"[{self.name}={self.argument}]"
        return f"[{self.name}]"


def is_command(line: str) -> bool:
    return len(line) >= 2 and line.startswith("[") and line.endswith("]")


def parse_command(line: str) -> Optional[Command]:
    """Parse a command line; None if the line is not a command."""
    if not is_command(line):
        return None

    body = line[1:-1].strip()
    if "=" in body:
        name, argument = body.split("=", 1)
        return Command(name.strip(), argument.strip())
    return Command(body)


class CommandDispatcher:
    """
    Routes commands to the camera, CG and audio collaborators.

    Any collaborator may be None, in which case its commands are skipped.
    ``GoTo`` is delegated to the ``go_to`` callback and is never followed
    during replay: the saved node stack already says where the player is.
    """

    def __init__(
        self,
        camera: Optional[CameraMover] = None,
        cg: Optional[CGDisplay] = None,
        audio: Optional[AudioPlayer] = None,
        go_to: Optional[Callable[[str], bool]] = None,
        events: Optional[EventBus] = None,
    ):
        self.camera = camera
        self.cg = cg
        self.audio = audio
        self.go_to = go_to
        self.events = events

        self._handlers: dict[str, Callable[[str, bool], None]] = {
            "ShowPlayer": self._show_player,
            "HidePlayer": self._hide_player,
            "CG": self._show_cg,
            "HideCG": self._hide_cg,
            "GoTo": self._go_to,
            "Music": self._play_music,
            "StopMusic": self._stop_music,
            "Sfx": self._play_sfx,
        }

    @property
    def command_names(self) -> list[str]:
        return list(self._handlers)

    def dispatch(self, line: str, replay: bool = False) -> bool:
        """
        Execute a command line.

        Returns:
            True if the command is known and was dispatched. Unknown
            commands are ignored.
        """
        command = parse_command(line)
        if command is None:
            return False

        handler = self._handlers.get(command.name)
        if handler is None:
            logger.debug("Ignoring unknown command: %s", line)
            return False

        handler(command.argument, replay)

        if self.events and not replay:
            self.events.publish(
                DialogueEvent.COMMAND_EXECUTED,
                name=command.name,
                argument=command.argument,
            )
        return True

    def replay(self, history: list[str]) -> None:
        """Re-run previously executed commands in order."""
        for line in history:
            self.dispatch(line, replay=True)

    def _show_player(self, argument: str, replay: bool) -> None:
        if self.camera:
            self.camera.show_player()

    def _hide_player(self, argument: str, replay: bool) -> None:
        if self.camera:
            self.camera.hide_player()

    def _show_cg(self, argument: str, replay: bool) -> None:
        if not argument:
            logger.warning("CG command without an image name")
            return
        if self.cg:
            self.cg.show(argument)

    def _hide_cg(self, argument: str, replay: bool) -> None:
        if self.cg:
            self.cg.hide()

    def _go_to(self, argument: str, replay: bool) -> None:
        if replay:
            return
        if not argument:
            logger.warning("GoTo command without a node name")
            return
        if self.go_to:
            self.go_to(argument)

    def _play_music(self, argument: str, replay: bool) -> None:
        if not argument:
            logger.warning("Music command without a track name")
            return
        if self.audio:
            self.audio.play_music(argument)

    def _stop_music(self, argument: str, replay: bool) -> None:
        if self.audio:
            self.audio.stop_music()

    def _play_sfx(self, argument: str, replay: bool) -> None:
        # One-shot effects are not part of the scene state being rebuilt
        if replay or not argument:
            return
        if self.audio:
            self.audio.play_sfx(argument)
