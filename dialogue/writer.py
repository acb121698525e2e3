"""
Text writer - character-by-character reveal of a dialogue line.

The writer is a plain state object advanced by ``tick(dt)`` once per frame.
Rich-text tags (``<i>``, ``<color=#...>``) are revealed as a unit and take
no time. Characters not yet revealed are still emitted, wrapped in a fully
transparent colour tag, so word wrapping does not shift while text types.
"""

from __future__ import annotations

from typing import Callable, Optional

HIDDEN_OPEN = "<color=#00000000>"
HIDDEN_CLOSE = "</color>"


class TextWriter:
    """
    Reveals ``text`` at ``time_per_char`` seconds per visible character.

    Attributes:
        text: Full resolved text (may contain rich-text tags)
        time_per_char: Seconds per revealed character
        char_index: Number of characters of ``text`` revealed so far
    """

    def __init__(
        self,
        text: str,
        time_per_char: float,
        on_complete: Optional[Callable[[], None]] = None,
    ):
        self.text = text
        self.time_per_char = max(0.0, time_per_char)
        self.char_index = 0
        self._timer = 0.0
        self._on_complete = on_complete
        self._complete = False

    @property
    def complete(self) -> bool:
        return self._complete

    @property
    def visible_text(self) -> str:
        """Revealed text followed by the rest of the line rendered invisible."""
        if self._complete:
            return self.text
        return build_visible_text(self.text, self.char_index)

    def tick(self, dt: float) -> bool:
        """
        Advance the reveal by ``dt`` seconds.

        Returns:
            True once the whole line has been revealed.
        """
        if self._complete:
            return True

        self._timer -= dt
        while self._timer <= 0.0:
            if self.char_index >= len(self.text):
                self._finish()
                return True

            if self.text[self.char_index] == "<":
                closing = self.text.find(">", self.char_index)
                self.char_index = closing + 1 if closing != -1 else self.char_index + 1
            else:
                self._timer += self.time_per_char
                self.char_index += 1

            if self.char_index >= len(self.text):
                self._finish()
                return True

        return False

    def write_all(self) -> None:
        """Reveal the whole line immediately."""
        if self._complete:
            return
        self.char_index = len(self.text)
        self._finish()

    def _finish(self) -> None:
        if self._complete:
            return
        self._complete = True
        if self._on_complete:
            self._on_complete()


def build_visible_text(text: str, char_index: int) -> str:
    """Render ``text`` with everything from ``char_index`` on made transparent."""
    parts = [text[:char_index]]

    i = char_index
    while i < len(text):
        if text[i] == "<":
            closing = text.find(">", i)
            if closing != -1:
                parts.append(text[i:closing + 1])
                i = closing + 1
                continue

        parts.append(f"{HIDDEN_OPEN}{text[i]}{HIDDEN_CLOSE}")
        i += 1

    return "".join(parts)
