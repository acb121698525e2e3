"""
Transcript (history log) formatting.
"""

from __future__ import annotations

from typing import Optional, Sequence

from dialogue.state import TranscriptEntry

EMPTY_TRANSCRIPT = "No Transcript Found."


def format_entry(entry: TranscriptEntry) -> str:
    if entry.speaker:
        return f"{entry.speaker}: {entry.text}"
    return entry.text


def format_transcript(entries: Sequence[TranscriptEntry], max_lines: Optional[int] = None) -> str:
    """
    Render the history log.

    The most recent entry is the line still on screen, so it is left out.
    With ``max_lines`` only that many of the newest remaining entries are kept.
    """
    history = list(entries[:-1])
    if max_lines is not None:
        history = history[-max_lines:] if max_lines > 0 else []

    if not history:
        return EMPTY_TRANSCRIPT

    return "\n\n".join(format_entry(entry) for entry in history)
