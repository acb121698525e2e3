"""
Dialogue error types.

Load-time failures (ScriptLoadError, ScriptParseError, NodeNotFoundError)
halt script progression and are surfaced to the caller. Evaluation and
asset failures are recovered where they happen and only logged.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class DialogueError(Exception):
    """Base class for all dialogue errors."""


class ScriptLoadError(DialogueError):
    """A script file could not be read."""


class ScriptParseError(DialogueError):
    """A script contains malformed structure (unmatched markers, empty decisions)."""

    def __init__(self, message: str, path: Optional[Path] = None, line_number: Optional[int] = None):
        self.path = path
        self.line_number = line_number
        location = ""
        if path is not None:
            location = f"{path}"
            if line_number is not None:
                location += f":{line_number}"
            location += ": "
        super().__init__(f"{location}{message}")


class NodeNotFoundError(DialogueError):
    """The requested node is not defined in any script file."""

    def __init__(self, node_name: str):
        self.node_name = node_name
        super().__init__(f"Node not found: {node_name}")


class ExpressionEvalError(DialogueError):
    """A conditional expression is malformed or uses an unsupported operator."""


class VariableNotFoundError(DialogueError, KeyError):
    """A variable was read before it was declared."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Variable {name} not found.")

    def __str__(self) -> str:
        return self.args[0]


class VariableConversionError(DialogueError, TypeError):
    """A stored variable cannot be converted to the requested type."""


class StateRestoreError(DialogueError):
    """A saved traversal state is malformed or no longer matches the scripts."""


class MissingAssetError(DialogueError):
    """A named CG, music track or sound effect does not exist."""
