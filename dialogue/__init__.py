"""
Dialogue module - script compiler and interpreter for visual novels.

Provides:
- Script parsing (nodes, decisions, conditionals, variables, commands)
- Conditional expression evaluation
- Line-by-line traversal with playback modes and save/resume
- Text reveal, transcript and save slots
"""

from dialogue.config import ConfigData, load_config, save_config
from dialogue.errors import (
    DialogueError,
    ScriptLoadError,
    ScriptParseError,
    NodeNotFoundError,
    ExpressionEvalError,
    VariableNotFoundError,
    VariableConversionError,
    StateRestoreError,
    MissingAssetError,
)
from dialogue.expressions import ExpressionEvaluator
from dialogue.nodes import (
    Decision,
    DecisionBlock,
    Conditional,
    ConditionalBlock,
    NodeData,
    DialogueLine,
)
from dialogue.parser import ScriptParser
from dialogue.runtime import DialogueContext, DialogueRuntime, PlaybackMode, RuntimeState
from dialogue.save import SaveData, SaveManager, SaveType
from dialogue.state import NodeFrame, TranscriptEntry, TraversalState
from dialogue.transcript import format_transcript
from dialogue.variables import Variable, VariableStore
from dialogue.writer import TextWriter

__all__ = [
    # Config
    "ConfigData",
    "load_config",
    "save_config",
    # Errors
    "DialogueError",
    "ScriptLoadError",
    "ScriptParseError",
    "NodeNotFoundError",
    "ExpressionEvalError",
    "VariableNotFoundError",
    "VariableConversionError",
    "StateRestoreError",
    "MissingAssetError",
    # Script
    "ScriptParser",
    "ExpressionEvaluator",
    "Variable",
    "VariableStore",
    "Decision",
    "DecisionBlock",
    "Conditional",
    "ConditionalBlock",
    "NodeData",
    "DialogueLine",
    # Runtime
    "DialogueContext",
    "DialogueRuntime",
    "PlaybackMode",
    "RuntimeState",
    "TextWriter",
    "TraversalState",
    "NodeFrame",
    "TranscriptEntry",
    "format_transcript",
    # Saves
    "SaveManager",
    "SaveData",
    "SaveType",
]
