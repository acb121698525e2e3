"""
Dialogue script parser - compiles ``*.dlg`` files into NodeData.

Script format:

```
var met_ava = false                 // global variable declaration
#Node:harbor_intro
[Music=Harbor]                      // inline command
The gulls were louder than usual.   // narration (no speaker)
Ava|You made it.                    // spoken line
#StartDecision
-Apologize
Ava|Hm. Fine.
-Say nothing
Ava|...
#EndDecision
if (met_ava == true)
Ava|Welcome back.
else
Ava|Have we met?
endif
#EndNode
```

The grammar is line oriented, so parsing is a single pass with explicit
stacks for open decision and conditional blocks.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dialogue.errors import NodeNotFoundError, ScriptLoadError, ScriptParseError
from dialogue.nodes import Conditional, ConditionalBlock, Decision, DecisionBlock, NodeData
from dialogue.variables import VariableStore, parse_value

logger = logging.getLogger(__name__)

SCRIPT_EXTENSION = ".dlg"

VAR_PATTERN = re.compile(r'^var\s+(\w+)\s*=\s*(.+)$')
NODE_MARKER = "#Node:"
END_NODE_MARKER = "#EndNode"
START_DECISION_MARKER = "#StartDecision"
END_DECISION_MARKER = "#EndDecision"
IF_PATTERN = re.compile(r'^if\s*\(')
ELSE_IF_PATTERN = re.compile(r'^else\s+if\s*\(')
ELSE_PATTERN = re.compile(r'^else$')
ENDIF_PATTERN = re.compile(r'^endif$')


def strip_comment(line: str) -> str:
    """Remove a trailing ``//`` comment that is not inside a quoted string."""
    in_string = False
    for i in range(len(line) - 1):
        if line[i] == '"':
            in_string = not in_string
        if not in_string and line[i] == '/' and line[i + 1] == '/':
            return line[:i].rstrip()
    return line


def extract_condition(line: str) -> str:
    """Return the contents of the first balanced parenthesis group, or ""."""
    start = line.find("(")
    if start == -1:
        return ""

    depth = 0
    for i in range(start, len(line)):
        if line[i] == "(":
            depth += 1
        elif line[i] == ")":
            depth -= 1
            if depth == 0:
                return line[start + 1:i].strip()

    return ""


@dataclass
class _ParseState:
    """Mutable state while reading one target node."""
    node: NodeData
    path: Optional[Path] = None
    open_decision: Optional[DecisionBlock] = None
    open_conditionals: list[ConditionalBlock] = field(default_factory=list)
    line_number: int = 0

    @property
    def cursor(self) -> int:
        return len(self.node.lines)

    def error(self, message: str) -> ScriptParseError:
        return ScriptParseError(message, self.path, self.line_number)


class ScriptParser:
    """
    Finds and compiles nodes from dialogue script files.

    Every lookup re-reads the script directory, so edited scripts are picked
    up on the next node entry without restarting the game.

    Usage:
        parser = ScriptParser(variables, dialogue_path="game/dialogue")
        node = parser.find_node("harbor_intro", source_context="Harbor")
    """

    def __init__(self, variables: VariableStore, dialogue_path: str | Path = "game/dialogue"):
        self.variables = variables
        self.dialogue_path = Path(dialogue_path)

    def script_files(self) -> list[Path]:
        """All script files under the dialogue directory, in path order."""
        if not self.dialogue_path.exists():
            logger.warning("Dialogue directory not found: %s", self.dialogue_path)
            return []
        return sorted(self.dialogue_path.rglob(f"*{SCRIPT_EXTENSION}"))

    def find_node(self, node_name: str, source_context: str = "") -> NodeData:
        """
        Search every script file for a node.

        Raises:
            NodeNotFoundError: If no file defines the node.
            ScriptLoadError: If a script file cannot be read.
            ScriptParseError: If the node's file is malformed.
        """
        for path in self.script_files():
            try:
                source = path.read_text(encoding="utf-8")
            except OSError as e:
                raise ScriptLoadError(f"Failed to read {path}: {e}") from e

            node = self.parse(source, node_name, source_context, path=path)
            if node is not None:
                return node

        logger.error("Node not found: %s", node_name)
        raise NodeNotFoundError(node_name)

    def parse(
        self,
        source: str,
        node_name: str,
        source_context: str = "",
        path: Optional[Path] = None,
    ) -> Optional[NodeData]:
        """
        Compile one node from script text.

        Variable declarations met before the node closes are applied to the
        variable store as a side effect.

        Returns:
            The node, or None if this text does not define it.
        """
        state: Optional[_ParseState] = None

        for line_number, raw_line in enumerate(source.split("\n"), start=1):
            line = strip_comment(raw_line.strip())
            if not line:
                continue

            match = VAR_PATTERN.match(line)
            if match:
                self.variables.set(match.group(1), parse_value(match.group(2).strip()))
                continue

            if state is None:
                if line.startswith(NODE_MARKER) and line[len(NODE_MARKER):].strip() == node_name:
                    state = _ParseState(
                        node=NodeData(name=node_name, source_context=source_context),
                        path=path,
                    )
                continue

            state.line_number = line_number
            if line.startswith(END_NODE_MARKER):
                self._close_node(state)
                return state.node

            self._read_line(state, line)

        if state is not None:
            raise ScriptParseError(f"Node '{node_name}' is missing {END_NODE_MARKER}", path)
        return None

    def _read_line(self, state: _ParseState, line: str) -> None:
        if line.startswith(NODE_MARKER):
            raise state.error(f"'{line}' opened before {END_NODE_MARKER} of '{state.node.name}'")

        if line.startswith(START_DECISION_MARKER):
            self._start_decision(state)
        elif line.startswith(END_DECISION_MARKER):
            self._end_decision(state)
        elif line.startswith("-") and state.open_decision is not None:
            self._add_option(state, line[1:].strip())
        elif line.startswith("-"):
            raise state.error(f"Decision option '{line}' outside {START_DECISION_MARKER}")
        elif ELSE_IF_PATTERN.match(line):
            self._else_if(state, extract_condition(line))
        elif ELSE_PATTERN.match(line):
            self._else(state)
        elif ENDIF_PATTERN.match(line):
            self._end_if(state)
        elif IF_PATTERN.match(line):
            self._start_if(state, extract_condition(line))
        else:
            state.node.lines.append(line)

    # Decisions

    def _start_decision(self, state: _ParseState) -> None:
        if state.open_decision is not None:
            raise state.error("Decisions cannot be nested")
        state.open_decision = DecisionBlock(
            index=len(state.node.decision_blocks),
            start_line=state.cursor,
            end_line=state.cursor,
        )

    def _add_option(self, state: _ParseState, label: str) -> None:
        block = state.open_decision
        if block.options:
            block.options[-1].end_line = state.cursor
        block.options.append(Decision(label=label, start_line=state.cursor, end_line=state.cursor))

    def _end_decision(self, state: _ParseState) -> None:
        block = state.open_decision
        if block is None:
            raise state.error(f"{END_DECISION_MARKER} without {START_DECISION_MARKER}")
        if not block.options:
            raise state.error("Decision block has no options")

        block.options[-1].end_line = state.cursor
        block.end_line = state.cursor
        state.node.decision_blocks.append(block)
        state.open_decision = None

    # Conditionals

    def _start_if(self, state: _ParseState, expression: str) -> None:
        block = ConditionalBlock(
            index=len(state.node.conditional_blocks),
            if_branch=Conditional(expression=expression, start_line=state.cursor, end_line=state.cursor),
            start_line=state.cursor,
            end_line=state.cursor,
        )
        # Registered on open so outer blocks come before the blocks they contain
        state.node.conditional_blocks.append(block)
        state.open_conditionals.append(block)

    def _current_conditional(self, state: _ParseState, marker: str) -> ConditionalBlock:
        if not state.open_conditionals:
            raise state.error(f"'{marker}' without a matching 'if'")
        block = state.open_conditionals[-1]
        if block.else_branch is not None:
            raise state.error(f"'{marker}' after 'else'")
        return block

    def _last_branch(self, block: ConditionalBlock) -> Conditional:
        return block.else_branch or (block.else_if_branches or [block.if_branch])[-1]

    def _else_if(self, state: _ParseState, expression: str) -> None:
        block = self._current_conditional(state, "else if")
        self._last_branch(block).end_line = state.cursor
        block.else_if_branches.append(
            Conditional(expression=expression, start_line=state.cursor, end_line=state.cursor)
        )

    def _else(self, state: _ParseState) -> None:
        block = self._current_conditional(state, "else")
        self._last_branch(block).end_line = state.cursor
        block.else_branch = Conditional(start_line=state.cursor, end_line=state.cursor)

    def _end_if(self, state: _ParseState) -> None:
        if not state.open_conditionals:
            raise state.error("'endif' without a matching 'if'")
        block = state.open_conditionals.pop()
        self._last_branch(block).end_line = state.cursor
        block.end_line = state.cursor

    def _close_node(self, state: _ParseState) -> None:
        if state.open_decision is not None:
            raise state.error(f"{START_DECISION_MARKER} not closed before {END_NODE_MARKER}")
        if state.open_conditionals:
            raise state.error(f"'if' not closed before {END_NODE_MARKER}")
