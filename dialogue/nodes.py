"""
Node data - the compiled form of one ``#Node:`` block.

A node is a flat list of content lines plus index structures describing
where decisions and conditionals start and end. All ``end_line`` values are
exclusive: a branch covering lines 3 and 4 has ``start_line=3, end_line=5``.
"""

from __future__ import annotations

import re
from typing import Optional

from pydantic import Field

from engine.core.model import DataModel
from dialogue.expressions import ExpressionEvaluator

TAG_PATTERN = re.compile(r"\[.*?\]")


class Decision(DataModel):
    """One option of a decision block."""
    label: str
    start_line: int
    end_line: int


class DecisionBlock(DataModel):
    """
    A branch point between ``#StartDecision`` and ``#EndDecision``.

    Attributes:
        index: Position of the block within its node
        start_line: Line at which the player is asked to choose
        end_line: First line after the whole block
        options: Choices in script order
    """
    index: int
    start_line: int
    end_line: int
    options: list[Decision] = Field(default_factory=list)

    @property
    def labels(self) -> list[str]:
        return [option.label for option in self.options]


class Conditional(DataModel):
    """One branch of an if / else if / else chain. ``else`` has no expression."""
    expression: str = ""
    start_line: int
    end_line: int

    def evaluate(self, evaluator: ExpressionEvaluator) -> bool:
        """Evaluate the branch condition; errors count as false."""
        return evaluator.evaluate_safe(self.expression)


class ConditionalBlock(DataModel):
    """An if / else if / else chain from ``if (...)`` to ``endif``."""
    index: int
    if_branch: Conditional
    else_if_branches: list[Conditional] = Field(default_factory=list)
    else_branch: Optional[Conditional] = None
    start_line: int
    end_line: int

    @property
    def branches(self) -> list[Conditional]:
        """All branches in declared order."""
        result = [self.if_branch, *self.else_if_branches]
        if self.else_branch is not None:
            result.append(self.else_branch)
        return result

    def select_branch(self, evaluator: ExpressionEvaluator) -> Optional[Conditional]:
        """The first branch whose expression is true, else the else branch (if any)."""
        for branch in [self.if_branch, *self.else_if_branches]:
            if branch.evaluate(evaluator):
                return branch
        return self.else_branch


class NodeData(DataModel):
    """
    A parsed node.

    Attributes:
        name: Node name from ``#Node:<name>``
        source_context: Scene the node was loaded for
        line: Line to resume at when the node is re-entered
        lines: Content lines (comment-stripped, trimmed)
        decision_blocks: Decision blocks in script order
        conditional_blocks: Conditional blocks in opening order (outer before inner)
    """
    name: str
    source_context: str = ""
    line: int = 0
    lines: list[str] = Field(default_factory=list)
    decision_blocks: list[DecisionBlock] = Field(default_factory=list)
    conditional_blocks: list[ConditionalBlock] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.lines)


class DialogueLine(DataModel):
    """A content line split into speaker and text."""
    speaker: str = ""
    text: str = ""

    @classmethod
    def from_line(cls, line: str) -> DialogueLine:
        """Split ``speaker|text``; lines without a pipe have no speaker."""
        if "|" in line:
            speaker, text = line.split("|", 1)
            return cls(speaker=speaker.strip(), text=text.strip())
        return cls(text=line)

    @property
    def raw_text(self) -> str:
        """The text with every bracketed tag removed."""
        return TAG_PATTERN.sub("", self.text)
