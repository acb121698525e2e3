"""
Traversal state - everything needed to resume a session mid-script.

The state is a pydantic model so the save blob is plain JSON validated on
the way back in. Active block stacks hold block indices (and the chosen
option / branch index alongside), never line numbers, so they stay valid
as long as the node's structure does.
"""

from __future__ import annotations

from typing import Optional

from pydantic import Field

from engine.core.model import DataModel
from dialogue.variables import Variable


class TranscriptEntry(DataModel):
    """One presented line as shown in the history log."""
    speaker: str = ""
    text: str = ""


class NodeFrame(DataModel):
    """
    A node on the traversal stack.

    While a frame is suspended under a ``GoTo`` its block stacks are kept
    here and restored when the called node finishes.
    """
    node_name: str
    source_context: str = ""
    resume_line: int = 0
    suspended_decisions: list[int] = Field(default_factory=list)
    suspended_choices: list[int] = Field(default_factory=list)
    suspended_conditionals: list[int] = Field(default_factory=list)
    suspended_branches: list[int] = Field(default_factory=list)


class TraversalState(DataModel):
    """
    Serializable session state.

    Attributes:
        node_stack: Entered nodes, innermost last
        current_line: Cursor into the top node's lines
        active_decisions: Indices of entered decision blocks, outermost first
        made_choices: Option index chosen for each entered decision block
        active_conditionals: Indices of entered conditional blocks, outermost first
        resolved_branches: Branch index taken for each entered conditional block
        command_history: Every command executed this session, in order
        completed_nodes: Names of nodes run to the end
        variables: Variable snapshot at save time
        transcript: Presented lines, oldest first
    """
    node_stack: list[NodeFrame] = Field(default_factory=list)
    current_line: int = 0
    active_decisions: list[int] = Field(default_factory=list)
    made_choices: list[int] = Field(default_factory=list)
    active_conditionals: list[int] = Field(default_factory=list)
    resolved_branches: list[int] = Field(default_factory=list)
    command_history: list[str] = Field(default_factory=list)
    completed_nodes: list[str] = Field(default_factory=list)
    variables: list[Variable] = Field(default_factory=list)
    transcript: list[TranscriptEntry] = Field(default_factory=list)

    @property
    def top(self) -> Optional[NodeFrame]:
        return self.node_stack[-1] if self.node_stack else None

    def suspend_blocks(self, frame: NodeFrame) -> None:
        """Move the active block stacks into ``frame`` and clear them."""
        frame.suspended_decisions = self.active_decisions
        frame.suspended_choices = self.made_choices
        frame.suspended_conditionals = self.active_conditionals
        frame.suspended_branches = self.resolved_branches
        self.active_decisions = []
        self.made_choices = []
        self.active_conditionals = []
        self.resolved_branches = []

    def resume_blocks(self, frame: NodeFrame) -> None:
        """Reinstate the block stacks saved in ``frame``."""
        self.active_decisions = frame.suspended_decisions
        self.made_choices = frame.suspended_choices
        self.active_conditionals = frame.suspended_conditionals
        self.resolved_branches = frame.suspended_branches
        frame.suspended_decisions = []
        frame.suspended_choices = []
        frame.suspended_conditionals = []
        frame.suspended_branches = []

    def clear_blocks(self) -> None:
        self.active_decisions = []
        self.made_choices = []
        self.active_conditionals = []
        self.resolved_branches = []
