"""
Dialogue runtime - walks parsed nodes line by line.

The runtime is a state machine driven by the host:

    context = DialogueContext(config=load_config("saves"))
    runtime = DialogueRuntime(context, dialogue_path="game/dialogue",
                              audio=audio_manager, cg=cg_layer,
                              text_presenter=dialogue_box)
    runtime.start("harbor_intro")

    # every frame
    runtime.update(dt)

    # on the confirm key / click
    runtime.advance_input()

Each time the cursor moves, the advance cycle runs until it reaches a
line that needs the player: a content line to present or a decision to
choose. On the way it leaves finished branches, enters conditional and
decision blocks, executes inline commands and follows ``GoTo``.
"""

from __future__ import annotations

import logging
import re
from enum import Enum, auto
from typing import Optional

from pydantic import ValidationError

from engine.core.events import DialogueEvent, EventBus
from dialogue.commands import CommandDispatcher, is_command
from dialogue.config import ConfigData
from dialogue.errors import DialogueError, StateRestoreError
from dialogue.expressions import ExpressionEvaluator
from dialogue.interfaces import (
    AudioPlayer,
    CameraMover,
    CGDisplay,
    DecisionPresenter,
    PresentedLine,
    TextPresenter,
)
from dialogue.nodes import DecisionBlock, DialogueLine, NodeData
from dialogue.parser import ScriptParser
from dialogue.state import NodeFrame, TranscriptEntry, TraversalState
from dialogue.variables import VariableStore, format_value
from dialogue.writer import TextWriter

logger = logging.getLogger(__name__)

PLAYER_SPEAKER = "Player"

INTERPOLATION_PATTERN = re.compile(r"\{(\w+)\}")
RICH_TAG_PATTERN = re.compile(r"<[^<>]*>")


class RuntimeState(Enum):
    """What the runtime is waiting for."""
    IDLE = auto()
    PRESENTING = auto()
    AWAITING_DECISION = auto()
    PAUSED = auto()


class PlaybackMode(Enum):
    """How presented lines advance."""
    NORMAL = auto()
    AUTO = auto()
    FAST_FORWARD = auto()


class DialogueContext:
    """
    Session-wide objects shared by the runtime, parser and save manager.

    One context exists per play session. Variables and playback mode live
    here rather than on the runtime so menus can read them without holding
    the runtime.
    """

    def __init__(
        self,
        config: Optional[ConfigData] = None,
        events: Optional[EventBus] = None,
        variables: Optional[VariableStore] = None,
    ):
        self.config = config if config is not None else ConfigData()
        self.events = events if events is not None else EventBus()
        self.variables = variables if variables is not None else VariableStore()
        self.playback_mode = PlaybackMode.NORMAL


class DialogueRuntime:
    """
    Executes dialogue nodes.

    Attributes:
        state: Current RuntimeState
        traversal: Serializable TraversalState for the session
        writer: TextWriter for the line on screen, if any
    """

    def __init__(
        self,
        context: DialogueContext,
        dialogue_path: str = "game/dialogue",
        camera: Optional[CameraMover] = None,
        cg: Optional[CGDisplay] = None,
        audio: Optional[AudioPlayer] = None,
        text_presenter: Optional[TextPresenter] = None,
        decision_presenter: Optional[DecisionPresenter] = None,
    ):
        self.context = context
        self.parser = ScriptParser(context.variables, dialogue_path)
        self.evaluator = ExpressionEvaluator(context.variables)
        self.camera = camera
        self.text_presenter = text_presenter
        self.decision_presenter = decision_presenter
        self.commands = CommandDispatcher(
            camera=camera,
            cg=cg,
            audio=audio,
            go_to=self._go_to,
            events=context.events,
        )

        self.state = RuntimeState.IDLE
        self.traversal = TraversalState()
        self.writer: Optional[TextWriter] = None

        # Parsed nodes, parallel to traversal.node_stack
        self._nodes: list[NodeData] = []
        self._line: Optional[DialogueLine] = None
        self._speaker = ""
        self._paused_from: Optional[RuntimeState] = None
        self._halted = False
        self._auto_timer = 0.0
        self._fast_forward_timer = 0.0

        # Blocks already evaluated during the current advance cycle
        self._evaluated: set[tuple] = set()
        self._unrecorded_line: Optional[tuple[int, int]] = None

    # --- Properties ---

    @property
    def events(self) -> EventBus:
        return self.context.events

    @property
    def config(self) -> ConfigData:
        return self.context.config

    @property
    def playback_mode(self) -> PlaybackMode:
        return self.context.playback_mode

    @property
    def current_node(self) -> Optional[NodeData]:
        return self._nodes[-1] if self._nodes else None

    @property
    def current_line(self) -> int:
        return self.traversal.current_line

    @property
    def is_active(self) -> bool:
        return self.state is not RuntimeState.IDLE

    # --- Navigation ---

    def start(self, node_name: str, source_context: str = "") -> bool:
        """
        Begin a new dialogue session at ``node_name``.

        Returns:
            False if the node was already completed or has no lines; the
            session then ends straight away.

        Raises:
            DialogueError: If the node cannot be loaded.
        """
        self._halt()
        self._halted = False
        self._paused_from = None
        self._speaker = ""
        self.traversal.command_history = []
        self.traversal.node_stack = []
        self.traversal.clear_blocks()
        self.traversal.current_line = 0
        self._nodes = []

        if not self.find_node(node_name, source_context):
            self._end_session()
            return False

        self.events.publish(DialogueEvent.AUTO_SAVE_REQUESTED, node=node_name)
        return True

    def find_node(self, node_name: str, source_context: str = "") -> bool:
        """
        Enter a node and run until something needs the player.

        Returns:
            False if the node was already completed or has no lines.

        Raises:
            DialogueError: If the node cannot be loaded. The runtime halts
                in IDLE before the error propagates.
        """
        if not self._open_node(node_name, source_context):
            return False
        self._run()
        return True

    def _open_node(self, node_name: str, source_context: str) -> bool:
        if node_name in self.traversal.completed_nodes:
            logger.info("Node '%s' already completed, skipping", node_name)
            return False

        try:
            node = self.parser.find_node(node_name, source_context)
        except DialogueError as e:
            logger.error("Failed to load node '%s': %s", node_name, e)
            self._halt()
            self.events.publish(DialogueEvent.LOAD_FAILED, node=node_name, error=str(e))
            raise

        if not node.lines:
            logger.warning("Node '%s' has no lines", node_name)
            return False

        self._enter(node)
        return True

    def _go_to(self, node_name: str) -> bool:
        top = self.traversal.top
        source_context = top.source_context if top else ""
        try:
            return self._open_node(node_name, source_context)
        except DialogueError:
            # Already logged and halted
            return False

    def _enter(self, node: NodeData) -> None:
        traversal = self.traversal
        top = traversal.top

        if top is not None and top.node_name == node.name:
            # Re-entering the node on top keeps its cursor and open blocks
            node.line = traversal.current_line
            self._nodes[-1] = node
            return

        if top is not None:
            top.resume_line = traversal.current_line
            self._nodes[-1].line = traversal.current_line
            traversal.suspend_blocks(top)

        traversal.node_stack.append(
            NodeFrame(node_name=node.name, source_context=node.source_context)
        )
        self._nodes.append(node)
        traversal.current_line = 0

        logger.debug("Entered node '%s'", node.name)
        self.events.publish(DialogueEvent.NODE_ENTERED, node=node.name)

    def _finish_node(self) -> bool:
        """Pop the finished node. Returns False when the session is over."""
        traversal = self.traversal
        frame = traversal.node_stack.pop()
        self._nodes.pop()

        if frame.node_name not in traversal.completed_nodes:
            traversal.completed_nodes.append(frame.node_name)
        self.events.publish(DialogueEvent.NODE_COMPLETED, node=frame.node_name)

        caller = traversal.top
        if caller is None:
            traversal.clear_blocks()
            traversal.current_line = 0
            self._end_session()
            return False

        traversal.current_line = caller.resume_line
        traversal.resume_blocks(caller)
        return True

    def _end_session(self) -> None:
        self.state = RuntimeState.IDLE
        self.writer = None
        self._line = None
        logger.info("Dialogue session ended")
        self.events.publish(DialogueEvent.SESSION_ENDED)

    def _halt(self) -> None:
        self._halted = True
        self.state = RuntimeState.IDLE
        self.writer = None
        self._line = None

    # --- Advance cycle ---

    def _run(self, evaluated: Optional[set[tuple]] = None) -> None:
        self._evaluated = evaluated or set()
        traversal = self.traversal

        while not self._halted:
            node = self.current_node
            if node is None:
                return

            if traversal.current_line >= len(node.lines):
                if not self._finish_node():
                    return
                continue

            line_number = traversal.current_line
            self._update_conditionals(node)
            if self._update_decisions(node):
                return
            if traversal.current_line != line_number:
                continue

            line = node.lines[line_number]
            if is_command(line):
                traversal.command_history.append(line)
                traversal.current_line += 1
                self.commands.dispatch(line)
                continue

            dialogue_line = DialogueLine.from_line(line)
            if not dialogue_line.text:
                traversal.current_line += 1
                continue

            self._present(node, dialogue_line)
            return

    def _block_key(self, kind: str, index: int) -> tuple:
        return (len(self._nodes), self.current_node.name, kind, index)

    def _update_conditionals(self, node: NodeData) -> None:
        traversal = self.traversal

        while True:
            # Leave finished branches, innermost first
            while traversal.active_conditionals:
                block = node.conditional_blocks[traversal.active_conditionals[-1]]
                branch = block.branches[traversal.resolved_branches[-1]]
                if traversal.current_line < branch.end_line:
                    break
                # Block exits only ever move the cursor forward
                traversal.current_line = max(traversal.current_line, block.end_line)
                traversal.active_conditionals.pop()
                traversal.resolved_branches.pop()

            block = self._conditional_at_cursor(node)
            if block is None:
                return

            self._evaluated.add(self._block_key("if", block.index))
            branch = block.select_branch(self.evaluator)
            if branch is None:
                traversal.current_line = block.end_line
            else:
                traversal.active_conditionals.append(block.index)
                traversal.resolved_branches.append(block.branches.index(branch))
                traversal.current_line = branch.start_line

    def _conditional_at_cursor(self, node: NodeData):
        for block in node.conditional_blocks:
            if block.start_line != self.traversal.current_line:
                continue
            if block.index in self.traversal.active_conditionals:
                continue
            if self._block_key("if", block.index) in self._evaluated:
                continue
            return block
        return None

    def _update_decisions(self, node: NodeData) -> bool:
        """Returns True if the runtime is now waiting for a choice."""
        traversal = self.traversal

        # Entered but not chosen yet, e.g. saved while the choices were up
        if len(traversal.made_choices) < len(traversal.active_decisions):
            self._await_decision(node.decision_blocks[traversal.active_decisions[-1]])
            return True

        while traversal.active_decisions:
            block = node.decision_blocks[traversal.active_decisions[-1]]
            option = block.options[traversal.made_choices[-1]]
            if traversal.current_line < option.end_line:
                break
            # An enclosing conditional may already have moved past this block
            traversal.current_line = max(traversal.current_line, block.end_line)
            traversal.active_decisions.pop()
            traversal.made_choices.pop()

        for block in node.decision_blocks:
            if block.start_line != traversal.current_line:
                continue
            if block.index in traversal.active_decisions:
                continue
            if self._block_key("decision", block.index) in self._evaluated:
                continue
            traversal.active_decisions.append(block.index)
            self._await_decision(block)
            return True

        return False

    def _await_decision(self, block: DecisionBlock) -> None:
        self.state = RuntimeState.AWAITING_DECISION
        self.writer = None
        labels = block.labels
        if self.decision_presenter:
            self.decision_presenter.show_decisions(labels)
        self.events.publish(DialogueEvent.DECISION_REQUESTED, labels=labels)

    def make_decision(self, index: int) -> bool:
        """
        Choose option ``index`` of the decision on screen.

        Returns:
            False if no decision is waiting.

        Raises:
            IndexError: If index is not a valid option.
        """
        if self.state is not RuntimeState.AWAITING_DECISION:
            logger.warning("make_decision(%d) called with no decision active", index)
            return False

        traversal = self.traversal
        block = self.current_node.decision_blocks[traversal.active_decisions[-1]]
        if not 0 <= index < len(block.options):
            raise IndexError(f"Decision index {index} out of range (0-{len(block.options) - 1})")

        option = block.options[index]
        traversal.made_choices.append(index)
        traversal.current_line = option.start_line

        if self.decision_presenter:
            self.decision_presenter.hide_decisions()
        self.events.publish(DialogueEvent.DECISION_MADE, index=index, label=option.label)

        if self.playback_mode is PlaybackMode.FAST_FORWARD and not self.config.skip_after_choices:
            self._set_playback_mode(PlaybackMode.NORMAL)

        self._run(evaluated={self._block_key("decision", block.index)})
        return True

    # --- Presentation ---

    def resolve_text(self, text: str) -> str:
        """Apply ``{variable}`` interpolation and inline style tags."""

        def interpolate(match: re.Match) -> str:
            value, found = self.context.variables.try_get(match.group(1))
            return format_value(value) if found else match.group(0)

        text = INTERPOLATION_PATTERN.sub(interpolate, text)
        text = text.replace("[emp]", f"<color=#{self.config.emphasis_color}>").replace("[/emp]", "</color>")
        text = text.replace("[it]", "<i>").replace("[/it]", "</i>")
        return text

    def _present(self, node: NodeData, line: DialogueLine) -> None:
        traversal = self.traversal
        text = self.resolve_text(line.text)
        speaker = line.speaker

        if speaker and speaker != self._speaker:
            self._speaker = speaker
            if self.camera and speaker != PLAYER_SPEAKER:
                self.camera.move_to(speaker)

        position = (len(self._nodes), traversal.current_line)
        if position != self._unrecorded_line:
            traversal.transcript.append(TranscriptEntry(speaker=speaker, text=text))
        self._unrecorded_line = None

        node.line = traversal.current_line
        self._line = line
        self._auto_timer = 0.0
        self._fast_forward_timer = 0.0
        self.state = RuntimeState.PRESENTING

        writer = TextWriter(
            text,
            self.config.seconds_per_character,
            on_complete=lambda: self._on_text_completed(writer),
        )
        self.writer = writer

        if self.text_presenter:
            self.text_presenter.present(PresentedLine(
                speaker=speaker,
                text=text,
                color=self.config.dialogue_color if speaker else self.config.internal_color,
                show_name_box=bool(speaker),
            ))

        self.events.publish(
            DialogueEvent.LINE_PRESENTED,
            node=node.name,
            line=traversal.current_line,
            speaker=speaker,
            text=text,
        )

        if self.playback_mode is PlaybackMode.FAST_FORWARD:
            writer.write_all()
        self._refresh_text()

    def _on_text_completed(self, writer: TextWriter) -> None:
        if writer is not self.writer:
            return
        self._auto_timer = 0.0
        self.events.publish(DialogueEvent.TEXT_COMPLETED)

    def _refresh_text(self) -> None:
        if self.text_presenter and self.writer:
            self.text_presenter.update_text(self.writer.visible_text)

    def _read_time(self) -> float:
        """Auto mode delay, from the text as displayed (interpolated, tags removed)."""
        if self.writer is None:
            return 0.0
        shown = RICH_TAG_PATTERN.sub("", self.writer.text)
        return self.config.time_per_character * len(shown) * self.config.auto_forward_time

    def update(self, dt: float) -> None:
        """Tick the text writer and the auto / fast-forward timers."""
        if self.state is not RuntimeState.PRESENTING or self.writer is None:
            return

        if not self.writer.complete:
            self.writer.tick(dt)
            self._refresh_text()
            return

        mode = self.playback_mode
        if mode is PlaybackMode.AUTO:
            self._auto_timer += dt
            if self._auto_timer >= self._read_time():
                self._advance()
        elif mode is PlaybackMode.FAST_FORWARD:
            self._fast_forward_timer += dt
            if self._fast_forward_timer >= self.config.fast_forward_time:
                self._advance()

    def _advance(self) -> None:
        self._auto_timer = 0.0
        self._fast_forward_timer = 0.0
        self.traversal.current_line += 1
        self._run()

    # --- Input ---

    def advance_input(self) -> None:
        """
        Handle the advance key.

        Leaves auto / fast-forward first; in normal mode completes the text
        on screen, or moves on if it is already complete.
        """
        if self.state is not RuntimeState.PRESENTING or self.writer is None:
            return

        if self.playback_mode is not PlaybackMode.NORMAL:
            self._set_playback_mode(PlaybackMode.NORMAL)
            return

        if not self.writer.complete:
            self.writer.write_all()
            self._refresh_text()
        else:
            self._advance()

    def toggle_auto(self) -> None:
        if self.playback_mode is PlaybackMode.AUTO:
            self._set_playback_mode(PlaybackMode.NORMAL)
        else:
            self._set_playback_mode(PlaybackMode.AUTO)

    def toggle_fast_forward(self) -> None:
        if self.playback_mode is PlaybackMode.FAST_FORWARD:
            self._set_playback_mode(PlaybackMode.NORMAL)
            return

        self._set_playback_mode(PlaybackMode.FAST_FORWARD)
        if self.writer and not self.writer.complete:
            self.writer.write_all()
            self._refresh_text()

    def _set_playback_mode(self, mode: PlaybackMode) -> None:
        self._auto_timer = 0.0
        self._fast_forward_timer = 0.0
        if self.context.playback_mode is mode:
            return
        self.context.playback_mode = mode
        self.events.publish(DialogueEvent.PLAYBACK_CHANGED, mode=mode)

    def pause(self) -> None:
        """Freeze the runtime under a game menu."""
        if self.state in (RuntimeState.PRESENTING, RuntimeState.AWAITING_DECISION):
            self._paused_from = self.state
            self.state = RuntimeState.PAUSED

    def resume(self) -> None:
        if self.state is RuntimeState.PAUSED and self._paused_from is not None:
            self.state = self._paused_from
            self._paused_from = None

    # --- Queries ---

    def current_dialogue_line(self) -> Optional[DialogueLine]:
        """The line on screen (``raw_text`` gives its tag-free text)."""
        if self.state is RuntimeState.IDLE:
            return None
        return self._line

    def available_decision_labels(self) -> list[str]:
        waiting = self.state is RuntimeState.AWAITING_DECISION or (
            self.state is RuntimeState.PAUSED and self._paused_from is RuntimeState.AWAITING_DECISION
        )
        if not waiting:
            return []
        return self.current_node.decision_blocks[self.traversal.active_decisions[-1]].labels

    # --- Save / load ---

    def serialize_traversal_state(self) -> str:
        """The session as a JSON blob, including a variable snapshot."""
        snapshot = self.traversal.model_copy(
            update={"variables": self.context.variables.to_variables()},
            deep=True,
        )
        return snapshot.model_dump_json()

    def restore_traversal_state(self, blob: str | bytes) -> None:
        """
        Resume a serialized session.

        Nothing changes unless the blob is valid and every node on its stack
        still parses. Then variables are reloaded, the command history is
        replayed and the saved line is shown again (or its decision offered).

        Raises:
            StateRestoreError: If the blob is invalid or no longer matches the scripts.
        """
        try:
            traversal = TraversalState.model_validate_json(blob)
        except ValidationError as e:
            raise StateRestoreError(f"Invalid traversal state: {e}") from e

        if not traversal.node_stack:
            raise StateRestoreError("Traversal state has no node to resume")

        # Parsing applies var declarations, so keep the old values until committed
        previous_variables = self.context.variables.as_dict()
        try:
            nodes = [
                self.parser.find_node(frame.node_name, frame.source_context)
                for frame in traversal.node_stack
            ]
            _validate_traversal(traversal, nodes)
        except DialogueError as e:
            self.context.variables.load_all(previous_variables)
            if isinstance(e, StateRestoreError):
                raise
            raise StateRestoreError(f"Cannot restore traversal state: {e}") from e

        self.context.variables.load_all(traversal.variables)
        for frame, node in zip(traversal.node_stack, nodes):
            node.line = frame.resume_line
        nodes[-1].line = traversal.current_line

        self.traversal = traversal
        self._nodes = nodes
        self._halted = False
        self._speaker = ""
        self._paused_from = None
        self.writer = None
        self._line = None
        self.state = RuntimeState.IDLE

        self.commands.replay(traversal.command_history)

        self._unrecorded_line = (len(nodes), traversal.current_line)
        self._run()
        self._unrecorded_line = None
        logger.info("Restored traversal at '%s' line %d", nodes[-1].name, traversal.current_line)


def _validate_traversal(traversal: TraversalState, nodes: list[NodeData]) -> None:
    def check_stacks(node: NodeData, decisions, choices, conditionals, branches) -> None:
        if len(choices) > len(decisions) or len(branches) != len(conditionals):
            raise StateRestoreError(f"Block stacks for '{node.name}' are inconsistent")
        for block_index, choice in zip(decisions, choices + [0] * (len(decisions) - len(choices))):
            if not 0 <= block_index < len(node.decision_blocks):
                raise StateRestoreError(f"Decision block {block_index} not in '{node.name}'")
            if not 0 <= choice < len(node.decision_blocks[block_index].options):
                raise StateRestoreError(f"Option {choice} not in decision block {block_index}")
        for block_index, branch in zip(conditionals, branches):
            if not 0 <= block_index < len(node.conditional_blocks):
                raise StateRestoreError(f"Conditional block {block_index} not in '{node.name}'")
            if not 0 <= branch < len(node.conditional_blocks[block_index].branches):
                raise StateRestoreError(f"Branch {branch} not in conditional block {block_index}")

    for frame, node in zip(traversal.node_stack[:-1], nodes[:-1]):
        if not 0 <= frame.resume_line <= len(node.lines):
            raise StateRestoreError(f"Resume line {frame.resume_line} outside '{node.name}'")
        check_stacks(
            node,
            frame.suspended_decisions,
            frame.suspended_choices,
            frame.suspended_conditionals,
            frame.suspended_branches,
        )

    top = nodes[-1]
    if not 0 <= traversal.current_line <= len(top.lines):
        raise StateRestoreError(f"Line {traversal.current_line} outside '{top.name}'")
    check_stacks(
        top,
        traversal.active_decisions,
        traversal.made_choices,
        traversal.active_conditionals,
        traversal.resolved_branches,
    )
