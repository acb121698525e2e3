import pytest

from engine.core.events import DialogueEvent
from dialogue.errors import NodeNotFoundError, StateRestoreError
from dialogue.runtime import DialogueContext, DialogueRuntime, PlaybackMode, RuntimeState
from dialogue.state import NodeFrame, TraversalState
from dialogue.transcript import format_transcript

DECISION_SCRIPT = """
    #Node:main
    #StartDecision
    -Go left
    Left path.
    -Go right
    Right path.
    #EndDecision
    Done.
    #EndNode
"""

GOTO_SCRIPT = """
    #Node:main
    Before.
    [GoTo=side]
    After.
    #EndNode

    #Node:side
    Side line.
    #EndNode
"""

def presented(collaborators):
    """Texts handed to the text presenter, in order."""
    return [c.args[0].text for c in collaborators.text.present.call_args_list]

def advance(runtime):
    """Finish the text on screen and move on."""
    runtime.writer.write_all()
    runtime.advance_input()

def play_to_end(runtime, limit=50):
    for _ in range(limit):
        if runtime.state is not RuntimeState.PRESENTING:
            return
        advance(runtime)
    raise AssertionError("dialogue did not end")

def subscribe(event_bus, event_type):
    received = []
    event_bus.subscribe(event_type, received.append, weak=False)
    return received

# --- Presentation ---

def test_start_presents_first_line(runtime, write_script, collaborators):
    write_script("""
        var name = "Mira"
        #Node:main
        Ava|Hello {name}.
        Narration here.
        #EndNode
    """)

    assert runtime.start("main")

    assert runtime.state is RuntimeState.PRESENTING
    line = runtime.current_dialogue_line()
    assert (line.speaker, line.text) == ("Ava", "Hello {name}.")

    shown = collaborators.text.present.call_args.args[0]
    assert shown.text == "Hello Mira."
    assert shown.show_name_box
    assert shown.color == runtime.config.dialogue_color
    collaborators.camera.move_to.assert_called_once_with("Ava")

def test_narration_uses_internal_color(runtime, write_script, collaborators):
    write_script("#Node:main\nThe wind picked up.\n#EndNode")
    runtime.start("main")

    shown = collaborators.text.present.call_args.args[0]
    assert not shown.show_name_box
    assert shown.color == runtime.config.internal_color
    collaborators.camera.move_to.assert_not_called()

def test_advance_input_completes_text_then_advances(runtime, write_script):
    write_script("#Node:main\nFirst line.\nSecond line.\n#EndNode")
    runtime.start("main")

    runtime.advance_input()
    assert runtime.writer.complete
    assert runtime.current_line == 0

    runtime.advance_input()
    assert runtime.current_line == 1
    assert runtime.current_dialogue_line().text == "Second line."

def test_session_ends_after_last_line(runtime, write_script, event_bus):
    ended = subscribe(event_bus, DialogueEvent.SESSION_ENDED)
    write_script("#Node:main\nOnly line.\n#EndNode")
    runtime.start("main")

    advance(runtime)

    assert runtime.state is RuntimeState.IDLE
    assert runtime.current_dialogue_line() is None
    assert runtime.traversal.completed_nodes == ["main"]
    assert len(ended) == 1

def test_text_tags_and_interpolation(runtime, write_script, collaborators):
    write_script("""
        var name = "Mira"
        #Node:main
        Ava|I'm [emp]{name}[/emp], [it]truly[/it] {ghost}.
        #EndNode
    """)
    runtime.start("main")

    assert presented(collaborators) == ["I'm <color=#FFD966FF>Mira</color>, <i>truly</i> {ghost}."]
    assert runtime.current_dialogue_line().raw_text == "I'm {name}, truly {ghost}."

def test_empty_text_is_skipped(runtime, write_script, collaborators):
    write_script("#Node:main\nAva|\nNext.\n#EndNode")
    runtime.start("main")
    assert presented(collaborators) == ["Next."]

def test_camera_follows_new_speakers_except_player(runtime, write_script, collaborators):
    write_script("""
        #Node:main
        Ava|a
        Ava|b
        Player|c
        Bo|d
        #EndNode
    """)
    runtime.start("main")
    play_to_end(runtime)

    moves = [c.args[0] for c in collaborators.camera.move_to.call_args_list]
    assert moves == ["Ava", "Bo"]

def test_transcript_collects_presented_lines(runtime, write_script):
    write_script("#Node:main\nAva|One.\nTwo.\nAva|Three.\n#EndNode")
    runtime.start("main")
    advance(runtime)
    advance(runtime)

    assert format_transcript(runtime.traversal.transcript) == "Ava: One.\n\nTwo."

# --- Conditionals ---

def test_unset_flag_selects_else(runtime, write_script, collaborators):
    write_script("""
        #Node:main
        if (flag == true)
        A
        else
        B
        endif
        #EndNode
    """)
    runtime.start("main")
    play_to_end(runtime)

    assert presented(collaborators) == ["B"]

def test_true_branch_skips_else(runtime, write_script, collaborators):
    write_script("""
        var flag = true
        #Node:main
        if (flag == true)
        A
        else
        B
        endif
        C
        #EndNode
    """)
    runtime.start("main")
    play_to_end(runtime)

    assert presented(collaborators) == ["A", "C"]

def test_false_without_else_skips_block(runtime, write_script, collaborators):
    write_script("#Node:main\nif (false)\nHidden\nendif\nShown\n#EndNode")
    runtime.start("main")
    assert presented(collaborators) == ["Shown"]

def test_nested_conditionals_and_else_if(runtime, write_script, collaborators):
    write_script("""
        var trust = 3
        #Node:main
        if (trust > 5)
        High
        else if (trust > 2)
        if (trust == 3)
        Exactly three
        endif
        Mid
        else
        Low
        endif
        End
        #EndNode
    """)
    runtime.start("main")
    play_to_end(runtime)

    assert presented(collaborators) == ["Exactly three", "Mid", "End"]

def test_empty_conditional_block_does_not_loop(runtime, write_script, collaborators):
    write_script("#Node:main\nif (true)\nendif\nOnly.\n#EndNode")
    runtime.start("main")
    assert presented(collaborators) == ["Only."]

# --- Decisions ---

def test_decision_waits_for_choice(runtime, write_script, collaborators, event_bus):
    requested = subscribe(event_bus, DialogueEvent.DECISION_REQUESTED)
    write_script(DECISION_SCRIPT)
    runtime.start("main")

    assert runtime.state is RuntimeState.AWAITING_DECISION
    assert runtime.available_decision_labels() == ["Go left", "Go right"]
    collaborators.decisions.show_decisions.assert_called_once_with(["Go left", "Go right"])
    assert requested[0]["labels"] == ["Go left", "Go right"]

def test_make_decision_jumps_to_option(runtime, write_script, collaborators):
    write_script(DECISION_SCRIPT)
    runtime.start("main")

    assert runtime.make_decision(1)

    assert runtime.current_line == runtime.current_node.decision_blocks[0].options[1].start_line
    assert runtime.current_dialogue_line().text == "Right path."
    collaborators.decisions.hide_decisions.assert_called_once()

    play_to_end(runtime)
    assert presented(collaborators) == ["Right path.", "Done."]

def test_first_option_skips_to_block_end(runtime, write_script, collaborators):
    write_script(DECISION_SCRIPT)
    runtime.start("main")
    runtime.make_decision(0)
    play_to_end(runtime)

    assert presented(collaborators) == ["Left path.", "Done."]

def test_make_decision_bad_index(runtime, write_script):
    write_script(DECISION_SCRIPT)
    runtime.start("main")

    with pytest.raises(IndexError):
        runtime.make_decision(2)
    assert runtime.state is RuntimeState.AWAITING_DECISION

def test_make_decision_without_decision(runtime, write_script):
    write_script("#Node:main\nLine.\n#EndNode")
    runtime.start("main")
    assert runtime.make_decision(0) is False
    assert runtime.available_decision_labels() == []

def test_empty_options_continue_after_block(runtime, write_script, collaborators):
    write_script("""
        #Node:main
        #StartDecision
        -A
        -B
        #EndDecision
        After.
        #EndNode
    """)
    runtime.start("main")
    runtime.make_decision(1)

    assert presented(collaborators) == ["After."]

def test_decision_inside_true_branch(runtime, write_script, collaborators):
    write_script("""
        #Node:main
        if (true)
        #StartDecision
        -Yes
        Y
        -No
        N
        #EndDecision
        endif
        After.
        #EndNode
    """)
    runtime.start("main")
    assert runtime.state is RuntimeState.AWAITING_DECISION

    runtime.make_decision(0)
    play_to_end(runtime)
    assert presented(collaborators) == ["Y", "After."]

@pytest.mark.parametrize("choice, expected", [
    (0, ["Y", "After."]),
    (1, ["N", "After."]),
])
def test_decision_ending_branch_skips_else(runtime, write_script, collaborators, choice, expected):
    write_script("""
        #Node:main
        if (true)
        #StartDecision
        -Yes
        Y
        -No
        N
        #EndDecision
        else
        Else line.
        endif
        After.
        #EndNode
    """)
    runtime.start("main")
    runtime.make_decision(choice)
    play_to_end(runtime)

    assert presented(collaborators) == expected
    assert runtime.traversal.active_conditionals == []
    assert runtime.traversal.active_decisions == []

def test_decision_ending_else_if_branch(runtime, write_script, collaborators):
    write_script("""
        var trust = 3
        #Node:main
        if (trust > 5)
        High
        else if (trust > 2)
        #StartDecision
        -Stay
        Stayed.
        -Leave
        Left.
        #EndDecision
        else
        Low
        endif
        End
        #EndNode
    """)
    runtime.start("main")
    runtime.make_decision(1)
    play_to_end(runtime)

    assert presented(collaborators) == ["Left.", "End"]

# --- Commands ---

def test_commands_dispatch_and_record(runtime, write_script, collaborators):
    write_script("""
        #Node:main
        [Music=Theme1]
        [CG=harbor]
        [ShowPlayer]
        Hello.
        [HideCG]
        [StopMusic]
        [Sfx=door]
        [HidePlayer]
        [Dance=fast]
        Bye.
        #EndNode
    """)
    runtime.start("main")

    collaborators.audio.play_music.assert_called_once_with("Theme1")
    collaborators.cg.show.assert_called_once_with("harbor")
    collaborators.camera.show_player.assert_called_once()
    assert runtime.traversal.command_history == ["[Music=Theme1]", "[CG=harbor]", "[ShowPlayer]"]

    advance(runtime)

    collaborators.cg.hide.assert_called_once()
    collaborators.audio.stop_music.assert_called_once()
    collaborators.audio.play_sfx.assert_called_once_with("door")
    collaborators.camera.hide_player.assert_called_once()
    assert runtime.traversal.command_history[-1] == "[Dance=fast]"
    assert presented(collaborators) == ["Hello.", "Bye."]

def test_goto_runs_node_and_returns(runtime, write_script, collaborators):
    write_script(GOTO_SCRIPT)
    runtime.start("main")
    advance(runtime)

    assert [f.node_name for f in runtime.traversal.node_stack] == ["main", "side"]
    assert runtime.traversal.node_stack[0].resume_line == 2

    play_to_end(runtime)
    assert presented(collaborators) == ["Before.", "Side line.", "After."]
    assert runtime.traversal.completed_nodes == ["side", "main"]

def test_goto_completed_node_is_skipped(runtime, write_script, collaborators):
    write_script("""
        #Node:main
        [GoTo=side]
        Middle.
        [GoTo=side]
        End.
        #EndNode

        #Node:side
        Side line.
        #EndNode
    """)
    runtime.start("main")
    play_to_end(runtime)

    assert presented(collaborators) == ["Side line.", "Middle.", "End."]

def test_goto_restores_caller_blocks(runtime, write_script, collaborators):
    write_script("""
        #Node:main
        if (true)
        [GoTo=side]
        Inside.
        endif
        Outside.
        #EndNode

        #Node:side
        Side line.
        #EndNode
    """)
    runtime.start("main")

    assert runtime.traversal.active_conditionals == []
    assert runtime.traversal.node_stack[0].suspended_conditionals == [0]

    play_to_end(runtime)
    assert presented(collaborators) == ["Side line.", "Inside.", "Outside."]

def test_goto_missing_node_halts(runtime, write_script, event_bus):
    failed = subscribe(event_bus, DialogueEvent.LOAD_FAILED)
    write_script("#Node:main\n[GoTo=nowhere]\nNever.\n#EndNode")

    runtime.start("main")

    assert runtime.state is RuntimeState.IDLE
    assert failed[0]["node"] == "nowhere"

# --- Node lookup ---

def test_start_missing_node_raises(runtime, write_script, event_bus):
    failed = subscribe(event_bus, DialogueEvent.LOAD_FAILED)
    write_script("#Node:main\nLine.\n#EndNode")

    with pytest.raises(NodeNotFoundError):
        runtime.start("missing")

    assert runtime.state is RuntimeState.IDLE
    assert len(failed) == 1

def test_empty_node_is_not_entered(runtime, write_script, caplog):
    write_script("#Node:empty\n#EndNode")

    assert runtime.start("empty") is False
    assert runtime.state is RuntimeState.IDLE
    assert "has no lines" in caplog.text

def test_completed_node_cannot_restart(runtime, write_script):
    write_script("#Node:main\nLine.\n#EndNode")
    runtime.start("main")
    play_to_end(runtime)

    assert runtime.find_node("main") is False
    assert runtime.state is RuntimeState.IDLE

def test_start_requests_auto_save(runtime, write_script, event_bus):
    requests = subscribe(event_bus, DialogueEvent.AUTO_SAVE_REQUESTED)
    write_script("#Node:main\nLine.\n#EndNode")
    runtime.start("main")
    assert requests[0]["node"] == "main"

def test_start_clears_command_history(runtime, write_script):
    write_script("""
        #Node:first
        [Music=A]
        One.
        #EndNode

        #Node:second
        Two.
        #EndNode
    """)
    runtime.start("first")
    assert runtime.traversal.command_history == ["[Music=A]"]

    runtime.start("second")
    assert runtime.traversal.command_history == []

def test_start_on_completed_node_ends_session(runtime, write_script, event_bus):
    write_script("""
        #Node:a
        A line.
        #EndNode

        #Node:b
        B line.
        #EndNode
    """)
    runtime.start("a")
    play_to_end(runtime)
    runtime.start("b")
    assert runtime.state is RuntimeState.PRESENTING

    ended = subscribe(event_bus, DialogueEvent.SESSION_ENDED)
    assert runtime.start("a") is False

    assert runtime.state is RuntimeState.IDLE
    assert runtime.writer is None
    assert runtime.current_dialogue_line() is None
    assert len(ended) == 1

    runtime.advance_input()
    assert runtime.current_line == 0

def test_start_while_paused_clears_pause(runtime, write_script):
    write_script("#Node:a\nA line.\n#EndNode\n#Node:b\nB line.\n#EndNode")
    runtime.start("a")
    runtime.pause()

    runtime.start("b")
    assert runtime.state is RuntimeState.PRESENTING

    runtime.resume()
    assert runtime.state is RuntimeState.PRESENTING
    assert runtime.current_dialogue_line().text == "B line."

# --- Playback modes ---

def test_auto_mode_advances_after_read_time(runtime, write_script):
    write_script("#Node:main\nHello\nWorld\n#EndNode")
    runtime.start("main")
    runtime.toggle_auto()
    assert runtime.playback_mode is PlaybackMode.AUTO

    runtime.update(1.0)
    assert runtime.writer.complete

    # 0.1 s per character * 5 characters * 0.5 auto-forward
    runtime.update(0.2)
    assert runtime.current_line == 0
    runtime.update(0.1)
    assert runtime.current_line == 1

def test_auto_read_time_uses_displayed_text(runtime, write_script):
    write_script("""
        var nickname = "Al"
        #Node:main
        Hi [emp]{nickname}[/emp].
        Next.
        #EndNode
    """)
    runtime.start("main")
    runtime.toggle_auto()
    runtime.update(1.0)
    assert runtime.writer.complete

    # "Hi Al." is 6 characters: 0.1 * 6 * 0.5 = 0.3 s
    runtime.update(0.25)
    assert runtime.current_line == 0
    runtime.update(0.1)
    assert runtime.current_line == 1

def test_normal_mode_waits_for_input(runtime, write_script):
    write_script("#Node:main\nHello\nWorld\n#EndNode")
    runtime.start("main")

    runtime.update(1.0)
    runtime.update(10.0)
    assert runtime.current_line == 0

def test_fast_forward_reveals_and_advances(runtime, write_script):
    write_script("#Node:main\nHello\nWorld\n#EndNode")
    runtime.start("main")
    runtime.toggle_fast_forward()

    assert runtime.writer.complete
    runtime.update(0.2)
    assert runtime.current_line == 0
    runtime.update(0.1)
    assert runtime.current_line == 1
    assert runtime.writer.complete

def test_advance_input_leaves_auto_and_fast_forward(runtime, write_script, event_bus):
    changes = subscribe(event_bus, DialogueEvent.PLAYBACK_CHANGED)
    write_script("#Node:main\nHello\nWorld\n#EndNode")
    runtime.start("main")

    runtime.toggle_auto()
    runtime.advance_input()
    assert runtime.playback_mode is PlaybackMode.NORMAL

    runtime.toggle_fast_forward()
    runtime.advance_input()
    assert runtime.playback_mode is PlaybackMode.NORMAL
    assert runtime.current_line == 0
    assert [e["mode"] for e in changes] == [
        PlaybackMode.AUTO, PlaybackMode.NORMAL, PlaybackMode.FAST_FORWARD, PlaybackMode.NORMAL,
    ]

def test_decision_stops_fast_forward(runtime, write_script):
    write_script(DECISION_SCRIPT)
    runtime.start("main")
    runtime.toggle_fast_forward()

    runtime.make_decision(0)
    assert runtime.playback_mode is PlaybackMode.NORMAL

def test_skip_after_choices_keeps_fast_forward(runtime, write_script):
    runtime.config.skip_after_choices = True
    write_script(DECISION_SCRIPT)
    runtime.start("main")
    runtime.toggle_fast_forward()

    runtime.make_decision(0)
    assert runtime.playback_mode is PlaybackMode.FAST_FORWARD

def test_pause_freezes_runtime(runtime, write_script):
    write_script("#Node:main\nHello\nWorld\n#EndNode")
    runtime.start("main")
    runtime.toggle_fast_forward()
    runtime.pause()

    runtime.update(5.0)
    runtime.advance_input()
    assert runtime.state is RuntimeState.PAUSED
    assert runtime.current_line == 0
    assert runtime.playback_mode is PlaybackMode.FAST_FORWARD

    runtime.resume()
    assert runtime.state is RuntimeState.PRESENTING

def test_text_writer_reveals_over_time(runtime, write_script, collaborators):
    write_script("#Node:main\nHello\n#EndNode")
    runtime.start("main")

    assert not runtime.writer.complete
    runtime.update(0.05)
    assert "<color=#00000000>" in collaborators.text.update_text.call_args.args[0]

    runtime.update(1.0)
    assert collaborators.text.update_text.call_args.args[0] == "Hello"

# --- Save / restore ---

def test_restore_replays_commands_before_presenting(runtime, write_script, collaborators):
    write_script("""
        #Node:main
        [Music=Theme1]
        L1
        L2
        L3
        L4
        L5
        #EndNode
    """)
    order = []
    collaborators.audio.play_music.side_effect = lambda name: order.append(("music", name))
    collaborators.text.present.side_effect = lambda line: order.append(("present", line.text))

    blob = TraversalState(
        node_stack=[NodeFrame(node_name="main")],
        current_line=5,
        command_history=["[Music=Theme1]"],
    ).model_dump_json()
    runtime.restore_traversal_state(blob)

    assert order == [("music", "Theme1"), ("present", "L5")]
    assert runtime.traversal.transcript == []

def test_round_trip_mid_branch(runtime, write_script, script_dir, collaborators):
    write_script(DECISION_SCRIPT)
    runtime.start("main")
    runtime.make_decision(1)
    blob = runtime.serialize_traversal_state()

    restored = DialogueRuntime(DialogueContext(), dialogue_path=script_dir, text_presenter=collaborators.text)
    restored.restore_traversal_state(blob)

    assert restored.current_line == runtime.current_line
    assert restored.current_dialogue_line() == runtime.current_dialogue_line()
    assert restored.traversal.made_choices == [1]

    advance(restored)
    assert restored.current_dialogue_line().text == "Done."

def test_restore_while_awaiting_decision(runtime, write_script, script_dir):
    write_script(DECISION_SCRIPT)
    runtime.start("main")
    blob = runtime.serialize_traversal_state()

    restored = DialogueRuntime(DialogueContext(), dialogue_path=script_dir)
    restored.restore_traversal_state(blob)

    assert restored.state is RuntimeState.AWAITING_DECISION
    assert restored.available_decision_labels() == ["Go left", "Go right"]
    restored.make_decision(0)
    assert restored.current_dialogue_line().text == "Left path."

def test_restore_loads_saved_variables(runtime, write_script, script_dir):
    write_script("var flag = false\n#Node:main\nLine.\n#EndNode")
    runtime.start("main")
    runtime.context.variables.set("flag", True)
    blob = runtime.serialize_traversal_state()

    context = DialogueContext()
    DialogueRuntime(context, dialogue_path=script_dir).restore_traversal_state(blob)

    assert context.variables.get("flag") is True

def test_restore_inside_goto(runtime, write_script, script_dir, collaborators):
    write_script(GOTO_SCRIPT)
    runtime.start("main")
    advance(runtime)
    blob = runtime.serialize_traversal_state()

    restored = DialogueRuntime(DialogueContext(), dialogue_path=script_dir, text_presenter=collaborators.text)
    restored.restore_traversal_state(blob)

    assert restored.current_dialogue_line().text == "Side line."
    advance(restored)
    assert restored.current_dialogue_line().text == "After."

def test_replay_does_not_follow_goto(runtime, write_script):
    write_script(GOTO_SCRIPT)
    blob = TraversalState(
        node_stack=[NodeFrame(node_name="main")],
        current_line=2,
        command_history=["[GoTo=side]"],
    ).model_dump_json()

    runtime.restore_traversal_state(blob)

    assert [f.node_name for f in runtime.traversal.node_stack] == ["main"]
    assert runtime.current_dialogue_line().text == "After."

def test_restore_invalid_blob_changes_nothing(runtime, write_script):
    write_script("#Node:main\nLine.\n#EndNode")
    runtime.start("main")
    before = runtime.serialize_traversal_state()

    with pytest.raises(StateRestoreError):
        runtime.restore_traversal_state("{not json")
    with pytest.raises(StateRestoreError):
        runtime.restore_traversal_state('{"node_stack": [], "current_line": 0}')

    assert runtime.serialize_traversal_state() == before
    assert runtime.state is RuntimeState.PRESENTING

def test_restore_missing_node_keeps_variables(runtime, write_script):
    write_script("var flag = true\n#Node:main\nLine.\n#EndNode")
    runtime.context.variables.set("mine", 1)
    blob = TraversalState(node_stack=[NodeFrame(node_name="gone")]).model_dump_json()

    with pytest.raises(StateRestoreError):
        runtime.restore_traversal_state(blob)

    assert runtime.context.variables.as_dict() == {"mine": 1}

def test_restore_rejects_out_of_range_line(runtime, write_script):
    write_script("#Node:main\nLine.\n#EndNode")
    blob = TraversalState(node_stack=[NodeFrame(node_name="main")], current_line=9).model_dump_json()

    with pytest.raises(StateRestoreError, match="outside"):
        runtime.restore_traversal_state(blob)
