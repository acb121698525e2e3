import os
import sys
import textwrap
from types import SimpleNamespace

import pytest
from unittest.mock import MagicMock, patch

# Ensure engine modules can be imported
sys.path.append(os.getcwd())

@pytest.fixture(autouse=True)
def mock_pygame():
    """
    Global mock for pygame to allow headless testing.
    Autoused for all tests so no audio device or display is touched.
    """
    with patch('pygame.init'), \
         patch('pygame.display'), \
         patch('pygame.mixer'), \
         patch('pygame.image'):

        import pygame
        pygame.mixer.get_init = MagicMock(return_value=(44100, -16, 2))

        yield

@pytest.fixture
def event_bus():
    """Fresh EventBus for each test."""
    from engine.core.events import EventBus
    return EventBus()

@pytest.fixture
def variables():
    from dialogue.variables import VariableStore
    return VariableStore()

@pytest.fixture
def script_dir(tmp_path):
    """Empty dialogue directory."""
    path = tmp_path / "dialogue"
    path.mkdir()
    return path

@pytest.fixture
def write_script(script_dir):
    """Write a script file into script_dir: write_script(text, name="main.dlg")."""
    def _write(text, name="main.dlg"):
        path = script_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(text).strip() + "\n", encoding="utf-8")
        return path
    return _write

@pytest.fixture
def collaborators():
    """Mock camera, CG, audio and UI collaborators."""
    return SimpleNamespace(
        camera=MagicMock(),
        cg=MagicMock(),
        audio=MagicMock(),
        text=MagicMock(),
        decisions=MagicMock(),
    )

@pytest.fixture
def context(event_bus):
    from dialogue.runtime import DialogueContext
    return DialogueContext(events=event_bus)

@pytest.fixture
def runtime(context, script_dir, collaborators):
    """DialogueRuntime reading scripts from script_dir."""
    from dialogue.runtime import DialogueRuntime
    return DialogueRuntime(
        context,
        dialogue_path=script_dir,
        camera=collaborators.camera,
        cg=collaborators.cg,
        audio=collaborators.audio,
        text_presenter=collaborators.text,
        decision_presenter=collaborators.decisions,
    )
