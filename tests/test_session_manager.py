"""
Tests for the conversation session manager.
"""

from unittest.mock import MagicMock

import pytest

from context_keeper.core.capture import CaptureConfig, ContextCaptureService
from context_keeper.core.session import SessionManager


@pytest.fixture
def capture(store, tmp_path, clock):
    service = ContextCaptureService(store, tmp_path / "sessions", config=CaptureConfig(), clock=clock)
    service.initialize()
    return service


@pytest.fixture
def manager(capture):
    return SessionManager(capture, project_path="/work/app")


def test_start_new_session(manager, capture):
    """A new session gets a session_<ms> id and an empty registration."""
    session_id = manager.start_new_session()

    assert session_id.startswith("session_")
    assert session_id[len("session_"):].isdigit()
    assert manager.current_session_id == session_id
    session = capture.get_session(session_id)
    assert session.content == ""
    assert session.project_path == "/work/app"


def test_consecutive_sessions_have_distinct_ids(manager):
    """Back-to-back sessions never share an id."""
    assert manager.start_new_session() != manager.start_new_session()


def test_add_to_conversation_formats_transcript(manager, capture):
    """Exchanges are appended in User/Assistant blocks and pushed to capture."""
    manager.add_to_conversation("Hi", "Hello!")
    manager.add_to_conversation("How are you?", "Fine.")

    expected = (
        "User: Hi\n\nAssistant: Hello!\n\n---\n\n"
        "User: How are you?\n\nAssistant: Fine.\n\n---\n\n"
    )
    assert capture.get_session(manager.current_session_id).content == expected
    assert len(manager.get_conversation_buffer()) == 2


def test_add_starts_session_when_none(manager):
    """The first exchange starts a session implicitly."""
    assert manager.current_session_id is None
    manager.add_to_conversation("question", "answer")
    assert manager.current_session_id is not None


def test_conversation_buffer_is_a_copy(manager):
    """Callers cannot mutate the internal buffer."""
    manager.add_to_conversation("q", "a")
    manager.get_conversation_buffer().append("tampered")
    assert len(manager.get_conversation_buffer()) == 1


def test_end_session_captures_and_resets(manager, capture, store):
    """Ending captures the transcript and clears state."""
    manager.add_to_conversation("Explain retention " * 5, "Backups older than the period are deleted. " * 3)
    session_id = manager.current_session_id

    assert manager.end_session() is True

    assert manager.current_session_id is None
    assert manager.get_conversation_buffer() == []
    assert capture.get_session(session_id) is None
    assert store.get_all()[0].metadata["sessionId"] == session_id


def test_exchanges_after_sweep_are_captured_on_end(manager, capture, store, clock):
    """A transcript captured by the sweep is captured again once enough exchanges follow."""
    for _ in range(5):
        manager.add_to_conversation("q" * 30, "a" * 30)
    clock.advance(61_000)
    assert capture.capture_all_sessions() == 1

    manager.add_to_conversation("q" * 30, "a" * 30)
    manager.add_to_conversation("q" * 30, "a" * 30)
    manager.end_session()

    lengths = sorted(len(c.content) for c in store.get_all())
    assert len(lengths) == 2
    assert lengths[1] > lengths[0]


def test_end_session_without_current(manager):
    """Nothing to end returns False."""
    assert manager.end_session() is False


def test_end_session_resets_even_when_capture_fails():
    """State is cleared even if the capture service raises."""
    capture = MagicMock()
    capture.end_session.side_effect = RuntimeError("store offline")
    manager = SessionManager(capture, project_path="/p")
    manager.start_new_session()

    with pytest.raises(RuntimeError):
        manager.end_session()

    assert manager.current_session_id is None


def test_initialize_delegates():
    """initialize() initializes the capture service."""
    capture = MagicMock()
    SessionManager(capture).initialize()
    capture.initialize.assert_called_once()
