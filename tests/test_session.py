import threading

import pytest

from workstation_bridge import session as session_module
from workstation_bridge.constants import (
    ASSISTANT_GREETING,
    ERROR_IMAGE,
    ERROR_LYRICS,
    ERROR_SUGGESTION,
    ERROR_TRANSCRIPTION,
)
from workstation_bridge.session import SessionStore, WorkstationSession


def test_new_session_has_default_chain(service):
    session = WorkstationSession(service)

    assert [node.type for node in session.chain] == ["context", "genre", "instrument", "effect", "output"]
    assert [node.step for node in session.chain] == [1, 2, 3, 4, 5]
    assert session.chain.nodes[1].data.genres == ["Synthwave", "Cyberpunk"]
    assert session.project.name == "Neon Horizons"
    assert session.messages[0].role == "model"
    assert session.messages[0].text == ASSISTANT_GREETING
    assert session.assistant_status == "idle"


def test_send_message_appends_user_and_model_messages(service):
    session = WorkstationSession(service)
    reply = session.send_message("ideas for the chorus?")

    assert reply.route == "suggestion"
    assert [m.role for m in session.messages] == ["model", "user", "model"]
    assert session.messages[1].text == "ideas for the chorus?"
    assert session.messages[2].text == service.text
    assert session.assistant_status == "succeeded"


def test_send_blank_message_is_ignored(service):
    session = WorkstationSession(service)
    assert session.send_message("   ") is None
    assert len(session.messages) == 1
    assert service.calls == []


def test_image_reply_keeps_attachment_in_history(service):
    session = WorkstationSession(service)
    session.set_image_size("4K")
    session.send_message("cover art with neon skyline")

    last = session.messages[-1]
    assert last.attachments[0].kind == "image"
    assert service.calls[0] == ("generate_cover_art", "cover art with neon skyline", "4K")


def test_failed_generation_marks_status_failed(service):
    service.image = None
    session = WorkstationSession(service)
    session.send_message("generate image")

    assert session.messages[-1].text == ERROR_IMAGE
    assert session.assistant_status == "failed"


def test_chat_context_reflects_selection(service):
    session = WorkstationSession(service)
    genre = session.chain.first_of_type("genre")
    session.select_node(genre.id)
    session.send_message("what should I add?")

    assert "[GENRE] Genre Mixer (IN FOCUS)" in service.calls[0][2]


def test_generate_node_lyrics_writes_into_node(service):
    session = WorkstationSession(service)
    node = session.add_node("lyrics")
    session.update_node_field(node.id, {"topic": "Midnight drive"})

    lyrics = session.generate_node_lyrics(node.id)

    assert lyrics == service.lyrics
    assert session.chain.find(node.id).data.lyrics == service.lyrics
    assert session.chain.find(node.id).data.topic == "Midnight drive"
    assert service.calls == [("generate_lyrics", "Midnight drive", "Synthwave", "Melancholic")]


def test_generate_node_lyrics_falls_back_to_project_genre(service):
    session = WorkstationSession(service)
    session.remove_node(session.chain.first_of_type("genre").id)
    node = session.add_node("lyrics")

    session.generate_node_lyrics(node.id)

    assert service.calls == [("generate_lyrics", "Love and Loss", "Electronic", "Melancholic")]


def test_generate_node_lyrics_failure_leaves_node_untouched(service):
    service.failing.add("generate_lyrics")
    session = WorkstationSession(service)
    node = session.add_node("lyrics")

    assert session.generate_node_lyrics(node.id) == ERROR_LYRICS
    assert session.chain.find(node.id).data.lyrics == ""


def test_generate_node_lyrics_unknown_node(service):
    session = WorkstationSession(service)
    assert session.generate_node_lyrics("missing") is None
    assert service.calls == []


def test_transcribe_success_and_failure(service):
    session = WorkstationSession(service)
    assert session.transcribe(b"RIFF", "audio/wav") == service.transcript

    service.failing.add("transcribe_audio")
    assert session.transcribe(b"RIFF", "audio/wav") == ERROR_TRANSCRIPTION


def test_update_project_partial_merge(service):
    session = WorkstationSession(service)
    session.update_project({"bpm": 140, "name": None})

    assert session.project.bpm == 140
    assert session.project.name == "Neon Horizons"


def test_snapshot_is_detached_from_live_state(service):
    session = WorkstationSession(service)
    state = session.snapshot()
    state.nodes[0].name = "Changed"

    assert session.chain.nodes[0].name == "Base Context"


def test_session_store_lifecycle(service):
    store = SessionStore(service_factory=lambda model_info: service)
    session = store.create()

    assert store.get(session.session_id) is session
    assert store.delete(session.session_id) is True
    assert store.get(session.session_id) is None
    assert store.delete(session.session_id) is False


class GatedService:
    """Text generation that blocks until the test releases each prompt."""

    def __init__(self, prompts):
        self.started = {prompt: threading.Event() for prompt in prompts}
        self.release = {prompt: threading.Event() for prompt in prompts}

    def generate_text(self, prompt, context=None):
        self.started[prompt].set()
        self.release[prompt].wait(timeout=5)
        return f"reply to {prompt}"


def test_overlapping_sends_append_in_completion_order():
    service = GatedService(["first idea?", "second idea?"])
    session = WorkstationSession(service)
    threads = [threading.Thread(target=session.send_message, args=(text,)) for text in ("first idea?", "second idea?")]
    for thread in threads:
        thread.start()
    for started in service.started.values():
        assert started.wait(timeout=5)
    assert session.assistant_status == "sending"

    service.release["second idea?"].set()
    threads[1].join(timeout=5)
    assert session.messages[-1].text == "reply to second idea?"
    assert session.assistant_status == "sending"

    service.release["first idea?"].set()
    threads[0].join(timeout=5)
    replies = [m.text for m in session.messages if m.role == "model"][1:]
    assert replies == ["reply to second idea?", "reply to first idea?"]
    assert session.assistant_status == "succeeded"


def test_unexpected_service_error_becomes_apology(service):
    service.raising["generate_text"] = RuntimeError("quota")
    session = WorkstationSession(service)

    reply = session.send_message("ideas?")

    assert reply.failed is True
    assert session.messages[-1].role == "model"
    assert session.messages[-1].text == ERROR_SUGGESTION
    assert session.assistant_status == "failed"


def test_send_never_leaves_status_stuck(monkeypatch, service):
    def broken_route(*args, **kwargs):
        raise RuntimeError("router down")

    session = WorkstationSession(service)
    monkeypatch.setattr(session_module, "route", broken_route)
    with pytest.raises(RuntimeError):
        session.send_message("ideas?")

    assert session.assistant_status == "failed"
    assert session.messages[-1].role == "model"
    assert session.messages[-1].text == ERROR_SUGGESTION

    monkeypatch.undo()
    session.send_message("ideas?")
    assert session.assistant_status == "succeeded"


def test_unexpected_errors_in_node_actions_are_contained(service):
    service.raising["generate_lyrics"] = KeyError("candidates")
    service.raising["transcribe_audio"] = TypeError("bad parts")
    session = WorkstationSession(service)
    node = session.add_node("lyrics")

    assert session.generate_node_lyrics(node.id) == ERROR_LYRICS
    assert session.transcribe(b"RIFF") == ERROR_TRANSCRIPTION
