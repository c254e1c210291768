from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional

from fastapi import HTTPException

try:
    from constants import (
        ASSISTANT_GREETING,
        DEFAULT_AUDIO_MIME_TYPE,
        DEFAULT_IMAGE_SIZE,
        DEFAULT_LYRICS_GENRE,
        DEFAULT_NODE_LYRICS_MOOD,
        DEFAULT_NODE_LYRICS_TOPIC,
        ERROR_LYRICS,
        ERROR_TRANSCRIPTION,
        IMAGE_SIZES,
    )
    from logger_config import logger
    from models import AssistantReply, ChatAttachment, ChatMessage, ModelInfo, Node, ProjectMeta, SessionState
    from node_chain import NodeChain
    from router import ROUTE_APOLOGIES, classify_message, resolve_lyrics_genre, route
    from utils import new_id, now_ms, summarize_text
except ImportError:
    from .constants import (
        ASSISTANT_GREETING,
        DEFAULT_AUDIO_MIME_TYPE,
        DEFAULT_IMAGE_SIZE,
        DEFAULT_LYRICS_GENRE,
        DEFAULT_NODE_LYRICS_MOOD,
        DEFAULT_NODE_LYRICS_TOPIC,
        ERROR_LYRICS,
        ERROR_TRANSCRIPTION,
        IMAGE_SIZES,
    )
    from .logger_config import logger
    from .models import AssistantReply, ChatAttachment, ChatMessage, ModelInfo, Node, ProjectMeta, SessionState
    from .node_chain import NodeChain
    from .router import ROUTE_APOLOGIES, classify_message, resolve_lyrics_genre, route
    from .utils import new_id, now_ms, summarize_text

INITIAL_NODES = (
    ("context", "Base Context", {"prompt": "80s chase scene, neon lights"}),
    ("genre", "Genre Mixer", {"genres": ["Synthwave", "Cyberpunk"]}),
    ("instrument", "Instruments", {"instruments": ["Analog Bass", "Arp Synths"]}),
    ("effect", "FX Chain", {"effects": ["Reverb", "Distortion"]}),
    ("output", "Final Prompt", {}),
)


def build_initial_nodes() -> List[Node]:
    return [
        Node(id=new_id(), type=node_type, name=name, step=index, data=data)
        for index, (node_type, name, data) in enumerate(INITIAL_NODES, start=1)
    ]


def build_message(role: str, text: str, attachments: Optional[List[ChatAttachment]] = None) -> ChatMessage:
    return ChatMessage(id=new_id(), role=role, text=text, attachments=attachments or [], timestamp=now_ms())


class WorkstationSession:
    """Session-scoped controller owning the node chain, chat history and project metadata.

    Generation calls run outside the lock, so two sends may be in flight at
    once; their replies are appended in completion order.
    """

    def __init__(
        self,
        service: Any,
        session_id: Optional[str] = None,
        nodes: Optional[List[Node]] = None,
        project: Optional[ProjectMeta] = None,
    ) -> None:
        self.session_id = session_id or new_id()
        self.service = service
        self.chain = NodeChain(build_initial_nodes() if nodes is None else nodes)
        self.project = project or ProjectMeta()
        self.messages: List[ChatMessage] = [build_message("model", ASSISTANT_GREETING)]
        self.image_size = DEFAULT_IMAGE_SIZE
        self.assistant_status = "idle"
        self._pending = 0
        self._lock = threading.RLock()

    def add_node(self, node_type: str, after_output: bool = False) -> Node:
        with self._lock:
            return self.chain.add_node(node_type, after_output=after_output)

    def remove_node(self, node_id: str) -> bool:
        with self._lock:
            return self.chain.remove_node(node_id)

    def update_node_field(self, node_id: str, partial: Dict[str, Any]) -> Optional[Node]:
        with self._lock:
            return self.chain.update_node_field(node_id, partial)

    def rename_node(self, node_id: str, name: str) -> Optional[Node]:
        with self._lock:
            return self.chain.rename_node(node_id, name)

    def select_node(self, node_id: Optional[str]) -> Optional[Node]:
        with self._lock:
            return self.chain.select_node(node_id)

    def update_project(self, partial: Dict[str, Any]) -> ProjectMeta:
        changes = {key: value for key, value in partial.items() if value is not None}
        with self._lock:
            self.project = ProjectMeta.model_validate({**self.project.model_dump(), **changes})
            return self.project

    def set_image_size(self, size: str) -> str:
        if size not in IMAGE_SIZES:
            raise ValueError(f"Unsupported image size: {size}")
        with self._lock:
            self.image_size = size
            return size

    def _snapshot_nodes(self) -> List[Node]:
        return [node.model_copy(deep=True) for node in self.chain.nodes]

    def send_message(self, text: str) -> Optional[AssistantReply]:
        if not text or not text.strip():
            return None
        with self._lock:
            self.messages.append(build_message("user", text))
            self._pending += 1
            self.assistant_status = "sending"
            nodes = self._snapshot_nodes()
            selected_id = self.chain.selected_id
            project = self.project.model_copy()
            image_size = self.image_size

        reply: Optional[AssistantReply] = None
        try:
            reply = route(text, nodes, selected_id, project, image_size, self.service)
        finally:
            with self._lock:
                if reply is None:
                    route_name = classify_message(text)
                    self.messages.append(build_message("model", ROUTE_APOLOGIES[route_name]))
                    failed = True
                else:
                    attachments = getattr(reply, "attachments", None)
                    self.messages.append(build_message("model", reply.text, attachments))
                    failed = reply.failed
                self._pending -= 1
                self.assistant_status = "failed" if failed else "succeeded"
                if self._pending > 0:
                    self.assistant_status = "sending"
        logger.info("Session %s reply: route=%s failed=%s", self.session_id, reply.route, reply.failed)
        return reply

    def generate_node_lyrics(self, node_id: str) -> Optional[str]:
        with self._lock:
            node = self.chain.find(node_id)
            if node is None:
                return None
            genre = resolve_lyrics_genre(self.chain.nodes, fallback=self.project.genre or DEFAULT_LYRICS_GENRE)
            topic = getattr(node.data, "topic", "") or DEFAULT_NODE_LYRICS_TOPIC
            mood = getattr(node.data, "mood", "") or DEFAULT_NODE_LYRICS_MOOD

        try:
            lyrics = self.service.generate_lyrics(topic, genre, mood)
        except (HTTPException, ValueError) as exc:
            logger.error("Failed to generate lyrics for node %s: %s", node_id, getattr(exc, "detail", None) or exc)
            return ERROR_LYRICS
        except Exception:
            logger.exception("Lyrics generation crashed for node %s", node_id)
            return ERROR_LYRICS

        with self._lock:
            self.chain.update_node_field(node_id, {"lyrics": lyrics})
        logger.info("Lyrics written to node %s: %s", node_id, summarize_text(lyrics, 80))
        return lyrics

    def transcribe(self, audio_bytes: bytes, mime_type: str = DEFAULT_AUDIO_MIME_TYPE) -> str:
        try:
            return self.service.transcribe_audio(audio_bytes, mime_type)
        except (HTTPException, ValueError) as exc:
            logger.error("Transcription failed: %s", getattr(exc, "detail", None) or exc)
            return ERROR_TRANSCRIPTION
        except Exception:
            logger.exception("Transcription crashed")
            return ERROR_TRANSCRIPTION

    def snapshot(self) -> SessionState:
        with self._lock:
            return SessionState(
                session_id=self.session_id,
                project=self.project.model_copy(),
                nodes=self._snapshot_nodes(),
                selected_node_id=self.chain.selected_id,
                messages=list(self.messages),
                image_size=self.image_size,
                assistant_status=self.assistant_status,
            )


class SessionStore:
    """In-memory registry of live sessions. Nothing is persisted."""

    def __init__(self, service_factory: Callable[[Optional[ModelInfo]], Any]) -> None:
        self.service_factory = service_factory
        self._sessions: Dict[str, WorkstationSession] = {}
        self._lock = threading.Lock()

    def create(self, model_info: Optional[ModelInfo] = None) -> WorkstationSession:
        session = WorkstationSession(self.service_factory(model_info))
        with self._lock:
            self._sessions[session.session_id] = session
        logger.info("Session created: %s", session.session_id)
        return session

    def get(self, session_id: str) -> Optional[WorkstationSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None
