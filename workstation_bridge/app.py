from __future__ import annotations

import base64
import binascii

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

try:
    from constants import APP_NAME, BRIDGE_HOST, BRIDGE_PORT
    from context_builder import build_context
    from generation_service import GenerationService
    from logger_config import logger
    from models import (
        AddNodeRequest,
        ChatRequest,
        CreateSessionRequest,
        ImageSizeRequest,
        ProjectUpdateRequest,
        SelectNodeRequest,
        TranscribeRequest,
        UpdateNodeRequest,
    )
    from session import SessionStore, WorkstationSession
    from utils import summarize_text
except ImportError:
    from .constants import APP_NAME, BRIDGE_HOST, BRIDGE_PORT
    from .context_builder import build_context
    from .generation_service import GenerationService
    from .logger_config import logger
    from .models import (
        AddNodeRequest,
        ChatRequest,
        CreateSessionRequest,
        ImageSizeRequest,
        ProjectUpdateRequest,
        SelectNodeRequest,
        TranscribeRequest,
        UpdateNodeRequest,
    )
    from .session import SessionStore, WorkstationSession
    from .utils import summarize_text

app = FastAPI(title=APP_NAME)
store = SessionStore(service_factory=GenerationService)


def get_session(session_id: str) -> WorkstationSession:
    session = store.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return session


def state_response(session: WorkstationSession, **extra) -> JSONResponse:
    content = session.snapshot().model_dump(mode="json")
    content.update(extra)
    return JSONResponse(content=content)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/sessions")
def create_session(request: CreateSessionRequest | None = None) -> JSONResponse:
    model_info = request.model if request else None
    session = store.create(model_info)
    return state_response(session)


@app.get("/sessions/{session_id}")
def read_session(session_id: str) -> JSONResponse:
    return state_response(get_session(session_id))


@app.delete("/sessions/{session_id}")
def delete_session(session_id: str) -> dict:
    if not store.delete(session_id):
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return {"deleted": session_id}


@app.post("/sessions/{session_id}/nodes")
def add_node(session_id: str, request: AddNodeRequest) -> JSONResponse:
    session = get_session(session_id)
    node = session.add_node(request.type, after_output=request.after_output)
    return state_response(session, node_id=node.id)


@app.delete("/sessions/{session_id}/nodes/{node_id}")
def remove_node(session_id: str, node_id: str) -> JSONResponse:
    session = get_session(session_id)
    removed = session.remove_node(node_id)
    return state_response(session, removed=removed)


@app.patch("/sessions/{session_id}/nodes/{node_id}")
def update_node(session_id: str, node_id: str, request: UpdateNodeRequest) -> JSONResponse:
    session = get_session(session_id)
    if request.name is not None:
        session.rename_node(node_id, request.name)
    if request.data:
        session.update_node_field(node_id, request.data)
    return state_response(session)


@app.put("/sessions/{session_id}/selection")
def select_node(session_id: str, request: SelectNodeRequest) -> JSONResponse:
    session = get_session(session_id)
    session.select_node(request.node_id)
    return state_response(session)


@app.patch("/sessions/{session_id}/project")
def update_project(session_id: str, request: ProjectUpdateRequest) -> JSONResponse:
    session = get_session(session_id)
    session.update_project(request.model_dump())
    return state_response(session)


@app.put("/sessions/{session_id}/image-size")
def set_image_size(session_id: str, request: ImageSizeRequest) -> JSONResponse:
    session = get_session(session_id)
    session.set_image_size(request.size)
    return state_response(session)


@app.get("/sessions/{session_id}/context")
def read_context(session_id: str) -> dict:
    session = get_session(session_id)
    state = session.snapshot()
    return {"context": build_context(state.nodes, state.selected_node_id, state.project)}


@app.post("/sessions/{session_id}/chat")
def chat(session_id: str, request: ChatRequest) -> JSONResponse:
    session = get_session(session_id)
    if not request.text.strip():
        raise HTTPException(status_code=400, detail="Message text is required")
    logger.info("Chat: session=%s text=%s", session_id, summarize_text(request.text, 120))
    reply = session.send_message(request.text)
    return state_response(session, reply=reply.model_dump(mode="json") if reply else None)


@app.post("/sessions/{session_id}/nodes/{node_id}/lyrics")
def generate_node_lyrics(session_id: str, node_id: str) -> JSONResponse:
    session = get_session(session_id)
    lyrics = session.generate_node_lyrics(node_id)
    if lyrics is None:
        raise HTTPException(status_code=404, detail=f"Node not found: {node_id}")
    return state_response(session, lyrics=lyrics)


@app.post("/sessions/{session_id}/transcribe")
def transcribe(session_id: str, request: TranscribeRequest) -> dict:
    session = get_session(session_id)
    try:
        audio_bytes = base64.b64decode(request.audio_base64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise HTTPException(status_code=400, detail="Invalid base64 audio payload") from exc
    transcript = session.transcribe(audio_bytes, request.mime_type)
    logger.info("Transcribe: session=%s bytes=%d chars=%d", session_id, len(audio_bytes), len(transcript))
    return {"text": transcript}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=BRIDGE_HOST, port=BRIDGE_PORT, log_level="info")
