from __future__ import annotations

from typing import Any, Callable, List, Optional, Sequence, Tuple

from fastapi import HTTPException
from pydantic import BaseModel, Field

try:
    from constants import (
        DEFAULT_IMAGE_SIZE,
        DEFAULT_LYRICS_GENRE,
        DEFAULT_LYRICS_MOOD,
        ERROR_ANALYSIS,
        ERROR_IMAGE,
        ERROR_LYRICS,
        ERROR_SUGGESTION,
        SHORT_MESSAGE_CHARS,
    )
    from context_builder import build_context
    from logger_config import logger
    from models import AssistantReply, ChatAttachment, ImageReply, ImageSize, Node, ProjectMeta, TextReply
    from utils import summarize_text
except ImportError:
    from .constants import (
        DEFAULT_IMAGE_SIZE,
        DEFAULT_LYRICS_GENRE,
        DEFAULT_LYRICS_MOOD,
        ERROR_ANALYSIS,
        ERROR_IMAGE,
        ERROR_LYRICS,
        ERROR_SUGGESTION,
        SHORT_MESSAGE_CHARS,
    )
    from .context_builder import build_context
    from .logger_config import logger
    from .models import AssistantReply, ChatAttachment, ImageReply, ImageSize, Node, ProjectMeta, TextReply
    from .utils import summarize_text

ROUTE_IMAGE = "image"
ROUTE_LYRICS = "lyrics"
ROUTE_ANALYSIS = "analysis"
ROUTE_SUGGESTION = "suggestion"


class RouteRequest(BaseModel):
    user_text: str
    nodes: List[Node] = Field(default_factory=list)
    selected_id: Optional[str] = None
    project: ProjectMeta = Field(default_factory=ProjectMeta)
    image_size: ImageSize = DEFAULT_IMAGE_SIZE

    def grounding_context(self) -> str:
        return build_context(self.nodes, self.selected_id, self.project)


def resolve_lyrics_genre(nodes: Sequence[Node], fallback: str = DEFAULT_LYRICS_GENRE) -> str:
    for node in nodes:
        if node.type != "genre":
            continue
        genres = getattr(node.data, "genres", None) or []
        if genres and genres[0]:
            return str(genres[0])
        return fallback
    return fallback


def resolve_lyrics_node(nodes: Sequence[Node], selected_id: Optional[str]) -> Optional[Node]:
    if selected_id is not None:
        for node in nodes:
            if node.id == selected_id and node.type == "lyrics":
                return node
    for node in nodes:
        if node.type == "lyrics":
            return node
    return None


def resolve_lyrics_request(user_text: str, nodes: Sequence[Node], selected_id: Optional[str]) -> Tuple[str, str, str]:
    genre = resolve_lyrics_genre(nodes)
    lyric_node = resolve_lyrics_node(nodes, selected_id)
    node_topic = getattr(lyric_node.data, "topic", "") if lyric_node else ""
    node_mood = getattr(lyric_node.data, "mood", "") if lyric_node else ""
    if len(user_text) < SHORT_MESSAGE_CHARS and node_topic:
        topic = node_topic
    else:
        topic = user_text
    mood = node_mood or DEFAULT_LYRICS_MOOD
    return topic, genre, mood


def handle_image(request: RouteRequest, service: Any) -> AssistantReply:
    image = service.generate_cover_art(request.user_text, request.image_size)
    if not image:
        return TextReply(route=ROUTE_IMAGE, text=ERROR_IMAGE, failed=True)
    return ImageReply(
        route=ROUTE_IMAGE,
        text=f"Here is a {request.image_size} cover art concept based on your request.",
        attachments=[ChatAttachment(kind="image", locator=image)],
    )


def handle_lyrics(request: RouteRequest, service: Any) -> AssistantReply:
    topic, genre, mood = resolve_lyrics_request(request.user_text, request.nodes, request.selected_id)
    return TextReply(route=ROUTE_LYRICS, text=service.generate_lyrics(topic, genre, mood))


def handle_analysis(request: RouteRequest, service: Any) -> AssistantReply:
    return TextReply(route=ROUTE_ANALYSIS, text=service.generate_analysis(request.user_text, request.grounding_context()))


def handle_suggestion(request: RouteRequest, service: Any) -> AssistantReply:
    return TextReply(route=ROUTE_SUGGESTION, text=service.generate_text(request.user_text, request.grounding_context()))


RouteHandler = Callable[[RouteRequest, Any], AssistantReply]

# Evaluated top to bottom; the first rule with a matching keyword wins.
ROUTE_RULES: Tuple[Tuple[str, Tuple[str, ...], RouteHandler], ...] = (
    (ROUTE_IMAGE, ("cover art", "generate image"), handle_image),
    (ROUTE_LYRICS, ("lyric", "write a song"), handle_lyrics),
    (ROUTE_ANALYSIS, ("analyze", "review"), handle_analysis),
)
DEFAULT_ROUTE: Tuple[str, RouteHandler] = (ROUTE_SUGGESTION, handle_suggestion)

ROUTE_APOLOGIES = {
    ROUTE_IMAGE: ERROR_IMAGE,
    ROUTE_LYRICS: ERROR_LYRICS,
    ROUTE_ANALYSIS: ERROR_ANALYSIS,
    ROUTE_SUGGESTION: ERROR_SUGGESTION,
}


def select_route(user_text: str) -> Tuple[str, RouteHandler]:
    text_lower = user_text.lower()
    for name, keywords, handler in ROUTE_RULES:
        if any(keyword in text_lower for keyword in keywords):
            return name, handler
    return DEFAULT_ROUTE


def classify_message(user_text: str) -> str:
    return select_route(user_text)[0]


def route(
    user_text: str,
    nodes: Sequence[Node],
    selected_id: Optional[str],
    project: ProjectMeta,
    image_size: str,
    service: Any,
) -> AssistantReply:
    """Pick one generation operation for a chat message and return a displayable reply.

    Never raises for collaborator failures: those become a fixed apology with
    ``failed=True``. Chat history is left to the caller.
    """
    request = RouteRequest(
        user_text=user_text,
        nodes=list(nodes),
        selected_id=selected_id,
        project=project,
        image_size=image_size,
    )
    name, handler = select_route(user_text)
    logger.info("Assistant route: %s message=%s", name, summarize_text(user_text, 120))
    try:
        return handler(request, service)
    except (HTTPException, ValueError) as exc:
        detail = getattr(exc, "detail", None) or str(exc)
        logger.error("Assistant %s generation failed: %s", name, detail)
    except Exception:
        logger.exception("Assistant %s generation crashed", name)
    return TextReply(route=name, text=ROUTE_APOLOGIES[name], failed=True)
