from __future__ import annotations

import json
import re
from typing import Iterable, List, Optional

try:
    from constants import LYRICS_PREVIEW_CHARS
    from models import Node, ProjectMeta
    from prompts import ASSISTANT_PERSONA_PROMPT
except ImportError:
    from .constants import LYRICS_PREVIEW_CHARS
    from .models import Node, ProjectMeta
    from .prompts import ASSISTANT_PERSONA_PROMPT

FOCUS_MARKER = " (IN FOCUS)"
ELLIPSIS = "..."
EMPTY_CHAIN_TEXT = "(no nodes)"
NEWLINE_PATTERN = re.compile(r"[\r\n]")

LIST_FIELDS_BY_TYPE = {
    "genre": ("genres", "Genres"),
    "instrument": ("instruments", "Instruments"),
    "effect": ("effects", "Effects"),
}


def preview_lyrics(lyrics: str, limit: int = LYRICS_PREVIEW_CHARS) -> str:
    # Slice before collapsing so the preview keeps exactly `limit` source characters.
    return NEWLINE_PATTERN.sub(" ", lyrics[:limit]) + ELLIPSIS


def format_data_dump(node: Node) -> str:
    payload = node.data.model_dump()
    return "Data: " + json.dumps(payload, sort_keys=True, ensure_ascii=False, default=str)


def format_node_detail(node: Node) -> str:
    data = node.data
    if node.type == "lyrics" and getattr(data, "lyrics", ""):
        return (
            f"Topic: {data.topic or 'unspecified'} | Mood: {data.mood or 'unspecified'} | "
            f"Lyrics: \"{preview_lyrics(data.lyrics)}\""
        )
    if node.type == "context" and getattr(data, "prompt", ""):
        return f"Prompt: \"{data.prompt}\""
    if node.type in LIST_FIELDS_BY_TYPE:
        field, label = LIST_FIELDS_BY_TYPE[node.type]
        values = getattr(data, field, None) or []
        if values:
            return f"{label}: " + ", ".join(str(value) for value in values)
    return format_data_dump(node)


def format_node_line(node: Node, selected_id: Optional[str]) -> str:
    header = f"[{node.type.upper()}] {node.name}"
    if selected_id is not None and node.id == selected_id:
        header += FOCUS_MARKER
    return f"- {header}\n  {format_node_detail(node)}"


def format_project_meta(project: ProjectMeta) -> str:
    lines = [f"Project: {project.name}"]
    if project.bpm:
        lines.append(f"Tempo: {project.bpm} BPM")
    if project.key:
        lines.append(f"Key: {project.key}")
    return "\n".join(lines)


def format_node_chain(nodes: Iterable[Node], selected_id: Optional[str]) -> str:
    lines: List[str] = [format_node_line(node, selected_id) for node in nodes]
    if not lines:
        return EMPTY_CHAIN_TEXT
    return "\n".join(lines)


def build_context(nodes: Iterable[Node], selected_id: Optional[str], project: ProjectMeta) -> str:
    sections = [
        f"PROJECT:\n{format_project_meta(project)}",
        f"NODE CHAIN:\n{format_node_chain(nodes, selected_id)}",
        ASSISTANT_PERSONA_PROMPT,
    ]
    return "\n\n".join(sections)
