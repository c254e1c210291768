from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

try:
    from constants import DEFAULT_AUDIO_MIME_TYPE, DEFAULT_IMAGE_SIZE, DEFAULT_PROVIDER
except ImportError:
    from .constants import DEFAULT_AUDIO_MIME_TYPE, DEFAULT_IMAGE_SIZE, DEFAULT_PROVIDER

NodeType = Literal["context", "genre", "instrument", "effect", "output", "lyrics"]
ImageSize = Literal["1K", "2K", "4K"]
AssistantStatus = Literal["idle", "sending", "succeeded", "failed"]


def coerce_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def coerce_text_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, (list, tuple, set)):
        return [coerce_text(item) for item in value if item is not None]
    return [coerce_text(value)]


class NodeData(BaseModel):
    # Unknown keys are kept so partial merges never drop user fields.
    model_config = ConfigDict(extra="allow")


class ContextData(NodeData):
    prompt: str = ""

    @field_validator("prompt", mode="before")
    @classmethod
    def coerce_prompt(cls, value: Any) -> str:
        return coerce_text(value)


class GenreData(NodeData):
    genres: List[str] = Field(default_factory=list)

    @field_validator("genres", mode="before")
    @classmethod
    def coerce_genres(cls, value: Any) -> List[str]:
        return coerce_text_list(value)


class InstrumentData(NodeData):
    instruments: List[str] = Field(default_factory=list)

    @field_validator("instruments", mode="before")
    @classmethod
    def coerce_instruments(cls, value: Any) -> List[str]:
        return coerce_text_list(value)


class EffectData(NodeData):
    effects: List[str] = Field(default_factory=list)

    @field_validator("effects", mode="before")
    @classmethod
    def coerce_effects(cls, value: Any) -> List[str]:
        return coerce_text_list(value)


class LyricsData(NodeData):
    topic: str = ""
    mood: str = ""
    lyrics: str = ""

    @field_validator("topic", "mood", "lyrics", mode="before")
    @classmethod
    def coerce_fields(cls, value: Any) -> str:
        return coerce_text(value)


class OutputData(NodeData):
    pass


NODE_DATA_MODELS: Dict[str, Type[NodeData]] = {
    "context": ContextData,
    "genre": GenreData,
    "instrument": InstrumentData,
    "effect": EffectData,
    "lyrics": LyricsData,
    "output": OutputData,
}

AnyNodeData = Union[ContextData, GenreData, InstrumentData, EffectData, LyricsData, OutputData]


def build_node_data(node_type: str, payload: Optional[Dict[str, Any]] = None) -> NodeData:
    model = NODE_DATA_MODELS.get(node_type, OutputData)
    return model.model_validate(payload or {})


class Node(BaseModel):
    id: str
    type: NodeType
    name: str
    step: int = Field(default=1, ge=1)
    data: AnyNodeData = Field(default_factory=OutputData)

    @model_validator(mode="before")
    @classmethod
    def coerce_data_variant(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        model = NODE_DATA_MODELS.get(values.get("type"))
        data = values.get("data")
        if model is None or isinstance(data, model):
            return values
        if isinstance(data, BaseModel):
            data = data.model_dump()
        return {**values, "data": model.model_validate(data or {})}


class ChatAttachment(BaseModel):
    kind: Literal["image", "audio"]
    locator: str


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    role: Literal["user", "model"]
    text: str
    attachments: List[ChatAttachment] = Field(default_factory=list)
    timestamp: int


class ProjectMeta(BaseModel):
    name: str = "Neon Horizons"
    bpm: int = Field(default=128, gt=0)
    key: str = "C Minor"
    genre: str = "Electronic"


class ModelInfo(BaseModel):
    provider: str = DEFAULT_PROVIDER
    model_name: Optional[str] = None
    temperature: Optional[float] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = None


class TextReply(BaseModel):
    kind: Literal["text"] = "text"
    route: str
    text: str
    failed: bool = False


class ImageReply(BaseModel):
    kind: Literal["image"] = "image"
    route: str
    text: str
    attachments: List[ChatAttachment] = Field(default_factory=list)
    failed: bool = False


AssistantReply = Union[TextReply, ImageReply]


class CreateSessionRequest(BaseModel):
    model: Optional[ModelInfo] = None


class AddNodeRequest(BaseModel):
    type: NodeType = "instrument"
    after_output: bool = False


class UpdateNodeRequest(BaseModel):
    name: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class SelectNodeRequest(BaseModel):
    node_id: Optional[str] = None


class ProjectUpdateRequest(BaseModel):
    name: Optional[str] = None
    bpm: Optional[int] = Field(default=None, gt=0)
    key: Optional[str] = None
    genre: Optional[str] = None


class ImageSizeRequest(BaseModel):
    size: ImageSize = DEFAULT_IMAGE_SIZE


class ChatRequest(BaseModel):
    text: str


class TranscribeRequest(BaseModel):
    audio_base64: str
    mime_type: str = DEFAULT_AUDIO_MIME_TYPE


class SessionState(BaseModel):
    session_id: str
    project: ProjectMeta
    nodes: List[Node]
    selected_node_id: Optional[str] = None
    messages: List[ChatMessage]
    image_size: ImageSize
    assistant_status: AssistantStatus
