from typing import Any, Dict, List, Optional, Tuple

import pytest
from fastapi import HTTPException

from workstation_bridge.models import Node, ProjectMeta
from workstation_bridge.node_chain import NodeChain


class FakeGenerationService:
    """Stands in for the generative-AI collaborator; records every call."""

    def __init__(self) -> None:
        self.calls: List[Tuple[Any, ...]] = []
        self.failing: set = set()
        self.raising: Dict[str, Exception] = {}
        self.text = "Try a sidechained pad under the arp."
        self.analysis = "Strong hook, thin low end."
        self.lyrics = "[Verse 1]\nNeon rain on the freeway"
        self.image: Optional[str] = "data:image/png;base64,iVBORw0KGgo="
        self.transcript = "Add a cinematic swell"

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name,) + args)
        if name in self.failing:
            raise HTTPException(status_code=502, detail=f"{name} failed")
        if name in self.raising:
            raise self.raising[name]

    def generate_text(self, prompt, context=None):
        self._record("generate_text", prompt, context)
        return self.text

    def generate_analysis(self, prompt, context=None):
        self._record("generate_analysis", prompt, context)
        return self.analysis

    def generate_lyrics(self, topic, genre, mood):
        self._record("generate_lyrics", topic, genre, mood)
        return self.lyrics

    def generate_cover_art(self, prompt, size="1K"):
        self._record("generate_cover_art", prompt, size)
        return self.image

    def transcribe_audio(self, audio_bytes, mime_type="audio/wav"):
        self._record("transcribe_audio", audio_bytes, mime_type)
        return self.transcript

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def service() -> FakeGenerationService:
    return FakeGenerationService()


@pytest.fixture
def project() -> ProjectMeta:
    return ProjectMeta(name="Neon Horizons", bpm=128, key="C Minor", genre="Electronic")


@pytest.fixture
def chase_chain() -> NodeChain:
    return NodeChain([
        Node(id="ctx", type="context", name="Base Context", data={"prompt": "80s chase"}),
        Node(id="gen", type="genre", name="Genre Mixer", data={"genres": ["Synthwave"]}),
        Node(id="out", type="output", name="Final Prompt", data={}),
    ])
