from __future__ import annotations

import os

APP_NAME = "DAiW Workstation Bridge"
BRIDGE_HOST = os.getenv("WORKSTATION_HOST", "127.0.0.1")
BRIDGE_PORT = int(os.getenv("WORKSTATION_PORT", "8765"))

DEFAULT_PROVIDER = os.getenv("WORKSTATION_PROVIDER", "gemini")
DEFAULT_MODEL_NAME = os.getenv("WORKSTATION_MODEL", "gemini-3-pro-preview")
DEFAULT_TEMPERATURE = 0.9
LYRICS_TEMPERATURE = 1.2
HTTP_TIMEOUT_SEC = float(os.getenv("WORKSTATION_HTTP_TIMEOUT", "120"))
LOG_PREVIEW_CHARS = 400

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")

DEFAULT_GEMINI_BASE_URL = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta")
DEFAULT_OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
DEFAULT_OPENROUTER_MODEL = "google/gemini-2.5-flash"
DEFAULT_LOCAL_MODEL = os.getenv("WORKSTATION_LOCAL_MODEL", "local-model")
DEFAULT_OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
LOCAL_HOSTS = ("localhost", "127.0.0.1", "::1", "0.0.0.0")

SUGGESTION_THINKING_BUDGET = 1024
ANALYSIS_THINKING_BUDGET = 2048
LYRICS_THINKING_BUDGET = 2048

TRANSCRIBE_MODEL_NAME = "gemini-3-flash-preview"
IMAGE_MODEL_STANDARD = "gemini-2.5-flash-image"
IMAGE_MODEL_HIGH_RES = "gemini-3-pro-image-preview"
IMAGE_ASPECT_RATIO = "1:1"
IMAGE_SIZES = ("1K", "2K", "4K")
DEFAULT_IMAGE_SIZE = "1K"
DEFAULT_AUDIO_MIME_TYPE = "audio/wav"

OUTPUT_NODE_TYPE = "output"
LYRICS_NODE_TYPE = "lyrics"
LYRICS_NODE_NAME = "Lyrics & Vocal"
DEFAULT_NODE_NAME = "New Layer"

LYRICS_PREVIEW_CHARS = 100
SHORT_MESSAGE_CHARS = 30
DEFAULT_LYRICS_GENRE = "Pop"
DEFAULT_LYRICS_MOOD = "Creative"
DEFAULT_NODE_LYRICS_TOPIC = "Love and Loss"
DEFAULT_NODE_LYRICS_MOOD = "Melancholic"

FALLBACK_SUGGESTION = "No suggestion generated."
FALLBACK_ANALYSIS = "Analysis complete."
FALLBACK_LYRICS = "Could not generate lyrics."
ERROR_SUGGESTION = "Error generating suggestion."
ERROR_ANALYSIS = "Error analyzing content."
ERROR_LYRICS = "Error generating lyrics. Please try again."
ERROR_IMAGE = "I couldn't generate the image at this time."
ERROR_TRANSCRIPTION = "Error transcribing audio."

ASSISTANT_GREETING = (
    "I'm your DAiW Creative Assistant. I can help generate prompts, "
    "analyze your arrangement, or create cover art."
)
