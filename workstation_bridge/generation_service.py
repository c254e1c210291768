from __future__ import annotations

import base64
from typing import Dict, List, Optional

from fastapi import HTTPException

try:
    from constants import (
        ANALYSIS_THINKING_BUDGET,
        DEFAULT_AUDIO_MIME_TYPE,
        DEFAULT_IMAGE_SIZE,
        FALLBACK_ANALYSIS,
        FALLBACK_LYRICS,
        FALLBACK_SUGGESTION,
        IMAGE_ASPECT_RATIO,
        IMAGE_MODEL_HIGH_RES,
        IMAGE_MODEL_STANDARD,
        IMAGE_SIZES,
        LYRICS_TEMPERATURE,
        LYRICS_THINKING_BUDGET,
        SUGGESTION_THINKING_BUDGET,
        TRANSCRIBE_MODEL_NAME,
    )
    from llm_client import (
        PROVIDER_GEMINI,
        call_gemini,
        call_llm,
        extract_gemini_image,
        extract_gemini_text,
        require_api_key,
        resolve_model,
    )
    from logger_config import logger
    from models import ModelInfo
    from prompts import ANALYSIS_SYSTEM_PROMPT, LYRICS_PROMPT_TEMPLATE, TRANSCRIBE_INSTRUCTION
    from utils import safe_format, summarize_text
except ImportError:
    from .constants import (
        ANALYSIS_THINKING_BUDGET,
        DEFAULT_AUDIO_MIME_TYPE,
        DEFAULT_IMAGE_SIZE,
        FALLBACK_ANALYSIS,
        FALLBACK_LYRICS,
        FALLBACK_SUGGESTION,
        IMAGE_ASPECT_RATIO,
        IMAGE_MODEL_HIGH_RES,
        IMAGE_MODEL_STANDARD,
        IMAGE_SIZES,
        LYRICS_TEMPERATURE,
        LYRICS_THINKING_BUDGET,
        SUGGESTION_THINKING_BUDGET,
        TRANSCRIBE_MODEL_NAME,
    )
    from .llm_client import (
        PROVIDER_GEMINI,
        call_gemini,
        call_llm,
        extract_gemini_image,
        extract_gemini_text,
        require_api_key,
        resolve_model,
    )
    from .logger_config import logger
    from .models import ModelInfo
    from .prompts import ANALYSIS_SYSTEM_PROMPT, LYRICS_PROMPT_TEMPLATE, TRANSCRIBE_INSTRUCTION
    from .utils import safe_format, summarize_text


def build_chat_messages(system_prompt: str, user_prompt: str) -> List[Dict[str, str]]:
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": user_prompt})
    return messages


def image_model_for_size(size: str) -> str:
    if size not in IMAGE_SIZES:
        raise ValueError(f"Unsupported image size: {size}")
    return IMAGE_MODEL_STANDARD if size == "1K" else IMAGE_MODEL_HIGH_RES


class GenerationService:
    """Generative-AI collaborator used by the assistant.

    Provider failures surface as ``HTTPException`` (raised by ``llm_client``);
    callers are expected to downgrade them to a displayable apology. Empty
    responses are not failures and fall back to fixed default texts here.
    """

    def __init__(self, model_info: Optional[ModelInfo] = None) -> None:
        (
            self.provider,
            self.model_name,
            self.base_url,
            self.temperature,
            self.api_key,
        ) = resolve_model(model_info)

    def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: Optional[float] = None,
        thinking_budget: Optional[int] = None,
    ) -> str:
        messages = build_chat_messages(system_prompt, user_prompt)
        content = call_llm(
            self.provider,
            self.model_name,
            self.base_url,
            self.temperature if temperature is None else temperature,
            messages,
            self.api_key,
            thinking_budget=thinking_budget,
        )
        logger.info("LLM response received: %d chars", len(content))
        logger.info("LLM response preview: %s", summarize_text(content))
        return content.strip()

    def _require_gemini(self, operation: str) -> str:
        if self.provider != PROVIDER_GEMINI:
            raise HTTPException(status_code=501, detail=f"{operation} is not supported by provider {self.provider}")
        return require_api_key(self.provider, self.api_key)

    def generate_text(self, prompt: str, context: Optional[str] = None) -> str:
        content = self._complete(context or "", prompt, thinking_budget=SUGGESTION_THINKING_BUDGET)
        return content or FALLBACK_SUGGESTION

    def generate_analysis(self, prompt: str, context: Optional[str] = None) -> str:
        system_prompt = "\n\n".join(part for part in (context, ANALYSIS_SYSTEM_PROMPT) if part)
        content = self._complete(system_prompt, prompt, thinking_budget=ANALYSIS_THINKING_BUDGET)
        return content or FALLBACK_ANALYSIS

    def generate_lyrics(self, topic: str, genre: str, mood: str) -> str:
        prompt = safe_format(LYRICS_PROMPT_TEMPLATE, {"topic": topic, "genre": genre, "mood": mood})
        logger.info("Lyrics request: topic=%s genre=%s mood=%s", summarize_text(topic, 80), genre, mood)
        content = self._complete(
            "",
            prompt,
            temperature=LYRICS_TEMPERATURE,
            thinking_budget=LYRICS_THINKING_BUDGET,
        )
        return content or FALLBACK_LYRICS

    def generate_cover_art(self, prompt: str, size: str = DEFAULT_IMAGE_SIZE) -> Optional[str]:
        model_name = image_model_for_size(size)
        api_key = self._require_gemini("Image generation")
        generation_config = {
            "responseModalities": ["TEXT", "IMAGE"],
            "imageConfig": {"aspectRatio": IMAGE_ASPECT_RATIO, "imageSize": size},
        }
        contents = [{"role": "user", "parts": [{"text": prompt}]}]
        response = call_gemini(model_name, self.base_url, api_key, contents, generation_config=generation_config)
        image = extract_gemini_image(response)
        logger.info("Cover art: model=%s size=%s image=%s", model_name, size, "yes" if image else "no")
        return image

    def transcribe_audio(self, audio_bytes: bytes, mime_type: str = DEFAULT_AUDIO_MIME_TYPE) -> str:
        if not audio_bytes:
            raise ValueError("No audio data to transcribe")
        api_key = self._require_gemini("Transcription")
        contents = [{
            "role": "user",
            "parts": [
                {"inlineData": {"mimeType": mime_type, "data": base64.b64encode(audio_bytes).decode("ascii")}},
                {"text": TRANSCRIBE_INSTRUCTION},
            ],
        }]
        response = call_gemini(TRANSCRIBE_MODEL_NAME, self.base_url, api_key, contents)
        transcript = extract_gemini_text(response).strip()
        logger.info("Transcription received: %d chars", len(transcript))
        return transcript
