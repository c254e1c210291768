from __future__ import annotations

import json
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException

try:
    from constants import (
        DEFAULT_GEMINI_BASE_URL,
        DEFAULT_LOCAL_MODEL,
        DEFAULT_MODEL_NAME,
        DEFAULT_OLLAMA_BASE_URL,
        DEFAULT_OPENROUTER_BASE_URL,
        DEFAULT_OPENROUTER_MODEL,
        DEFAULT_PROVIDER,
        DEFAULT_TEMPERATURE,
        GEMINI_API_KEY,
        HTTP_TIMEOUT_SEC,
        LOCAL_HOSTS,
        OPENROUTER_API_KEY,
    )
    from logger_config import logger
    from models import ModelInfo
except ImportError:
    from .constants import (
        DEFAULT_GEMINI_BASE_URL,
        DEFAULT_LOCAL_MODEL,
        DEFAULT_MODEL_NAME,
        DEFAULT_OLLAMA_BASE_URL,
        DEFAULT_OPENROUTER_BASE_URL,
        DEFAULT_OPENROUTER_MODEL,
        DEFAULT_PROVIDER,
        DEFAULT_TEMPERATURE,
        GEMINI_API_KEY,
        HTTP_TIMEOUT_SEC,
        LOCAL_HOSTS,
        OPENROUTER_API_KEY,
    )
    from .logger_config import logger
    from .models import ModelInfo

PROVIDER_GEMINI = "gemini"
PROVIDER_OPENROUTER = "openrouter"
PROVIDER_OLLAMA = "ollama"


def build_url(base_url: str, path: str) -> str:
    if base_url.endswith("/"):
        base = base_url[:-1]
    else:
        base = base_url
    if not path.startswith("/"):
        path = "/" + path
    return base + path


def is_local_url(url: str) -> bool:
    try:
        host = urllib.parse.urlparse(url).hostname
    except ValueError:
        return False
    if not host:
        return False
    return host in LOCAL_HOSTS or host.startswith("127.")


def read_json_response(resp: Any) -> Dict[str, Any]:
    raw = resp.read().decode("utf-8")
    return json.loads(raw)


def post_json(
    url: str,
    payload: Dict[str, Any],
    timeout: float,
    headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    data = json.dumps(payload).encode("utf-8")
    req_headers = {"Content-Type": "application/json"}
    if headers:
        req_headers.update(headers)
    req = urllib.request.Request(url, data=data, headers=req_headers, method="POST")
    try:
        if is_local_url(url):
            opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))
            with opener.open(req, timeout=timeout) as resp:
                return read_json_response(resp)
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return read_json_response(resp)
    except urllib.error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="ignore")
        logger.error("LLM HTTP error: %s %s", exc.code, body)
        raise HTTPException(status_code=502, detail=f"LLM HTTP error: {exc.code} {body}") from exc
    except (urllib.error.URLError, OSError) as exc:
        logger.error("LLM connection error: %s", exc)
        raise HTTPException(status_code=502, detail=f"LLM connection error: {exc}") from exc
    except json.JSONDecodeError as exc:
        logger.error("LLM invalid JSON: %s", exc)
        raise HTTPException(status_code=502, detail=f"LLM returned invalid JSON: {exc}") from exc


def call_ollama(model_name: str, base_url: str, temperature: float, messages: List[Dict[str, str]]) -> str:
    url = build_url(base_url, "/api/chat")
    payload = {
        "model": model_name,
        "messages": messages,
        "options": {"temperature": temperature},
        "stream": False,
    }
    response = post_json(url, payload, HTTP_TIMEOUT_SEC)
    try:
        return response["message"]["content"] or ""
    except (KeyError, TypeError) as exc:
        raise HTTPException(status_code=502, detail="Ollama response missing content") from exc


def call_openrouter(model_name: str, base_url: str, temperature: float, messages: List[Dict[str, str]], api_key: str) -> str:
    url = build_url(base_url, "/chat/completions")
    logger.info("OpenRouter request: url=%s model=%s", url, model_name)
    payload = {
        "model": model_name,
        "messages": messages,
        "temperature": temperature,
        "stream": False,
    }
    headers = {
        "Authorization": f"Bearer {api_key}",
        "X-Title": "DAiW Workstation",
    }
    response = post_json(url, payload, HTTP_TIMEOUT_SEC, headers=headers)
    try:
        content = response["choices"][0]["message"]["content"] or ""
    except (KeyError, IndexError, TypeError) as exc:
        logger.error("OpenRouter response missing content: %s", response)
        raise HTTPException(status_code=502, detail="OpenRouter response missing content") from exc
    logger.info("OpenRouter response received: %d chars", len(content))
    return content


def split_system_messages(messages: List[Dict[str, str]]) -> Tuple[str, List[Dict[str, Any]]]:
    system_parts: List[str] = []
    contents: List[Dict[str, Any]] = []
    for message in messages:
        role = message.get("role", "user")
        text = message.get("content", "")
        if role == "system":
            system_parts.append(text)
            continue
        contents.append({
            "role": "model" if role == "assistant" else "user",
            "parts": [{"text": text}],
        })
    return "\n\n".join(system_parts), contents


def call_gemini(
    model_name: str,
    base_url: str,
    api_key: str,
    contents: List[Dict[str, Any]],
    system_instruction: str = "",
    generation_config: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    url = build_url(base_url, f"/models/{model_name}:generateContent")
    logger.info("Gemini request: model=%s parts=%d", model_name, sum(len(c.get("parts", [])) for c in contents))
    payload: Dict[str, Any] = {"contents": contents}
    if system_instruction:
        payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}
    if generation_config:
        payload["generationConfig"] = generation_config
    response = post_json(url, payload, HTTP_TIMEOUT_SEC, headers={"x-goog-api-key": api_key})
    if not isinstance(response, dict):
        raise HTTPException(status_code=502, detail="Gemini response is not an object")
    return response


def gemini_response_parts(response: Dict[str, Any]) -> List[Dict[str, Any]]:
    candidates = response.get("candidates") or []
    if not isinstance(candidates, list):
        logger.error("Gemini response has malformed candidates: %s", type(candidates).__name__)
        raise HTTPException(status_code=502, detail="Gemini response has malformed candidates")
    if not candidates:
        return []
    try:
        parts = candidates[0].get("content", {}).get("parts") or []
    except AttributeError as exc:
        raise HTTPException(status_code=502, detail="Gemini response has malformed candidates") from exc
    if not isinstance(parts, list):
        logger.error("Gemini response has malformed parts: %s", type(parts).__name__)
        raise HTTPException(status_code=502, detail="Gemini response has malformed parts")
    return [part for part in parts if isinstance(part, dict)]


def extract_gemini_text(response: Dict[str, Any]) -> str:
    texts = [
        part["text"]
        for part in gemini_response_parts(response)
        if isinstance(part.get("text"), str) and not part.get("thought")
    ]
    return "".join(texts)


def extract_gemini_image(response: Dict[str, Any]) -> Optional[str]:
    for part in gemini_response_parts(response):
        inline = part.get("inlineData") or part.get("inline_data")
        if isinstance(inline, dict) and inline.get("data"):
            mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
            return f"data:{mime_type};base64,{inline['data']}"
    return None


def resolve_model(model_info: Optional[ModelInfo]) -> Tuple[str, str, str, float, Optional[str]]:
    model_info = model_info or ModelInfo()
    provider = (model_info.provider or DEFAULT_PROVIDER).lower()
    model_name = model_info.model_name
    temperature = model_info.temperature
    if temperature is None:
        temperature = DEFAULT_TEMPERATURE
    base_url = model_info.base_url
    api_key = model_info.api_key

    if provider == PROVIDER_GEMINI:
        base_url = base_url or DEFAULT_GEMINI_BASE_URL
        model_name = model_name or DEFAULT_MODEL_NAME
        api_key = api_key or GEMINI_API_KEY
    elif provider == PROVIDER_OPENROUTER:
        base_url = base_url or DEFAULT_OPENROUTER_BASE_URL
        model_name = model_name or DEFAULT_OPENROUTER_MODEL
        api_key = api_key or OPENROUTER_API_KEY
    elif provider == PROVIDER_OLLAMA:
        base_url = base_url or DEFAULT_OLLAMA_BASE_URL
        model_name = model_name or DEFAULT_LOCAL_MODEL
    else:
        logger.error("Unsupported provider: %s", provider)
        raise HTTPException(status_code=400, detail=f"Unsupported provider: {provider}")

    return provider, model_name, base_url, float(temperature), api_key


def require_api_key(provider: str, api_key: Optional[str]) -> str:
    if not api_key:
        logger.error("%s requires an API key but none provided", provider)
        raise HTTPException(status_code=400, detail=f"{provider} requires an API key")
    return api_key


def call_llm(
    provider: str,
    model_name: str,
    base_url: str,
    temperature: float,
    messages: List[Dict[str, str]],
    api_key: Optional[str] = None,
    thinking_budget: Optional[int] = None,
) -> str:
    logger.info("call_llm: provider=%s model=%s base_url=%s has_api_key=%s",
                provider, model_name, base_url, bool(api_key))
    if provider == PROVIDER_GEMINI:
        key = require_api_key(provider, api_key)
        system_instruction, contents = split_system_messages(messages)
        generation_config: Dict[str, Any] = {"temperature": temperature}
        if thinking_budget:
            generation_config["thinkingConfig"] = {"thinkingBudget": thinking_budget}
        response = call_gemini(model_name, base_url, key, contents, system_instruction, generation_config)
        return extract_gemini_text(response)
    if provider == PROVIDER_OPENROUTER:
        return call_openrouter(model_name, base_url, temperature, messages, require_api_key(provider, api_key))
    if provider == PROVIDER_OLLAMA:
        return call_ollama(model_name, base_url, temperature, messages)
    raise HTTPException(status_code=400, detail=f"Unsupported provider: {provider}")
