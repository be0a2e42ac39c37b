"""
Local Model Provider
====================

Level 2 model: a model server on the operator's own machine that speaks
the OpenAI-compatible chat completions protocol (Ollama, llama.cpp
server, vLLM).

CONSTRAINTS:
- Default endpoint is loopback only
- temperature and seed are always forwarded
- No credentials are sent
"""

from __future__ import annotations
from typing import Any, Dict, Optional

import httpx

from .base import InvocationParams, ProviderVersion
from .http import HTTPChatProvider

DEFAULT_LOCAL_URL = "http://127.0.0.1:11434/v1"
DEFAULT_LOCAL_MODEL = "llama3.1:8b"


class LocalModelProvider(HTTPChatProvider):

    def __init__(
        self,
        base_url: str = DEFAULT_LOCAL_URL,
        model: str = DEFAULT_LOCAL_MODEL,
        transport: Optional[httpx.BaseTransport] = None
    ):
        super().__init__(transport)
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._version = ProviderVersion(
            provider_id="local",
            model_id=model,
            api_version="openai-chat-v1",
        )

    @property
    def provider_id(self) -> str:
        return "local"

    def get_version(self) -> ProviderVersion:
        return self._version

    @property
    def endpoint(self) -> str:
        return f"{self._base_url}/chat/completions"

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def _body(self, prompt: str, params: InvocationParams, system: Optional[str]) -> Dict[str, Any]:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return {
            "model": self._model,
            "messages": messages,
            "temperature": params.temperature,
            "seed": params.seed,
            "max_tokens": params.max_tokens,
            "stream": False,
        }

    def _extract_content(self, payload: Dict[str, Any]) -> Optional[str]:
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            return None
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        if not isinstance(message, dict):
            return None
        content = message.get("content")
        return content.strip() if isinstance(content, str) else None
