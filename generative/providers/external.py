"""
External Model Provider
=======================

Level 3 model: the Anthropic Messages API. Only reachable when the
escalation config allows Level 3 and an API key is configured.
"""

from __future__ import annotations
from typing import Any, Dict, Optional

import httpx

from .base import InvocationParams, ProviderVersion
from .http import HTTPChatProvider

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_EXTERNAL_MODEL = "claude-3-5-haiku-latest"


class ExternalModelProvider(HTTPChatProvider):

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_EXTERNAL_MODEL,
        url: str = ANTHROPIC_URL,
        transport: Optional[httpx.BaseTransport] = None
    ):
        super().__init__(transport)
        self._api_key = api_key
        self._model = model
        self._url = url
        self._version = ProviderVersion(
            provider_id="external",
            model_id=model,
            api_version=ANTHROPIC_VERSION,
        )

    @property
    def provider_id(self) -> str:
        return "external"

    def get_version(self) -> ProviderVersion:
        return self._version

    @property
    def endpoint(self) -> str:
        return self._url

    def _configured(self) -> Optional[str]:
        if not self._api_key:
            return "No API key configured for external provider"
        return None

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self._api_key or "",
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    def _body(self, prompt: str, params: InvocationParams, system: Optional[str]) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": self._model,
            "max_tokens": params.max_tokens,
            "temperature": params.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            body["system"] = system
        return body

    def _extract_content(self, payload: Dict[str, Any]) -> Optional[str]:
        blocks = payload.get("content")
        if not isinstance(blocks, list):
            return None
        texts = [
            block.get("text", "") for block in blocks
            if isinstance(block, dict) and block.get("type", "text") == "text"
        ]
        text = "".join(texts).strip()
        return text or None
