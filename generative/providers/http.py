"""
HTTP Chat Provider
==================

Shared request/response handling for providers that speak to a model
over HTTP. Subclasses only describe the endpoint, the request body and
where the reply text lives.

FAILURE MAPPING:
- httpx.TimeoutException → TIMEOUT
- HTTP 429 → RATE_LIMITED
- Any other non-2xx status → API_ERROR
- httpx transport failure → NETWORK_ERROR
- Body is not JSON or lacks reply text → INVALID_RESPONSE
"""

from __future__ import annotations
from abc import abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging
import time

import httpx

from .base import (
    LLMProvider,
    ProviderResponse,
    ProviderErrorCode,
    InvocationParams,
)

logger = logging.getLogger(__name__)


class HTTPChatProvider(LLMProvider):

    def __init__(self, transport: Optional[httpx.BaseTransport] = None):
        """
        Args:
            transport: Optional httpx transport (tests pass httpx.MockTransport)
        """
        self._transport = transport

    @property
    @abstractmethod
    def endpoint(self) -> str:
        pass

    @abstractmethod
    def _headers(self) -> Dict[str, str]:
        pass

    @abstractmethod
    def _body(self, prompt: str, params: InvocationParams, system: Optional[str]) -> Dict[str, Any]:
        pass

    @abstractmethod
    def _extract_content(self, payload: Dict[str, Any]) -> Optional[str]:
        pass

    def _configured(self) -> Optional[str]:
        """Returns a reason when the provider cannot be called."""
        return None

    def _failure(
        self,
        code: ProviderErrorCode,
        message: str,
        invoked_at: datetime,
        started: float
    ) -> ProviderResponse:
        logger.warning("%s provider failed (%s): %s", self.provider_id, code.value, message)
        return ProviderResponse(
            success=False,
            error_code=code,
            error_message=message,
            provider_version=self.get_version(),
            invoked_at=invoked_at,
            latency_ms=(time.time() - started) * 1000,
        )

    def invoke(
        self,
        prompt: str,
        params: InvocationParams,
        system: Optional[str] = None
    ) -> ProviderResponse:
        invoked_at = datetime.now(timezone.utc)
        started = time.time()

        reason = self._configured()
        if reason is not None:
            return self._failure(ProviderErrorCode.NOT_CONFIGURED, reason, invoked_at, started)

        try:
            with httpx.Client(timeout=params.timeout_seconds, transport=self._transport) as client:
                response = client.post(
                    self.endpoint,
                    headers=self._headers(),
                    json=self._body(prompt, params, system),
                )
        except httpx.TimeoutException:
            return self._failure(
                ProviderErrorCode.TIMEOUT,
                f"No reply within {params.timeout_seconds}s",
                invoked_at, started,
            )
        except httpx.HTTPError as e:
            return self._failure(ProviderErrorCode.NETWORK_ERROR, str(e), invoked_at, started)

        if response.status_code == 429:
            return self._failure(ProviderErrorCode.RATE_LIMITED, "HTTP 429", invoked_at, started)
        if response.status_code >= 300:
            return self._failure(
                ProviderErrorCode.API_ERROR, f"HTTP {response.status_code}", invoked_at, started
            )

        try:
            payload = response.json()
        except ValueError as e:
            return self._failure(ProviderErrorCode.INVALID_RESPONSE, f"Body is not JSON: {e}", invoked_at, started)

        content = self._extract_content(payload) if isinstance(payload, dict) else None
        if not content:
            return self._failure(ProviderErrorCode.INVALID_RESPONSE, "Reply carried no text", invoked_at, started)

        return ProviderResponse(
            success=True,
            content=content,
            provider_version=self.get_version(),
            invoked_at=invoked_at,
            latency_ms=(time.time() - started) * 1000,
        )
