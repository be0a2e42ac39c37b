"""
Mock LLM Provider
=================

Deterministic mock provider for testing.

GUARANTEES:
- Same (prompt, seed) → identical response
- Scripted replies can be returned in order
- Explicit failure modes can be triggered
- No network access
"""

from __future__ import annotations
import hashlib
import time
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from .base import (
    LLMProvider,
    ProviderVersion,
    ProviderResponse,
    ProviderErrorCode,
    InvocationParams,
)


class MockProvider(LLMProvider):
    """
    Deterministic mock provider.

    With scripted replies, each invocation returns the next reply (the
    last one repeats). Without, the reply is derived from hash(prompt + seed).
    """

    def __init__(
        self,
        replies: Optional[Sequence[str]] = None,
        latency_ms: float = 0.0,
        failure_mode: Optional[ProviderErrorCode] = None
    ):
        """
        Args:
            replies: Scripted response contents
            latency_ms: Simulated latency
            failure_mode: If set, all invocations fail with this error
        """
        self._replies: List[str] = list(replies or [])
        self._latency_ms = latency_ms
        self._failure_mode = failure_mode
        self._calls: List[str] = []
        self._version = ProviderVersion(
            provider_id="mock",
            model_id="mock-deterministic-v1",
            api_version="1.0.0",
        )

    @property
    def provider_id(self) -> str:
        return "mock"

    @property
    def calls(self) -> List[str]:
        return list(self._calls)

    def get_version(self) -> ProviderVersion:
        return self._version

    def invoke(
        self,
        prompt: str,
        params: InvocationParams,
        system: Optional[str] = None
    ) -> ProviderResponse:
        invoked_at = datetime.now(timezone.utc)
        self._calls.append(prompt)

        if self._latency_ms:
            time.sleep(self._latency_ms / 1000.0)

        if self._failure_mode is not None:
            return ProviderResponse(
                success=False,
                error_code=self._failure_mode,
                error_message=f"Mock provider configured to fail: {self._failure_mode.value}",
                provider_version=self._version,
                invoked_at=invoked_at,
                latency_ms=self._latency_ms,
            )

        if self._replies:
            index = min(len(self._calls) - 1, len(self._replies) - 1)
            content = self._replies[index]
        else:
            digest = hashlib.sha256(f"{prompt}|{params.seed}".encode()).hexdigest()[:16]
            content = f"mock-response-{digest}"

        return ProviderResponse(
            success=True,
            content=content,
            provider_version=self._version,
            invoked_at=invoked_at,
            latency_ms=self._latency_ms,
        )
