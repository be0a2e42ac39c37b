"""
LLM Provider Abstraction Layer
==============================

Abstract interface for generative providers (local model server,
external API, mock).

BOUNDARY ENFORCEMENT:
- Providers are stateless invocation handlers
- Every call is bounded by timeout_seconds
- Failures are explicit ProviderResponses, never exceptions
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from enum import Enum


class ProviderErrorCode(Enum):
    """Explicit failure codes for LLM invocations."""
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    INVALID_RESPONSE = "invalid_response"
    API_ERROR = "api_error"
    NETWORK_ERROR = "network_error"
    NOT_CONFIGURED = "not_configured"


@dataclass(frozen=True)
class ProviderVersion:
    """
    Immutable provider version info.

    Tagged onto every unverified answer so consumers can tell which
    model produced it.
    """
    provider_id: str       # "local" | "external" | "mock"
    model_id: str
    api_version: str


@dataclass(frozen=True)
class ProviderResponse:
    """
    Immutable response from LLM provider.

    INVARIANT: Either (success=True, content set) or (success=False, error set)
    """
    success: bool
    content: Optional[str] = None

    # Failure info (only set if success=False)
    error_code: Optional[ProviderErrorCode] = None
    error_message: Optional[str] = None

    # Invocation metadata (always set)
    provider_version: Optional[ProviderVersion] = None
    invoked_at: Optional[datetime] = None
    latency_ms: float = 0.0

    def __post_init__(self):
        if self.success and self.content is None:
            raise ValueError("Successful response must have content")
        if not self.success and self.error_code is None:
            raise ValueError("Failed response must have error_code")


@dataclass(frozen=True)
class InvocationParams:
    """
    Frozen invocation parameters.

    temperature defaults to 0.0 for maximum determinism.
    """
    seed: int = 0
    temperature: float = 0.0
    max_tokens: int = 500
    timeout_seconds: float = 30.0


class LLMProvider(ABC):
    """
    A model that can phrase or parse, never count.

    Providers see either a question (parsing) or an already verified
    QueryResult (rendering). Whatever they return is untrusted text: the
    parser validates it against fixed vocabularies and the escalation
    layer runs it through the witness guard.

    A failed call returns ProviderResponse(success=False) with one of the
    ProviderErrorCode values; nothing propagates as an exception.
    """

    @abstractmethod
    def invoke(
        self,
        prompt: str,
        params: InvocationParams,
        system: Optional[str] = None
    ) -> ProviderResponse:
        """
        Invoke the LLM with given prompt and parameters.

        MUST return ProviderResponse, never raise exceptions.
        """
        pass

    @abstractmethod
    def get_version(self) -> ProviderVersion:
        pass

    @property
    @abstractmethod
    def provider_id(self) -> str:
        pass
