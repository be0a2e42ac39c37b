"""
Escalation Orchestrator

RESPONSIBILITY: Answer a question at the highest trust level available
ALLOWED INPUTS: Question text, an EscalationContext with computed results
OUTPUTS: EscalationAnswer tagged with level and generation mode, or Error

STATE MACHINE:
==============
    LEVEL_1 --no answer--> LEVEL_2 --no answer--> LEVEL_3 --no answer--> EXHAUSTED
       |                      |                      |
    ANSWERED            ANSWERED | VIOLATION   ANSWERED | VIOLATION

- LEVEL_1: ordered templates, first match wins, no I/O
- LEVEL_2: local generative fallback (optional)
- LEVEL_3: external generative fallback, only when enabled and the
  caller deadline has not elapsed
- Each generative call is bounded by its timeout; timeout, None or a
  failing fallback means "no answer". No retries within a level.
- Level 2/3 text passes the witness guard; a violation is terminal and
  the text is dropped.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple
import logging
import time

from ..contracts.base import (
    AuditEventType, Error, ErrorCode, GenerationMode, Result, TrinityLevel,
    VerificationStatus, GENERATION_MODE_BY_LEVEL,
)
from ..observability import AuditLog, DEFAULT_AUDIT_MAX_ENTRIES
from ..witness import find_blocked_phrases, WitnessViolationError
from .templates import DEFAULT_TEMPLATES, EscalationContext, ResponseTemplate

logger = logging.getLogger(__name__)


class EscalationState(Enum):
    LEVEL_1 = "level_1"
    LEVEL_2 = "level_2"
    LEVEL_3 = "level_3"
    ANSWERED = "answered"
    VIOLATION = "violation"
    EXHAUSTED = "exhausted"


NEXT_STATE: Dict[EscalationState, EscalationState] = {
    EscalationState.LEVEL_1: EscalationState.LEVEL_2,
    EscalationState.LEVEL_2: EscalationState.LEVEL_3,
    EscalationState.LEVEL_3: EscalationState.EXHAUSTED,
}

LEVEL_OF_STATE: Dict[EscalationState, TrinityLevel] = {
    EscalationState.LEVEL_1: TrinityLevel.VERIFIED,
    EscalationState.LEVEL_2: TrinityLevel.LOCAL,
    EscalationState.LEVEL_3: TrinityLevel.EXTERNAL,
}


@dataclass(frozen=True)
class EscalationConfig:
    level2_timeout_seconds: float = 5.0
    level3_timeout_seconds: float = 30.0
    enable_level3: bool = True
    offline_mode: bool = False
    audit_max_entries: Optional[int] = DEFAULT_AUDIT_MAX_ENTRIES

    @property
    def level3_allowed(self) -> bool:
        return self.enable_level3 and not self.offline_mode


class GenerativeFallback(ABC):
    """A lower-trust source of answer text. May return None for "no answer"."""

    @abstractmethod
    def answer(self, question: str, context: EscalationContext) -> Optional[str]:
        pass

    @property
    def model_id(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class EscalationAnswer:
    text: str
    level: TrinityLevel
    mode: GenerationMode
    verification_status: VerificationStatus
    template_id: Optional[str] = None
    model_used: Optional[str] = None
    processing_time_ms: float = 0.0
    trace: Tuple[EscalationState, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "trinity_level": int(self.level),
            "generation_mode": self.mode.value,
            "verification_status": self.verification_status.value,
            "template_id": self.template_id,
            "model_used": self.model_used,
            "processing_time_ms": self.processing_time_ms,
            "trace": [s.value for s in self.trace],
        }


def call_with_timeout(
    fallback: GenerativeFallback,
    question: str,
    context: EscalationContext,
    timeout_seconds: float
) -> Optional[str]:
    """
    Run one fallback call bounded by timeout_seconds.

    An unavailable level is not an error: timeouts and fallback failures
    are logged and reported as None.
    """
    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(fallback.answer, question, context)
    try:
        return future.result(timeout=timeout_seconds)
    except FutureTimeout:
        logger.warning("%s timed out after %.2fs", fallback.model_id, timeout_seconds)
        return None
    except Exception as exc:
        logger.warning("%s failed: %s", fallback.model_id, exc)
        return None
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


class EscalationOrchestrator:
    """
    Explicit state machine over three trust levels.

    Exactly one terminal outcome per request: ANSWERED, VIOLATION or
    EXHAUSTED.
    """

    def __init__(
        self,
        templates: Sequence[ResponseTemplate] = DEFAULT_TEMPLATES,
        local_fallback: Optional[GenerativeFallback] = None,
        external_fallback: Optional[GenerativeFallback] = None,
        config: Optional[EscalationConfig] = None
    ):
        self._templates = tuple(templates)
        self._local = local_fallback
        self._external = external_fallback
        self._config = config or EscalationConfig()
        self._audit = AuditLog("escalation", self._config.audit_max_entries)

    @property
    def config(self) -> EscalationConfig:
        return self._config

    def escalate(
        self,
        question: str,
        context: Optional[EscalationContext] = None,
        deadline: Optional[float] = None
    ) -> Result:
        """
        Args:
            question: Free-text question
            context: Already computed results the levels may draw on
            deadline: time.monotonic() value after which Level 3 is skipped
        """
        context = context or EscalationContext()
        start_time = time.time()
        trace: List[EscalationState] = []
        state = EscalationState.LEVEL_1

        while state in NEXT_STATE:
            trace.append(state)
            text, source = self._attempt(state, question, context, deadline)
            if text is None:
                state = NEXT_STATE[state]
                continue

            level = LEVEL_OF_STATE[state]
            if level is not TrinityLevel.VERIFIED:
                blocked = find_blocked_phrases(text)
                if blocked:
                    trace.append(EscalationState.VIOLATION)
                    violation = WitnessViolationError(blocked)
                    logger.warning("Dropped %s output: %s", state.value, violation)
                    self._audit.record(
                        AuditEventType.WITNESS, "witness_violation",
                        metadata=(("level", str(int(level))), ("blocked", ", ".join(blocked))),
                    )
                    return Result.failure(violation.to_error().with_context("level", str(int(level))))

            trace.append(EscalationState.ANSWERED)
            answer = EscalationAnswer(
                text=text,
                level=level,
                mode=GENERATION_MODE_BY_LEVEL[level],
                verification_status=(
                    VerificationStatus.VERIFIED if level is TrinityLevel.VERIFIED
                    else VerificationStatus.UNVERIFIED
                ),
                template_id=source if level is TrinityLevel.VERIFIED else None,
                model_used=None if level is TrinityLevel.VERIFIED else source,
                processing_time_ms=(time.time() - start_time) * 1000,
                trace=tuple(trace),
            )
            self._audit.record(
                AuditEventType.ESCALATION, "answered",
                entity_id=source,
                metadata=(("level", str(int(level))),),
            )
            return Result.success(answer)

        trace.append(EscalationState.EXHAUSTED)
        self._audit.record(AuditEventType.ESCALATION, "exhausted")
        reason = "Level 3 disabled" if not self._config.level3_allowed else "no level produced an answer"
        return Result.failure(Error.create(
            ErrorCode.ESCALATION_EXHAUSTED,
            f"Escalation exhausted: {reason}",
            trace=" > ".join(s.value for s in trace),
        ))

    def _attempt(
        self,
        state: EscalationState,
        question: str,
        context: EscalationContext,
        deadline: Optional[float]
    ) -> Tuple[Optional[str], Optional[str]]:
        """Returns (text, source id) or (None, None) for no answer."""
        if state is EscalationState.LEVEL_1:
            for template in self._templates:
                text = template.answer(question, context)
                if text is not None:
                    return text, template.template_id
            return None, None

        if state is EscalationState.LEVEL_2:
            if self._local is None:
                return None, None
            text = call_with_timeout(self._local, question, context, self._config.level2_timeout_seconds)
            return (text, self._local.model_id) if text else (None, None)

        if not self._config.level3_allowed or self._external is None:
            return None, None
        timeout = self._config.level3_timeout_seconds
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.info("Deadline elapsed before Level 3; skipping")
                return None, None
            timeout = min(timeout, remaining)
        text = call_with_timeout(self._external, question, context, timeout)
        return (text, self._external.model_id) if text else (None, None)

    def get_audit_log(self):
        return self._audit.get_entries()


__all__ = [
    'EscalationState',
    'EscalationConfig',
    'EscalationContext',
    'EscalationAnswer',
    'EscalationOrchestrator',
    'GenerativeFallback',
    'ResponseTemplate',
    'DEFAULT_TEMPLATES',
    'call_with_timeout',
]
