"""
RefugeCare Triage - Advisory Oracle Service

Optional external text-generation service consulted for a richer narrative
during conversational triage.

Architecture:
    - Protocol defines the single assess() capability
    - NoOpAdvisoryOracle: default, never calls out (deterministic path only)
    - HttpAdvisoryOracle: OpenAI-compatible /chat/completions endpoint via httpx

Trust Notes:
    - The oracle is advisory. Urgency tier and risk level always come from
      the deterministic classifier.
    - Every response passes through validate_advisory() before use: numeric
      fields are clamped and missing fields get defaults.
    - Callers bound the call with a timeout and fall back on any failure.
"""

from __future__ import annotations

import json
import logging
import math
from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Tuple, runtime_checkable

import httpx

from refugecare.config import Settings
from refugecare.core.exceptions import ConfigurationError, OracleError, OracleTimeoutError

logger = logging.getLogger(__name__)


# =============================================================================
# Request / Response
# =============================================================================

@dataclass(frozen=True)
class AdvisoryContext:
    """Structured triage context handed to the oracle. Carries no subject PII."""
    session_id: str
    symptoms: Tuple[str, ...]
    transcript: str
    urgency: str
    red_flags: Tuple[str, ...] = ()
    trauma_suspected: bool = False
    is_refugee: bool = True
    extra: dict = field(default_factory=dict)


@dataclass(frozen=True)
class AdvisoryResponse:
    narrative: str
    confidence: Optional[float] = None
    immediate_actions: Tuple[str, ...] = ()
    red_flags: Tuple[str, ...] = ()
    culturally_sensitive_advice: Tuple[str, ...] = ()


DEFAULT_NARRATIVE = (
    "Based on what you've shared, a health worker should review your "
    "symptoms. Seek care sooner if anything gets worse."
)
DEFAULT_ACTIONS = ("Seek medical evaluation",)
DEFAULT_CULTURAL_ADVICE = (
    "It is important to seek medical care when needed",
    "Your health and wellbeing matter",
)


def _string_tuple(value: Any, default: Tuple[str, ...] = ()) -> Tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return default
    items = tuple(str(v).strip() for v in value if isinstance(v, (str, int, float)) and str(v).strip())
    return items or default


def validate_advisory(raw: Any) -> Optional[AdvisoryResponse]:
    """
    Turn an untrusted oracle payload into an AdvisoryResponse.

    Returns None when the payload is not a mapping at all. Confidence is
    clamped into [0, 1]; a missing or non-numeric confidence stays None so
    the caller keeps its own estimate.
    """
    if not isinstance(raw, dict):
        return None

    narrative = raw.get("narrative") or raw.get("advice") or raw.get("summary")
    if not isinstance(narrative, str) or not narrative.strip():
        narrative = DEFAULT_NARRATIVE

    confidence = raw.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)) or math.isnan(confidence):
        confidence = None
    else:
        confidence = min(max(float(confidence), 0.0), 1.0)

    return AdvisoryResponse(
        narrative=narrative.strip(),
        confidence=confidence,
        immediate_actions=_string_tuple(raw.get("immediate_actions"), DEFAULT_ACTIONS),
        red_flags=_string_tuple(raw.get("red_flags")),
        culturally_sensitive_advice=_string_tuple(
            raw.get("culturally_sensitive_advice"), DEFAULT_CULTURAL_ADVICE
        ),
    )


# =============================================================================
# Protocol (Interface)
# =============================================================================

@runtime_checkable
class AdvisoryOracle(Protocol):
    """
    Protocol for advisory oracles.

    assess() may raise OracleError / OracleTimeoutError or return None when
    it has nothing to add. It must never be treated as authoritative.
    """

    @abstractmethod
    async def assess(self, context: AdvisoryContext) -> Optional[AdvisoryResponse]:
        ...

    @property
    @abstractmethod
    def oracle_id(self) -> str:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


# =============================================================================
# No-op Implementation
# =============================================================================

class NoOpAdvisoryOracle:
    """Default oracle: contributes nothing, never performs I/O."""

    @property
    def oracle_id(self) -> str:
        return "none"

    async def assess(self, context: AdvisoryContext) -> Optional[AdvisoryResponse]:
        return None

    async def close(self) -> None:
        return None


# =============================================================================
# HTTP Implementation
# =============================================================================

SYSTEM_PROMPT = (
    "You support health workers triaging refugees. Reply with ONLY a JSON "
    "object with keys: narrative (string, under 150 words, compassionate and "
    "culturally sensitive), confidence (number 0-1), immediate_actions (list "
    "of strings), red_flags (list of strings), culturally_sensitive_advice "
    "(list of strings). Do not diagnose."
)


class HttpAdvisoryOracle:
    """
    Advisory oracle backed by an OpenAI-compatible chat completions API.

    The client is created lazily and reused; call close() at shutdown.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        model: str = "gpt-4o-mini",
        timeout_seconds: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not base_url:
            raise ConfigurationError("oracle_url is required for the http oracle backend")
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._model = model
        self._timeout = timeout_seconds
        self._client = client

    @property
    def oracle_id(self) -> str:
        return f"http:{self._model}"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout)
        return self._client

    def _build_body(self, context: AdvisoryContext) -> dict:
        user = (
            f"symptoms: {', '.join(context.symptoms) or 'none detected'}\n"
            f"urgency: {context.urgency}\n"
            f"red_flags: {', '.join(context.red_flags) or 'none'}\n"
            f"refugee: {context.is_refugee}\n"
            f"trauma_suspected: {context.trauma_suspected}\n"
            f"transcript: {context.transcript}\n"
        )
        return {
            "model": self._model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": user},
            ],
            "temperature": 0.2,
            "response_format": {"type": "json_object"},
        }

    async def assess(self, context: AdvisoryContext) -> Optional[AdvisoryResponse]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        try:
            resp = await self._get_client().post(
                "/chat/completions", json=self._build_body(context), headers=headers
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.TimeoutException as e:
            raise OracleTimeoutError("Advisory oracle timed out", details={"oracle": self.oracle_id}) from e
        except (httpx.HTTPError, ValueError) as e:
            raise OracleError(f"Advisory oracle request failed: {e}", details={"oracle": self.oracle_id}) from e

        try:
            content = data["choices"][0]["message"]["content"]
            payload = json.loads(content)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise OracleError("Advisory oracle returned an unreadable payload") from e

        return validate_advisory(payload)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


# =============================================================================
# Factory
# =============================================================================

def create_oracle(settings: Settings) -> AdvisoryOracle:
    """
    Create the advisory oracle selected by settings.oracle_backend.

    Raises:
        ConfigurationError: Unknown backend or missing URL
    """
    backend = settings.oracle_backend.lower()

    if backend == "none":
        logger.info("Advisory oracle disabled, using deterministic triage only")
        return NoOpAdvisoryOracle()

    if backend == "http":
        logger.info(
            "Advisory oracle: http model=%s timeout=%.1fs",
            settings.oracle_model, settings.oracle_timeout_seconds,
        )
        return HttpAdvisoryOracle(
            base_url=settings.oracle_url,
            api_key=settings.oracle_api_key,
            model=settings.oracle_model,
            timeout_seconds=settings.oracle_timeout_seconds,
        )

    raise ConfigurationError(f"Unknown oracle backend: {settings.oracle_backend}")
