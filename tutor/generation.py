"""
PAIDEIA - Text Generation Client

The engine talks to the generation capability through GenerationClient.
GeminiGenerationClient is the shipped adapter: it posts to the Generative
Language REST API with httpx and maps transport and HTTP failures onto the
generation error hierarchy.

Grounding uses the file-search tool. The service rejects a JSON response
mime type alongside tools, so grounded calls ask for JSON in the prompt
only and the caller extracts it with extract_json().
"""
from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional, Protocol, runtime_checkable

import httpx

from config import GenerationConfig
from core.errors import (
    GenerationParseError,
    GenerationServiceError,
    GenerationTimeoutError,
    RateLimitedError,
)
from core.resilience import RetryPolicy, call_with_timeout
from observability.logging import GenerationLogger
from observability.metrics import TutorMetrics, get_tutor_metrics

ResponseFormat = Literal["json", "text"]


@dataclass(frozen=True)
class GenerationOptions:
    """Per-call generation parameters."""
    grounding_id: Optional[str] = None
    response_format: ResponseFormat = "json"
    language: Optional[str] = None
    system_instruction: Optional[str] = None
    temperature: Optional[float] = None
    operation: str = "generate"

    @property
    def grounded(self) -> bool:
        return bool(self.grounding_id)


@runtime_checkable
class GenerationClient(Protocol):
    """
    External text-generation capability.

    Implementations raise GenerationTimeoutError, RateLimitedError or
    GenerationServiceError; they never retry on their own.
    """

    async def generate(self, prompt: str, options: GenerationOptions) -> str:
        ...


# =============================================================================
# JSON extraction
# =============================================================================

_FENCE_RE = re.compile(r"```(?:json)?\s*|\s*```", re.IGNORECASE)
_UNDEFINED_RE = re.compile(r"(?<=[:\[,])\s*undefined\b")


def clean_json_text(text: str) -> str:
    """
    Strip markdown fences and surrounding prose from a model reply.

    Keeps the span from the first opening bracket to the last matching
    closing bracket of the same kind.
    """
    cleaned = _FENCE_RE.sub("", text.strip()).strip()

    first_obj, first_arr = cleaned.find("{"), cleaned.find("[")
    starts = [i for i in (first_obj, first_arr) if i != -1]
    if not starts:
        return cleaned
    start = min(starts)
    closer = "}" if cleaned[start] == "{" else "]"
    end = cleaned.rfind(closer)
    if end > start:
        cleaned = cleaned[start:end + 1]

    # Some models emit JavaScript's undefined for missing values
    return _UNDEFINED_RE.sub(" null", cleaned)


def extract_json(text: str, operation: str = "generate") -> Any:
    """Parse the JSON payload of a model reply or raise GenerationParseError."""
    if not text or not text.strip():
        raise GenerationParseError(
            "Generation returned empty content", raw_text=text, operation=operation
        )
    try:
        return json.loads(clean_json_text(text))
    except json.JSONDecodeError as e:
        raise GenerationParseError(
            f"Generation returned invalid JSON: {e.msg}",
            raw_text=text[:500],
            operation=operation,
            cause=e,
        ) from e


# =============================================================================
# Gemini adapter
# =============================================================================


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class GeminiGenerationClient:
    """
    GenerationClient over the Gemini ``generateContent`` endpoint.

    Usage:
        client = GeminiGenerationClient(config.generation)
        text = await client.generate(prompt, GenerationOptions(response_format="text"))
        await client.aclose()
    """

    def __init__(
        self,
        config: GenerationConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config
        self._client = http_client or httpx.AsyncClient(timeout=config.timeout_seconds)
        self._owns_client = http_client is None
        self._log = GenerationLogger(config.model)

    @property
    def endpoint(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/models/{self.config.model}:generateContent"

    def build_payload(self, prompt: str, options: GenerationOptions) -> Dict[str, Any]:
        generation_config: Dict[str, Any] = {
            "temperature": (
                options.temperature
                if options.temperature is not None
                else self.config.temperature
            ),
        }
        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        if options.system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": options.system_instruction}]}

        if options.grounded:
            payload["tools"] = [
                {"fileSearch": {"fileSearchStoreNames": [options.grounding_id]}}
            ]
        elif options.response_format == "json":
            generation_config["responseMimeType"] = "application/json"
        return payload

    async def generate(self, prompt: str, options: GenerationOptions) -> str:
        operation = options.operation
        self._log.request(operation, len(prompt), options.grounded)
        start = time.perf_counter()
        try:
            response = await self._client.post(
                self.endpoint,
                headers={"x-goog-api-key": self.config.api_key},
                json=self.build_payload(prompt, options),
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            self._log.failure(operation, e)
            raise GenerationTimeoutError(
                f"Generation request timed out: {e.__class__.__name__}",
                timeout_seconds=self.config.timeout_seconds,
                operation=operation,
                cause=e,
            ) from e
        except httpx.HTTPStatusError as e:
            self._log.failure(operation, e)
            status = e.response.status_code
            if status == 429:
                raise RateLimitedError(
                    "Generation service rate limit reached",
                    retry_after=_retry_after(e.response),
                    operation=operation,
                    cause=e,
                ) from e
            raise GenerationServiceError(
                f"Generation service returned HTTP {status}",
                status_code=status,
                operation=operation,
                cause=e,
            ) from e
        except httpx.RequestError as e:
            self._log.failure(operation, e)
            raise GenerationServiceError(
                f"Generation request failed: {e.__class__.__name__}",
                operation=operation,
                cause=e,
            ) from e

        text = self._extract_text(response, operation)
        self._log.response(operation, time.perf_counter() - start, len(text))
        return text

    @staticmethod
    def _extract_text(response: httpx.Response, operation: str) -> str:
        try:
            data = response.json()
            parts = data["candidates"][0]["content"]["parts"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise GenerationParseError(
                "Unexpected generation response envelope",
                raw_text=response.text[:500],
                operation=operation,
                cause=e,
            ) from e
        # Grounded replies may split text across several parts
        return "".join(p.get("text", "") for p in parts if isinstance(p, dict))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


# =============================================================================
# Resilient calls
# =============================================================================


class ResilientGenerator:
    """
    Bounded, retried access to a GenerationClient.

    Each attempt is limited by ``timeout`` seconds; timeouts and rate limits
    are retried under ``retry_policy``, everything else surfaces at once.
    """

    def __init__(
        self,
        client: GenerationClient,
        retry_policy: Optional[RetryPolicy] = None,
        default_timeout: Optional[float] = None,
        metrics: Optional[TutorMetrics] = None,
    ) -> None:
        self.client = client
        self.retry_policy = retry_policy or RetryPolicy()
        self.default_timeout = default_timeout
        self._metrics = metrics

    @property
    def metrics(self) -> TutorMetrics:
        return self._metrics or get_tutor_metrics()

    async def generate(
        self,
        prompt: str,
        options: GenerationOptions,
        timeout: Optional[float] = None,
    ) -> str:
        bound = timeout if timeout is not None else self.default_timeout

        async def attempt() -> str:
            with self.metrics.timed_generation(options.operation):
                return await call_with_timeout(
                    self.client.generate(prompt, options),
                    bound,
                    operation=options.operation,
                )

        return await self.retry_policy.run(attempt)
