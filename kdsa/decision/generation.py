"""
Generation Service Clients.

The decision engine consumes one narrow interface:

    generate(prompt, schema, seed, temperature) -> JSON

Every failure (no key, timeout, non-2xx, non-JSON body) surfaces as a
GenerationError subclass; callers decide whether to fall back.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
import structlog

from kdsa.common.exceptions import (
    GenerationError,
    GenerationParseError,
    GenerationTimeoutError,
    GenerationUnavailableError,
)

logger = structlog.get_logger(__name__)


class GenerationService(ABC):
    """Abstract generative text service."""

    @property
    def is_available(self) -> bool:
        return True

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        schema: dict[str, Any],
        seed: int,
        temperature: float = 0.0,
    ) -> Any:
        """Return parsed JSON matching ``schema`` or raise GenerationError."""


class UnavailableGenerationService(GenerationService):
    """Stand-in when no model is configured. Always fails, so callers fall back."""

    @property
    def is_available(self) -> bool:
        return False

    async def generate(
        self,
        prompt: str,
        schema: dict[str, Any],
        seed: int,
        temperature: float = 0.0,
    ) -> Any:
        raise GenerationUnavailableError()


class GeminiGenerationService(GenerationService):
    """
    Gemini ``generateContent`` client over httpx.

    Requests JSON output constrained by a response schema, with the
    caller's seed and temperature.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    async def generate(
        self,
        prompt: str,
        schema: dict[str, Any],
        seed: int,
        temperature: float = 0.0,
    ) -> Any:
        headers = {
            "x-goog-api-key": self.api_key,
            "content-type": "application/json",
        }

        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": temperature,
                "seed": seed,
                "responseMimeType": "application/json",
                "responseSchema": schema,
            },
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(self.endpoint, json=payload, headers=headers)
                response.raise_for_status()
                data = response.json()

        except httpx.TimeoutException:
            logger.error("generation_timeout", model=self.model)
            raise GenerationTimeoutError(self.timeout_seconds)
        except httpx.HTTPStatusError as e:
            logger.error(
                "generation_http_error",
                model=self.model,
                status_code=e.response.status_code,
            )
            raise GenerationError(
                f"Generation service returned HTTP {e.response.status_code}",
                details={"status_code": e.response.status_code},
            )
        except httpx.HTTPError as e:
            logger.error("generation_call_failed", model=self.model, error=str(e))
            raise GenerationError(f"Generation service request failed: {e}")
        except json.JSONDecodeError:
            raise GenerationParseError("Generation service response was not JSON")

        text = self._extract_text(data)

        usage = data.get("usageMetadata") or {}
        if not isinstance(usage, dict):
            usage = {}
        logger.info(
            "generation_call_completed",
            model=self.model,
            seed=seed,
            prompt_tokens=usage.get("promptTokenCount", 0),
            output_tokens=usage.get("candidatesTokenCount", 0),
        )

        try:
            return json.loads(text)
        except json.JSONDecodeError:
            logger.warning("generation_json_parse_failed", response_preview=text[:200])
            raise GenerationParseError(
                "Generated content is not valid JSON",
                details={"preview": text[:200]},
            )

    @staticmethod
    def _extract_text(data: Any) -> str:
        try:
            parts = data["candidates"][0]["content"]["parts"]
            text = "".join(
                part.get("text") or "" for part in parts if isinstance(part, dict)
            )
        except (KeyError, IndexError, TypeError):
            raise GenerationParseError("Generation response has no candidate content")

        if not text.strip():
            raise GenerationParseError("Generation response candidate is empty")
        return text


def build_generation_service(settings) -> GenerationService:
    """Pick the generation client for the configured settings."""
    if not settings.generation_configured:
        logger.warning(
            "generation_unavailable",
            msg="No GEMINI_API_KEY or generation disabled, using fallback content",
        )
        return UnavailableGenerationService()

    return GeminiGenerationService(
        api_key=settings.gemini_api_key,
        model=settings.generation_model,
        base_url=settings.generation_base_url,
        timeout_seconds=settings.generation_timeout_seconds,
    )
