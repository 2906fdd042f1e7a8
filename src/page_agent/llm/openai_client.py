"""Plan providers for OpenAI-compatible chat completion endpoints."""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

import httpx

from ..config import LLMConfig
from ..models import PageSnapshot, ProviderResponse, ResponseMetadata
from .base import PlanProvider, ProviderError, redact_secret
from .prompt_builder import PromptBuilder

LOGGER = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
_RESERVED_PARAMETERS = {"timeout", "system_prompt"}


class OpenAICompatibleProvider(PlanProvider):
    """Call a chat completion API once per plan request, without retries."""

    name = "openai-compatible"
    default_base_url = "https://api.openai.com/v1"

    def __init__(
        self,
        config: LLMConfig,
        *,
        client: Optional[httpx.Client] = None,
        prompt_builder: Optional[PromptBuilder] = None,
    ) -> None:
        if not config.model:
            raise ValueError(f"LLM model must be specified for {type(self).__name__}")
        self._config = config
        headers = {"Content-Type": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        self._client = client or httpx.Client(
            base_url=config.base_url or self.default_base_url,
            timeout=config.parameters.get("timeout", 60),
            headers=headers,
        )
        system_prompt = config.parameters.get("system_prompt")
        self._prompts = prompt_builder or (
            PromptBuilder(system_prompt) if system_prompt else PromptBuilder()
        )

    def has_credentials(self) -> bool:
        return bool(self._config.api_key) or not self.requires_credentials

    def credential_hint(self) -> Optional[str]:
        if not self._config.api_key:
            return None
        return redact_secret(self._config.api_key)

    def generate_plan(
        self,
        instruction: str,
        snapshot: PageSnapshot,
        allow_sensitive: bool,
        model_config: LLMConfig,
        *,
        request_id: str,
    ) -> ProviderResponse:
        model = model_config.model or self._config.model
        payload: dict[str, Any] = {
            "model": model,
            "messages": self._prompts.messages(instruction, snapshot, allow_sensitive),
            "temperature": model_config.temperature,
            "response_format": {"type": "json_object"},
        }
        payload.update(
            {
                k: v
                for k, v in model_config.parameters.items()
                if k not in _RESERVED_PARAMETERS
            }
        )
        if LOGGER.isEnabledFor(logging.DEBUG):
            LOGGER.debug(
                "%s request %s (key %s): %s",
                self.name,
                request_id,
                redact_secret(self._config.api_key),
                self._prompts.redacted_payload(model or "", instruction, snapshot, allow_sensitive),
            )

        started = time.monotonic()
        try:
            response = self._client.post(
                "/chat/completions",
                json=payload,
                headers={"X-Request-Id": request_id},
            )
        except httpx.HTTPError as exc:
            raise ProviderError(f"{self.name} request failed: {exc}") from exc
        latency_ms = int((time.monotonic() - started) * 1000)

        if not response.is_success:
            raise ProviderError(
                f"{self.name} returned HTTP {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ProviderError(
                f"Unexpected response format from {self.name}",
                status_code=response.status_code,
            ) from exc
        return ProviderResponse(
            raw_text=content,
            metadata=ResponseMetadata(
                request_id=request_id,
                status_code=response.status_code,
                latency_ms=latency_ms,
                byte_count=len(response.content),
            ),
        )

    def close(self) -> None:
        self._client.close()


class OpenRouterProvider(OpenAICompatibleProvider):
    """Remote provider backed by the OpenRouter API."""

    name = "openrouter"
    default_base_url = OPENROUTER_BASE_URL
    requires_credentials = True
