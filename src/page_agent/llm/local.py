"""Plan provider for a model served on this machine."""

from __future__ import annotations

from typing import Optional
from urllib.parse import urlparse

import httpx

from ..config import LLMConfig
from ..models import PageSnapshot, ProviderResponse
from .base import ProviderUnavailableError
from .openai_client import OpenAICompatibleProvider

LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


class LocalModelProvider(OpenAICompatibleProvider):
    """On-device provider talking to a loopback OpenAI-compatible server.

    Any failure here is recoverable: the session falls back to the remote
    provider.
    """

    name = "on-device"
    default_base_url = "http://127.0.0.1:11434/v1"

    def __init__(self, config: LLMConfig, *, client: Optional[httpx.Client] = None) -> None:
        super().__init__(config, client=client)
        self._base_url = config.base_url or self.default_base_url

    def availability_message(self) -> Optional[str]:
        """Return why the local model cannot be used, or None when it can."""

        host = urlparse(self._base_url).hostname or ""
        if host not in LOCAL_HOSTS:
            return f"On-device model must be served from this machine, not {host or 'an unknown host'}."
        try:
            response = self._client.get("/models", timeout=2.0)
        except httpx.HTTPError as exc:
            return f"On-device model server is not reachable at {self._base_url}: {exc}"
        if not response.is_success:
            return f"On-device model server answered HTTP {response.status_code}."
        return None

    def generate_plan(
        self,
        instruction: str,
        snapshot: PageSnapshot,
        allow_sensitive: bool,
        model_config: LLMConfig,
        *,
        request_id: str,
    ) -> ProviderResponse:
        message = self.availability_message()
        if message:
            raise ProviderUnavailableError(message)
        return super().generate_plan(
            instruction,
            snapshot,
            allow_sensitive,
            model_config,
            request_id=request_id,
        )
