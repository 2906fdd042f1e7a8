"""Mock plan providers for testing and offline use."""

from __future__ import annotations

from collections import deque
from typing import Deque, Iterable, Union

from ..config import LLMConfig
from ..models import PageSnapshot, ProviderResponse, ResponseMetadata
from .base import PlanProvider, ProviderError


class ScriptedProvider(PlanProvider):
    """Return raw responses from a predefined sequence.

    An item that is an exception instance is raised instead of returned.
    """

    name = "mock"

    def __init__(self, responses: Iterable[Union[str, Exception]]) -> None:
        self._responses: Deque[Union[str, Exception]] = deque(responses)
        self.calls: list[dict[str, object]] = []

    def generate_plan(
        self,
        instruction: str,
        snapshot: PageSnapshot,
        allow_sensitive: bool,
        model_config: LLMConfig,
        *,
        request_id: str,
    ) -> ProviderResponse:
        self.calls.append(
            {
                "instruction": instruction,
                "url": snapshot.url,
                "allow_sensitive": allow_sensitive,
                "request_id": request_id,
            }
        )
        if not self._responses:
            raise ProviderError("ScriptedProvider ran out of responses")
        item = self._responses.popleft()
        if isinstance(item, Exception):
            raise item
        return ProviderResponse(
            raw_text=item,
            metadata=ResponseMetadata(
                request_id=request_id,
                status_code=200,
                latency_ms=0,
                byte_count=len(item.encode("utf-8")),
            ),
        )
