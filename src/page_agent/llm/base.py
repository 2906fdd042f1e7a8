"""Base classes and utilities for plan providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from ..config import LLMConfig
from ..models import PageSnapshot, ProviderResponse


class ProviderError(RuntimeError):
    """Raised when a provider call fails."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ProviderUnavailableError(ProviderError):
    """Raised when a provider cannot run at all (not installed, not reachable)."""


class PlanProvider(ABC):
    """Abstract interface for models that turn a snapshot into plan text."""

    name: str = "provider"
    requires_credentials: bool = False

    @abstractmethod
    def generate_plan(
        self,
        instruction: str,
        snapshot: PageSnapshot,
        allow_sensitive: bool,
        model_config: LLMConfig,
        *,
        request_id: str,
    ) -> ProviderResponse:
        """Return raw model text for ``instruction`` on ``snapshot``.

        The text is untrusted; callers hand it to the plan parser.
        """

    def has_credentials(self) -> bool:
        return True

    def credential_hint(self) -> Optional[str]:
        """Redacted form of the credential in use, safe to log."""

        return None

    def close(self) -> None:
        """Release any transport resources."""


def redact_secret(value: Optional[str], *, keep: int = 4) -> str:
    """Return ``value`` with everything but a short prefix and suffix hidden."""

    if not value:
        return "<unset>"
    if len(value) <= keep * 2:
        return "*" * len(value)
    return f"{value[:keep]}…{value[-keep:]}"
