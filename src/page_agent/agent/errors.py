"""Errors raised while running an agent command."""

from __future__ import annotations

import enum
from typing import Optional


class AgentError(RuntimeError):
    """Base class for failures surfaced to the user verbatim."""


class AgentDisabledError(AgentError):
    def __init__(self) -> None:
        super().__init__("Enable AI click control to start")


class EmptyInstructionError(AgentError):
    def __init__(self) -> None:
        super().__init__("Enter a command for the AI")


class PageUnavailableError(AgentError):
    def __init__(self) -> None:
        super().__init__("No active page is available for click mapping.")


class MissingCredentialsError(AgentError):
    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Add an API key for {provider} to run AI click control.")


class ReadinessFailure(str, enum.Enum):
    """Which readiness condition was still failing at the deadline."""

    NOT_LAID_OUT = "not_laid_out"
    STILL_LOADING = "still_loading"
    PAGE_NOT_READY = "page_not_ready"


class PageReadinessError(AgentError):
    """The page did not become ready before the deadline."""

    def __init__(
        self,
        reason: ReadinessFailure,
        *,
        url: Optional[str] = None,
        size: tuple[float, float] = (0.0, 0.0),
    ) -> None:
        self.reason = reason
        self.url = url
        self.size = size
        location = url or "unknown URL"
        if reason is ReadinessFailure.NOT_LAID_OUT:
            message = (
                "Cannot extract click map: page bounds are zero "
                f"({int(size[0])}x{int(size[1])})."
            )
        elif reason is ReadinessFailure.STILL_LOADING:
            message = f"Cannot extract click map: the page is still loading ({location})."
        else:
            message = (
                f"Cannot extract click map: the page did not finish loading in time ({location})."
            )
        super().__init__(message)


class MissingClickableError(AgentError):
    """The plan referenced an element that is no longer on the page."""

    def __init__(self, element_id: str, url: Optional[str] = None) -> None:
        self.element_id = element_id
        self.url = url
        super().__init__(f"Model chose a missing clickable element ({element_id}).")


class ElementNotFoundError(AgentError):
    """The element disappeared between snapshotting and acting on it."""

    def __init__(self, target: str) -> None:
        self.target = target
        super().__init__(f"Element {target} was not found on the page.")


class DisallowedNavigationError(AgentError):
    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"Navigation to {url!r} is not allowed; only http and https URLs are.")


class ModelReportedError(AgentError):
    """The model declined the instruction by returning an ``error`` field."""

    def __init__(self, message: str) -> None:
        self.model_message = message
        super().__init__(f"Model reported an error: {message}")


class SensitiveActionBlocked(AgentError):
    """A click was refused because its label matched a sensitive term."""

    def __init__(self, label: str, term: str) -> None:
        self.label = label
        self.term = term
        super().__init__(
            f'Blocked sensitive click for "{label}". Enable sensitive clicks to continue.'
        )


class RunCancelled(AgentError):
    """The run was cancelled cooperatively."""

    def __init__(self) -> None:
        super().__init__("Cancelled")
