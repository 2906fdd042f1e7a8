"""Sequential execution of a validated action plan against the live page."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from ..audit.log import AgentLog
from ..browser.base import BrowserActionError, PageHandle
from ..browser.snapshot import PageSnapshotter, SnapshotError
from ..config import AgentSettings
from ..models import (
    ActionPlan,
    AgentAction,
    AskUserAction,
    ClickAction,
    DoneAction,
    LogKind,
    NavigateAction,
    PageSnapshot,
    ScrollAction,
    TypeAction,
    WaitAction,
)
from .cancellation import CancellationToken
from .errors import (
    AgentError,
    DisallowedNavigationError,
    ElementNotFoundError,
    MissingClickableError,
    ModelReportedError,
    RunCancelled,
    SensitiveActionBlocked,
)
from .parser import is_allowed_url
from .readiness import ReadinessWaiter

LOGGER = logging.getLogger(__name__)


class ExecutorState(str, enum.Enum):
    """Lifecycle of a single plan execution."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    BLOCKED = "blocked"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset(
    {
        ExecutorState.COMPLETED,
        ExecutorState.BLOCKED,
        ExecutorState.FAILED,
        ExecutorState.CANCELLED,
    }
)


@dataclass
class ExecutionResult:
    """Outcome of running a plan."""

    state: ExecutorState
    summaries: list[str] = field(default_factory=list)
    executed: int = 0
    clickables_count: int = 0
    snapshot: Optional[PageSnapshot] = None
    error: Optional[Exception] = None
    blocked_term: Optional[str] = None
    question: Optional[str] = None
    summary: Optional[str] = None

    @property
    def last_summary(self) -> Optional[str]:
        return self.summaries[-1] if self.summaries else None


def find_sensitive_term(label: str, terms: Sequence[str]) -> Optional[str]:
    """Return the first term contained in ``label`` (case-insensitive)."""

    lowered = label.lower()
    for term in terms:
        if term.lower() in lowered:
            return term
    return None


class ActionExecutor:
    """Run the actions of one plan, one at a time, against the page.

    An executor is single use: it starts ``idle``, moves to ``running`` and ends
    in exactly one terminal state.
    """

    def __init__(
        self,
        page: PageHandle,
        *,
        snapshotter: Optional[PageSnapshotter] = None,
        readiness: Optional[ReadinessWaiter] = None,
        log: Optional[AgentLog] = None,
        settings: Optional[AgentSettings] = None,
    ) -> None:
        self._page = page
        self._settings = settings or AgentSettings()
        self._snapshotter = snapshotter or PageSnapshotter(self._settings.snapshot_selector)
        self._readiness = readiness or ReadinessWaiter(self._settings.poll_interval)
        self._log = log or AgentLog()
        self.state = ExecutorState.IDLE
        self._result = ExecutionResult(state=ExecutorState.IDLE)

    def run(
        self,
        plan: ActionPlan,
        snapshot: PageSnapshot,
        *,
        token: Optional[CancellationToken] = None,
        allow_sensitive: bool = False,
    ) -> ExecutionResult:
        if self.state is not ExecutorState.IDLE:
            raise RuntimeError("ActionExecutor instances run a single plan")
        token = token or CancellationToken()
        self.state = ExecutorState.RUNNING
        result = self._result
        result.snapshot = snapshot
        result.clickables_count = len(snapshot.clickables)

        try:
            if plan.has_error:
                raise ModelReportedError(plan.error or "")
            actions = self._capped(plan.actions)
            if not actions:
                self._log.append(LogKind.WARNING, "No actions returned")
            for index, action in enumerate(actions):
                token.raise_if_cancelled()
                self._log.append(
                    LogKind.ACTION,
                    f"Executing {action.type} ({index + 1}/{len(actions)})",
                    action=action.model_dump(mode="json"),
                )
                stop = self._execute(action, token, allow_sensitive)
                if stop:
                    break
        except RunCancelled:
            return self._finish(ExecutorState.CANCELLED)
        except SensitiveActionBlocked as exc:
            result.error = exc
            result.blocked_term = exc.term
            return self._finish(ExecutorState.BLOCKED)
        except (AgentError, BrowserActionError, SnapshotError) as exc:
            LOGGER.info("Plan execution failed: %s", exc)
            result.error = exc
            return self._finish(ExecutorState.FAILED)
        return self._finish(ExecutorState.COMPLETED)

    def _capped(self, actions: Sequence[AgentAction]) -> Sequence[AgentAction]:
        cap = self._settings.max_actions_per_run
        if len(actions) > cap:
            self._log.append(
                LogKind.WARNING,
                f"Plan has {len(actions)} actions; only the first {cap} will run",
            )
            return actions[:cap]
        return actions

    def _execute(self, action: AgentAction, token: CancellationToken, allow_sensitive: bool) -> bool:
        """Perform ``action``; True means the run stops after it.

        The action counts as executed as soon as it has touched the page, even
        if the wait for the page to settle afterwards fails or is cancelled.
        """

        settle_timeout: Optional[float] = self._settings.action_readiness_timeout
        stop = False
        if isinstance(action, ClickAction):
            self._click(action, allow_sensitive)
        elif isinstance(action, TypeAction):
            self._type(action)
        elif isinstance(action, ScrollAction):
            outcome = self._page.scroll_by(action.delta)
            position = " (at bottom)" if outcome.at_bottom else (" (at top)" if outcome.at_top else "")
            if not outcome.did_scroll:
                position += " (no movement)"
            self._summarize(f"scrolled {action.direction.value} {action.amount}px{position}")
        elif isinstance(action, WaitAction):
            token.sleep(action.ms / 1000)
            self._summarize(f"waited {action.ms}ms")
            settle_timeout = None
        elif isinstance(action, NavigateAction):
            if not is_allowed_url(action.url):
                raise DisallowedNavigationError(action.url)
            self._page.navigate(action.url)
            self._summarize(f"navigated to {action.url}")
            settle_timeout = self._settings.navigation_readiness_timeout
        elif isinstance(action, AskUserAction):
            self._result.question = action.question
            self._summarize(f"asked user: {action.question}")
            settle_timeout, stop = None, True
        elif isinstance(action, DoneAction):
            self._result.summary = action.summary
            self._summarize(f"done: {action.summary}" if action.summary else "done")
            settle_timeout, stop = None, True
        else:  # pragma: no cover - the union is closed
            raise AgentError(f"Unsupported action: {action!r}")

        self._result.executed += 1
        if settle_timeout is not None:
            self._settle(token, settle_timeout)
        return stop

    def _click(self, action: ClickAction, allow_sensitive: bool) -> None:
        current = self._result.snapshot
        clickable = current.find(action.id) if current else None
        if clickable is None:
            raise MissingClickableError(action.id, url=current.url if current else None)
        if not allow_sensitive:
            term = find_sensitive_term(clickable.label, self._settings.sensitive_terms)
            if term:
                self._log.append(
                    LogKind.WARNING,
                    f'Blocked sensitive click on {action.id} "{clickable.label}" (matched "{term}")',
                    id=action.id,
                    term=term,
                )
                raise SensitiveActionBlocked(clickable.label, term)
        if not self._page.click_marker(action.id):
            raise ElementNotFoundError(action.id)
        self._summarize(f'clicked {action.id}: "{clickable.label}"')

    def _type(self, action: TypeAction) -> None:
        current = self._result.snapshot
        target = action.id or action.selector or ""
        label = ""
        if action.id:
            clickable = current.find(action.id) if current else None
            if clickable is None:
                raise MissingClickableError(action.id, url=current.url if current else None)
            label = clickable.label
        if not self._page.type_text(action.text, marker_id=action.id, selector=action.selector):
            raise ElementNotFoundError(target)
        suffix = f' ("{label}")' if label else ""
        self._summarize(f'typed into {target}{suffix}: "{action.text}"')

    def _settle(self, token: CancellationToken, timeout: float) -> None:
        self._readiness.wait(self._page, timeout, token)
        snapshot = self._snapshotter.extract(self._page)
        self._result.snapshot = snapshot
        self._result.clickables_count = len(snapshot.clickables)
        self._log.append(
            LogKind.INFO,
            f"Page ready with {len(snapshot.clickables)} clickables",
            url=snapshot.url,
            clickables=len(snapshot.clickables),
        )

    def _summarize(self, summary: str) -> None:
        self._result.summaries.append(summary)
        self._log.append(LogKind.RESULT, summary)

    def _finish(self, state: ExecutorState) -> ExecutionResult:
        self.state = state
        self._result.state = state
        LOGGER.debug("Executor finished in state %s after %d actions", state.value, self._result.executed)
        return self._result
