"""Run a natural-language command against the active page."""

from __future__ import annotations

import enum
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..audit.log import AgentLog
from ..browser.base import BrowserActionError, PageHandle
from ..browser.snapshot import PageSnapshotter, SnapshotError
from ..config import AgentSettings, LLMConfig
from ..llm.base import PlanProvider, ProviderError
from ..models import LogKind, PageSnapshot, ProviderResponse
from .cancellation import CancellationToken
from .errors import (
    AgentDisabledError,
    AgentError,
    EmptyInstructionError,
    MissingCredentialsError,
    PageUnavailableError,
    RunCancelled,
)
from .executor import ActionExecutor, ExecutionResult, ExecutorState
from .parser import ActionPlanParser, PlanParseError
from .readiness import ReadinessWaiter

LOGGER = logging.getLogger(__name__)

PageProvider = Callable[[], Optional[PageHandle]]


class RunStatus(str, enum.Enum):
    """Final status of one command."""

    COMPLETED = "completed"
    BLOCKED = "blocked"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


@dataclass
class RunOutcome:
    """What a command did, as reported to the caller."""

    status: RunStatus
    summaries: list[str] = field(default_factory=list)
    error: Optional[str] = None
    request_id: Optional[str] = None
    provider: Optional[str] = None
    blocked_term: Optional[str] = None
    question: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is RunStatus.COMPLETED


@dataclass
class _ProviderSlot:
    provider: PlanProvider
    config: LLMConfig


class AgentRunSession:
    """Owns at most one in-flight run against the page.

    The page is supplied by ``page_provider``; the session never looks it up
    on its own. Starting a run cancels the previous one, which stops at its
    next check point.
    """

    def __init__(
        self,
        settings: AgentSettings,
        page_provider: PageProvider,
        provider: PlanProvider,
        *,
        model_config: Optional[LLMConfig] = None,
        fallback_provider: Optional[PlanProvider] = None,
        fallback_model_config: Optional[LLMConfig] = None,
        snapshotter: Optional[PageSnapshotter] = None,
        parser: Optional[ActionPlanParser] = None,
        readiness: Optional[ReadinessWaiter] = None,
        log: Optional[AgentLog] = None,
    ) -> None:
        self._settings = settings
        self._page_provider = page_provider
        self._primary = _ProviderSlot(provider, model_config or LLMConfig())
        self._fallback = (
            _ProviderSlot(fallback_provider, fallback_model_config or LLMConfig())
            if fallback_provider is not None
            else None
        )
        self._snapshotter = snapshotter or PageSnapshotter(settings.snapshot_selector)
        self._parser = parser or ActionPlanParser()
        self._readiness = readiness or ReadinessWaiter(settings.poll_interval)
        self.log = log or AgentLog()

        self._lock = threading.RLock()
        self._token: Optional[CancellationToken] = None
        self._thread: Optional[threading.Thread] = None

        self.enabled = settings.enabled
        self.allow_sensitive_clicks = settings.allow_sensitive_clicks
        self.is_running = False
        self.last_model_output: Optional[str] = None
        self.last_action_summary: Optional[str] = None
        self.last_clickables_count = 0
        self.last_error: Optional[str] = None
        self.last_blocked: Optional[str] = None
        self.last_outcome: Optional[RunOutcome] = None

    # Public API --------------------------------------------------------------

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled
        self.log.append(LogKind.INFO, f"AI click control {'enabled' if enabled else 'disabled'}")

    def run_command(self, instruction: str) -> RunOutcome:
        """Run ``instruction`` in the calling thread and return the outcome."""

        token = self._supersede_previous_run()
        return self._execute_command(instruction, token)

    def start(self, instruction: str) -> threading.Thread:
        """Run ``instruction`` on a worker thread, cancelling any prior run first.

        The page is driven from the worker thread, so the page handle must be
        usable from threads other than the one that created it. Sync
        Playwright pages are not; drive those with :meth:`run_command` on the
        thread that owns the browser.
        """

        token = self._supersede_previous_run()
        thread = threading.Thread(
            target=self._execute_command,
            args=(instruction, token),
            name="page-agent-run",
            daemon=True,
        )
        with self._lock:
            self._thread = thread
        thread.start()
        return thread

    def stop(self) -> None:
        with self._lock:
            token = self._token
        if token is not None:
            token.cancel()
        self.log.append(LogKind.INFO, "AI click control stopped")

    def wait(self, timeout: Optional[float] = None) -> Optional[RunOutcome]:
        with self._lock:
            thread = self._thread
        if thread is not None:
            thread.join(timeout)
        return self.last_outcome

    # Internal helpers --------------------------------------------------------

    def _supersede_previous_run(self) -> CancellationToken:
        """Cancel the active run, wait for its current step, return a fresh token."""

        token = CancellationToken()
        with self._lock:
            previous_token = self._token
            previous_thread = self._thread
            self._token = token
        if previous_token is not None:
            previous_token.cancel()
        if (
            previous_thread is not None
            and previous_thread.is_alive()
            and previous_thread is not threading.current_thread()
        ):
            previous_thread.join()
        return token

    def _execute_command(self, instruction: str, token: CancellationToken) -> RunOutcome:
        try:
            outcome = self._run(instruction, token)
        except Exception as exc:
            LOGGER.exception("Agent run crashed")
            outcome = self._fail(exc, None, None)
        self.last_outcome = outcome
        return outcome

    def _run(self, instruction: str, token: CancellationToken) -> RunOutcome:
        self.last_error = None
        self.last_blocked = None
        self.last_action_summary = None

        if not self.enabled:
            return self._reject(AgentDisabledError(), LogKind.WARNING)
        instruction = instruction.strip()
        if not instruction:
            return self._reject(EmptyInstructionError(), LogKind.WARNING)
        page = self._page_provider()
        if page is None:
            return self._reject(PageUnavailableError(), LogKind.WARNING)
        primary = self._primary.provider
        if primary.requires_credentials and not primary.has_credentials():
            return self._reject(MissingCredentialsError(primary.name), LogKind.ERROR)

        self.is_running = True
        request_id: Optional[str] = None
        provider_name: Optional[str] = None
        try:
            self._readiness.wait(page, self._settings.readiness_timeout, token)
            snapshot = self._snapshotter.extract(page)
            self.last_clickables_count = len(snapshot.clickables)
            self.log.append(
                LogKind.INFO,
                f"Extracted {len(snapshot.clickables)} clickables from {snapshot.url}",
                url=snapshot.url,
                clickables=len(snapshot.clickables),
            )

            response, provider_name = self._request_plan(instruction, snapshot, token)
            request_id = response.metadata.request_id
            token.raise_if_cancelled()
            self.last_model_output = response.raw_text
            self.log.append(LogKind.MODEL, response.raw_text, request_id=request_id)

            plan = self._parser.parse(response.raw_text, snapshot)
            self.log.append(
                LogKind.INFO,
                f"Parsed plan with {len(plan.actions)} action(s)",
                request_id=request_id,
                notes=plan.notes,
                reasoning=plan.reasoning,
            )

            executor = ActionExecutor(
                page,
                snapshotter=self._snapshotter,
                readiness=self._readiness,
                log=self.log,
                settings=self._settings,
            )
            result = executor.run(
                plan,
                snapshot,
                token=token,
                allow_sensitive=self.allow_sensitive_clicks,
            )
            return self._outcome_from(result, request_id, provider_name)
        except RunCancelled:
            return self._cancelled(request_id, provider_name)
        except (
            AgentError,
            PlanParseError,
            ProviderError,
            SnapshotError,
            BrowserActionError,
        ) as exc:
            return self._fail(exc, request_id, provider_name)
        finally:
            self.is_running = False

    def _request_plan(
        self,
        instruction: str,
        snapshot: PageSnapshot,
        token: CancellationToken,
    ) -> tuple[ProviderResponse, str]:
        try:
            return self._call_provider(self._primary, instruction, snapshot), self._primary.provider.name
        except ProviderError as exc:
            if self._fallback is None:
                raise
            fallback = self._fallback.provider
            self.log.append(
                LogKind.WARNING,
                f"{self._primary.provider.name} failed ({exc}); falling back to {fallback.name}",
                provider=self._primary.provider.name,
                status_code=exc.status_code,
            )
        token.raise_if_cancelled()
        if fallback.requires_credentials and not fallback.has_credentials():
            raise MissingCredentialsError(fallback.name)
        return self._call_provider(self._fallback, instruction, snapshot), fallback.name

    def _call_provider(
        self,
        slot: _ProviderSlot,
        instruction: str,
        snapshot: PageSnapshot,
    ) -> ProviderResponse:
        request_id = uuid.uuid4().hex
        provider = slot.provider
        self.log.append(
            LogKind.INFO,
            f"Requesting plan from {provider.name}",
            provider=provider.name,
            request_id=request_id,
            model=slot.config.model,
            key=provider.credential_hint(),
        )
        try:
            response = provider.generate_plan(
                instruction,
                snapshot,
                self.allow_sensitive_clicks,
                slot.config,
                request_id=request_id,
            )
        except ProviderError as exc:
            self.log.append(
                LogKind.ERROR,
                f"{provider.name} request {request_id} failed: {exc}",
                provider=provider.name,
                request_id=request_id,
                status_code=exc.status_code,
            )
            raise
        metadata = response.metadata
        self.log.append(
            LogKind.INFO,
            (
                f"{provider.name} responded status={metadata.status_code} "
                f"latency={metadata.latency_ms}ms bytes={metadata.byte_count}"
            ),
            provider=provider.name,
            **metadata.model_dump(),
        )
        return response

    def _outcome_from(
        self,
        result: ExecutionResult,
        request_id: Optional[str],
        provider_name: Optional[str],
    ) -> RunOutcome:
        self.last_clickables_count = result.clickables_count
        self.last_action_summary = result.last_summary
        if result.state is ExecutorState.CANCELLED:
            return self._cancelled(request_id, provider_name, result.summaries)
        if result.state is ExecutorState.FAILED:
            return self._fail(result.error, request_id, provider_name, result.summaries)
        if result.state is ExecutorState.BLOCKED:
            message = str(result.error)
            self.last_blocked = message
            return RunOutcome(
                status=RunStatus.BLOCKED,
                summaries=result.summaries,
                error=message,
                request_id=request_id,
                provider=provider_name,
                blocked_term=result.blocked_term,
            )
        if result.question:
            self.log.append(LogKind.INFO, f"Waiting for user: {result.question}")
        return RunOutcome(
            status=RunStatus.COMPLETED,
            summaries=result.summaries,
            request_id=request_id,
            provider=provider_name,
            question=result.question,
        )

    def _reject(self, error: AgentError, kind: LogKind) -> RunOutcome:
        message = str(error)
        if kind is LogKind.ERROR:
            self.last_error = message
        self.log.append(kind, message)
        return RunOutcome(status=RunStatus.REJECTED, error=message)

    def _fail(
        self,
        error: Optional[Exception],
        request_id: Optional[str],
        provider_name: Optional[str],
        summaries: Optional[list[str]] = None,
    ) -> RunOutcome:
        message = str(error) if error is not None else "Run failed"
        self.last_error = message
        self.log.append(LogKind.ERROR, message, request_id=request_id)
        return RunOutcome(
            status=RunStatus.FAILED,
            summaries=list(summaries or []),
            error=message,
            request_id=request_id,
            provider=provider_name,
        )

    def _cancelled(
        self,
        request_id: Optional[str],
        provider_name: Optional[str],
        summaries: Optional[list[str]] = None,
    ) -> RunOutcome:
        self.log.append(LogKind.WARNING, "Cancelled", request_id=request_id)
        return RunOutcome(
            status=RunStatus.CANCELLED,
            summaries=list(summaries or []),
            request_id=request_id,
            provider=provider_name,
        )
