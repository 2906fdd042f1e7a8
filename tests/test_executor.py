import threading
import time

import pytest

from page_agent.agent.cancellation import CancellationToken
from page_agent.agent.errors import (
    DisallowedNavigationError,
    ElementNotFoundError,
    MissingClickableError,
    ModelReportedError,
    PageReadinessError,
    SensitiveActionBlocked,
)
from page_agent.agent.executor import ActionExecutor, ExecutorState, find_sensitive_term
from page_agent.agent.readiness import ReadinessWaiter
from page_agent.audit.log import AgentLog
from page_agent.config import AgentSettings
from page_agent.models import (
    ActionPlan,
    AskUserAction,
    ClickAction,
    DoneAction,
    LogKind,
    NavigateAction,
    ScrollAction,
    ScrollDirection,
    TypeAction,
    WaitAction,
)

from conftest import clickable


@pytest.fixture
def log():
    return AgentLog()


def _executor(page, log, **settings):
    return ActionExecutor(
        page,
        readiness=ReadinessWaiter(poll_interval=0.001),
        log=log,
        settings=AgentSettings(action_readiness_timeout=0.05, **settings),
    )


def test_runs_actions_in_order_and_summarizes(fake_page, shop_snapshot, log):
    plan = ActionPlan(
        actions=(
            TypeAction(id="e2", text="red shoes"),
            ClickAction(id="e1"),
            ScrollAction(direction=ScrollDirection.DOWN, amount=600),
        )
    )

    result = _executor(fake_page, log).run(plan, shop_snapshot)

    assert result.state is ExecutorState.COMPLETED
    assert result.executed == 3
    assert fake_page.typed == [("e2", None, "red shoes")]
    assert fake_page.clicks == ["e1"]
    assert fake_page.scrolls == [600]
    assert result.summaries == [
        'typed into e2 ("Search products"): "red shoes"',
        'clicked e1: "Continue"',
        "scrolled down 600px",
    ]
    assert log.messages(LogKind.RESULT) == result.summaries
    assert len(log.messages(LogKind.ACTION)) == 3


def test_done_stops_the_run_early(fake_page, shop_snapshot, log):
    plan = ActionPlan(actions=(ClickAction(id="e1"), DoneAction(summary="x"), ClickAction(id="e4")))

    result = _executor(fake_page, log).run(plan, shop_snapshot)

    assert result.state is ExecutorState.COMPLETED
    assert result.executed == 2
    assert result.summary == "x"
    assert result.last_summary == "done: x"
    assert fake_page.clicks == ["e1"]


def test_ask_user_stops_and_records_question(fake_page, shop_snapshot, log):
    plan = ActionPlan(actions=(AskUserAction(question="Which size?"), ClickAction(id="e1")))

    result = _executor(fake_page, log).run(plan, shop_snapshot)

    assert result.state is ExecutorState.COMPLETED
    assert result.question == "Which size?"
    assert fake_page.clicks == []


def test_plan_is_capped_with_a_warning(fake_page, shop_snapshot, log):
    plan = ActionPlan(actions=tuple(ClickAction(id="e1") for _ in range(5)))

    result = _executor(fake_page, log).run(plan, shop_snapshot)

    assert result.executed == 3
    assert fake_page.clicks == ["e1", "e1", "e1"]
    assert "Plan has 5 actions; only the first 3 will run" in log.messages(LogKind.WARNING)


def test_cap_follows_settings(fake_page, shop_snapshot, log):
    plan = ActionPlan(actions=(ClickAction(id="e1"), ClickAction(id="e4")))

    result = _executor(fake_page, log, max_actions_per_run=1).run(plan, shop_snapshot)

    assert fake_page.clicks == ["e1"]
    assert result.executed == 1


def test_empty_plan_completes_with_warning(fake_page, shop_snapshot, log):
    result = _executor(fake_page, log).run(ActionPlan(), shop_snapshot)

    assert result.state is ExecutorState.COMPLETED
    assert result.executed == 0
    assert log.messages(LogKind.WARNING) == ["No actions returned"]


def test_sensitive_click_is_blocked_before_touching_the_page(fake_page, shop_snapshot, log):
    plan = ActionPlan(actions=(ClickAction(id="e1"), ClickAction(id="e3"), ClickAction(id="e4")))

    result = _executor(fake_page, log).run(plan, shop_snapshot)

    assert result.state is ExecutorState.BLOCKED
    assert result.blocked_term == "checkout"
    assert isinstance(result.error, SensitiveActionBlocked)
    assert fake_page.clicks == ["e1"]
    assert any("Blocked sensitive click on e3" in m for m in log.messages(LogKind.WARNING))


def test_sensitive_click_allowed_when_flag_is_set(fake_page, shop_snapshot, log):
    plan = ActionPlan(actions=(ClickAction(id="e3"),))

    result = _executor(fake_page, log).run(plan, shop_snapshot, allow_sensitive=True)

    assert result.state is ExecutorState.COMPLETED
    assert fake_page.clicks == ["e3"]


def test_sensitive_terms_follow_settings(fake_page, shop_snapshot, log):
    plan = ActionPlan(actions=(ClickAction(id="e4"),))

    result = _executor(fake_page, log, sensitive_terms=["HELP"]).run(plan, shop_snapshot)

    assert result.state is ExecutorState.BLOCKED
    assert result.blocked_term == "HELP"


def test_find_sensitive_term_is_case_insensitive():
    assert find_sensitive_term("Pay Now", ["pay"]) == "pay"
    assert find_sensitive_term("Continue", ["pay", "checkout"]) is None


def test_cancellation_after_first_step_skips_the_rest(fake_page, shop_snapshot, log):
    token = CancellationToken()
    fake_page.on_click["e1"] = lambda page: token.cancel()
    plan = ActionPlan(actions=(ClickAction(id="e1"), ClickAction(id="e4"), ClickAction(id="e1")))

    result = _executor(fake_page, log).run(plan, shop_snapshot, token=token)

    assert result.state is ExecutorState.CANCELLED
    assert result.error is None
    assert fake_page.clicks == ["e1"]
    assert result.summaries == ['clicked e1: "Continue"']


def test_action_that_touched_the_page_counts_when_cancelled_while_settling(fake_page, shop_snapshot, log):
    token = CancellationToken()
    fake_page.on_click["e1"] = lambda page: token.cancel()

    result = _executor(fake_page, log).run(
        ActionPlan(actions=(ClickAction(id="e1"), ClickAction(id="e4"))), shop_snapshot, token=token
    )

    assert result.state is ExecutorState.CANCELLED
    assert result.executed == 1


def test_cancelled_before_start_performs_nothing(fake_page, shop_snapshot, log):
    token = CancellationToken()
    token.cancel()

    result = _executor(fake_page, log).run(
        ActionPlan(actions=(ClickAction(id="e1"),)), shop_snapshot, token=token
    )

    assert result.state is ExecutorState.CANCELLED
    assert fake_page.clicks == []


def test_cancellation_interrupts_wait_action(fake_page, shop_snapshot, log):
    token = CancellationToken()
    timer = threading.Timer(0.05, token.cancel)
    timer.start()
    started = time.monotonic()
    try:
        result = _executor(fake_page, log).run(
            ActionPlan(actions=(WaitAction(ms=15000),)), shop_snapshot, token=token
        )
    finally:
        timer.cancel()

    assert result.state is ExecutorState.CANCELLED
    assert result.summaries == []
    assert time.monotonic() - started < 5


def test_click_on_vanished_element_fails(fake_page, shop_snapshot, log):
    def remove_help(page):
        del page.elements["e4"]

    fake_page.on_click["e1"] = remove_help
    plan = ActionPlan(actions=(ClickAction(id="e1"), ClickAction(id="e4")))

    result = _executor(fake_page, log).run(plan, shop_snapshot)

    assert result.state is ExecutorState.FAILED
    assert isinstance(result.error, MissingClickableError)
    assert result.error.element_id == "e4"
    assert result.clickables_count == 3
    assert fake_page.clicks == ["e1"]


def test_click_that_misses_in_page_fails(fake_page, shop_snapshot, log):
    del fake_page.elements["e1"]

    result = _executor(fake_page, log).run(ActionPlan(actions=(ClickAction(id="e1"),)), shop_snapshot)

    assert result.state is ExecutorState.FAILED
    assert isinstance(result.error, ElementNotFoundError)


def test_disallowed_navigation_fails_before_navigating(fake_page, shop_snapshot, log):
    plan = ActionPlan(actions=(NavigateAction(url="javascript:alert(1)"),))

    result = _executor(fake_page, log).run(plan, shop_snapshot)

    assert result.state is ExecutorState.FAILED
    assert isinstance(result.error, DisallowedNavigationError)
    assert fake_page.navigations == []


def test_navigation_waits_and_resnapshots(fake_page, shop_snapshot, log):
    plan = ActionPlan(actions=(NavigateAction(url="https://shop.test/cart"),))

    result = _executor(fake_page, log).run(plan, shop_snapshot)

    assert result.state is ExecutorState.COMPLETED
    assert fake_page.navigations == ["https://shop.test/cart"]
    assert result.snapshot.url == "https://shop.test/cart"
    assert result.summaries == ["navigated to https://shop.test/cart"]


def test_readiness_timeout_after_action_fails(fake_page, shop_snapshot, log):
    def start_loading(page):
        page.loading = True

    fake_page.on_click["e1"] = start_loading

    result = _executor(fake_page, log).run(ActionPlan(actions=(ClickAction(id="e1"),)), shop_snapshot)

    assert result.state is ExecutorState.FAILED
    assert isinstance(result.error, PageReadinessError)
    assert result.executed == 1
    assert fake_page.clicks == ["e1"]


def test_model_error_fails_without_side_effects(fake_page, shop_snapshot, log):
    result = _executor(fake_page, log).run(ActionPlan(error="cannot comply"), shop_snapshot)

    assert result.state is ExecutorState.FAILED
    assert isinstance(result.error, ModelReportedError)
    assert fake_page.clicks == []


def test_clickables_count_refreshes_after_each_step(fake_page, shop_snapshot, log):
    def add_button(page):
        page.elements["e5"] = clickable("e5", "Added")

    fake_page.on_click["e1"] = add_button

    result = _executor(fake_page, log).run(ActionPlan(actions=(ClickAction(id="e1"),)), shop_snapshot)

    assert result.clickables_count == 5
    assert result.snapshot.find("e5") is not None
    assert "Page ready with 5 clickables" in log.messages(LogKind.INFO)


def test_scroll_summary_reports_edges(fake_page, shop_snapshot, log):
    plan = ActionPlan(
        actions=(
            ScrollAction(direction=ScrollDirection.DOWN, amount=2000),
            ScrollAction(direction=ScrollDirection.DOWN, amount=2000),
            ScrollAction(direction=ScrollDirection.UP, amount=2000),
        )
    )

    result = _executor(fake_page, log, max_actions_per_run=3).run(plan, shop_snapshot)

    assert result.summaries == [
        "scrolled down 2000px",
        "scrolled down 2000px (at bottom)",
        "scrolled up 2000px",
    ]


def test_wait_action_sleeps(fake_page, shop_snapshot, log):
    result = _executor(fake_page, log).run(ActionPlan(actions=(WaitAction(ms=50),)), shop_snapshot)

    assert result.summaries == ["waited 50ms"]
    assert fake_page.extractions == 0


def test_executor_is_single_use(fake_page, shop_snapshot, log):
    executor = _executor(fake_page, log)
    executor.run(ActionPlan(), shop_snapshot)

    assert executor.state is ExecutorState.COMPLETED
    with pytest.raises(RuntimeError):
        executor.run(ActionPlan(), shop_snapshot)
