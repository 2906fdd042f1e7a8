import pytest

from page_agent.agent.parser import (
    ActionPlanParser,
    ParseErrorCode,
    PlanParseError,
    extract_json_object,
    find_json_object,
    parse_action_plan,
    strip_code_fence,
)
from page_agent.models import (
    AskUserAction,
    ClickAction,
    DoneAction,
    NavigateAction,
    PageSnapshot,
    ScrollAction,
    ScrollDirection,
    TypeAction,
    WaitAction,
)


def _parse(text: str, snapshot: PageSnapshot):
    return ActionPlanParser().parse(text, snapshot)


def _error(text: str, snapshot: PageSnapshot) -> PlanParseError:
    with pytest.raises(PlanParseError) as exc_info:
        _parse(text, snapshot)
    return exc_info.value


def test_extract_json_object_from_code_fence():
    text = """```json\n{"actions": [], "notes": "nothing"}\n```"""
    result = extract_json_object(text)
    assert result["actions"] == []
    assert result["notes"] == "nothing"


def test_strip_code_fence_prefers_fenced_content():
    text = 'Here you go {"ignored": true}\n```\n{"actions": []}\n```\nthanks'
    assert strip_code_fence(text) == '{"actions": []}'


def test_bare_object_with_backticks_in_a_string_is_used_whole(shop_snapshot):
    response = '{"actions":[{"type":"done","summary":"Ran ```npm test``` ok"}]}'

    plan = _parse(response, shop_snapshot)

    assert plan.actions == (DoneAction(summary="Ran ```npm test``` ok"),)


def test_plan_after_an_unrelated_code_fence_is_found(shop_snapshot):
    response = 'I would run:\n```bash\nls\n```\nPlan: {"actions":[{"type":"done","summary":"x"}]}'

    plan = _parse(response, shop_snapshot)

    assert plan.actions == (DoneAction(summary="x"),)


def test_find_json_object_skips_braces_in_strings():
    text = 'prefix {"a": "}{", "b": {"c": "\\"}"}} suffix }'
    assert find_json_object(text) == '{"a": "}{", "b": {"c": "\\"}"}}'


def test_parse_allows_braces_inside_string_values(shop_snapshot):
    response = (
        "Plan:\n"
        '{"actions":[{"type":"done","summary":"Completed {draft} update"}],"notes":"ok"}\n'
        "Extra text"
    )

    plan = _parse(response, shop_snapshot)

    assert plan.actions == (DoneAction(summary="Completed {draft} update"),)
    assert plan.notes == "ok"


def test_parse_allows_escaped_quotes_and_braces(shop_snapshot):
    response = (
        '{"actions":[{"type":"ask_user","question":"Use this literal: \\"{query}\\"?"}],'
        '"notes":"prompt"} trailing'
    )

    plan = _parse(response, shop_snapshot)

    assert plan.actions == (AskUserAction(question='Use this literal: "{query}"?'),)
    assert plan.notes == "prompt"


def test_parse_full_plan_preserves_order_and_metadata(shop_snapshot):
    response = """```json
    {
      "reasoning": "search first",
      "notes": "three steps",
      "actions": [
        {"type": "type", "id": "e2", "text": "red shoes"},
        {"type": "click", "id": "e1"},
        {"type": "scroll", "direction": "DOWN", "amount": 600},
        {"type": "wait", "ms": 250},
        {"type": "navigate", "url": "https://shop.test/cart"},
        {"type": "askUser", "question": "Which size?"}
      ]
    }
    ```"""

    plan = parse_action_plan(response, shop_snapshot)

    assert plan.reasoning == "search first"
    assert plan.notes == "three steps"
    assert plan.actions == (
        TypeAction(id="e2", text="red shoes"),
        ClickAction(id="e1"),
        ScrollAction(direction=ScrollDirection.DOWN, amount=600),
        WaitAction(ms=250),
        NavigateAction(url="https://shop.test/cart"),
        AskUserAction(question="Which size?"),
    )


def test_empty_response_is_rejected(shop_snapshot):
    assert _error("   \n ", shop_snapshot).code is ParseErrorCode.EMPTY_RESPONSE


@pytest.mark.parametrize(
    "text",
    [
        "no json here",
        '{"actions": [',
        "{'actions': []}",
        '{"actions": "click"}',
        '{"actions": [1, 2]}',
    ],
)
def test_malformed_json_is_invalid(text, shop_snapshot):
    assert _error(text, shop_snapshot).code is ParseErrorCode.INVALID_JSON


def test_error_short_circuits_validation(shop_snapshot):
    response = '{"error": "I cannot do that", "actions": [{"type": "explode"}]}'

    plan = _parse(response, shop_snapshot)

    assert plan.actions == ()
    assert plan.error == "I cannot do that"
    assert plan.has_error


def test_blank_error_does_not_short_circuit(shop_snapshot):
    plan = _parse('{"error": "  ", "actions": [{"type": "click", "id": "e1"}]}', shop_snapshot)
    assert plan.actions == (ClickAction(id="e1"),)
    assert not plan.has_error


def test_unknown_action_type_fails_whole_plan(shop_snapshot):
    response = '{"actions": [{"type": "click", "id": "e1"}, {"type": "hover", "id": "e1"}]}'

    error = _error(response, shop_snapshot)

    assert error.code is ParseErrorCode.INVALID_ACTION_TYPE
    assert error.index == 1


def test_click_with_unknown_id_fails(shop_snapshot):
    error = _error('{"actions": [{"type": "click", "id": "e99"}]}', shop_snapshot)
    assert error.code is ParseErrorCode.UNKNOWN_ACTION_ID
    assert error.field == "id"


def test_click_without_id_fails(shop_snapshot):
    error = _error('{"actions": [{"type": "click", "id": "  "}]}', shop_snapshot)
    assert error.code is ParseErrorCode.MISSING_FIELD


def test_type_requires_text_and_target(shop_snapshot):
    assert (
        _error('{"actions": [{"type": "type", "id": "e2", "text": ""}]}', shop_snapshot).code
        is ParseErrorCode.MISSING_FIELD
    )
    assert (
        _error('{"actions": [{"type": "type", "text": "hi"}]}', shop_snapshot).code
        is ParseErrorCode.MISSING_FIELD
    )
    assert (
        _error('{"actions": [{"type": "type", "id": "e42", "text": "hi"}]}', shop_snapshot).code
        is ParseErrorCode.UNKNOWN_ACTION_ID
    )


def test_type_accepts_selector_without_id(shop_snapshot):
    plan = _parse(
        '{"actions": [{"type": "type", "selector": "#q", "text": "  spaced  "}]}',
        shop_snapshot,
    )
    assert plan.actions == (TypeAction(selector="#q", text="  spaced  "),)


@pytest.mark.parametrize("amount", [49, 2001, 0, -100])
def test_scroll_amount_out_of_range_fails(amount, shop_snapshot):
    response = f'{{"actions": [{{"type": "scroll", "direction": "down", "amount": {amount}}}]}}'
    assert _error(response, shop_snapshot).code is ParseErrorCode.VALUE_OUT_OF_RANGE


@pytest.mark.parametrize("amount", [50, 2000, 600.0])
def test_scroll_amount_bounds_are_inclusive(amount, shop_snapshot):
    response = f'{{"actions": [{{"type": "scroll", "direction": "up", "amount": {amount}}}]}}'
    plan = _parse(response, shop_snapshot)
    assert plan.actions[0].amount == int(amount)


def test_scroll_direction_is_validated(shop_snapshot):
    bad = '{"actions": [{"type": "scroll", "direction": "left", "amount": 100}]}'
    missing = '{"actions": [{"type": "scroll", "amount": 100}]}'
    no_amount = '{"actions": [{"type": "scroll", "direction": "up"}]}'
    assert _error(bad, shop_snapshot).code is ParseErrorCode.INVALID_SCROLL_DIRECTION
    assert _error(missing, shop_snapshot).code is ParseErrorCode.MISSING_FIELD
    assert _error(no_amount, shop_snapshot).code is ParseErrorCode.MISSING_FIELD


@pytest.mark.parametrize("amount", ['"600"', "true", "600.5"])
def test_scroll_amount_must_be_integer(amount, shop_snapshot):
    response = f'{{"actions": [{{"type": "scroll", "direction": "up", "amount": {amount}}}]}}'
    assert _error(response, shop_snapshot).code is ParseErrorCode.INVALID_VALUE


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1", 50),
        ("49", 50),
        ("50", 50),
        ("15000", 15000),
        ("99999", 15000),
        ("null", 1000),
        ("1e400", 15000),
        ("-1e400", 50),
        ("NaN", 1000),
    ],
)
def test_wait_ms_is_clamped(raw, expected, shop_snapshot):
    plan = _parse(f'{{"actions": [{{"type": "wait", "ms": {raw}}}]}}', shop_snapshot)
    assert plan.actions == (WaitAction(ms=expected),)


def test_wait_without_ms_defaults(shop_snapshot):
    plan = _parse('{"actions": [{"type": "wait"}]}', shop_snapshot)
    assert plan.actions == (WaitAction(ms=1000),)


@pytest.mark.parametrize(
    "url",
    ["file:///etc/passwd", "javascript:alert(1)", "ftp://example.com", "/relative", "https://"],
)
def test_navigate_rejects_non_http_urls(url, shop_snapshot):
    response = f'{{"actions": [{{"type": "navigate", "url": "{url}"}}]}}'
    assert _error(response, shop_snapshot).code is ParseErrorCode.INVALID_URL


def test_ask_user_requires_question(shop_snapshot):
    error = _error('{"actions": [{"type": "ask_user"}]}', shop_snapshot)
    assert error.code is ParseErrorCode.MISSING_FIELD
    assert error.field == "question"


def test_done_summary_is_optional(shop_snapshot):
    plan = _parse('{"actions": [{"type": "done"}]}', shop_snapshot)
    assert plan.actions == (DoneAction(summary=""),)


def test_validation_uses_given_snapshot(shop_snapshot):
    stale = PageSnapshot(url="https://shop.test/", title="Shop", clickables=())
    response = '{"actions": [{"type": "click", "id": "e1"}]}'

    assert _parse(response, shop_snapshot).actions == (ClickAction(id="e1"),)
    assert _error(response, stale).code is ParseErrorCode.UNKNOWN_ACTION_ID
