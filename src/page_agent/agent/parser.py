"""Turn raw model output into a validated :class:`ActionPlan`."""

from __future__ import annotations

import enum
import json
import math
import re
from typing import Any, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ValidationError

from ..models import (
    ActionPlan,
    AgentAction,
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

SCROLL_AMOUNT_RANGE = (50, 2000)
WAIT_MS_RANGE = (50, 15000)
DEFAULT_WAIT_MS = 1000
ALLOWED_URL_SCHEMES = frozenset({"http", "https"})

_FENCE_RE = re.compile(r"```(.*?)```", re.DOTALL)
_ACTION_ALIASES = {
    "click": "click",
    "type": "type",
    "scroll": "scroll",
    "wait": "wait",
    "navigate": "navigate",
    "ask_user": "ask_user",
    "askuser": "ask_user",
    "done": "done",
}


class ParseErrorCode(str, enum.Enum):
    EMPTY_RESPONSE = "empty_response"
    INVALID_JSON = "invalid_json"
    INVALID_ACTION_TYPE = "invalid_action_type"
    UNKNOWN_ACTION_ID = "unknown_action_id"
    MISSING_FIELD = "missing_field"
    INVALID_SCROLL_DIRECTION = "invalid_scroll_direction"
    VALUE_OUT_OF_RANGE = "value_out_of_range"
    INVALID_VALUE = "invalid_value"
    INVALID_URL = "invalid_url"


class PlanParseError(ValueError):
    """Raised when model output cannot be turned into a trusted plan."""

    def __init__(
        self,
        code: ParseErrorCode,
        message: str,
        *,
        index: Optional[int] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.index = index
        self.field = field
        if index is not None:
            message = f"Action {index}: {message}"
        super().__init__(message)


class _RawPlan(BaseModel):
    actions: list[dict[str, Any]] = []
    notes: Optional[str] = None
    reasoning: Optional[str] = None
    error: Optional[str] = None


def strip_code_fence(text: str) -> str:
    """Return the contents of the first fenced block, or ``text`` unchanged."""

    match = _FENCE_RE.search(text)
    if not match:
        return text
    body = match.group(1)
    first_line, newline, rest = body.partition("\n")
    if newline and first_line.strip() and not first_line.strip().startswith(("{", "[")):
        body = rest
    return body.strip()


def find_json_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` substring of ``text``.

    Braces inside JSON string literals (including escaped quotes) do not count
    towards the nesting depth.
    """

    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for position in range(start, len(text)):
        char = text[position]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : position + 1]
    return None


def extract_json_object(text: str) -> dict[str, Any]:
    """Extract the first JSON object found in *text* and return it as a dict."""

    trimmed = text.strip()
    snippet = find_json_object(trimmed)
    if snippet != trimmed:
        # Not a bare object: prefer the fenced block, then anything in the prose.
        snippet = find_json_object(strip_code_fence(trimmed)) or snippet
    if snippet is None:
        raise PlanParseError(ParseErrorCode.INVALID_JSON, "No JSON object found in model response")
    try:
        data = json.loads(snippet)
    except json.JSONDecodeError as exc:
        raise PlanParseError(ParseErrorCode.INVALID_JSON, f"Model returned invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise PlanParseError(ParseErrorCode.INVALID_JSON, "Model response is not a JSON object")
    return data


class ActionPlanParser:
    """Validate model output against the snapshot it was produced for."""

    def parse(self, raw_text: str, snapshot: PageSnapshot) -> ActionPlan:
        if not raw_text or not raw_text.strip():
            raise PlanParseError(ParseErrorCode.EMPTY_RESPONSE, "Model returned an empty response.")
        data = extract_json_object(raw_text)
        try:
            raw = _RawPlan.model_validate(data)
        except ValidationError as exc:
            raise PlanParseError(
                ParseErrorCode.INVALID_JSON,
                f"Model response does not match the plan schema: {exc.errors()[0]['msg']}",
            ) from exc

        if raw.error and raw.error.strip():
            return ActionPlan(actions=(), notes=raw.notes, reasoning=raw.reasoning, error=raw.error)

        known_ids = snapshot.ids()
        actions = tuple(
            self._parse_action(index, item, known_ids)
            for index, item in enumerate(raw.actions)
        )
        return ActionPlan(
            actions=actions,
            notes=raw.notes,
            reasoning=raw.reasoning,
            error=raw.error,
        )

    def _parse_action(self, index: int, item: dict[str, Any], known_ids: set[str]) -> AgentAction:
        kind = item.get("type")
        normalized = _ACTION_ALIASES.get(kind.strip().lower()) if isinstance(kind, str) else None
        if normalized is None:
            raise PlanParseError(
                ParseErrorCode.INVALID_ACTION_TYPE,
                f"Model returned an unsupported action type: {kind!r}",
                index=index,
                field="type",
            )

        if normalized == "click":
            element_id = _required_text(index, item, "id")
            _check_known_id(index, element_id, known_ids)
            return ClickAction(id=element_id)

        if normalized == "type":
            text = _required_text(index, item, "text", strip=False)
            element_id = _optional_text(index, item, "id")
            selector = _optional_text(index, item, "selector")
            if element_id is None and selector is None:
                raise PlanParseError(
                    ParseErrorCode.MISSING_FIELD,
                    "type action requires an id or a selector",
                    index=index,
                    field="id",
                )
            if element_id is not None:
                _check_known_id(index, element_id, known_ids)
            return TypeAction(id=element_id, selector=selector, text=text)

        if normalized == "scroll":
            direction = item.get("direction")
            if direction is None:
                raise PlanParseError(
                    ParseErrorCode.MISSING_FIELD,
                    "scroll action requires a direction",
                    index=index,
                    field="direction",
                )
            try:
                parsed_direction = ScrollDirection(str(direction).strip().lower())
            except ValueError:
                raise PlanParseError(
                    ParseErrorCode.INVALID_SCROLL_DIRECTION,
                    f"scroll direction must be 'up' or 'down', got {direction!r}",
                    index=index,
                    field="direction",
                ) from None
            if item.get("amount") is None:
                raise PlanParseError(
                    ParseErrorCode.MISSING_FIELD,
                    "scroll action requires an amount",
                    index=index,
                    field="amount",
                )
            amount = _integer(index, item, "amount")
            low, high = SCROLL_AMOUNT_RANGE
            if not low <= amount <= high:
                raise PlanParseError(
                    ParseErrorCode.VALUE_OUT_OF_RANGE,
                    f"scroll amount must be between {low} and {high}, got {amount}",
                    index=index,
                    field="amount",
                )
            return ScrollAction(direction=parsed_direction, amount=amount)

        if normalized == "wait":
            raw_ms = item.get("ms")
            low, high = WAIT_MS_RANGE
            if raw_ms is None or (isinstance(raw_ms, float) and math.isnan(raw_ms)):
                ms = DEFAULT_WAIT_MS
            elif isinstance(raw_ms, float) and math.isinf(raw_ms):
                ms = high if raw_ms > 0 else low
            else:
                ms = _integer(index, item, "ms")
            return WaitAction(ms=min(max(ms, low), high))

        if normalized == "navigate":
            url = _required_text(index, item, "url")
            if not is_allowed_url(url):
                raise PlanParseError(
                    ParseErrorCode.INVALID_URL,
                    f"navigate url must be an absolute http(s) URL, got {url!r}",
                    index=index,
                    field="url",
                )
            return NavigateAction(url=url)

        if normalized == "ask_user":
            return AskUserAction(question=_required_text(index, item, "question"))

        summary = item.get("summary")
        if summary is not None and not isinstance(summary, str):
            raise PlanParseError(
                ParseErrorCode.INVALID_VALUE,
                "done summary must be a string",
                index=index,
                field="summary",
            )
        return DoneAction(summary=(summary or "").strip())


def parse_action_plan(raw_text: str, snapshot: PageSnapshot) -> ActionPlan:
    """Parse raw model output into an :class:`ActionPlan`."""

    return ActionPlanParser().parse(raw_text, snapshot)


def is_allowed_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme.lower() in ALLOWED_URL_SCHEMES and bool(parsed.netloc)


def _required_text(index: int, item: dict[str, Any], field: str, *, strip: bool = True) -> str:
    value = item.get(field)
    if value is None:
        raise PlanParseError(
            ParseErrorCode.MISSING_FIELD,
            f"{item.get('type')} action requires {field}",
            index=index,
            field=field,
        )
    if not isinstance(value, str):
        raise PlanParseError(
            ParseErrorCode.INVALID_VALUE,
            f"{field} must be a string",
            index=index,
            field=field,
        )
    if not value.strip():
        raise PlanParseError(
            ParseErrorCode.MISSING_FIELD,
            f"{item.get('type')} action requires a non-empty {field}",
            index=index,
            field=field,
        )
    return value.strip() if strip else value


def _optional_text(index: int, item: dict[str, Any], field: str) -> Optional[str]:
    value = item.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise PlanParseError(
            ParseErrorCode.INVALID_VALUE,
            f"{field} must be a string",
            index=index,
            field=field,
        )
    return value.strip() or None


def _integer(index: int, item: dict[str, Any], field: str) -> int:
    value = item.get(field)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise PlanParseError(
            ParseErrorCode.INVALID_VALUE,
            f"{field} must be an integer, got {value!r}",
            index=index,
            field=field,
        )
    if isinstance(value, float):
        if not value.is_integer():
            raise PlanParseError(
                ParseErrorCode.INVALID_VALUE,
                f"{field} must be an integer, got {value!r}",
                index=index,
                field=field,
            )
        return int(value)
    return value


def _check_known_id(index: int, element_id: str, known_ids: set[str]) -> None:
    if element_id not in known_ids:
        raise PlanParseError(
            ParseErrorCode.UNKNOWN_ACTION_ID,
            f"Model chose an id that is not on the page: {element_id}",
            index=index,
            field="id",
        )
