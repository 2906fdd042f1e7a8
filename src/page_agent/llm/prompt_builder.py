"""Prompt construction utilities."""

from __future__ import annotations

import json
from textwrap import dedent
from typing import Any

from ..models import Clickable, PageSnapshot

SYSTEM_PROMPT = dedent(
    """
    You control an in-app browser and must return strict JSON only (no markdown, no prose).
    Use only the provided clickMap ids; prefer id-based actions.
    Output one of:
    {"actions":[...]} or {"error":"..."}.
    You may add "notes" and "reasoning" strings next to "actions".
    Allowed actions and their fields:
    {"type":"click","id":"e1"}
    {"type":"type","id":"e2","text":"hello"} (use "selector" only when no id fits)
    {"type":"scroll","direction":"down","amount":600} (amount is an integer 50..2000)
    {"type":"wait","ms":1000} (ms is an integer 50..15000; never use seconds or strings)
    {"type":"navigate","url":"https://example.com"} (http or https only)
    {"type":"ask_user","question":"..."}
    {"type":"done","summary":"..."}
    Return at most 3 actions; anything after ask_user or done is ignored.
    Ask for clarification with {"actions":[{"type":"ask_user","question":"..."}]} when uncertain.
    Never click pay/checkout/confirm purchase unless allowSensitiveClicks is true.
    """
).strip()


class PromptBuilder:
    """Build chat messages for a plan request."""

    def __init__(self, system_prompt: str = SYSTEM_PROMPT) -> None:
        self._system_prompt = system_prompt

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    def user_prompt(self, instruction: str, snapshot: PageSnapshot, allow_sensitive: bool) -> str:
        return self._render(instruction, snapshot, allow_sensitive)

    def messages(
        self,
        instruction: str,
        snapshot: PageSnapshot,
        allow_sensitive: bool,
    ) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": self._system_prompt},
            {"role": "user", "content": self.user_prompt(instruction, snapshot, allow_sensitive)},
        ]

    def redacted_payload(
        self,
        model: str,
        instruction: str,
        snapshot: PageSnapshot,
        allow_sensitive: bool,
        *,
        max_items: int = 25,
        max_length: int = 200,
    ) -> str:
        """Pretty-printed request body with long values trimmed, for debug logs."""

        trimmed = PageSnapshot(
            url=truncate(snapshot.url, max_length),
            title=truncate(snapshot.title, max_length),
            clickables=tuple(
                _truncate_clickable(clickable, max_length)
                for clickable in snapshot.clickables[:max_items]
            ),
        )
        payload: dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": self._system_prompt},
                {
                    "role": "user",
                    "content": self._render(
                        truncate(instruction, max_length),
                        trimmed,
                        allow_sensitive,
                    ),
                },
            ],
            "temperature": 0,
            "response_format": {"type": "json_object"},
        }
        return json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False)

    @staticmethod
    def _render(instruction: str, snapshot: PageSnapshot, allow_sensitive: bool) -> str:
        click_map = snapshot.model_dump_json(exclude_none=True)
        return "\n".join(
            [
                f"Instruction: {instruction}",
                f"Page: {snapshot.url} (title: {snapshot.title})",
                f"allowSensitiveClicks: {'true' if allow_sensitive else 'false'}",
                f"Click map JSON: {click_map}",
            ]
        )


def truncate(value: str, max_length: int = 200) -> str:
    if len(value) <= max_length:
        return value
    return value[:max_length] + "…"


def _truncate_clickable(clickable: Clickable, max_length: int) -> Clickable:
    return clickable.model_copy(
        update={
            "label": truncate(clickable.label, max_length),
            "href": truncate(clickable.href, max_length) if clickable.href else None,
        }
    )
