"""Browser session and page abstractions."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import ValidationError

from ..models import ScrollResult

MARKER_ATTRIBUTE = "data-ai-id"

_CLICK_JS = """
(args) => {
  const el = document.querySelector('[' + args.attr + '="' + CSS.escape(args.id) + '"]');
  if (!el) return 'NOT_FOUND';
  el.click();
  return 'OK';
}
"""

_TYPE_JS = """
(args) => {
  let el = null;
  if (args.id) {
    el = document.querySelector('[' + args.attr + '="' + CSS.escape(args.id) + '"]');
  }
  if (!el && args.selector) {
    try { el = document.querySelector(args.selector); } catch (_) { el = null; }
  }
  if (!el) return 'NOT_FOUND';
  if (typeof el.focus === 'function') el.focus();
  if (el.isContentEditable) {
    el.textContent = args.text;
  } else {
    const proto = el instanceof HTMLTextAreaElement
      ? HTMLTextAreaElement.prototype
      : (el instanceof HTMLSelectElement ? HTMLSelectElement.prototype : HTMLInputElement.prototype);
    const descriptor = Object.getOwnPropertyDescriptor(proto, 'value');
    if (descriptor && descriptor.set) {
      descriptor.set.call(el, args.text);
    } else {
      el.value = args.text;
    }
  }
  el.dispatchEvent(new Event('input', { bubbles: true }));
  el.dispatchEvent(new Event('change', { bubbles: true }));
  return 'OK';
}
"""

_SCROLL_JS = """
(dy) => {
  function bounds() {
    const doc = document.documentElement || document.body;
    return {
      maxX: Math.max(0, (doc.scrollWidth || 0) - (window.innerWidth || 0)),
      maxY: Math.max(0, (doc.scrollHeight || 0) - (window.innerHeight || 0))
    };
  }
  function position() {
    return { x: window.scrollX || 0, y: window.scrollY || 0 };
  }
  const before = position();
  window.scrollBy(0, dy);
  const after = position();
  const b = bounds();
  return JSON.stringify({
    didScroll: before.x !== after.x || before.y !== after.y,
    position: after,
    bounds: b,
    atTop: after.y <= 0,
    atBottom: after.y >= b.maxY
  });
}
"""


class BrowserActionError(RuntimeError):
    """Raised when executing an operation against the page fails."""


class PageHandle(ABC):
    """Live document context the agent reads from and acts on."""

    @property
    @abstractmethod
    def url(self) -> str:
        """Current document URL."""

    @abstractmethod
    def title(self) -> str:
        """Current document title."""

    @abstractmethod
    def evaluate(self, script: str, arg: Any = None) -> Any:
        """Evaluate a JavaScript function in the page and return its result."""

    @abstractmethod
    def click_marker(self, marker_id: str) -> bool:
        """Click the element stamped with ``marker_id``; False if it is gone."""

    @abstractmethod
    def type_text(
        self,
        text: str,
        *,
        marker_id: Optional[str] = None,
        selector: Optional[str] = None,
    ) -> bool:
        """Replace the value of the target element and dispatch input/change events."""

    @abstractmethod
    def scroll_by(self, dy: int) -> ScrollResult:
        """Scroll the window vertically by ``dy`` pixels."""

    @abstractmethod
    def navigate(self, url: str) -> None:
        """Start loading ``url`` in the page."""

    @abstractmethod
    def is_loading(self) -> bool:
        """True while a main-frame navigation is in flight."""

    @abstractmethod
    def ready_state(self) -> Optional[str]:
        """``document.readyState``, or None when it cannot be read."""

    @abstractmethod
    def layout_size(self) -> tuple[float, float]:
        """Width and height of the rendered viewport."""


class ScriptedPage(PageHandle):
    """Implements the DOM-level operations on top of :meth:`evaluate`."""

    def click_marker(self, marker_id: str) -> bool:
        result = self.evaluate(_CLICK_JS, {"attr": MARKER_ATTRIBUTE, "id": marker_id})
        return result == "OK"

    def type_text(
        self,
        text: str,
        *,
        marker_id: Optional[str] = None,
        selector: Optional[str] = None,
    ) -> bool:
        if not marker_id and not selector:
            raise BrowserActionError("Typing requires an element id or a selector")
        result = self.evaluate(
            _TYPE_JS,
            {
                "attr": MARKER_ATTRIBUTE,
                "id": marker_id,
                "selector": selector,
                "text": text,
            },
        )
        return result == "OK"

    def scroll_by(self, dy: int) -> ScrollResult:
        raw = self.evaluate(_SCROLL_JS, dy)
        if not isinstance(raw, str):
            raise BrowserActionError("Scroll script returned no result")
        try:
            return ScrollResult.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as exc:
            raise BrowserActionError(f"Could not decode scroll result: {exc}") from exc


class BrowserSession(ABC):
    """Interface for an automation-capable browser session."""

    @abstractmethod
    def start(self) -> None:
        """Launch the browser session."""

    @abstractmethod
    def stop(self) -> None:
        """Terminate the browser session."""

    @abstractmethod
    def page(self) -> Optional[PageHandle]:
        """Return the active page, or None when the session is not running."""
