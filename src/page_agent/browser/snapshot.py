"""Extract a click map of the interactive elements on the live page."""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError

from ..models import PageSnapshot
from .base import MARKER_ATTRIBUTE, BrowserActionError, PageHandle

LOGGER = logging.getLogger(__name__)

DEFAULT_SELECTOR = ",".join(
    [
        "a[href]",
        "button",
        "input",
        "textarea",
        "select",
        "[contenteditable]",
        '[role="button"]',
        '[role="link"]',
    ]
)

EXTRACT_JS = """
(args) => {
  const attr = args.attr;
  const els = Array.from(document.querySelectorAll(args.selector));
  const vw = window.innerWidth || 1;
  const vh = window.innerHeight || 1;
  const textTypes = ['', 'text', 'email', 'search', 'url', 'tel', 'number'];
  const buttonTypes = ['button', 'submit', 'reset', 'image'];

  function clean(value) {
    return String(value || '').replace(/\\s+/g, ' ').trim();
  }

  function clamp(value) {
    if (!isFinite(value)) return 0;
    return Math.min(1, Math.max(0, value));
  }

  function inputType(el) {
    return (el.getAttribute('type') || '').toLowerCase();
  }

  function isVisible(el, r) {
    if (!r || r.width <= 0 || r.height <= 0) return false;
    const cs = window.getComputedStyle(el);
    if (!cs) return false;
    if (cs.display === 'none') return false;
    if (cs.visibility === 'hidden') return false;
    const op = parseFloat(cs.opacity || '1');
    if (isNaN(op) || op <= 0.05) return false;
    if (r.bottom < 0 || r.right < 0 || r.top > vh || r.left > vw) return false;
    return true;
  }

  function isInteractable(el) {
    if (el.disabled) return false;
    if ((el.getAttribute('aria-disabled') || '').toLowerCase() === 'true') return false;
    const tag = el.tagName;
    if (tag === 'INPUT') {
      const type = inputType(el);
      if (type === 'hidden' || type === 'password') return false;
    }
    if (el.hasAttribute('contenteditable')
        && (el.getAttribute('contenteditable') || '').toLowerCase() === 'false') {
      return false;
    }
    return true;
  }

  function roleFor(el) {
    const explicit = clean(el.getAttribute('role')).toLowerCase();
    if (explicit) return explicit;
    const tag = el.tagName;
    if (el.isContentEditable || tag === 'TEXTAREA') return 'textbox';
    if (tag === 'INPUT') {
      const type = inputType(el);
      if (textTypes.includes(type)) return 'textbox';
      if (buttonTypes.includes(type)) return 'button';
      return 'input';
    }
    if (tag === 'A') return 'link';
    if (tag === 'BUTTON') return 'button';
    if (tag === 'SELECT') return 'input';
    return 'other';
  }

  function labelledByText(el) {
    const ids = clean(el.getAttribute('aria-labelledby'));
    if (!ids) return '';
    return clean(ids.split(' ').map((id) => {
      const target = document.getElementById(id);
      return target ? target.textContent : '';
    }).join(' '));
  }

  function associatedLabel(el) {
    const labels = el.labels ? Array.from(el.labels) : [];
    const text = clean(labels.map((label) => label.textContent).join(' '));
    if (text) return text;
    const wrapper = el.closest ? el.closest('label') : null;
    return wrapper ? clean(wrapper.textContent) : '';
  }

  function labelFor(el) {
    const candidates = [
      () => el.getAttribute('aria-label'),
      () => labelledByText(el),
      () => associatedLabel(el),
      () => el.getAttribute('placeholder'),
      () => el.getAttribute('name'),
      () => el.innerText,
      () => el.value,
      () => el.getAttribute('title'),
      () => el.getAttribute('alt'),
      () => el.getAttribute('href')
    ];
    for (const candidate of candidates) {
      const text = clean(candidate());
      if (text) return text;
    }
    return '';
  }

  const used = new Set();
  let maxId = 0;
  for (const node of document.querySelectorAll('[' + attr + ']')) {
    const match = /^e(\\d+)$/.exec(node.getAttribute(attr) || '');
    if (!match) continue;
    const n = parseInt(match[1], 10);
    used.add(n);
    if (n > maxId) maxId = n;
  }
  let next = maxId + 1;
  function allocate() {
    while (used.has(next)) next += 1;
    used.add(next);
    return 'e' + next;
  }

  const owners = window.__aiIdOwners || (window.__aiIdOwners = new Map());
  function ownerOf(id) {
    const ref = owners.get(id);
    const owner = ref ? ref.deref() : null;
    return owner && owner.isConnected ? owner : null;
  }

  const seen = new Set();
  const clickables = [];
  for (const el of els) {
    const r = el.getBoundingClientRect();
    if (!isVisible(el, r) || !isInteractable(el)) continue;

    let id = el.getAttribute(attr);
    const owner = id ? ownerOf(id) : null;
    if (!id || seen.has(id) || (owner && owner !== el)) {
      id = allocate();
      el.setAttribute(attr, id);
    }
    owners.set(id, new WeakRef(el));
    seen.add(id);

    const href = clean(el.getAttribute('href'));
    clickables.push({
      id: id,
      role: roleFor(el),
      label: labelFor(el),
      rect: {
        x: clamp(r.left / vw),
        y: clamp(r.top / vh),
        w: clamp(r.width / vw),
        h: clamp(r.height / vh)
      },
      href: href || null,
      tag: (el.tagName || '').toUpperCase(),
      disabled: false
    });
  }

  return JSON.stringify({
    url: String(location.href || ''),
    title: String(document.title || ''),
    clickables: clickables
  });
}
"""


class SnapshotError(RuntimeError):
    """Raised when the click map cannot be retrieved or decoded."""


class PageSnapshotter:
    """Produce :class:`PageSnapshot` values from a live page.

    Elements are stamped with a ``data-ai-id`` marker the first time they are
    seen; later extractions reuse the marker so ids stay stable while the
    element lives.
    """

    def __init__(self, selector: Optional[str] = None) -> None:
        self._selector = selector or DEFAULT_SELECTOR

    @property
    def selector(self) -> str:
        return self._selector

    def extract(self, page: PageHandle, selector: Optional[str] = None) -> PageSnapshot:
        try:
            result = page.evaluate(
                EXTRACT_JS,
                {"attr": MARKER_ATTRIBUTE, "selector": selector or self._selector},
            )
        except BrowserActionError as exc:
            raise SnapshotError(f"Click map extraction failed: {exc}") from exc
        if not isinstance(result, str) or not result:
            raise SnapshotError("Click map script returned no data")
        try:
            snapshot = PageSnapshot.model_validate_json(result)
        except ValidationError as exc:
            raise SnapshotError(f"Click map could not be decoded: {exc}") from exc
        LOGGER.debug("Extracted %d clickables from %s", len(snapshot.clickables), snapshot.url)
        return snapshot
