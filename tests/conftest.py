from __future__ import annotations

import json
from typing import Any, Callable, Optional

import pytest

from page_agent.browser.base import PageHandle
from page_agent.models import ClickRect, Clickable, PageSnapshot, ScrollResult


def clickable(element_id: str, label: str, *, role: str = "button", tag: str = "BUTTON") -> Clickable:
    return Clickable(
        id=element_id,
        role=role,
        label=label,
        rect=ClickRect(x=0.1, y=0.1, w=0.2, h=0.05),
        href=None,
        tag=tag,
        disabled=False,
    )


class FakePage(PageHandle):
    """In-memory page that records every operation the agent performs."""

    def __init__(
        self,
        clickables: list[Clickable],
        *,
        url: str = "https://shop.test/",
        title: str = "Shop",
    ) -> None:
        self.elements: dict[str, Clickable] = {item.id: item for item in clickables}
        self._url = url
        self._title = title
        self.loading = False
        self.state: Optional[str] = "complete"
        self.size: tuple[float, float] = (1280.0, 720.0)
        self.clicks: list[str] = []
        self.typed: list[tuple[Optional[str], Optional[str], str]] = []
        self.scrolls: list[int] = []
        self.navigations: list[str] = []
        self.extractions = 0
        self.on_click: dict[str, Callable[["FakePage"], None]] = {}

    @property
    def url(self) -> str:
        return self._url

    def title(self) -> str:
        return self._title

    def evaluate(self, script: str, arg: Any = None) -> Any:
        self.extractions += 1
        return json.dumps(
            {
                "url": self._url,
                "title": self._title,
                "clickables": [item.model_dump() for item in self.elements.values()],
            }
        )

    def click_marker(self, marker_id: str) -> bool:
        if marker_id not in self.elements:
            return False
        self.clicks.append(marker_id)
        hook = self.on_click.get(marker_id)
        if hook:
            hook(self)
        return True

    def type_text(
        self,
        text: str,
        *,
        marker_id: Optional[str] = None,
        selector: Optional[str] = None,
    ) -> bool:
        if marker_id and marker_id not in self.elements:
            return False
        self.typed.append((marker_id, selector, text))
        return True

    def scroll_by(self, dy: int) -> ScrollResult:
        self.scrolls.append(dy)
        position = max(0, sum(self.scrolls))
        return ScrollResult(
            did_scroll=True,
            position={"x": 0, "y": position},
            bounds={"maxX": 0, "maxY": 4000},
            at_top=position == 0,
            at_bottom=position >= 4000,
        )

    def navigate(self, url: str) -> None:
        self.navigations.append(url)
        self._url = url

    def is_loading(self) -> bool:
        return self.loading

    def ready_state(self) -> Optional[str]:
        return self.state

    def layout_size(self) -> tuple[float, float]:
        return self.size


@pytest.fixture
def shop_clickables() -> list[Clickable]:
    return [
        clickable("e1", "Continue"),
        clickable("e2", "Search products", role="textbox", tag="INPUT"),
        clickable("e3", "Proceed to Checkout"),
        clickable("e4", "Help", role="link", tag="A"),
    ]


@pytest.fixture
def fake_page(shop_clickables: list[Clickable]) -> FakePage:
    return FakePage(shop_clickables)


@pytest.fixture
def shop_snapshot(shop_clickables: list[Clickable]) -> PageSnapshot:
    return PageSnapshot(url="https://shop.test/", title="Shop", clickables=tuple(shop_clickables))
