"""Playwright-powered browser session implementation."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from playwright.sync_api import Error, Page, Request, sync_playwright

from ..config import BrowserConfig
from .base import BrowserActionError, BrowserSession, PageHandle, ScriptedPage

LOGGER = logging.getLogger(__name__)


class PlaywrightPage(ScriptedPage):
    """Page handle wrapping a Playwright :class:`Page`."""

    def __init__(self, page: Page) -> None:
        self._page = page
        self._loading = False
        page.on("request", self._on_request)
        page.on("requestfailed", self._on_request_finished)
        page.on("load", self._on_load)

    @property
    def url(self) -> str:
        return self._page.url

    def title(self) -> str:
        try:
            return self._page.title()
        except Error:
            return ""

    def evaluate(self, script: str, arg: Any = None) -> Any:
        try:
            return self._page.evaluate(script, arg)
        except Error as exc:
            raise BrowserActionError(str(exc)) from exc

    def navigate(self, url: str) -> None:
        LOGGER.info("Navigating to %s", url)
        self._loading = True
        try:
            self._page.goto(url, wait_until="commit")
        except Error as exc:
            self._loading = False
            raise BrowserActionError(str(exc)) from exc

    def is_loading(self) -> bool:
        return self._loading

    def ready_state(self) -> Optional[str]:
        try:
            state = self._page.evaluate("document.readyState")
        except Error:
            # Execution context is being replaced by a navigation.
            return None
        return state if isinstance(state, str) else None

    def layout_size(self) -> tuple[float, float]:
        viewport = self._page.viewport_size
        if viewport:
            return float(viewport["width"]), float(viewport["height"])
        try:
            size = self._page.evaluate("[window.innerWidth || 0, window.innerHeight || 0]")
        except Error:
            return 0.0, 0.0
        return float(size[0]), float(size[1])

    def _on_request(self, request: Request) -> None:
        if request.is_navigation_request() and request.frame == self._page.main_frame:
            self._loading = True

    def _on_request_finished(self, request: Request) -> None:
        if request.is_navigation_request() and request.frame == self._page.main_frame:
            self._loading = False

    def _on_load(self, _page: Page) -> None:
        self._loading = False


class PlaywrightBrowserSession(BrowserSession):
    """Browser session backed by Playwright."""

    def __init__(self, config: Optional[BrowserConfig] = None) -> None:
        self._config = config or BrowserConfig()
        self._playwright = None
        self._browser = None
        self._context = None
        self._page: Optional[PlaywrightPage] = None

    def start(self) -> None:
        LOGGER.debug("Starting Playwright browser session")
        self._playwright = sync_playwright().start()
        launch_kwargs = {
            "headless": self._config.headless,
            "args": [
                "--no-sandbox",
                "--disable-dev-shm-usage",
                "--disable-gpu",
            ],
        }
        user_data_dir: Optional[Path] = self._config.profile_path
        viewport = {"width": self._config.viewport_width, "height": self._config.viewport_height}
        if user_data_dir:
            user_data_dir.mkdir(parents=True, exist_ok=True)
            self._context = self._playwright.chromium.launch_persistent_context(
                str(user_data_dir),
                **launch_kwargs,
                viewport=viewport,
            )
            pages = self._context.pages
            raw_page = pages[0] if pages else self._context.new_page()
        else:
            self._browser = self._playwright.chromium.launch(**launch_kwargs)
            self._context = self._browser.new_context(viewport=viewport)
            raw_page = self._context.new_page()
        self._page = PlaywrightPage(raw_page)
        if self._config.start_url:
            self._page.navigate(self._config.start_url)

    def stop(self) -> None:
        LOGGER.debug("Stopping Playwright browser session")
        try:
            if self._context:
                self._context.close()
        finally:
            if self._browser:
                self._browser.close()
            if self._playwright:
                self._playwright.stop()
        self._context = None
        self._browser = None
        self._playwright = None
        self._page = None

    def page(self) -> Optional[PageHandle]:
        return self._page
