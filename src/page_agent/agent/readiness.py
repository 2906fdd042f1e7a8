"""Wait for a page to be laid out, loaded and past initial script execution."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from ..browser.base import PageHandle
from .cancellation import CancellationToken
from .errors import PageReadinessError, ReadinessFailure

LOGGER = logging.getLogger(__name__)

READY_STATES = frozenset({"interactive", "complete"})


class ReadinessWaiter:
    """Poll a page until it is ready or a monotonic deadline passes."""

    def __init__(
        self,
        poll_interval: float = 0.15,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._poll_interval = poll_interval
        self._clock = clock

    def wait(
        self,
        page: PageHandle,
        timeout: float,
        token: Optional[CancellationToken] = None,
    ) -> None:
        token = token or CancellationToken()
        deadline = self._clock() + timeout
        while True:
            token.raise_if_cancelled()
            width, height = page.layout_size()
            loading = page.is_loading()
            ready_state = page.ready_state()
            laid_out = width > 0 and height > 0
            if laid_out and not loading and ready_state in READY_STATES:
                return
            if self._clock() >= deadline:
                LOGGER.debug(
                    "readiness timeout url=%s loading=%s ready_state=%s bounds=%sx%s",
                    page.url,
                    loading,
                    ready_state,
                    width,
                    height,
                )
                if not laid_out:
                    raise PageReadinessError(
                        ReadinessFailure.NOT_LAID_OUT,
                        url=page.url,
                        size=(width, height),
                    )
                if loading:
                    raise PageReadinessError(ReadinessFailure.STILL_LOADING, url=page.url)
                raise PageReadinessError(ReadinessFailure.PAGE_NOT_READY, url=page.url)
            token.sleep(self._poll_interval)
