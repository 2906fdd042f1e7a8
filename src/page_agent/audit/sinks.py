"""Destinations for audit log entries."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from rich.console import Console

from ..models import AgentLogEntry, LogKind

_STYLES = {
    LogKind.INFO: "cyan",
    LogKind.MODEL: "magenta",
    LogKind.ACTION: "blue",
    LogKind.RESULT: "green",
    LogKind.ERROR: "red",
    LogKind.WARNING: "yellow",
}

_LEVELS = {
    LogKind.ERROR: logging.ERROR,
    LogKind.WARNING: logging.WARNING,
}


class LogSink(ABC):
    """Interface for receiving audit log entries as they are appended."""

    @abstractmethod
    def emit(self, entry: AgentLogEntry) -> None:
        """Handle a single entry."""


class ConsoleLogSink(LogSink):
    """Print entries to the console using Rich."""

    def __init__(self, console: Optional[Console] = None, *, show_data: bool = False) -> None:
        self._console = console or Console()
        self._show_data = show_data

    def emit(self, entry: AgentLogEntry) -> None:
        style = _STYLES.get(entry.kind, "white")
        stamp = entry.timestamp.strftime("%H:%M:%S")
        self._console.print(
            f"{stamp} [{entry.kind.value.upper()}] {entry.message}",
            style=style,
            markup=False,
            highlight=False,
        )
        if self._show_data and entry.data:
            self._console.print(entry.data, style="dim")


class LoggingSink(LogSink):
    """Forward entries to the standard :mod:`logging` tree."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger("page_agent.audit")

    def emit(self, entry: AgentLogEntry) -> None:
        level = _LEVELS.get(entry.kind, logging.INFO)
        self._logger.log(level, "[%s] %s", entry.kind.value, entry.message, extra={"audit": entry.data})


class CompositeSink(LogSink):
    """Fan-out sink that propagates entries to multiple sinks."""

    def __init__(self, sinks: Iterable[LogSink]) -> None:
        self._sinks = list(sinks)

    def emit(self, entry: AgentLogEntry) -> None:
        for sink in self._sinks:
            sink.emit(entry)
