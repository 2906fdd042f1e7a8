"""Append-only audit trail of an agent session."""

from __future__ import annotations

import threading
from typing import Any, Iterable, Optional

from ..models import AgentLogEntry, LogKind
from .sinks import LogSink


class AgentLog:
    """Ordered, append-only sequence of :class:`AgentLogEntry` values.

    Entries are never mutated or removed. Every appended entry is forwarded to
    the configured sinks.
    """

    def __init__(self, sinks: Optional[Iterable[LogSink]] = None) -> None:
        self._lock = threading.RLock()
        self._entries: list[AgentLogEntry] = []
        self._sinks = list(sinks or [])

    def add_sink(self, sink: LogSink) -> None:
        with self._lock:
            self._sinks.append(sink)

    def append(self, kind: LogKind, message: str, **data: Any) -> AgentLogEntry:
        entry = AgentLogEntry(kind=kind, message=message, data=data)
        with self._lock:
            self._entries.append(entry)
            sinks = list(self._sinks)
        for sink in sinks:
            sink.emit(entry)
        return entry

    def entries(self) -> list[AgentLogEntry]:
        with self._lock:
            return list(self._entries)

    def messages(self, kind: Optional[LogKind] = None) -> list[str]:
        return [entry.message for entry in self.entries() if kind is None or entry.kind is kind]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
