"""Diagnostics - Append-only sinks for per-invocation trace entries.

Every entry carries the trace id of the invocation that produced it, so
stages of concurrent invocations can be told apart.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Protocol

LOGGER_NAME = "http_replace"


class Stage(str, Enum):
    """Pipeline stage that produced a diagnostic entry."""

    VALIDATE = "validate"
    RESOLVE = "resolve"
    BUILD = "build"
    SEND = "send"
    RESPONSE = "response"
    EXTRACT = "extract"


@dataclass(frozen=True)
class DiagnosticEntry:
    """One diagnostic record. error is set only for failures."""

    trace_id: str
    stage: Stage
    details: str
    error: BaseException | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def __str__(self) -> str:
        text = f"[{self.trace_id}] {self.stage.value}: {self.details}"
        if self.error is not None:
            text += f" ({type(self.error).__name__}: {self.error})"
        return text


class DiagnosticSink(Protocol):
    """Accepts diagnostic entries. Implementations must tolerate concurrent calls."""

    def record(
        self,
        trace_id: str,
        stage: Stage,
        details: str,
        error: BaseException | None = None,
    ) -> None:
        ...


class LoggingSink:
    """Writes entries to a stdlib logger (INFO for stages, ERROR for failures)."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(LOGGER_NAME)

    def record(
        self,
        trace_id: str,
        stage: Stage,
        details: str,
        error: BaseException | None = None,
    ) -> None:
        if error is None:
            self._logger.info("[%s] %s: %s", trace_id, stage.value, details)
        else:
            self._logger.error(
                "[%s] %s: %s",
                trace_id,
                stage.value,
                details,
                exc_info=(type(error), error, error.__traceback__),
            )


class MemorySink:
    """Keeps entries in memory, e.g. for a testing surface or assertions.

    Usage:
        sink = MemorySink()
        executor = RuleExecutor(transport, sink=sink)
        executor.execute(rule, text)
        for entry in sink.entries:
            print(entry)
    """

    def __init__(self) -> None:
        self._entries: list[DiagnosticEntry] = []
        self._lock = Lock()

    def record(
        self,
        trace_id: str,
        stage: Stage,
        details: str,
        error: BaseException | None = None,
    ) -> None:
        with self._lock:
            self._entries.append(DiagnosticEntry(trace_id, stage, details, error))

    @property
    def entries(self) -> list[DiagnosticEntry]:
        with self._lock:
            return list(self._entries)

    def for_trace(self, trace_id: str) -> list[DiagnosticEntry]:
        return [entry for entry in self.entries if entry.trace_id == trace_id]

    def errors(self) -> list[DiagnosticEntry]:
        return [entry for entry in self.entries if entry.is_error]


class FanOutSink:
    """Forwards every entry to several sinks."""

    def __init__(self, *sinks: DiagnosticSink) -> None:
        self._sinks = sinks

    def record(
        self,
        trace_id: str,
        stage: Stage,
        details: str,
        error: BaseException | None = None,
    ) -> None:
        for sink in self._sinks:
            sink.record(trace_id, stage, details, error)
