# idmerge/utils/events.py
# ============================================================
# Structured Event Sinks
# ============================================================
# Retry and batch code reports what happened as named
# events with keyword fields instead of writing log lines inline.
# The sink decides where events go:
#   - LoggingEventSink: renders events through the Rich logger
#   - RecordingEventSink: keeps events in memory (tests, diagnostics)
#
# Usage:
#   sink = LoggingEventSink("idmerge.ocr.gateway")
#   sink.emit("recognition.retry", hint="front", attempt=1, delay_s=2.0)
# ============================================================

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from idmerge.utils.logger import get_logger


class EventSink(Protocol):
    """Anything that accepts structured events."""

    def emit(self, event: str, **fields: Any) -> None:
        ...


# Events that indicate something went wrong are logged above INFO
_WARNING_EVENTS = {
    "recognition.attempt_failed",
    "recognition.retry",
    "unit.failed",
}
_ERROR_EVENTS = {"recognition.exhausted", "recognition.rejected"}


class LoggingEventSink:
    """Render events as single log lines: `event key=value key=value`."""

    def __init__(self, logger_name: str = "idmerge.events"):
        self._logger = get_logger(logger_name)

    def emit(self, event: str, **fields: Any) -> None:
        if event in _ERROR_EVENTS:
            level = logging.ERROR
        elif event in _WARNING_EVENTS:
            level = logging.WARNING
        else:
            level = logging.INFO

        rendered = " ".join(f"{key}={value!r}" for key, value in fields.items())
        self._logger.log(level, f"[bold]{event}[/bold] {rendered}".rstrip())


@dataclass
class RecordingEventSink:
    """Keep every event in order. `names()` is handy for assertions."""

    events: list[tuple[str, dict]] = field(default_factory=list)

    def emit(self, event: str, **fields: Any) -> None:
        self.events.append((event, dict(fields)))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def of(self, event: str) -> list[dict]:
        return [fields for name, fields in self.events if name == event]
