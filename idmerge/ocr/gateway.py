# idmerge/ocr/gateway.py
# ============================================================
# Recognition Gateway — Timeout, Retry, Error Translation
# ============================================================
# Wraps a recognition capability (the remote OCR provider) with
# the retry policy every caller needs:
#   - every attempt bounded by the same timeout
#   - up to `max_attempts` attempts in total
#   - TRANSIENT and AUTH failures are retried after a linear
#     backoff of `attempt * backoff` seconds (attempt is 1-indexed)
#   - INVALID failures are raised immediately
#
# The gateway keeps no state between calls, so one instance can
# be shared by concurrent unit workers. What happens on each
# attempt is reported to an EventSink rather than logged inline.
#
# Usage:
#   gateway = RecognitionGateway(BaiduOcrClient.from_settings())
#   fields = await gateway.recognize(image_bytes, RecognitionHint.FRONT)
# ============================================================

import asyncio
import time
from typing import Awaitable, Callable, Optional, Protocol

from config.settings import settings
from idmerge.errors import RecognitionError, RecognitionErrorKind
from idmerge.ocr.hints import RecognitionHint
from idmerge.ocr.results import ExtractionResult
from idmerge.utils.events import EventSink, LoggingEventSink


class RecognitionCapability(Protocol):
    """
    The external recognition provider.

    Implementations raise RecognitionError with a kind that tells
    transient/network trouble, auth/session trouble and permanently
    invalid input apart.
    """

    async def recognize(self, image: bytes, hint: RecognitionHint) -> ExtractionResult:
        ...


SleepFn = Callable[[float], Awaitable[None]]


class RecognitionGateway:
    """
    Single-call wrapper around a RecognitionCapability.

    Example:
        >>> gateway = RecognitionGateway(client, timeout=60, max_attempts=3)
        >>> back = await gateway.recognize(data, RecognitionHint.BACK)
    """

    def __init__(
        self,
        capability: RecognitionCapability,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff: Optional[float] = None,
        sleep: Optional[SleepFn] = None,
        events: Optional[EventSink] = None,
    ):
        """
        Args:
            capability: The provider client to call.
            timeout: Seconds allowed per attempt. Default: from settings.
            max_attempts: Total attempts, first call included. Default: from settings.
            backoff: Linear backoff step in seconds. Default: from settings.
            sleep: Coroutine used to wait between attempts (injectable for tests).
            events: Sink for retry events. Default: a LoggingEventSink.
        """
        self.capability = capability
        self.timeout = timeout if timeout is not None else settings.recognition_timeout_s
        self.max_attempts = max_attempts or settings.recognition_max_attempts
        self.backoff = backoff if backoff is not None else settings.recognition_backoff_s
        self._sleep = sleep or asyncio.sleep
        self._events = events or LoggingEventSink(__name__)

    def backoff_for(self, attempt: int) -> float:
        """Delay before retrying after failed attempt `attempt` (1-indexed)."""
        return attempt * self.backoff

    @property
    def retry_budget(self) -> float:
        """Worst-case seconds one recognize() call can take."""
        waits = sum(self.backoff_for(a) for a in range(1, self.max_attempts))
        return self.max_attempts * self.timeout + waits

    async def _attempt(self, image: bytes, hint: RecognitionHint) -> ExtractionResult:
        try:
            return await asyncio.wait_for(
                self.capability.recognize(image, hint), timeout=self.timeout
            )
        except RecognitionError:
            raise
        except asyncio.TimeoutError:
            raise RecognitionError(
                RecognitionErrorKind.TRANSIENT,
                f"recognition timed out after {self.timeout:.0f}s",
            )
        except Exception as e:
            # Anything the client did not classify is treated as network trouble
            raise RecognitionError(RecognitionErrorKind.TRANSIENT, f"{type(e).__name__}: {e}") from e

    async def recognize(self, image: bytes, hint: RecognitionHint) -> ExtractionResult:
        """
        Recognize `image` under `hint`, retrying transient and auth failures.

        Raises:
            RecognitionError: INVALID immediately, or the last error once
                all attempts are used up.
        """
        start = time.perf_counter()
        last_error: Optional[RecognitionError] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                result = await self._attempt(image, hint)
            except RecognitionError as e:
                last_error = e
                self._events.emit(
                    "recognition.attempt_failed",
                    hint=hint.value,
                    attempt=attempt,
                    kind=e.kind.value,
                    error=e.message,
                )
                if not e.retryable:
                    self._events.emit("recognition.rejected", hint=hint.value, error=e.message)
                    raise
                if attempt >= self.max_attempts:
                    break
                delay = self.backoff_for(attempt)
                self._events.emit(
                    "recognition.retry", hint=hint.value, attempt=attempt, delay_s=delay
                )
                await self._sleep(delay)
                continue

            self._events.emit(
                "recognition.succeeded",
                hint=hint.value,
                attempt=attempt,
                latency_ms=round((time.perf_counter() - start) * 1000, 1),
            )
            return result

        self._events.emit(
            "recognition.exhausted",
            hint=hint.value,
            attempts=self.max_attempts,
            kind=last_error.kind.value,
            error=last_error.message,
        )
        raise RecognitionError(
            last_error.kind,
            f"{last_error.message} (gave up after {self.max_attempts} attempts)",
        )
