"""Transcoding engine interface.

An engine is configured once with a source file, a destination manifest
path and a TranscodeConfig, then started with ``run()``. The returned
TranscodeRun exposes a single-use progress stream and a completion future
that resolves exactly once.
"""

import queue
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import Future
from pathlib import Path
from typing import Callable, Iterator, Optional, Union

from vodstream.modules.transcoding.models import TranscodeProgress, TranscodeResult
from vodstream.modules.transcoding.schemas import TranscodeConfig


class TranscodingError(Exception):
    """Base exception for transcoding errors."""

    def __init__(self, message: str, diagnostic: Optional[str] = None):
        super().__init__(message)
        self.diagnostic = diagnostic or message


class ConfigurationError(TranscodingError):
    """Raised when the engine cannot be initialized for a job."""

    pass


class TranscodeError(TranscodingError):
    """Raised when the engine started but did not produce valid output."""

    pass


class TranscodeTimeoutError(TranscodeError):
    """Raised when a run produces no terminal result before its deadline."""

    pass


_END = object()


class TranscodeRun:
    """Handle on one started engine run.

    The engine side calls ``publish`` for each progress event and then
    exactly one of ``succeed`` or ``fail``. The consumer side iterates
    ``progress()`` once and reads ``completion``.
    """

    def __init__(self, cancel: Optional[Callable[[], None]] = None):
        self.completion: Future = Future()
        self.completion.set_running_or_notify_cancel()
        self._events: queue.Queue = queue.Queue()
        self._cancel = cancel
        self._lock = threading.Lock()
        self._consumed = False
        self._finished = False

    # Engine side

    def publish(self, event: TranscodeProgress) -> None:
        if not self._finished:
            self._events.put(event)

    def succeed(self, result: TranscodeResult) -> bool:
        return self._finish(result)

    def fail(self, error: TranscodingError) -> bool:
        return self._finish(error)

    def _finish(self, outcome: Union[TranscodeResult, TranscodingError]) -> bool:
        with self._lock:
            if self._finished:
                return False
            self._finished = True
        if isinstance(outcome, BaseException):
            self.completion.set_exception(outcome)
        else:
            self.completion.set_result(outcome)
        self._events.put(_END)
        return True

    # Consumer side

    @property
    def finished(self) -> bool:
        return self._finished

    def progress(self, timeout: Optional[float] = None) -> Iterator[TranscodeProgress]:
        """Return the progress stream.

        The stream ends when the run terminates. It can be taken only once.

        Args:
            timeout: Seconds the whole stream may take before
                TranscodeTimeoutError is raised from the iterator

        Raises:
            RuntimeError: If the stream was already taken
        """
        with self._lock:
            if self._consumed:
                raise RuntimeError("progress stream already consumed")
            self._consumed = True
        deadline = time.monotonic() + timeout if timeout else None
        return self._iter_events(deadline)

    def _iter_events(self, deadline: Optional[float]) -> Iterator[TranscodeProgress]:
        while True:
            wait = None
            if deadline is not None:
                wait = deadline - time.monotonic()
                if wait <= 0:
                    raise TranscodeTimeoutError("Transcode timed out")
            try:
                item = self._events.get(timeout=wait)
            except queue.Empty:
                raise TranscodeTimeoutError("Transcode timed out") from None
            if item is _END:
                return
            yield item

    def cancel(self) -> None:
        """Terminate the underlying engine, if it supports it."""
        if self._cancel is not None and not self._finished:
            self._cancel()


class TranscodeEngine(ABC):
    """Abstract base class for transcoding engines."""

    @abstractmethod
    def configure(
        self,
        source_path: Union[str, Path],
        dest_manifest_path: Union[str, Path],
        config: TranscodeConfig,
    ) -> None:
        """Prepare a job. Performs no transcoding.

        Raises:
            ConfigurationError: If the source is missing or the engine
                cannot be initialized with the given parameters
        """
        pass

    @abstractmethod
    def run(self) -> TranscodeRun:
        """Start the configured job and return its run handle.

        Start failures are reported through the run's completion, never
        raised from here.
        """
        pass
