"""
Progress notification for long-running converter operations.

The core emits progress synchronously on the caller's thread. A sink is
a plain object with ``on_message`` and ``on_progress``; there is at most
one sink per call and nothing is buffered.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

_log = logging.getLogger(__name__)


class ProgressSink(Protocol):
    def on_message(self, text: str) -> None: ...

    def on_progress(self, text: str, percent: float) -> None: ...


class LoggingProgressSink:
    """Default sink: forwards everything to the module logger."""

    def on_message(self, text: str) -> None:
        _log.info(text)

    def on_progress(self, text: str, percent: float) -> None:
        _log.info("[%3.0f%%] %s", percent, text)


class CallbackProgressSink:
    """Adapts one or two plain callables to the sink interface.

    ``progress_callback`` falls back to ``message_callback`` (with the
    percentage dropped) when it is not supplied.
    """

    def __init__(
        self,
        message_callback: Callable[[str], None],
        progress_callback: Optional[Callable[[str, float], None]] = None,
    ):
        self._message_cb = message_callback
        self._progress_cb = progress_callback

    def on_message(self, text: str) -> None:
        self._message_cb(text)

    def on_progress(self, text: str, percent: float) -> None:
        if self._progress_cb is not None:
            self._progress_cb(text, percent)
        else:
            self._message_cb(text)


def percent_of(index: int, total: int) -> float:
    if total <= 0:
        return 100.0
    return round(100.0 * index / total, 1)
