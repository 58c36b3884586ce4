# SSRS Reports Client
# File: progress.py
# Version: v1

"""Advisory progress output for multi-item catalog operations."""

from __future__ import annotations

import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)


class ProgressLog:
    """Forward progress messages to a caller-supplied sink.

    ``sink`` may be:

    - ``None``: messages only go to ``fallback`` at DEBUG level,
    - ``True``: messages go to ``fallback`` at INFO/WARNING level,
    - a ``logging.Logger`` (or anything with ``info``/``warning``),
    - a callable ``sink(message, level)`` with level ``"info"``/``"warning"``.

    A failing sink never interrupts the operation being reported on.
    """

    def __init__(self, sink: Any = None, fallback: Optional[logging.Logger] = None) -> None:
        if isinstance(sink, ProgressLog):
            sink = sink.sink
        self.sink = sink
        self.fallback = fallback or logger

    @classmethod
    def wrap(cls, sink: Any, fallback: Optional[logging.Logger] = None) -> "ProgressLog":
        if isinstance(sink, ProgressLog):
            return sink
        return cls(sink, fallback)

    def info(self, message: str) -> None:
        self._emit("info", message)

    def warning(self, message: str) -> None:
        self._emit("warning", message)

    def _emit(self, level: str, message: str) -> None:
        sink = self.sink
        try:
            if sink is None:
                self.fallback.debug(message)
            elif sink is True:
                getattr(self.fallback, level)(message)
            elif hasattr(sink, level):
                getattr(sink, level)(message)
            elif callable(sink):
                sink(message, level)
        except Exception:  # noqa: BLE001
            logger.debug("Progress sink raised; message was: %s", message, exc_info=True)
