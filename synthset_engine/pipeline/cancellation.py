"""Per-run cooperative cancellation."""

from __future__ import annotations

import threading


class CancellationToken:
    """Set by a stop command; observed by the orchestrator at its checkpoints.

    In-flight backend calls are never interrupted.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
