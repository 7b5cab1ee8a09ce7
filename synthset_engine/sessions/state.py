"""Session lifecycle: idle -> generating -> completed | failed | stopped."""

from __future__ import annotations

from typing import Sequence

from ..errors import InvalidTransition
from .models import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_GENERATING,
    STATUS_IDLE,
    STATUS_STOPPED,
    GeneratedImage,
    Session,
)
from .store import SessionStore


PROGRESS_STARTED = 5
PROGRESS_EXPANDED = 15
PROGRESS_DONE = 100


def progress_for(images_completed: int, total_target: int) -> int:
    if total_target <= 0:
        return PROGRESS_DONE
    span = PROGRESS_DONE - PROGRESS_EXPANDED
    value = PROGRESS_EXPANDED + (images_completed * span) // total_target
    return max(PROGRESS_EXPANDED, min(value, PROGRESS_DONE))


class SessionStateMachine:
    """Drives one session through a single run via the store interface."""

    def __init__(self, store: SessionStore, session_id: str) -> None:
        self.store = store
        self.session_id = session_id
        self._progress = 0

    @property
    def snapshot(self) -> Session:
        return self.store.get(self.session_id)

    @property
    def status(self) -> str:
        return self.snapshot.status

    def begin(self) -> Session:
        current = self.status
        if current != STATUS_IDLE:
            raise InvalidTransition(self.session_id, current, STATUS_GENERATING)
        self._progress = PROGRESS_STARTED
        return self.store.update(
            self.session_id,
            status=STATUS_GENERATING,
            progress=PROGRESS_STARTED,
            logs=[],
        )

    def adopt_prompts(self, prompts: Sequence[str], aspect_ratio: str) -> Session:
        self._require_generating("adopt_prompts")
        self._progress = max(self._progress, PROGRESS_EXPANDED)
        return self.store.update(
            self.session_id,
            generated_prompts=list(prompts),
            aspect_ratio=aspect_ratio,
            progress=self._progress,
        )

    def record_image(self, image: GeneratedImage) -> int:
        session = self._require_generating("record_image")
        count = self.store.append_image(self.session_id, image)
        self._progress = max(self._progress, progress_for(count, session.total_target))
        self.store.update(self.session_id, progress=self._progress)
        return self._progress

    def complete(self) -> Session:
        self._require_generating(STATUS_COMPLETED)
        self._progress = PROGRESS_DONE
        return self.store.update(self.session_id, status=STATUS_COMPLETED, progress=PROGRESS_DONE)

    def stop(self) -> Session:
        self._require_generating(STATUS_STOPPED)
        return self.store.update(self.session_id, status=STATUS_STOPPED)

    def fail(self, message: str | None = None) -> Session:
        self._require_generating(STATUS_FAILED)
        if message:
            self.log(message)
        return self.store.update(self.session_id, status=STATUS_FAILED)

    def log(self, message: str) -> str:
        return self.store.append_log(self.session_id, message)

    def _require_generating(self, target: str) -> Session:
        session = self.snapshot
        if session.status != STATUS_GENERATING:
            raise InvalidTransition(self.session_id, session.status, target)
        return session
