"""In-process session store owned by the hosting application."""

from __future__ import annotations

import copy
import threading
from typing import Any, Sequence

from ..errors import SessionNotFound
from ..utils import clock_stamp
from .models import GeneratedImage, ImagePayload, Session


_UPDATABLE_FIELDS = frozenset(
    {"generated_prompts", "status", "progress", "logs", "aspect_ratio", "name"}
)


class SessionStore:
    """Mapping of session id to Session.

    Readers get deep copies; only the active run for a session writes through
    update/append_log/append_image.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.RLock()

    def create(
        self,
        base_prompt: str,
        reference_images: Sequence[ImagePayload] = (),
        total_target: int = 4,
        name: str | None = None,
    ) -> Session:
        session = Session.new(base_prompt, reference_images, total_target, name=name)
        session.logs.append(_stamp("Session initialized. Waiting to start..."))
        self.add(session)
        return copy.deepcopy(session)

    def add(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.id] = session

    def get(self, session_id: str) -> Session:
        with self._lock:
            return copy.deepcopy(self._require(session_id))

    def list(self) -> list[Session]:
        with self._lock:
            sessions = [copy.deepcopy(session) for session in self._sessions.values()]
        return sorted(sessions, key=lambda session: session.created_at, reverse=True)

    def update(self, session_id: str, **changes: Any) -> Session:
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise AttributeError(f"Session fields not updatable: {', '.join(sorted(unknown))}")
        with self._lock:
            session = self._require(session_id)
            for key, value in changes.items():
                if isinstance(value, list):
                    value = list(value)
                setattr(session, key, value)
            return copy.deepcopy(session)

    def append_log(self, session_id: str, message: str) -> str:
        line = _stamp(message)
        with self._lock:
            self._require(session_id).logs.append(line)
        return line

    def append_image(self, session_id: str, image: GeneratedImage) -> int:
        with self._lock:
            session = self._require(session_id)
            session.generated_images.append(copy.deepcopy(image))
            return len(session.generated_images)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session


def _stamp(message: str) -> str:
    return f"[{clock_stamp()}] {message}"
