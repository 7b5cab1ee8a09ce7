"""Hosting-side control surface for generation sessions."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from .errors import InvalidTransition, RunAlreadyActive
from .models.registry import ModelConfig
from .pipeline.cancellation import CancellationToken
from .pipeline.orchestrator import PipelineOrchestrator, RunResult
from .prompts.expander import PromptExpander
from .prompts.json_extract import ExpansionResult
from .runs.events import EventWriter
from .sessions.models import STATUS_GENERATING, STATUS_IDLE, ImagePayload, Session
from .sessions.store import SessionStore
from .synthesizers import default_registry
from .synthesizers.base import SynthesizerRegistry


@dataclass
class RunHandle:
    session_id: str
    run_id: str
    token: CancellationToken
    thread: threading.Thread | None = None
    result: RunResult | None = None
    _done: threading.Event = field(default_factory=threading.Event, repr=False)

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: float | None = None) -> RunResult | None:
        self._done.wait(timeout)
        return self.result


class SynthsetEngine:
    def __init__(
        self,
        store: SessionStore | None = None,
        expander: PromptExpander | None = None,
        synthesizers: SynthesizerRegistry | None = None,
        events_path: Path | None = None,
    ) -> None:
        self.store = store or SessionStore()
        self.expander = expander or PromptExpander()
        self.synthesizers = synthesizers or default_registry()
        self.events_path = events_path
        self.orchestrator = PipelineOrchestrator(
            self.store,
            self.expander,
            self.synthesizers,
            events_path=events_path,
        )
        self._runs: dict[str, RunHandle] = {}
        self._lock = threading.Lock()

    def create_session(
        self,
        base_prompt: str,
        reference_images: Sequence[ImagePayload] = (),
        total_target: int = 4,
        name: str | None = None,
    ) -> str:
        session = self.store.create(base_prompt, reference_images, total_target, name=name)
        try:
            EventWriter(self.events_path, session.id).emit(
                "session_created",
                session_id=session.id,
                name=session.name,
                total_target=session.total_target,
                reference_images=len(session.reference_images),
            )
        except Exception as exc:
            # The session is stored; the caller still needs its id.
            self.store.append_log(session.id, f"Event log unavailable: {str(exc) or type(exc).__name__}")
        return session.id

    def start(self, session_id: str, backend: ModelConfig, background: bool = True) -> RunHandle:
        with self._lock:
            active = self._runs.get(session_id)
            if active is not None and not active.done:
                raise RunAlreadyActive(session_id)
            status = self.store.get(session_id).status
            if status != STATUS_IDLE:
                raise InvalidTransition(session_id, status, STATUS_GENERATING)
            handle = RunHandle(session_id=session_id, run_id=str(uuid.uuid4()), token=CancellationToken())
            self._runs[session_id] = handle

        if not background:
            self._execute(handle, backend)
            return handle
        handle.thread = threading.Thread(
            target=self._execute,
            args=(handle, backend),
            name=f"synthset-run-{session_id[:8]}",
            daemon=True,
        )
        handle.thread.start()
        return handle

    def cancel(self, session_id: str) -> bool:
        with self._lock:
            handle = self._runs.get(session_id)
        if handle is None or handle.done:
            return False
        handle.token.cancel()
        return True

    def get_session(self, session_id: str) -> Session:
        return self.store.get(session_id)

    def list_sessions(self) -> list[Session]:
        return self.store.list()

    def is_running(self, session_id: str) -> bool:
        with self._lock:
            handle = self._runs.get(session_id)
        return handle is not None and not handle.done

    def wait(self, session_id: str, timeout: float | None = None) -> Session:
        with self._lock:
            handle = self._runs.get(session_id)
        if handle is not None:
            handle.wait(timeout)
        return self.store.get(session_id)

    def expand_only(self, base_prompt: str, count: int, reference_count: int = 0) -> ExpansionResult:
        return self.expander.expand(base_prompt, count, reference_count=reference_count)

    def _execute(self, handle: RunHandle, backend: ModelConfig) -> None:
        try:
            handle.result = self.orchestrator.run(
                handle.session_id,
                backend,
                token=handle.token,
                run_id=handle.run_id,
            )
        finally:
            with self._lock:
                if self._runs.get(handle.session_id) is handle:
                    del self._runs[handle.session_id]
            handle._done.set()
