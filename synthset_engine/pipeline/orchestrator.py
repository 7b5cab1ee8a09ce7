"""Generation run orchestration: expansion, then sequential per-item synthesis."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..errors import UnexpectedError
from ..models.registry import ModelConfig
from ..prompts.expander import PromptExpander
from ..prompts.json_extract import ExpansionResult
from ..runs.events import EventWriter
from ..sessions.models import DEFAULT_ASPECT_RATIO, STATUS_GENERATING, GeneratedImage, Session, image_id
from ..sessions.state import SessionStateMachine
from ..sessions.store import SessionStore
from ..synthesizers.base import SynthesizerRegistry
from .cancellation import CancellationToken


@dataclass
class RunResult:
    run_id: str
    session: Session
    error: UnexpectedError | None = None

    @property
    def status(self) -> str:
        return self.session.status


class PipelineOrchestrator:
    def __init__(
        self,
        store: SessionStore,
        expander: PromptExpander,
        synthesizers: SynthesizerRegistry,
        events_path: Path | None = None,
    ) -> None:
        self.store = store
        self.expander = expander
        self.synthesizers = synthesizers
        self.events_path = events_path

    def run(
        self,
        session_id: str,
        backend: ModelConfig,
        token: CancellationToken | None = None,
        run_id: str | None = None,
    ) -> RunResult:
        token = token or CancellationToken()
        run_id = run_id or str(uuid.uuid4())
        # Raises SessionNotFound before anything is mutated.
        session = self.store.get(session_id)
        events = EventWriter(self.events_path, run_id)
        state = SessionStateMachine(self.store, session_id)

        state.begin()
        error: UnexpectedError | None = None
        try:
            state.log(f"Starting generation task for {session.total_target} images.")
            events.emit(
                "run_started",
                session_id=session_id,
                total_target=session.total_target,
                backend_type=backend.type,
                model=backend.model_id,
            )
            self._generate(session, backend, token, state, events)
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            error = UnexpectedError(message)
            error.__cause__ = exc
            # A failure after complete()/stop() keeps that terminal status.
            if state.status == STATUS_GENERATING:
                state.fail(f"Critical Error: {message}")
            else:
                state.log(f"Critical Error: {message}")
            _emit_closing(events, state, "run_finished", session_id=session_id, status=state.status, error=message)
        return RunResult(run_id=run_id, session=self.store.get(session_id), error=error)

    def _generate(
        self,
        session: Session,
        backend: ModelConfig,
        token: CancellationToken,
        state: SessionStateMachine,
        events: EventWriter,
    ) -> None:
        state.log("Synthesizing diverse prompts & analyzing constraints...")
        expansion = self._expand(session, state, events)
        prompts = expansion.prompts
        state.adopt_prompts(prompts, expansion.aspect_ratio)
        state.log(f"Generated {len(prompts)} unique variations.")
        state.log(f"Target Aspect Ratio: {expansion.aspect_ratio}")

        if token.cancelled:
            self._stop(session, state, events)
            return

        synthesizer = self.synthesizers.resolve(backend)
        total = len(prompts)
        for idx, prompt in enumerate(prompts):
            if token.cancelled:
                break
            state.log(f"Generating image {idx + 1}/{total}...")
            try:
                url = synthesizer.synthesize(prompt, session.reference_images, expansion.aspect_ratio, backend)
            except Exception as exc:
                message = str(exc) or type(exc).__name__
                state.log(f"Error generating image {idx + 1}: {message}")
                events.emit(
                    "image_failed",
                    session_id=session.id,
                    index=idx,
                    error=message,
                    error_type=type(exc).__name__,
                )
                continue
            image = GeneratedImage(id=image_id(session.id, idx), url=url, prompt=prompt)
            progress = state.record_image(image)
            state.log(f"Image {idx + 1}/{total} generated.")
            events.emit(
                "image_created",
                session_id=session.id,
                index=idx,
                image_id=image.id,
                url=url,
                progress=progress,
            )

        if token.cancelled:
            self._stop(session, state, events)
            return
        state.complete()
        state.log("Task completed successfully.")
        _emit_closing(events, state, "run_finished", session_id=session.id, status=state.status)

    def _expand(self, session: Session, state: SessionStateMachine, events: EventWriter) -> ExpansionResult:
        target = session.total_target
        try:
            expansion = self.expander.expand(
                session.base_prompt,
                target,
                reference_count=len(session.reference_images),
            )
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            state.log(f"Warning: Prompt expansion failed: {message}. Using original prompt as fallback.")
            events.emit("prompt_expansion_failed", session_id=session.id, error=message)
            return ExpansionResult(prompts=[session.base_prompt] * target, aspect_ratio=DEFAULT_ASPECT_RATIO)

        prompts = list(expansion.prompts)
        if len(prompts) > target:
            state.log(f"Expansion returned {len(prompts)} prompts; keeping the first {target}.")
            prompts = prompts[:target]
        elif len(prompts) < target:
            state.log(f"Expansion returned {len(prompts)} of {target} requested prompts.")
        events.emit(
            "prompts_expanded",
            session_id=session.id,
            count=len(prompts),
            aspect_ratio=expansion.aspect_ratio,
        )
        return ExpansionResult(prompts=prompts, aspect_ratio=expansion.aspect_ratio)

    def _stop(self, session: Session, state: SessionStateMachine, events: EventWriter) -> None:
        state.log("User interrupted the generation process.")
        state.stop()
        _emit_closing(events, state, "run_finished", session_id=session.id, status=state.status)


def _emit_closing(events: EventWriter, state: SessionStateMachine, event_type: str, **payload: Any) -> None:
    """Emit an event after the outcome is decided; a write failure only reaches the log."""
    try:
        events.emit(event_type, **payload)
    except Exception as exc:
        state.log(f"Event log unavailable: {str(exc) or type(exc).__name__}")
