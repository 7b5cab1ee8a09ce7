from __future__ import annotations

import json
from pathlib import Path
from typing import Callable

import pytest

from synthset_engine.errors import SessionNotFound, SynthesisError
from synthset_engine.models.registry import BACKEND_DRYRUN, DRYRUN_MODEL, ModelConfig
from synthset_engine.pipeline.cancellation import CancellationToken
from synthset_engine.pipeline.orchestrator import PipelineOrchestrator
from synthset_engine.prompts.expander import PromptExpander, TextRequest
from synthset_engine.sessions.models import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_STOPPED,
)
from synthset_engine.sessions.store import SessionStore
from synthset_engine.synthesizers.base import SynthesizerRegistry


class _Generator:
    name = "fake"

    def __init__(self, reply: str | Exception, on_call: Callable[[], None] | None = None) -> None:
        self.reply = reply
        self.on_call = on_call

    def generate(self, request: TextRequest) -> str:
        if self.on_call:
            self.on_call()
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


class _Synth:
    backend_type = BACKEND_DRYRUN

    def __init__(self, fail_at: set[int] | None = None, on_call: Callable[[int], None] | None = None) -> None:
        self.fail_at = fail_at or set()
        self.on_call = on_call
        self.prompts: list[str] = []
        self.ratios: list[str] = []

    def synthesize(self, prompt, reference_images, aspect_ratio, backend) -> str:
        idx = len(self.prompts)
        self.prompts.append(prompt)
        self.ratios.append(aspect_ratio)
        if self.on_call:
            self.on_call(idx)
        if idx in self.fail_at:
            raise SynthesisError(f"backend refused item {idx}")
        return f"data:image/png;base64,aW1n{idx}"


def _reply(prompts: list[str], ratio: str = "9:16") -> str:
    return json.dumps({"prompts": prompts, "aspectRatio": ratio})


def _setup(generator: _Generator, synth: _Synth, total: int = 3, events_path: Path | None = None):
    store = SessionStore()
    session = store.create("pantograph with broken carbon strip", total_target=total)
    orchestrator = PipelineOrchestrator(
        store,
        PromptExpander(generator),
        SynthesizerRegistry([synth]),
        events_path=events_path,
    )
    return store, session.id, orchestrator


def _messages(logs: list[str]) -> list[str]:
    return [line.split("] ", 1)[1] for line in logs]


def test_successful_run(tmp_path: Path) -> None:
    events_path = tmp_path / "events.jsonl"
    synth = _Synth()
    store, session_id, orchestrator = _setup(_Generator(_reply(["a", "b", "c"])), synth, events_path=events_path)

    result = orchestrator.run(session_id, DRYRUN_MODEL)

    session = result.session
    assert result.status == STATUS_COMPLETED
    assert result.error is None
    assert session.progress == 100
    assert session.aspect_ratio == "9:16"
    assert session.generated_prompts == ["a", "b", "c"]
    assert [image.id for image in session.generated_images] == [f"{session_id}_{idx}" for idx in range(3)]
    assert [image.prompt for image in session.generated_images] == ["a", "b", "c"]
    assert synth.ratios == ["9:16"] * 3
    messages = _messages(session.logs)
    assert messages[0] == "Starting generation task for 3 images."
    assert "Generated 3 unique variations." in messages
    assert "Target Aspect Ratio: 9:16" in messages
    assert messages[-1] == "Task completed successfully."

    events = [json.loads(line) for line in events_path.read_text(encoding="utf-8").splitlines()]
    types = [event["type"] for event in events]
    assert types[0] == "run_started"
    assert types.count("image_created") == 3
    assert types[-1] == "run_finished"
    assert events[-1]["status"] == STATUS_COMPLETED
    assert all(event["run_id"] == result.run_id for event in events)
    assert events[1]["type"] == "prompts_expanded"


def test_expansion_failure_falls_back_to_base_prompt() -> None:
    synth = _Synth()
    store, session_id, orchestrator = _setup(_Generator(RuntimeError("model offline")), synth, total=2)

    session = orchestrator.run(session_id, DRYRUN_MODEL).session

    assert session.status == STATUS_COMPLETED
    assert session.generated_prompts == ["pantograph with broken carbon strip"] * 2
    assert session.aspect_ratio == "16:9"
    assert synth.ratios == ["16:9", "16:9"]
    assert any(
        message.startswith("Warning: Prompt expansion failed:") and "Using original prompt as fallback." in message
        for message in _messages(session.logs)
    )


def test_unparseable_expansion_also_falls_back() -> None:
    store, session_id, orchestrator = _setup(_Generator("sorry, no JSON today"), _Synth(), total=2)
    session = orchestrator.run(session_id, DRYRUN_MODEL).session
    assert session.status == STATUS_COMPLETED
    assert len(session.generated_images) == 2


def test_item_failure_is_skipped_without_gap_filling() -> None:
    synth = _Synth(fail_at={1})
    store, session_id, orchestrator = _setup(_Generator(_reply(["a", "b", "c"])), synth)

    session = orchestrator.run(session_id, DRYRUN_MODEL).session

    assert session.status == STATUS_COMPLETED
    assert session.progress == 100
    assert synth.prompts == ["a", "b", "c"]
    assert [image.id for image in session.generated_images] == [f"{session_id}_0", f"{session_id}_2"]
    assert "Error generating image 2: backend refused item 1" in _messages(session.logs)


def test_all_items_failing_still_completes() -> None:
    store, session_id, orchestrator = _setup(_Generator(_reply(["a", "b"])), _Synth(fail_at={0, 1}), total=2)
    session = orchestrator.run(session_id, DRYRUN_MODEL).session
    assert session.status == STATUS_COMPLETED
    assert session.generated_images == []
    assert session.progress == 100


def test_extra_prompts_are_truncated() -> None:
    synth = _Synth()
    store, session_id, orchestrator = _setup(_Generator(_reply(["a", "b", "c", "d"])), synth, total=2)

    session = orchestrator.run(session_id, DRYRUN_MODEL).session

    assert session.generated_prompts == ["a", "b"]
    assert synth.prompts == ["a", "b"]


def test_short_expansion_is_used_as_is() -> None:
    synth = _Synth()
    store, session_id, orchestrator = _setup(_Generator(_reply(["only"])), synth, total=3)

    session = orchestrator.run(session_id, DRYRUN_MODEL).session

    assert session.status == STATUS_COMPLETED
    assert synth.prompts == ["only"]
    assert "Expansion returned 1 of 3 requested prompts." in _messages(session.logs)


def test_progress_is_monotonic_while_running() -> None:
    holder: dict = {}
    seen: list[int] = []

    def observe(idx: int) -> None:
        seen.append(holder["store"].get(holder["id"]).progress)

    synth = _Synth(fail_at={1}, on_call=observe)
    store, session_id, orchestrator = _setup(_Generator(_reply(["a", "b", "c", "d"])), synth, total=4)
    holder.update(store=store, id=session_id)

    final = orchestrator.run(session_id, DRYRUN_MODEL).session

    seen.append(final.progress)
    assert seen == sorted(seen)
    assert seen[0] == 15
    assert seen[-1] == 100


def test_cancel_during_item_keeps_in_flight_image() -> None:
    token = CancellationToken()

    def cancel_on_second(idx: int) -> None:
        if idx == 1:
            token.cancel()

    synth = _Synth(on_call=cancel_on_second)
    store, session_id, orchestrator = _setup(_Generator(_reply(["a", "b", "c"])), synth)

    session = orchestrator.run(session_id, DRYRUN_MODEL, token=token).session

    assert session.status == STATUS_STOPPED
    assert synth.prompts == ["a", "b"]
    assert len(session.generated_images) == 2
    assert session.progress < 100
    assert _messages(session.logs)[-1] == "User interrupted the generation process."


def test_cancel_during_expansion_generates_nothing() -> None:
    token = CancellationToken()
    synth = _Synth()
    store, session_id, orchestrator = _setup(_Generator(_reply(["a", "b", "c"]), on_call=token.cancel), synth)

    session = orchestrator.run(session_id, DRYRUN_MODEL, token=token).session

    assert session.status == STATUS_STOPPED
    assert synth.prompts == []
    assert session.generated_images == []
    assert session.generated_prompts == ["a", "b", "c"]


def test_unknown_backend_type_fails_the_session() -> None:
    store, session_id, orchestrator = _setup(_Generator(_reply(["a"])), _Synth(), total=1)
    backend = ModelConfig(id="mystery", name="Mystery", type="MYSTERY", model_id="m")

    result = orchestrator.run(session_id, backend)

    assert result.status == STATUS_FAILED
    assert result.error is not None
    assert _messages(result.session.logs)[-1].startswith("Critical Error: No synthesizer available")


def test_store_failure_fails_the_session(monkeypatch) -> None:
    store, session_id, orchestrator = _setup(_Generator(_reply(["a"])), _Synth(), total=1)

    def broken_append(session_id, image):
        raise OSError("disk full")

    monkeypatch.setattr(store, "append_image", broken_append)
    result = orchestrator.run(session_id, DRYRUN_MODEL)

    assert result.status == STATUS_FAILED
    assert isinstance(result.error.__cause__, OSError)
    assert _messages(result.session.logs)[-1] == "Critical Error: disk full"


def test_unknown_session_raises_before_running() -> None:
    store, session_id, orchestrator = _setup(_Generator(_reply(["a"])), _Synth(), total=1)
    with pytest.raises(SessionNotFound):
        orchestrator.run("missing", DRYRUN_MODEL)


def _failing_emit(fail_on: set[str] | None = None):
    def emit(self, event_type, **payload):
        if fail_on is None or event_type in fail_on:
            raise OSError("disk full")
        return {"type": event_type, **payload}

    return emit


def test_event_log_failure_at_start_fails_the_session(monkeypatch) -> None:
    monkeypatch.setattr("synthset_engine.runs.events.EventWriter.emit", _failing_emit())
    synth = _Synth()
    store, session_id, orchestrator = _setup(_Generator(_reply(["a"])), synth, total=1)

    result = orchestrator.run(session_id, DRYRUN_MODEL)

    assert result.status == STATUS_FAILED
    assert isinstance(result.error.__cause__, OSError)
    assert synth.prompts == []
    messages = _messages(result.session.logs)
    assert "Critical Error: disk full" in messages
    assert messages[-1] == "Event log unavailable: disk full"


def test_closing_event_failure_keeps_completed_status(monkeypatch) -> None:
    monkeypatch.setattr("synthset_engine.runs.events.EventWriter.emit", _failing_emit({"run_finished"}))
    store, session_id, orchestrator = _setup(_Generator(_reply(["a", "b"])), _Synth(), total=2)

    result = orchestrator.run(session_id, DRYRUN_MODEL)

    assert result.status == STATUS_COMPLETED
    assert result.error is None
    assert len(result.session.generated_images) == 2
    assert _messages(result.session.logs)[-1] == "Event log unavailable: disk full"


def test_failure_after_completion_does_not_flip_status(monkeypatch) -> None:
    store, session_id, orchestrator = _setup(_Generator(_reply(["a"])), _Synth(), total=1)
    append_log = store.append_log

    def flaky_append_log(target_id, message):
        if message == "Task completed successfully.":
            raise OSError("log store offline")
        return append_log(target_id, message)

    monkeypatch.setattr(store, "append_log", flaky_append_log)
    result = orchestrator.run(session_id, DRYRUN_MODEL)

    assert result.status == STATUS_COMPLETED
    assert result.session.progress == 100
    assert isinstance(result.error.__cause__, OSError)
    assert _messages(result.session.logs)[-1] == "Critical Error: log store offline"
