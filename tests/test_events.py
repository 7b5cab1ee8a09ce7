from __future__ import annotations

import json
from pathlib import Path

from synthset_engine.runs.events import EventWriter


def test_event_writer(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "events.jsonl"
    writer = EventWriter(path, "run-123")
    writer.emit("run_started", session_id="s1", total_target=4)
    writer.emit("run_finished", session_id="s1", status="completed")
    lines = path.read_text(encoding="utf-8").strip().splitlines()
    assert len(lines) == 2
    payload = json.loads(lines[0])
    assert payload["type"] == "run_started"
    assert payload["run_id"] == "run-123"
    assert "ts" in payload
    assert payload["total_target"] == 4


def test_event_writer_redacts_image_payloads(tmp_path: Path) -> None:
    path = tmp_path / "events.jsonl"
    event = EventWriter(path, "run-1").emit(
        "image_created",
        url="data:image/png;base64,QUJDREVG",
        api_key="sk-secret",
    )
    text = path.read_text(encoding="utf-8")
    assert "QUJDREVG" not in text
    assert "sk-secret" not in text
    assert event["url"].startswith("<data-url:")
    assert event["api_key"] == "<omitted>"


def test_event_writer_without_path_only_returns_event() -> None:
    event = EventWriter(None, "run-1").emit("session_created", session_id="s1")
    assert event["type"] == "session_created"
    assert event["session_id"] == "s1"
