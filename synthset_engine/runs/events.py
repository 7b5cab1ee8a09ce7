"""Append-only events stream."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..utils import now_utc_iso, sanitize_payload


# Several runs may share one events file.
_WRITE_LOCK = threading.Lock()


@dataclass
class EventWriter:
    path: Path | None
    run_id: str

    def emit(self, event_type: str, **payload: Any) -> dict[str, Any]:
        event = {
            "type": event_type,
            "run_id": self.run_id,
            "ts": now_utc_iso(),
        }
        event.update(sanitize_payload(payload))
        if self.path is None:
            return event
        self.path.parent.mkdir(parents=True, exist_ok=True)
        line = f"{json.dumps(event, ensure_ascii=False)}\n"
        with _WRITE_LOCK:
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(line)
        return event
