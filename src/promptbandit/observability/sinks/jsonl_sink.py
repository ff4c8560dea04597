"""JSONL file sink: append JSON lines to a file."""

from __future__ import annotations

import json
from pathlib import Path


class JsonlSink:
    """Append JSON lines to a file, one open/close per write."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def write(self, event_dict: dict) -> None:
        with open(self._path, "a", encoding="utf-8") as f:
            f.write(json.dumps(event_dict, default=str) + "\n")
