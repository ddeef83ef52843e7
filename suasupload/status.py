from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import asdict, dataclass
from pathlib import Path


logger = logging.getLogger(__name__)


@dataclass
class Status:
    state: str  # idle|gate|form|uploading|done|error
    step: str
    message: str
    counts: dict[str, int] | None = None
    files_used: int = 0
    max_files: int = 0
    bytes_used: int = 0
    max_bytes: int = 0
    updated_unix: float | None = None

    def summary_line(self) -> str:
        return f"{self.files_used}/{self.max_files} files • {self.bytes_used / 1_048_576:.1f} MB"


class StatusWriter:
    def __init__(self, *, json_path: Path) -> None:
        self.json_path = json_path

    def write(self, status: Status) -> None:
        status.updated_unix = time.time()
        payload = asdict(status)
        payload["counts"] = status.counts or {}
        try:
            self._atomic_write_json(self.json_path, payload)
        except OSError as e:
            # Progress reporting must not interrupt uploads.
            logger.warning(f"Could not write status to {self.json_path}: {e}")

    @staticmethod
    def _atomic_write_json(path: Path, payload: dict) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2, sort_keys=True) + os.linesep, encoding="utf-8")
        tmp.replace(path)
