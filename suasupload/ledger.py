from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from . import media
from .errors import ValidationFailed
from .previews import PreviewError, PreviewRegistry


logger = logging.getLogger(__name__)

PENDING = "pending"
UPLOADING = "uploading"
DONE = "done"
ERROR = "error"

STATUSES = (PENDING, UPLOADING, DONE, ERROR)

_UPDATABLE = frozenset({"status", "progress", "message"})


@dataclass(frozen=True)
class FileDescriptor:
    name: str
    size: int
    content_type: str
    path: Path

    @classmethod
    def from_path(cls, path: Path) -> FileDescriptor:
        path = Path(path)
        return cls(
            name=path.name,
            size=path.stat().st_size,
            content_type=media.guess_content_type(path),
            path=path,
        )


@dataclass
class FileEntry:
    id: str
    source: FileDescriptor
    status: str = PENDING
    progress: int = 0
    preview: str | None = None
    message: str | None = None


def _gib(n: int) -> str:
    return f"{n / 1024**3:.1f} GB"


class UploadLedger:
    """Files queued for the current session, keyed by stable entry id."""

    def __init__(
        self,
        previews: PreviewRegistry,
        *,
        max_files: int = 250,
        max_bytes: int = 5 * 1024**3,
    ) -> None:
        self.previews = previews
        self.max_files = max_files
        self.max_bytes = max_bytes
        self.last_rejection: str | None = None
        self._entries: dict[str, FileEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._entries

    @property
    def bytes_used(self) -> int:
        return sum(e.source.size for e in self._entries.values())

    def entries(self) -> list[FileEntry]:
        return list(self._entries.values())

    def pending(self) -> list[FileEntry]:
        return [e for e in self._entries.values() if e.status == PENDING]

    def get(self, entry_id: str) -> FileEntry | None:
        return self._entries.get(entry_id)

    def counts(self) -> dict[str, int]:
        out = {s: 0 for s in STATUSES}
        for e in self._entries.values():
            out[e.status] += 1
        return out

    def _check_quota(self, incoming: list[FileDescriptor]) -> None:
        count = len(self._entries) + len(incoming)
        if count > self.max_files:
            raise ValidationFailed(
                f"Batch of {len(incoming)} would bring the session to {count} files (limit {self.max_files})",
                user_message=f"Limit is {self.max_files} files per session.",
            )
        total = self.bytes_used + sum(d.size for d in incoming)
        if total > self.max_bytes:
            raise ValidationFailed(
                f"Batch would bring the session to {total} bytes (limit {self.max_bytes})",
                user_message=f"Total exceeds {_gib(self.max_bytes)}.",
            )

    def _preview_for(self, descriptor: FileDescriptor) -> str:
        if media.preview_kind(descriptor.content_type) != "live":
            return media.fallback_icon(descriptor.content_type)
        try:
            return self.previews.create(descriptor)
        except PreviewError as e:
            logger.debug(f"Preview fallback for {descriptor.name}: {e}")
            return media.FILE_ICON

    def add(self, batch: Iterable[FileDescriptor]) -> bool:
        """Accept the whole batch or none of it."""
        incoming = list(batch)
        self.last_rejection = None
        try:
            self._check_quota(incoming)
        except ValidationFailed as e:
            self.last_rejection = e.user_message
            logger.warning(f"Rejected batch: {e}")
            return False

        staged: list[FileEntry] = []
        try:
            for d in incoming:
                staged.append(FileEntry(id=uuid.uuid4().hex, source=d, preview=self._preview_for(d)))
        except Exception:
            for entry in staged:
                self.previews.release(entry.preview)
            raise

        for entry in staged:
            self._entries[entry.id] = entry
        logger.info(
            f"Added {len(staged)} file(s); session now {len(self)}/{self.max_files} files, "
            f"{self.bytes_used} bytes"
        )
        return True

    def update(self, entry_id: str, **patch) -> bool:
        unknown = set(patch) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update entry fields: {', '.join(sorted(unknown))}")
        entry = self._entries.get(entry_id)
        if entry is None:
            # Entry was removed while a transfer was still running.
            logger.debug(f"Ignoring update for removed entry {entry_id}: {patch}")
            return False
        if "status" in patch and patch["status"] not in STATUSES:
            raise ValueError(f"Unknown status: {patch['status']!r}")
        for k, v in patch.items():
            setattr(entry, k, v)
        return True

    def remove(self, entry_id: str) -> bool:
        entry = self._entries.get(entry_id)
        if entry is None:
            return False
        self.previews.release(entry.preview)
        del self._entries[entry_id]
        logger.debug(f"Removed {entry.source.name} ({entry_id})")
        return True

    def clear(self) -> None:
        for entry in self._entries.values():
            self.previews.release(entry.preview)
        self._entries.clear()
