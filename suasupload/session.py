from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Iterable

import aiohttp

from .config import Config
from .errors import ValidationFailed
from .gate import AccessGate, GateResult
from .ledger import ERROR, FileDescriptor, FileEntry, UploadLedger
from .previews import PreviewRegistry
from .signing import SignedURLResolver
from .state import STEP_FORM, STEP_PIN, SessionState
from .status import Status, StatusWriter
from .worker import Notify, UploadWorker


logger = logging.getLogger(__name__)


class SessionController:
    """
    Gate -> form -> upload -> reset for one operator at a time.

    Use as an async context manager, or pass in an existing ``http`` session
    (which the controller then leaves open on exit).
    """

    def __init__(
        self,
        cfg: Config,
        *,
        http: aiohttp.ClientSession | None = None,
        notify: Notify | None = None,
        status: StatusWriter | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.cfg = cfg
        self.notify = notify
        self.status = status
        self._clock = clock
        self._owns_http = http is None
        self.http = http
        self.previews = PreviewRegistry(cfg.preview_dir)
        self.state = SessionState(
            ledger=UploadLedger(self.previews, max_files=cfg.max_files, max_bytes=cfg.max_bytes)
        )
        self.gate: AccessGate | None = None
        self.worker: UploadWorker | None = None
        if http is not None:
            self._wire(http)

    def _wire(self, http: aiohttp.ClientSession) -> None:
        resolver = SignedURLResolver(http, base_url=self.cfg.sign_base_url, sign_path=self.cfg.sign_path)
        gate_kwargs = {}
        if self._clock is not None:
            gate_kwargs["clock"] = self._clock
        self.gate = AccessGate(
            pin=self.cfg.pin,
            resolver=resolver,
            http=http,
            skip_healthcheck=self.cfg.skip_healthcheck,
            healthcheck_filename=self.cfg.healthcheck_filename,
            lockout_base_ms=self.cfg.lockout_base_ms,
            lockout_cap_ms=self.cfg.lockout_cap_ms,
            **gate_kwargs,
        )
        self.worker = UploadWorker(resolver=resolver, http=http, notify=self._notify)

    async def __aenter__(self) -> SessionController:
        if self.http is None:
            self.http = aiohttp.ClientSession()
            self._wire(self.http)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.finish_session()
        if self._owns_http and self.http is not None:
            await self.http.close()
            self.http = None

    def _notify(self, message: str) -> None:
        if self.notify is not None:
            self.notify(message)
        else:
            logger.warning(message)

    def _require_wired(self) -> None:
        if self.gate is None or self.worker is None:
            raise RuntimeError("SessionController used outside 'async with' and without an http session")

    def _require_form(self) -> None:
        if self.state.step != STEP_FORM:
            raise ValidationFailed("session not admitted", user_message="Please enter the PIN first.")

    @property
    def step(self) -> str:
        return self.state.step

    @property
    def ledger(self) -> UploadLedger:
        return self.state.ledger

    def summary(self, *, state: str | None = None, message: str = "") -> Status:
        ledger = self.state.ledger
        return Status(
            state=state or ("gate" if self.state.step == STEP_PIN else "form"),
            step=self.state.step,
            message=message,
            counts=ledger.counts(),
            files_used=len(ledger),
            max_files=ledger.max_files,
            bytes_used=ledger.bytes_used,
            max_bytes=ledger.max_bytes,
        )

    def _report(self, *, state: str | None = None, message: str = "") -> None:
        if self.status is not None:
            self.status.write(self.summary(state=state, message=message))

    async def submit_pin(self, pin: str) -> GateResult:
        self._require_wired()
        self.state.pin = pin
        result = await self.gate.submit_pin(pin)
        if result.admit:
            self.state.step = STEP_FORM
            self._report(message="Admitted")
        elif result.message:
            self._notify(result.message)
            self._report(message=result.message)
        return result

    def set_metadata(self, **fields: str) -> None:
        self.state.metadata.update(**fields)

    def add_files(self, files: Iterable[FileDescriptor | Path | str]) -> bool:
        self._require_form()
        batch = [f if isinstance(f, FileDescriptor) else FileDescriptor.from_path(Path(f)) for f in files]
        accepted = self.state.ledger.add(batch)
        if not accepted:
            self._notify(self.state.ledger.last_rejection or "Files rejected.")
        self._report(message=f"{len(batch)} file(s) {'added' if accepted else 'rejected'}")
        return accepted

    def remove(self, entry_id: str) -> bool:
        removed = self.state.ledger.remove(entry_id)
        if removed:
            self._report(message="File removed")
        return removed

    async def upload(self, entry_id: str) -> None:
        self._require_wired()
        self._require_form()
        await self.worker.upload(self.state, entry_id)
        self._report(state="uploading")

    async def retry(self, entry_id: str) -> bool:
        """Explicit error -> uploading transition. Returns False if the entry is not in error."""
        entry = self.state.ledger.get(entry_id)
        if entry is None or entry.status != ERROR:
            return False
        logger.info(f"Retrying {entry.source.name}")
        await self.upload(entry_id)
        return True

    async def upload_all(self) -> list[FileEntry]:
        self._require_wired()
        self._require_form()
        ids = [e.id for e in self.state.ledger.pending()]
        logger.info(f"Uploading {len(ids)} pending file(s)")
        await asyncio.gather(*(self.worker.upload(self.state, i) for i in ids))
        counts = self.state.ledger.counts()
        self._report(
            state="error" if counts[ERROR] else "done",
            message=f"{counts['done']} uploaded, {counts[ERROR]} failed",
        )
        return [e for e in (self.state.ledger.get(i) for i in ids) if e is not None]

    def finish_session(self) -> None:
        self.state.reset()
        self.previews.release_all()
        self._report(state="idle", message="Session finished")
