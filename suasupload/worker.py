from __future__ import annotations

import logging
from typing import Callable

import aiohttp

from . import transport
from .errors import SigningUnavailable, TransferFailed, UploadError, ValidationFailed
from .ledger import DONE, ERROR, PENDING, UPLOADING
from .signing import SignedURLResolver
from .state import SessionState


logger = logging.getLogger(__name__)

SERIAL_REQUIRED = "Please enter your Serial Number before uploading."

Notify = Callable[[str], None]


def _log_notify(message: str) -> None:
    logger.warning(message)


class UploadWorker:
    """Drives one ledger entry through resolve, probe and PUT.

    ``upload`` never raises: every failure ends with the entry in ``error``
    and a message handed to ``notify``.
    """

    def __init__(
        self,
        *,
        resolver: SignedURLResolver,
        http: aiohttp.ClientSession,
        notify: Notify | None = None,
    ) -> None:
        self.resolver = resolver
        self.http = http
        self.notify = notify or _log_notify

    def _fail(self, state: SessionState, entry_id: str, error: UploadError) -> None:
        if state.ledger.update(entry_id, status=ERROR, message=error.user_message):
            self.notify(error.user_message)

    async def upload(self, state: SessionState, entry_id: str) -> None:
        ledger = state.ledger
        entry = ledger.get(entry_id)
        if entry is None:
            logger.debug(f"Upload requested for unknown entry {entry_id}")
            return
        if entry.status not in (PENDING, ERROR):
            # uploading: a transfer is already in flight; done: nothing left to do
            logger.debug(f"Upload of {entry.source.name} skipped, status is {entry.status}")
            return

        if not state.metadata.has_serial():
            logger.warning(f"Upload of {entry.source.name} refused: serial number missing")
            self._fail(state, entry_id, ValidationFailed("serial number missing", user_message=SERIAL_REQUIRED))
            return

        # No await between the status check above and this transition.
        ledger.update(entry_id, status=UPLOADING, progress=0, message=None)
        source = entry.source
        logger.info(f"Uploading {source.name} ({source.size} bytes)")

        try:
            try:
                url = await self.resolver.resolve(source.name)
            except SigningUnavailable:
                raise
            except Exception as e:  # noqa: BLE001 - anything else while signing is still "service unavailable"
                raise SigningUnavailable(f"sign failed for {source.name}: {e}") from e
            await transport.probe(self.http, url)
            await transport.put_file(self.http, url, source)
        except UploadError as e:
            logger.error(f"Upload of {source.name} failed: {e}")
            self._fail(state, entry_id, e)
            return
        except Exception as e:  # noqa: BLE001 - a worker must not take down its siblings
            logger.exception(f"Unexpected error uploading {source.name}")
            self._fail(state, entry_id, TransferFailed(str(e)))
            return

        ledger.update(entry_id, status=DONE, progress=100, message=None)
        logger.info(f"Uploaded {source.name}")
