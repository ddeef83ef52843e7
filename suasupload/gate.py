from __future__ import annotations

import hmac
import logging
import time
from dataclasses import dataclass
from typing import Callable

import aiohttp

from . import transport
from .errors import StorageUnavailable, UploadError
from .signing import SignedURLResolver


logger = logging.getLogger(__name__)

ADMITTED = "admitted"
LOCKED = "locked"
INVALID_PIN = "invalid_pin"
STORAGE_UNAVAILABLE = "storage_unavailable"


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


def validate_pin(candidate: str, expected: str) -> bool:
    return hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))


def lockout_wait_ms(failures: int, *, base_ms: int = 1000, cap_ms: int = 30000) -> int:
    return min(2**failures * base_ms, cap_ms)


@dataclass
class LockoutState:
    consecutive_failures: int = 0
    locked_until_ms: float = 0.0

    def reset(self) -> None:
        self.consecutive_failures = 0
        self.locked_until_ms = 0.0


@dataclass(frozen=True)
class GateResult:
    admit: bool
    reason: str
    wait_ms: int | None = None
    message: str | None = None


class AccessGate:
    """
    PIN check with exponential-backoff lockout, followed by a storage
    healthcheck before admitting anyone.

    A storage outage never counts against the PIN failure counter.
    """

    def __init__(
        self,
        *,
        pin: str,
        resolver: SignedURLResolver,
        http: aiohttp.ClientSession,
        skip_healthcheck: bool = False,
        healthcheck_filename: str = "healthcheck.txt",
        lockout_base_ms: int = 1000,
        lockout_cap_ms: int = 30000,
        clock: Callable[[], float] = _monotonic_ms,
    ) -> None:
        self._pin = pin
        self.resolver = resolver
        self.http = http
        self.skip_healthcheck = skip_healthcheck
        self.healthcheck_filename = healthcheck_filename
        self.lockout_base_ms = lockout_base_ms
        self.lockout_cap_ms = lockout_cap_ms
        self.clock = clock
        self.lockout = LockoutState()

    def remaining_ms(self) -> int:
        return max(0, int(self.lockout.locked_until_ms - self.clock()))

    def is_locked(self) -> bool:
        return self.clock() < self.lockout.locked_until_ms

    async def healthcheck(self) -> None:
        """
        Raises:
            StorageUnavailable: the probe file could not be signed or storage did not answer
        """
        try:
            url = await self.resolver.resolve(self.healthcheck_filename)
            await transport.probe(self.http, url)
        except UploadError as e:
            raise StorageUnavailable(f"Healthcheck failed: {e}") from e

    async def submit_pin(self, candidate: str) -> GateResult:
        now = self.clock()
        if now < self.lockout.locked_until_ms:
            wait = int(self.lockout.locked_until_ms - now)
            logger.debug(f"PIN submission ignored, locked for another {wait} ms")
            return GateResult(admit=False, reason=LOCKED, wait_ms=wait)

        if not validate_pin(candidate, self._pin):
            self.lockout.consecutive_failures += 1
            wait = lockout_wait_ms(
                self.lockout.consecutive_failures,
                base_ms=self.lockout_base_ms,
                cap_ms=self.lockout_cap_ms,
            )
            self.lockout.locked_until_ms = now + wait
            logger.warning(f"Incorrect PIN (failure #{self.lockout.consecutive_failures}), locked for {wait} ms")
            return GateResult(
                admit=False,
                reason=INVALID_PIN,
                wait_ms=wait,
                message=f"Incorrect PIN. Please wait {round(wait / 1000)} s.",
            )

        self.lockout.reset()
        if self.skip_healthcheck:
            logger.info("PIN accepted (healthcheck skipped)")
            return GateResult(admit=True, reason=ADMITTED)

        try:
            await self.healthcheck()
        except StorageUnavailable as e:
            logger.error(str(e))
            return GateResult(admit=False, reason=STORAGE_UNAVAILABLE, message=e.user_message)

        logger.info("PIN accepted, storage reachable")
        return GateResult(admit=True, reason=ADMITTED)
