from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import aiohttp

from . import media
from .errors import TransferFailed

if TYPE_CHECKING:
    from .ledger import FileDescriptor


logger = logging.getLogger(__name__)


def _short(url: str) -> str:
    # Signed URLs carry credentials in the query string; keep them out of logs.
    return url.split("?", 1)[0]


async def probe(http: aiohttp.ClientSession, url: str) -> None:
    """Metadata-only availability check against a signed URL.

    Raises:
        TransferFailed: non-2xx response or transport error
    """
    try:
        async with http.request("HEAD", url) as resp:
            if not resp.ok:
                raise TransferFailed(f"HEAD {_short(url)} returned HTTP {resp.status}")
    except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
        raise TransferFailed(f"HEAD {_short(url)} failed: {e}") from e


async def put_file(http: aiohttp.ClientSession, url: str, descriptor: FileDescriptor) -> None:
    """Send the whole file body to a signed URL.

    Raises:
        TransferFailed: the file could not be read, non-2xx response, or transport error
    """
    headers = {"Content-Type": media.transfer_content_type(descriptor.content_type)}
    try:
        with descriptor.path.open("rb") as f:
            async with http.request("PUT", url, data=f, headers=headers) as resp:
                if not resp.ok:
                    raise TransferFailed(f"upload {resp.status}: PUT {_short(url)}")
    except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
        raise TransferFailed(f"PUT {_short(url)} for {descriptor.name} failed: {e}") from e
    logger.debug(f"PUT {descriptor.name} ({descriptor.size} bytes) -> {_short(url)}")
