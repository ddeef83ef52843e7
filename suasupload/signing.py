from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from urllib.parse import quote, urljoin

import aiohttp

from .errors import SigningUnavailable


logger = logging.getLogger(__name__)

# Characters left alone by JavaScript's encodeURIComponent, which signing
# backends written against browsers expect.
_URI_COMPONENT_SAFE = "-_.!~*'()"


def encode_filename(filename: str) -> str:
    return quote(filename, safe=_URI_COMPONENT_SAFE)


def build_sign_url(filename: str, mode: str = "query", *, sign_path: str = "/api/sign") -> str:
    enc = encode_filename(filename)
    if mode == "path":
        return f"{sign_path}/{enc}"
    return f"{sign_path}?filename={enc}"


@dataclass(frozen=True)
class SignAttempt:
    mode: str
    method: str
    target: str
    json_body: dict | None = None


def sign_attempts(filename: str, *, sign_path: str = "/api/sign") -> list[SignAttempt]:
    return [
        SignAttempt("query", "GET", build_sign_url(filename, "query", sign_path=sign_path)),
        SignAttempt("path", "GET", build_sign_url(filename, "path", sign_path=sign_path)),
        SignAttempt("post", "POST", sign_path, json_body={"filename": filename}),
    ]


class SignedURLResolver:
    """Obtain a signed upload URL, trying each request shape the backend may accept."""

    def __init__(self, http: aiohttp.ClientSession, *, base_url: str, sign_path: str = "/api/sign") -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.sign_path = sign_path

    def _sign_url(self, target: str) -> str:
        # Appended, not joined: the base URL may carry a path prefix.
        return self.base_url + target

    def _absolute(self, url: str) -> str:
        return urljoin(self.base_url + "/", url)

    async def _try(self, attempt: SignAttempt) -> str | None:
        kwargs = {}
        if attempt.json_body is not None:
            kwargs["json"] = attempt.json_body
        try:
            async with self.http.request(attempt.method, self._sign_url(attempt.target), **kwargs) as resp:
                if not resp.ok:
                    logger.debug(f"Sign {attempt.mode}: HTTP {resp.status}")
                    return None
                ctype = resp.headers.get("Content-Type", "")
                if "application/json" in ctype:
                    data = await resp.json(content_type=None)
                    url = data.get("url") if isinstance(data, dict) else None
                    url = url.strip() if isinstance(url, str) else None
                else:
                    url = (await resp.text()).strip()
        except (aiohttp.ClientError, asyncio.TimeoutError, json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.debug(f"Sign {attempt.mode}: {type(e).__name__}: {e}")
            return None
        if not url:
            logger.debug(f"Sign {attempt.mode}: response carried no URL")
            return None
        return self._absolute(url)

    async def resolve(self, filename: str) -> str:
        """
        Returns a signed URL for ``filename``.

        Raises:
            SigningUnavailable: every strategy failed
        """
        for attempt in sign_attempts(filename, sign_path=self.sign_path):
            url = await self._try(attempt)
            if url:
                logger.debug(f"Signed {filename} via {attempt.mode}")
                return url
        raise SigningUnavailable(f"sign failed for {filename}: all strategies exhausted")
