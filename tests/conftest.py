from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from suasupload.config import Config, load_config
from suasupload.ledger import FileDescriptor
from suasupload.signing import build_sign_url


SIGN_BASE = "http://sign.test"
STORAGE = "https://storage.test/bucket"


class FakeResponse:
    def __init__(
        self,
        status: int = 200,
        body: str = "",
        *,
        content_type: str = "text/plain",
        hold: asyncio.Event | None = None,
    ) -> None:
        self.status = status
        self.body = body
        self.headers = {"Content-Type": content_type}
        self.hold = hold

    @classmethod
    def json_body(cls, payload, status: int = 200) -> FakeResponse:
        return cls(status, json.dumps(payload), content_type="application/json; charset=utf-8")

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    async def json(self, content_type=None):
        return json.loads(self.body)

    async def text(self) -> str:
        return self.body

    async def __aenter__(self):
        if self.hold is not None:
            await self.hold.wait()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class _Raising:
    def __init__(self, exc: BaseException) -> None:
        self.exc = exc

    async def __aenter__(self):
        raise self.exc

    async def __aexit__(self, *a):
        return False


class FakeHttp:
    """Stands in for aiohttp.ClientSession; unmatched requests get a 404."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], object] = {}
        self.calls: list[tuple[str, str, dict]] = []
        self.closed = False

    def route(self, method: str, url: str, response) -> None:
        self.routes[(method.upper(), url)] = response

    def request(self, method: str, url: str, **kwargs):
        data = kwargs.get("data")
        if data is not None and hasattr(data, "read"):
            kwargs["body"] = data.read()
        self.calls.append((method.upper(), url, kwargs))
        handler = self.routes.get((method.upper(), url), FakeResponse(404))
        if callable(handler) and not isinstance(handler, FakeResponse):
            handler = handler()
        if isinstance(handler, BaseException):
            return _Raising(handler)
        return handler

    def methods(self) -> list[str]:
        return [c[0] for c in self.calls]

    async def close(self) -> None:
        self.closed = True


def sign_query_url(filename: str) -> str:
    return SIGN_BASE + build_sign_url(filename, "query")


def sign_path_url(filename: str) -> str:
    return SIGN_BASE + build_sign_url(filename, "path")


def signed_url(filename: str) -> str:
    return f"{STORAGE}/{filename}?X-Amz-Signature=fake"


def route_happy_path(http: FakeHttp, filename: str, *, put_status: int = 200) -> str:
    url = signed_url(filename)
    http.route("GET", sign_query_url(filename), FakeResponse.json_body({"url": url}))
    http.route("HEAD", url, FakeResponse(200))
    http.route("PUT", url, FakeResponse(put_status))
    return url


@pytest.fixture
def http() -> FakeHttp:
    return FakeHttp()


@pytest.fixture
def cfg(tmp_path: Path) -> Config:
    return load_config(
        pin="4321",
        sign_base_url=SIGN_BASE,
        sign_path="/api/sign",
        skip_healthcheck=False,
        max_files=250,
        max_bytes=5 * 1024**3,
        lockout_base_ms=1000,
        lockout_cap_ms=30000,
        preview_dir=str(tmp_path / "previews"),
        status_path=str(tmp_path / "status.json"),
        env_file=None,
    )


@pytest.fixture
def make_file(tmp_path: Path):
    def _make(name: str, content: bytes = b"hello", content_type: str | None = None) -> FileDescriptor:
        path = tmp_path / "files" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        d = FileDescriptor.from_path(path)
        if content_type is not None:
            d = FileDescriptor(name=d.name, size=d.size, content_type=content_type, path=d.path)
        return d

    return _make
