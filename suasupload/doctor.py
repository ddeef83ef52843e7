from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import aiohttp

from . import transport
from .config import Config
from .errors import UploadError
from .signing import SignedURLResolver


@dataclass(frozen=True)
class CheckResult:
    name: str
    ok: bool
    message: str
    is_fatal: bool = False


def _bytes_human(n: int) -> str:
    if n < 1024:
        return f"{n}B"
    value = n / 1024.0
    for unit in ("KB", "MB", "GB"):
        if value < 1024.0:
            return f"{value:.1f}{unit}"
        value /= 1024.0
    return f"{value:.1f}TB"


def _check_config(cfg: Config) -> CheckResult:
    if not cfg.pin:
        return CheckResult("config", False, "No PIN configured (set SUAS_PIN)", is_fatal=True)
    return CheckResult(
        "config",
        True,
        f"Signing: {cfg.sign_base_url}{cfg.sign_path} | Limits: {cfg.max_files} files, "
        f"{_bytes_human(cfg.max_bytes)} | Healthcheck: {'skipped' if cfg.skip_healthcheck else 'on'}",
    )


def _check_writable(name: str, path: Path) -> CheckResult:
    try:
        path.mkdir(parents=True, exist_ok=True)
        tmp = path / ".suasupload_write_test.tmp"
        tmp.write_text("{}", encoding="utf-8")
        tmp.unlink()
        return CheckResult(name, True, f"Writable: {path}")
    except OSError as e:
        return CheckResult(name, False, f"Not writable: {path}: {e}", is_fatal=False)


async def _check_signing(resolver: SignedURLResolver, filename: str) -> tuple[CheckResult, str | None]:
    try:
        url = await resolver.resolve(filename)
    except UploadError as e:
        return CheckResult("signing", False, f"Signing endpoint did not return a URL: {e}", is_fatal=True), None
    return CheckResult("signing", True, f"Signed URL issued for {filename}"), url


async def _check_storage(http: aiohttp.ClientSession, url: str) -> CheckResult:
    try:
        await transport.probe(http, url)
    except UploadError as e:
        return CheckResult("storage", False, f"Storage probe failed: {e}", is_fatal=True)
    return CheckResult("storage", True, "Storage answered HEAD")


async def run_doctor(
    cfg: Config,
    *,
    http: aiohttp.ClientSession | None = None,
    skip_network: bool = False,
) -> tuple[int, list[CheckResult]]:
    results: list[CheckResult] = []
    results.append(_check_config(cfg))
    results.append(_check_writable("status_path", cfg.status_path.parent))
    results.append(_check_writable("preview_dir", cfg.preview_dir))

    if not skip_network:
        owns = http is None
        if http is None:
            http = aiohttp.ClientSession()
        try:
            resolver = SignedURLResolver(http, base_url=cfg.sign_base_url, sign_path=cfg.sign_path)
            signing, url = await _check_signing(resolver, cfg.healthcheck_filename)
            results.append(signing)
            # Only probe storage once we have something to probe
            if url is not None:
                results.append(await _check_storage(http, url))
        finally:
            if owns:
                await http.close()

    fatal = any((not r.ok) and r.is_fatal for r in results)
    rc = 2 if fatal else 0
    return rc, results


def format_results(results: list[CheckResult]) -> str:
    lines: list[str] = []
    for r in results:
        status = "OK" if r.ok else ("FAIL" if r.is_fatal else "WARN")
        lines.append(f"[{status}] {r.name}: {r.message}")
    return os.linesep.join(lines)
