from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path


ENV_FILE = Path("/etc/suasupload.env")

_TRUTHY = ("true", "1", "yes", "on", "enabled")

_BYTE_UNITS = {
    "": 1,
    "b": 1,
    "k": 1000,
    "kb": 1000,
    "kib": 1024,
    "m": 1000**2,
    "mb": 1000**2,
    "mib": 1024**2,
    "g": 1000**3,
    "gb": 1000**3,
    "gib": 1024**3,
    "t": 1000**4,
    "tb": 1000**4,
    "tib": 1024**4,
}


def _expand(p: str) -> Path:
    return Path(os.path.expanduser(p)).resolve()


def _parse_bytes(s: str) -> int:
    # "5GiB", "500MB", "1024"
    raw = s.strip().lower().replace(" ", "")
    digits = raw.rstrip("abcdefghijklmnopqrstuvwxyz")
    unit = raw[len(digits):]
    if not digits or unit not in _BYTE_UNITS:
        raise ValueError(f"Invalid byte size '{s}' (expected like 5GiB, 500MB or 1024)")
    return int(float(digits) * _BYTE_UNITS[unit])


def _parse_bool(s: str | None, *, default: bool) -> bool:
    if s is None or not str(s).strip():
        return default
    return str(s).strip().lower() in _TRUTHY


def _load_env_file(path: Path) -> None:
    """Fill unset SUAS_* variables from an env file (KEY=VALUE lines)."""
    if not path.exists():
        return
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        print(f"suasupload-config: Warning: Could not read {path}: {e}", file=sys.stderr)
        return
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key.startswith("SUAS_") and not os.environ.get(key, "").strip():
            os.environ[key] = value


@dataclass(frozen=True)
class Config:
    pin: str

    sign_base_url: str
    sign_path: str
    healthcheck_filename: str
    skip_healthcheck: bool

    max_files: int
    max_bytes: int

    lockout_base_ms: int
    lockout_cap_ms: int

    preview_dir: Path
    status_path: Path
    log_dir: Path | None

    @property
    def max_gib(self) -> float:
        return self.max_bytes / 1024**3


def load_config(
    *,
    pin: str | None = None,
    sign_base_url: str | None = None,
    sign_path: str | None = None,
    healthcheck_filename: str | None = None,
    skip_healthcheck: bool | None = None,
    max_files: int | None = None,
    max_bytes: int | str | None = None,
    lockout_base_ms: int | None = None,
    lockout_cap_ms: int | None = None,
    preview_dir: str | None = None,
    status_path: str | None = None,
    log_dir: str | None = None,
    env_file: Path | None = ENV_FILE,
) -> Config:
    if env_file is not None:
        _load_env_file(env_file)
    env = os.environ

    pin = pin if pin is not None else env.get("SUAS_PIN", "4321")

    sign_base_url = sign_base_url or env.get("SUAS_SIGN_BASE_URL", "http://127.0.0.1:8080")
    sign_path = sign_path or env.get("SUAS_SIGN_PATH", "/api/sign")
    healthcheck_filename = healthcheck_filename or env.get("SUAS_HEALTHCHECK_FILENAME", "healthcheck.txt")

    if skip_healthcheck is None:
        skip_healthcheck = _parse_bool(env.get("SUAS_SKIP_HEALTHCHECK"), default=False)

    max_files = int(max_files if max_files is not None else env.get("SUAS_MAX_FILES", "250"))
    if max_bytes is None:
        max_bytes = env.get("SUAS_MAX_BYTES", "5GiB")
    max_bytes = max_bytes if isinstance(max_bytes, int) else _parse_bytes(max_bytes)

    lockout_base_ms = int(
        lockout_base_ms if lockout_base_ms is not None else env.get("SUAS_LOCKOUT_BASE_MS", "1000")
    )
    lockout_cap_ms = int(
        lockout_cap_ms if lockout_cap_ms is not None else env.get("SUAS_LOCKOUT_CAP_MS", "30000")
    )

    preview_dir = preview_dir or env.get("SUAS_PREVIEW_DIR", "~/.suasupload/previews")
    status_path = status_path or env.get("SUAS_STATUS_PATH", "~/.suasupload/status.json")
    log_dir = log_dir or env.get("SUAS_LOG_DIR", "").strip() or None

    if not sign_path.startswith("/"):
        sign_path = "/" + sign_path

    cfg = Config(
        pin=pin,
        sign_base_url=sign_base_url.rstrip("/"),
        sign_path=sign_path.rstrip("/"),
        healthcheck_filename=healthcheck_filename,
        skip_healthcheck=bool(skip_healthcheck),
        max_files=max_files,
        max_bytes=max_bytes,
        lockout_base_ms=lockout_base_ms,
        lockout_cap_ms=lockout_cap_ms,
        preview_dir=_expand(preview_dir),
        status_path=_expand(status_path),
        log_dir=_expand(log_dir) if log_dir else None,
    )

    cfg.preview_dir.mkdir(parents=True, exist_ok=True)
    cfg.status_path.parent.mkdir(parents=True, exist_ok=True)
    if cfg.log_dir is not None:
        cfg.log_dir.mkdir(parents=True, exist_ok=True)
    return cfg
