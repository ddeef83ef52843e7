from __future__ import annotations

import argparse
import asyncio
import getpass
import sys
from pathlib import Path

from .config import Config, load_config
from .doctor import format_results, run_doctor
from .gate import INVALID_PIN
from .ledger import DONE, ERROR
from .logging_utils import setup_logging
from .session import SessionController
from .state import BRANCHES, Metadata
from .status import StatusWriter


_STATUS_LABELS = {
    "pending": "Pending",
    "uploading": "Uploading…",
    "done": "Uploaded ✔",
    "error": "Error - retry",
}


def _print_notice(message: str) -> None:
    print(message, file=sys.stderr)


def _add_common_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--sign-url", default=None, help="Signing service base URL (default: http://127.0.0.1:8080)")
    p.add_argument("--sign-path", default=None, help="Signing endpoint path (default: /api/sign)")
    p.add_argument(
        "--skip-healthcheck",
        action="store_true",
        default=None,
        help="Admit on a correct PIN without probing storage (or set SUAS_SKIP_HEALTHCHECK=true)",
    )
    p.add_argument("--max-files", type=int, default=None, help="Files per session (default: 250)")
    p.add_argument("--max-bytes", default=None, help="Total bytes per session, e.g. 5GiB (default: 5GiB)")
    p.add_argument("--preview-dir", default=None, help="Where previews are rendered (default: ~/.suasupload/previews)")
    p.add_argument("--status-path", default=None, help="Where to write status JSON (default: ~/.suasupload/status.json)")
    p.add_argument("--log-dir", default=None, help="Also write suasupload.log into this directory")
    p.add_argument("--quiet", action="store_true", help="Reduce log verbosity (INFO level only, no DEBUG)")


def _config_from_args(args: argparse.Namespace) -> Config:
    return load_config(
        sign_base_url=args.sign_url,
        sign_path=args.sign_path,
        skip_healthcheck=args.skip_healthcheck,
        max_files=args.max_files,
        max_bytes=args.max_bytes,
        preview_dir=args.preview_dir,
        status_path=args.status_path,
        log_dir=args.log_dir,
    )


def _metadata_from_args(args: argparse.Namespace) -> dict[str, str]:
    return {name: getattr(args, name) or "" for name in Metadata.field_names()}


async def _admit(ctl: SessionController, *, pin: str | None, attempts: int) -> bool:
    for _ in range(max(1, attempts)):
        candidate = pin if pin is not None else getpass.getpass("Enter PIN: ")
        if ctl.gate.is_locked():
            wait_ms = ctl.gate.remaining_ms()
            _print_notice(f"Locked, waiting {wait_ms / 1000:.0f} s…")
            await asyncio.sleep(wait_ms / 1000)
        result = await ctl.submit_pin(candidate)
        if result.admit:
            return True
        if pin is not None:
            # A PIN given on the command line is not re-prompted.
            return False
        if result.reason == INVALID_PIN and result.wait_ms:
            await asyncio.sleep(result.wait_ms / 1000)
    return False


async def _run_upload(args: argparse.Namespace, cfg: Config) -> int:
    paths = [Path(p).expanduser() for p in args.files]
    missing = [str(p) for p in paths if not p.is_file()]
    if missing:
        _print_notice(f"Not a file: {', '.join(missing)}")
        return 2

    status = StatusWriter(json_path=cfg.status_path)
    async with SessionController(cfg, notify=_print_notice, status=status) as ctl:
        if not await _admit(ctl, pin=args.pin, attempts=args.pin_attempts):
            return 2

        ctl.set_metadata(**_metadata_from_args(args))
        if not ctl.add_files(paths):
            return 2
        print(ctl.summary().summary_line())

        await ctl.upload_all()
        if args.retry_failed:
            for entry in ctl.ledger.entries():
                if entry.status == ERROR:
                    await ctl.retry(entry.id)

        entries = ctl.ledger.entries()
        for entry in entries:
            line = f"{_STATUS_LABELS.get(entry.status, entry.status):<14} {entry.source.name}"
            if entry.status == ERROR and entry.message:
                line += f"  ({entry.message})"
            print(line)

        done = sum(1 for e in entries if e.status == DONE)
        print(f"{done}/{len(entries)} uploaded")
        return 0 if done == len(entries) else 1


def cmd_upload(args: argparse.Namespace) -> int:
    cfg = _config_from_args(args)
    setup_logging(log_dir=cfg.log_dir, verbose=not args.quiet)
    return asyncio.run(_run_upload(args, cfg))


def cmd_doctor(args: argparse.Namespace) -> int:
    cfg = _config_from_args(args)
    setup_logging(log_dir=cfg.log_dir, verbose=not args.quiet)
    rc, results = asyncio.run(run_doctor(cfg, skip_network=args.skip_network))
    print(format_results(results))
    return rc


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="suasupload", description="PIN-gated batch uploader for signed storage URLs")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_up = sub.add_parser("upload", help="Authenticate, then upload files through signed URLs")
    _add_common_args(p_up)
    p_up.add_argument("files", nargs="+", help="Files to upload")
    p_up.add_argument("--pin", default=None, help="PIN (prompted for when omitted)")
    p_up.add_argument("--pin-attempts", type=int, default=3, help="PIN prompts before giving up (default: 3)")
    p_up.add_argument("--retry-failed", action="store_true", help="Retry failed files once after the first pass")
    p_up.add_argument("--first-name", dest="first_name", default=None)
    p_up.add_argument("--middle-name", dest="middle_name", default=None, help="Middle name or initial")
    p_up.add_argument("--last-name", dest="last_name", default=None)
    p_up.add_argument("--branch", default=None, choices=BRANCHES, help="Military branch")
    p_up.add_argument("--rank", default=None)
    p_up.add_argument("--serial", default=None, help="Serial number (required before any upload)")
    p_up.add_argument("--boot-camp", dest="boot_camp", default=None, help="Boot camp location")
    p_up.add_argument("--last-unit", dest="last_unit", default=None)
    p_up.set_defaults(func=cmd_upload)

    p_doc = sub.add_parser("doctor", help="Check configuration, signing endpoint and storage")
    _add_common_args(p_doc)
    p_doc.add_argument("--skip-network", action="store_true", help="Skip signing and storage checks")
    p_doc.set_defaults(func=cmd_doctor)

    return p


def main(argv: list[str] | None = None) -> None:
    argv = argv if argv is not None else sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(argv)
    rc = args.func(args)
    raise SystemExit(rc)
