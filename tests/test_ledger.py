from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

from suasupload import media
from suasupload.ledger import DONE, ERROR, PENDING, UPLOADING, FileDescriptor, UploadLedger
from suasupload.previews import PreviewRegistry


GIB = 1024**3


def _ledger(tmp_path: Path, **kwargs) -> UploadLedger:
    return UploadLedger(PreviewRegistry(tmp_path / "previews"), **kwargs)


def _virtual(name: str, size: int, content_type: str = "application/octet-stream") -> FileDescriptor:
    # Size is declared only; nothing is read from disk for non-image types.
    return FileDescriptor(name=name, size=size, content_type=content_type, path=Path("/nonexistent") / name)


def _snapshot(ledger: UploadLedger) -> list[tuple]:
    return [(e.id, e.source, e.status, e.progress, e.preview, e.message) for e in ledger.entries()]


def test_file_descriptor_from_path(tmp_path: Path):
    p = tmp_path / "report.pdf"
    p.write_bytes(b"%PDF-1.4")
    d = FileDescriptor.from_path(p)
    assert d.name == "report.pdf"
    assert d.size == 8
    assert d.content_type == "application/pdf"
    assert d.path == p


def test_add_assigns_stable_ids_and_pending(tmp_path: Path):
    ledger = _ledger(tmp_path)
    assert ledger.add([_virtual("a.bin", 1), _virtual("b.bin", 2)]) is True

    entries = ledger.entries()
    assert [e.source.name for e in entries] == ["a.bin", "b.bin"]
    assert all(e.status == PENDING and e.progress == 0 for e in entries)
    assert len({e.id for e in entries}) == 2
    assert ledger.bytes_used == 3
    assert len(ledger) == 2


def test_remove_does_not_shift_other_ids(tmp_path: Path):
    ledger = _ledger(tmp_path)
    ledger.add([_virtual("a.bin", 1), _virtual("b.bin", 1), _virtual("c.bin", 1)])
    a, b, c = ledger.entries()

    assert ledger.remove(a.id) is True
    assert a.id not in ledger
    assert b.id in ledger
    assert ledger.get(b.id).source.name == "b.bin"
    assert ledger.get(c.id).source.name == "c.bin"
    assert ledger.remove(a.id) is False


def test_count_quota_rejects_whole_batch(tmp_path: Path):
    ledger = _ledger(tmp_path)
    ledger.add([_virtual(f"f{i}.bin", 1) for i in range(249)])
    before = _snapshot(ledger)

    assert ledger.add([_virtual("x.bin", 1), _virtual("y.bin", 1)]) is False
    assert _snapshot(ledger) == before
    assert ledger.last_rejection == "Limit is 250 files per session."

    assert ledger.add([_virtual("z.bin", 1)]) is True
    assert len(ledger) == 250
    assert ledger.last_rejection is None


def test_byte_quota_rejects_6gib_into_empty_ledger(tmp_path: Path):
    ledger = _ledger(tmp_path)
    assert ledger.add([_virtual("huge.iso", 6 * GIB)]) is False
    assert len(ledger) == 0
    assert ledger.last_rejection == "Total exceeds 5.0 GB."


def test_byte_quota_counts_existing_entries(tmp_path: Path):
    ledger = _ledger(tmp_path)
    assert ledger.add([_virtual("a.iso", 3 * GIB)]) is True
    before = _snapshot(ledger)

    assert ledger.add([_virtual("b.iso", 1 * GIB), _virtual("c.iso", 1 * GIB + 1)]) is False
    assert _snapshot(ledger) == before

    # exactly at the limit is fine
    assert ledger.add([_virtual("b.iso", 2 * GIB)]) is True
    assert ledger.bytes_used == 5 * GIB


def test_rejected_batch_allocates_no_previews(tmp_path: Path):
    ledger = _ledger(tmp_path, max_files=1)
    assert ledger.add([_virtual("a.mp4", 1, "video/mp4"), _virtual("b.mp4", 1, "video/mp4")]) is False
    assert ledger.previews.active == 0


def test_preview_selection_by_type(tmp_path: Path):
    img = tmp_path / "photo.jpg"
    Image.new("RGB", (800, 600), (120, 160, 200)).save(img, format="JPEG")

    ledger = _ledger(tmp_path)
    ledger.add(
        [
            FileDescriptor.from_path(img),
            _virtual("clip.mp4", 1, "video/mp4"),
            _virtual("doc.pdf", 1, "application/pdf"),
            _virtual("notes.txt", 1, "text/plain"),
            _virtual("blob.bin", 1, ""),
        ]
    )
    previews = [e.preview for e in ledger.entries()]

    assert previews[0].startswith("preview://")
    assert previews[1].startswith("preview://")
    assert previews[2:] == [media.PDF_ICON, media.TEXT_ICON, media.FILE_ICON]
    assert ledger.previews.active == 2


def test_broken_image_falls_back_to_file_icon(tmp_path: Path):
    bad = tmp_path / "broken.png"
    bad.write_bytes(b"not a png")
    ledger = _ledger(tmp_path)

    assert ledger.add([FileDescriptor.from_path(bad)]) is True
    assert ledger.entries()[0].preview == media.FILE_ICON
    assert ledger.previews.active == 0


def test_failed_preview_allocation_releases_batch(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    ledger = _ledger(tmp_path)
    created = []
    real_create = ledger.previews.create

    def flaky_create(descriptor):
        if len(created) == 1:
            raise OSError("disk full")
        handle = real_create(descriptor)
        created.append(handle)
        return handle

    monkeypatch.setattr(ledger.previews, "create", flaky_create)

    with pytest.raises(OSError, match="disk full"):
        ledger.add([_virtual("a.mp4", 1, "video/mp4"), _virtual("b.mp4", 1, "video/mp4")])
    assert len(ledger) == 0
    assert ledger.previews.active == 0


def test_update_and_counts(tmp_path: Path):
    ledger = _ledger(tmp_path)
    ledger.add([_virtual("a.bin", 1), _virtual("b.bin", 1), _virtual("c.bin", 1)])
    a, b, c = ledger.entries()

    assert ledger.update(a.id, status=UPLOADING) is True
    assert ledger.update(b.id, status=DONE, progress=100) is True
    assert ledger.update(c.id, status=ERROR, message="boom") is True
    assert ledger.counts() == {PENDING: 0, UPLOADING: 1, DONE: 1, ERROR: 1}
    assert ledger.get(c.id).message == "boom"
    assert ledger.pending() == []


def test_update_rejects_bad_fields(tmp_path: Path):
    ledger = _ledger(tmp_path)
    ledger.add([_virtual("a.bin", 1)])
    entry_id = ledger.entries()[0].id

    with pytest.raises(ValueError, match="Cannot update"):
        ledger.update(entry_id, source=None)
    with pytest.raises(ValueError, match="Unknown status"):
        ledger.update(entry_id, status="paused")


def test_update_after_remove_is_ignored(tmp_path: Path):
    ledger = _ledger(tmp_path)
    ledger.add([_virtual("a.bin", 1)])
    entry_id = ledger.entries()[0].id
    ledger.remove(entry_id)

    assert ledger.update(entry_id, status=DONE) is False
    assert len(ledger) == 0


def test_remove_and_clear_release_previews(tmp_path: Path):
    ledger = _ledger(tmp_path)
    ledger.add([_virtual(f"{i}.mp4", 1, "video/mp4") for i in range(3)])
    assert ledger.previews.active == 3

    ledger.remove(ledger.entries()[0].id)
    assert ledger.previews.active == 2

    ledger.clear()
    assert ledger.previews.active == 0
    assert len(ledger) == 0
    assert ledger.bytes_used == 0
