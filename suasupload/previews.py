from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from PIL import Image, ImageOps

from . import media

if TYPE_CHECKING:
    from .ledger import FileDescriptor


logger = logging.getLogger(__name__)

HANDLE_SCHEME = "preview://"


class PreviewError(RuntimeError):
    pass


def render_thumbnail(
    src_path: Path,
    *,
    dst_path: Path,
    max_long_edge: int = 256,
    quality: int = 80,
) -> None:
    """
    - Auto-orient using EXIF orientation
    - Resize to max long edge (only shrink)
    - Strip metadata (save without EXIF)
    """
    dst_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with Image.open(src_path) as im:
            im = ImageOps.exif_transpose(im)
            if im.mode != "RGB":
                im = im.convert("RGB")

            w, h = im.size
            long_edge = max(w, h)
            if long_edge > max_long_edge:
                scale = max_long_edge / float(long_edge)
                new_size = (max(1, int(w * scale)), max(1, int(h * scale)))
                im = im.resize(new_size, Image.Resampling.BILINEAR)

            im.save(dst_path, format="JPEG", quality=int(quality), optimize=True)
    except Exception as e:  # noqa: BLE001 - callers only need one error type
        dst_path.unlink(missing_ok=True)
        raise PreviewError(
            f"Failed to render preview for {src_path.name}\n"
            f"  Source: {src_path}\n"
            f"  Destination: {dst_path}\n"
            f"  Original error: {e}"
        ) from e


@dataclass(frozen=True)
class _Preview:
    source: Path
    rendered: Path | None


class PreviewRegistry:
    """Live preview handles bound to source files.

    A handle stays valid until released. Rendered thumbnails live under
    ``preview_dir`` and are deleted on release.
    """

    def __init__(self, preview_dir: Path, *, max_long_edge: int = 256) -> None:
        self.preview_dir = preview_dir
        self.max_long_edge = max_long_edge
        self._previews: dict[str, _Preview] = {}

    @property
    def active(self) -> int:
        return len(self._previews)

    def create(self, descriptor: FileDescriptor) -> str:
        token = uuid.uuid4().hex
        rendered = None
        if media.is_image(descriptor.content_type):
            rendered = self.preview_dir / f"{token}.jpg"
            render_thumbnail(descriptor.path, dst_path=rendered, max_long_edge=self.max_long_edge)
        handle = f"{HANDLE_SCHEME}{token}"
        self._previews[handle] = _Preview(source=descriptor.path, rendered=rendered)
        logger.debug(f"Preview {handle} created for {descriptor.name}")
        return handle

    def resolve(self, handle: str) -> Path | None:
        preview = self._previews.get(handle)
        if preview is None:
            return None
        return preview.rendered or preview.source

    def release(self, handle: str | None) -> None:
        if not handle or not handle.startswith(HANDLE_SCHEME):
            return
        preview = self._previews.pop(handle, None)
        if preview is None:
            return
        if preview.rendered is not None:
            try:
                preview.rendered.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not delete preview {preview.rendered}: {e}")
        logger.debug(f"Preview {handle} released")

    def release_all(self) -> None:
        for handle in list(self._previews):
            self.release(handle)
