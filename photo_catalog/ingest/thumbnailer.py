from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import Optional

from PIL import Image

logger = logging.getLogger(__name__)

THUMBNAIL_DIR_NAME = "thumbnails"
DEFAULT_MAX_SIZE = 200

_SAVE_FORMATS = {
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
    ".png": "PNG",
    ".gif": "GIF",
    ".bmp": "BMP",
    ".tif": "TIFF",
    ".tiff": "TIFF",
    ".webp": "WEBP",
}


def thumbnail_path_for(photo_path: Path, repo_root: Path) -> Path:
    return repo_root / THUMBNAIL_DIR_NAME / f"{photo_path.stem}_thumb{photo_path.suffix}"


def build_thumbnail(
    photo_path: Path,
    repo_root: Optional[Path],
    max_size: int = DEFAULT_MAX_SIZE,
) -> Optional[Path]:
    """Create a bounded-box thumbnail beside the repository. Returns the thumb path or None on failure."""
    try:
        root = repo_root if repo_root is not None else Path(tempfile.gettempdir())
        thumb_path = thumbnail_path_for(photo_path, root)
        thumb_path.parent.mkdir(parents=True, exist_ok=True)
        fmt = _SAVE_FORMATS.get(photo_path.suffix.lower(), "JPEG")
        with Image.open(photo_path) as img:
            img.thumbnail((max_size, max_size))
            if fmt == "JPEG" and img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            if fmt == "JPEG":
                img.save(thumb_path, format=fmt, quality=85)
            else:
                img.save(thumb_path, format=fmt)
        return thumb_path.resolve()
    except Exception as exc:
        logger.warning("Thumbnail: failed for %s: %s", photo_path.name, exc)
        return None
