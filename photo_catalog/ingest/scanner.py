from __future__ import annotations

from pathlib import Path, PurePath

SUPPORTED_EXTENSIONS = frozenset(
    {".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tiff", ".tif", ".webp"}
)


def is_supported_image(path: str | PurePath) -> bool:
    return PurePath(path).suffix.lower() in SUPPORTED_EXTENSIONS


def scan_photos(root: str | Path) -> list[Path]:
    """Walk a directory tree and return every recognised image file, sorted by path."""
    root_path = Path(root)
    files: list[Path] = []
    for path in root_path.rglob("*"):
        if ".git" in path.parts or "thumbnails" in path.relative_to(root_path).parts:
            continue
        if not path.is_file():
            continue
        if not is_supported_image(path):
            continue
        files.append(path.resolve())
    return sorted(files)
