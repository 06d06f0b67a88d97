from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

SIDECAR_SUFFIX = ".metadata"
TAGS_KEY = "tags"

SidecarValue = Union[str, list[str]]


def sidecar_path_for(image_path: str | Path) -> Path:
    """Companion file for an image: the full image file name plus ".metadata"."""
    image = Path(image_path)
    return image.with_name(image.name + SIDECAR_SUFFIX)


def split_tags(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def parse_sidecar_text(text: str, source: str = "<sidecar>") -> dict[str, SidecarValue]:
    """
    Parse key=value lines.

    Blank lines are ignored. Lines without "=" or with an empty key are skipped
    with a warning. The value is everything after the first "=" and may be empty.
    The reserved "tags" key is split on commas into trimmed, non-empty entries.
    Later duplicates of a key replace earlier ones.
    """
    fields: dict[str, SidecarValue] = {}
    for line_number, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line:
            continue
        key, sep, value = line.partition("=")
        if not sep:
            logger.warning("Sidecar: line %d in %s has no '=' (skipping)", line_number, source)
            continue
        key = key.strip()
        if not key:
            logger.warning("Sidecar: line %d in %s has an empty key (skipping)", line_number, source)
            continue
        if key == TAGS_KEY:
            fields[key] = split_tags(value)
        else:
            fields[key] = value
    return fields


def parse_sidecar(path: str | Path) -> dict[str, SidecarValue]:
    """Parse a sidecar file; a missing file yields no fields."""
    sidecar = Path(path)
    if not sidecar.is_file():
        logger.debug("Sidecar: no metadata file at %s", sidecar)
        return {}
    # Undecodable bytes become U+FFFD so one bad line cannot cost the rest of the file.
    text = sidecar.read_text(encoding="utf-8", errors="replace")
    fields = parse_sidecar_text(text, source=sidecar.name)
    logger.debug("Sidecar: parsed %d field(s) from %s", len(fields), sidecar.name)
    return fields
