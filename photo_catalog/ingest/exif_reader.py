from __future__ import annotations

import logging
import math
import numbers
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from PIL import Image

from photo_catalog.core.models import TechnicalMetadata

logger = logging.getLogger(__name__)

EXIF_IFD_POINTER = 0x8769
GPS_IFD_POINTER = 0x8825

DATETIME_ORIGINAL_TAG = 36867  # EXIF DateTimeOriginal
DATETIME_TAG = 306  # IFD0 DateTime fallback
ORIENTATION_TAG = 274
MAKE_TAG = 271
MODEL_TAG = 272
EXPOSURE_TIME_TAG = 33434
FNUMBER_TAG = 33437
ISO_TAG = 34855  # PhotographicSensitivity
FOCAL_LENGTH_TAG = 37386

GPS_LATITUDE_REF = 1
GPS_LATITUDE = 2
GPS_LONGITUDE_REF = 3
GPS_LONGITUDE = 4

GPS_PRECISION = 8

DATETIME_FORMATS = (
    "%Y:%m:%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y:%m:%d %H:%M:%S.%f",
)


def _to_float(value: object) -> Optional[float]:
    if isinstance(value, tuple) and len(value) == 2 and value[1]:
        return float(value[0]) / float(value[1])
    if isinstance(value, (int, float)) or isinstance(value, numbers.Real):
        result = float(value)
        # IFDRational with a zero denominator reads as NaN
        return None if math.isnan(result) else result
    return None


def _to_int(value: object) -> Optional[int]:
    if isinstance(value, tuple) and value:
        value = value[0]
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    as_float = _to_float(value)
    return int(as_float) if as_float is not None else None


def _clean_text(value: object) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    text = str(value).replace("\x00", "").strip()
    return text or None


def parse_exif_datetime(value: object) -> Optional[datetime]:
    """Parse an EXIF date string, trying each known textual layout in turn."""
    text = _clean_text(value)
    if not text:
        return None
    for fmt in DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    logger.debug("Could not parse EXIF date/time %r", text)
    return None


def convert_gps_coordinate(values: object, ref: object) -> Optional[float]:
    """Degrees/minutes/seconds plus hemisphere ref to signed decimal degrees."""
    if not isinstance(values, tuple) or len(values) != 3 or ref is None:
        return None
    parts = [_to_float(v) for v in values]
    if any(p is None for p in parts):
        return None
    degrees, minutes, seconds = parts  # type: ignore[misc]
    coordinate = degrees + minutes / 60.0 + seconds / 3600.0
    if isinstance(ref, bytes):
        ref = ref.decode("ascii", errors="ignore")
    if isinstance(ref, str) and ref.strip("\x00 ").upper() in {"S", "W"}:
        coordinate *= -1
    return round(coordinate, GPS_PRECISION)


def _lookup(primary: dict, fallback: dict, tag: int) -> object:
    value = primary.get(tag)
    if value is None:
        value = fallback.get(tag)
    return value


def read_exif(path: str | Path) -> TechnicalMetadata:
    """Extract technical metadata from a photo file; unreadable input yields an empty result."""
    try:
        with Image.open(path) as img:
            exif = img.getexif()
            if not exif:
                return TechnicalMetadata()
            base = dict(exif)
            try:
                sub_ifd = dict(exif.get_ifd(EXIF_IFD_POINTER))
            except Exception:
                sub_ifd = {}
            try:
                gps_info = dict(exif.get_ifd(GPS_IFD_POINTER))
            except Exception:
                gps_info = {}
    except Exception as exc:
        # Ingest should never fail because of malformed EXIF.
        logger.debug("EXIF: unreadable metadata in %s: %s", path, exc)
        return TechnicalMetadata()

    captured_at = parse_exif_datetime(_lookup(sub_ifd, base, DATETIME_ORIGINAL_TAG))
    if captured_at is None:
        captured_at = parse_exif_datetime(base.get(DATETIME_TAG))

    gps_latitude = None
    gps_longitude = None
    if gps_info:
        gps_latitude = convert_gps_coordinate(
            gps_info.get(GPS_LATITUDE), gps_info.get(GPS_LATITUDE_REF)
        )
        gps_longitude = convert_gps_coordinate(
            gps_info.get(GPS_LONGITUDE), gps_info.get(GPS_LONGITUDE_REF)
        )

    return TechnicalMetadata(
        captured_at=captured_at,
        camera_make=_clean_text(base.get(MAKE_TAG)),
        camera_model=_clean_text(base.get(MODEL_TAG)),
        gps_latitude=gps_latitude,
        gps_longitude=gps_longitude,
        exposure_time=_to_float(_lookup(sub_ifd, base, EXPOSURE_TIME_TAG)),
        f_number=_to_float(_lookup(sub_ifd, base, FNUMBER_TAG)),
        iso=_to_int(_lookup(sub_ifd, base, ISO_TAG)),
        focal_length=_to_float(_lookup(sub_ifd, base, FOCAL_LENGTH_TAG)),
        orientation=_to_int(base.get(ORIENTATION_TAG)),
    )


def read_dimensions(path: str | Path) -> Optional[tuple[int, int]]:
    """Pixel width/height from the image header, or None when the file cannot be decoded."""
    try:
        with Image.open(path) as img:
            width, height = img.size
    except Exception as exc:
        logger.debug("EXIF: could not read dimensions of %s: %s", path, exc)
        return None
    return int(width), int(height)
