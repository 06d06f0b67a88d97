"""Ingest pipeline: file-level enrichment of a single image into the catalog."""

from .exif_reader import read_dimensions, read_exif
from .pipeline import ProcessResult, Stage, process_asset, process_asset_report, run_stage
from .scanner import SUPPORTED_EXTENSIONS, is_supported_image, scan_photos
from .sidecar import parse_sidecar
from .tagger import AI_TAGGER_NAME, AiTagger, TaggerError
from .thumbnailer import build_thumbnail

__all__ = [
    "AI_TAGGER_NAME",
    "AiTagger",
    "ProcessResult",
    "SUPPORTED_EXTENSIONS",
    "Stage",
    "TaggerError",
    "build_thumbnail",
    "is_supported_image",
    "parse_sidecar",
    "process_asset",
    "process_asset_report",
    "read_dimensions",
    "read_exif",
    "run_stage",
    "scan_photos",
]
