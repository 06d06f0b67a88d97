from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from photo_catalog.core.models import AssetSummary, TechnicalMetadata

from .schema import MediaAssetRow, TechnicalMetadataRow
from .updates import asset_custom_values, asset_tag_values


def _load_technical(row: TechnicalMetadataRow | None) -> TechnicalMetadata | None:
    if row is None:
        return None
    return TechnicalMetadata(
        captured_at=row.captured_at,
        camera_make=row.camera_make,
        camera_model=row.camera_model,
        gps_latitude=row.gps_latitude,
        gps_longitude=row.gps_longitude,
        exposure_time=row.exposure_time,
        f_number=row.f_number,
        iso=row.iso,
        focal_length=row.focal_length,
        orientation=row.orientation,
    )


def build_asset_summary(session: Session, row: MediaAssetRow) -> AssetSummary:
    return AssetSummary(
        id=row.id,
        file_path=row.file_path,
        file_name=row.file_name,
        file_size=row.file_size,
        owner_email=row.owner.email if row.owner else None,
        image_width=row.image_width,
        image_height=row.image_height,
        thumbnail_path=row.thumbnail_path,
        tags=asset_tag_values(session, row.id),
        custom_fields=asset_custom_values(session, row.id),
        metadata=_load_technical(row.technical),
    )


def find_asset_by_path(session: Session, file_path: str) -> Optional[MediaAssetRow]:
    return session.scalar(select(MediaAssetRow).where(MediaAssetRow.file_path == file_path))


def load_asset_summary(session: Session, asset_id: int) -> Optional[AssetSummary]:
    row = session.get(MediaAssetRow, asset_id)
    if row is None:
        return None
    return build_asset_summary(session, row)
