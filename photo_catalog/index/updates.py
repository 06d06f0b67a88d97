from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from photo_catalog.core.models import TechnicalMetadata

from .schema import (
    AssetCustomValueRow,
    AssetTagRow,
    CustomFieldRow,
    MediaAssetRow,
    TagRow,
    TechnicalMetadataRow,
)


def find_or_create_tag(session: Session, value: str) -> TagRow:
    normalized = value.strip()
    if not normalized:
        raise ValueError("Tag value is required")
    tag = session.scalar(select(TagRow).where(TagRow.value == normalized))
    if tag is None:
        tag = TagRow(value=normalized)
        session.add(tag)
        session.flush()
    return tag


def link_tag(session: Session, asset: MediaAssetRow, value: str) -> AssetTagRow:
    """Attach a tag to an asset, reusing both the tag and the link when they exist."""
    tag = find_or_create_tag(session, value)
    link = session.scalar(
        select(AssetTagRow).where(AssetTagRow.asset_id == asset.id, AssetTagRow.tag_id == tag.id)
    )
    if link is None:
        link = AssetTagRow(asset_id=asset.id, tag_id=tag.id)
        session.add(link)
        session.flush()
    return link


def link_tags(session: Session, asset: MediaAssetRow, values: list[str]) -> int:
    linked = 0
    for value in values:
        if value and value.strip():
            link_tag(session, asset, value)
            linked += 1
    return linked


def find_or_create_field(session: Session, name: str) -> CustomFieldRow:
    normalized = name.strip()
    if not normalized:
        raise ValueError("Field name is required")
    field = session.scalar(select(CustomFieldRow).where(CustomFieldRow.name == normalized))
    if field is None:
        field = CustomFieldRow(name=normalized)
        session.add(field)
        session.flush()
    return field


def upsert_custom_value(
    session: Session, asset: MediaAssetRow, field_name: str, value: str
) -> AssetCustomValueRow:
    field = find_or_create_field(session, field_name)
    row = session.scalar(
        select(AssetCustomValueRow).where(
            AssetCustomValueRow.asset_id == asset.id,
            AssetCustomValueRow.field_id == field.id,
        )
    )
    if row is None:
        row = AssetCustomValueRow(asset_id=asset.id, field_id=field.id, value=value)
        session.add(row)
    else:
        row.value = value
    session.flush()
    return row


def replace_technical_metadata(
    session: Session, asset: MediaAssetRow, metadata: TechnicalMetadata
) -> TechnicalMetadataRow:
    """Overwrite every technical metadata column; values are never merged with the old row."""
    row = session.get(TechnicalMetadataRow, asset.id)
    if row is None:
        row = TechnicalMetadataRow(asset_id=asset.id)
        session.add(row)
    for name, value in metadata.model_dump().items():
        setattr(row, name, value)
    session.flush()
    return row


def asset_tag_values(session: Session, asset_id: int) -> list[str]:
    return list(
        session.scalars(
            select(TagRow.value)
            .join(AssetTagRow, AssetTagRow.tag_id == TagRow.id)
            .where(AssetTagRow.asset_id == asset_id)
            .order_by(TagRow.value)
        ).all()
    )


def asset_custom_values(session: Session, asset_id: int) -> dict[str, str]:
    rows = session.execute(
        select(CustomFieldRow.name, AssetCustomValueRow.value)
        .join(AssetCustomValueRow, AssetCustomValueRow.field_id == CustomFieldRow.id)
        .where(AssetCustomValueRow.asset_id == asset_id)
        .order_by(CustomFieldRow.name)
    ).all()
    return {name: value or "" for name, value in rows}
