from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from photo_catalog.core.models import TechnicalMetadata
from photo_catalog.index import (
    ROLE_ADMIN,
    ROLE_USER,
    AccountRow,
    AssetTagRow,
    MediaAssetRow,
    OwnerResolutionError,
    TagRow,
    init_db,
    list_executions,
    record_execution,
    resolve_owner,
    session_factory,
)
from photo_catalog.index.updates import (
    asset_custom_values,
    asset_tag_values,
    link_tags,
    replace_technical_metadata,
    upsert_custom_value,
)


def _session():
    engine = init_db("sqlite+pysqlite:///:memory:")
    return session_factory(engine)


def _asset(session) -> MediaAssetRow:
    asset = MediaAssetRow(file_path="/tmp/p1.jpg", file_name="p1.jpg")
    session.add(asset)
    session.flush()
    return asset


def test_resolve_owner_prefers_hint_then_first_admin() -> None:
    SessionLocal = _session()
    with SessionLocal() as session:
        session.add_all(
            [
                AccountRow(email="user@example.com", role=ROLE_USER),
                AccountRow(email="first-admin@example.com", role=ROLE_ADMIN),
                AccountRow(email="second-admin@example.com", role=ROLE_ADMIN),
            ]
        )
        session.flush()

        assert resolve_owner(session, "USER@example.com").email == "user@example.com"
        assert resolve_owner(session, "nobody@example.com").email == "first-admin@example.com"
        assert resolve_owner(session, None).email == "first-admin@example.com"


def test_resolve_owner_without_admin_fails() -> None:
    SessionLocal = _session()
    with SessionLocal() as session:
        session.add(AccountRow(email="user@example.com", role=ROLE_USER))
        session.flush()
        with pytest.raises(OwnerResolutionError):
            resolve_owner(session, "stranger@example.com")


def test_link_tags_reuses_tags_and_links() -> None:
    SessionLocal = _session()
    with SessionLocal() as session:
        asset = _asset(session)
        assert link_tags(session, asset, ["beach", " sunset ", ""]) == 2
        link_tags(session, asset, ["beach", "sunset"])
        session.commit()

        assert session.scalar(select(func.count()).select_from(TagRow)) == 2
        assert session.scalar(select(func.count()).select_from(AssetTagRow)) == 2
        assert asset_tag_values(session, asset.id) == ["beach", "sunset"]


def test_upsert_custom_value_overwrites() -> None:
    SessionLocal = _session()
    with SessionLocal() as session:
        asset = _asset(session)
        upsert_custom_value(session, asset, "location", "Paris")
        upsert_custom_value(session, asset, "location", "Lyon")
        upsert_custom_value(session, asset, "note", "")
        session.commit()

        assert asset_custom_values(session, asset.id) == {"location": "Lyon", "note": ""}


def test_replace_technical_metadata_is_wholesale() -> None:
    SessionLocal = _session()
    with SessionLocal() as session:
        asset = _asset(session)
        replace_technical_metadata(
            session,
            asset,
            TechnicalMetadata(camera_make="Canon", iso=400, gps_latitude=40.44611111),
        )
        row = replace_technical_metadata(
            session,
            asset,
            TechnicalMetadata(captured_at=datetime(2022, 5, 1, tzinfo=timezone.utc)),
        )
        session.commit()

        assert row.camera_make is None
        assert row.iso is None
        assert row.gps_latitude is None
        assert row.captured_at.year == 2022


def test_execution_ledger_filters_and_orders() -> None:
    SessionLocal = _session()
    with SessionLocal() as session:
        asset = _asset(session)
        record_execution(
            session, script_id=None, script_name="AI_TAGGER", asset_id=asset.id, success=True
        )
        record_execution(
            session,
            script_id=None,
            script_name="AI_TAGGER",
            asset_id=asset.id,
            success=False,
            error_message="boom",
        )
        record_execution(session, script_id=None, script_name="nightly", asset_id=None, success=True)
        session.commit()

        tagger_entries = list_executions(session, script_name="AI_TAGGER")
        assert [entry.status for entry in tagger_entries] == ["failure", "success"]
        assert tagger_entries[0].error_message == "boom"
        assert len(list_executions(session, asset_id=asset.id)) == 2
        assert len(list_executions(session)) == 3
        assert len(list_executions(session, limit=1)) == 1
