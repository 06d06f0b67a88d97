from datetime import time

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from photo_catalog.index import (
    ROLE_ADMIN,
    AccountRow,
    AssetTagRow,
    ExecutionLogRow,
    MediaAssetRow,
    RepositoryPollStateRow,
    ScriptRow,
    TagRow,
    TechnicalMetadataRow,
    init_db,
    session_factory,
)


def test_init_db_and_basic_crud() -> None:
    engine = init_db("sqlite+pysqlite:///:memory:")
    SessionLocal = session_factory(engine)

    with SessionLocal() as session:
        owner = AccountRow(email="owner@example.com", role=ROLE_ADMIN)
        asset = MediaAssetRow(file_path="/tmp/photo.jpg", file_name="photo.jpg", owner=owner)
        session.add_all([owner, asset])
        session.flush()
        session.add(TechnicalMetadataRow(asset_id=asset.id, camera_make="Canon", iso=100))
        tag = TagRow(value="sunset")
        session.add(tag)
        session.flush()
        session.add(AssetTagRow(asset_id=asset.id, tag_id=tag.id))
        session.add(ScriptRow(name="nightly", script_contents="echo hi", run_time=time(2, 0)))
        session.add(RepositoryPollStateRow(repository_path="/srv/photos", last_revision="abc"))
        session.commit()

        stored = session.scalars(select(MediaAssetRow)).all()
        assert len(stored) == 1
        assert stored[0].technical is not None
        assert stored[0].technical.camera_make == "Canon"
        assert stored[0].is_public is False
        assert stored[0].owner.email == "owner@example.com"
        assert [link.tag.value for link in stored[0].tag_links] == ["sunset"]


def test_asset_path_is_unique() -> None:
    SessionLocal = session_factory(init_db("sqlite+pysqlite:///:memory:"))
    with SessionLocal() as session:
        session.add(MediaAssetRow(file_path="/tmp/a.jpg", file_name="a.jpg"))
        session.commit()
        session.add(MediaAssetRow(file_path="/tmp/a.jpg", file_name="a.jpg"))
        with pytest.raises(IntegrityError):
            session.commit()


def test_deleting_script_keeps_ledger_rows() -> None:
    SessionLocal = session_factory(init_db("sqlite+pysqlite:///:memory:"))
    with SessionLocal() as session:
        script = ScriptRow(name="tidy", script_contents="true", interval_minutes=5)
        session.add(script)
        session.flush()
        session.add(ExecutionLogRow(script_id=script.id, script_name="tidy", status="success"))
        session.commit()

        session.delete(script)
        session.commit()
        session.expire_all()

        entry = session.scalar(select(ExecutionLogRow))
        assert entry is not None
        assert entry.script_id is None
        assert entry.script_name == "tidy"
