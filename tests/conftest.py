from __future__ import annotations

import shutil
from pathlib import Path

import pytest
from PIL import Image

from photo_catalog.core.config import ConfigProvider
from photo_catalog.index import ROLE_ADMIN, ROLE_USER, AccountRow, init_db, session_factory
from photo_catalog.ingest.tagger import AiTagger

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git CLI not installed")


@pytest.fixture(autouse=True)
def isolate_config_env(monkeypatch):
    """Keep host configuration out of tests."""
    for name in ("GIT_REPO_PATH", "GIT_REPO_URL", "GIT_USERNAME", "GIT_TOKEN", "SCRIPTS_SHELL"):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def SessionLocal():
    engine = init_db("sqlite+pysqlite:///:memory:")
    return session_factory(engine)


@pytest.fixture
def accounts(SessionLocal) -> dict[str, int]:
    with SessionLocal() as session:
        admin = AccountRow(email="admin@example.com", display_name="Admin", role=ROLE_ADMIN)
        alice = AccountRow(email="alice@example.com", display_name="Alice", role=ROLE_USER)
        session.add_all([admin, alice])
        session.commit()
        return {"admin": admin.id, "alice": alice.id}


@pytest.fixture
def repo_root(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    root.mkdir()
    return root


@pytest.fixture
def config(repo_root: Path) -> ConfigProvider:
    return ConfigProvider(overrides={"git.repo.path": str(repo_root)}, environ={})


@pytest.fixture
def no_tagger(tmp_path: Path) -> AiTagger:
    """Tagger pointing at a script that does not exist, so it yields no tags."""
    return AiTagger(executable="python3", script_path=str(tmp_path / "missing_tagger.py"))


def make_image(path: Path, size: tuple[int, int] = (10, 10), exif: dict | None = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    img = Image.new("RGB", size, color="red")
    if exif:
        data = Image.Exif()
        for tag, value in exif.items():
            data[tag] = value
        img.save(path, exif=data)
    else:
        img.save(path)
    return path
