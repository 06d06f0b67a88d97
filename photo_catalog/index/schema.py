from __future__ import annotations

from datetime import datetime, time
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
    create_engine,
    event,
    func,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    relationship,
    sessionmaker,
)
from sqlalchemy.pool import StaticPool

convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

ROLE_ADMIN = "admin"
ROLE_USER = "user"
STATUS_SUCCESS = "success"
STATUS_FAILURE = "failure"
# Seconds a connection waits on another writer before "database is locked".
SQLITE_BUSY_TIMEOUT_SECONDS = 30


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=convention)


class AccountRow(Base):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=ROLE_USER)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    assets: Mapped[list["MediaAssetRow"]] = relationship(back_populates="owner")


class MediaAssetRow(Base):
    __tablename__ = "media_assets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_path: Mapped[str] = mapped_column(String(1000), unique=True, nullable=False)
    file_name: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    file_size: Mapped[Optional[int]] = mapped_column(Integer)
    file_created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    file_modified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )
    owner_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("accounts.id"), index=True
    )
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    image_width: Mapped[Optional[int]] = mapped_column(Integer)
    image_height: Mapped[Optional[int]] = mapped_column(Integer)
    thumbnail_path: Mapped[Optional[str]] = mapped_column(String(1000))

    owner: Mapped[Optional[AccountRow]] = relationship(back_populates="assets")
    technical: Mapped[Optional["TechnicalMetadataRow"]] = relationship(
        back_populates="asset", cascade="all, delete-orphan", uselist=False
    )
    tag_links: Mapped[list["AssetTagRow"]] = relationship(
        back_populates="asset", cascade="all, delete-orphan"
    )
    custom_values: Mapped[list["AssetCustomValueRow"]] = relationship(
        back_populates="asset", cascade="all, delete-orphan"
    )


class TechnicalMetadataRow(Base):
    __tablename__ = "technical_metadata"

    asset_id: Mapped[int] = mapped_column(
        ForeignKey("media_assets.id", ondelete="CASCADE"), primary_key=True
    )
    captured_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    camera_make: Mapped[Optional[str]] = mapped_column(String(100))
    camera_model: Mapped[Optional[str]] = mapped_column(String(100))
    gps_latitude: Mapped[Optional[float]] = mapped_column(Numeric(10, 8, asdecimal=False))
    gps_longitude: Mapped[Optional[float]] = mapped_column(Numeric(11, 8, asdecimal=False))
    exposure_time: Mapped[Optional[float]] = mapped_column(Numeric(asdecimal=False))
    f_number: Mapped[Optional[float]] = mapped_column(Numeric(asdecimal=False))
    iso: Mapped[Optional[int]] = mapped_column(Integer)
    focal_length: Mapped[Optional[float]] = mapped_column(Numeric(asdecimal=False))
    orientation: Mapped[Optional[int]] = mapped_column(Integer)

    asset: Mapped[MediaAssetRow] = relationship(back_populates="technical")


class TagRow(Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    value: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class AssetTagRow(Base):
    __tablename__ = "asset_tags"
    __table_args__ = (UniqueConstraint("asset_id", "tag_id", name="uq_asset_tags_asset_tag"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    asset_id: Mapped[int] = mapped_column(
        ForeignKey("media_assets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tag_id: Mapped[int] = mapped_column(
        ForeignKey("tags.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    asset: Mapped[MediaAssetRow] = relationship(back_populates="tag_links")
    tag: Mapped[TagRow] = relationship()


class CustomFieldRow(Base):
    __tablename__ = "custom_fields"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class AssetCustomValueRow(Base):
    __tablename__ = "asset_custom_values"
    __table_args__ = (
        UniqueConstraint("asset_id", "field_id", name="uq_asset_custom_values_asset_field"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    asset_id: Mapped[int] = mapped_column(
        ForeignKey("media_assets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    field_id: Mapped[int] = mapped_column(
        ForeignKey("custom_fields.id"), nullable=False, index=True
    )
    value: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    asset: Mapped[MediaAssetRow] = relationship(back_populates="custom_values")
    field: Mapped[CustomFieldRow] = relationship()


class ScriptRow(Base):
    __tablename__ = "scripts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    script_path: Mapped[Optional[str]] = mapped_column(String(255))
    script_contents: Mapped[Optional[str]] = mapped_column(Text)
    run_time: Mapped[Optional[time]] = mapped_column(Time)
    interval_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    file_extension: Mapped[Optional[str]] = mapped_column(String(20), index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class ExecutionLogRow(Base):
    __tablename__ = "execution_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    script_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("scripts.id", ondelete="SET NULL"), index=True
    )
    script_name: Mapped[Optional[str]] = mapped_column(String(100))
    asset_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("media_assets.id", ondelete="SET NULL"), index=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    executed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )


class RepositoryPollStateRow(Base):
    __tablename__ = "repository_poll_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    repository_path: Mapped[str] = mapped_column(String(1000), unique=True, nullable=False)
    last_revision: Mapped[Optional[str]] = mapped_column(String(64))
    last_polled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


def _configure_sqlite_connection(dbapi_connection: object, _: object) -> None:
    # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest inside a real transaction.
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _begin_sqlite_transaction(conn) -> None:
    conn.exec_driver_sql("BEGIN")


def create_engine_from_url(database_url: str) -> Engine:
    kwargs: dict = {"future": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"timeout": SQLITE_BUSY_TIMEOUT_SECONDS}
        if ":memory:" in database_url:
            # Scheduler threads and request threads must see the same in-memory database.
            kwargs["connect_args"]["check_same_thread"] = False
            kwargs["poolclass"] = StaticPool
    engine = create_engine(database_url, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _configure_sqlite_connection)
        event.listen(engine, "begin", _begin_sqlite_transaction)
    return engine


def init_db(database_url: str | Engine) -> Engine:
    engine = (
        database_url if isinstance(database_url, Engine) else create_engine_from_url(database_url)
    )
    Base.metadata.create_all(engine)
    return engine


def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False, class_=Session, future=True)
