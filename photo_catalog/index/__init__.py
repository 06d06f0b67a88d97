"""Catalog persistence layer for Photo Catalog."""

from .accounts import OwnerResolutionError, find_account_by_email, first_admin, resolve_owner
from .ledger import list_executions, record_execution
from .records import build_asset_summary, find_asset_by_path, load_asset_summary
from .schema import (
    ROLE_ADMIN,
    ROLE_USER,
    STATUS_FAILURE,
    STATUS_SUCCESS,
    AccountRow,
    AssetCustomValueRow,
    AssetTagRow,
    Base,
    CustomFieldRow,
    ExecutionLogRow,
    MediaAssetRow,
    RepositoryPollStateRow,
    ScriptRow,
    TagRow,
    TechnicalMetadataRow,
    create_engine_from_url,
    init_db,
    session_factory,
)
from .updates import (
    find_or_create_field,
    find_or_create_tag,
    link_tag,
    link_tags,
    replace_technical_metadata,
    upsert_custom_value,
)

__all__ = [
    "ROLE_ADMIN",
    "ROLE_USER",
    "STATUS_FAILURE",
    "STATUS_SUCCESS",
    "AccountRow",
    "AssetCustomValueRow",
    "AssetTagRow",
    "Base",
    "CustomFieldRow",
    "ExecutionLogRow",
    "MediaAssetRow",
    "OwnerResolutionError",
    "RepositoryPollStateRow",
    "ScriptRow",
    "TagRow",
    "TechnicalMetadataRow",
    "build_asset_summary",
    "create_engine_from_url",
    "find_account_by_email",
    "find_asset_by_path",
    "find_or_create_field",
    "find_or_create_tag",
    "first_admin",
    "init_db",
    "link_tag",
    "link_tags",
    "list_executions",
    "load_asset_summary",
    "record_execution",
    "replace_technical_metadata",
    "resolve_owner",
    "session_factory",
    "upsert_custom_value",
]
