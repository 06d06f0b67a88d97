from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from photo_catalog.automation.executor import ScriptExecutor, ScriptRun
from photo_catalog.core.config import ConfigProvider
from photo_catalog.core.models import StageOutcome, TechnicalMetadata
from photo_catalog.index.accounts import resolve_owner
from photo_catalog.index.ledger import record_execution
from photo_catalog.index.records import find_asset_by_path
from photo_catalog.index.schema import MediaAssetRow
from photo_catalog.index.updates import link_tags, replace_technical_metadata, upsert_custom_value

from .exif_reader import read_dimensions, read_exif
from .sidecar import TAGS_KEY, SidecarValue, parse_sidecar, sidecar_path_for
from .tagger import AI_TAGGER_NAME, AiTagger
from .thumbnailer import DEFAULT_MAX_SIZE, build_thumbnail

logger = logging.getLogger(__name__)


@dataclass
class StageInput:
    """What a stage may use before the write transaction opens: the file and external tools."""

    file_path: Path
    config: ConfigProvider
    tagger: AiTagger
    scripts: Optional[ScriptExecutor] = None


@dataclass
class StageContext:
    session: Session
    asset: MediaAssetRow
    file_path: Path
    config: ConfigProvider
    tagger: AiTagger
    scripts: Optional[ScriptExecutor] = None
    collected: dict[str, Any] = field(default_factory=dict)
    collect_errors: dict[str, Exception] = field(default_factory=dict)


@dataclass
class Stage:
    name: str
    func: Callable[[StageContext], None]
    # Stages that write rows run inside a SAVEPOINT so a failure rolls back only their own writes.
    transactional: bool = True
    on_failure: Optional[Callable[[StageContext, Exception], None]] = None
    # File and subprocess work; runs with no database transaction open.
    collect: Optional[Callable[[StageInput], Any]] = None


@dataclass
class ProcessResult:
    asset: MediaAssetRow
    outcomes: list[StageOutcome] = field(default_factory=list)

    def failed_stages(self) -> list[str]:
        return [outcome.stage for outcome in self.outcomes if not outcome.ok]


def collect_stages(
    stages: list[Stage], inputs: StageInput
) -> tuple[dict[str, Any], dict[str, Exception]]:
    """Run every stage's collect step in order, keeping results and errors by stage name."""
    collected: dict[str, Any] = {}
    errors: dict[str, Exception] = {}
    for stage in stages:
        if stage.collect is None:
            continue
        try:
            collected[stage.name] = stage.collect(inputs)
        except Exception as exc:
            errors[stage.name] = exc
    return collected, errors


def run_stage(stage: Stage, ctx: StageContext) -> StageOutcome:
    """Attempt one stage, log any failure, and let the pipeline continue."""
    try:
        collect_error = ctx.collect_errors.get(stage.name)
        if collect_error is not None:
            raise collect_error
        if stage.transactional:
            with ctx.session.begin_nested():
                stage.func(ctx)
        else:
            stage.func(ctx)
    except Exception as exc:
        logger.warning(
            "Pipeline: stage %s failed for %s: %s", stage.name, ctx.file_path.name, exc
        )
        if stage.on_failure is not None:
            try:
                stage.on_failure(ctx, exc)
            except Exception:
                logger.exception("Pipeline: failure handler for %s raised", stage.name)
        return StageOutcome(stage=stage.name, ok=False, error=str(exc) or type(exc).__name__)
    return StageOutcome(stage=stage.name, ok=True)


def _build_thumbnail(inputs: StageInput) -> Path:
    repo_root = inputs.config.repo_path()
    max_size = inputs.config.get_int("thumbnail.max.size", DEFAULT_MAX_SIZE)
    thumb = build_thumbnail(
        inputs.file_path, Path(repo_root) if repo_root else None, max_size=max_size
    )
    if thumb is None:
        raise RuntimeError("thumbnail could not be generated")
    return thumb


def _thumbnail_stage(ctx: StageContext) -> None:
    thumb = ctx.collected.get("thumbnail")
    ctx.asset.thumbnail_path = str(thumb) if thumb else None


def _thumbnail_failed(ctx: StageContext, _: Exception) -> None:
    ctx.asset.thumbnail_path = None


def _technical_metadata_stage(ctx: StageContext) -> None:
    metadata: Optional[TechnicalMetadata] = ctx.collected.get("technical_metadata")
    if metadata is None or metadata.is_empty():
        logger.debug("Pipeline: no technical metadata in %s", ctx.file_path.name)
        return
    replace_technical_metadata(ctx.session, ctx.asset, metadata)


def _read_sidecar(inputs: StageInput) -> Optional[dict[str, SidecarValue]]:
    sidecar = sidecar_path_for(inputs.file_path)
    if not sidecar.is_file():
        logger.debug("Pipeline: no sidecar for %s", inputs.file_path.name)
        return None
    return parse_sidecar(sidecar)


def _sidecar_stage(ctx: StageContext) -> None:
    fields = ctx.collected.get("sidecar") or {}
    for key, value in fields.items():
        if key == TAGS_KEY and isinstance(value, list):
            link_tags(ctx.session, ctx.asset, value)
        else:
            upsert_custom_value(ctx.session, ctx.asset, key, str(value))


def _ai_tagger_stage(ctx: StageContext) -> None:
    tags = ctx.collected.get("ai_tagger")
    if not tags:
        return
    link_tags(ctx.session, ctx.asset, tags)
    record_execution(
        ctx.session,
        script_id=None,
        script_name=AI_TAGGER_NAME,
        asset_id=ctx.asset.id,
        success=True,
    )


def _ai_tagger_failed(ctx: StageContext, exc: Exception) -> None:
    with ctx.session.begin_nested():
        record_execution(
            ctx.session,
            script_id=None,
            script_name=AI_TAGGER_NAME,
            asset_id=ctx.asset.id,
            success=False,
            error_message=str(exc),
        )


def _run_custom_script(inputs: StageInput) -> Optional[ScriptRun]:
    if inputs.scripts is None:
        logger.info(
            "Pipeline: no script executor supplied, custom scripts skipped for %s",
            inputs.file_path.name,
        )
        return None
    return inputs.scripts.run_for_file(inputs.file_path)


def _custom_script_stage(ctx: StageContext) -> None:
    outcome: Optional[ScriptRun] = ctx.collected.get("custom_script")
    if outcome is None or ctx.scripts is None:
        return
    ctx.scripts.record_run(outcome, ctx.asset.id, session=ctx.session)


THUMBNAIL_STAGE = Stage(
    "thumbnail",
    _thumbnail_stage,
    transactional=False,
    on_failure=_thumbnail_failed,
    collect=_build_thumbnail,
)

ENRICHMENT_STAGES: list[Stage] = [
    Stage(
        "technical_metadata",
        _technical_metadata_stage,
        collect=lambda inputs: read_exif(inputs.file_path),
    ),
    Stage("sidecar", _sidecar_stage, collect=_read_sidecar),
    Stage(
        "ai_tagger",
        _ai_tagger_stage,
        on_failure=_ai_tagger_failed,
        collect=lambda inputs: inputs.tagger.generate_tags(inputs.file_path),
    ),
    Stage("custom_script", _custom_script_stage, collect=_run_custom_script),
]


def _file_times(stat_result) -> tuple[datetime, datetime]:
    created_ts = getattr(stat_result, "st_birthtime", None) or stat_result.st_ctime
    created = datetime.fromtimestamp(created_ts, tz=timezone.utc)
    modified = datetime.fromtimestamp(stat_result.st_mtime, tz=timezone.utc)
    return created, modified


def upsert_asset(session: Session, file_path: Path, owner_id: int) -> MediaAssetRow:
    """Load the asset for this path or create it, then refresh every file-derived attribute."""
    path_key = str(file_path)
    row = find_asset_by_path(session, path_key)
    if row is None:
        row = MediaAssetRow(file_path=path_key, file_name=file_path.name, is_public=False)
        session.add(row)
        logger.debug("Pipeline: creating asset for %s", file_path.name)
    else:
        logger.debug("Pipeline: updating asset %s (%s)", row.id, file_path.name)

    stat_result = file_path.stat()
    created, modified = _file_times(stat_result)
    row.file_name = file_path.name
    row.file_size = stat_result.st_size
    row.file_created_at = created
    row.file_modified_at = modified
    row.owner_id = owner_id

    dimensions = read_dimensions(file_path)
    row.image_width, row.image_height = dimensions if dimensions else (None, None)
    return row


def process_asset_report(
    session: Session,
    file_path: str | Path,
    owner_hint: str | None = None,
    *,
    config: Optional[ConfigProvider] = None,
    tagger: Optional[AiTagger] = None,
    scripts: Optional[ScriptExecutor] = None,
) -> ProcessResult:
    """
    Ingest one image and run every enrichment stage against it.

    The only fatal precondition is owner resolution: without a matching
    account or any administrator, OwnerResolutionError propagates and nothing
    is written. A missing file raises FileNotFoundError before any write.

    Thumbnailing, EXIF and sidecar reads, the tagger and the custom script all
    run before the write transaction opens, so no database lock is held while
    an external tool runs. Their results are then applied stage by stage and
    committed together.
    """
    config = config or ConfigProvider()
    tagger = tagger or AiTagger.from_config(config)
    path = Path(file_path).expanduser().resolve()
    logger.info("Pipeline: processing %s", path.name)
    if not path.is_file():
        raise FileNotFoundError(f"Image file not found: {path}")

    try:
        resolve_owner(session, owner_hint)
    finally:
        # End the read before external tools run.
        session.rollback()

    stages = [THUMBNAIL_STAGE, *ENRICHMENT_STAGES]
    collected, collect_errors = collect_stages(
        stages, StageInput(file_path=path, config=config, tagger=tagger, scripts=scripts)
    )

    try:
        owner = resolve_owner(session, owner_hint)
        asset = upsert_asset(session, path, owner.id)
        ctx = StageContext(
            session=session,
            asset=asset,
            file_path=path,
            config=config,
            tagger=tagger,
            scripts=scripts,
            collected=collected,
            collect_errors=collect_errors,
        )
        outcomes = [run_stage(THUMBNAIL_STAGE, ctx)]
        session.flush()
        for stage in stages[1:]:
            outcomes.append(run_stage(stage, ctx))
        session.commit()
    except Exception:
        session.rollback()
        raise

    failed = [outcome.stage for outcome in outcomes if not outcome.ok]
    logger.info(
        "Pipeline: completed %s (asset %s, %d stage failure(s)%s)",
        path.name,
        asset.id,
        len(failed),
        f": {', '.join(failed)}" if failed else "",
    )
    return ProcessResult(asset=asset, outcomes=outcomes)


def process_asset(
    session: Session,
    file_path: str | Path,
    owner_hint: str | None = None,
    *,
    config: Optional[ConfigProvider] = None,
    tagger: Optional[AiTagger] = None,
    scripts: Optional[ScriptExecutor] = None,
) -> MediaAssetRow:
    """Create or update the catalog record for one image and return it."""
    return process_asset_report(
        session, file_path, owner_hint, config=config, tagger=tagger, scripts=scripts
    ).asset
