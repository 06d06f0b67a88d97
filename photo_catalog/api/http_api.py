import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from photo_catalog.automation import ScriptExecutor
from photo_catalog.core.config import ConfigProvider
from photo_catalog.core.env import configure_logging, database_url, load_dotenv_if_present
from photo_catalog.core.scheduler import Scheduler
from photo_catalog.index import (
    OwnerResolutionError,
    build_asset_summary,
    init_db,
    list_executions,
    load_asset_summary,
    session_factory,
)
from photo_catalog.ingest import process_asset_report
from photo_catalog.repo import ChangeDetector, register_jobs

load_dotenv_if_present()
configure_logging()

engine = init_db(database_url())
SessionLocal = session_factory(engine)
config = ConfigProvider()
script_executor = ScriptExecutor(SessionLocal, config=config)
change_detector = ChangeDetector(SessionLocal, config, scripts=script_executor)
scheduler = Scheduler()


@asynccontextmanager
async def lifespan(_: FastAPI):
    script_executor.reload_scripts()
    scheduler_enabled = os.getenv("SCHEDULER_ENABLED", "0") == "1"
    if scheduler_enabled:
        register_jobs(scheduler, change_detector, script_executor, config)
        scheduler.start()
    try:
        yield
    finally:
        if scheduler_enabled:
            scheduler.stop()


app = FastAPI(title="Photo Catalog API", lifespan=lifespan)


class ProcessRequest(BaseModel):
    path: str
    owner: str | None = None


def get_session() -> Session:
    with SessionLocal() as session:
        yield session


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/assets/process")
def process_file(req: ProcessRequest, session: Session = Depends(get_session)) -> dict:
    try:
        result = process_asset_report(
            session, req.path, req.owner, config=config, scripts=script_executor
        )
    except FileNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except OwnerResolutionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    summary = build_asset_summary(session, result.asset)
    return {
        "asset": summary.model_dump(),
        "stages": [outcome.model_dump() for outcome in result.outcomes],
    }


@app.get("/assets/{asset_id}")
def get_asset(asset_id: int, session: Session = Depends(get_session)) -> dict:
    summary = load_asset_summary(session, asset_id)
    if not summary:
        raise HTTPException(status_code=404, detail="Asset not found")
    return {"asset": summary.model_dump()}


@app.get("/scripts/extension/{extension}")
def script_for_extension(extension: str) -> dict:
    script = script_executor.get_script_for_extension(extension)
    if script is None:
        raise HTTPException(status_code=404, detail=f"No script registered for {extension}")
    return {"script": script.model_dump()}


@app.post("/scripts/reload")
def reload_scripts() -> dict:
    count = script_executor.reload_scripts()
    return {"extensions": count}


@app.post("/poll")
def poll_repository() -> dict:
    return {"processed": change_detector.poll_and_process()}


@app.get("/executions")
def executions(
    asset_id: int | None = None,
    script_name: str | None = None,
    limit: int = 100,
    session: Session = Depends(get_session),
) -> dict:
    entries = list_executions(session, asset_id=asset_id, script_name=script_name, limit=limit)
    return {"executions": [entry.model_dump() for entry in entries]}
