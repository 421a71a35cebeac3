"""FastAPI dependency injection — store, report engine and report cache."""
from fastapi import Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_db
from app.services.project_store import CATALOG_KINDS, ProjectStore
from app.services.report_engine import ReportCache, ReportEngine

# One cache per process; invalidated per project when its summary changes.
_report_cache = ReportCache()


async def get_store(db: AsyncSession = Depends(get_db)) -> ProjectStore:
    return ProjectStore(db)


def get_report_engine() -> ReportEngine:
    return ReportEngine()


def get_report_cache() -> ReportCache:
    return _report_cache


def catalog_kind(kind: str) -> str:
    """Path-parameter guard for /api/catalog/{kind}."""
    if kind not in CATALOG_KINDS:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown catalog '{kind}' — expected one of {', '.join(CATALOG_KINDS)}",
        )
    return kind


async def load_project(project_id: str, store: ProjectStore = Depends(get_store)) -> dict:
    project = await store.get_project(project_id)
    if not project:
        raise HTTPException(status_code=404, detail=f"Project {project_id} not found")
    return project
