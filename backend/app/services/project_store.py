"""
ProjectStore — data access for projects and catalogs.

Thin wrapper over an AsyncSession. Everything it returns is a plain,
JSON-ready dict in the camelCase document shape the dashboard uses, so
routes and the summary engine never touch ORM objects.

JSON columns are always reassigned with fresh objects so SQLAlchemy sees
the change.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.orm_models import CatalogDocument, Project

logger = logging.getLogger("locoman-db")

CATALOG_KINDS = ("steps", "employees", "resources", "fixed-costs")

_EMPTY_BUCKET = {"employees": [], "fixedCosts": [], "resources": []}


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def project_document(p: Project) -> Dict[str, Any]:
    return {
        "id": p.id,
        "title": p.title,
        "description": p.description or "",
        "dataTree": list(p.data_tree or []),
        "fixedCosts": {**_EMPTY_BUCKET, **(p.fixed_costs or {})},
        "summary": p.summary,
        "summaryUpdatedAt": _iso(p.summary_updated_at),
        "report": dict(p.report or {}),
        "createdAt": _iso(p.created_at),
        "updatedAt": _iso(p.updated_at),
    }


def _catalog_document(doc: CatalogDocument) -> Dict[str, Any]:
    return {**(doc.data or {}), "id": doc.id}


def set_report_entry(report: Dict[str, Any], field_path: str, entry: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return a copy of ``report`` with ``entry`` stored at a dotted path,
    e.g. "projectOverview" or "categories.<categoryId>".
    """
    updated = dict(report or {})
    head, _, rest = field_path.partition(".")
    if rest:
        updated[head] = set_report_entry(updated.get(head) or {}, rest, entry)
    else:
        updated[head] = entry
    return updated


class ProjectStore:
    """Project and catalog persistence backed by SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def _get(self, project_id: str) -> Optional[Project]:
        result = await self.session.execute(select(Project).where(Project.id == project_id))
        return result.scalar_one_or_none()

    async def list_projects(self) -> List[Dict[str, Any]]:
        result = await self.session.execute(select(Project).order_by(Project.created_at))
        return [project_document(p) for p in result.scalars().all()]

    async def get_project(self, project_id: str) -> Optional[Dict[str, Any]]:
        p = await self._get(project_id)
        return project_document(p) if p else None

    async def create_project(self, title: str, description: str, data_tree: list) -> Dict[str, Any]:
        p = Project(
            title=title,
            description=description,
            data_tree=data_tree,
            fixed_costs=dict(_EMPTY_BUCKET),
            report={},
        )
        self.session.add(p)
        await self.session.flush()
        await self.session.refresh(p)
        logger.info(f"Project created: {p.id}", extra={"project_id": p.id})
        return project_document(p)

    async def delete_project(self, project_id: str) -> bool:
        result = await self.session.execute(delete(Project).where(Project.id == project_id))
        return result.rowcount > 0

    async def save_tree(self, project_id: str, data_tree: list) -> Optional[Dict[str, Any]]:
        p = await self._get(project_id)
        if not p:
            return None
        p.data_tree = list(data_tree)
        await self.session.flush()
        await self.session.refresh(p)
        return project_document(p)

    async def save_fixed_bucket(self, project_id: str, bucket: Dict[str, List[str]]) -> Optional[Dict[str, Any]]:
        p = await self._get(project_id)
        if not p:
            return None
        p.fixed_costs = {k: list(v) for k, v in bucket.items()}
        await self.session.flush()
        await self.session.refresh(p)
        return project_document(p)

    async def save_summary(self, project_id: str, summary: Dict[str, Any]) -> Optional[str]:
        """Overwrite the stored summary (last writer wins). Returns the timestamp."""
        p = await self._get(project_id)
        if not p:
            return None
        now = datetime.now(timezone.utc)
        p.summary = summary
        p.summary_updated_at = now
        await self.session.flush()
        return now.isoformat()

    async def save_report_entry(self, project_id: str, field_path: str, entry: Dict[str, Any]) -> bool:
        p = await self._get(project_id)
        if not p:
            return False
        p.report = set_report_entry(p.report or {}, field_path, entry)
        await self.session.flush()
        return True

    # ------------------------------------------------------------------
    # Catalogs
    # ------------------------------------------------------------------

    async def list_catalog(self, kind: str) -> List[Dict[str, Any]]:
        result = await self.session.execute(
            select(CatalogDocument)
            .where(CatalogDocument.kind == kind)
            .order_by(CatalogDocument.created_at, CatalogDocument.id)
        )
        return [_catalog_document(d) for d in result.scalars().all()]

    async def get_catalog_item(self, kind: str, item_id: str) -> Optional[Dict[str, Any]]:
        doc = await self.session.get(CatalogDocument, (kind, item_id))
        return _catalog_document(doc) if doc else None

    async def put_catalog_item(self, kind: str, item_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create or replace a catalog document."""
        body = {k: v for k, v in data.items() if k != "id"}
        doc = await self.session.get(CatalogDocument, (kind, item_id))
        if doc:
            doc.data = body
        else:
            doc = CatalogDocument(kind=kind, id=item_id, data=body)
            self.session.add(doc)
        await self.session.flush()
        return _catalog_document(doc)

    async def delete_catalog_item(self, kind: str, item_id: str) -> bool:
        result = await self.session.execute(
            delete(CatalogDocument).where(CatalogDocument.kind == kind, CatalogDocument.id == item_id)
        )
        return result.rowcount > 0

    async def load_catalogs(self) -> Dict[str, List[Dict[str, Any]]]:
        """Every catalog, keyed by kind — the engine's reference inputs."""
        return {kind: await self.list_catalog(kind) for kind in CATALOG_KINDS}
