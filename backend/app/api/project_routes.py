"""
Project API Routes

GET    /api/projects                                         — list projects
POST   /api/projects                                         — create (optionally with default tree)
GET    /api/projects/{id}                                    — project document
DELETE /api/projects/{id}                                    — delete
PUT    /api/projects/{id}/tree                               — replace category tree
POST   /api/projects/{id}/tree/categories                    — add category
DELETE /api/projects/{id}/tree/categories/{cat_id}           — remove category
POST   /api/projects/{id}/tree/categories/{cat_id}/steps     — reference a step
DELETE /api/projects/{id}/tree/categories/{cat_id}/steps/{step_id}
GET    /api/projects/{id}/fixed-costs                        — fixed-cost bucket
POST   /api/projects/{id}/fixed-costs/{kind}/{item_id}       — add id to bucket
DELETE /api/projects/{id}/fixed-costs/{kind}/{item_id}       — remove id from bucket
POST   /api/projects/{id}/summary                            — generate + persist summary
GET    /api/projects/{id}/summary                            — stored summary
"""
import logging
import time
from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel, Field

from app.api.deps import get_report_cache, get_store, load_project
from app.models.cost_models import BUCKET_KINDS, CategoryNode
from app.services import tree_editor
from app.services.defaults import default_tree
from app.services.perf_monitor import tracker as perf_tracker
from app.services.project_store import ProjectStore
from app.services.report_engine import ReportCache
from app.services.summary_engine import check_reconciliation, generate_project_summary, parse_tree

router = APIRouter(prefix="/api/projects", tags=["Projects"])
logger = logging.getLogger("locoman-project-routes")


# ── Pydantic Models ─────────────────────────────────────────────────────────

class ProjectCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    with_default_tree: bool = False


class CategoryCreateRequest(BaseModel):
    label: str = Field(..., min_length=1)
    color: Optional[str] = None
    parent_id: Optional[str] = None


class StepRefRequest(BaseModel):
    step_id: str = Field(..., min_length=1)
    name: Optional[str] = None


# ── Helpers ─────────────────────────────────────────────────────────────────

def _tree_of(project: dict) -> List[CategoryNode]:
    try:
        return parse_tree(project.get("dataTree") or [])
    except TypeError as e:
        raise HTTPException(status_code=422, detail=f"Stored tree is malformed: {e}")


async def _save_tree(store: ProjectStore, project_id: str, tree: List[CategoryNode]) -> dict:
    updated = await store.save_tree(project_id, tree_editor.tree_to_document(tree))
    if updated is None:
        raise HTTPException(status_code=404, detail=f"Project {project_id} not found")
    return updated


# ── Projects ────────────────────────────────────────────────────────────────

@router.get("")
async def list_projects(store: ProjectStore = Depends(get_store)):
    return await store.list_projects()


@router.post("", status_code=201)
async def create_project(req: ProjectCreateRequest, store: ProjectStore = Depends(get_store)):
    tree = default_tree() if req.with_default_tree else []
    return await store.create_project(req.title, req.description, tree)


@router.get("/{project_id}")
async def get_project(project: dict = Depends(load_project)):
    return project


@router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    store: ProjectStore = Depends(get_store),
    cache: ReportCache = Depends(get_report_cache),
):
    if not await store.delete_project(project_id):
        raise HTTPException(status_code=404, detail=f"Project {project_id} not found")
    cache.invalidate(project_id)
    logger.info(f"Project deleted: {project_id}", extra={"project_id": project_id})
    return {"deleted": True, "id": project_id}


# ── Tree ────────────────────────────────────────────────────────────────────

@router.put("/{project_id}/tree")
async def replace_tree(
    tree: List[Any] = Body(...),
    project: dict = Depends(load_project),
    store: ProjectStore = Depends(get_store),
):
    try:
        parsed = parse_tree(tree)
    except TypeError as e:
        raise HTTPException(status_code=422, detail=str(e))
    updated = await _save_tree(store, project["id"], parsed)
    return updated["dataTree"]


@router.post("/{project_id}/tree/categories", status_code=201)
async def add_category(
    req: CategoryCreateRequest,
    project: dict = Depends(load_project),
    store: ProjectStore = Depends(get_store),
):
    try:
        tree, category = tree_editor.add_category(_tree_of(project), req.label, req.color, req.parent_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]))
    await _save_tree(store, project["id"], tree)
    return category.model_dump(mode="json")


@router.delete("/{project_id}/tree/categories/{category_id}")
async def remove_category(
    category_id: str,
    project: dict = Depends(load_project),
    store: ProjectStore = Depends(get_store),
):
    try:
        tree = tree_editor.remove_category(_tree_of(project), category_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]))
    updated = await _save_tree(store, project["id"], tree)
    return updated["dataTree"]


@router.post("/{project_id}/tree/categories/{category_id}/steps", status_code=201)
async def add_step_to_category(
    category_id: str,
    req: StepRefRequest,
    project: dict = Depends(load_project),
    store: ProjectStore = Depends(get_store),
):
    name = req.name
    if name is None:
        step = await store.get_catalog_item("steps", req.step_id)
        if step is None:
            raise HTTPException(status_code=404, detail=f"steps '{req.step_id}' not found")
        name = step.get("name", "")
    try:
        tree = tree_editor.add_step(_tree_of(project), category_id, req.step_id, name)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]))
    updated = await _save_tree(store, project["id"], tree)
    return updated["dataTree"]


@router.delete("/{project_id}/tree/categories/{category_id}/steps/{step_id}")
async def remove_step_from_category(
    category_id: str,
    step_id: str,
    project: dict = Depends(load_project),
    store: ProjectStore = Depends(get_store),
):
    try:
        tree = tree_editor.remove_step(_tree_of(project), category_id, step_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]))
    updated = await _save_tree(store, project["id"], tree)
    return updated["dataTree"]


# ── Fixed-cost bucket ───────────────────────────────────────────────────────

def _bucket_kind(kind: str) -> str:
    if kind not in BUCKET_KINDS:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown bucket '{kind}' — expected one of {', '.join(BUCKET_KINDS)}",
        )
    return kind


@router.get("/{project_id}/fixed-costs")
async def get_fixed_costs(project: dict = Depends(load_project)):
    return project["fixedCosts"]


@router.post("/{project_id}/fixed-costs/{kind}/{item_id}")
async def add_to_fixed_costs(
    item_id: str,
    kind: str = Depends(_bucket_kind),
    project: dict = Depends(load_project),
    store: ProjectStore = Depends(get_store),
):
    bucket = {k: list(v) for k, v in project["fixedCosts"].items()}
    if item_id in bucket[kind]:
        return bucket
    bucket[kind].append(item_id)
    await store.save_fixed_bucket(project["id"], bucket)
    return bucket


@router.delete("/{project_id}/fixed-costs/{kind}/{item_id}")
async def remove_from_fixed_costs(
    item_id: str,
    kind: str = Depends(_bucket_kind),
    project: dict = Depends(load_project),
    store: ProjectStore = Depends(get_store),
):
    bucket = {k: list(v) for k, v in project["fixedCosts"].items()}
    bucket[kind] = [x for x in bucket[kind] if x != item_id]
    await store.save_fixed_bucket(project["id"], bucket)
    return bucket


# ── Summary ─────────────────────────────────────────────────────────────────

@router.post("/{project_id}/summary")
async def generate_summary(
    project: dict = Depends(load_project),
    store: ProjectStore = Depends(get_store),
    cache: ReportCache = Depends(get_report_cache),
):
    """
    Recompute the project's cost summary from its tree, fixed-cost bucket and
    the current catalogs, then overwrite the stored copy (last writer wins).
    Reports generated from the previous summary become stale.
    """
    project_id = project["id"]
    catalogs = await store.load_catalogs()

    start = time.perf_counter()
    try:
        summary = generate_project_summary(
            project["dataTree"],
            catalogs["steps"],
            catalogs["employees"],
            catalogs["resources"],
            project["fixedCosts"],
            catalogs["fixed-costs"],
        )
    except TypeError as e:
        raise HTTPException(status_code=422, detail=str(e))
    duration_ms = round((time.perf_counter() - start) * 1000, 2)
    perf_tracker.record_summary(duration_ms)

    problems = check_reconciliation(summary)
    if problems:
        logger.warning(
            f"Summary does not reconcile: {'; '.join(problems)}",
            extra={"project_id": project_id},
        )

    doc = summary.to_document()
    updated_at = await store.save_summary(project_id, doc)
    cache.invalidate(project_id)
    logger.info(
        f"Summary generated — total {summary.project_costs.total_project_cost:.2f} EUR",
        extra={"project_id": project_id, "duration_ms": duration_ms},
    )
    return {"projectId": project_id, "summaryUpdatedAt": updated_at, "summary": doc}


@router.get("/{project_id}/summary")
async def get_summary(project: dict = Depends(load_project)):
    if not project.get("summary"):
        raise HTTPException(status_code=404, detail=f"Project {project['id']} has no summary yet")
    return {
        "projectId": project["id"],
        "summaryUpdatedAt": project.get("summaryUpdatedAt"),
        "summary": project["summary"],
    }
