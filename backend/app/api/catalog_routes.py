"""
Catalog API Routes

GET    /api/catalog/{kind}                  — list documents
POST   /api/catalog/{kind}                  — create (client id optional)
GET    /api/catalog/{kind}/{item_id}        — fetch one
PUT    /api/catalog/{kind}/{item_id}        — replace
DELETE /api/catalog/{kind}/{item_id}        — delete
POST   /api/catalog/steps/{item_id}/copy    — duplicate a step as "<name> (Copy)"
POST   /api/catalog/seed-defaults           — insert default documents that are missing

kind ∈ steps | employees | resources | fixed-costs.
Documents are normalised through the cost models before storage, so numeric
fields are always stored as numbers and id lists as lists.
"""
import logging
import uuid
from typing import Any, Dict, Type

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel, ValidationError

from app.api.deps import catalog_kind, get_store
from app.models.cost_models import EmployeeDoc, FixedCostObjectDoc, ResourceDoc, StepDoc
from app.services.defaults import default_catalog
from app.services.project_store import CATALOG_KINDS, ProjectStore

router = APIRouter(prefix="/api/catalog", tags=["Catalogs"])
logger = logging.getLogger("locoman-catalog-routes")

CATALOG_MODELS: Dict[str, Type[BaseModel]] = {
    "steps": StepDoc,
    "employees": EmployeeDoc,
    "resources": ResourceDoc,
    "fixed-costs": FixedCostObjectDoc,
}


def normalise_document(kind: str, item_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a raw document against its catalog model; 422 on structural errors."""
    model = CATALOG_MODELS[kind]
    try:
        doc = model.model_validate({**body, "id": item_id})
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))
    return doc.model_dump(by_alias=True, mode="json")


# ── Seed ─────────────────────────────────────────────────────────────────────

@router.post("/seed-defaults")
async def seed_defaults(store: ProjectStore = Depends(get_store)):
    """Insert the default logistics catalogs, skipping ids that already exist."""
    created: Dict[str, int] = {}
    for kind in CATALOG_KINDS:
        created[kind] = 0
        for doc in default_catalog(kind):
            if await store.get_catalog_item(kind, doc["id"]) is None:
                await store.put_catalog_item(kind, doc["id"], normalise_document(kind, doc["id"], doc))
                created[kind] += 1
    logger.info(f"Default catalogs seeded: {created}")
    return {"created": created}


# ── CRUD ─────────────────────────────────────────────────────────────────────

@router.get("/{kind}")
async def list_catalog(kind: str = Depends(catalog_kind), store: ProjectStore = Depends(get_store)):
    return await store.list_catalog(kind)


@router.post("/{kind}", status_code=201)
async def create_catalog_item(
    kind: str = Depends(catalog_kind),
    body: Dict[str, Any] = Body(...),
    store: ProjectStore = Depends(get_store),
):
    item_id = str(body.get("id") or uuid.uuid4())
    if await store.get_catalog_item(kind, item_id) is not None:
        raise HTTPException(status_code=409, detail=f"{kind} '{item_id}' already exists")
    return await store.put_catalog_item(kind, item_id, normalise_document(kind, item_id, body))


@router.get("/{kind}/{item_id}")
async def get_catalog_item(
    item_id: str,
    kind: str = Depends(catalog_kind),
    store: ProjectStore = Depends(get_store),
):
    doc = await store.get_catalog_item(kind, item_id)
    if doc is None:
        raise HTTPException(status_code=404, detail=f"{kind} '{item_id}' not found")
    return doc


@router.put("/{kind}/{item_id}")
async def update_catalog_item(
    item_id: str,
    kind: str = Depends(catalog_kind),
    body: Dict[str, Any] = Body(...),
    store: ProjectStore = Depends(get_store),
):
    existing = await store.get_catalog_item(kind, item_id)
    if existing is None:
        raise HTTPException(status_code=404, detail=f"{kind} '{item_id}' not found")
    merged = {**existing, **body}
    return await store.put_catalog_item(kind, item_id, normalise_document(kind, item_id, merged))


@router.delete("/{kind}/{item_id}")
async def delete_catalog_item(
    item_id: str,
    kind: str = Depends(catalog_kind),
    store: ProjectStore = Depends(get_store),
):
    if not await store.delete_catalog_item(kind, item_id):
        raise HTTPException(status_code=404, detail=f"{kind} '{item_id}' not found")
    return {"deleted": True, "id": item_id}


@router.post("/steps/{item_id}/copy", status_code=201)
async def copy_step(item_id: str, store: ProjectStore = Depends(get_store)):
    original = await store.get_catalog_item("steps", item_id)
    if original is None:
        raise HTTPException(status_code=404, detail=f"steps '{item_id}' not found")
    new_id = str(uuid.uuid4())
    body = {**original, "name": f"{original.get('name', '')} (Copy)"}
    return await store.put_catalog_item("steps", new_id, normalise_document("steps", new_id, body))
