"""
Report Routes — AI narrative reports over a project's stored summary.

POST /api/projects/{id}/report         — generate (or serve stored) overview / category report
POST /api/projects/{id}/assistant      — answer a free-form question about the project costs
POST /api/projects/{id}/report/stream  — stream the overview narrative as server-sent events

Reports are written from the stored summary only. A stored report is reused
while it was written from the current summary (same ``summaryUpdatedAt``)
with the same response type and language, unless ``force`` is set.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, field_validator

from app import config
from app.api.deps import get_report_cache, get_report_engine, get_store, load_project
from app.models.stream_models import ReportStreamPayload
from app.services.perf_monitor import tracker as perf_tracker
from app.services.project_store import ProjectStore
from app.services.report_engine import (
    ReportCache,
    ReportEngine,
    report_field_path,
    stored_report,
    summary_payload,
)

router = APIRouter(prefix="/api/projects", tags=["Reports"])
logger = logging.getLogger("locoman-report-routes")


# ── Pydantic Models ─────────────────────────────────────────────────────────

class ReportRequest(BaseModel):
    kind: Literal["overview", "category"] = "overview"
    category_id: Optional[str] = None
    response_type: Literal["text", "bullet", "highlight"] = "text"
    word_range: Tuple[int, int] = config.REPORT_WORD_RANGE
    language: Literal["de", "en"] = config.REPORT_DEFAULT_LANGUAGE
    mode: Optional[Literal["overview", "recommendation", "category", "custom"]] = None
    custom_prompt: Optional[str] = None
    force: bool = False

    @field_validator("word_range")
    @classmethod
    def _ordered_range(cls, v: Tuple[int, int]) -> Tuple[int, int]:
        lo, hi = v
        if lo <= 0 or hi < lo:
            raise ValueError("word_range must be [lo, hi] with 0 < lo <= hi")
        return v


class AssistantRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=4000)
    language: Literal["de", "en"] = config.REPORT_DEFAULT_LANGUAGE


class StreamRequest(BaseModel):
    word_range: Tuple[int, int] = config.REPORT_WORD_RANGE
    language: Literal["de", "en"] = config.REPORT_DEFAULT_LANGUAGE


# ── Helpers ─────────────────────────────────────────────────────────────────

def _require_summary(project: dict) -> Dict[str, Any]:
    summary = project.get("summary")
    if not summary:
        raise HTTPException(
            status_code=400,
            detail=f"Project {project['id']} has no summary yet — generate one first",
        )
    return summary


def _cache_key(req: ReportRequest, summary_updated_at: Optional[str]) -> str:
    lo, hi = req.word_range
    return "|".join([
        req.kind,
        req.category_id or "",
        req.response_type,
        req.language,
        req.mode or "",
        f"{lo}-{hi}",
        req.custom_prompt or "",
        summary_updated_at or "",
    ])


def _is_current(entry: Optional[dict], req: ReportRequest, summary_updated_at: Optional[str]) -> bool:
    if not entry:
        return False
    return (
        entry.get("summaryUpdatedAt") == summary_updated_at
        and entry.get("responseType") == req.response_type
        and entry.get("language", req.language) == req.language
    )


# ── Endpoints ───────────────────────────────────────────────────────────────

@router.post("/{project_id}/report")
async def generate_report(
    req: ReportRequest,
    project: dict = Depends(load_project),
    store: ProjectStore = Depends(get_store),
    engine: ReportEngine = Depends(get_report_engine),
    cache: ReportCache = Depends(get_report_cache),
):
    project_id = project["id"]
    summary = _require_summary(project)
    if req.kind == "category" and not req.category_id:
        raise HTTPException(status_code=400, detail="category_id is required for category reports")
    try:
        summary_payload(summary, req.kind, req.category_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e.args[0]))

    summary_updated_at = project.get("summaryUpdatedAt")
    existing = stored_report(project.get("report") or {}, req.kind, req.category_id)
    if not req.force and _is_current(existing, req, summary_updated_at):
        logger.debug("Serving stored report", extra={"project_id": project_id})
        return {**existing, "cached": True}

    async def _write():
        return await engine.generate(
            summary,
            kind=req.kind,
            category_id=req.category_id,
            response_type=req.response_type,
            word_range=req.word_range,
            language=req.language,
            mode=req.mode,
            custom_prompt=req.custom_prompt,
        )

    try:
        result = await cache.get_or_create(project_id, _cache_key(req, summary_updated_at), _write)
    except RuntimeError as e:
        perf_tracker.record_report_error(req.kind)
        logger.error(f"Report generation failed: {e}", extra={"project_id": project_id})
        raise HTTPException(status_code=502, detail=f"Report generation failed: {e}")

    entry: Dict[str, Any] = {
        "responseType": req.response_type,
        "language": req.language,
        "summaryUpdatedAt": summary_updated_at,
        "generatedAt": datetime.now(timezone.utc).isoformat(),
    }
    if req.response_type == "highlight":
        entry["highlight"] = result
    else:
        entry["text"] = result

    await store.save_report_entry(project_id, report_field_path(req.kind, req.category_id), entry)
    perf_tracker.record_report(req.kind)
    logger.info(f"{req.kind} report generated", extra={"project_id": project_id})
    return {**entry, "cached": False}


@router.post("/{project_id}/assistant")
async def ask_assistant(
    req: AssistantRequest,
    project: dict = Depends(load_project),
    engine: ReportEngine = Depends(get_report_engine),
):
    summary = _require_summary(project)
    try:
        answer = await engine.answer_question(summary, req.question, language=req.language)
    except RuntimeError as e:
        perf_tracker.record_report_error("assistant")
        logger.error(f"Assistant failed: {e}", extra={"project_id": project["id"]})
        raise HTTPException(status_code=502, detail=f"Assistant failed: {e}")
    perf_tracker.record_report("assistant")
    return {"projectId": project["id"], "answer": answer}


@router.post("/{project_id}/report/stream")
async def stream_report(
    req: StreamRequest,
    project: dict = Depends(load_project),
    engine: ReportEngine = Depends(get_report_engine),
):
    """Server-Sent Events stream of the overview narrative, chunk by chunk."""
    project_id = project["id"]
    summary = _require_summary(project)

    async def stream():
        try:
            async for text in engine.stream_overview(summary, language=req.language, word_range=req.word_range):
                payload = ReportStreamPayload(project_id=project_id, chunk=text)
                yield f"data: {payload.model_dump_json()}\n\n"
        except RuntimeError as e:
            perf_tracker.record_report_error("stream")
            logger.error(f"Report stream failed: {e}", extra={"project_id": project_id})
            payload = ReportStreamPayload(project_id=project_id, done=True, error=str(e))
            yield f"data: {payload.model_dump_json()}\n\n"
            return
        perf_tracker.record_report("stream")
        yield f"data: {ReportStreamPayload(project_id=project_id, done=True).model_dump_json()}\n\n"

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
