"""
Server-sent event payload models.

Every event emitted by /api/projects/{id}/report/stream serializes
ReportStreamPayload so the dashboard can append chunks without branching
on payload shape.
"""
from typing import Optional
from pydantic import BaseModel


class ReportStreamPayload(BaseModel):
    """Strict contract for every SSE event of a streamed overview report."""
    project_id: str
    chunk: str = ""                 # Next piece of narrative text
    done: bool = False              # True on the final event only
    error: Optional[str] = None

    model_config = {"json_schema_extra": {
        "example": {
            "project_id": "abc-123",
            "chunk": "Die Gesamtkosten des Projekts betragen ",
            "done": False,
        }
    }}
