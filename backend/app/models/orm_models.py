"""ORM Models for the Locoman cost dashboard — SQLAlchemy 2.0

The store is document-shaped: projects keep their tree, fixed-cost bucket,
summary and report as JSON columns, and every catalog entry is one JSON
document keyed by (kind, id).
"""
import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import JSON, String, Text, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from app.db import Base

# JSONB on PostgreSQL, plain JSON elsewhere
JSONDoc = JSON().with_variant(JSONB(), "postgresql")


def gen_uuid():
    return str(uuid.uuid4())


# ── PROJECTS ─────────────────────────────────────────────────────────────────
class Project(Base):
    __tablename__ = "projects"
    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=gen_uuid)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, default="")
    data_tree: Mapped[list] = mapped_column(JSONDoc, nullable=False, default=list)
    fixed_costs: Mapped[dict] = mapped_column(JSONDoc, nullable=False, default=dict)
    summary: Mapped[Optional[dict]] = mapped_column(JSONDoc)
    summary_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    report: Mapped[dict] = mapped_column(JSONDoc, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


# ── CATALOGS ─────────────────────────────────────────────────────────────────
class CatalogDocument(Base):
    """One steps / employees / resources / fixed-costs entry."""
    __tablename__ = "catalog_documents"
    kind: Mapped[str] = mapped_column(String(32), primary_key=True)
    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=gen_uuid)
    data: Mapped[dict] = mapped_column(JSONDoc, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
