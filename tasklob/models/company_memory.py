"""Company brain ORM model."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from tasklob.models.base import Base, CreatedAtMixin, IdMixin

MEMORY_TYPES = ("person", "company", "system", "routing", "vocabulary")


class CompanyMemory(Base, IdMixin, CreatedAtMixin):
    """One learned fact about a workspace: a person, system, company or routing rule."""

    __tablename__ = "company_memory"
    __table_args__ = (Index("ix_company_memory_workspace_type_key", "workspace_id", "memory_type", "key"),)

    workspace_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    memory_type: Mapped[str] = mapped_column(String(32), nullable=False)
    key: Mapped[str] = mapped_column(String(255), nullable=False)
    value_json: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, default=0.5, nullable=False)
    times_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    times_confirmed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_used: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
