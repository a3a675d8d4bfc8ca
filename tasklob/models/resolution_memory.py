"""Problem -> solution memory ORM model."""

from sqlalchemy import JSON, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tasklob.models.base import Base, CreatedAtMixin, IdMixin


class ResolutionMemory(Base, IdMixin, CreatedAtMixin):
    """A fix that worked before, weighted by how often it worked."""

    __tablename__ = "resolution_memory"

    workspace_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    problem_pattern: Mapped[str] = mapped_column(Text, nullable=False)
    solution: Mapped[str] = mapped_column(Text, nullable=False)
    system_name: Mapped[str | None] = mapped_column(String(255), index=True, nullable=True)
    resolved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    task_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    times_worked: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    confirmation_keys_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
