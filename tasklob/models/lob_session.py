"""Archived lob ORM model."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tasklob.models.base import Base, CreatedAtMixin, IdMixin


class LobSession(Base, IdMixin, CreatedAtMixin):
    """A submitted lob together with what the pipeline made of it."""

    __tablename__ = "lob_sessions"

    workspace_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    sender_id: Mapped[str] = mapped_column(String(255), nullable=False)
    raw_input: Mapped[str] = mapped_column(Text, nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    parsed_data_json: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
