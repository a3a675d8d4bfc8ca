"""SQLAlchemy metadata registry import."""

from tasklob.models import CompanyMemory, LobSession, ResolutionMemory
from tasklob.models.base import Base

__all__ = ["Base", "CompanyMemory", "ResolutionMemory", "LobSession"]
