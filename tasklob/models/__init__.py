"""ORM models package exports."""

from tasklob.models.company_memory import CompanyMemory
from tasklob.models.lob_session import LobSession
from tasklob.models.resolution_memory import ResolutionMemory

__all__ = ["CompanyMemory", "ResolutionMemory", "LobSession"]
