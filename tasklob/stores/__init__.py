"""SQLAlchemy implementations of the knowledge, history and archive stores."""

from tasklob.stores.archive import SqlLobArchive
from tasklob.stores.entities import SqlEntityStore
from tasklob.stores.history import SqlHistoryStore

__all__ = ["SqlEntityStore", "SqlHistoryStore", "SqlLobArchive"]
