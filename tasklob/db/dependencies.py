"""FastAPI database dependencies."""

from sqlalchemy.orm import Session, sessionmaker

from tasklob.db.session import SessionLocal


def get_session_factory() -> sessionmaker[Session]:
    """Return the session factory; stores open one short session per call."""

    return SessionLocal
