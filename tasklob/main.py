"""FastAPI application entrypoint."""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from tasklob.config import get_settings
from tasklob.db.base import Base
from tasklob.db.session import engine
from tasklob.routers import brain, lobs

settings = get_settings()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def _create_schema() -> None:
    """Create missing tables at process start."""

    try:
        Base.metadata.create_all(bind=engine)
    except Exception:
        logger.exception("Schema creation failed; stores will error until the database is reachable.")


@asynccontextmanager
async def lifespan(_: FastAPI):
    _create_schema()
    yield


app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

app.include_router(lobs.router, tags=["lobs"])
app.include_router(brain.router, tags=["brain"])
app.include_router(brain.global_router, tags=["brain"])


@app.get("/health")
def health() -> dict[str, str]:
    """Simple health check endpoint."""

    return {"status": "ok"}
