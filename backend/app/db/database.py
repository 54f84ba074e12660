"""Database engine setup and table initialization."""
import logging

from sqlmodel import SQLModel, create_engine

from app.config import settings

logger = logging.getLogger(__name__)


def _engine_url(url: str) -> str:
    # postgresql+psycopg:// uses the psycopg 3 driver
    return url.replace("postgresql://", "postgresql+psycopg://")


def _connect_args(url: str) -> dict:
    # Audit rows are written from worker threads
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    _engine_url(settings.database_url),
    echo=False,
    connect_args=_connect_args(settings.database_url),
)


def init_db():
    """Initialize the database tables and seed the static catalogs."""
    # Register table metadata before create_all
    import app.models  # noqa: F401
    from .seed import seed_catalog

    SQLModel.metadata.create_all(engine)
    logger.info("Database tables created")
    if settings.seed_catalog:
        seed_catalog(engine)
