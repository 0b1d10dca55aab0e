"""Database connection and session management."""
import logging

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from patchouli.config import get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def _make_engine(url: str, echo: bool = False):
    """Create an engine; SQLite connections get foreign keys enabled."""
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo)

    new_engine = create_engine(url, echo=echo, connect_args={"check_same_thread": False})

    @event.listens_for(new_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return new_engine


settings = get_settings()
engine = _make_engine(settings.database_url, echo=settings.debug)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Dependency to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create all tables."""
    # Import all model modules so they register with Base.metadata
    import patchouli.db.models_auth  # noqa: F401
    Base.metadata.create_all(bind=engine)
    logger.info("Database initialised at %s", engine.url.render_as_string(hide_password=True))
