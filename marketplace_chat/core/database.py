"""
Database engine, session management and schema bootstrap.
"""
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import Engine, create_engine, event, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from marketplace_chat.core.config import get_settings
from marketplace_chat.core.logging import get_logger

logger = get_logger(__name__)

Base = declarative_base()

# Initialized lazily so settings can be overridden before first use
_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def _ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    if not database_url.startswith("sqlite:///"):
        return
    db_path = database_url[len("sqlite:///"):]
    if not db_path or db_path == ":memory:":
        return
    db_dir = Path(db_path).parent
    if not db_dir.exists():
        db_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Created database directory: {db_dir}")


def get_engine() -> Engine:
    """Get or create the database engine."""
    global _engine
    if _engine is None:
        settings = get_settings()

        connect_args = {}
        is_sqlite = settings.database_url.startswith("sqlite")
        if is_sqlite:
            connect_args["check_same_thread"] = False
            _ensure_sqlite_directory(settings.database_url)

        _engine = create_engine(
            settings.database_url,
            connect_args=connect_args,
            echo=settings.debug,
            pool_pre_ping=True,
        )

        if is_sqlite:
            @event.listens_for(_engine, "connect")
            def set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        logger.info("Database engine created", extra={"extra_data": {"database_url": settings.database_url}})

    return _engine


def get_session_factory() -> sessionmaker:
    """Get or create the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        # Records handed to the live channel outlive the commit
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=get_engine(),
        )
    return _SessionLocal


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a database session."""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def init_db(engine: Optional[Engine] = None) -> None:
    """Create tables for every registered model."""
    from marketplace_chat.models import listing, message, user  # noqa: F401 - register models

    Base.metadata.create_all(bind=engine or get_engine())
    logger.info("Database tables created")


def check_db_connection(engine: Optional[Engine] = None) -> bool:
    """Check if the database is reachable."""
    try:
        with (engine or get_engine()).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
