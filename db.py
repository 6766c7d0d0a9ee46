import logging
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config import settings
from models import Base

logger = logging.getLogger(__name__)

_ENGINE: Optional[Engine] = None
_SESSION_FACTORY: Optional[sessionmaker] = None


def _apply_pragmas(dbapi_conn, _record) -> None:
    """Apply default SQLite pragmas for concurrency."""

    cursor = dbapi_conn.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.execute("PRAGMA busy_timeout=10000;")
    except Exception:
        logger.exception("apply_pragmas_failed")
    finally:
        cursor.close()


def get_database_url() -> str:
    return settings.database_url


def get_engine() -> Engine:
    """Return a module-level SQLAlchemy engine, recreating if the URL changes."""
    global _ENGINE, _SESSION_FACTORY
    url = get_database_url()
    if _ENGINE is None or str(_ENGINE.url) != url:
        kwargs = {}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
        _ENGINE = create_engine(url, future=True, **kwargs)
        if _ENGINE.dialect.name == "sqlite":
            event.listen(_ENGINE, "connect", _apply_pragmas)
        _SESSION_FACTORY = sessionmaker(bind=_ENGINE, expire_on_commit=False)
    return _ENGINE


def init_db() -> None:
    """Create the ledger tables if they do not exist yet."""
    engine = get_engine()
    logger.info("init_db url=%s", engine.url.render_as_string(hide_password=True))
    Base.metadata.create_all(engine)


def get_session() -> Iterator[Session]:
    """FastAPI dependency yielding a session per request."""
    get_engine()
    assert _SESSION_FACTORY is not None
    session = _SESSION_FACTORY()
    try:
        yield session
    finally:
        session.close()
