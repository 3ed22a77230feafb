from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from ..config import get_db_path as _get_db_path
from .models import Base

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_Session: Optional[sessionmaker[Session]] = None
_db_path_override: Optional[Path] = None


def set_db_path(path: Path) -> None:
    """Point the plugin store at another SQLite file (tests, embedding hosts)."""
    global _db_path_override
    _db_path_override = path
    dispose_engine()


def get_db_path() -> Path:
    return _db_path_override or _get_db_path()


def _sessionmaker() -> sessionmaker[Session]:
    global _engine, _Session
    if _Session is None:
        db_path = get_db_path()
        db_path.parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            f"sqlite:///{db_path}",
            # Sessions are opened from asyncio.to_thread workers
            connect_args={"check_same_thread": False},
        )
        Base.metadata.create_all(engine)
        _engine = engine
        _Session = sessionmaker(bind=engine, expire_on_commit=False)
        logger.debug("Plugin store opened at %s", db_path)
    return _Session


def dispose_engine() -> None:
    """Close pooled connections; the next session reopens the current path."""
    global _engine, _Session
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _Session = None


def init_database() -> Path:
    """Create the plugin tables if needed. Returns the database path."""
    _sessionmaker()
    return get_db_path()


@contextmanager
def db_session() -> Iterator[Session]:
    """One unit of work: commits when the block succeeds, rolls back when it raises."""
    sess = _sessionmaker()()
    try:
        yield sess
        sess.commit()
    except Exception:
        sess.rollback()
        raise
    finally:
        sess.close()
