from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Dict, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

DEFAULT_DB_URL = "sqlite:///data/newsonboard.db"

_engines: Dict[str, Engine] = {}
_engines_lock = threading.Lock()


def get_db_url() -> str:
    return os.getenv("NEWSONBOARD_DB_URL") or DEFAULT_DB_URL


def _build_engine(db_url: str) -> Engine:
    url = make_url(db_url)
    connect_args = {}
    if url.get_backend_name() == "sqlite":
        # Sessions are used from worker threads; writers wait on the lock instead of failing.
        connect_args = {"check_same_thread": False, "timeout": 30}
        database = url.database or ""
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(db_url, connect_args=connect_args, pool_pre_ping=True)


def get_engine(db_url: Optional[str] = None) -> Engine:
    resolved = db_url or get_db_url()
    with _engines_lock:
        engine = _engines.get(resolved)
        if engine is None:
            engine = _build_engine(resolved)
            _engines[resolved] = engine
        return engine


class SessionProvider:
    """Shared engine + session factory for one database URL."""

    def __init__(self, db_url: Optional[str] = None):
        self.db_url = db_url or get_db_url()
        self.engine = get_engine(self.db_url)
        self._factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    def session(self) -> Session:
        return self._factory()
