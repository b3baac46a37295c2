"""Replay store for create requests carrying an Idempotency-Key.

A sheet append is not idempotent, so a retried POST would otherwise add a
second row. The first response per key is kept in a local SQLite table.
"""

from pathlib import Path
from time import time
from typing import Any, Optional

from sqlalchemy import Column, Integer, JSON
from sqlalchemy.engine import Engine
from sqlmodel import Field, Session, SQLModel, create_engine, delete

from .config import settings

engine: Engine | None = None


class Idempotency(SQLModel, table=True):
    key: str = Field(primary_key=True)
    scope: str = Field(default="")
    created_at: int = Field(sa_column=Column(Integer, nullable=False))
    status_code: int = Field(default=200)
    response: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))


def _db_path() -> Path:
    path = Path(settings.IDEMPOTENCY_DB_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def refresh_engine() -> None:
    global engine
    if engine is not None:
        engine.dispose()
    engine = create_engine(f"sqlite:///{_db_path()}", echo=False)


def _get_engine() -> Engine:
    desired = str(_db_path())
    if engine is None or engine.url.database != desired:
        refresh_engine()
    assert engine is not None
    SQLModel.metadata.create_all(engine)
    return engine


def init_db() -> None:
    _get_engine()


def _scoped(scope: str, key: str) -> str:
    return f"{scope}:{key}"


def save(scope: str, key: str, status_code: int, response: dict[str, Any]) -> None:
    with Session(_get_engine()) as session:
        session.merge(
            Idempotency(
                key=_scoped(scope, key),
                scope=scope,
                created_at=int(time()),
                status_code=status_code,
                response=response,
            )
        )
        session.commit()


def lookup(scope: str, key: str, ttl_seconds: int) -> Optional[Idempotency]:
    with Session(_get_engine()) as session:
        row = session.get(Idempotency, _scoped(scope, key))
        if not row:
            return None
        if int(time()) - row.created_at > ttl_seconds:
            return None
        session.expunge(row)
        return row


def purge_older_than(ttl_seconds: int) -> int:
    cutoff = int(time()) - ttl_seconds
    with Session(_get_engine()) as session:
        result = session.exec(delete(Idempotency).where(Idempotency.created_at < cutoff))
        session.commit()
        return result.rowcount or 0
