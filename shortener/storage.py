"""
Key-value backends for the persisted URL collection.

The service keeps its whole collection in one serialized blob under a
fixed key, so a backend only needs to get and set strings.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol

from redis import Redis
from sqlalchemy.engine import Engine

from shortener.db import Base, make_engine, make_session_factory
from shortener.models import KeyValue


class Storage(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryStorage:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class SqlStorage:
    """Single-table store (kv_store) through SQLAlchemy."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._sessions = make_session_factory(engine)
        Base.metadata.create_all(bind=engine)

    def get(self, key: str) -> str | None:
        with self._sessions() as db:
            row = db.get(KeyValue, key)
            return row.value if row is not None else None

    def set(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc)
        with self._sessions() as db, db.begin():
            row = db.get(KeyValue, key)
            if row is None:
                db.add(KeyValue(key=key, value=value, updated_at=now))
            else:
                row.value = value
                row.updated_at = now


def redis_key(key: str) -> str:
    return f"shortener:{key}"


class RedisStorage:
    def __init__(self, client: Redis) -> None:
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisStorage":
        return cls(Redis.from_url(url, decode_responses=True))

    def get(self, key: str) -> str | None:
        return self.client.get(redis_key(key))

    def set(self, key: str, value: str) -> None:
        self.client.set(redis_key(key), value)


def storage_from_url(url: str) -> Storage:
    """
    memory://            -> MemoryStorage
    redis://, rediss://  -> RedisStorage
    anything else        -> SqlStorage (SQLAlchemy URL)
    """
    scheme = url.split(":", 1)[0].lower()
    if scheme == "memory":
        return MemoryStorage()
    if scheme in ("redis", "rediss", "unix"):
        return RedisStorage.from_url(url)
    return SqlStorage(make_engine(url))
