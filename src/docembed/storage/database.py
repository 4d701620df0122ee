from __future__ import annotations

from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from docembed.errors import StorageError
from docembed.storage.models import Base


def create_session_factory(database_url: str):
    try:
        url = make_url(database_url)
        if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(url, future=True)
    except (ArgumentError, ImportError, OSError) as exc:
        raise StorageError(f"Cannot open database {database_url!r}: {exc}") from exc
    return sessionmaker(bind=engine, expire_on_commit=False), engine


def init_db(engine) -> None:
    try:
        Base.metadata.create_all(engine)
    except SQLAlchemyError as exc:
        raise StorageError(f"Cannot initialise database schema: {exc}") from exc
