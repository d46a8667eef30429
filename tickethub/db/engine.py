import os
import logging
from pathlib import Path

from sqlalchemy import event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlmodel import SQLModel, create_engine

# registers the tables on SQLModel.metadata
from tickethub.domain import models  # noqa: F401

logger = logging.getLogger("db")

DATABASE_PATH = os.getenv(
    "TICKETHUB_DATABASE_PATH",
    str(Path.home() / ".tickethub" / "tickethub.db"),
)
DATABASE_URL = os.getenv("TICKETHUB_DATABASE_URL", f"sqlite:///{DATABASE_PATH}")

FTS_DDL = (
    "CREATE VIRTUAL TABLE IF NOT EXISTS ticket_fts USING fts5("
    "external_id, title, description, notes, comments, tags)"
)


def create_db_engine(url: str = DATABASE_URL, **kwargs) -> Engine:
    connect_args = kwargs.pop("connect_args", {})
    if url.startswith("sqlite"):
        connect_args.setdefault("check_same_thread", False)
    db_engine = create_engine(url, connect_args=connect_args, **kwargs)

    if db_engine.dialect.name == "sqlite":
        @event.listens_for(db_engine, "connect")
        def _sqlite_pragmas(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys = ON")
            if ":memory:" not in url and url not in ("sqlite://", "sqlite:///"):
                cursor.execute("PRAGMA journal_mode = WAL")
            cursor.close()

    return db_engine


engine = create_db_engine()


def init_db(db_engine: Engine = None) -> None:
    db_engine = db_engine or engine
    database = db_engine.url.database
    if db_engine.dialect.name == "sqlite" and database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)

    SQLModel.metadata.create_all(db_engine)
    try:
        with db_engine.begin() as conn:
            conn.execute(text(FTS_DDL))
    except OperationalError as e:
        # sqlite built without fts5: search runs on the substring fallback
        logger.warning("Full-text index unavailable: %s", e)
