import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker

from .utils import resolve_sqlite_url

load_dotenv()
# Repository root; relative SQLite paths in DB_URL resolve against it.
ROOT_DIR = Path(__file__).resolve().parents[2]
DEFAULT_SQLITE_URL = resolve_sqlite_url(
    os.getenv("DB_URL", "sqlite:///./draws.db"), ROOT_DIR
)

# Seconds a SQLite connection waits on a locked database before failing.
SQLITE_BUSY_TIMEOUT = 30


def _echo_from_env() -> bool:
    return os.getenv("DB_ECHO", "").strip().lower() in ("1", "true", "yes")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(database_url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """Create the engine for the draw database.

    SQLite connections wait up to ``SQLITE_BUSY_TIMEOUT`` seconds on a locked
    file, since concurrent draw triggers contend on it, and enforce foreign
    keys. ``echo`` defaults to the ``DB_ECHO`` environment variable.
    """
    url = make_url(database_url or DEFAULT_SQLITE_URL)
    if echo is None:
        echo = _echo_from_env()

    if url.get_backend_name() != "sqlite":
        return create_engine(url, echo=echo, future=True)

    engine = create_engine(
        url,
        echo=echo,
        future=True,
        connect_args={"timeout": SQLITE_BUSY_TIMEOUT},
    )
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def get_sessionmaker(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        expire_on_commit=False,  # Keep records readable after the draw commit
        future=True,
    )
