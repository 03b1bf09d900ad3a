"""Database connection and initialization."""

from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from gamecentre.config import settings

# Import all models so SQLModel registers them
import gamecentre.models  # noqa: F401


def _set_sqlite_pragmas(dbapi_conn, _record):
    # Per-connection pragmas; WAL itself persists in the database file
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def create_db_engine(db_path: Path = settings.db_path, echo: bool = settings.debug) -> Engine:
    bind = create_engine(
        f"sqlite:///{db_path}",
        echo=echo,
        connect_args={"check_same_thread": False},
    )
    event.listen(bind, "connect", _set_sqlite_pragmas)
    return bind


engine = create_db_engine()


def init_db(bind: Engine = engine) -> None:
    """Create all tables and enable WAL mode."""
    SQLModel.metadata.create_all(bind)

    # Enable WAL mode for better concurrent read performance
    with bind.connect() as conn:
        conn.exec_driver_sql("PRAGMA journal_mode=WAL")
        conn.exec_driver_sql("PRAGMA synchronous=NORMAL")
        conn.commit()
