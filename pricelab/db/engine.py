"""SQLite engine for the pricing lab database.

Scope entries, levers and guardrails cascade from their experiment and daily
results from their run (ON DELETE CASCADE), so every connection must enable
foreign keys. WAL lets CLI readers (summary, export) run while a simulation writes.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

if TYPE_CHECKING:
    from sqlalchemy import Engine

MEMORY = ":memory:"
BUSY_TIMEOUT_MS = 30_000

# Applied in order on every new DBAPI connection
CONNECTION_PRAGMAS: tuple[tuple[str, str], ...] = (
    ("journal_mode", "WAL"),
    ("busy_timeout", str(BUSY_TIMEOUT_MS)),
    ("foreign_keys", "ON"),
)


def create_db_engine(db_path: str | Path, echo: bool = False) -> Engine:
    """Open (and, for files, create the parent directory of) the lab database.

    An in-memory database is pinned to a single connection so every session
    of a ``Database`` sees the same schema and rows.
    """
    if str(db_path) == MEMORY:
        engine = create_engine(
            "sqlite://",
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        path = Path(db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(
            f"sqlite:///{path}",
            echo=echo,
            connect_args={"timeout": BUSY_TIMEOUT_MS / 1000},
        )

    @event.listens_for(engine, "connect")
    def _apply_pragmas(dbapi_conn: object, _connection_record: object) -> None:
        cursor = dbapi_conn.cursor()  # type: ignore[attr-defined]
        for name, value in CONNECTION_PRAGMAS:
            cursor.execute(f"PRAGMA {name}={value}")
        cursor.close()

    return engine


def connection_pragmas(engine: Engine) -> dict[str, str]:
    """Read back the pragmas a fresh connection runs with."""
    with engine.connect() as conn:
        return {
            name: str(conn.execute(text(f"PRAGMA {name}")).scalar()).lower()
            for name, _ in CONNECTION_PRAGMAS
        }


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)
