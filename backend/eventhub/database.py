"""SQLAlchemy engine, session factory and the FastAPI session dependency."""
from typing import Any, Iterable

from sqlalchemy import create_engine, event
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from eventhub.config import settings

connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)

if settings.DATABASE_URL.startswith("sqlite"):
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def get_db():
    """Yield a session per request and always close it."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def insert_if_absent(db: Session, model, values: dict[str, Any], index_elements: Iterable[str]) -> bool:
    """INSERT ... ON CONFLICT DO NOTHING inside the session's transaction.

    Returns True when this call wrote the row, False when a row with the same
    unique key already existed (possibly written concurrently).
    """
    dialect = db.get_bind().dialect.name
    try:
        insert = _UPSERT_INSERTS[dialect]
    except KeyError:
        raise NotImplementedError(f"Conflict-safe insert is not supported on {dialect}")
    result = db.execute(
        insert(model).values(**values).on_conflict_do_nothing(index_elements=list(index_elements))
    )
    return result.rowcount == 1
