"""
Database Helper Functions

SQL helper functions ready to use in your backend code.
Import and use these functions in your API endpoints for database operations.
Tables are declared with SQLAlchemy Core; every statement uses bound parameters.
"""

import logging
from typing import Optional, Dict, Any, List, Iterable

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    create_engine,
    delete,
    func,
    insert,
    inspect,
    select,
    text,
    update,
)
from sqlalchemy.pool import StaticPool

from config import DATABASE_URL

logger = logging.getLogger(__name__)

metadata = MetaData()

# Largest value a serial primary key can hold
MAX_ID = 2 ** 31 - 1

books = Table(
    "books",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("isbn", String(32), unique=True, nullable=False),
    Column("title", String(255), nullable=False),
    Column("author", String(255)),
    Column("genre", String(255)),
    Column("price", Numeric(10, 2), nullable=False),
    Column("image_url", Text),
    Column("description", Text),
    Column("username", String(64)),
    sqlite_autoincrement=True,
)

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("username", String(64), unique=True, nullable=False),
    Column("email", String(255), unique=True, nullable=False),
    Column("password", String(255), nullable=False),
    Column("role", String(16), nullable=False, server_default="user"),
    Column("profile_pic_url", Text),
    sqlite_autoincrement=True,
)

orders = Table(
    "orders",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("total", Numeric(10, 2), nullable=False),
    sqlite_autoincrement=True,
)

engine = None


def _make_engine(url: str):
    if url.startswith("sqlite"):
        # In-memory SQLite must share one connection across threads
        if url in ("sqlite://", "sqlite:///:memory:"):
            return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


if DATABASE_URL:
    engine = _make_engine(DATABASE_URL)


# Helper functions for common database operations
def _ensure_db():
    if engine is None:
        raise Exception("Database not available. Check DATABASE_URL environment variable.")


def init_db() -> None:
    """Create any missing tables"""
    _ensure_db()
    metadata.create_all(engine)


def drop_db() -> None:
    _ensure_db()
    metadata.drop_all(engine)


def create_row(table: Table, data: Dict[str, Any]) -> Dict[str, Any]:
    """Insert a single row and return it with its generated id"""
    _ensure_db()
    with engine.begin() as conn:
        result = conn.execute(insert(table).values(**data))
        new_id = result.inserted_primary_key[0]
        row = conn.execute(select(table).where(table.c.id == new_id)).mappings().first()
    logger.info("Inserted %s row id=%s", table.name, new_id)
    return dict(row)


def create_rows(table: Table, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Insert several rows in one transaction; nothing is kept if any insert fails"""
    _ensure_db()
    created = []
    with engine.begin() as conn:
        for data in items:
            result = conn.execute(insert(table).values(**data))
            new_id = result.inserted_primary_key[0]
            created.append(dict(conn.execute(select(table).where(table.c.id == new_id)).mappings().first()))
    logger.info("Inserted %d %s rows", len(created), table.name)
    return created


def get_rows(table: Table, where=None, order_by=None) -> List[Dict[str, Any]]:
    """Get rows from a table, optionally filtered by a SQLAlchemy expression"""
    _ensure_db()
    stmt = select(table)
    if where is not None:
        stmt = stmt.where(where)
    stmt = stmt.order_by(order_by if order_by is not None else table.c.id)
    with engine.connect() as conn:
        return [dict(r) for r in conn.execute(stmt).mappings()]


def get_row_by_id(table: Table, row_id: int) -> Optional[Dict[str, Any]]:
    return get_row_by(table, "id", row_id)


def get_row_by(table: Table, column: str, value: Any) -> Optional[Dict[str, Any]]:
    """Get the first row whose column equals value"""
    _ensure_db()
    with engine.connect() as conn:
        row = conn.execute(select(table).where(table.c[column] == value)).mappings().first()
    return dict(row) if row else None


def update_row(table: Table, row_id: int, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Update a row by id; returns the updated row or None when it does not exist"""
    _ensure_db()
    with engine.begin() as conn:
        if data:
            result = conn.execute(update(table).where(table.c.id == row_id).values(**data))
            if result.rowcount == 0:
                return None
        row = conn.execute(select(table).where(table.c.id == row_id)).mappings().first()
    return dict(row) if row else None


def delete_row(table: Table, row_id: int) -> bool:
    """Delete a row by id"""
    _ensure_db()
    with engine.begin() as conn:
        res = conn.execute(delete(table).where(table.c.id == row_id))
    return res.rowcount > 0


def delete_rows(table: Table, ids: Iterable[int]) -> int:
    """Delete every row whose id is listed, in one statement"""
    _ensure_db()
    with engine.begin() as conn:
        res = conn.execute(delete(table).where(table.c.id.in_(list(ids))))
    logger.info("Deleted %d %s rows by id list", res.rowcount, table.name)
    return res.rowcount


def delete_all_rows(table: Table) -> int:
    """Delete every row and restart the primary-key sequence at 1"""
    _ensure_db()
    with engine.begin() as conn:
        res = conn.execute(delete(table))
        dialect = conn.dialect.name
        if dialect == "postgresql":
            conn.execute(text(f"ALTER SEQUENCE {table.name}_id_seq RESTART WITH 1"))
        elif dialect == "sqlite":
            conn.execute(text("DELETE FROM sqlite_sequence WHERE name = :name"), {"name": table.name})
    logger.warning("Deleted all %d %s rows and reset id sequence", res.rowcount, table.name)
    return res.rowcount


def count_rows(table: Table) -> int:
    _ensure_db()
    with engine.connect() as conn:
        return conn.execute(select(func.count()).select_from(table)).scalar_one()


def database_status() -> Dict[str, Any]:
    response = {
        "database": "Not Available",
        "database_url": "Set" if DATABASE_URL else "Not Set",
        "connection_status": "Not Connected",
        "tables": [],
    }
    if engine is None:
        return response
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            response["tables"] = inspect(conn).get_table_names()[:10]
        response["database"] = "Connected & Working"
        response["connection_status"] = "Connected"
    except Exception as e:
        response["database"] = f"Connected but Error: {str(e)[:50]}"
    return response
