"""
Book search predicates.

``BookQuery`` collects one clause per supplied query parameter and joins them
with AND. Every clause is a SQLAlchemy expression, so values are always sent
as bound parameters. Parameters that are missing or blank add nothing, and a
query without clauses matches every book.
"""

from decimal import Decimal, InvalidOperation
from typing import List, Optional, Sequence

from sqlalchemy import and_, func, or_
from sqlalchemy.sql.elements import ColumnElement

from database import books

# Separator used when author/genre lists are stored as one string
LIST_SEPARATOR = ", "


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def parse_price(raw: Optional[str], name: str) -> Optional[Decimal]:
    """Turn a query-string price bound into a Decimal; ValueError on garbage"""
    if _blank(raw):
        return None
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation:
        raise ValueError(f"{name} must be a number")
    if not value.is_finite():
        raise ValueError(f"{name} must be a number")
    return value


class BookQuery:
    def __init__(self):
        self.clauses: List[ColumnElement] = []

    def contains(self, column, value: Optional[str]) -> "BookQuery":
        """Case-insensitive substring match"""
        if not _blank(value):
            self.clauses.append(column.ilike(f"%{_escape_like(value.strip())}%", escape="\\"))
        return self

    def any_contains(self, columns: Sequence, value: Optional[str]) -> "BookQuery":
        """Substring match against any of several columns"""
        if not _blank(value):
            pattern = f"%{_escape_like(value.strip())}%"
            self.clauses.append(or_(*[c.ilike(pattern, escape="\\") for c in columns]))
        return self

    def member(self, column, value: Optional[str]) -> "BookQuery":
        """Exact, case-insensitive match of one element of a ', '-joined list column"""
        if not _blank(value):
            item = _escape_like(value.strip().lower())
            lowered = func.lower(column)
            self.clauses.append(
                or_(
                    lowered == value.strip().lower(),
                    lowered.like(f"{item}{LIST_SEPARATOR}%", escape="\\"),
                    lowered.like(f"%{LIST_SEPARATOR}{item}", escape="\\"),
                    lowered.like(f"%{LIST_SEPARATOR}{item}{LIST_SEPARATOR}%", escape="\\"),
                )
            )
        return self

    def at_least(self, column, value: Optional[Decimal]) -> "BookQuery":
        if value is not None:
            self.clauses.append(column >= value)
        return self

    def at_most(self, column, value: Optional[Decimal]) -> "BookQuery":
        if value is not None:
            self.clauses.append(column <= value)
        return self

    def where(self) -> Optional[ColumnElement]:
        if not self.clauses:
            return None
        return and_(*self.clauses)


def search_query(query=None, title=None, author=None, genre=None, min_price=None, max_price=None) -> BookQuery:
    """Basic search: ``query`` matches title, author or genre"""
    return (
        BookQuery()
        .any_contains([books.c.title, books.c.author, books.c.genre], query)
        .contains(books.c.title, title)
        .contains(books.c.author, author)
        .contains(books.c.genre, genre)
        .at_least(books.c.price, min_price)
        .at_most(books.c.price, max_price)
    )


def advanced_search_query(title=None, author=None, genre=None, min_price=None, max_price=None) -> BookQuery:
    return (
        BookQuery()
        .contains(books.c.title, title)
        .contains(books.c.author, author)
        .contains(books.c.genre, genre)
        .at_least(books.c.price, min_price)
        .at_most(books.c.price, max_price)
    )


def filter_query(title=None, author=None, genre=None, min_price=None, max_price=None) -> BookQuery:
    """Filter: genre and author must match one listed value exactly"""
    return (
        BookQuery()
        .contains(books.c.title, title)
        .member(books.c.author, author)
        .member(books.c.genre, genre)
        .at_least(books.c.price, min_price)
        .at_most(books.c.price, max_price)
    )
