"""
Full-text search over article title and content reference.

PostgreSQL
----------
A GIN expression index over
``to_tsvector(<config>, coalesce(title, '') || ' ' || coalesce(content_url, ''))``
serves ``websearch_to_tsquery`` matches, ranked by ``ts_rank``.  The
query side builds the very same expression (literals included, no bind
parameters) so the planner can match it against the index.

Other dialects
--------------
SQLite has no tsvector, so matching falls back to case-insensitive
substring tests on each whitespace-separated term (any term may match)
and the rank is the number of (term, field) hits.  A plain composite
index stands in for the text index so provisioning behaves the same.
"""
import re
from functools import reduce
from operator import add, or_

from sqlalchemy import Index, String, Table, case, func, literal_column
from sqlalchemy.sql.elements import ColumnElement

TEXT_INDEX_NAME = "articles_text_idx"
# Any index named like this on the articles table is treated as a text index.
TEXT_INDEX_SUFFIX = "_text_idx"

_CONFIG_RE = re.compile(r"^[a-z_]+$")


def _regconfig(config: str) -> ColumnElement:
    if not _CONFIG_RE.match(config):
        raise ValueError(f"Invalid text search configuration: {config!r}")
    return literal_column(f"'{config}'")


def _document(table: Table, config: str) -> ColumnElement:
    empty = literal_column("''")
    text = (
        func.coalesce(table.c.title, empty)
        + literal_column("' '")
        + func.coalesce(table.c.content_url, empty)
    )
    return func.to_tsvector(_regconfig(config), text)


def text_index(table: Table, dialect_name: str, config: str) -> Index:
    """Return the composite text index definition for *dialect_name*."""
    if dialect_name == "postgresql":
        # An expression-only index has no column to infer its table from.
        return Index(
            TEXT_INDEX_NAME, _document(table, config), postgresql_using="gin", _table=table
        )
    return Index(TEXT_INDEX_NAME, table.c.title, table.c.content_url)


def is_text_index(info: dict) -> bool:
    """True when an ``Inspector.get_indexes`` entry describes a text index."""
    if (info.get("dialect_options") or {}).get("postgresql_using") == "gin":
        return True
    return (info.get("name") or "").endswith(TEXT_INDEX_SUFFIX)


def match_and_rank(
    table: Table, dialect_name: str, config: str, query: str
) -> tuple[ColumnElement, ColumnElement]:
    """
    Return ``(where_clause, relevance)`` for *query*.

    Callers are expected to reject blank queries beforehand.
    """
    if dialect_name == "postgresql":
        document = _document(table, config)
        tsquery = func.websearch_to_tsquery(_regconfig(config), query)
        return document.bool_op("@@")(tsquery), func.ts_rank(document, tsquery)

    terms = [t.lower() for t in query.split()]
    hits = [
        func.lower(column, type_=String).contains(term, autoescape=True)
        for term in terms
        for column in (table.c.title, table.c.content_url)
    ]
    relevance = reduce(add, [case((hit, 1), else_=0) for hit in hits])
    return reduce(or_, hits), relevance
