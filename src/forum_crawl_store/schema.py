"""DuckDB schema for the crawl-state store.

Five tables, each child referencing its parent's surrogate id. Surrogate ids
come from one sequence per table so they start at 1 and are never reused.
"""

from __future__ import annotations

import logging
from typing import List

import duckdb

logger = logging.getLogger(__name__)


TABLES = ("forum", "category", "page", "topic", "post")

SEQUENCES = tuple(f"{t}_id_seq" for t in TABLES)


FORUM_DDL = """
CREATE TABLE IF NOT EXISTS forum (
    id INTEGER PRIMARY KEY DEFAULT nextval('forum_id_seq'),
    url VARCHAR NOT NULL UNIQUE,
    categories_crawled BOOLEAN DEFAULT FALSE
)
"""

CATEGORY_DDL = """
CREATE TABLE IF NOT EXISTS category (
    id INTEGER PRIMARY KEY DEFAULT nextval('category_id_seq'),
    category_id INTEGER NOT NULL,
    forum_id INTEGER NOT NULL,
    topic_url VARCHAR,
    json TEXT,
    pages_crawled BOOLEAN DEFAULT FALSE,
    UNIQUE (category_id, forum_id),
    FOREIGN KEY (forum_id) REFERENCES forum (id)
)
"""

PAGE_DDL = """
CREATE TABLE IF NOT EXISTS page (
    id INTEGER PRIMARY KEY DEFAULT nextval('page_id_seq'),
    page_id INTEGER NOT NULL,
    category_id INTEGER NOT NULL,
    more_topics_url VARCHAR,
    json TEXT,
    UNIQUE (category_id, page_id),
    FOREIGN KEY (category_id) REFERENCES category (id)
)
"""

TOPIC_DDL = """
CREATE TABLE IF NOT EXISTS topic (
    id INTEGER PRIMARY KEY DEFAULT nextval('topic_id_seq'),
    topic_id INTEGER NOT NULL,
    category_id INTEGER NOT NULL,
    page_excerpt_json TEXT,
    topic_json TEXT,
    posts_crawled BOOLEAN DEFAULT FALSE,
    UNIQUE (category_id, topic_id),
    FOREIGN KEY (category_id) REFERENCES category (id)
)
"""

POST_DDL = """
CREATE TABLE IF NOT EXISTS post (
    id INTEGER PRIMARY KEY DEFAULT nextval('post_id_seq'),
    post_id INTEGER NOT NULL,
    topic_id INTEGER NOT NULL,
    json TEXT,
    UNIQUE (topic_id, post_id),
    FOREIGN KEY (topic_id) REFERENCES topic (id)
)
"""


def schema_statements() -> List[str]:
    """All DDL in dependency order (sequences, then parents before children)."""

    stmts = [f"CREATE SEQUENCE IF NOT EXISTS {seq} START 1" for seq in SEQUENCES]
    stmts.extend([FORUM_DDL, CATEGORY_DDL, PAGE_DDL, TOPIC_DDL, POST_DDL])
    return stmts


def ensure_schema(con: duckdb.DuckDBPyConnection) -> None:
    """Create sequences and tables if missing (idempotent)."""

    for stmt in schema_statements():
        con.execute(stmt)
    logger.debug(f"Schema ensured: {', '.join(TABLES)}")


def _has_table(con: duckdb.DuckDBPyConnection, table_name: str) -> bool:
    row = con.execute(
        """
        SELECT 1
        FROM information_schema.tables
        WHERE table_schema = 'main' AND table_name = ?
        LIMIT 1
        """,
        [str(table_name)],
    ).fetchone()
    return row is not None


def missing_tables(con: duckdb.DuckDBPyConnection) -> List[str]:
    return [t for t in TABLES if not _has_table(con, t)]


def has_schema(con: duckdb.DuckDBPyConnection) -> bool:
    return not missing_tables(con)
