"""Error taxonomy for the crawl store.

Storage errors are never retried or swallowed here. DuckDB exceptions are
translated into the classes below (the DuckDB exception is kept as __cause__)
and raised straight to the caller.

A lookup that finds nothing is not an error: finders return None or [].
"""

from __future__ import annotations

from typing import Optional

import duckdb


class CrawlStoreError(RuntimeError):
    """Base class for crawl store failures."""


class ConstraintViolation(CrawlStoreError):
    """A uniqueness, foreign-key or NOT NULL constraint rejected a write."""


class UniqueViolation(ConstraintViolation):
    """A row with the same natural key already exists.

    On the find-or-create path this only happens if the row appeared between
    the lookup and the insert; callers should re-read instead of retrying.
    """


class ForeignKeyViolation(ConstraintViolation):
    """The referenced parent row does not exist."""


class ConnectionFailure(CrawlStoreError):
    """The database could not be opened, or the store was already closed."""


def translate_constraint_error(exc: duckdb.ConstraintException, *, table: Optional[str] = None) -> ConstraintViolation:
    msg = str(exc)
    low = msg.lower()
    where = f"{table}: " if table else ""
    if "duplicate key" in low:
        return UniqueViolation(f"{where}{msg}")
    if "foreign key" in low:
        return ForeignKeyViolation(f"{where}{msg}")
    if "unique" in low or "primary key" in low:
        return UniqueViolation(f"{where}{msg}")
    return ConstraintViolation(f"{where}{msg}")


def translate_connection_error(exc: duckdb.Error, *, db_path: Optional[str] = None) -> ConnectionFailure:
    where = f" ({db_path})" if db_path else ""
    return ConnectionFailure(f"DuckDB connection unavailable{where}: {exc}")
