from __future__ import annotations

from pathlib import Path

import duckdb
import pytest

from forum_crawl_store import ConnectionFailure, CrawlStore, Forum, StoreConfig
from forum_crawl_store.errors import (
    ConstraintViolation,
    ForeignKeyViolation,
    UniqueViolation,
    translate_constraint_error,
)
from forum_crawl_store.schema import TABLES, has_schema


def test_open_creates_schema(db_path: Path) -> None:
    with CrawlStore.open(db_path) as store:
        assert store.missing_tables() == []
    assert db_path.exists()

    con = duckdb.connect(str(db_path), read_only=True)
    try:
        assert has_schema(con)
    finally:
        con.close()


def test_open_twice_keeps_data(db_path: Path) -> None:
    with CrawlStore.open(db_path) as store:
        store.create_forum(Forum(url="https://ex.org"))
    with CrawlStore.open(db_path) as store:
        assert store.find_forum("https://ex.org") is not None


def test_open_without_schema_creation(db_path: Path) -> None:
    with CrawlStore.open(db_path, create_schema=False) as store:
        assert sorted(store.missing_tables()) == sorted(TABLES)


def test_read_only_store_reads(db_path: Path) -> None:
    with CrawlStore.open(db_path) as store:
        store.create_forum(Forum(url="https://ex.org"))

    with CrawlStore.open(StoreConfig(db_path=db_path, read_only=True)) as ro:
        assert ro.find_forum("https://ex.org").url == "https://ex.org"


def test_close_is_idempotent_and_final(db_path: Path) -> None:
    store = CrawlStore.open(db_path)
    store.close()
    store.close()

    assert store.closed
    with pytest.raises(ConnectionFailure):
        store.find_forum("https://ex.org")
    with pytest.raises(ConnectionFailure):
        store.create_forum(Forum(url="https://ex.org"))


def test_context_manager_closes_on_error(db_path: Path) -> None:
    with pytest.raises(RuntimeError):
        with CrawlStore.open(db_path) as store:
            raise RuntimeError("boom")
    assert store.closed


def test_unopenable_path_is_connection_failure(tmp_path: Path) -> None:
    with pytest.raises(ConnectionFailure):
        CrawlStore.open(tmp_path / "no" / "such" / "dir" / "crawl.duckdb")


def test_sequences_start_at_one(store: CrawlStore) -> None:
    assert store.create_forum(Forum(url="https://a.example")).id.value == 1
    assert store.create_forum(Forum(url="https://b.example")).id.value == 2


@pytest.mark.parametrize(
    "message, expected",
    [
        ('Constraint Error: Duplicate key "category_id: 5, forum_id: 1" violates unique constraint.', UniqueViolation),
        ('Constraint Error: Violates foreign key constraint because key "id: 9" does not exist in the referenced table', ForeignKeyViolation),
        ("Constraint Error: NOT NULL constraint failed: post.json", ConstraintViolation),
    ],
)
def test_translate_constraint_error(message: str, expected: type) -> None:
    err = translate_constraint_error(duckdb.ConstraintException(message), table="category")
    assert type(err) is expected
    assert str(err).startswith("category: ")
