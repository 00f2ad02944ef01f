"""Pytest configuration and shared fixtures."""

import pytest
from pathlib import Path

from forum_crawl_store import Category, CrawlStore, Forum, Topic


@pytest.fixture
def repo_root():
    """Return the repository root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def db_path(tmp_path):
    """Path of a fresh DuckDB file for one test."""
    return tmp_path / "crawl.duckdb"


@pytest.fixture
def store(db_path):
    """An open store on a fresh file; closed after the test."""
    s = CrawlStore.open(db_path)
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def forum(store):
    return store.create_forum(Forum(url="https://forum.example.org"))


@pytest.fixture
def category(store, forum):
    return store.create_category(
        Category(category_id=5, forum_id=forum.id.value, topic_url="/c/general/5.json", json="{}")
    )


@pytest.fixture
def topic(store, category):
    return store.create_topic(
        Topic(topic_id=100, category_id=category.id.value, page_excerpt_json="{}", topic_json="{}")
    )
