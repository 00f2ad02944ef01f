"""DuckDB-backed crawl-state store.

One `CrawlStore` owns one DuckDB connection for its whole lifetime:

    with CrawlStore.open("discourse.db") as store:
        forum = store.create_forum(Forum(url="https://meta.discourse.org"))
        if not store.is_forum_categories_crawled(forum):
            ...

Writes go through find-or-create: the scoped natural key is looked up first
and an existing row is returned unchanged, so a resumed crawl can replay the
same records without producing duplicates. `bulk_insert_posts` is the one
path that skips the lookup and must only be fed posts known to be new.

The store is single-writer and synchronous. It never retries; DuckDB errors
surface as the classes in `forum_crawl_store.errors`.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence, TypeVar, Union

import duckdb
import pyarrow as pa

from .config import StoreConfig
from .errors import (
    ConnectionFailure,
    translate_connection_error,
    translate_constraint_error,
)
from .models import (
    Assigned,
    Category,
    Entity,
    Forum,
    ForumProgress,
    Page,
    Post,
    Topic,
    require_id,
)
from .patches import (
    CategoryField,
    ForumField,
    PageField,
    PostField,
    TopicField,
    compile_patch,
)
from .schema import ensure_schema, missing_tables

logger = logging.getLogger(__name__)

T = TypeVar("T")

ForumRef = Union[int, Forum]
CategoryRef = Union[int, Category]
PageRef = Union[int, Page]
TopicRef = Union[int, Topic]
PostRef = Union[int, Post]


FORUM_COLUMNS = "id, url, categories_crawled"
CATEGORY_COLUMNS = "id, category_id, forum_id, topic_url, json, pages_crawled"
PAGE_COLUMNS = "id, page_id, category_id, more_topics_url, json"
TOPIC_COLUMNS = "id, topic_id, category_id, page_excerpt_json, topic_json, posts_crawled"
POST_COLUMNS = "id, post_id, topic_id, json"

# Name under which a bulk batch is exposed to DuckDB while it is being copied.
_POST_BATCH_VIEW = "_post_batch"


def _forum_from_row(row: Sequence[Any]) -> Forum:
    return Forum(url=str(row[1]), categories_crawled=bool(row[2]), id=Assigned(int(row[0])))


def _category_from_row(row: Sequence[Any]) -> Category:
    return Category(
        category_id=int(row[1]),
        forum_id=int(row[2]),
        topic_url=row[3],
        json=row[4],
        pages_crawled=bool(row[5]),
        id=Assigned(int(row[0])),
    )


def _page_from_row(row: Sequence[Any]) -> Page:
    return Page(
        page_id=int(row[1]),
        category_id=int(row[2]),
        more_topics_url=row[3],
        json=row[4],
        id=Assigned(int(row[0])),
    )


def _topic_from_row(row: Sequence[Any]) -> Topic:
    return Topic(
        topic_id=int(row[1]),
        category_id=int(row[2]),
        page_excerpt_json=row[3],
        topic_json=row[4],
        posts_crawled=bool(row[5]),
        id=Assigned(int(row[0])),
    )


def _post_from_row(row: Sequence[Any]) -> Post:
    return Post(post_id=int(row[1]), topic_id=int(row[2]), json=row[3], id=Assigned(int(row[0])))


def _ref_id(ref: Union[int, Entity]) -> int:
    """Accept either a surrogate id or a stored record."""
    if isinstance(ref, int) and not isinstance(ref, bool):
        return ref
    if isinstance(ref, (Forum, Category, Page, Topic, Post)):
        return require_id(ref)
    raise TypeError(f"Expected a surrogate id or a stored record, got {ref!r}")


class CrawlStore:
    """Crawl-state persistence over a single DuckDB connection."""

    def __init__(self, con: duckdb.DuckDBPyConnection, *, db_path: Optional[Path] = None):
        self._con: Optional[duckdb.DuckDBPyConnection] = con
        self.db_path = db_path

    @classmethod
    def open(
        cls,
        config: Union[StoreConfig, str, Path, None] = None,
        *,
        create_schema: bool = True,
    ) -> "CrawlStore":
        """Open (creating if needed) the DuckDB file and return a store bound to it.

        The schema is created unless the config is read-only or
        `create_schema` is False (for files bootstrapped elsewhere).
        """

        if config is None:
            config = StoreConfig.from_env()
        elif not isinstance(config, StoreConfig):
            config = StoreConfig(db_path=Path(config))

        path = str(config.db_path)
        try:
            con = duckdb.connect(path, read_only=config.read_only, config=config.duckdb_config())
        except (duckdb.IOException, duckdb.ConnectionException) as e:
            raise translate_connection_error(e, db_path=path) from e

        try:
            if create_schema and not config.read_only:
                ensure_schema(con)
        except BaseException:
            con.close()
            raise

        mode = "read-only" if config.read_only else "read-write"
        logger.info(f"Opened crawl store {path} ({mode})")
        return cls(con, db_path=config.db_path)

    # -------------------- Lifecycle -------------------- #

    @property
    def closed(self) -> bool:
        return self._con is None

    def close(self) -> None:
        if self._con is None:
            return
        con, self._con = self._con, None
        con.close()
        logger.info(f"Closed crawl store {self.db_path}")

    def __enter__(self) -> "CrawlStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def missing_tables(self) -> List[str]:
        """Crawl-state tables absent from the attached file (empty when the schema is complete)."""
        return missing_tables(self._connection())

    def _connection(self) -> duckdb.DuckDBPyConnection:
        if self._con is None:
            raise ConnectionFailure(f"crawl store {self.db_path} is closed")
        return self._con

    # -------------------- Statement helpers -------------------- #

    def _run(self, sql: str, params: Optional[list] = None, *, table: Optional[str] = None) -> duckdb.DuckDBPyConnection:
        con = self._connection()
        try:
            return con.execute(sql, params or [])
        except duckdb.ConstraintException as e:
            raise translate_constraint_error(e, table=table) from e
        except duckdb.ConnectionException as e:
            raise translate_connection_error(e, db_path=str(self.db_path)) from e

    def _fetch_one(self, sql: str, params: list, convert: Callable[[Sequence[Any]], T], *, table: str) -> Optional[T]:
        row = self._run(sql, params, table=table).fetchone()
        return convert(row) if row is not None else None

    def _fetch_all(self, sql: str, params: list, convert: Callable[[Sequence[Any]], T], *, table: str) -> List[T]:
        return [convert(r) for r in self._run(sql, params, table=table).fetchall()]

    def _find_or_create(
        self,
        table: str,
        existing: Optional[T],
        insert_sql: str,
        params: list,
        convert: Callable[[Sequence[Any]], T],
    ) -> T:
        if existing is not None:
            # payload in the candidate is intentionally dropped; use update_* to refresh
            logger.debug(f"{table} already stored: {existing.id}")
            return existing
        row = self._run(insert_sql, params, table=table).fetchone()
        created = convert(row)
        if table in ("forum", "category"):
            logger.info(f"Created {table} {created.id}")
        else:
            logger.debug(f"Created {table} {created.id}")
        return created

    def _apply_patch(self, field_type, row_id: int, patch: Mapping[Any, Any]) -> None:
        compiled = compile_patch(field_type, patch)
        if compiled.is_empty:
            return
        self._run(compiled.sql(), compiled.params(row_id), table=compiled.table)

    # -------------------- Forum -------------------- #

    def find_forum(self, url: str) -> Optional[Forum]:
        return self._fetch_one(
            f"SELECT {FORUM_COLUMNS} FROM forum WHERE url = ? LIMIT 1",
            [url],
            _forum_from_row,
            table="forum",
        )

    def get_forum(self, forum_id: int) -> Optional[Forum]:
        return self._fetch_one(
            f"SELECT {FORUM_COLUMNS} FROM forum WHERE id = ?",
            [int(forum_id)],
            _forum_from_row,
            table="forum",
        )

    def list_forums(self) -> List[Forum]:
        return self._fetch_all(f"SELECT {FORUM_COLUMNS} FROM forum ORDER BY id", [], _forum_from_row, table="forum")

    def create_forum(self, forum: Forum) -> Forum:
        return self._find_or_create(
            "forum",
            self.find_forum(forum.url),
            f"INSERT INTO forum (url, categories_crawled) VALUES (?, ?) RETURNING {FORUM_COLUMNS}",
            [forum.url, bool(forum.categories_crawled)],
            _forum_from_row,
        )

    def update_forum(self, forum: ForumRef, patch: Mapping[ForumField, Any]) -> None:
        self._apply_patch(ForumField, _ref_id(forum), patch)

    def is_forum_categories_crawled(self, forum: ForumRef) -> bool:
        row = self._run("SELECT categories_crawled FROM forum WHERE id = ?", [_ref_id(forum)], table="forum").fetchone()
        return bool(row[0]) if row is not None else False

    def mark_forum_categories_crawled(self, forum: ForumRef) -> None:
        self.update_forum(forum, {ForumField.CATEGORIES_CRAWLED: True})

    # -------------------- Category -------------------- #

    def find_category(self, category_id: int, forum_id: int) -> Optional[Category]:
        return self._fetch_one(
            f"SELECT {CATEGORY_COLUMNS} FROM category WHERE category_id = ? AND forum_id = ? LIMIT 1",
            [int(category_id), int(forum_id)],
            _category_from_row,
            table="category",
        )

    def get_category(self, category_pk: int) -> Optional[Category]:
        return self._fetch_one(
            f"SELECT {CATEGORY_COLUMNS} FROM category WHERE id = ?",
            [int(category_pk)],
            _category_from_row,
            table="category",
        )

    def find_categories_by_forum_id(self, forum: ForumRef) -> List[Category]:
        return self._fetch_all(
            f"SELECT {CATEGORY_COLUMNS} FROM category WHERE forum_id = ? ORDER BY category_id",
            [_ref_id(forum)],
            _category_from_row,
            table="category",
        )

    def create_category(self, category: Category) -> Category:
        return self._find_or_create(
            "category",
            self.find_category(category.category_id, category.forum_id),
            f"""
            INSERT INTO category (category_id, forum_id, topic_url, json, pages_crawled)
            VALUES (?, ?, ?, ?, ?)
            RETURNING {CATEGORY_COLUMNS}
            """,
            [
                int(category.category_id),
                int(category.forum_id),
                category.topic_url,
                category.json,
                bool(category.pages_crawled),
            ],
            _category_from_row,
        )

    def update_category(self, category: CategoryRef, patch: Mapping[CategoryField, Any]) -> None:
        self._apply_patch(CategoryField, _ref_id(category), patch)

    def is_category_pages_crawled(self, category: CategoryRef) -> bool:
        row = self._run(
            "SELECT pages_crawled FROM category WHERE id = ?", [_ref_id(category)], table="category"
        ).fetchone()
        return bool(row[0]) if row is not None else False

    def mark_category_pages_crawled(self, category: CategoryRef) -> None:
        self.update_category(category, {CategoryField.PAGES_CRAWLED: True})

    # -------------------- Page -------------------- #

    def find_page(self, category_id: int, page_id: int) -> Optional[Page]:
        return self._fetch_one(
            f"SELECT {PAGE_COLUMNS} FROM page WHERE category_id = ? AND page_id = ? LIMIT 1",
            [int(category_id), int(page_id)],
            _page_from_row,
            table="page",
        )

    def create_page(self, page: Page) -> Page:
        return self._find_or_create(
            "page",
            self.find_page(page.category_id, page.page_id),
            f"""
            INSERT INTO page (page_id, category_id, more_topics_url, json)
            VALUES (?, ?, ?, ?)
            RETURNING {PAGE_COLUMNS}
            """,
            [int(page.page_id), int(page.category_id), page.more_topics_url, page.json],
            _page_from_row,
        )

    def update_page(self, page: PageRef, patch: Mapping[PageField, Any]) -> None:
        self._apply_patch(PageField, _ref_id(page), patch)

    def get_last_page_by_category(self, category: CategoryRef) -> Optional[Page]:
        """Highest page_id fetched so far for a category; paging resumes after it."""
        return self._fetch_one(
            f"SELECT {PAGE_COLUMNS} FROM page WHERE category_id = ? ORDER BY page_id DESC LIMIT 1",
            [_ref_id(category)],
            _page_from_row,
            table="page",
        )

    # -------------------- Topic -------------------- #

    def find_topic(self, category_id: int, topic_id: int) -> Optional[Topic]:
        return self._fetch_one(
            f"SELECT {TOPIC_COLUMNS} FROM topic WHERE category_id = ? AND topic_id = ? LIMIT 1",
            [int(category_id), int(topic_id)],
            _topic_from_row,
            table="topic",
        )

    def get_topic(self, topic_pk: int) -> Optional[Topic]:
        return self._fetch_one(
            f"SELECT {TOPIC_COLUMNS} FROM topic WHERE id = ?",
            [int(topic_pk)],
            _topic_from_row,
            table="topic",
        )

    def get_topics_by_category_id(self, category: CategoryRef) -> List[Topic]:
        """Topics of a category, newest (highest topic_id) first."""
        return self._fetch_all(
            f"SELECT {TOPIC_COLUMNS} FROM topic WHERE category_id = ? ORDER BY topic_id DESC",
            [_ref_id(category)],
            _topic_from_row,
            table="topic",
        )

    def create_topic(self, topic: Topic) -> Topic:
        return self._find_or_create(
            "topic",
            self.find_topic(topic.category_id, topic.topic_id),
            f"""
            INSERT INTO topic (topic_id, category_id, page_excerpt_json, topic_json, posts_crawled)
            VALUES (?, ?, ?, ?, ?)
            RETURNING {TOPIC_COLUMNS}
            """,
            [
                int(topic.topic_id),
                int(topic.category_id),
                topic.page_excerpt_json,
                topic.topic_json,
                bool(topic.posts_crawled),
            ],
            _topic_from_row,
        )

    def update_topic(self, topic: TopicRef, patch: Mapping[TopicField, Any]) -> None:
        self._apply_patch(TopicField, _ref_id(topic), patch)

    def is_topic_posts_crawled(self, topic: TopicRef) -> bool:
        row = self._run("SELECT posts_crawled FROM topic WHERE id = ?", [_ref_id(topic)], table="topic").fetchone()
        return bool(row[0]) if row is not None else False

    def mark_topic_posts_crawled(self, topic: TopicRef) -> None:
        self.update_topic(topic, {TopicField.POSTS_CRAWLED: True})

    # -------------------- Post -------------------- #

    def find_post(self, post_id: int, topic_id: int) -> Optional[Post]:
        return self._fetch_one(
            f"SELECT {POST_COLUMNS} FROM post WHERE post_id = ? AND topic_id = ? LIMIT 1",
            [int(post_id), int(topic_id)],
            _post_from_row,
            table="post",
        )

    def get_posts_by_topic_id(self, topic: TopicRef) -> List[Post]:
        return self._fetch_all(
            f"SELECT {POST_COLUMNS} FROM post WHERE topic_id = ? ORDER BY post_id",
            [_ref_id(topic)],
            _post_from_row,
            table="post",
        )

    def create_post(self, post: Post) -> Post:
        return self._find_or_create(
            "post",
            self.find_post(post.post_id, post.topic_id),
            f"INSERT INTO post (post_id, topic_id, json) VALUES (?, ?, ?) RETURNING {POST_COLUMNS}",
            [int(post.post_id), int(post.topic_id), post.json],
            _post_from_row,
        )

    def update_post(self, post: PostRef, patch: Mapping[PostField, Any]) -> None:
        self._apply_patch(PostField, _ref_id(post), patch)

    def bulk_insert_posts(self, posts: Iterable[Post]) -> int:
        """Append posts in one statement, without per-row existence checks.

        Only for posts the caller knows are new (first crawl of a topic). A
        duplicate raises UniqueViolation and nothing from the batch is kept.
        Returns the number of rows written; an empty batch writes nothing.
        """

        batch = list(posts)
        if not batch:
            return 0

        table = pa.table(
            {
                "post_id": pa.array([int(p.post_id) for p in batch], type=pa.int32()),
                "topic_id": pa.array([int(p.topic_id) for p in batch], type=pa.int32()),
                "json": pa.array([p.json for p in batch], type=pa.string()),
            }
        )

        con = self._connection()
        con.register(_POST_BATCH_VIEW, table)
        try:
            self._run(
                f"""
                INSERT INTO post (post_id, topic_id, json)
                SELECT post_id, topic_id, json FROM {_POST_BATCH_VIEW}
                """,
                table="post",
            )
        finally:
            con.unregister(_POST_BATCH_VIEW)

        logger.info(f"Bulk inserted {len(batch):,} posts")
        return len(batch)

    # -------------------- Progress flags -------------------- #

    def mark_crawled(self, entity: Entity) -> None:
        """Set the progress flag that belongs to `entity`'s level."""

        if isinstance(entity, Forum):
            self.mark_forum_categories_crawled(entity)
        elif isinstance(entity, Category):
            self.mark_category_pages_crawled(entity)
        elif isinstance(entity, Topic):
            self.mark_topic_posts_crawled(entity)
        else:
            raise TypeError(f"{type(entity).__name__} has no progress flag")

    def forum_progress(self, forum: ForumRef) -> Optional[ForumProgress]:
        row = self._run(
            """
            SELECT
                f.id,
                f.url,
                f.categories_crawled,
                (SELECT count(*) FROM category c WHERE c.forum_id = f.id),
                (SELECT count(*) FROM category c WHERE c.forum_id = f.id AND c.pages_crawled),
                (SELECT count(*) FROM page p JOIN category c ON p.category_id = c.id
                  WHERE c.forum_id = f.id),
                (SELECT count(*) FROM topic t JOIN category c ON t.category_id = c.id
                  WHERE c.forum_id = f.id),
                (SELECT count(*) FROM topic t JOIN category c ON t.category_id = c.id
                  WHERE c.forum_id = f.id AND t.posts_crawled),
                (SELECT count(*) FROM post po
                   JOIN topic t ON po.topic_id = t.id
                   JOIN category c ON t.category_id = c.id
                  WHERE c.forum_id = f.id)
            FROM forum f
            WHERE f.id = ?
            """,
            [_ref_id(forum)],
            table="forum",
        ).fetchone()
        if row is None:
            return None
        return ForumProgress(
            forum_id=int(row[0]),
            url=str(row[1]),
            categories_crawled=bool(row[2]),
            categories=int(row[3]),
            categories_pages_crawled=int(row[4]),
            pages=int(row[5]),
            topics=int(row[6]),
            topics_posts_crawled=int(row[7]),
            posts=int(row[8]),
        )
