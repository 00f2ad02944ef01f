"""Resumable forum-crawl state persisted in DuckDB.

forum -> category -> page / topic -> post, with idempotent find-or-create
writes, per-level progress flags and a bulk path for new posts.
"""

from .config import StoreConfig
from .errors import (
    ConnectionFailure,
    ConstraintViolation,
    CrawlStoreError,
    ForeignKeyViolation,
    UniqueViolation,
)
from .models import (
    UNASSIGNED,
    Assigned,
    Category,
    Forum,
    ForumProgress,
    Page,
    Post,
    RowId,
    Topic,
    Unassigned,
    require_id,
)
from .patches import CategoryField, ForumField, PageField, PostField, TopicField
from .store import CrawlStore

__all__ = [
    "UNASSIGNED",
    "Assigned",
    "Category",
    "CategoryField",
    "ConnectionFailure",
    "ConstraintViolation",
    "CrawlStore",
    "CrawlStoreError",
    "ForeignKeyViolation",
    "Forum",
    "ForumField",
    "ForumProgress",
    "Page",
    "PageField",
    "Post",
    "PostField",
    "RowId",
    "StoreConfig",
    "Topic",
    "TopicField",
    "Unassigned",
    "UniqueViolation",
    "require_id",
]
