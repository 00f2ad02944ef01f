"""Entity records for the crawl-state hierarchy.

forum -> category -> page / topic -> post

Every record carries a `RowId`. Candidates built by the crawler start out
`UNASSIGNED`; rows read back from the store always carry `Assigned(n)` where
`n` is the store-assigned surrogate id. Parent references (`forum_id`,
`category_id`, `topic_id`) hold the parent's surrogate id, not its natural key.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Union


@dataclass(frozen=True)
class Unassigned:
    """Marker for a record that has not been persisted yet."""

    def __repr__(self) -> str:
        return "UNASSIGNED"


@dataclass(frozen=True)
class Assigned:
    value: int


UNASSIGNED = Unassigned()

RowId = Union[Unassigned, Assigned]


@dataclass(frozen=True)
class Forum:
    url: str
    categories_crawled: bool = False
    id: RowId = UNASSIGNED


@dataclass(frozen=True)
class Category:
    category_id: int
    forum_id: int
    topic_url: str
    json: str
    pages_crawled: bool = False
    id: RowId = UNASSIGNED


@dataclass(frozen=True)
class Page:
    page_id: int
    category_id: int
    more_topics_url: Optional[str]
    json: str
    id: RowId = UNASSIGNED


@dataclass(frozen=True)
class Topic:
    topic_id: int
    category_id: int
    page_excerpt_json: str
    topic_json: str
    posts_crawled: bool = False
    id: RowId = UNASSIGNED


@dataclass(frozen=True)
class Post:
    post_id: int
    topic_id: int
    json: str
    id: RowId = UNASSIGNED


Entity = Union[Forum, Category, Page, Topic, Post]


@dataclass(frozen=True)
class ForumProgress:
    """How far a crawl of one forum got."""

    forum_id: int
    url: str
    categories_crawled: bool
    categories: int
    categories_pages_crawled: int
    pages: int
    topics: int
    topics_posts_crawled: int
    posts: int

    def to_dict(self) -> dict:
        return {
            "forum_id": self.forum_id,
            "url": self.url,
            "categories_crawled": self.categories_crawled,
            "categories": self.categories,
            "categories_pages_crawled": self.categories_pages_crawled,
            "pages": self.pages,
            "topics": self.topics,
            "topics_posts_crawled": self.topics_posts_crawled,
            "posts": self.posts,
        }


def is_persisted(entity: Entity) -> bool:
    return isinstance(entity.id, Assigned)


def require_id(entity: Entity) -> int:
    """Return the surrogate id of a stored record.

    Raises ValueError for a candidate that was never written.
    """

    if isinstance(entity.id, Assigned):
        return entity.id.value
    raise ValueError(f"{type(entity).__name__} has no id yet (not persisted): {entity!r}")


def with_id(entity: Entity, row_id: int) -> Entity:
    return replace(entity, id=Assigned(int(row_id)))
