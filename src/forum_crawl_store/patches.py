"""Partial updates expressed as field patches.

A patch is a mapping from one entity's field tag to the new value, e.g.

    {CategoryField.JSON: payload, CategoryField.PAGES_CRAWLED: True}

Each tag maps to exactly one fixed SQL assignment, so the UPDATE text is
assembled only from constants in this module. Natural-key and parent columns
have no tag and cannot be patched. Progress flags only accept True.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Tuple, Type


class ForumField(Enum):
    CATEGORIES_CRAWLED = "categories_crawled"


class CategoryField(Enum):
    TOPIC_URL = "topic_url"
    JSON = "json"
    PAGES_CRAWLED = "pages_crawled"


class PageField(Enum):
    MORE_TOPICS_URL = "more_topics_url"
    JSON = "json"


class TopicField(Enum):
    PAGE_EXCERPT_JSON = "page_excerpt_json"
    TOPIC_JSON = "topic_json"
    POSTS_CRAWLED = "posts_crawled"


class PostField(Enum):
    JSON = "json"


FORUM_ASSIGNMENTS: Dict[ForumField, str] = {
    ForumField.CATEGORIES_CRAWLED: "categories_crawled = ?",
}

CATEGORY_ASSIGNMENTS: Dict[CategoryField, str] = {
    CategoryField.TOPIC_URL: "topic_url = ?",
    CategoryField.JSON: "json = ?",
    CategoryField.PAGES_CRAWLED: "pages_crawled = ?",
}

PAGE_ASSIGNMENTS: Dict[PageField, str] = {
    PageField.MORE_TOPICS_URL: "more_topics_url = ?",
    PageField.JSON: "json = ?",
}

TOPIC_ASSIGNMENTS: Dict[TopicField, str] = {
    TopicField.PAGE_EXCERPT_JSON: "page_excerpt_json = ?",
    TopicField.TOPIC_JSON: "topic_json = ?",
    TopicField.POSTS_CRAWLED: "posts_crawled = ?",
}

POST_ASSIGNMENTS: Dict[PostField, str] = {
    PostField.JSON: "json = ?",
}

# field tag type -> (table, assignments)
PATCH_TARGETS: Dict[Type[Enum], Tuple[str, Mapping[Any, str]]] = {
    ForumField: ("forum", FORUM_ASSIGNMENTS),
    CategoryField: ("category", CATEGORY_ASSIGNMENTS),
    PageField: ("page", PAGE_ASSIGNMENTS),
    TopicField: ("topic", TOPIC_ASSIGNMENTS),
    PostField: ("post", POST_ASSIGNMENTS),
}

FLAG_FIELDS = frozenset(
    {
        ForumField.CATEGORIES_CRAWLED,
        CategoryField.PAGES_CRAWLED,
        TopicField.POSTS_CRAWLED,
    }
)


@dataclass(frozen=True)
class CompiledPatch:
    table: str
    assignments: Tuple[str, ...]
    values: Tuple[Any, ...]

    @property
    def is_empty(self) -> bool:
        return not self.assignments

    def sql(self) -> str:
        return f"UPDATE {self.table} SET {', '.join(self.assignments)} WHERE id = ?"

    def params(self, row_id: int) -> list:
        return [*self.values, int(row_id)]


def compile_patch(field_type: Type[Enum], patch: Mapping[Any, Any]) -> CompiledPatch:
    """Turn a patch into a fixed UPDATE statement for `field_type`'s table.

    Raises TypeError for tags belonging to another entity and ValueError for
    an attempt to clear a progress flag. An empty patch compiles to an empty
    CompiledPatch, which callers treat as a no-op.
    """

    if field_type not in PATCH_TARGETS:
        raise TypeError(f"Not a patchable field type: {field_type!r}")
    table, assignments = PATCH_TARGETS[field_type]

    for key in patch:
        if not isinstance(key, field_type):
            raise TypeError(f"{table} patch got foreign field {key!r}; expected {field_type.__name__}")

    sql_parts = []
    values = []
    # declaration order keeps the statement text stable
    for field in field_type:
        if field not in patch:
            continue
        value = patch[field]
        if field in FLAG_FIELDS:
            if value is not True:
                raise ValueError(f"{table}.{field.value} can only be set to True (got {value!r})")
        sql_parts.append(assignments[field])
        values.append(value)

    return CompiledPatch(table=table, assignments=tuple(sql_parts), values=tuple(values))
