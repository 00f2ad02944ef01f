from __future__ import annotations

import pytest

from forum_crawl_store import (
    Assigned,
    Category,
    ConstraintViolation,
    CrawlStore,
    ForeignKeyViolation,
    Forum,
    Page,
    Post,
    Topic,
    UNASSIGNED,
    UniqueViolation,
)


def _count(store: CrawlStore, table: str) -> int:
    return store._run(f"SELECT count(*) FROM {table}").fetchone()[0]


def test_resume_scenario_reuses_ids(store: CrawlStore) -> None:
    forum = store.create_forum(Forum(url="https://ex.org"))
    assert forum.id == Assigned(1)

    cat = store.create_category(Category(category_id=5, forum_id=1, topic_url="t", json="{}"))
    assert cat.id == Assigned(1)

    again = store.create_category(Category(category_id=5, forum_id=1, topic_url="t", json="{}"))
    assert again.id == Assigned(1)
    assert _count(store, "category") == 1

    store.mark_crawled(again)
    assert store.is_category_pages_crawled(again) is True


def test_forum_keyed_on_url(store: CrawlStore) -> None:
    a = store.create_forum(Forum(url="https://a.example"))
    b = store.create_forum(Forum(url="https://b.example"))
    a2 = store.create_forum(Forum(url="https://a.example", categories_crawled=True))

    assert a.id != b.id
    assert a2 == a
    assert a2.categories_crawled is False
    assert _count(store, "forum") == 2


def test_candidate_id_is_ignored(store: CrawlStore) -> None:
    forum = store.create_forum(Forum(url="https://ex.org", id=Assigned(42)))
    assert forum.id == Assigned(1)


def test_existing_category_returned_unchanged(store: CrawlStore, forum: Forum) -> None:
    fid = forum.id.value
    first = store.create_category(Category(category_id=7, forum_id=fid, topic_url="/old", json='{"v": 1}'))
    second = store.create_category(Category(category_id=7, forum_id=fid, topic_url="/new", json='{"v": 2}'))

    assert second == first
    assert store.find_category(7, fid).json == '{"v": 1}'


def test_category_key_scoped_to_forum(store: CrawlStore) -> None:
    f1 = store.create_forum(Forum(url="https://one.example"))
    f2 = store.create_forum(Forum(url="https://two.example"))

    c1 = store.create_category(Category(category_id=5, forum_id=f1.id.value, topic_url="t", json="{}"))
    c2 = store.create_category(Category(category_id=5, forum_id=f2.id.value, topic_url="t", json="{}"))

    assert c1.id != c2.id
    assert _count(store, "category") == 2


def test_page_idempotent(store: CrawlStore, category: Category) -> None:
    cid = category.id.value
    p1 = store.create_page(Page(page_id=0, category_id=cid, more_topics_url="/latest?page=1", json="{}"))
    p2 = store.create_page(Page(page_id=0, category_id=cid, more_topics_url=None, json="[]"))

    assert p1.id == p2.id
    assert p2.more_topics_url == "/latest?page=1"
    assert _count(store, "page") == 1


def test_page_allows_null_more_topics_url(store: CrawlStore, category: Category) -> None:
    page = store.create_page(Page(page_id=3, category_id=category.id.value, more_topics_url=None, json="{}"))
    assert page.more_topics_url is None


def test_topic_idempotent(store: CrawlStore, category: Category) -> None:
    cid = category.id.value
    t1 = store.create_topic(Topic(topic_id=9, category_id=cid, page_excerpt_json="{}", topic_json="{}"))
    t2 = store.create_topic(Topic(topic_id=9, category_id=cid, page_excerpt_json="{}", topic_json="{}"))
    t3 = store.create_topic(Topic(topic_id=10, category_id=cid, page_excerpt_json="{}", topic_json="{}"))

    assert t1.id == t2.id
    assert t3.id != t1.id
    assert _count(store, "topic") == 2


def test_post_idempotent(store: CrawlStore, topic: Topic) -> None:
    tid = topic.id.value
    p1 = store.create_post(Post(post_id=1, topic_id=tid, json='{"cooked": "hi"}'))
    p2 = store.create_post(Post(post_id=1, topic_id=tid, json='{"cooked": "edited"}'))

    assert p1.id == p2.id
    assert p2.json == '{"cooked": "hi"}'
    assert _count(store, "post") == 1


def test_json_payload_stored_verbatim(store: CrawlStore, topic: Topic) -> None:
    raw = '{"b": 1,   "a": [1, 2],\n "unicode": "é"}'
    store.create_post(Post(post_id=5, topic_id=topic.id.value, json=raw))
    assert store.find_post(5, topic.id.value).json == raw


def test_created_rows_carry_assigned_ids(store: CrawlStore, topic: Topic) -> None:
    candidate = Post(post_id=2, topic_id=topic.id.value, json="{}")
    assert candidate.id is UNASSIGNED

    stored = store.create_post(candidate)
    assert isinstance(stored.id, Assigned)
    assert stored.id.value >= 1


@pytest.mark.parametrize(
    "make",
    [
        lambda: Category(category_id=1, forum_id=999, topic_url="t", json="{}"),
        lambda: Page(page_id=1, category_id=999, more_topics_url=None, json="{}"),
        lambda: Topic(topic_id=1, category_id=999, page_excerpt_json="{}", topic_json="{}"),
        lambda: Post(post_id=1, topic_id=999, json="{}"),
    ],
)
def test_missing_parent_is_foreign_key_violation(store: CrawlStore, make) -> None:
    record = make()
    create = {
        Category: store.create_category,
        Page: store.create_page,
        Topic: store.create_topic,
        Post: store.create_post,
    }[type(record)]

    with pytest.raises(ForeignKeyViolation):
        create(record)

    table = type(record).__name__.lower()
    assert _count(store, table) == 0


def test_stale_lookup_surfaces_unique_violation(
    store: CrawlStore, forum: Forum, monkeypatch: pytest.MonkeyPatch
) -> None:
    fid = forum.id.value
    store.create_category(Category(category_id=5, forum_id=fid, topic_url="t", json="{}"))

    # Simulate a lookup that misses a row written in between.
    monkeypatch.setattr(store, "find_category", lambda *_a, **_k: None)

    with pytest.raises(UniqueViolation) as excinfo:
        store.create_category(Category(category_id=5, forum_id=fid, topic_url="t", json="{}"))

    assert isinstance(excinfo.value, ConstraintViolation)
    assert _count(store, "category") == 1


def test_ids_survive_reopen(db_path) -> None:
    with CrawlStore.open(db_path) as store:
        forum = store.create_forum(Forum(url="https://ex.org"))
        cat = store.create_category(Category(category_id=5, forum_id=forum.id.value, topic_url="t", json="{}"))

    with CrawlStore.open(db_path) as store:
        assert store.create_forum(Forum(url="https://ex.org")).id == forum.id
        again = store.create_category(Category(category_id=5, forum_id=forum.id.value, topic_url="t", json="{}"))
        assert again.id == cat.id

        other = store.create_forum(Forum(url="https://other.example"))
        assert other.id.value > forum.id.value
