"""forum-crawl-store CLI.

Examples:
    python -m forum_crawl_store.cli --help
    forum-crawl-store init --db discourse.db
    forum-crawl-store status --db discourse.db --json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

import duckdb

from forum_crawl_store.config import StoreConfig
from forum_crawl_store.errors import CrawlStoreError
from forum_crawl_store.models import ForumProgress
from forum_crawl_store.store import CrawlStore

logger = logging.getLogger("forum_crawl_store.cli")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def _format_progress(p: ForumProgress) -> str:
    flag = "done" if p.categories_crawled else "pending"
    return (
        f"[{p.forum_id}] {p.url}\n"
        f"  categories: {p.categories:,} (pages crawled: {p.categories_pages_crawled:,}) [{flag}]\n"
        f"  pages:      {p.pages:,}\n"
        f"  topics:     {p.topics:,} (posts crawled: {p.topics_posts_crawled:,})\n"
        f"  posts:      {p.posts:,}\n"
    )


def _cmd_init(args: argparse.Namespace) -> int:
    config = StoreConfig.resolve(db_path=args.db, config_file=args.config, read_only=False)
    config.db_path.parent.mkdir(parents=True, exist_ok=True)
    with CrawlStore.open(config):
        pass
    sys.stdout.write(f"{config.db_path}\n")
    return 0


def _cmd_status(args: argparse.Namespace) -> int:
    config = StoreConfig.resolve(db_path=args.db, config_file=args.config, read_only=True)
    if not config.db_path.exists():
        logger.error(f"Database not found: {config.db_path}")
        return 1

    with CrawlStore.open(config) as store:
        missing = store.missing_tables()
        if missing:
            logger.error(f"{config.db_path} is not a crawl store (missing tables: {', '.join(missing)})")
            return 1

        for forum in store.list_forums():
            progress = store.forum_progress(forum)
            if progress is None:
                continue
            if args.json:
                sys.stdout.write(json.dumps(progress.to_dict(), ensure_ascii=False) + "\n")
            else:
                sys.stdout.write(_format_progress(progress))
    return 0


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(
        prog="forum-crawl-store",
        description="Inspect and initialise the DuckDB file holding resumable forum crawl state",
    )
    ap.add_argument("--config", default=None, help="JSON config file (keys: db_path, threads, memory_limit)")
    ap.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_init = sub.add_parser("init", help="Create the crawl-state schema in a DuckDB file")
    ap_init.add_argument("--db", default=None, help="DuckDB file (default: $FORUM_CRAWL_DB_PATH or discourse.db)")
    ap_init.set_defaults(func=_cmd_init)

    ap_status = sub.add_parser("status", help="Show per-forum crawl progress")
    ap_status.add_argument("--db", default=None, help="DuckDB file (default: $FORUM_CRAWL_DB_PATH or discourse.db)")
    ap_status.add_argument("--json", action="store_true", help="Emit one JSON object per forum")
    ap_status.set_defaults(func=_cmd_status)

    args = ap.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        return int(args.func(args))
    except (CrawlStoreError, duckdb.Error) as e:
        logger.error(f"{args.cmd} failed: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
