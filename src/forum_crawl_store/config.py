"""Store configuration.

Resolution order mirrors the pipeline tooling: explicit arguments, then a JSON
config file, then environment variables, then defaults.

Environment:
  FORUM_CRAWL_DB_PATH               DuckDB file (default: discourse.db)
  FORUM_CRAWL_DUCKDB_THREADS        DuckDB worker threads (falls back to DUCKDB_THREADS)
  FORUM_CRAWL_DUCKDB_MEMORY_LIMIT   e.g. "2GB"
  FORUM_CRAWL_READ_ONLY             1/true/yes to open read-only
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)


DEFAULT_DB_PATH = "discourse.db"

_TRUTHY = {"1", "true", "yes", "on"}


def _env_threads() -> Optional[int]:
    v = (os.environ.get("FORUM_CRAWL_DUCKDB_THREADS") or os.environ.get("DUCKDB_THREADS") or "").strip()
    if v.isdigit():
        return max(1, int(v))
    return None


@dataclass
class StoreConfig:
    """Where the crawl state lives and how DuckDB is tuned for it."""

    db_path: Path = Path(DEFAULT_DB_PATH)
    threads: Optional[int] = None
    memory_limit: Optional[str] = None
    read_only: bool = False

    def __post_init__(self):
        self.db_path = Path(self.db_path).expanduser()
        if self.threads is not None:
            self.threads = max(1, int(self.threads))

    @classmethod
    def from_env(cls) -> "StoreConfig":
        return cls(
            db_path=Path(os.environ.get("FORUM_CRAWL_DB_PATH") or DEFAULT_DB_PATH),
            threads=_env_threads(),
            memory_limit=(os.environ.get("FORUM_CRAWL_DUCKDB_MEMORY_LIMIT") or "").strip() or None,
            read_only=(os.environ.get("FORUM_CRAWL_READ_ONLY") or "").strip().lower() in _TRUTHY,
        )

    @classmethod
    def from_json(cls, path: Path) -> "StoreConfig":
        """Load configuration from a JSON file with the dataclass field names as keys."""
        with open(path) as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"config file {path} must contain a JSON object")
        return cls(**data)

    @classmethod
    def resolve(
        cls,
        *,
        db_path: Optional[Union[str, Path]] = None,
        config_file: Optional[Union[str, Path]] = None,
        read_only: Optional[bool] = None,
    ) -> "StoreConfig":
        """Env/defaults, overridden by a config file, overridden by explicit args."""

        if config_file and Path(config_file).exists():
            logger.info(f"Loading configuration from {config_file}")
            config = cls.from_json(Path(config_file))
        else:
            if config_file:
                logger.info(f"Config file {config_file} not found, using environment")
            config = cls.from_env()

        if db_path:
            config.db_path = Path(db_path).expanduser()
        if read_only is not None:
            config.read_only = bool(read_only)
        return config

    def duckdb_config(self) -> Dict[str, Any]:
        cfg: Dict[str, Any] = {}
        if self.threads:
            cfg["threads"] = int(self.threads)
        if self.memory_limit:
            cfg["memory_limit"] = str(self.memory_limit)
        return cfg
