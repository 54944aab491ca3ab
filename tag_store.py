# -*- coding: utf-8 -*-
"""
Tag persistence and settings on sqlite.

Tags are stored per absolute path. A directory's tags are inherited by
everything below it; inheritance is computed when reading, never stored.
"""

import logging
import os
import sqlite3
import time
from collections.abc import Iterable, Sequence
from pathlib import Path

logger = logging.getLogger(__name__)

DB_PATH = "tagcrucible.db"
DB_ENV_VAR = "TAGCRUCIBLE_DB"


class TaggingError(Exception):
    """Base class for tag assignment failures."""


class EmptyTagError(TaggingError):
    def __init__(self):
        super().__init__("Tag must not be empty")


class EmptyPathsError(TaggingError):
    def __init__(self):
        super().__init__("Paths must not be empty")


class TagDatabaseError(TaggingError):
    pass


# =========================[ path helpers ]===================================
def normalize_path(p: str) -> str:
    """Path cleanup: separators and bare drive letters (D: -> D:\\)."""
    if not p:
        return p
    np = os.path.normpath(p)
    if len(np) == 2 and np[1] == ':':
        np = np + os.sep
    return np


def canonical_path(p: str) -> str:
    """Resolve symlinks; paths that cannot be resolved are stored as given."""
    try:
        return str(Path(p).resolve(strict=True))
    except (OSError, RuntimeError) as e:
        logger.warning("Failed to canonicalize path; storing as provided: %s (%s)", p, e)
        return normalize_path(p)


def split_tags(path: str, hierarchy: Sequence[str],
               index: dict[str, set[str]]) -> tuple[frozenset[str], frozenset[str]]:
    """(own, inherited) tags of `path`; inherited comes from every ancestor in `hierarchy`."""
    own = frozenset(index.get(path, ()))
    inherited: set[str] = set()
    for depth in range(1, len(hierarchy)):
        ancestor = os.path.join(*hierarchy[:depth])
        inherited.update(index.get(ancestor, ()))
    return own, frozenset(inherited - own)


# =========================[ store ]==========================================
def default_db_path() -> str:
    return os.environ.get(DB_ENV_VAR) or DB_PATH


class TagStore:
    """Short-lived sqlite connections, one per operation."""

    def __init__(self, db_path: str | None = None):
        self.db_path = db_path or default_db_path()
        self.ensure_schema()

    def _conn(self) -> sqlite3.Connection:
        try:
            return sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise TagDatabaseError(f"Failed to open database at {self.db_path}: {e}") from e

    def ensure_schema(self):
        conn = self._conn()
        try:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS path_tags(
                path TEXT NOT NULL,
                tag  TEXT NOT NULL,
                created_at REAL,
                PRIMARY KEY(path, tag)
            );""")
            conn.execute("""
            CREATE TABLE IF NOT EXISTS settings(
                key TEXT PRIMARY KEY,
                value TEXT
            );""")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_path_tags_path ON path_tags(path);")
            conn.commit()
        except sqlite3.Error as e:
            raise TagDatabaseError(f"Failed to initialize schema: {e}") from e
        finally:
            conn.close()

    # --------------------- settings ---------------------
    def get_setting(self, key: str, default=None):
        conn = self._conn(); cur = conn.cursor()
        cur.execute("SELECT value FROM settings WHERE key=?;", (key,))
        row = cur.fetchone(); conn.close()
        return row[0] if row else default

    def set_setting(self, key: str, value: str):
        conn = self._conn(); cur = conn.cursor()
        cur.execute("""INSERT INTO settings(key,value) VALUES(?,?)
                       ON CONFLICT(key) DO UPDATE SET value=excluded.value;""",
                    (key, value))
        conn.commit(); conn.close()

    # --------------------- tags ---------------------
    def assign_tag(self, paths: Iterable[str], tag: str) -> list[str]:
        """Attach `tag` to every path; returns the stored (canonical) paths."""
        name = (tag or "").strip()
        if not name:
            raise EmptyTagError()
        unique = sorted({canonical_path(p) for p in paths if p})
        if not unique:
            raise EmptyPathsError()

        self.ensure_schema()
        now = time.time()
        conn = self._conn()
        try:
            with conn:
                conn.executemany(
                    "INSERT OR REPLACE INTO path_tags(path, tag, created_at) VALUES(?, ?, ?);",
                    [(p, name, now) for p in unique],
                )
        except sqlite3.Error as e:
            raise TagDatabaseError(str(e)) from e
        finally:
            conn.close()
        logger.info("Tagged %d path(s) with %r", len(unique), name)
        return unique

    def tags_for(self, path: str) -> set[str]:
        conn = self._conn(); cur = conn.cursor()
        cur.execute("SELECT tag FROM path_tags WHERE path=? ORDER BY tag;", (path,))
        rows = {r[0] for r in cur.fetchall()}; conn.close()
        return rows

    def tag_index(self) -> dict[str, set[str]]:
        """{path: {tag, ...}} for every tagged path."""
        conn = self._conn(); cur = conn.cursor()
        cur.execute("SELECT path, tag FROM path_tags;")
        index: dict[str, set[str]] = {}
        for path, tag in cur.fetchall():
            index.setdefault(path, set()).add(tag)
        conn.close()
        return index
