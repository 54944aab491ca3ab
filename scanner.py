# -*- coding: utf-8 -*-
"""
Directory scanning.

`scan_directory` walks a directory up to a fixed depth and returns the
tree of `DirectoryNode`s the table is built from. `ScanController` keeps
track of which scan was requested last so that a slow result for an old
target cannot overwrite a newer one.
"""

import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from models import DirectoryNode, FileEntry
from tag_store import split_tags

logger = logging.getLogger(__name__)

DEFAULT_DEPTH = 2


class ScanError(Exception):
    """Base class for scan failures."""


class CurrentDirError(ScanError):
    pass


class MissingRootError(ScanError):
    pass


class ScanIOError(ScanError):
    pass


# =========================[ entries ]========================================
def path_hierarchy(path: str) -> tuple[str, ...]:
    """Path parts from the filesystem root: '/a/b' -> ('/', 'a', 'b')."""
    return Path(path).parts


def _to_entry(path: str, tag_index: dict[str, set[str]]) -> FileEntry:
    st = os.stat(path, follow_symlinks=False)
    is_link = os.path.islink(path)
    is_dir = os.path.isdir(path)
    if is_link:
        try:
            st = os.stat(path)
        except OSError:
            pass  # dangling link: keep the link's own metadata
    hierarchy = path_hierarchy(path)
    own, inherited = split_tags(path, hierarchy, tag_index)
    return FileEntry(
        path=path,
        is_directory=is_dir,
        is_symlink=is_link,
        size=st.st_size,
        modified_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        hierarchy=hierarchy,
        own_tags=own,
        inherited_tags=inherited,
    )


def _node_order(node: DirectoryNode):
    return (not node.entry.is_directory, node.name)


def _on_walk_error(e: OSError):
    if isinstance(e, PermissionError):
        logger.warning("Skipping entry due to permission denied: %s", e.filename)
        return
    raise e


def _collect_children(root: str, depth: int) -> dict[str, list[str]]:
    """{directory: [child path, ...]} for every directory less than `depth` levels below root."""
    children_of: dict[str, list[str]] = {}
    base = len(Path(root).parts)
    for dp, dirs, files in os.walk(root, onerror=_on_walk_error):
        level = len(Path(dp).parts) - base
        if level >= depth:
            dirs[:] = []
            continue
        children_of[dp] = [os.path.join(dp, n) for n in dirs + files]
    return children_of


def _build_node(path: str, children_of: dict[str, list[str]],
                tag_index: dict[str, set[str]]) -> DirectoryNode:
    entry = _to_entry(path, tag_index)
    name = os.path.basename(path) or path
    children: list[DirectoryNode] = []
    if entry.is_directory and not entry.is_symlink:
        for child_path in children_of.get(path, ()):
            try:
                children.append(_build_node(child_path, children_of, tag_index))
            except PermissionError:
                logger.warning("Skipping entry due to permission denied: %s", child_path)
            except FileNotFoundError:
                logger.debug("Entry vanished during scan: %s", child_path)
    children.sort(key=_node_order)
    return DirectoryNode(name=name, entry=entry, children=tuple(children))


def scan_directory(path: str, depth: int = DEFAULT_DEPTH,
                   tag_index: dict[str, set[str]] | None = None) -> DirectoryNode:
    """Scan `path` and up to `depth` levels below it (0 = the directory itself)."""
    root = os.path.realpath(os.path.abspath(path))
    if not os.path.exists(root):
        raise MissingRootError(f"Root path not found: {root}")
    try:
        children_of = _collect_children(root, max(depth, 0))
        node = _build_node(root, children_of, tag_index or {})
    except PermissionError as e:
        raise ScanIOError(f"Permission denied: {root}") from e
    except OSError as e:
        raise ScanIOError(str(e)) from e
    logger.info("Scanned %s (%d entries)", root, len(node.children))
    return node


def scan_current_directory(depth: int = DEFAULT_DEPTH,
                           tag_index: dict[str, set[str]] | None = None) -> DirectoryNode:
    try:
        cwd = os.getcwd()
    except OSError as e:
        logger.error("Failed to get current directory: %s", e)
        raise CurrentDirError(str(e)) from e
    return scan_directory(cwd, depth, tag_index)


# =========================[ request tracking ]===============================
@dataclass(frozen=True)
class ScanTarget:
    path: str | None  # None = working directory
    depth: int = DEFAULT_DEPTH


@dataclass(frozen=True)
class ScanTicket:
    token: int
    target: ScanTarget


_KEEP = object()


class ScanController:
    """
    Hands out one ticket per scan request; only the newest ticket's result
    is accepted. No in-flight scan is cancelled, older results are dropped.
    """

    def __init__(self, default_depth: int = DEFAULT_DEPTH):
        self.default_depth = default_depth
        self.last_target = ScanTarget(None, default_depth)
        self._token = 0
        self._pending: int | None = None
        self._lock = threading.Lock()

    @property
    def loading(self) -> bool:
        return self._pending is not None

    def begin(self, path=_KEEP, depth: int | None = None) -> ScanTicket:
        """Register a request. Without `path` the last target is scanned again."""
        if path is _KEEP:
            target = self.last_target
            if depth is not None:
                target = ScanTarget(target.path, depth)
        else:
            target = ScanTarget(path, self.default_depth if depth is None else depth)
        with self._lock:
            self._token += 1
            self._pending = self._token
            self.last_target = target
            return ScanTicket(self._token, target)

    def is_current(self, token: int) -> bool:
        return token == self._token

    def finish(self, token: int) -> bool:
        """True if the result for `token` should be applied."""
        with self._lock:
            if token != self._token:
                logger.debug("Discarding stale scan result (token %d, latest %d)", token, self._token)
                return False
            self._pending = None
            return True

    @staticmethod
    def run(ticket: ScanTicket, tag_index: dict[str, set[str]] | None = None) -> DirectoryNode:
        target = ticket.target
        if target.path is None:
            return scan_current_directory(target.depth, tag_index)
        return scan_directory(target.path, target.depth, tag_index)
