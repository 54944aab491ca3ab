# -*- coding: utf-8 -*-
"""Scan results, table rows and the typed accessors the table uses."""

import os
from dataclasses import dataclass
from datetime import datetime

CURRENT_DIRECTORY_LABEL = "."


# =========================[ scan results ]===================================
@dataclass(frozen=True)
class FileEntry:
    path: str
    is_directory: bool
    is_symlink: bool = False
    size: int = 0
    modified_at: datetime | None = None
    hierarchy: tuple[str, ...] = ()
    own_tags: frozenset[str] = frozenset()
    inherited_tags: frozenset[str] = frozenset()

    @property
    def parent_path(self) -> str | None:
        """Path one level up, or None at a filesystem root."""
        if len(self.hierarchy) <= 1:
            return None
        return os.path.join(*self.hierarchy[:-1])

    @property
    def all_tags(self) -> list[tuple[str, bool]]:
        """(tag, inherited) pairs, own tags first, each group sorted."""
        own = [(t, False) for t in sorted(self.own_tags)]
        inherited = [(t, True) for t in sorted(self.inherited_tags - self.own_tags)]
        return own + inherited


@dataclass(frozen=True)
class DirectoryNode:
    name: str
    entry: FileEntry
    children: tuple["DirectoryNode", ...] = ()


# =========================[ table projection ]===============================
@dataclass(frozen=True)
class TableRow:
    id: str
    name: str
    entry: FileEntry
    is_current_directory: bool = False


@dataclass(frozen=True)
class TableData:
    rows: tuple[TableRow, ...] = ()
    pinned_row_ids: tuple[str, ...] = ()

    @property
    def row_ids(self) -> frozenset[str]:
        return frozenset(r.id for r in self.rows)


@dataclass(frozen=True)
class TaggingItem:
    """One entry of the tagging panel."""
    absolute_path: str
    display_name: str


def build_table_rows(directory: DirectoryNode,
                     current_directory_label: str = CURRENT_DIRECTORY_LABEL) -> TableData:
    """Flatten one level of `directory` into rows; the directory itself comes first."""
    current = TableRow(
        id=directory.entry.path,
        name=current_directory_label,
        entry=directory.entry,
        is_current_directory=True,
    )
    children = tuple(
        TableRow(id=child.entry.path, name=child.name, entry=child.entry)
        for child in directory.children
    )
    return TableData(rows=(current,) + children, pinned_row_ids=(current.id,))


# =========================[ accessors ]======================================
SORT_COLUMNS = ("name", "tags", "modified", "size")


def row_sort_key(row: TableRow, column: str) -> tuple:
    """Comparable key for `column`. Directories sort after files by size."""
    entry = row.entry
    if column == "name":
        return (row.name.casefold(), row.name)
    if column == "tags":
        return (len(entry.own_tags) + len(entry.inherited_tags), ",".join(t for t, _ in entry.all_tags))
    if column == "modified":
        if entry.modified_at is None:
            return (0, 0.0)
        return (1, entry.modified_at.timestamp())
    if column == "size":
        return (1, 0) if entry.is_directory else (0, entry.size)
    raise KeyError(column)


def format_size(entry: FileEntry) -> str:
    """
    Explorer style size text:
      <1KB  -> bytes: '512B'
      <1MB  -> whole KB with thousands separators: '59KB'
      <1GB  -> one decimal MB: '1.2MB'
      else  -> one decimal GB: '3.4GB'
    Directories have no meaningful size and show '-'.
    """
    if entry.is_directory:
        return "-"
    n = entry.size
    if n < 1024:
        return f"{n}B"
    kb = n / 1024.0
    if n < 1024**2:
        return f"{int(round(kb)):,}KB"
    mb = kb / 1024.0
    if n < 1024**3:
        s = f"{mb:.1f}".rstrip("0").rstrip(".")
        return f"{s}MB"
    gb = mb / 1024.0
    s = f"{gb:.1f}".rstrip("0").rstrip(".")
    return f"{s}GB"


def format_modified(entry: FileEntry) -> str:
    if entry.modified_at is None:
        return "-"
    return entry.modified_at.astimezone().strftime("%Y-%m-%d %H:%M:%S")
