# -*- coding: utf-8 -*-
"""
Shorten an absolute path so it fits a fixed-width label.

The last segment (the current directory or file name) is always shown in
full. Intermediate segments are clamped to 3 characters, then to 1
character, and finally dropped behind an ellipsis. A leading root marker
("/" or a drive letter such as "C:") is never shortened.
"""

import re

ELLIPSIS = "…"

_DRIVE_RE = re.compile(r"^[A-Za-z]:$")
_DRIVE_ROOT_RE = re.compile(r"^[A-Za-z]:\\$")


def _is_root(path: str) -> bool:
    return path == "/" or bool(_DRIVE_ROOT_RE.match(path))


def _join(prefix: list[str], last: str, sep: str) -> str:
    if not prefix:
        return last
    if prefix == [""]:
        return f"{sep}{last}"
    return f"{sep.join(prefix)}{sep}{last}"


def format_path_for_display(path: str, max_length: int) -> str:
    """Return `path` shortened to at most `max_length` characters."""
    if max_length <= 0 or not path:
        return ""

    sep = "\\" if "\\" in path else "/"
    normalized = path
    if not _is_root(normalized) and len(normalized) > 1 and normalized.endswith(sep):
        normalized = normalized[:-1]

    if len(normalized) <= max_length:
        return normalized

    segments = normalized.split(sep)
    last = segments.pop()
    if not last:
        return normalized[-max_length:]

    prefix = segments
    reserved_first = bool(prefix) and (prefix[0] == "" or bool(_DRIVE_RE.match(prefix[0])))

    def clamp(limit: int) -> str:
        shortened = [
            seg if (i == 0 and reserved_first) or len(seg) <= limit else seg[:limit]
            for i, seg in enumerate(prefix)
        ]
        return _join(shortened, last, sep)

    for limit in (3, 1):
        candidate = clamp(limit)
        if len(candidate) <= max_length:
            return candidate

    # intermediate segments dropped; last segment wins over the root marker
    if len(last) + 2 <= max_length:
        return f"{ELLIPSIS}{sep}{last}"
    if len(last) + 1 <= max_length:
        return f"{ELLIPSIS}{last}"
    if max_length == 1:
        return last[-1]
    return f"{ELLIPSIS}{last[len(last) - (max_length - 1):]}"
