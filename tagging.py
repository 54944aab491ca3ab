# -*- coding: utf-8 -*-
"""What the tagging panel does when the user presses "Add Tag"."""

import enum
import logging
from collections.abc import Callable, Sequence

from tag_store import TaggingError

logger = logging.getLogger(__name__)


class SubmitResult(enum.Enum):
    ADDED = "added"        # input can be cleared
    REJECTED = "rejected"  # nothing sent to the store
    FAILED = "failed"      # store raised; keep input for a retry


def submit_tag(paths: Sequence[str], tag_text: str,
               assign_tag: Callable[[list[str], str], object]) -> SubmitResult:
    tag = (tag_text or "").strip()
    if not tag:
        logger.warning("Tag name is empty")
        return SubmitResult.REJECTED
    if not paths:
        logger.warning("No items selected")
        return SubmitResult.REJECTED

    try:
        assign_tag(list(paths), tag)
    except TaggingError as e:
        logger.error("Failed to assign tag %r: %s", tag, e)
        return SubmitResult.FAILED
    logger.info("Successfully tagged %d items with %r", len(paths), tag)
    return SubmitResult.ADDED
