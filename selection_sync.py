# -*- coding: utf-8 -*-
"""
SelectionSync - keeps the table selection and the tagging panel in step.

The engine owns three pieces of state:
- the selection map (row id -> TaggingItem)
- the aggregate flag ("tag the whole directory as one item")
- whether the panel is shown

It knows the current table only by its row ids and the directory path
(the anchor used as the single target in aggregate mode). Nothing here
depends on Qt, so every transition can be tested directly.

All methods must be called from the GUI thread.
"""

import enum
import logging
from collections.abc import Callable, Iterable

from models import TableRow, TaggingItem

logger = logging.getLogger(__name__)


class PanelState(enum.Enum):
    CLOSED = "closed"
    OPEN_INDIVIDUAL = "open_individual"
    OPEN_AGGREGATE = "open_aggregate"


class SelectionSync:
    """Selection/panel state machine for one table view."""

    def __init__(self, on_changed: Callable[["SelectionSync"], None] | None = None):
        self._row_ids: frozenset[str] = frozenset()
        self._anchor_path: str | None = None
        self._selection: dict[str, TaggingItem] = {}
        self._aggregate = False
        self._panel_open = False
        self._on_changed = on_changed

    # --------------------- read-only views ---------------------
    @property
    def row_ids(self) -> frozenset[str]:
        return self._row_ids

    @property
    def anchor_path(self) -> str | None:
        return self._anchor_path

    @property
    def selection(self) -> dict[str, TaggingItem]:
        """Copy of the selection map."""
        return dict(self._selection)

    @property
    def selected_ids(self) -> set[str]:
        return set(self._selection)

    @property
    def aggregate_mode(self) -> bool:
        return self._aggregate

    @property
    def panel_visible(self) -> bool:
        return self._panel_open

    @property
    def state(self) -> PanelState:
        if not self._panel_open:
            return PanelState.CLOSED
        return PanelState.OPEN_AGGREGATE if self._aggregate else PanelState.OPEN_INDIVIDUAL

    @property
    def is_all_rows_selected(self) -> bool:
        """True when every row of a non-empty table is selected."""
        if not self._row_ids:
            return False
        return all(rid in self._selection for rid in self._row_ids)

    def panel_items(self) -> list[TaggingItem]:
        if self._aggregate and self._anchor_path is not None:
            return [TaggingItem(self._anchor_path, self._anchor_path)]
        return list(self._selection.values())

    def panel_paths(self) -> list[str]:
        return [item.absolute_path for item in self.panel_items()]

    # --------------------- transitions ---------------------
    def on_selection_changed(self, selected_rows: Iterable[TableRow]) -> None:
        """Reconcile with the complete set of rows the table reports as selected."""
        selected_rows = list(selected_rows)
        selected_ids = {row.id for row in selected_rows}
        before = (dict(self._selection), self._aggregate, self._panel_open)

        # stale keys and deselected visible rows both go
        updated = {
            rid: item for rid, item in self._selection.items()
            if rid in self._row_ids and rid in selected_ids
        }
        for row in selected_rows:
            if row.id not in self._row_ids:
                logger.debug("Ignoring selected row outside the current table: %s", row.id)
                continue
            updated[row.id] = TaggingItem(row.entry.path, row.name)

        self._selection = updated
        if not self.is_all_rows_selected:
            self._aggregate = False
        self._panel_open = bool(self._selection) or self._aggregate
        if (self._selection, self._aggregate, self._panel_open) != before:
            self._notify()

    def on_item_removed(self, path: str) -> None:
        """Drop one panel item (the anchor in aggregate mode cancels the whole group)."""
        if self._aggregate and path == self._anchor_path:
            self._selection = {}
            self._aggregate = False
            self._panel_open = False
            self._notify()
            return

        if path not in self._selection:
            return

        updated = dict(self._selection)
        del updated[path]
        self._selection = updated
        if self._aggregate:
            self._aggregate = self.is_all_rows_selected
        if not self._selection:
            self._aggregate = False
        self._panel_open = self._panel_open and (bool(self._selection) or self._aggregate)
        self._notify()

    def on_directory_changed(self, row_ids: Iterable[str], anchor_path: str | None = None) -> None:
        """A rescan or navigation replaced the table; nothing carries over."""
        self._row_ids = frozenset(row_ids)
        self._anchor_path = anchor_path
        self._selection = {}
        self._aggregate = False
        self._panel_open = False
        self._notify()

    def toggle_aggregate_mode(self) -> None:
        if not self.is_all_rows_selected:
            return
        self._aggregate = not self._aggregate
        self._panel_open = True
        self._notify()

    def close_panel(self) -> None:
        """Hide the panel and forget aggregate mode; the row selection is kept."""
        self._panel_open = False
        self._aggregate = False
        self._notify()

    def open_panel(self) -> None:
        """Show the panel again for a selection hidden by close_panel()."""
        if self._panel_open or not self._selection:
            return
        self._panel_open = True
        self._notify()

    def _notify(self) -> None:
        if self._on_changed is not None:
            self._on_changed(self)
