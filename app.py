# -*- coding: utf-8 -*-
"""
Tag Crucible - browse a directory and tag its entries
- one level of the scanned directory per table, "." is the directory itself
- collapsible tagging panel: per-item tagging or the whole folder as one group
- tags are inherited by everything below a tagged directory
"""

import logging
import os
import sys
import threading
import hashlib
from dataclasses import replace

from PySide6.QtCore import Qt, Signal, QTimer, QRectF, QItemSelection, QItemSelectionModel
from PySide6.QtGui import QColor, QPen, QShortcut, QKeySequence
from PySide6.QtWidgets import (
    QApplication, QWidget, QVBoxLayout, QHBoxLayout, QLineEdit, QPushButton,
    QFileDialog, QTableWidget, QTableWidgetItem, QListWidget, QListWidgetItem,
    QSplitter, QMessageBox, QLabel, QAbstractItemView, QHeaderView,
    QStyledItemDelegate, QStyleOptionViewItem, QStyle
)

from models import TableData, TableRow, TaggingItem, FileEntry, build_table_rows, \
    row_sort_key, format_size, format_modified, SORT_COLUMNS
from path_display import format_path_for_display
from scanner import ScanController, ScanError, DEFAULT_DEPTH
from selection_sync import SelectionSync
from tag_store import TagStore, TaggingError, normalize_path, split_tags
from tagging import submit_tag, SubmitResult

logger = logging.getLogger(__name__)

# =========================[ constants ]======================================
APP_TITLE = "Tag Crucible"
LOG_LEVEL_ENV_VAR = "TAGCRUCIBLE_LOG_LEVEL"
HEADER_PATH_MAX = 50

BTN_H = 26
EDIT_H = 28
PANEL_W = 320

COL_NAME, COL_TAGS, COL_MODIFIED, COL_SIZE = range(4)
HEADERS = ["Name", "Tags", "Modified", "Size"]

ROW_ID_ROLE = Qt.UserRole
TAGS_ROLE = Qt.UserRole + 1
SORT_ROLE = Qt.UserRole + 2
PINNED_ROLE = Qt.UserRole + 3

PALETTE = [
    QColor(255,204,204), QColor(255,229,204), QColor(255,255,204), QColor(229,255,204),
    QColor(204,255,204), QColor(204,255,229), QColor(204,255,255), QColor(204,229,255),
    QColor(204,204,255), QColor(229,204,255), QColor(255,204,255), QColor(255,204,229),
]


def color_for_tag(name: str) -> QColor:
    """Stable pastel color per tag name."""
    h = int(hashlib.sha1((name or '').encode()).hexdigest()[:2], 16)
    return PALETTE[h % len(PALETTE)]


# =========================[ table items ]====================================
class RowItem(QTableWidgetItem):
    """Sorts by SORT_ROLE; the pinned "." row stays on top in both directions."""

    def __lt__(self, other):
        table = self.tableWidget()
        ascending = table is None or \
            table.horizontalHeader().sortIndicatorOrder() == Qt.AscendingOrder
        mine, theirs = bool(self.data(PINNED_ROLE)), bool(other.data(PINNED_ROLE))
        if mine != theirs:
            return mine == ascending
        a, b = self.data(SORT_ROLE), other.data(SORT_ROLE)
        if a is None or b is None:
            return super().__lt__(other)
        return list(a) < list(b)


class TagChipsDelegate(QStyledItemDelegate):
    """Draws the tag column as chips; inherited tags get a dashed outline."""

    def paint(self, painter, option, index):
        pairs = index.data(TAGS_ROLE) or []

        opt = QStyleOptionViewItem(option)
        self.initStyleOption(opt, index)
        opt.text = ""
        w = opt.widget or None
        style = w.style() if w else QApplication.style()
        style.drawControl(QStyle.CE_ItemViewItem, opt, painter, w)

        if not pairs:
            return

        painter.save()
        fm = opt.fontMetrics
        x = opt.rect.x() + 6
        y_center = opt.rect.y() + opt.rect.height() // 2
        pad_h, pad_v, spacing = 8, 2, 6
        max_x = opt.rect.right() - 6
        hidden = 0

        for i, (name, inherited) in enumerate(pairs):
            chip_w = fm.horizontalAdvance(name) + pad_h * 2
            chip_h = fm.height() + pad_v * 2
            if x + chip_w > max_x:
                hidden = len(pairs) - i
                break
            pen = QPen(QColor(17, 24, 39))
            pen.setWidth(1 if inherited else 2)
            if inherited:
                pen.setStyle(Qt.DashLine)
            painter.setPen(pen)
            rect = QRectF(x, y_center - chip_h / 2, chip_w, chip_h)
            painter.setBrush(QColor(243, 244, 246) if inherited else color_for_tag(name))
            painter.drawRoundedRect(rect, 8, 8)
            painter.drawText(rect, Qt.AlignCenter, name)
            x += chip_w + spacing

        if hidden:
            more = f"+{hidden}"
            chip_w = fm.horizontalAdvance(more) + pad_h * 2
            chip_h = fm.height() + pad_v * 2
            if x + chip_w <= max_x:
                rect = QRectF(x, y_center - chip_h / 2, chip_w, chip_h)
                painter.setBrush(QColor(229, 231, 235))
                painter.drawRoundedRect(rect, 8, 8)
                painter.drawText(rect, Qt.AlignCenter, more)

        painter.restore()


# =========================[ tagging panel ]==================================
def describe_entry(entry: FileEntry | None) -> str:
    if entry is None:
        return ""
    kind = "Directory" if entry.is_directory else "File"
    if entry.is_symlink:
        kind += " (symlink)"
    own = ", ".join(sorted(entry.own_tags)) or "-"
    inherited = ", ".join(sorted(entry.inherited_tags)) or "-"
    return (f"{kind}\nSize: {format_size(entry)}\nModified: {format_modified(entry)}\n"
            f"Tags: {own}\nInherited: {inherited}")


class TaggingPanel(QWidget):
    """Side panel listing the tagging targets plus the tag input."""
    close_requested = Signal()
    aggregate_toggled = Signal()
    item_remove_requested = Signal(str)
    tag_added = Signal(str, list)

    def __init__(self, assign_tag, parent=None):
        super().__init__(parent)
        self._assign_tag = assign_tag
        self._items: list[TaggingItem] = []
        self._entries: dict[str, FileEntry] = {}
        self.setMinimumWidth(PANEL_W)

        box = QVBoxLayout()
        box.setContentsMargins(6, 6, 6, 6)
        box.setSpacing(6)

        head = QHBoxLayout()
        title = QLabel("Tagging")
        title.setStyleSheet("font-size: 14pt; font-weight: 900;")
        self.btn_close = QPushButton("✕"); self.btn_close.setFixedSize(BTN_H, BTN_H)
        self.btn_close.setToolTip("Close panel")
        head.addWidget(title); head.addStretch(1); head.addWidget(self.btn_close)
        box.addLayout(head)

        self.empty_lbl = QLabel("No items selected.")
        box.addWidget(self.empty_lbl)
        self.item_list = QListWidget()
        self.item_list.setSelectionMode(QAbstractItemView.SingleSelection)
        box.addWidget(self.item_list, 1)

        self.details = QLabel()
        self.details.setWordWrap(True)
        self.details.setTextInteractionFlags(Qt.TextSelectableByMouse)
        box.addWidget(self.details)

        self.btn_aggregate = QPushButton("Tag as Group")
        self.btn_aggregate.setFixedHeight(BTN_H)
        box.addWidget(self.btn_aggregate)

        self.tag_input = QLineEdit(); self.tag_input.setPlaceholderText("tag name")
        self.tag_input.setFixedHeight(EDIT_H)
        self.btn_add = QPushButton("Add Tag"); self.btn_add.setFixedHeight(BTN_H)
        self.btn_add.setObjectName("primaryBtn")
        box.addWidget(self.tag_input)
        box.addWidget(self.btn_add)
        self.setLayout(box)

        self.btn_close.clicked.connect(self.close_requested)
        self.btn_aggregate.clicked.connect(self.aggregate_toggled)
        self.btn_add.clicked.connect(self.add_tag)
        self.tag_input.returnPressed.connect(self.add_tag)
        self.item_list.currentRowChanged.connect(self._show_details)

    @property
    def items(self) -> list[TaggingItem]:
        return list(self._items)

    def set_items(self, items: list[TaggingItem], entries: dict[str, FileEntry],
                  show_aggregate_toggle: bool, aggregate_mode: bool):
        self._items = list(items)
        self._entries = entries
        self.item_list.clear()
        for item in self._items:
            row = QWidget()
            lay = QHBoxLayout(); lay.setContentsMargins(4, 0, 4, 0)
            lbl = QLabel(item.display_name); lbl.setToolTip(item.absolute_path)
            btn = QPushButton("✕"); btn.setFixedSize(22, 22)
            btn.setToolTip(f"Remove {item.display_name}")
            # deferred: the list (and this button) is rebuilt by the removal
            btn.clicked.connect(lambda _=False, p=item.absolute_path:
                                QTimer.singleShot(0, lambda: self.item_remove_requested.emit(p)))
            lay.addWidget(lbl, 1); lay.addWidget(btn)
            row.setLayout(lay)
            it = QListWidgetItem()
            it.setData(Qt.UserRole, item.absolute_path)
            it.setSizeHint(row.sizeHint())
            self.item_list.addItem(it)
            self.item_list.setItemWidget(it, row)
        self.empty_lbl.setVisible(not self._items)
        self.item_list.setVisible(bool(self._items))
        if self._items:
            self.item_list.setCurrentRow(0)
        else:
            self.details.clear()

        self.btn_aggregate.setVisible(show_aggregate_toggle)
        self.btn_aggregate.setText("Tag Individually" if aggregate_mode else "Tag as Group")
        self.btn_aggregate.setObjectName("primaryBtn" if aggregate_mode else "")
        self.btn_aggregate.style().unpolish(self.btn_aggregate)
        self.btn_aggregate.style().polish(self.btn_aggregate)

    def _show_details(self, row: int):
        if row < 0 or row >= len(self._items):
            self.details.clear(); return
        self.details.setText(describe_entry(self._entries.get(self._items[row].absolute_path)))

    def add_tag(self):
        paths = [item.absolute_path for item in self._items]
        tag = self.tag_input.text().strip()
        result = submit_tag(paths, tag, self._assign_tag)
        if result is SubmitResult.ADDED:
            self.tag_input.clear()
            self.tag_added.emit(tag, paths)
        elif result is SubmitResult.FAILED:
            QMessageBox.warning(self, "Error", f"Failed to assign tag \"{tag}\".\nCheck the log and try again.")


# =========================[ main window ]====================================
class MainUI(QWidget):
    """Main application widget."""
    scan_done = Signal(int, object, str)

    def __init__(self, store: TagStore, autoscan: bool = True):
        super().__init__()
        self.setWindowTitle(APP_TITLE)
        self.resize(1200, 760)

        self.store = store
        self.scans = ScanController(default_depth=self._scan_depth())
        self.sync = SelectionSync(on_changed=lambda _sync: self._render_panel())
        self.tree = None
        self.table_data = TableData()
        self.rows_by_id: dict[str, TableRow] = {}

        # ---------- header ----------
        header = QHBoxLayout()
        self.btn_path = QPushButton("(no directory)")
        self.btn_path.setFixedHeight(BTN_H)
        self.btn_path.setToolTip("Choose a folder…")
        self.btn_parent = QPushButton("▲ Parent"); self.btn_parent.setFixedHeight(BTN_H)
        self.btn_rescan = QPushButton("Rescan"); self.btn_rescan.setFixedHeight(BTN_H)
        self.btn_rescan.setObjectName("primaryBtn")
        self.btn_open_panel = QPushButton("Tags"); self.btn_open_panel.setFixedHeight(BTN_H)
        self.btn_open_panel.setToolTip("Open tagging panel")
        self.status_lbl = QLabel("")
        header.addWidget(self.btn_path, 1)
        header.addWidget(self.btn_parent)
        header.addWidget(self.btn_rescan)
        header.addSpacing(8)
        header.addWidget(self.status_lbl)
        header.addWidget(self.btn_open_panel)

        # ---------- table ----------
        self.table = QTableWidget(0, len(HEADERS))
        self.table.setObjectName("fileTable")
        self.table.setHorizontalHeaderLabels(HEADERS)
        self.table.setSelectionBehavior(QAbstractItemView.SelectRows)
        self.table.setSelectionMode(QAbstractItemView.ExtendedSelection)
        self.table.setEditTriggers(QAbstractItemView.NoEditTriggers)
        self.table.horizontalHeader().setSectionResizeMode(QHeaderView.Interactive)
        self.table.horizontalHeader().setStretchLastSection(True)
        self.table.setAlternatingRowColors(True)
        self.table.setSortingEnabled(True)
        self.table.setColumnWidth(COL_NAME, 320)
        self.table.setColumnWidth(COL_TAGS, 260)
        self.table.setColumnWidth(COL_MODIFIED, 160)
        self.table.verticalHeader().setDefaultSectionSize(28)
        self.tag_delegate = TagChipsDelegate(self.table)
        self.table.setItemDelegateForColumn(COL_TAGS, self.tag_delegate)

        self.panel = TaggingPanel(self.store.assign_tag)

        splitter = QSplitter()
        splitter.addWidget(self.table); splitter.addWidget(self.panel)
        splitter.setStretchFactor(0, 1)
        splitter.setCollapsible(0, False)

        main = QVBoxLayout()
        main.addLayout(header)
        main.addWidget(splitter, 1)
        self.setLayout(main)
        self.apply_styles()

        # ---------- signals ----------
        self.btn_path.clicked.connect(self.pick_directory)
        self.btn_parent.clicked.connect(self.go_parent)
        self.btn_rescan.clicked.connect(self.rescan)
        self.btn_open_panel.clicked.connect(self.sync.open_panel)
        self.table.itemSelectionChanged.connect(self.on_table_selection_changed)
        self.table.itemDoubleClicked.connect(self.on_row_double_clicked)
        self.panel.close_requested.connect(self.sync.close_panel)
        self.panel.aggregate_toggled.connect(self.sync.toggle_aggregate_mode)
        self.panel.item_remove_requested.connect(self.sync.on_item_removed)
        self.panel.tag_added.connect(self.on_tag_added)
        self.scan_done.connect(self.on_scan_done)

        self.short_refresh = QShortcut(QKeySequence("F5"), self)
        self.short_refresh.activated.connect(self.rescan)

        self._render_panel()
        if autoscan:
            last = self.store.get_setting("last_directory")
            if last and os.path.isdir(last):
                QTimer.singleShot(0, lambda: self.request_scan(last))
            else:
                QTimer.singleShot(0, lambda: self.request_scan(None))

    # --------------------- style sheet ---------------------
    def apply_styles(self):
        self.setStyleSheet("""
        QWidget { background: #F3F4F6; color: #111827; font-size: 11pt; }
        QLineEdit, QListWidget, QTableWidget {
            background: #FFFFFF; border: 1px solid #000000; border-radius: 8px;
        }
        QLineEdit:focus { border: 2px solid #000000; }
        QHeaderView::section {
            background: #111827; color: #FFFFFF; border: 0;
            padding: 2px 8px; font-weight: 800;
            border-right: 2px solid #F59E0B;
        }
        QHeaderView::section:last { border-right: 0; }
        QTableWidget { alternate-background-color: #F7F7F8; }
        QTableWidget::item:selected, QListWidget::item:selected {
            background: #FDE68A; color: #111111;
        }
        QPushButton {
            background: #E5E7EB; border: 2px solid #000000;
            padding: 2px 8px; border-radius: 8px; font-weight: 700;
        }
        QPushButton:hover { background: #D1D5DB; }
        QPushButton:disabled { color: #9CA3AF; }
        QPushButton#primaryBtn { background: #2563EB; color: #FFFFFF; }
        QPushButton#primaryBtn:hover { background: #1D4ED8; }
        """)

    # --------------------- config ---------------------
    def _scan_depth(self) -> int:
        raw = self.store.get_setting("scan_depth", str(DEFAULT_DEPTH))
        try:
            return max(int(raw), 1)
        except (TypeError, ValueError):
            logger.warning("Invalid scan_depth setting %r, using %d", raw, DEFAULT_DEPTH)
            return DEFAULT_DEPTH

    # --------------------- scanning ---------------------
    def request_scan(self, *args):
        """request_scan() rescans the last target, request_scan(path) scans `path` (None = cwd)."""
        ticket = self.scans.begin(*args)
        self.sync.on_directory_changed(self.table_data.row_ids,
                                       self.tree.entry.path if self.tree else None)
        self.status_lbl.setText("Scanning…")
        tag_index = self.store.tag_index()

        def worker():
            try:
                node = ScanController.run(ticket, tag_index)
            except ScanError as e:
                self.scan_done.emit(ticket.token, None, str(e))
                return
            self.scan_done.emit(ticket.token, node, "")

        threading.Thread(target=worker, daemon=True).start()
        return ticket

    def rescan(self):
        self.request_scan()

    def on_scan_done(self, token: int, node, error: str):
        if not self.scans.finish(token):
            return
        if node is None:
            logger.error("Failed to scan directory: %s", error)
            self.show_tree(None)
            self.status_lbl.setText("Scan failed")
            QMessageBox.warning(self, "Error", f"Failed to scan directory:\n{error}")
            return
        self.show_tree(node)
        self.store.set_setting("last_directory", node.entry.path)

    def show_tree(self, node):
        self.tree = node
        self.table_data = build_table_rows(node) if node is not None else TableData()
        self.rows_by_id = {row.id: row for row in self.table_data.rows}
        self._fill_table()
        self.sync.on_directory_changed(self.table_data.row_ids,
                                       node.entry.path if node is not None else None)

        if node is None:
            self.btn_path.setText("(no directory)")
            self.btn_path.setToolTip("Choose a folder…")
            self.btn_parent.setEnabled(False)
            return
        self.btn_path.setText(format_path_for_display(node.entry.path, HEADER_PATH_MAX))
        self.btn_path.setToolTip(node.entry.path)
        self.btn_parent.setEnabled(node.entry.parent_path is not None)
        self.status_lbl.setText(f"{len(self.table_data.rows) - 1:,} items")

    def _fill_table(self):
        self.table.blockSignals(True)
        self.table.setSortingEnabled(False)
        self.table.setRowCount(0)
        for row in self.table_data.rows:
            r = self.table.rowCount(); self.table.insertRow(r)
            texts = {
                COL_NAME: row.name + ("/" if row.entry.is_directory and not row.is_current_directory else ""),
                COL_TAGS: "",
                COL_MODIFIED: format_modified(row.entry),
                COL_SIZE: format_size(row.entry),
            }
            for col, key in enumerate(SORT_COLUMNS):
                it = RowItem(texts[col])
                it.setData(ROW_ID_ROLE, row.id)
                it.setData(SORT_ROLE, list(row_sort_key(row, key)))
                it.setData(PINNED_ROLE, row.is_current_directory)
                if col == COL_NAME:
                    it.setToolTip(row.entry.path)
                elif col == COL_TAGS:
                    it.setData(TAGS_ROLE, [[t, inh] for t, inh in row.entry.all_tags])
                elif col == COL_SIZE:
                    it.setTextAlignment(Qt.AlignRight | Qt.AlignVCenter)
                self.table.setItem(r, col, it)
        self.table.setSortingEnabled(True)
        self.table.blockSignals(False)

    # --------------------- navigation ---------------------
    def pick_directory(self):
        start = self.tree.entry.path if self.tree else os.getcwd()
        d = QFileDialog.getExistingDirectory(self, "Choose folder", start)
        if d:
            self.request_scan(normalize_path(d))

    def go_parent(self):
        if self.tree is None:
            return
        parent = self.tree.entry.parent_path
        if parent:
            self.request_scan(parent)

    def on_row_double_clicked(self, item: QTableWidgetItem):
        row = self.rows_by_id.get(item.data(ROW_ID_ROLE))
        if row is None or row.is_current_directory or not row.entry.is_directory:
            return
        self.request_scan(row.entry.path)

    # --------------------- selection ---------------------
    def selected_rows(self) -> list[TableRow]:
        rows = []
        if self.table.selectionModel():
            for idx in self.table.selectionModel().selectedRows():
                row = self.rows_by_id.get(self.table.item(idx.row(), COL_NAME).data(ROW_ID_ROLE))
                if row is not None:
                    rows.append(row)
        return rows

    def on_table_selection_changed(self):
        self.sync.on_selection_changed(self.selected_rows())

    def _mirror_selection(self):
        """Make the table's selection match the engine (e.g. after a panel removal)."""
        sm = self.table.selectionModel()
        if sm is None:
            return
        wanted = self.sync.selected_ids
        current = {self.table.item(idx.row(), COL_NAME).data(ROW_ID_ROLE) for idx in sm.selectedRows()}
        if wanted == current:
            return
        sel = QItemSelection()
        model = self.table.model()
        last_col = self.table.columnCount() - 1
        for r in range(self.table.rowCount()):
            if self.table.item(r, COL_NAME).data(ROW_ID_ROLE) in wanted:
                sel.select(model.index(r, 0), model.index(r, last_col))
        self.table.blockSignals(True)
        try:
            sm.select(sel, QItemSelectionModel.ClearAndSelect | QItemSelectionModel.Rows)
        finally:
            self.table.blockSignals(False)

    def _render_panel(self):
        entries = {row.entry.path: row.entry for row in self.table_data.rows}
        self.panel.set_items(self.sync.panel_items(), entries,
                             self.sync.is_all_rows_selected, self.sync.aggregate_mode)
        self.panel.setVisible(self.sync.panel_visible)
        self.btn_open_panel.setVisible(not self.sync.panel_visible and bool(self.table_data.rows))
        self._mirror_selection()

    # --------------------- tagging ---------------------
    def on_tag_added(self, tag: str, paths: list):
        """Refresh the tag cells in place; selection and panel stay as they are."""
        try:
            index = self.store.tag_index()
        except TaggingError as e:
            logger.error("Failed to reload tags: %s", e)
            return
        rows = []
        for row in self.table_data.rows:
            own, inherited = split_tags(row.entry.path, row.entry.hierarchy, index)
            rows.append(replace(row, entry=replace(row.entry, own_tags=own, inherited_tags=inherited)))
        self.table_data = replace(self.table_data, rows=tuple(rows))
        self.rows_by_id = {row.id: row for row in self.table_data.rows}

        # rows would move under `r` if a SORT_ROLE write re-sorted mid-loop
        self.table.blockSignals(True)
        self.table.setSortingEnabled(False)
        try:
            for r in range(self.table.rowCount()):
                it = self.table.item(r, COL_TAGS)
                row = self.rows_by_id.get(it.data(ROW_ID_ROLE))
                if row is None:
                    continue
                it.setData(TAGS_ROLE, [[t, inh] for t, inh in row.entry.all_tags])
                it.setData(SORT_ROLE, list(row_sort_key(row, "tags")))
        finally:
            self.table.setSortingEnabled(True)
            self.table.blockSignals(False)
        self.status_lbl.setText(f"Tagged {len(paths)} item(s) with \"{tag}\"")
        self._render_panel()


# =========================[ entry point ]====================================
def main():
    logging.basicConfig(
        level=os.environ.get(LOG_LEVEL_ENV_VAR, "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = QApplication(sys.argv)
    try:
        store = TagStore()
    except TaggingError as e:
        logger.error("Failed to open tag database: %s", e)
        QMessageBox.critical(None, APP_TITLE, f"Failed to open tag database:\n{e}")
        sys.exit(1)
    ui = MainUI(store); ui.show()
    sys.exit(app.exec())

if __name__ == "__main__":
    main()
