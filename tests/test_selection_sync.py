import pytest

from models import DirectoryNode, FileEntry, TaggingItem, build_table_rows
from selection_sync import PanelState, SelectionSync


def _table(names=("a.txt", "b.txt", "sub")):
    root = FileEntry(path="/root", is_directory=True, hierarchy=("/", "root"))
    children = tuple(
        DirectoryNode(
            name=name,
            entry=FileEntry(path=f"/root/{name}", is_directory=name == "sub",
                            hierarchy=("/", "root", name)),
        )
        for name in names
    )
    return build_table_rows(DirectoryNode(name="root", entry=root, children=children))


def _engine(data=None):
    data = data or _table()
    sync = SelectionSync()
    sync.on_directory_changed(data.row_ids, data.rows[0].entry.path)
    return sync, data


def _check_invariants(sync: SelectionSync) -> None:
    if sync.aggregate_mode:
        assert sync.selected_ids == set(sync.row_ids)
    assert sync.selected_ids <= set(sync.row_ids)


def test_initial_state_is_closed() -> None:
    sync = SelectionSync()
    assert sync.state is PanelState.CLOSED
    assert sync.panel_items() == []
    assert not sync.is_all_rows_selected


def test_selecting_rows_opens_panel() -> None:
    sync, data = _engine()
    a, b = data.rows[1], data.rows[2]
    sync.on_selection_changed([a, b])
    assert sync.state is PanelState.OPEN_INDIVIDUAL
    assert sync.panel_visible
    assert set(sync.panel_items()) == {
        TaggingItem("/root/a.txt", "a.txt"),
        TaggingItem("/root/b.txt", "b.txt"),
    }
    _check_invariants(sync)


def test_current_directory_row_uses_dot_label() -> None:
    sync, data = _engine()
    sync.on_selection_changed([data.rows[0]])
    assert sync.panel_items() == [TaggingItem("/root", ".")]


def test_selection_change_is_idempotent() -> None:
    sync, data = _engine()
    rows = list(data.rows[1:3])
    sync.on_selection_changed(rows)
    first = sync.selection
    sync.on_selection_changed(rows)
    assert sync.selection == first


def test_deselecting_everything_closes_panel() -> None:
    sync, data = _engine()
    sync.on_selection_changed(data.rows[1:2])
    sync.on_selection_changed([])
    assert sync.state is PanelState.CLOSED
    assert sync.selection == {}
    assert not sync.aggregate_mode


def test_explicit_deselection_removes_visible_row() -> None:
    sync, data = _engine()
    sync.on_selection_changed(data.rows[1:3])
    sync.on_selection_changed(data.rows[2:3])
    assert sync.selected_ids == {"/root/b.txt"}


def test_rows_outside_the_table_are_ignored() -> None:
    sync, data = _engine()
    other = _table(("zzz",)).rows[1]
    sync.on_selection_changed([data.rows[1], other])
    assert sync.selected_ids == {"/root/a.txt"}
    _check_invariants(sync)


def test_aggregate_toggle_requires_all_rows() -> None:
    sync, data = _engine()
    sync.on_selection_changed(data.rows[1:])
    assert not sync.is_all_rows_selected
    sync.toggle_aggregate_mode()
    assert not sync.aggregate_mode

    sync.on_selection_changed(data.rows)
    assert sync.is_all_rows_selected
    sync.toggle_aggregate_mode()
    assert sync.aggregate_mode
    assert sync.state is PanelState.OPEN_AGGREGATE
    assert sync.panel_items() == [TaggingItem("/root", "/root")]
    assert sync.panel_paths() == ["/root"]
    _check_invariants(sync)

    sync.toggle_aggregate_mode()
    assert sync.state is PanelState.OPEN_INDIVIDUAL
    assert len(sync.panel_items()) == len(data.rows)


def test_empty_table_never_counts_as_all_selected() -> None:
    sync = SelectionSync()
    sync.on_directory_changed([], None)
    sync.on_selection_changed([])
    assert not sync.is_all_rows_selected
    sync.toggle_aggregate_mode()
    assert not sync.aggregate_mode


def test_partial_selection_cancels_aggregate() -> None:
    sync, data = _engine()
    sync.on_selection_changed(data.rows)
    sync.toggle_aggregate_mode()
    sync.on_selection_changed(data.rows[:-1])
    assert not sync.aggregate_mode
    assert sync.state is PanelState.OPEN_INDIVIDUAL
    _check_invariants(sync)


def test_reselecting_all_rows_keeps_aggregate() -> None:
    sync, data = _engine()
    sync.on_selection_changed(data.rows)
    sync.toggle_aggregate_mode()
    sync.on_selection_changed(data.rows)
    assert sync.aggregate_mode


def test_removing_anchor_cancels_aggregate_and_clears_selection() -> None:
    sync, data = _engine()
    sync.on_selection_changed(data.rows)
    sync.toggle_aggregate_mode()
    sync.on_item_removed("/root")
    assert sync.selection == {}
    assert not sync.aggregate_mode
    assert sync.state is PanelState.CLOSED


def test_removing_unknown_path_is_noop() -> None:
    sync, data = _engine()
    sync.on_selection_changed(data.rows[1:3])
    before = sync.selection
    sync.on_item_removed("/elsewhere")
    assert sync.selection == before
    assert sync.panel_visible


def test_removing_item_shrinks_selection() -> None:
    sync, data = _engine()
    sync.on_selection_changed(data.rows[1:3])
    sync.on_item_removed("/root/a.txt")
    assert sync.selected_ids == {"/root/b.txt"}
    assert sync.state is PanelState.OPEN_INDIVIDUAL
    sync.on_item_removed("/root/b.txt")
    assert sync.state is PanelState.CLOSED


def test_removing_root_row_outside_aggregate_is_a_normal_removal() -> None:
    sync, data = _engine()
    sync.on_selection_changed(data.rows)
    sync.on_item_removed("/root")
    assert "/root" not in sync.selected_ids
    assert not sync.is_all_rows_selected
    assert sync.panel_visible


def test_close_panel_keeps_selection_and_drops_aggregate() -> None:
    sync, data = _engine()
    sync.on_selection_changed(data.rows)
    sync.toggle_aggregate_mode()
    sync.close_panel()
    assert sync.state is PanelState.CLOSED
    assert not sync.aggregate_mode
    assert sync.selected_ids == set(data.row_ids)

    sync.open_panel()
    assert sync.state is PanelState.OPEN_INDIVIDUAL


def test_open_panel_without_selection_is_noop() -> None:
    sync, _data = _engine()
    sync.open_panel()
    assert sync.state is PanelState.CLOSED


def test_removal_while_hidden_does_not_reopen() -> None:
    sync, data = _engine()
    sync.on_selection_changed(data.rows[1:3])
    sync.close_panel()
    sync.on_item_removed("/root/a.txt")
    assert not sync.panel_visible
    assert sync.selected_ids == {"/root/b.txt"}


def test_selection_change_reopens_closed_panel() -> None:
    sync, data = _engine()
    sync.on_selection_changed(data.rows[1:2])
    sync.close_panel()
    sync.on_selection_changed(data.rows[1:3])
    assert sync.panel_visible


@pytest.mark.parametrize("aggregate", [False, True])
def test_directory_change_resets_everything(aggregate: bool) -> None:
    sync, data = _engine()
    sync.on_selection_changed(data.rows)
    if aggregate:
        sync.toggle_aggregate_mode()
    new = _table(("x", "y"))
    sync.on_directory_changed(new.row_ids, "/root")
    assert sync.selection == {}
    assert not sync.aggregate_mode
    assert not sync.panel_visible
    assert sync.row_ids == new.row_ids


def test_stale_keys_do_not_survive_a_view_change() -> None:
    sync, data = _engine()
    sync.on_selection_changed(data.rows[1:2])
    new = _table(("other",))
    # table swapped without a selection reset in between
    sync._row_ids = new.row_ids
    sync.on_selection_changed(new.rows[1:2])
    assert sync.selected_ids == {"/root/other"}


def test_closure_invariant_over_a_sequence() -> None:
    sync, data = _engine()
    steps = [
        lambda: sync.on_selection_changed(data.rows[1:2]),
        lambda: sync.on_selection_changed(data.rows),
        sync.toggle_aggregate_mode,
        lambda: sync.on_selection_changed(data.rows[2:]),
        lambda: sync.on_item_removed("/root/b.txt"),
        lambda: sync.on_item_removed("/root/sub"),
        lambda: sync.on_selection_changed(data.rows),
        sync.toggle_aggregate_mode,
        lambda: sync.on_item_removed("/root"),
    ]
    for step in steps:
        step()
        assert sync.panel_visible == (bool(sync.selection) or sync.aggregate_mode)
        _check_invariants(sync)


def test_on_changed_callback_fires() -> None:
    calls = []
    sync = SelectionSync(on_changed=calls.append)
    data = _table()
    sync.on_directory_changed(data.row_ids, "/root")
    sync.on_selection_changed(data.rows[1:2])
    assert calls == [sync, sync]


def test_unchanged_selection_does_not_notify() -> None:
    calls = []
    sync = SelectionSync(on_changed=calls.append)
    data = _table()
    sync.on_directory_changed(data.row_ids, "/root")
    sync.on_selection_changed(data.rows[1:3])
    assert len(calls) == 2
    sync.on_selection_changed(data.rows[1:3])
    sync.on_selection_changed(list(reversed(data.rows[1:3])))
    assert len(calls) == 2
    sync.on_selection_changed(data.rows[1:2])
    assert len(calls) == 3


def test_end_to_end_scenario() -> None:
    sync, data = _engine()
    a, b = data.rows[1], data.rows[2]
    sync.on_selection_changed([a, b])
    assert sync.panel_visible
    assert sync.selected_ids == {a.id, b.id}

    sync.on_selection_changed(data.rows)
    assert sync.is_all_rows_selected
    sync.toggle_aggregate_mode()
    assert sync.panel_items() == [TaggingItem("/root", "/root")]

    rescanned = _table()
    sync.on_directory_changed(rescanned.row_ids, "/root")
    assert not sync.panel_visible
    assert sync.selection == {}
