from __future__ import annotations

import itertools

import pytest

from domain.models import (
    DROP_ZONES,
    InvalidParentError,
    ProtectedSlotError,
    SlotPosition,
    UnknownSlotError,
)
from domain.services.geometry import normalize_col_span, ordered_children
from domain.services.tree_mutator import (
    add_slot,
    collect_descendants,
    delete_slot,
    move_slot,
    normalize_layout,
    resize_element,
    resize_slot,
    update_slot_content,
    update_slot_styles,
    validate_tree,
)
from tests.helpers.layout_fixtures import make_slot, sample_page, slot_map


def _row_of_three() -> dict:
    return slot_map(
        make_slot("p", slot_type="container"),
        make_slot("A", parent="p", row=1, col=1, col_span=4),
        make_slot("B", parent="p", row=1, col=5, col_span=4),
        make_slot("C", parent="p", row=2, col=1, col_span=4),
    )


def _order(slots: dict, parent: str | None = "p") -> list[str]:
    return [child.slot.id for child in ordered_children(slots, parent)]


def test_left_drop_reorders_within_row() -> None:
    slots = _row_of_three()

    moved = move_slot(slots, "B", "A", "left")

    assert _order(slots) == ["A", "B", "C"]
    assert _order(moved) == ["B", "A", "C"]
    assert moved["B"].position == SlotPosition(row=1, col=1)
    assert moved["A"].position == SlotPosition(row=1, col=5)
    assert slots["B"].position == SlotPosition(row=1, col=5)


def test_after_drop_places_next_to_target() -> None:
    slots = _row_of_three()

    moved = move_slot(slots, "C", "A", "after")

    assert moved["C"].position == SlotPosition(row=1, col=5)
    assert moved["B"].position == SlotPosition(row=1, col=9)
    assert _order(moved) == ["A", "C", "B"]


def test_overflowing_row_wraps_and_shifts_later_rows() -> None:
    slots = slot_map(
        make_slot("p", slot_type="container"),
        make_slot("A", parent="p", row=1, col=1, col_span=6),
        make_slot("B", parent="p", row=1, col=7, col_span=6),
        make_slot("C", parent="p", row=2, col=1, col_span=6),
    )

    moved = move_slot(slots, "C", "A", "before")

    assert _order(moved) == ["C", "A", "B"]
    assert moved["C"].position == SlotPosition(row=1, col=1)
    assert moved["A"].position == SlotPosition(row=1, col=7)
    assert moved["B"].position == SlotPosition(row=2, col=1)
    assert not [problem for problem in validate_tree(moved)]


def test_inside_drop_reparents_to_top_left() -> None:
    slots = sample_page()

    moved = move_slot(slots, "cta", "body", "inside")

    assert moved["cta"].parent_id == "body"
    assert moved["cta"].position == SlotPosition(row=1, col=1)
    assert moved["intro"].position == SlotPosition(row=2, col=1)
    assert _order(moved, "body") == ["cta", "intro"]


def test_invalid_moves_are_no_ops() -> None:
    slots = sample_page()

    assert move_slot(slots, "header", "header", "before") == slots
    assert move_slot(slots, "header", "title", "before") == slots
    assert move_slot(slots, "root", "intro", "inside") == slots
    assert move_slot(slots, "title", "cta", "inside") == slots
    assert move_slot(slots, "title", "missing", "after") == slots
    assert move_slot(slots, "title", "cta", "none") == slots


def test_move_sequences_never_create_cycles() -> None:
    slots = sample_page()
    ids = list(slots)

    for dragged, target, zone in itertools.product(ids, ids, DROP_ZONES):
        slots = move_slot(slots, dragged, target, zone)
        structural = [problem for problem in validate_tree(slots) if problem.structural]
        assert structural == []


def test_horizontal_resize_clamps_and_keeps_other_viewports() -> None:
    slots = slot_map(make_slot("s", col_span={"mobile": 12, "desktop": 6}))

    wide = resize_slot(slots, "s", "horizontal", 40)
    narrow = resize_slot(slots, "s", "horizontal", -3)
    tablet = resize_slot(slots, "s", "horizontal", 8, "tablet")

    assert wide["s"].col_span == {"mobile": 12, "desktop": 12}
    assert narrow["s"].col_span == {"mobile": 12, "desktop": 1}
    assert tablet["s"].col_span == {"mobile": 12, "desktop": 6, "tablet": 8}


def test_horizontal_resize_respects_column_start() -> None:
    slots = slot_map(make_slot("s", col=9, col_span=2))

    resized = resize_slot(slots, "s", "horizontal", 8)

    assert normalize_col_span(resized["s"].col_span, "desktop") == 4


def test_horizontal_resize_reflows_siblings() -> None:
    slots = _row_of_three()

    resized = resize_slot(slots, "A", "horizontal", 10)

    assert normalize_col_span(resized["A"].col_span, "desktop") == 10
    assert resized["B"].position == SlotPosition(row=2, col=1)
    assert resized["C"].position == SlotPosition(row=3, col=1)


def test_vertical_resize_has_minimum_height() -> None:
    slots = slot_map(make_slot("s", styles={"color": "red"}))

    assert resize_slot(slots, "s", "vertical", 5)["s"].styles == {"color": "red", "height": "20px"}
    assert resize_slot(slots, "s", "vertical", 150.4)["s"].styles["height"] == "150px"
    assert resize_slot(slots, "s", "vertical", 5, min_height=40)["s"].styles["height"] == "40px"


def test_resize_to_current_value_keeps_stored_encoding() -> None:
    slots = slot_map(make_slot("s", col_span=8, styles={"height": "120px"}))

    assert resize_slot(slots, "s", "horizontal", 8) == slots
    assert resize_slot(slots, "s", "vertical", 120.2) == slots


def test_resize_is_ignored_when_disabled() -> None:
    slots = slot_map(make_slot("s", col_span=6, metadata={"disableResize": True}))

    assert resize_slot(slots, "s", "horizontal", 2) == slots


def test_resize_rejects_unknown_axis_and_slot() -> None:
    slots = slot_map(make_slot("s"))

    with pytest.raises(ValueError):
        resize_slot(slots, "s", "diagonal", 3)
    with pytest.raises(UnknownSlotError):
        resize_slot(slots, "missing", "horizontal", 3)


def test_element_resize_floor() -> None:
    slots = slot_map(make_slot("img", slot_type="image"))

    assert resize_element(slots, "img", "width", 3)["img"].styles["width"] == "20px"
    assert resize_element(slots, "img", "height", 240.6)["img"].styles["height"] == "241px"


def test_delete_cascades_to_descendants() -> None:
    slots = sample_page()

    assert sorted(collect_descendants(slots, "header")) == ["cta", "title"]
    remaining = delete_slot(slots, "header")

    assert set(remaining) == {"root", "body", "intro"}
    assert all(slot.parent_id in {None, *remaining} for slot in remaining.values())


def test_delete_guards() -> None:
    slots = sample_page()

    with pytest.raises(ProtectedSlotError):
        delete_slot(slots, "root")
    with pytest.raises(UnknownSlotError):
        delete_slot(slots, "missing")


def test_add_slot_appends_last_sibling() -> None:
    slots = sample_page()

    updated, new_id = add_slot(slots, "container", parent_id="root", page_type="cart")
    slot = updated[new_id]

    assert new_id.startswith("new_container_")
    assert slot.position == SlotPosition(row=3, col=1)
    assert slot.col_span == 12
    assert slot.is_custom
    assert slot.styles == {"minHeight": "80px"}
    assert slot.class_name == "p-4 border border-gray-200 rounded"
    assert slot.view_mode == ["emptyCart", "withProducts"]
    assert "created" in slot.metadata and "lastModified" in slot.metadata
    assert new_id not in slots


def test_add_slot_validates_parent_and_type() -> None:
    slots = sample_page()

    with pytest.raises(InvalidParentError):
        add_slot(slots, "text", parent_id="title")
    with pytest.raises(InvalidParentError):
        add_slot(slots, "text", parent_id="missing")
    with pytest.raises(ValueError):
        add_slot(slots, "carousel", parent_id="root")


def test_content_and_style_edits() -> None:
    slots = sample_page()

    edited = update_slot_content(slots, "title", "Welcome")
    styled = update_slot_styles(
        edited,
        "title",
        class_name="text-center font-bold",
        styles={"color": "#111"},
    )

    assert edited["title"].content == "Welcome"
    assert styled["title"].parent_class_name == "text-center"
    assert "text-center" not in styled["title"].class_name.split()
    assert styled["title"].styles == {"color": "#111"}
    assert "lastModified" in styled["title"].metadata


def test_plain_class_edit_replaces_class_name() -> None:
    slots = slot_map(make_slot("s", class_name="old"))

    assert update_slot_styles(slots, "s", class_name="new one")["s"].class_name == "new one"
    assert update_slot_styles(slots, "s", class_name="")["s"].class_name == "old"


def test_validate_tree_reports_problems() -> None:
    slots = slot_map(
        make_slot("a", parent="b", slot_type="container"),
        make_slot("b", parent="a", slot_type="container"),
        make_slot("orphan", parent="ghost"),
        make_slot("leafy", parent="text_parent"),
        make_slot("text_parent"),
        make_slot("x", row=5, col=10, col_span=6),
        make_slot("y", row=5, col=1, col_span=12),
    )

    problems = validate_tree(slots)
    messages = {(problem.slot_id, problem.structural) for problem in problems}

    assert ("a", True) in messages
    assert ("b", True) in messages
    assert ("orphan", True) in messages
    assert ("leafy", True) in messages
    assert ("x", False) in messages


def test_normalize_layout_resolves_overlaps() -> None:
    slots = slot_map(
        make_slot("a", row=1, col=1, col_span=8),
        make_slot("b", row=1, col=3, col_span=8),
    )

    normalized = normalize_layout(slots)

    assert normalized["a"].position == SlotPosition(row=1, col=1)
    assert normalized["b"].position == SlotPosition(row=2, col=1)
    assert validate_tree(normalized) == []
