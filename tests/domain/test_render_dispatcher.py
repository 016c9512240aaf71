from __future__ import annotations

from domain.models import SlotPosition
from domain.services.drag_classifier import DropPreview
from domain.services.render_dispatcher import (
    DataContext,
    RenderContext,
    RenderDispatcher,
    RenderNode,
    strip_overlays,
)
from tests.helpers.layout_fixtures import make_slot, sample_page, slot_map

DATA = DataContext(
    variables={"user": {"name": "Ada"}},
    cart={"items": [{"name": "Lamp"}, {"name": "Desk"}], "count": 2},
)


def _find(node: RenderNode, slot_id: str) -> RenderNode:
    for candidate in node.walk():
        if candidate.attrs.get("data-slot-id") == slot_id:
            return candidate
    raise AssertionError(f"{slot_id} not rendered")


def _cell(node: RenderNode, slot_id: str) -> RenderNode:
    for candidate in node.walk():
        if candidate.attrs.get("data-slot-cell") == slot_id:
            return candidate
    raise AssertionError(f"cell for {slot_id} not rendered")


def test_edit_and_display_match_without_overlays() -> None:
    dispatcher = RenderDispatcher()
    slots = sample_page()

    display = dispatcher.render_page(RenderContext(slots=slots, mode="display", data=DATA))
    edit = dispatcher.render_page(
        RenderContext(slots=slots, mode="edit", data=DATA, selected_id="title")
    )

    assert edit != display
    assert strip_overlays(edit) == display
    assert not any(node.overlay for node in display.walk())


def test_overlay_is_a_sibling_inside_the_cell() -> None:
    dispatcher = RenderDispatcher()
    edit = dispatcher.render_page(RenderContext(slots=sample_page(), mode="edit"))

    cell = _cell(edit, "cta")
    content, overlay = cell.children

    assert content.attrs["data-slot-id"] == "cta"
    assert overlay.overlay
    assert overlay.attrs["data-overlay-for"] == "cta"
    assert "absolute" in overlay.classes
    assert "relative" in cell.classes


def test_cells_carry_span_classes() -> None:
    page = RenderDispatcher().render_page(RenderContext(slots=sample_page()))
    cell = _cell(page, "cta")

    assert "col-span-4" in cell.classes
    assert cell.style == {"gridColumn": "span 4 / span 4"}


def test_children_follow_grid_order() -> None:
    slots = slot_map(
        make_slot("p", slot_type="container"),
        make_slot("C", parent="p", row=2),
        make_slot("B", parent="p", row=1, col=5, col_span=4),
        make_slot("A", parent="p", row=1, col=1, col_span=4),
    )

    container = _find(RenderDispatcher().render_page(RenderContext(slots=slots)), "p")

    assert [cell.attrs["data-slot-cell"] for cell in container.children] == ["A", "B", "C"]


def test_placeholders_resolve_against_data_context() -> None:
    page = RenderDispatcher().render_page(RenderContext(slots=sample_page(), data=DATA))

    assert _find(page, "title").text == "Hello Ada"
    assert _find(page, "intro").raw


def test_unresolved_placeholders_stay_literal() -> None:
    page = RenderDispatcher().render_page(RenderContext(slots=sample_page()))

    assert _find(page, "title").text == "Hello {{ user.name }}"


def test_unknown_types_use_generic_renderer() -> None:
    slots = slot_map(
        make_slot("odd", slot_type="carousel", content="raw <content>"),
        make_slot("w", slot_type="widget", row=2, component="NotRegistered", content="fallback"),
    )

    page = RenderDispatcher().render_page(RenderContext(slots=slots))

    assert _find(page, "odd").text == "raw <content>"
    assert not _find(page, "odd").raw
    assert _find(page, "w").text == "fallback"


def test_custom_renderers_and_widgets() -> None:
    dispatcher = RenderDispatcher()
    dispatcher.register_widget(
        "CartCount",
        lambda slot, ctx: RenderNode(
            tag="span",
            attrs={"data-slot-id": slot.id},
            text=str(ctx.data.cart["count"]),
        ),
    )
    slots = slot_map(make_slot("count", slot_type="widget", metadata={"component": "CartCount"}))

    page = dispatcher.render_page(RenderContext(slots=slots, data=DATA))

    assert _find(page, "count").text == "2"


def test_data_list_widget() -> None:
    slots = slot_map(
        make_slot(
            "items",
            slot_type="widget",
            component="data_list",
            metadata={"source": "cart.items", "itemTemplate": "<b>{{name}}</b>"},
        ),
        make_slot(
            "empty",
            slot_type="widget",
            row=2,
            component="data_list",
            metadata={"source": "cart.nothing", "emptyText": "No items"},
        ),
    )

    page = RenderDispatcher().render_page(RenderContext(slots=slots, data=DATA))

    assert [item.text for item in _find(page, "items").children] == ["<b>Lamp</b>", "<b>Desk</b>"]
    assert _find(page, "empty").text == "No items"


def test_view_mode_and_show_if_filter_slots() -> None:
    slots = slot_map(
        make_slot("empty_msg", view_mode=["emptyCart"]),
        make_slot("list", row=2, view_mode=["withProducts"]),
        make_slot("promo", row=3, metadata={"showIf": "cart.promo"}),
    )
    dispatcher = RenderDispatcher()

    page = dispatcher.render_page(RenderContext(slots=slots, view_context="withProducts", data=DATA))
    rendered = {node.attrs.get("data-slot-id") for node in page.walk()}

    assert "list" in rendered
    assert "empty_msg" not in rendered
    assert "promo" not in rendered


def test_free_floating_slot_has_no_cell() -> None:
    slots = slot_map(make_slot("badge", styles={"position": "absolute", "top": "4px"}))

    edit = RenderDispatcher().render_page(RenderContext(slots=slots, mode="edit"))

    content, overlay = edit.children
    assert content.attrs["data-slot-id"] == "badge"
    assert overlay.overlay
    assert any("resize-handle-element" in child.classes for child in overlay.children)


def test_drop_indicator_only_in_edit_overlay() -> None:
    preview = DropPreview("cta", "before", "reorder", SlotPosition(row=1, col=9))
    edit = RenderDispatcher().render_page(
        RenderContext(slots=sample_page(), mode="edit", drop_preview=preview)
    )

    overlay = _cell(edit, "cta").children[1]

    assert any("drop-indicator--before" in child.classes for child in overlay.children)


def test_data_context_is_read_only() -> None:
    source = {"name": "Lamp"}
    data = DataContext(product=source)
    source["name"] = "Changed"

    assert data.product["name"] == "Lamp"
    try:
        data.product["name"] = "x"  # type: ignore[index]
    except TypeError:
        pass
    else:
        raise AssertionError("product context should be immutable")
