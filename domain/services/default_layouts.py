from __future__ import annotations

from domain.models import GRID_COLUMNS, LayoutDocument, Slot, SlotPosition

MAIN_LAYOUT_ID = "main_layout"
HEADER_CONTAINER_ID = "header_container"
CONTENT_AREA_ID = "content_area"


def build_default_layout(page_type: str) -> LayoutDocument:
    slots = [
        Slot(
            id=MAIN_LAYOUT_ID,
            type="container",
            position=SlotPosition(row=1, col=1),
            col_span=GRID_COLUMNS,
            class_name="min-h-screen",
            metadata={"nonDraggable": True, "disableResize": True},
        ),
        Slot(
            id=HEADER_CONTAINER_ID,
            parent_id=MAIN_LAYOUT_ID,
            type="container",
            position=SlotPosition(row=1, col=1),
            col_span=GRID_COLUMNS,
            class_name="w-full",
        ),
        Slot(
            id=CONTENT_AREA_ID,
            parent_id=MAIN_LAYOUT_ID,
            type="container",
            position=SlotPosition(row=2, col=1),
            col_span=GRID_COLUMNS,
            class_name="w-full",
        ),
    ]
    return LayoutDocument.model_validate(
        {
            "pageType": page_type,
            "pageName": page_type.replace("_", " ").title(),
            "slots": {slot.id: slot for slot in slots},
        }
    )
