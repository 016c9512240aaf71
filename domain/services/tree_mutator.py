from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from domain.models import (
    GRID_COLUMNS,
    SLOT_TYPES,
    InvalidParentError,
    ProtectedSlotError,
    Slot,
    SlotPosition,
    UnknownSlotError,
)
from domain.services.drag_classifier import is_descendant
from domain.services.geometry import (
    children_of,
    clamp_col_span,
    drop_target_position,
    normalize_col_span,
    replace_col_span,
    sort_by_grid_coordinates,
)

MIN_HEIGHT_PX = 20
MIN_ELEMENT_PX = 20
ALIGNMENT_CLASSES = frozenset({"text-left", "text-center", "text-right"})

DEFAULT_VIEW_MODES: dict[str, list[str]] = {
    "cart": ["emptyCart", "withProducts"],
    "category": ["grid", "list"],
    "product": ["default"],
    "checkout": ["default"],
    "header": ["default"],
}
_DEFAULT_CLASS_NAMES: dict[str, str] = {
    "container": "p-4 border border-gray-200 rounded",
    "text": "text-base text-gray-900",
    "image": "w-full h-auto",
}
_DEFAULT_STYLES: dict[str, dict[str, Any]] = {
    "container": {"minHeight": "80px"},
}

Slots = Mapping[str, Slot]


@dataclass(frozen=True)
class TreeProblem:
    slot_id: str
    message: str
    structural: bool = True

    def __str__(self) -> str:
        return f"{self.slot_id}: {self.message}"


def move_slot(
    slots: Slots,
    dragged_id: str,
    target_id: str,
    zone: str,
    viewport: str = "desktop",
) -> dict[str, Slot]:
    updated = dict(slots)
    if dragged_id == target_id or zone == "none":
        return updated
    dragged = slots.get(dragged_id)
    target = slots.get(target_id)
    if dragged is None or target is None:
        return updated
    if is_descendant(slots, target_id, dragged_id):
        return updated

    if zone == "inside":
        if not target.is_container():
            return updated
        new_parent_id: str | None = target.id
    else:
        new_parent_id = target.parent_id

    position = drop_target_position(slots, target_id, zone, viewport)
    if position is None:
        return updated
    updated[dragged_id] = _touch(dragged, parent_id=new_parent_id, position=position)
    return reflow_siblings(
        updated,
        new_parent_id,
        viewport,
        moved_id=dragged_id,
        anchor_id=None if zone == "inside" else target_id,
        after=zone in {"after", "right"},
    )


def reflow_siblings(
    slots: Slots,
    parent_id: str | None,
    viewport: str = "desktop",
    *,
    moved_id: str | None = None,
    anchor_id: str | None = None,
    after: bool = False,
) -> dict[str, Slot]:
    sequence = sort_by_grid_coordinates(
        slot
        for slot in children_of(slots, parent_id)
        if slot.position is not None and slot.id != moved_id
    )
    moved = slots.get(moved_id) if moved_id else None
    if moved is not None and moved.position is not None and moved.parent_id == parent_id:
        index = 0
        for idx, slot in enumerate(sequence):
            if slot.id == anchor_id:
                index = idx + 1 if after else idx
                break
        sequence.insert(index, moved)

    updated = dict(slots)
    shift = 0
    placed_row = 0
    cursor = 1
    for slot in sequence:
        assert slot.position is not None
        span = normalize_col_span(slot.col_span, viewport)
        row = slot.position.row + shift
        if row > placed_row:
            placed_row = row
            cursor = 1
        col = max(slot.position.col, cursor)
        if col + span - 1 > GRID_COLUMNS:
            if cursor > 1:
                shift += 1
                placed_row += 1
                col = 1
            else:
                col = GRID_COLUMNS - span + 1
        cursor = col + span
        position = SlotPosition(row=placed_row, col=col)
        if position != slot.position:
            updated[slot.id] = slot.model_copy(update={"position": position})
    return updated


def normalize_layout(slots: Slots, viewport: str = "desktop") -> dict[str, Slot]:
    updated = dict(slots)
    parent_ids = {slot.parent_id for slot in slots.values()}
    for parent_id in sorted(parent_ids, key=lambda value: (value is not None, value or "")):
        updated = reflow_siblings(updated, parent_id, viewport)
    return updated


def resize_slot(
    slots: Slots,
    slot_id: str,
    axis: str,
    value: float,
    viewport: str = "desktop",
    *,
    min_height: int = MIN_HEIGHT_PX,
    view_context: str | None = None,
) -> dict[str, Slot]:
    slot = _require(slots, slot_id)
    updated = dict(slots)
    if slot.metadata.get("disableResize"):
        return updated

    if axis == "horizontal":
        span = clamp_col_span(value)
        if slot.position is not None:
            span = min(span, GRID_COLUMNS - slot.position.col + 1)
        if span == normalize_col_span(slot.col_span, viewport, view_context):
            return updated
        col_span = replace_col_span(slot.col_span, viewport, span, view_context)
        updated[slot_id] = _touch(slot, col_span=col_span)
        return reflow_siblings(updated, slot.parent_id, viewport)

    if axis == "vertical":
        height = max(min_height, int(round(value)))
        if slot.styles.get("height") == f"{height}px":
            return updated
        updated[slot_id] = _touch(slot, styles={**slot.styles, "height": f"{height}px"})
        return updated

    msg = f"Unknown resize axis: {axis}"
    raise ValueError(msg)


def resize_element(
    slots: Slots,
    slot_id: str,
    dimension: str,
    value: float,
    *,
    min_size: int = MIN_ELEMENT_PX,
) -> dict[str, Slot]:
    if dimension not in {"width", "height"}:
        msg = f"Unknown element dimension: {dimension}"
        raise ValueError(msg)
    slot = _require(slots, slot_id)
    size = max(min_size, int(round(value)))
    updated = dict(slots)
    updated[slot_id] = _touch(slot, styles={**slot.styles, dimension: f"{size}px"})
    return updated


def collect_descendants(slots: Slots, slot_id: str) -> list[str]:
    children: dict[str | None, list[str]] = {}
    for slot in slots.values():
        children.setdefault(slot.parent_id, []).append(slot.id)
    found: list[str] = []
    seen: set[str] = {slot_id}
    queue = list(children.get(slot_id, []))
    while queue:
        current = queue.pop(0)
        if current in seen:
            continue
        seen.add(current)
        found.append(current)
        queue.extend(children.get(current, []))
    return found


def delete_slot(slots: Slots, slot_id: str) -> dict[str, Slot]:
    slot = _require(slots, slot_id)
    if not slot.is_custom:
        msg = f"Slot {slot_id} is built in and cannot be deleted"
        raise ProtectedSlotError(msg)
    removed = {slot_id, *collect_descendants(slots, slot_id)}
    return {key: value for key, value in slots.items() if key not in removed}


def add_slot(
    slots: Slots,
    slot_type: str,
    *,
    parent_id: str | None = None,
    content: str = "",
    page_type: str | None = None,
    view_mode: Sequence[str] | None = None,
    metadata: Mapping[str, Any] | None = None,
    slot_id: str | None = None,
) -> tuple[dict[str, Slot], str]:
    if slot_type not in SLOT_TYPES:
        msg = f"Unknown slot type: {slot_type}"
        raise ValueError(msg)
    if parent_id is not None:
        parent = slots.get(parent_id)
        if parent is None:
            msg = f"Parent slot {parent_id} not found"
            raise InvalidParentError(msg)
        if not parent.is_container():
            msg = f"Slot {parent_id} of type {parent.type} cannot contain children"
            raise InvalidParentError(msg)

    new_id = slot_id or f"new_{slot_type}_{uuid.uuid4().hex[:10]}"
    if new_id in slots:
        msg = f"Slot {new_id} already exists"
        raise ValueError(msg)

    rows = [slot.position.row for slot in children_of(slots, parent_id) if slot.position]
    timestamp = _now()
    slot = Slot(
        id=new_id,
        parent_id=parent_id,
        type=slot_type,
        content=content,
        class_name=_DEFAULT_CLASS_NAMES.get(slot_type, ""),
        styles=dict(_DEFAULT_STYLES.get(slot_type, {})),
        position=SlotPosition(row=max(rows, default=0) + 1, col=1),
        col_span=GRID_COLUMNS,
        row_span=1,
        view_mode=list(view_mode if view_mode is not None else DEFAULT_VIEW_MODES.get(page_type or "", [])),
        is_custom=True,
        metadata={"created": timestamp, "lastModified": timestamp, **dict(metadata or {})},
    )
    updated = dict(slots)
    updated[new_id] = slot
    return updated, new_id


def update_slot_content(slots: Slots, slot_id: str, content: str) -> dict[str, Slot]:
    slot = _require(slots, slot_id)
    updated = dict(slots)
    updated[slot_id] = _touch(slot, content=content)
    return updated


def update_slot_styles(
    slots: Slots,
    slot_id: str,
    *,
    class_name: str | None = None,
    styles: Mapping[str, Any] | None = None,
    metadata: Mapping[str, Any] | None = None,
) -> dict[str, Slot]:
    slot = _require(slots, slot_id)
    changes: dict[str, Any] = {"styles": {**slot.styles, **dict(styles or {})}}

    incoming = (class_name or "").split()
    alignment = [name for name in incoming if name in ALIGNMENT_CLASSES]
    if alignment:
        changes["class_name"] = " ".join(
            name for name in slot.class_name.split() if name not in ALIGNMENT_CLASSES
        )
        parent_classes = [
            name for name in slot.parent_class_name.split() if name not in ALIGNMENT_CLASSES
        ]
        changes["parent_class_name"] = " ".join(parent_classes + alignment)
    elif incoming:
        changes["class_name"] = " ".join(incoming)

    updated = dict(slots)
    updated[slot_id] = _touch(slot, extra_metadata=metadata, **changes)
    return updated


def validate_tree(slots: Slots, viewport: str = "desktop") -> list[TreeProblem]:
    problems: list[TreeProblem] = []
    for key, slot in slots.items():
        if key != slot.id:
            problems.append(TreeProblem(key, f"key does not match id {slot.id!r}"))
        if slot.parent_id is None:
            continue
        parent = slots.get(slot.parent_id)
        if parent is None:
            problems.append(TreeProblem(key, f"parent {slot.parent_id!r} does not exist"))
        elif not parent.is_container():
            problems.append(TreeProblem(key, f"parent {slot.parent_id!r} is not a container"))

    for slot_id in _cycle_members(slots):
        problems.append(TreeProblem(slot_id, "parent chain forms a cycle"))

    groups: dict[str | None, list[Slot]] = {}
    for slot in slots.values():
        groups.setdefault(slot.parent_id, []).append(slot)
    for siblings in groups.values():
        problems.extend(_bounds_problems(siblings, viewport))
    return problems


def _bounds_problems(siblings: Iterable[Slot], viewport: str) -> list[TreeProblem]:
    problems: list[TreeProblem] = []
    spans: list[tuple[Slot, int, int]] = []
    for slot in siblings:
        if slot.position is None:
            continue
        span = normalize_col_span(slot.col_span, viewport)
        end = slot.position.col + span - 1
        if end > GRID_COLUMNS:
            problems.append(
                TreeProblem(slot.id, f"spans columns {slot.position.col}-{end}", structural=False)
            )
        spans.append((slot, slot.position.col, end))
    for idx, (slot, start, end) in enumerate(spans):
        for other, other_start, other_end in spans[idx + 1 :]:
            if slot.position == other.position or (
                slot.position is not None
                and other.position is not None
                and slot.position.row == other.position.row
                and start <= other_end
                and other_start <= end
            ):
                problems.append(
                    TreeProblem(slot.id, f"overlaps sibling {other.id!r}", structural=False)
                )
    return problems


def _cycle_members(slots: Slots) -> list[str]:
    members: list[str] = []
    for slot_id in slots:
        seen: set[str] = set()
        current = slots.get(slot_id)
        while current is not None and current.parent_id is not None:
            if current.parent_id == slot_id:
                members.append(slot_id)
                break
            if current.parent_id in seen:
                break
            seen.add(current.parent_id)
            current = slots.get(current.parent_id)
    return members


def _require(slots: Slots, slot_id: str) -> Slot:
    slot = slots.get(slot_id)
    if slot is None:
        msg = f"Slot {slot_id} not found"
        raise UnknownSlotError(msg)
    return slot


def _touch(slot: Slot, extra_metadata: Mapping[str, Any] | None = None, **changes: Any) -> Slot:
    metadata = {**slot.metadata, **dict(extra_metadata or {}), "lastModified": _now()}
    return slot.model_copy(update={**changes, "metadata": metadata})


def _now() -> str:
    return datetime.now(tz=UTC).isoformat()
