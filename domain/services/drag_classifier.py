from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal

from domain.models import DropZone, Point, Rect, Slot, SlotPosition
from domain.services.geometry import drop_target_position

DragDirection = Literal["left", "right", "up", "down"]
OperationType = Literal["reorder", "move"]


@dataclass(frozen=True)
class DragGesture:
    dragged_id: str
    parent_id: str | None
    start: Point | None = None


@dataclass(frozen=True)
class ClassifierConfig:
    direction_ratio: float = 0.8
    before_fraction: float = 0.33
    after_fraction: float = 0.67
    horizontal_split: float = 0.5
    # Displacement at or below this many pixels on both axes counts as "not moved yet".
    dead_zone: float = 0.0


@dataclass(frozen=True)
class DropPreview:
    target_id: str
    zone: DropZone
    operation: OperationType
    grid_position: SlotPosition | None


DEFAULT_CLASSIFIER_CONFIG = ClassifierConfig()


def is_descendant(slots: Mapping[str, Slot], candidate_id: str, ancestor_id: str) -> bool:
    seen: set[str] = set()
    current = slots.get(candidate_id)
    while current is not None and current.parent_id is not None:
        if current.parent_id == ancestor_id:
            return True
        if current.parent_id in seen:
            return False
        seen.add(current.parent_id)
        current = slots.get(current.parent_id)
    return False


def drag_direction(
    gesture: DragGesture,
    pointer: Point,
    config: ClassifierConfig = DEFAULT_CLASSIFIER_CONFIG,
) -> DragDirection | None:
    if gesture.start is None:
        return None
    delta_x = pointer.x - gesture.start.x
    delta_y = pointer.y - gesture.start.y
    abs_x = abs(delta_x)
    abs_y = abs(delta_y)
    if abs_x <= config.dead_zone and abs_y <= config.dead_zone:
        return None
    if abs_x > abs_y * config.direction_ratio:
        return "right" if delta_x > 0 else "left"
    if abs_y > abs_x * config.direction_ratio:
        return "down" if delta_y > 0 else "up"
    return None


def classify_drop_zone(
    slots: Mapping[str, Slot],
    gesture: DragGesture,
    target_id: str,
    pointer: Point,
    target_rect: Rect,
    config: ClassifierConfig = DEFAULT_CLASSIFIER_CONFIG,
) -> DropZone:
    dragged = slots.get(gesture.dragged_id)
    target = slots.get(target_id)
    if dragged is None or target is None or dragged.id == target.id:
        return "none"
    if is_descendant(slots, target.id, dragged.id):
        return "none"

    direction = drag_direction(gesture, pointer, config)
    if direction == "left":
        return "left"
    if direction == "right":
        return "right"
    if direction == "up":
        return "before"
    if direction == "down":
        return "after"
    return _classify_by_position(dragged, target, gesture, pointer, target_rect, config)


def build_drop_preview(
    slots: Mapping[str, Slot],
    gesture: DragGesture,
    target_id: str,
    zone: DropZone,
    viewport: str = "desktop",
) -> DropPreview | None:
    target = slots.get(target_id)
    if target is None or zone == "none":
        return None
    operation: OperationType = "reorder" if gesture.parent_id == target.parent_id else "move"
    return DropPreview(
        target_id=target_id,
        zone=zone,
        operation=operation,
        grid_position=drop_target_position(slots, target_id, zone, viewport),
    )


def _classify_by_position(
    dragged: Slot,
    target: Slot,
    gesture: DragGesture,
    pointer: Point,
    target_rect: Rect,
    config: ClassifierConfig,
) -> DropZone:
    if target_rect.width <= 0 or target_rect.height <= 0:
        return "none"
    local = target_rect.local(pointer)

    if _is_horizontal_reorder(dragged, target, gesture):
        return "left" if local.x < target_rect.width * config.horizontal_split else "right"

    if local.y < target_rect.height * config.before_fraction:
        return "before"
    if local.y > target_rect.height * config.after_fraction:
        return "after"
    if target.is_container():
        return "inside"
    return "none"


def _is_horizontal_reorder(dragged: Slot, target: Slot, gesture: DragGesture) -> bool:
    if gesture.parent_id != target.parent_id:
        return False
    if dragged.position is None or target.position is None:
        return False
    return dragged.position.row == target.position.row
