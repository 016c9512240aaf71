from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from domain.models import GRID_COLUMNS, MIN_COL_SPAN, VIEWPORTS, Slot, SlotPosition

DEFAULT_COL_SPAN = GRID_COLUMNS
DEFAULT_VIEW_CONTEXT = "default"

_BREAKPOINTS: tuple[str, ...] = ("sm", "md", "lg", "xl", "2xl")
_BREAKPOINT_PREFERENCE: dict[str, tuple[str, ...]] = {
    "mobile": (),
    "tablet": ("md", "sm"),
    "desktop": ("2xl", "xl", "lg", "md", "sm"),
}
_WRITE_BREAKPOINT = {"tablet": "md", "desktop": "lg"}
_NESTED_FALLBACK: tuple[str, ...] = ("desktop", "tablet", "mobile")
_RESPONSIVE_TOKEN = re.compile(r"^(sm|md|lg|xl|2xl):(.+)$")
_COL_SPAN_TOKEN = re.compile(r"^col-span-(\d+|full)$")


@dataclass(frozen=True)
class ResolvedChild:
    slot: Slot
    col_span: int


def clamp_col_span(value: float) -> int:
    return max(MIN_COL_SPAN, min(GRID_COLUMNS, int(value)))


def normalize_col_span(raw: Any, viewport: str = "desktop", view_context: str | None = None) -> int:
    resolved = _resolve_entry(raw, viewport, view_context)
    return resolved if resolved is not None else DEFAULT_COL_SPAN


def replace_col_span(
    raw: Any,
    viewport: str,
    value: int,
    view_context: str | None = None,
) -> Any:
    span = clamp_col_span(value)
    if isinstance(raw, Mapping):
        updated = dict(raw)
        key = _entry_key(raw, viewport, view_context)
        if key is None or (key in VIEWPORTS and key != viewport):
            updated[viewport] = span
            return updated
        entry = raw[key]
        number = _as_number(entry)
        if key != viewport and number is not None:
            current = clamp_col_span(number)
            updated[key] = {name: (span if name == viewport else current) for name in VIEWPORTS}
        else:
            updated[key] = _replace_scalar(entry, viewport, span)
        return updated
    if isinstance(raw, str):
        return _rewrite_class_string(raw, viewport, span)
    number = _as_number(raw)
    if number is not None:
        current = clamp_col_span(number)
        return {name: (span if name == viewport else current) for name in VIEWPORTS}
    return {viewport: span}


def col_span_class(span: int) -> str:
    return f"col-span-{span}"


def grid_column_style(span: int) -> str:
    return f"span {span} / span {span}"


def is_visible(slot: Slot, view_context: str | None) -> bool:
    if not slot.view_mode:
        return True
    if view_context is None or DEFAULT_VIEW_CONTEXT in slot.view_mode:
        return True
    return view_context in slot.view_mode


def has_coordinates(slot: Slot) -> bool:
    return slot.position is not None


def sort_by_grid_coordinates(slots: Iterable[Slot]) -> list[Slot]:
    def sort_key(slot: Slot) -> tuple[int, int, int]:
        if slot.position is None:
            return (1, 0, 0)
        return (0, slot.position.row, slot.position.col)

    return sorted(slots, key=sort_key)


def children_of(slots: Mapping[str, Slot], parent_id: str | None) -> list[Slot]:
    return [slot for slot in slots.values() if slot.parent_id == parent_id]


def ordered_children(
    slots: Mapping[str, Slot],
    parent_id: str | None,
    viewport: str = "desktop",
    view_context: str | None = None,
) -> list[ResolvedChild]:
    visible = [slot for slot in children_of(slots, parent_id) if is_visible(slot, view_context)]
    return [
        ResolvedChild(slot=slot, col_span=normalize_col_span(slot.col_span, viewport, view_context))
        for slot in sort_by_grid_coordinates(visible)
    ]


def drop_target_position(
    slots: Mapping[str, Slot],
    target_id: str,
    zone: str,
    viewport: str = "desktop",
) -> SlotPosition | None:
    target = slots.get(target_id)
    if target is None:
        return None
    if zone == "inside":
        return SlotPosition(row=1, col=1)
    row = target.position.row if target.position else 1
    col = target.position.col if target.position else 1
    if zone in {"before", "left"}:
        return SlotPosition(row=row, col=clamp_col_span(col))
    if zone in {"after", "right"}:
        span = normalize_col_span(target.col_span, viewport)
        return SlotPosition(row=row, col=clamp_col_span(col + span))
    return None


def _resolve_entry(raw: Any, viewport: str, view_context: str | None) -> int | None:
    if isinstance(raw, Mapping):
        key = _entry_key(raw, viewport, view_context)
        if key is None:
            return None
        entry = raw[key]
        if isinstance(entry, Mapping):
            return _resolve_nested(entry, viewport)
        return _resolve_scalar(entry, viewport)
    return _resolve_scalar(raw, viewport)


def _entry_key(raw: Mapping[str, Any], viewport: str, view_context: str | None) -> str | None:
    for key in (viewport, view_context, DEFAULT_VIEW_CONTEXT):
        if key is not None and key in raw:
            return key
    for key in _NESTED_FALLBACK:
        if key in raw:
            return key
    for key in raw:
        return str(key)
    return None


def _resolve_nested(entry: Mapping[str, Any], viewport: str) -> int | None:
    for key in (viewport, *_NESTED_FALLBACK):
        if key in entry:
            resolved = _resolve_scalar(entry[key], viewport)
            if resolved is not None:
                return resolved
    return None


def _resolve_scalar(value: Any, viewport: str) -> int | None:
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.isdigit():
            return clamp_col_span(int(stripped))
        return _resolve_class_string(stripped, viewport)
    number = _as_number(value)
    if number is None:
        return None
    return clamp_col_span(number)


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if not math.isfinite(value):
        return None
    return float(round(value))


def _split_classes(class_string: str) -> tuple[list[str], dict[str, list[str]]]:
    base: list[str] = []
    responsive: dict[str, list[str]] = {name: [] for name in _BREAKPOINTS}
    for token in class_string.split():
        match = _RESPONSIVE_TOKEN.match(token)
        if match:
            responsive[match.group(1)].append(match.group(2))
        else:
            base.append(token)
    return base, responsive


def _span_from_tokens(tokens: Iterable[str]) -> int | None:
    for token in tokens:
        match = _COL_SPAN_TOKEN.match(token)
        if not match:
            continue
        value = match.group(1)
        return GRID_COLUMNS if value == "full" else clamp_col_span(int(value))
    return None


def _resolve_class_string(class_string: str, viewport: str) -> int | None:
    base, responsive = _split_classes(class_string)
    for breakpoint in _BREAKPOINT_PREFERENCE.get(viewport, ()):
        span = _span_from_tokens(responsive[breakpoint])
        if span is not None:
            return span
    return _span_from_tokens(base)


def _replace_scalar(entry: Any, viewport: str, span: int) -> Any:
    if isinstance(entry, Mapping):
        nested = dict(entry)
        nested[viewport] = span
        return nested
    if isinstance(entry, str) and not entry.strip().isdigit():
        return _rewrite_class_string(entry, viewport, span)
    return span


def _rewrite_class_string(class_string: str, viewport: str, span: int) -> str:
    spans = {name: _resolve_class_string(class_string, name) for name in VIEWPORTS}
    spans[viewport] = span
    kept: list[str] = []
    for token in class_string.split():
        match = _RESPONSIVE_TOKEN.match(token)
        bare = match.group(2) if match else token
        if not _COL_SPAN_TOKEN.match(bare):
            kept.append(token)

    rebuilt: list[str] = []
    mobile = spans["mobile"] if spans["mobile"] is not None else DEFAULT_COL_SPAN
    rebuilt.append(col_span_class(mobile))
    previous = mobile
    for name in ("tablet", "desktop"):
        value = spans[name] if spans[name] is not None else previous
        if value != previous:
            rebuilt.append(f"{_WRITE_BREAKPOINT[name]}:{col_span_class(value)}")
        previous = value
    return " ".join(rebuilt + kept)
