from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass

from domain.models import GRID_COLUMNS, MIN_COL_SPAN, InvalidTransitionError, Point, ResizeAxis
from domain.ports.platform import PointerPlatform

ResizeCallback = Callable[[ResizeAxis, int], None]

_CURSORS: dict[str, str] = {"horizontal": "col-resize", "vertical": "row-resize"}


@dataclass(frozen=True)
class ResizeConfig:
    column_sensitivity_px: float = 20.0
    height_divisor: float = 2.0
    min_height_px: int = 20


@dataclass(frozen=True)
class _ActiveResize:
    pointer_id: int
    origin: Point
    axis: ResizeAxis
    start_value: int
    last_value: int


DEFAULT_RESIZE_CONFIG = ResizeConfig()


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def column_span_for(start_span: int, delta_x: float, config: ResizeConfig = DEFAULT_RESIZE_CONFIG) -> int:
    delta = round_half_up(delta_x / config.column_sensitivity_px)
    return max(MIN_COL_SPAN, min(GRID_COLUMNS, start_span + delta))


def height_for(start_height: int, delta_y: float, config: ResizeConfig = DEFAULT_RESIZE_CONFIG) -> int:
    delta = round_half_up(delta_y / config.height_divisor)
    return max(config.min_height_px, start_height + delta)


class ResizeController:
    def __init__(
        self,
        platform: PointerPlatform,
        on_preview: ResizeCallback,
        on_commit: ResizeCallback,
        config: ResizeConfig = DEFAULT_RESIZE_CONFIG,
    ) -> None:
        self._platform = platform
        self._on_preview = on_preview
        self._on_commit = on_commit
        self._config = config
        self._active: _ActiveResize | None = None

    @property
    def active(self) -> bool:
        return self._active is not None

    @property
    def axis(self) -> ResizeAxis | None:
        return self._active.axis if self._active else None

    def begin(self, pointer_id: int, origin: Point, axis: ResizeAxis, start_value: int) -> None:
        if self._active is not None:
            msg = "A resize gesture is already in progress"
            raise InvalidTransitionError(msg)
        if axis not in _CURSORS:
            msg = f"Unknown resize axis: {axis}"
            raise ValueError(msg)
        self._platform.capture_pointer(pointer_id)
        self._platform.set_cursor(_CURSORS[axis])
        self._platform.set_text_selection(False)
        self._active = _ActiveResize(pointer_id, origin, axis, start_value, start_value)

    def move(self, pointer: Point) -> int | None:
        active = self._active
        if active is None:
            return None
        value = self._value_at(active, pointer)
        if value != active.last_value:
            self._active = _ActiveResize(
                active.pointer_id, active.origin, active.axis, active.start_value, value
            )
            self._on_preview(active.axis, value)
        return value

    def end(self, pointer: Point) -> int | None:
        active = self._active
        if active is None:
            return None
        value = self._value_at(active, pointer)
        try:
            self._on_commit(active.axis, value)
        finally:
            self._release(active)
        return value

    def cancel(self) -> None:
        active = self._active
        if active is None:
            return
        try:
            if active.last_value != active.start_value:
                self._on_preview(active.axis, active.start_value)
        finally:
            self._release(active)

    def _value_at(self, active: _ActiveResize, pointer: Point) -> int:
        if active.axis == "horizontal":
            return column_span_for(active.start_value, pointer.x - active.origin.x, self._config)
        return height_for(active.start_value, pointer.y - active.origin.y, self._config)

    def _release(self, active: _ActiveResize) -> None:
        self._active = None
        try:
            self._platform.release_pointer(active.pointer_id)
        finally:
            self._platform.set_cursor(None)
            self._platform.set_text_selection(True)
