from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

GRID_COLUMNS = 12
MIN_COL_SPAN = 1
DEFAULT_ROW_SPAN = 1

VIEWPORTS: tuple[str, ...] = ("mobile", "tablet", "desktop")
CONTAINER_TYPES = frozenset({"container", "grid", "flex"})
LEAF_TYPES = frozenset({"text", "button", "link", "image", "input", "widget"})
SLOT_TYPES = CONTAINER_TYPES | LEAF_TYPES

Viewport = Literal["mobile", "tablet", "desktop"]
DropZone = Literal["before", "after", "left", "right", "inside", "none"]
RenderMode = Literal["edit", "display"]
ResizeAxis = Literal["horizontal", "vertical"]
ElementDimension = Literal["width", "height"]

DROP_ZONES: tuple[str, ...] = ("before", "after", "left", "right", "inside", "none")


class UnknownSlotError(ValueError):
    pass


class ProtectedSlotError(ValueError):
    pass


class InvalidParentError(ValueError):
    pass


class InvalidTransitionError(ValueError):
    pass


class ConfirmationRequiredError(ValueError):
    def __init__(self, slot_id: str, descendants: List[str]) -> None:
        self.slot_id = slot_id
        self.descendants = list(descendants)
        super().__init__(
            f"Deleting {slot_id} also removes {len(self.descendants)} nested slot(s); confirm first"
        )


class InvalidLayoutError(ValueError):
    def __init__(self, problems: List[str]) -> None:
        self.problems = list(problems)
        super().__init__("; ".join(self.problems) or "Invalid layout")


class SlotPosition(BaseModel):
    model_config = ConfigDict(frozen=True)

    row: int = Field(default=1, ge=1)
    col: int = Field(default=1, ge=1)


class Slot(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    id: str = Field(..., min_length=1)
    parent_id: Optional[str] = Field(default=None, alias="parentId")
    type: str = "container"
    position: Optional[SlotPosition] = None
    col_span: Any = Field(default=GRID_COLUMNS, alias="colSpan")
    row_span: int = Field(default=DEFAULT_ROW_SPAN, ge=1, alias="rowSpan")
    content: str = ""
    styles: Dict[str, Any] = Field(default_factory=dict)
    class_name: str = Field(default="", alias="className")
    parent_class_name: str = Field(default="", alias="parentClassName")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    view_mode: List[str] = Field(default_factory=list, alias="viewMode")
    is_custom: bool = Field(default=False, alias="isCustom")
    component: Optional[str] = None

    @field_validator("position", mode="before")
    @classmethod
    def drop_partial_position(cls, value: object) -> object:
        # Legacy slots carry "{}" or only one coordinate; those sort as unpositioned.
        if isinstance(value, dict) and ("row" not in value or "col" not in value):
            return None
        return value

    @field_validator("row_span", mode="before")
    @classmethod
    def default_row_span(cls, value: object) -> object:
        return DEFAULT_ROW_SPAN if value in (None, 0, "") else value

    @field_validator("content", "class_name", "parent_class_name", mode="before")
    @classmethod
    def text_or_empty(cls, value: object) -> str:
        return "" if value is None else str(value)

    @field_validator("styles", "metadata", mode="before")
    @classmethod
    def mapping_or_empty(cls, value: object) -> object:
        return {} if value is None else value

    @field_validator("view_mode", mode="before")
    @classmethod
    def view_mode_list(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value else []
        return value

    def is_container(self) -> bool:
        return self.type in CONTAINER_TYPES

    def widget_name(self) -> str | None:
        name = self.component or self.metadata.get("component")
        return str(name) if name else None

    def to_dict(self) -> dict[str, Any]:
        payload = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        payload["parentId"] = self.parent_id
        return payload


class LayoutDocument(BaseModel):
    model_config = ConfigDict(extra="allow")

    slots: Dict[str, Slot] = Field(default_factory=dict)

    @field_validator("slots", mode="before")
    @classmethod
    def fill_missing_ids(cls, value: object) -> object:
        if not isinstance(value, dict):
            return value
        filled: dict[str, Any] = {}
        for key, raw in value.items():
            if isinstance(raw, dict) and not raw.get("id"):
                raw = {**raw, "id": key}
            filled[key] = raw
        return filled

    @model_validator(mode="after")
    def ensure_keys_match_ids(self) -> LayoutDocument:
        for key, slot in self.slots.items():
            if slot.id != key:
                msg = f"Slot key {key!r} does not match slot id {slot.id!r}"
                raise ValueError(msg)
        return self

    def with_slots(self, slots: Dict[str, Slot]) -> LayoutDocument:
        return self.model_copy(update={"slots": dict(slots)})

    def page_meta(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    def to_dict(self) -> dict[str, Any]:
        payload = self.page_meta()
        payload["slots"] = {slot_id: slot.to_dict() for slot_id, slot in self.slots.items()}
        return payload


@dataclass(frozen=True)
class LayoutKey:
    store_id: str
    page_type: str

    def as_path(self) -> str:
        return f"{self.store_id}/{self.page_type}"


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    def local(self, point: Point) -> Point:
        return Point(point.x - self.x, point.y - self.y)


@dataclass(frozen=True)
class InvalidationSignal:
    store_id: str
    page_type: str
    revision: int

    @property
    def key(self) -> LayoutKey:
        return LayoutKey(self.store_id, self.page_type)
