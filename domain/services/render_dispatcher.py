from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from domain.models import RenderMode, ResizeAxis, Slot, Viewport
from domain.services.drag_classifier import DropPreview
from domain.services.geometry import col_span_class, grid_column_style, ordered_children
from domain.services.template_variables import (
    Fallback,
    item_scope,
    lookup_path,
    resolve_mapping,
    resolve_template,
)

GRID_CLASSES: tuple[str, ...] = ("grid", "grid-cols-12", "gap-2")
_CONTAINER_CLASSES: dict[str, tuple[str, ...]] = {
    "container": GRID_CLASSES,
    "grid": GRID_CLASSES,
    "flex": ("flex", "flex-wrap", "gap-2"),
}


@dataclass(frozen=True)
class RenderNode:
    tag: str
    classes: tuple[str, ...] = ()
    style: Mapping[str, Any] = field(default_factory=dict)
    attrs: Mapping[str, str] = field(default_factory=dict)
    text: str = ""
    raw: bool = False
    children: tuple[RenderNode, ...] = ()
    overlay: bool = False

    def walk(self) -> Iterable[RenderNode]:
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass(frozen=True)
class DataContext:
    product: Mapping[str, Any] = field(default_factory=dict)
    cart: Mapping[str, Any] = field(default_factory=dict)
    header: Mapping[str, Any] = field(default_factory=dict)
    variables: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in ("product", "cart", "header", "variables"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    def scope(self) -> dict[str, Any]:
        return {
            **self.variables,
            "product": self.product,
            "cart": self.cart,
            "header": self.header,
        }


@dataclass(frozen=True)
class ResizePreview:
    slot_id: str
    axis: ResizeAxis
    value: int


@dataclass(frozen=True)
class RenderContext:
    slots: Mapping[str, Slot]
    mode: RenderMode = "display"
    viewport: Viewport = "desktop"
    view_context: str | None = None
    data: DataContext = field(default_factory=DataContext)
    selected_id: str | None = None
    drop_preview: DropPreview | None = None
    resize_preview: ResizePreview | None = None
    scope_override: Mapping[str, Any] | None = None

    @property
    def editing(self) -> bool:
        return self.mode == "edit"

    def scope(self) -> Mapping[str, Any]:
        if self.scope_override is not None:
            return self.scope_override
        return self.data.scope()


SlotRenderer = Callable[[Slot, RenderContext], RenderNode]


class RenderDispatcher:
    def __init__(self, fallback: Fallback | None = None) -> None:
        self._fallback = fallback
        self._renderers: dict[str, SlotRenderer] = {}
        self._widgets: dict[str, SlotRenderer] = {}
        for slot_type in _CONTAINER_CLASSES:
            self._renderers[slot_type] = self._render_container
        self._renderers.update(
            {
                "text": self._render_text,
                "button": self._render_button,
                "link": self._render_link,
                "image": self._render_image,
                "input": self._render_input,
                "widget": self._render_widget,
            }
        )
        self._widgets["data_list"] = self._render_data_list

    def register(self, slot_type: str, renderer: SlotRenderer) -> None:
        self._renderers[slot_type] = renderer

    def register_widget(self, name: str, renderer: SlotRenderer) -> None:
        self._widgets[name] = renderer

    def resolve(self, text: str, ctx: RenderContext) -> str:
        return resolve_template(text, ctx.scope(), self._fallback)

    def render_page(self, ctx: RenderContext) -> RenderNode:
        return RenderNode(
            tag="div",
            classes=GRID_CLASSES,
            attrs={"data-layout-root": ctx.viewport},
            children=tuple(self.render_children(None, ctx)),
        )

    def render_children(self, parent_id: str | None, ctx: RenderContext) -> list[RenderNode]:
        nodes: list[RenderNode] = []
        for child in ordered_children(ctx.slots, parent_id, ctx.viewport, ctx.view_context):
            content = self.render_slot(child.slot, ctx)
            if content is None:
                continue
            col_span = child.col_span
            resize = ctx.resize_preview if ctx.editing else None
            if resize is not None and resize.slot_id == child.slot.id:
                if resize.axis == "horizontal":
                    col_span = resize.value
                else:
                    content = replace(content, style={**content.style, "height": f"{resize.value}px"})
            overlay = self._overlay(child.slot, ctx) if ctx.editing else None
            if _is_free_floating(child.slot):
                nodes.append(content)
                if overlay is not None:
                    nodes.append(overlay)
                continue
            cell_children = (content,) if overlay is None else (content, overlay)
            nodes.append(
                RenderNode(
                    tag="div",
                    classes=(
                        "relative",
                        col_span_class(col_span),
                        *self.resolve(child.slot.parent_class_name, ctx).split(),
                    ),
                    style={"gridColumn": grid_column_style(col_span)},
                    attrs={"data-slot-cell": child.slot.id},
                    children=cell_children,
                )
            )
        return nodes

    def render_slot(self, slot: Slot, ctx: RenderContext) -> RenderNode | None:
        show_if = slot.metadata.get("showIf")
        if show_if and not lookup_path(ctx.scope(), str(show_if)):
            return None
        renderer = self._renderers.get(slot.type, self._render_generic)
        return renderer(slot, ctx)

    def _base(self, slot: Slot, ctx: RenderContext, tag: str, *extra: str, **attrs: str) -> RenderNode:
        classes = (*extra, *self.resolve(slot.class_name, ctx).split())
        return RenderNode(
            tag=tag,
            classes=tuple(dict.fromkeys(classes)),
            style=resolve_mapping(slot.styles, ctx.scope()),
            attrs={"data-slot-id": slot.id, "data-slot-type": slot.type, **attrs},
        )

    def _render_container(self, slot: Slot, ctx: RenderContext) -> RenderNode:
        node = self._base(slot, ctx, "div", *_CONTAINER_CLASSES.get(slot.type, GRID_CLASSES))
        return replace(node, children=tuple(self.render_children(slot.id, ctx)))

    def _render_text(self, slot: Slot, ctx: RenderContext) -> RenderNode:
        tag = str(slot.metadata.get("htmlTag") or "div")
        return replace(self._base(slot, ctx, tag), text=self.resolve(slot.content, ctx), raw=True)

    def _render_button(self, slot: Slot, ctx: RenderContext) -> RenderNode:
        node = self._base(slot, ctx, "button", type="button")
        return replace(node, text=self.resolve(slot.content, ctx))

    def _render_link(self, slot: Slot, ctx: RenderContext) -> RenderNode:
        href = self.resolve(str(slot.metadata.get("href") or "#"), ctx)
        node = self._base(slot, ctx, "a", href=href)
        return replace(node, text=self.resolve(slot.content, ctx), raw=True)

    def _render_image(self, slot: Slot, ctx: RenderContext) -> RenderNode:
        src = self.resolve(str(slot.metadata.get("src") or slot.content), ctx)
        alt = self.resolve(str(slot.metadata.get("alt") or ""), ctx)
        return self._base(slot, ctx, "img", src=src, alt=alt)

    def _render_input(self, slot: Slot, ctx: RenderContext) -> RenderNode:
        input_type = str(slot.metadata.get("inputType") or "text")
        placeholder = self.resolve(slot.content, ctx)
        return self._base(slot, ctx, "input", type=input_type, placeholder=placeholder)

    def _render_widget(self, slot: Slot, ctx: RenderContext) -> RenderNode:
        name = slot.widget_name()
        renderer = self._widgets.get(name) if name else None
        if renderer is None:
            return self._render_generic(slot, ctx)
        return renderer(slot, ctx)

    def _render_data_list(self, slot: Slot, ctx: RenderContext) -> RenderNode:
        scope = ctx.scope()
        source = str(slot.metadata.get("source") or "")
        items = lookup_path(scope, source) if source else None
        item_template = str(slot.metadata.get("itemTemplate") or slot.content or "{{this}}")
        node = self._base(slot, ctx, "ul")
        if not isinstance(items, Sequence) or isinstance(items, str) or not items:
            empty = self.resolve(str(slot.metadata.get("emptyText") or ""), ctx)
            return replace(node, text=empty)
        children = tuple(
            RenderNode(
                tag="li",
                attrs={"data-item-index": str(index)},
                text=resolve_template(item_template, item_scope(scope, item), self._fallback),
                raw=True,
            )
            for index, item in enumerate(items)
        )
        return replace(node, children=children)

    def _render_generic(self, slot: Slot, ctx: RenderContext) -> RenderNode:
        return replace(self._base(slot, ctx, "div"), text=self.resolve(slot.content, ctx))

    def _overlay(self, slot: Slot, ctx: RenderContext) -> RenderNode:
        classes = ["slot-overlay", "absolute", "inset-0"]
        if ctx.selected_id == slot.id:
            classes.append("slot-overlay--selected")
        affordances: list[RenderNode] = []
        if not slot.metadata.get("nonDraggable"):
            affordances.append(_affordance("drag-handle", slot.id))
        if not slot.metadata.get("disableResize"):
            if _is_free_floating(slot):
                affordances.append(_affordance("resize-handle-element", slot.id))
            else:
                affordances.append(_affordance("resize-handle-x", slot.id))
                affordances.append(_affordance("resize-handle-y", slot.id))
        preview = ctx.drop_preview
        if preview is not None and preview.target_id == slot.id:
            affordances.append(_affordance(f"drop-indicator drop-indicator--{preview.zone}", slot.id))
        return RenderNode(
            tag="div",
            classes=tuple(classes),
            attrs={"data-overlay-for": slot.id, "aria-hidden": "true"},
            children=tuple(affordances),
            overlay=True,
        )


def strip_overlays(node: RenderNode) -> RenderNode:
    return replace(
        node,
        children=tuple(strip_overlays(child) for child in node.children if not child.overlay),
    )


def _affordance(class_names: str, slot_id: str) -> RenderNode:
    return RenderNode(
        tag="div",
        classes=tuple(class_names.split()),
        attrs={"data-affordance-for": slot_id},
        overlay=True,
    )


def _is_free_floating(slot: Slot) -> bool:
    return str(slot.styles.get("position", "")).lower() in {"absolute", "fixed"}
