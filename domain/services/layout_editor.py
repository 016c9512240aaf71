from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from domain.models import (
    ConfirmationRequiredError,
    DropZone,
    InvalidLayoutError,
    InvalidTransitionError,
    LayoutDocument,
    LayoutKey,
    Point,
    Rect,
    RenderMode,
    ResizeAxis,
    Slot,
    UnknownSlotError,
    Viewport,
)
from domain.ports.platform import PointerPlatform
from domain.services import editor_session, tree_mutator
from domain.services.drag_classifier import (
    DEFAULT_CLASSIFIER_CONFIG,
    ClassifierConfig,
    DragGesture,
    DropPreview,
    build_drop_preview,
    classify_drop_zone,
)
from domain.services.editor_session import IDLE_SESSION, EditorSession
from domain.services.geometry import normalize_col_span
from domain.services.persistence_sync import DebouncedSaver, SaveStatus
from domain.services.render_dispatcher import (
    DataContext,
    RenderContext,
    RenderDispatcher,
    RenderNode,
    ResizePreview,
)
from domain.services.resize_controller import DEFAULT_RESIZE_CONFIG, ResizeConfig, ResizeController

logger = logging.getLogger(__name__)

_PIXELS = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*px\s*$")

DRAG_CURSOR = "grabbing"


class LayoutEditor:
    def __init__(
        self,
        key: LayoutKey,
        document: LayoutDocument,
        saver: DebouncedSaver,
        platform: PointerPlatform,
        *,
        dispatcher: RenderDispatcher | None = None,
        classifier_config: ClassifierConfig = DEFAULT_CLASSIFIER_CONFIG,
        resize_config: ResizeConfig = DEFAULT_RESIZE_CONFIG,
        viewport: Viewport = "desktop",
        view_context: str | None = None,
        page_type: str | None = None,
    ) -> None:
        self._key = key
        self._document = document
        self._saver = saver
        self._dispatcher = dispatcher or RenderDispatcher()
        self._classifier_config = classifier_config
        self._resize_config = resize_config
        self._session: EditorSession = IDLE_SESSION
        self._platform = platform
        self._drag_pointer: int | None = None
        self._gesture_viewport: Viewport | None = None
        self._resize_start: int | None = None
        self._resizer = ResizeController(
            platform, self._on_resize_preview, self._on_resize_commit, resize_config
        )
        self._viewport: Viewport = viewport
        self.view_context = view_context
        self.page_type = page_type or key.page_type

    @property
    def key(self) -> LayoutKey:
        return self._key

    @property
    def viewport(self) -> Viewport:
        return self._viewport

    @property
    def document(self) -> LayoutDocument:
        return self._document

    @property
    def slots(self) -> Mapping[str, Slot]:
        return self._document.slots

    @property
    def session(self) -> EditorSession:
        return self._session

    @property
    def save_status(self) -> SaveStatus:
        return self._saver.status

    @property
    def saver(self) -> DebouncedSaver:
        return self._saver

    def slot(self, slot_id: str) -> Slot:
        slot = self.slots.get(slot_id)
        if slot is None:
            msg = f"Slot {slot_id} not found"
            raise UnknownSlotError(msg)
        return slot

    def begin_drag(
        self,
        slot_id: str,
        start: Point | None = None,
        *,
        pointer_id: int = 0,
        from_resize_handle: bool = False,
        viewport: Viewport | None = None,
    ) -> EditorSession:
        slot = self.slot(slot_id)
        if slot.metadata.get("nonDraggable"):
            msg = f"Slot {slot_id} cannot be dragged"
            raise InvalidTransitionError(msg)
        gesture = DragGesture(dragged_id=slot.id, parent_id=slot.parent_id, start=start)
        self._session = editor_session.start_drag(
            self._session, gesture, from_resize_handle=from_resize_handle
        )
        self._gesture_viewport = viewport
        self._drag_pointer = pointer_id
        try:
            self._platform.capture_pointer(pointer_id)
            self._platform.set_cursor(DRAG_CURSOR)
            self._platform.set_text_selection(False)
        except Exception:
            self._session = IDLE_SESSION
            self._release_drag()
            raise
        return self._session

    def drag_over(self, target_id: str, pointer: Point, target_rect: Rect) -> DropPreview | None:
        gesture = self._session.gesture
        if gesture is None:
            msg = "No drag in progress"
            raise InvalidTransitionError(msg)
        viewport = self._gesture_viewport or self.viewport
        zone = classify_drop_zone(
            self.slots, gesture, target_id, pointer, target_rect, self._classifier_config
        )
        preview = build_drop_preview(self.slots, gesture, target_id, zone, viewport)
        self._session = editor_session.update_drop_preview(self._session, target_id, zone, preview)
        return preview

    def drop(self) -> bool:
        try:
            gesture = self._session.gesture
            self._session, preview = editor_session.finish_drag(self._session, dropped=True)
            if gesture is None or preview is None:
                return False
            return self.move(
                gesture.dragged_id, preview.target_id, preview.zone, viewport=self._gesture_viewport
            )
        finally:
            self._release_drag()

    def cancel_drag(self) -> None:
        try:
            self._session, _ = editor_session.finish_drag(self._session, dropped=False)
        finally:
            self._release_drag()

    def begin_resize(
        self,
        slot_id: str,
        axis: ResizeAxis,
        pointer_id: int,
        origin: Point,
        *,
        viewport: Viewport | None = None,
    ) -> EditorSession:
        slot = self.slot(slot_id)
        if slot.metadata.get("disableResize"):
            msg = f"Slot {slot_id} cannot be resized"
            raise InvalidTransitionError(msg)
        start_value = self._start_value(slot, axis, viewport or self.viewport)
        self._session = editor_session.start_resize(self._session, slot_id, axis, start_value)
        self._gesture_viewport = viewport
        self._resize_start = start_value
        try:
            self._resizer.begin(pointer_id, origin, axis, start_value)
        except Exception:
            self._session = IDLE_SESSION
            raise
        return self._session

    def resize_move(self, pointer: Point) -> int | None:
        return self._resizer.move(pointer)

    def end_resize(self, pointer: Point) -> int | None:
        if not self._resizer.active:
            msg = "No resize in progress"
            raise InvalidTransitionError(msg)
        try:
            return self._resizer.end(pointer)
        finally:
            if self._session.state is editor_session.SessionState.RESIZING:
                self._session, _ = editor_session.finish_resize(self._session, committed=False)

    def cancel_resize(self) -> None:
        self._resizer.cancel()
        if self._session.state is editor_session.SessionState.RESIZING:
            self._session, _ = editor_session.finish_resize(self._session, committed=False)

    def move(
        self,
        dragged_id: str,
        target_id: str,
        zone: DropZone,
        *,
        viewport: Viewport | None = None,
    ) -> bool:
        updated = tree_mutator.move_slot(
            self.slots, dragged_id, target_id, zone, viewport or self.viewport
        )
        return self._apply_structural(updated)

    def resize(
        self,
        slot_id: str,
        axis: ResizeAxis,
        value: float,
        *,
        viewport: Viewport | None = None,
    ) -> Slot:
        updated = tree_mutator.resize_slot(
            self.slots,
            slot_id,
            axis,
            value,
            viewport or self.viewport,
            min_height=self._resize_config.min_height_px,
            view_context=self.view_context,
        )
        self._apply_structural(updated)
        return self.slot(slot_id)

    def add_slot(
        self,
        slot_type: str,
        *,
        parent_id: str | None = None,
        content: str = "",
        view_mode: list[str] | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> Slot:
        updated, new_id = tree_mutator.add_slot(
            self.slots,
            slot_type,
            parent_id=parent_id,
            content=content,
            page_type=self.page_type,
            view_mode=view_mode,
            metadata=metadata,
        )
        self._apply_structural(updated)
        return self.slot(new_id)

    def delete_slot(self, slot_id: str, *, confirm: bool = False) -> list[str]:
        self.slot(slot_id)
        descendants = tree_mutator.collect_descendants(self.slots, slot_id)
        if descendants and not confirm:
            raise ConfirmationRequiredError(slot_id, descendants)
        updated = tree_mutator.delete_slot(self.slots, slot_id)
        self._apply_structural(updated)
        return [slot_id, *descendants]

    def edit_content(self, slot_id: str, content: str) -> Slot:
        updated = tree_mutator.update_slot_content(self.slots, slot_id, content)
        slot = updated[slot_id]
        self._apply_patch(updated, slot_id, {"content": slot.content, "metadata": slot.metadata})
        return slot

    def edit_styles(
        self,
        slot_id: str,
        *,
        class_name: str | None = None,
        styles: Mapping[str, Any] | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> Slot:
        updated = tree_mutator.update_slot_styles(
            self.slots, slot_id, class_name=class_name, styles=styles, metadata=metadata
        )
        slot = updated[slot_id]
        self._apply_patch(updated, slot_id, _style_patch(slot))
        return slot

    def resize_element(self, slot_id: str, dimension: str, value: float) -> Slot:
        updated = tree_mutator.resize_element(self.slots, slot_id, dimension, value)
        slot = updated[slot_id]
        self._apply_patch(updated, slot_id, _style_patch(slot))
        return slot

    def replace_document(self, document: LayoutDocument) -> None:
        problems = [
            str(problem)
            for problem in tree_mutator.validate_tree(document.slots, self.viewport)
            if problem.structural
        ]
        if problems:
            raise InvalidLayoutError(problems)
        normalized = tree_mutator.normalize_layout(document.slots, self.viewport)
        self._document = document.with_slots(normalized)
        self._saver.schedule_document(self._document)

    def render(
        self,
        mode: RenderMode = "display",
        *,
        viewport: Viewport | None = None,
        view_context: str | None = None,
        data: DataContext | None = None,
        selected_id: str | None = None,
    ) -> RenderNode:
        editing = mode == "edit"
        ctx = RenderContext(
            slots=self.slots,
            mode=mode,
            viewport=viewport or self.viewport,
            view_context=view_context if view_context is not None else self.view_context,
            data=data or DataContext(),
            selected_id=selected_id,
            drop_preview=self._session.preview if editing else None,
            resize_preview=self._resize_preview() if editing else None,
        )
        return self._dispatcher.render_page(ctx)

    def _apply_structural(self, updated: dict[str, Slot]) -> bool:
        if updated == dict(self.slots):
            return False
        self._document = self._document.with_slots(updated)
        self._saver.schedule_document(self._document)
        return True

    def _apply_patch(self, updated: dict[str, Slot], slot_id: str, patch: Mapping[str, Any]) -> None:
        self._document = self._document.with_slots(updated)
        self._saver.schedule_patch(slot_id, patch, self._document)

    def _start_value(self, slot: Slot, axis: ResizeAxis, viewport: Viewport) -> int:
        if axis == "horizontal":
            return normalize_col_span(slot.col_span, viewport, self.view_context)
        match = _PIXELS.match(str(slot.styles.get("height", "")))
        if match:
            return max(self._resize_config.min_height_px, round(float(match.group(1))))
        return self._resize_config.min_height_px

    def _resize_preview(self) -> ResizePreview | None:
        session = self._session
        if session.resize_slot_id is None or session.resize_axis is None or session.resize_value is None:
            return None
        return ResizePreview(session.resize_slot_id, session.resize_axis, session.resize_value)

    def _release_drag(self) -> None:
        pointer_id = self._drag_pointer
        if pointer_id is None:
            return
        self._drag_pointer = None
        try:
            self._platform.release_pointer(pointer_id)
        finally:
            self._platform.set_cursor(None)
            self._platform.set_text_selection(True)

    def _on_resize_preview(self, axis: ResizeAxis, value: int) -> None:
        if self._session.state is editor_session.SessionState.RESIZING:
            self._session = editor_session.update_resize(self._session, value)

    def _on_resize_commit(self, axis: ResizeAxis, value: int) -> None:
        slot_id = self._session.resize_slot_id
        self._session, committed = editor_session.finish_resize(
            editor_session.update_resize(self._session, value), committed=True
        )
        if slot_id is None or committed is None:
            return
        if committed == self._resize_start:
            logger.debug("Resize of %s ended at its start value", slot_id)
            return
        logger.debug("Committing %s resize of %s to %s", axis, slot_id, committed)
        self.resize(slot_id, axis, committed, viewport=self._gesture_viewport)


def _style_patch(slot: Slot) -> dict[str, Any]:
    return {
        "styles": dict(slot.styles),
        "className": slot.class_name,
        "parentClassName": slot.parent_class_name,
        "metadata": dict(slot.metadata),
    }
