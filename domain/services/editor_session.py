from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from domain.models import DropZone, InvalidTransitionError, ResizeAxis
from domain.services.drag_classifier import DragGesture, DropPreview


class SessionState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    RESIZING = "resizing"


@dataclass(frozen=True)
class EditorSession:
    state: SessionState = SessionState.IDLE
    gesture: DragGesture | None = None
    drop_target_id: str | None = None
    drop_zone: DropZone = "none"
    preview: DropPreview | None = None
    resize_slot_id: str | None = None
    resize_axis: ResizeAxis | None = None
    resize_value: int | None = None

    @property
    def idle(self) -> bool:
        return self.state is SessionState.IDLE


IDLE_SESSION = EditorSession()


def start_drag(
    session: EditorSession,
    gesture: DragGesture,
    *,
    from_resize_handle: bool = False,
) -> EditorSession:
    if from_resize_handle:
        msg = "Gestures starting on a resize handle resize instead of dragging"
        raise InvalidTransitionError(msg)
    _require_idle(session, "drag")
    return EditorSession(state=SessionState.DRAGGING, gesture=gesture)


def update_drop_preview(
    session: EditorSession,
    target_id: str | None,
    zone: DropZone,
    preview: DropPreview | None,
) -> EditorSession:
    _require_state(session, SessionState.DRAGGING)
    if zone == "none":
        return replace(session, drop_target_id=None, drop_zone="none", preview=None)
    return replace(session, drop_target_id=target_id, drop_zone=zone, preview=preview)


def finish_drag(session: EditorSession, *, dropped: bool) -> tuple[EditorSession, DropPreview | None]:
    _require_state(session, SessionState.DRAGGING)
    if not dropped or session.drop_zone == "none":
        return IDLE_SESSION, None
    return IDLE_SESSION, session.preview


def start_resize(
    session: EditorSession,
    slot_id: str,
    axis: ResizeAxis,
    start_value: int,
) -> EditorSession:
    _require_idle(session, "resize")
    return EditorSession(
        state=SessionState.RESIZING,
        resize_slot_id=slot_id,
        resize_axis=axis,
        resize_value=start_value,
    )


def update_resize(session: EditorSession, value: int) -> EditorSession:
    _require_state(session, SessionState.RESIZING)
    return replace(session, resize_value=value)


def finish_resize(session: EditorSession, *, committed: bool) -> tuple[EditorSession, int | None]:
    _require_state(session, SessionState.RESIZING)
    return IDLE_SESSION, session.resize_value if committed else None


def _require_idle(session: EditorSession, gesture: str) -> None:
    if session.state is not SessionState.IDLE:
        msg = f"Cannot start {gesture} while {session.state.value}"
        raise InvalidTransitionError(msg)


def _require_state(session: EditorSession, expected: SessionState) -> None:
    if session.state is not expected:
        msg = f"Expected {expected.value} session, got {session.state.value}"
        raise InvalidTransitionError(msg)
