from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, ORJSONResponse
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from adapters.html.serializer import to_html
from adapters.invalidation.in_memory import InMemoryInvalidationBus
from adapters.scheduling.asyncio_scheduler import AsyncioScheduler, ThreadingScheduler
from app.config import AppSettings
from app.wiring import build_workspace
from domain.models import (
    VIEWPORTS,
    ConfirmationRequiredError,
    DropZone,
    ElementDimension,
    InvalidLayoutError,
    InvalidParentError,
    InvalidTransitionError,
    LayoutDocument,
    LayoutKey,
    Point,
    ProtectedSlotError,
    Rect,
    RenderMode,
    ResizeAxis,
    UnknownSlotError,
    Viewport,
)
from domain.ports.repositories import LayoutRepository
from domain.ports.sync import ScheduledCall, Scheduler
from domain.services.drag_classifier import (
    DragGesture,
    DropPreview,
    build_drop_preview,
    classify_drop_zone,
)
from domain.services.layout_editor import LayoutEditor
from domain.services.layout_workspace import LayoutWorkspace
from domain.services.render_dispatcher import DataContext

TEMPLATES_DIR = Path(__file__).parent / "web" / "templates"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
logger = logging.getLogger(__name__)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PointPayload(BaseModel):
    x: float
    y: float

    def to_point(self) -> Point:
        return Point(self.x, self.y)


class RectPayload(BaseModel):
    x: float = 0.0
    y: float = 0.0
    width: float
    height: float

    def to_rect(self) -> Rect:
        return Rect(self.x, self.y, self.width, self.height)


class AddSlotRequest(_CamelModel):
    type: str
    parent_id: str | None = Field(default=None, alias="parentId")
    content: str = ""
    view_mode: list[str] | None = Field(default=None, alias="viewMode")
    metadata: dict[str, Any] | None = None


class SlotPatchRequest(_CamelModel):
    content: str | None = None
    class_name: str | None = Field(default=None, alias="className")
    styles: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None
    width: float | None = None
    height: float | None = None


class MoveRequest(_CamelModel):
    dragged_id: str = Field(alias="draggedId")
    target_id: str = Field(alias="targetId")
    zone: DropZone
    viewport: Viewport | None = None


class ResizeRequest(_CamelModel):
    slot_id: str = Field(alias="slotId")
    axis: ResizeAxis
    value: float
    viewport: Viewport | None = None


class ClassifyRequest(_CamelModel):
    dragged_id: str = Field(alias="draggedId")
    target_id: str = Field(alias="targetId")
    pointer: PointPayload
    rect: RectPayload
    start: PointPayload | None = None
    viewport: Viewport | None = None


class DragStartRequest(_CamelModel):
    slot_id: str = Field(alias="slotId")
    pointer: PointPayload | None = None
    pointer_id: int = Field(default=0, alias="pointerId")
    from_resize_handle: bool = Field(default=False, alias="fromResizeHandle")
    viewport: Viewport | None = None


class DragOverRequest(_CamelModel):
    target_id: str = Field(alias="targetId")
    pointer: PointPayload
    rect: RectPayload


class ResizeStartRequest(_CamelModel):
    slot_id: str = Field(alias="slotId")
    axis: ResizeAxis
    origin: PointPayload
    pointer_id: int = Field(default=0, alias="pointerId")
    viewport: Viewport | None = None


class PointerRequest(BaseModel):
    pointer: PointPayload


class DeferredScheduler(Scheduler):
    """Timer source that follows the app lifecycle: loop timers while serving, plain threads otherwise."""

    def __init__(self) -> None:
        self.delegate: Scheduler = ThreadingScheduler()

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        return self.delegate.call_later(delay, callback)


@dataclass(frozen=True)
class EditorContext:
    settings: AppSettings
    workspace: LayoutWorkspace
    bus: InMemoryInvalidationBus
    lock: threading.RLock


def create_app(
    settings: AppSettings,
    *,
    repository: LayoutRepository | None = None,
    scheduler: Scheduler | None = None,
) -> FastAPI:
    deferred = DeferredScheduler() if scheduler is None else None
    bus = InMemoryInvalidationBus()
    workspace = build_workspace(
        settings,
        scheduler or cast(Scheduler, deferred),
        repository=repository,
        broadcaster=bus,
    )
    context = EditorContext(settings=settings, workspace=workspace, bus=bus, lock=threading.RLock())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> Any:
        if deferred is not None:
            deferred.delegate = AsyncioScheduler(asyncio.get_running_loop())
        yield
        saved = await asyncio.to_thread(workspace.flush_all)
        if not saved:
            logger.warning("Some layouts could not be saved on shutdown")
        if deferred is not None:
            deferred.delegate = ThreadingScheduler()

    app = FastAPI(title=settings.editor.title, lifespan=lifespan)
    app.state.context = context

    @app.get("/api/layouts/{store_id}/{page_type}")
    def get_layout(
        store_id: str,
        page_type: str,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        with domain_errors(), context.lock:
            editor = open_editor(context, store_id, page_type)
            return ORJSONResponse(layout_payload(context, editor))

    @app.put("/api/layouts/{store_id}/{page_type}")
    async def replace_layout(
        store_id: str,
        page_type: str,
        request: Request,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        try:
            document = LayoutDocument.model_validate_json(await request.body())
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail=exc.errors(include_url=False, include_context=False)) from exc
        with domain_errors(), context.lock:
            editor = open_editor(context, store_id, page_type)
            editor.replace_document(document)
            return ORJSONResponse(layout_payload(context, editor))

    @app.post("/api/layouts/{store_id}/{page_type}/slots", status_code=201)
    def add_slot(
        store_id: str,
        page_type: str,
        payload: AddSlotRequest,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        with domain_errors(), context.lock:
            editor = open_editor(context, store_id, page_type)
            slot = editor.add_slot(
                payload.type,
                parent_id=payload.parent_id,
                content=payload.content,
                view_mode=payload.view_mode,
                metadata=payload.metadata,
            )
            return ORJSONResponse({"slot": slot.to_dict(), **status_payload(context, editor)}, status_code=201)

    @app.patch("/api/layouts/{store_id}/{page_type}/slots/{slot_id}")
    def patch_slot(
        store_id: str,
        page_type: str,
        slot_id: str,
        payload: SlotPatchRequest,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        with domain_errors(), context.lock:
            editor = open_editor(context, store_id, page_type)
            slot = editor.slot(slot_id)
            if payload.content is not None:
                slot = editor.edit_content(slot_id, payload.content)
            if payload.class_name is not None or payload.styles or payload.metadata:
                slot = editor.edit_styles(
                    slot_id,
                    class_name=payload.class_name,
                    styles=payload.styles,
                    metadata=payload.metadata,
                )
            dimensions: list[tuple[ElementDimension, float | None]] = [
                ("width", payload.width),
                ("height", payload.height),
            ]
            for dimension, value in dimensions:
                if value is not None:
                    slot = editor.resize_element(slot_id, dimension, value)
            return ORJSONResponse({"slot": slot.to_dict(), **status_payload(context, editor)})

    @app.delete("/api/layouts/{store_id}/{page_type}/slots/{slot_id}")
    def delete_slot(
        store_id: str,
        page_type: str,
        slot_id: str,
        confirm: bool = Query(default=False),
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        with domain_errors(), context.lock:
            editor = open_editor(context, store_id, page_type)
            removed = editor.delete_slot(slot_id, confirm=confirm)
            return ORJSONResponse({"removed": removed, **status_payload(context, editor)})

    @app.post("/api/layouts/{store_id}/{page_type}/move")
    def move_slot(
        store_id: str,
        page_type: str,
        payload: MoveRequest,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        with domain_errors(), context.lock:
            editor = open_editor(context, store_id, page_type)
            moved = editor.move(
                payload.dragged_id, payload.target_id, payload.zone, viewport=payload.viewport
            )
            return ORJSONResponse({"moved": moved, **layout_payload(context, editor)})

    @app.post("/api/layouts/{store_id}/{page_type}/resize")
    def resize_slot(
        store_id: str,
        page_type: str,
        payload: ResizeRequest,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        with domain_errors(), context.lock:
            editor = open_editor(context, store_id, page_type)
            slot = editor.resize(payload.slot_id, payload.axis, payload.value, viewport=payload.viewport)
            return ORJSONResponse({"slot": slot.to_dict(), **status_payload(context, editor)})

    @app.post("/api/layouts/{store_id}/{page_type}/classify")
    def classify(
        store_id: str,
        page_type: str,
        payload: ClassifyRequest,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        with domain_errors(), context.lock:
            editor = open_editor(context, store_id, page_type)
            dragged = editor.slot(payload.dragged_id)
            gesture = DragGesture(
                dragged_id=dragged.id,
                parent_id=dragged.parent_id,
                start=payload.start.to_point() if payload.start else None,
            )
            zone = classify_drop_zone(
                editor.slots,
                gesture,
                payload.target_id,
                payload.pointer.to_point(),
                payload.rect.to_rect(),
                context.workspace.classifier_config,
            )
            preview = build_drop_preview(
                editor.slots, gesture, payload.target_id, zone, payload.viewport or editor.viewport
            )
            return ORJSONResponse({"zone": zone, "preview": preview_payload(preview)})

    @app.post("/api/layouts/{store_id}/{page_type}/drag/start")
    def drag_start(
        store_id: str,
        page_type: str,
        payload: DragStartRequest,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        with domain_errors(), context.lock:
            editor = open_editor(context, store_id, page_type)
            editor.begin_drag(
                payload.slot_id,
                payload.pointer.to_point() if payload.pointer else None,
                pointer_id=payload.pointer_id,
                from_resize_handle=payload.from_resize_handle,
                viewport=payload.viewport,
            )
            return ORJSONResponse(session_payload(editor))

    @app.post("/api/layouts/{store_id}/{page_type}/drag/over")
    def drag_over(
        store_id: str,
        page_type: str,
        payload: DragOverRequest,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        with domain_errors(), context.lock:
            editor = open_editor(context, store_id, page_type)
            preview = editor.drag_over(
                payload.target_id, payload.pointer.to_point(), payload.rect.to_rect()
            )
            return ORJSONResponse({"preview": preview_payload(preview), **session_payload(editor)})

    @app.post("/api/layouts/{store_id}/{page_type}/drag/drop")
    def drag_drop(
        store_id: str,
        page_type: str,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        with domain_errors(), context.lock:
            editor = open_editor(context, store_id, page_type)
            moved = editor.drop()
            return ORJSONResponse({"moved": moved, **layout_payload(context, editor)})

    @app.post("/api/layouts/{store_id}/{page_type}/drag/cancel")
    def drag_cancel(
        store_id: str,
        page_type: str,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        with domain_errors(), context.lock:
            editor = open_editor(context, store_id, page_type)
            editor.cancel_drag()
            return ORJSONResponse(session_payload(editor))

    @app.post("/api/layouts/{store_id}/{page_type}/resize/start")
    def resize_start(
        store_id: str,
        page_type: str,
        payload: ResizeStartRequest,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        with domain_errors(), context.lock:
            editor = open_editor(context, store_id, page_type)
            editor.begin_resize(
                payload.slot_id,
                payload.axis,
                payload.pointer_id,
                payload.origin.to_point(),
                viewport=payload.viewport,
            )
            return ORJSONResponse(session_payload(editor))

    @app.post("/api/layouts/{store_id}/{page_type}/resize/move")
    def resize_move(
        store_id: str,
        page_type: str,
        payload: PointerRequest,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        with domain_errors(), context.lock:
            editor = open_editor(context, store_id, page_type)
            value = editor.resize_move(payload.pointer.to_point())
            return ORJSONResponse({"value": value, **session_payload(editor)})

    @app.post("/api/layouts/{store_id}/{page_type}/resize/end")
    def resize_end(
        store_id: str,
        page_type: str,
        payload: PointerRequest,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        with domain_errors(), context.lock:
            editor = open_editor(context, store_id, page_type)
            value = editor.end_resize(payload.pointer.to_point())
            return ORJSONResponse({"value": value, **layout_payload(context, editor)})

    @app.post("/api/layouts/{store_id}/{page_type}/resize/cancel")
    def resize_cancel(
        store_id: str,
        page_type: str,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        with domain_errors(), context.lock:
            editor = open_editor(context, store_id, page_type)
            editor.cancel_resize()
            return ORJSONResponse(session_payload(editor))

    @app.get("/api/layouts/{store_id}/{page_type}/status")
    def save_status(
        store_id: str,
        page_type: str,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        with domain_errors(), context.lock:
            editor = open_editor(context, store_id, page_type)
            return ORJSONResponse(status_payload(context, editor))

    @app.post("/api/layouts/{store_id}/{page_type}/flush")
    def flush_layout(
        store_id: str,
        page_type: str,
        context: EditorContext = Depends(get_context),
    ) -> ORJSONResponse:
        with domain_errors():
            with context.lock:
                editor = open_editor(context, store_id, page_type)
            saved = editor.saver.flush()
            return ORJSONResponse({"saved": saved, **status_payload(context, editor)})

    @app.get("/layouts/{store_id}/{page_type}", response_class=HTMLResponse)
    def layout_page(
        request: Request,
        store_id: str,
        page_type: str,
        mode: RenderMode = Query(default="display"),
        viewport: Viewport | None = Query(default=None),
        view: str | None = Query(default=None),
        context: EditorContext = Depends(get_context),
    ) -> HTMLResponse:
        with domain_errors(), context.lock:
            editor = open_editor(context, store_id, page_type)
            active_viewport = viewport or editor.viewport
            variables = editor.document.page_meta().get("variables")
            tree = editor.render(
                mode,
                viewport=active_viewport,
                view_context=view,
                data=DataContext(variables=variables if isinstance(variables, dict) else {}),
            )
            width = context.settings.editor.viewport_widths.get(active_viewport)
            return templates.TemplateResponse(
                request,
                "layout.html",
                {
                    "title": context.settings.editor.title,
                    "store_id": store_id,
                    "page_type": page_type,
                    "mode": mode,
                    "viewport": active_viewport,
                    "viewports": VIEWPORTS,
                    "view": view,
                    "frame_width": f"{width}px" if width else "100%",
                    "layout_html": to_html(tree),
                    "save_status": editor.save_status.value,
                    "revision": editor.saver.revision,
                },
            )

    return app


def get_context(request: Request) -> EditorContext:
    return cast(EditorContext, request.app.state.context)


def open_editor(context: EditorContext, store_id: str, page_type: str) -> LayoutEditor:
    return context.workspace.editor(LayoutKey(store_id, page_type))


def session_payload(editor: LayoutEditor) -> dict[str, Any]:
    session = editor.session
    return {
        "session": {
            "state": session.state.value,
            "dropTargetId": session.drop_target_id,
            "dropZone": session.drop_zone,
            "resizeSlotId": session.resize_slot_id,
            "resizeAxis": session.resize_axis,
            "resizeValue": session.resize_value,
        }
    }


def preview_payload(preview: DropPreview | None) -> dict[str, Any] | None:
    if preview is None:
        return None
    position = preview.grid_position
    return {
        "targetId": preview.target_id,
        "zone": preview.zone,
        "operation": preview.operation,
        "position": {"row": position.row, "col": position.col} if position else None,
    }


def status_payload(context: EditorContext, editor: LayoutEditor) -> dict[str, Any]:
    saver = editor.saver
    return {
        "saveStatus": saver.status.value,
        "lastError": saver.last_error,
        "pending": saver.pending,
        "revision": context.bus.revision(editor.key),
    }


def layout_payload(context: EditorContext, editor: LayoutEditor) -> dict[str, Any]:
    return {
        "storeId": editor.key.store_id,
        "pageType": editor.key.page_type,
        "document": editor.document.to_dict(),
        **status_payload(context, editor),
    }


@contextmanager
def domain_errors() -> Iterator[None]:
    try:
        yield
    except (UnknownSlotError, FileNotFoundError) as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ConfirmationRequiredError as exc:
        raise HTTPException(
            status_code=409,
            detail={"message": str(exc), "descendants": exc.descendants},
        ) from exc
    except (ProtectedSlotError, InvalidTransitionError) as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except InvalidLayoutError as exc:
        raise HTTPException(status_code=422, detail={"problems": exc.problems}) from exc
    except (InvalidParentError, ValueError) as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

