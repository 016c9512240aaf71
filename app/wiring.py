from __future__ import annotations

from collections.abc import Callable

from adapters.filesystem.layout_repository import FileSystemLayoutRepository
from adapters.http.layout_repository import HttpLayoutRepository
from adapters.invalidation.in_memory import InMemoryInvalidationBus
from adapters.platform.headless import HeadlessPointerPlatform
from adapters.s3.layout_repository import S3LayoutRepository
from app.config import AppSettings, EditorSettings
from domain.ports.platform import PointerPlatform
from domain.ports.repositories import LayoutRepository
from domain.ports.sync import Scheduler
from domain.services.drag_classifier import ClassifierConfig
from domain.services.layout_workspace import LayoutWorkspace
from domain.services.render_dispatcher import RenderDispatcher
from domain.services.resize_controller import ResizeConfig


def build_layout_repository(settings: AppSettings) -> LayoutRepository:
    editor = settings.editor
    if editor.storage == "s3":
        if not editor.s3.bucket:
            msg = "editor.s3.bucket is required when storage is s3"
            raise ValueError(msg)
        return S3LayoutRepository.from_settings(editor.s3)
    if editor.storage == "http":
        if not editor.http.base_url:
            msg = "editor.http.base_url is required when storage is http"
            raise ValueError(msg)
        return HttpLayoutRepository.from_settings(editor.http)
    return FileSystemLayoutRepository(editor.data_dir)


def build_classifier_config(editor: EditorSettings) -> ClassifierConfig:
    return ClassifierConfig(direction_ratio=editor.direction_ratio)


def build_resize_config(editor: EditorSettings) -> ResizeConfig:
    return ResizeConfig(
        column_sensitivity_px=editor.column_sensitivity_px,
        height_divisor=editor.height_divisor,
        min_height_px=editor.min_height_px,
    )


def build_workspace(
    settings: AppSettings,
    scheduler: Scheduler,
    *,
    repository: LayoutRepository | None = None,
    broadcaster: InMemoryInvalidationBus | None = None,
    platform_factory: Callable[[], PointerPlatform] = HeadlessPointerPlatform,
    dispatcher: RenderDispatcher | None = None,
) -> LayoutWorkspace:
    editor = settings.editor
    return LayoutWorkspace(
        repository or build_layout_repository(settings),
        scheduler,
        platform_factory,
        broadcaster=broadcaster,
        dispatcher=dispatcher,
        save_delay=editor.save_delay_seconds,
        classifier_config=build_classifier_config(editor),
        resize_config=build_resize_config(editor),
        default_viewport=editor.default_viewport,  # type: ignore[arg-type]
        seed_missing=editor.seed_missing_layouts,
    )
