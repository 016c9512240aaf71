from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from domain.models import LayoutKey, Viewport
from domain.ports.platform import PointerPlatform
from domain.ports.repositories import LayoutRepository
from domain.ports.sync import InvalidationBroadcaster, Scheduler
from domain.services.default_layouts import build_default_layout
from domain.services.drag_classifier import DEFAULT_CLASSIFIER_CONFIG, ClassifierConfig
from domain.services.layout_editor import LayoutEditor
from domain.services.persistence_sync import DEFAULT_SAVE_DELAY, DebouncedSaver
from domain.services.render_dispatcher import RenderDispatcher
from domain.services.resize_controller import DEFAULT_RESIZE_CONFIG, ResizeConfig
from domain.services.tree_mutator import validate_tree

logger = logging.getLogger(__name__)


class LayoutWorkspace:
    def __init__(
        self,
        repository: LayoutRepository,
        scheduler: Scheduler,
        platform_factory: Callable[[], PointerPlatform],
        *,
        broadcaster: InvalidationBroadcaster | None = None,
        dispatcher: RenderDispatcher | None = None,
        save_delay: float = DEFAULT_SAVE_DELAY,
        classifier_config: ClassifierConfig = DEFAULT_CLASSIFIER_CONFIG,
        resize_config: ResizeConfig = DEFAULT_RESIZE_CONFIG,
        default_viewport: Viewport = "desktop",
        seed_missing: bool = True,
    ) -> None:
        self._repository = repository
        self._scheduler = scheduler
        self._platform_factory = platform_factory
        self._broadcaster = broadcaster
        self._dispatcher = dispatcher or RenderDispatcher()
        self._save_delay = save_delay
        self._classifier_config = classifier_config
        self._resize_config = resize_config
        self._default_viewport: Viewport = default_viewport
        self._seed_missing = seed_missing
        self._editors: dict[LayoutKey, LayoutEditor] = {}
        self._lock = threading.Lock()

    @property
    def repository(self) -> LayoutRepository:
        return self._repository

    @property
    def dispatcher(self) -> RenderDispatcher:
        return self._dispatcher

    @property
    def classifier_config(self) -> ClassifierConfig:
        return self._classifier_config

    def keys(self) -> list[LayoutKey]:
        with self._lock:
            return list(self._editors)

    def editor(self, key: LayoutKey) -> LayoutEditor:
        with self._lock:
            editor = self._editors.get(key)
            if editor is None:
                editor = self._open(key)
                self._editors[key] = editor
            return editor

    def flush_all(self) -> bool:
        with self._lock:
            editors = list(self._editors.values())
        results = [editor.saver.flush() for editor in editors]
        return all(results)

    def discard(self, key: LayoutKey) -> None:
        with self._lock:
            editor = self._editors.pop(key, None)
        if editor is not None:
            editor.saver.cancel()

    def _open(self, key: LayoutKey) -> LayoutEditor:
        saver = DebouncedSaver(
            key, self._repository, self._scheduler, self._broadcaster, self._save_delay
        )
        try:
            document = self._repository.load(key)
        except FileNotFoundError:
            if not self._seed_missing:
                raise
            logger.info("Seeding default layout for %s", key.as_path())
            document = build_default_layout(key.page_type)
            saver.schedule_document(document)
        for problem in validate_tree(document.slots, self._default_viewport):
            logger.warning("Layout %s: %s", key.as_path(), problem)
        return LayoutEditor(
            key,
            document,
            saver,
            self._platform_factory(),
            dispatcher=self._dispatcher,
            classifier_config=self._classifier_config,
            resize_config=self._resize_config,
            viewport=self._default_viewport,
        )
