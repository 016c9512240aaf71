from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from enum import Enum
from typing import Any

from domain.models import InvalidationSignal, LayoutDocument, LayoutKey
from domain.ports.repositories import LayoutRepository
from domain.ports.sync import InvalidationBroadcaster, ScheduledCall, Scheduler

logger = logging.getLogger(__name__)

DEFAULT_SAVE_DELAY = 0.5


class SaveStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


class DebouncedSaver:
    def __init__(
        self,
        key: LayoutKey,
        repository: LayoutRepository,
        scheduler: Scheduler,
        broadcaster: InvalidationBroadcaster | None = None,
        delay: float = DEFAULT_SAVE_DELAY,
    ) -> None:
        self._key = key
        self._repository = repository
        self._scheduler = scheduler
        self._broadcaster = broadcaster
        self._delay = delay
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._document: LayoutDocument | None = None
        self._patches: dict[str, dict[str, Any]] = {}
        self._timer: ScheduledCall | None = None
        self._status = SaveStatus.IDLE
        self._last_error: str | None = None
        self._revision = 0

    @property
    def key(self) -> LayoutKey:
        return self._key

    @property
    def status(self) -> SaveStatus:
        return self._status

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._has_work()

    def schedule_document(self, document: LayoutDocument) -> None:
        with self._lock:
            self._document = document
            self._patches.clear()
            self._restart_timer()

    def schedule_patch(
        self,
        slot_id: str,
        patch: Mapping[str, Any],
        document: LayoutDocument,
    ) -> None:
        with self._lock:
            if self._document is not None:
                # A structural save is already queued; it carries this edit too.
                self._document = document
            else:
                merged = self._patches.setdefault(slot_id, {})
                _merge_patch(merged, patch)
            self._restart_timer()

    def cancel(self) -> None:
        with self._lock:
            self._cancel_timer()
            self._document = None
            self._patches.clear()
            if self._status is SaveStatus.PENDING:
                self._status = SaveStatus.IDLE

    def flush(self) -> bool:
        with self._write_lock:
            with self._lock:
                self._cancel_timer()
                document = self._document
                patches = self._patches
                self._document = None
                self._patches = {}
                if document is None and not patches:
                    return self._status is not SaveStatus.ERROR
                self._status = SaveStatus.SAVING

            try:
                if document is not None:
                    self._repository.save(self._key, document)
                for slot_id, patch in patches.items():
                    self._repository.patch_slot(self._key, slot_id, patch)
            except Exception as exc:
                logger.exception("Failed to save layout %s", self._key.as_path())
                with self._lock:
                    self._requeue(document, patches)
                    self._status = SaveStatus.ERROR
                    self._last_error = str(exc) or exc.__class__.__name__
                return False

            with self._lock:
                self._revision += 1
                revision = self._revision
                self._last_error = None
                self._status = SaveStatus.PENDING if self._has_work() else SaveStatus.SAVED

        if self._broadcaster is not None:
            self._broadcaster.publish(
                InvalidationSignal(self._key.store_id, self._key.page_type, revision)
            )
        return True

    def _on_timer(self) -> None:
        self.flush()

    def _restart_timer(self) -> None:
        self._cancel_timer()
        self._status = SaveStatus.PENDING
        self._timer = self._scheduler.call_later(self._delay, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _has_work(self) -> bool:
        return self._document is not None or bool(self._patches)

    def _requeue(self, document: LayoutDocument | None, patches: dict[str, dict[str, Any]]) -> None:
        # Newer work queued during the failed write wins; older work is kept for the next save.
        if self._document is None and document is not None:
            self._document = document
            self._patches.clear()
            return
        if self._document is not None:
            return
        for slot_id, patch in patches.items():
            merged = dict(patch)
            _merge_patch(merged, self._patches.get(slot_id, {}))
            self._patches[slot_id] = merged


def _merge_patch(target: dict[str, Any], patch: Mapping[str, Any]) -> None:
    for name, value in patch.items():
        current = target.get(name)
        if isinstance(current, dict) and isinstance(value, Mapping):
            target[name] = {**current, **value}
        else:
            target[name] = value
