from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from filelock import FileLock

from adapters.filesystem.json_utils import load_json, write_json_atomic
from domain.models import LayoutDocument, LayoutKey, UnknownSlotError
from domain.ports.repositories import LayoutRepository

_SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class FileSystemLayoutRepository(LayoutRepository):
    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, key: LayoutKey) -> Path:
        return self._root / _segment(key.store_id) / f"{_segment(key.page_type)}.json"

    def load(self, key: LayoutKey) -> LayoutDocument:
        path = self.path_for(key)
        if not path.exists():
            raise FileNotFoundError(str(path))
        return LayoutDocument.model_validate(load_json(path))

    def save(self, key: LayoutKey, document: LayoutDocument) -> None:
        path = self.path_for(key)
        with FileLock(str(self._lock_path(path))):
            write_json_atomic(path, document.to_dict())

    def patch_slot(self, key: LayoutKey, slot_id: str, patch: Mapping[str, Any]) -> None:
        path = self.path_for(key)
        with FileLock(str(self._lock_path(path))):
            if not path.exists():
                raise FileNotFoundError(str(path))
            payload = load_json(path)
            slots = payload.get("slots")
            if not isinstance(slots, dict) or not isinstance(slots.get(slot_id), dict):
                msg = f"Slot {slot_id} not found in {key.as_path()}"
                raise UnknownSlotError(msg)
            slots[slot_id] = {**slots[slot_id], **dict(patch)}
            write_json_atomic(path, LayoutDocument.model_validate(payload).to_dict())

    def list_page_types(self, store_id: str) -> Sequence[str]:
        directory = self._root / _segment(store_id)
        if not directory.is_dir():
            return []
        return sorted(path.stem for path in directory.glob("*.json"))

    def _lock_path(self, path: Path) -> Path:
        return path.with_suffix(f"{path.suffix}.lock")


def _segment(value: str) -> str:
    if not _SAFE_SEGMENT.match(value):
        msg = f"Invalid layout key segment: {value!r}"
        raise ValueError(msg)
    return value
