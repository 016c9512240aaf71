from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from domain.models import LayoutDocument, LayoutKey


class LayoutRepository(Protocol):
    def load(self, key: LayoutKey) -> LayoutDocument: ...

    def save(self, key: LayoutKey, document: LayoutDocument) -> None: ...

    def patch_slot(self, key: LayoutKey, slot_id: str, patch: Mapping[str, Any]) -> None: ...

    def list_page_types(self, store_id: str) -> Sequence[str]: ...
