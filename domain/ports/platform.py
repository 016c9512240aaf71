from __future__ import annotations

from typing import Protocol


class PointerPlatform(Protocol):
    def capture_pointer(self, pointer_id: int) -> None: ...

    def release_pointer(self, pointer_id: int) -> None: ...

    def set_cursor(self, cursor: str | None) -> None: ...

    def set_text_selection(self, enabled: bool) -> None: ...
