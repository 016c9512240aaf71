from __future__ import annotations

from domain.ports.platform import PointerPlatform


class HeadlessPointerPlatform(PointerPlatform):
    """Pointer platform for server-driven sessions; records the side effects instead of applying them."""

    def __init__(self) -> None:
        self.captured: set[int] = set()
        self.cursor: str | None = None
        self.text_selection = True
        self.calls: list[tuple[str, object]] = []

    def capture_pointer(self, pointer_id: int) -> None:
        self.captured.add(pointer_id)
        self.calls.append(("capture", pointer_id))

    def release_pointer(self, pointer_id: int) -> None:
        self.captured.discard(pointer_id)
        self.calls.append(("release", pointer_id))

    def set_cursor(self, cursor: str | None) -> None:
        self.cursor = cursor
        self.calls.append(("cursor", cursor))

    def set_text_selection(self, enabled: bool) -> None:
        self.text_selection = enabled
        self.calls.append(("selection", enabled))
