from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from domain.models import InvalidationSignal, LayoutDocument, LayoutKey, Slot, SlotPosition


def make_slot(
    slot_id: str,
    *,
    parent: str | None = None,
    slot_type: str = "text",
    row: int | None = 1,
    col: int | None = 1,
    col_span: Any = 12,
    custom: bool = True,
    **extra: Any,
) -> Slot:
    position = SlotPosition(row=row, col=col) if row is not None and col is not None else None
    return Slot(
        id=slot_id,
        parent_id=parent,
        type=slot_type,
        position=position,
        col_span=col_span,
        is_custom=custom,
        **extra,
    )


def slot_map(*slots: Slot) -> dict[str, Slot]:
    return {slot.id: slot for slot in slots}


def sample_page() -> dict[str, Slot]:
    return slot_map(
        make_slot("root", slot_type="container", custom=False),
        make_slot("header", parent="root", slot_type="container", row=1, col=1),
        make_slot("title", parent="header", content="Hello {{ user.name }}", col_span=8),
        make_slot("cta", parent="header", slot_type="button", col=9, col_span=4, content="Buy"),
        make_slot("body", parent="root", slot_type="container", row=2, col=1),
        make_slot("intro", parent="body", content="<b>Intro</b>"),
    )


@dataclass
class _ManualCall:
    delay: float
    callback: Callable[[], None]
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class ManualScheduler:
    calls: list[_ManualCall] = field(default_factory=list)

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualCall:
        call = _ManualCall(delay, callback)
        self.calls.append(call)
        return call

    @property
    def live(self) -> list[_ManualCall]:
        return [call for call in self.calls if not call.cancelled]

    def run_pending(self) -> int:
        pending = self.live
        for call in pending:
            call.cancelled = True
            call.callback()
        return len(pending)


@dataclass
class RecordingRepository:
    documents: dict[LayoutKey, LayoutDocument] = field(default_factory=dict)
    saves: list[tuple[LayoutKey, LayoutDocument]] = field(default_factory=list)
    patches: list[tuple[LayoutKey, str, dict[str, Any]]] = field(default_factory=list)
    fail_with: Exception | None = None

    def load(self, key: LayoutKey) -> LayoutDocument:
        if key not in self.documents:
            raise FileNotFoundError(key.as_path())
        return self.documents[key]

    def save(self, key: LayoutKey, document: LayoutDocument) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.documents[key] = document
        self.saves.append((key, document))

    def patch_slot(self, key: LayoutKey, slot_id: str, patch: Mapping[str, Any]) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.patches.append((key, slot_id, dict(patch)))

    def list_page_types(self, store_id: str) -> Sequence[str]:
        return sorted(key.page_type for key in self.documents if key.store_id == store_id)


@dataclass
class RecordingBroadcaster:
    signals: list[InvalidationSignal] = field(default_factory=list)

    def publish(self, signal: InvalidationSignal) -> None:
        self.signals.append(signal)
