from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from domain.models import InvalidationSignal


class ScheduledCall(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall: ...


class InvalidationBroadcaster(Protocol):
    def publish(self, signal: InvalidationSignal) -> None: ...
