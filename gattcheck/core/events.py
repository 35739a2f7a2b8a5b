"""Outbound session events and the observer interface hosts implement."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

LOGGER = logging.getLogger(__name__)


class EventKind(Enum):
    GATT_CONNECTED = "GATT_CONNECTED"
    GATT_DISCONNECTED = "GATT_DISCONNECTED"
    GATT_SERVICES_DISCOVERED = "GATT_SERVICES_DISCOVERED"
    DATA_AVAILABLE = "DATA_AVAILABLE"


@dataclass(frozen=True)
class SessionEvent:
    kind: EventKind
    data: str | None = None
    same: bool = False


class SessionObserver(Protocol):
    def on_gatt_connected(self) -> None:
        """Peripheral connection established."""

    def on_gatt_disconnected(self) -> None:
        """Peripheral connection lost or closed."""

    def on_services_discovered(self) -> None:
        """Service discovery completed successfully."""

    def on_data_available(self, data: str, same: bool) -> None:
        """Decoded notification or batch verdict available.

        ``same`` is only meaningful for batch flushes (``data == ""``).
        """


def dispatch(observer: SessionObserver | None, event: SessionEvent) -> None:
    if observer is None:
        return
    try:
        if event.kind is EventKind.GATT_CONNECTED:
            observer.on_gatt_connected()
        elif event.kind is EventKind.GATT_DISCONNECTED:
            observer.on_gatt_disconnected()
        elif event.kind is EventKind.GATT_SERVICES_DISCOVERED:
            observer.on_services_discovered()
        else:
            observer.on_data_available(event.data or "", event.same)
    except Exception:
        LOGGER.exception("Observer failed handling %s", event.kind.value)


class EventCollector:
    """Observer that records every event it receives.

    Safe to read from a thread other than the one delivering events.
    """

    def __init__(self) -> None:
        self._events: list[SessionEvent] = []
        self._cond = threading.Condition()

    @property
    def events(self) -> list[SessionEvent]:
        with self._cond:
            return list(self._events)

    def kinds(self) -> list[EventKind]:
        return [event.kind for event in self.events]

    def wait_for(self, kind: EventKind, timeout_s: float | None = None) -> SessionEvent | None:
        with self._cond:
            found = self._cond.wait_for(
                lambda: any(e.kind is kind for e in self._events),
                timeout=timeout_s,
            )
            if not found:
                return None
            return next(e for e in self._events if e.kind is kind)

    def _record(self, event: SessionEvent) -> None:
        with self._cond:
            self._events.append(event)
            self._cond.notify_all()

    def on_gatt_connected(self) -> None:
        self._record(SessionEvent(EventKind.GATT_CONNECTED))

    def on_gatt_disconnected(self) -> None:
        self._record(SessionEvent(EventKind.GATT_DISCONNECTED))

    def on_services_discovered(self) -> None:
        self._record(SessionEvent(EventKind.GATT_SERVICES_DISCOVERED))

    def on_data_available(self, data: str, same: bool) -> None:
        self._record(SessionEvent(EventKind.DATA_AVAILABLE, data=data, same=same))
