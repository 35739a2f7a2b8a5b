"""Transport interfaces."""

from __future__ import annotations

from typing import Protocol

from gattcheck.core.model import CharacteristicUpdate, DescriptorInfo, ServiceInfo

ENABLE_NOTIFICATION_VALUE = b"\x01\x00"


class GattHandle(Protocol):
    """One open GATT session. Requests return whether they were accepted;
    their results arrive through ``TransportCallbacks``."""

    def connect(self) -> bool:
        """Reconnect to the device this handle was opened for."""

    def disconnect(self) -> None:
        """Tear down the connection or cancel a pending one."""

    def close(self) -> None:
        """Release every resource held by the handle."""

    def discover_services(self) -> bool:
        """Start service discovery."""

    def read_characteristic(self, uuid: str) -> bool:
        """Start a characteristic read."""

    def set_notify(self, uuid: str, enabled: bool) -> bool:
        """Enable or disable local delivery of notifications for a characteristic."""

    def write_descriptor(self, descriptor: DescriptorInfo, value: bytes) -> bool:
        """Start a descriptor write."""

    def services(self) -> list[ServiceInfo]:
        """Snapshot of the discovered service catalog."""


class TransportCallbacks(Protocol):
    def on_connection_state_change(self, handle: GattHandle, connected: bool) -> None:
        ...

    def on_services_discovered(self, handle: GattHandle, success: bool) -> None:
        ...

    def on_characteristic_read(self, handle: GattHandle, update: CharacteristicUpdate, success: bool) -> None:
        ...

    def on_characteristic_changed(self, handle: GattHandle, update: CharacteristicUpdate) -> None:
        ...


class Adapter(Protocol):
    def is_available(self) -> bool:
        """Return True when the Bluetooth stack can be reached."""

    def has_adapter(self) -> bool:
        """Return True when the host has a usable adapter."""

    def resolve_device(self, address: str) -> str | None:
        """Return a device identifier for ``address`` or None if unresolvable."""

    def open_session(
        self,
        device: str,
        callbacks: TransportCallbacks,
        *,
        auto_connect: bool = False,
    ) -> GattHandle:
        """Open a GATT session and start connecting to ``device``."""
