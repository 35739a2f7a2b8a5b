"""BLE GATT transport implementation backed by bleak."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import re
import threading
import time
from collections.abc import Coroutine
from typing import Any

from gattcheck.core.errors import AdapterUnavailableError
from gattcheck.core.model import (
    CharacteristicInfo,
    CharacteristicUpdate,
    DescriptorInfo,
    ServiceInfo,
)
from gattcheck.transports.base import TransportCallbacks

_MAC_RE = re.compile(r"^[0-9A-F]{2}(?::[0-9A-F]{2}){5}$", re.IGNORECASE)
_CB_UUID_RE = re.compile(r"^[0-9A-F]{8}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{12}$", re.IGNORECASE)
LOGGER = logging.getLogger(__name__)


def _load_bleak() -> Any:
    try:
        import bleak  # type: ignore
    except Exception as exc:  # pragma: no cover - import failure path
        raise AdapterUnavailableError(
            "BLE transport requires 'bleak'. Install dependency and retry."
        ) from exc
    return bleak


class BleakAdapter:
    """Owns a private asyncio loop thread that every bleak call runs on."""

    def __init__(self, *, connect_timeout_s: float = 20.0, probe_timeout_s: float = 5.0) -> None:
        self.connect_timeout_s = connect_timeout_s
        self.probe_timeout_s = probe_timeout_s
        self.loop: asyncio.AbstractEventLoop | None = None
        self.loop_thread: threading.Thread | None = None
        self._ready = threading.Event()

    def _run_event_loop(self) -> None:
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)
        self._ready.set()
        LOGGER.debug("Event loop thread started")
        self.loop.run_forever()
        LOGGER.debug("Event loop thread stopped")

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        if self.loop is None or not self.loop.is_running():
            self._ready.clear()
            self.loop_thread = threading.Thread(target=self._run_event_loop, daemon=True, name="BLE-EventLoop")
            self.loop_thread.start()
            if not self._ready.wait(timeout=5.0) or self.loop is None:
                raise AdapterUnavailableError("Failed to start BLE event loop within timeout")
        return self.loop

    def submit(self, coro: Coroutine[Any, Any, Any]) -> concurrent.futures.Future[Any]:
        return asyncio.run_coroutine_threadsafe(coro, self._ensure_loop())

    def is_available(self) -> bool:
        try:
            _load_bleak()
            self._ensure_loop()
        except AdapterUnavailableError as exc:
            LOGGER.error("BLE stack unavailable: %s", exc)
            return False
        return True

    def has_adapter(self) -> bool:
        bleak = _load_bleak()

        async def _probe() -> None:
            scanner = bleak.BleakScanner()
            await scanner.start()
            await scanner.stop()

        try:
            self.submit(_probe()).result(timeout=self.probe_timeout_s)
        except Exception as exc:
            LOGGER.error("No usable Bluetooth adapter: %s", exc)
            return False
        return True

    def resolve_device(self, address: str) -> str | None:
        candidate = address.strip()
        if _MAC_RE.match(candidate):
            return candidate.upper()
        if _CB_UUID_RE.match(candidate):
            return candidate
        return None

    def open_session(
        self,
        device: str,
        callbacks: TransportCallbacks,
        *,
        auto_connect: bool = False,
    ) -> BleakGattHandle:
        if auto_connect:
            LOGGER.debug("auto_connect is not supported by bleak, connecting directly")
        handle = BleakGattHandle(self, device, callbacks)
        handle.connect()
        return handle

    def shutdown(self) -> None:
        if self.loop is not None and self.loop.is_running():
            self.loop.call_soon_threadsafe(self.loop.stop)
        if self.loop_thread is not None:
            self.loop_thread.join(timeout=5.0)
        self.loop = None
        self.loop_thread = None


class BleakGattHandle:
    def __init__(self, adapter: BleakAdapter, device: str, callbacks: TransportCallbacks) -> None:
        bleak = _load_bleak()
        self.adapter = adapter
        self.device = device
        self.callbacks = callbacks
        self._closed = False
        self._connecting = False
        self._services: list[ServiceInfo] = []
        self.client = bleak.BleakClient(
            device,
            disconnected_callback=self._disconnected_callback,
            timeout=adapter.connect_timeout_s,
        )

    def _disconnected_callback(self, _client: Any) -> None:
        LOGGER.info("Device %s disconnected", self.device)
        self.callbacks.on_connection_state_change(self, False)

    def _submit(self, coro: Coroutine[Any, Any, Any]) -> bool:
        if self._closed:
            coro.close()
            return False
        try:
            self.adapter.submit(coro)
        except AdapterUnavailableError as exc:
            coro.close()
            LOGGER.error("Could not schedule BLE request: %s", exc)
            return False
        return True

    def connect(self) -> bool:
        if self._connecting or self.client.is_connected:
            LOGGER.debug("Connection to %s already active or pending", self.device)
            return False
        self._connecting = True
        return self._submit(self._connect())

    async def _connect(self) -> None:
        try:
            await self.client.connect()
        except Exception as exc:
            LOGGER.warning("Connection to %s failed: %s", self.device, exc)
            self._connecting = False
            self.callbacks.on_connection_state_change(self, False)
            return
        self._connecting = False
        if not self._closed:
            self.callbacks.on_connection_state_change(self, True)

    def disconnect(self) -> None:
        self._submit(self._disconnect())

    async def _disconnect(self) -> None:
        try:
            await self.client.disconnect()
        except Exception as exc:
            LOGGER.warning("Disconnect from %s failed: %s", self.device, exc)

    def close(self) -> None:
        if self._closed:
            return
        self._submit(self._disconnect())
        self._closed = True
        self._services = []

    def discover_services(self) -> bool:
        return self._submit(self._discover_services())

    async def _discover_services(self) -> None:
        try:
            collection = self.client.services
            services: list[ServiceInfo] = []
            for service in collection:
                characteristics = tuple(
                    CharacteristicInfo(
                        uuid=str(char.uuid).lower(),
                        handle=char.handle,
                        properties=tuple(char.properties),
                        descriptors=tuple(
                            DescriptorInfo(uuid=str(desc.uuid).lower(), handle=desc.handle)
                            for desc in char.descriptors
                        ),
                    )
                    for char in service.characteristics
                )
                services.append(ServiceInfo(uuid=str(service.uuid).lower(), characteristics=characteristics))
        except Exception as exc:
            LOGGER.warning("Service discovery on %s failed: %s", self.device, exc)
            self.callbacks.on_services_discovered(self, False)
            return
        self._services = services
        self.callbacks.on_services_discovered(self, True)

    def services(self) -> list[ServiceInfo]:
        return list(self._services)

    def read_characteristic(self, uuid: str) -> bool:
        return self._submit(self._read(uuid))

    async def _read(self, uuid: str) -> None:
        try:
            data = await self.client.read_gatt_char(uuid)
        except Exception as exc:
            LOGGER.warning("Read of %s failed: %s", uuid, exc)
            self.callbacks.on_characteristic_read(
                self, CharacteristicUpdate(uuid=uuid, value=b"", received_at=time.monotonic()), False
            )
            return
        update = CharacteristicUpdate(uuid=uuid.lower(), value=bytes(data), received_at=time.monotonic())
        self.callbacks.on_characteristic_read(self, update, True)

    def set_notify(self, uuid: str, enabled: bool) -> bool:
        return self._submit(self._set_notify(uuid, enabled))

    async def _set_notify(self, uuid: str, enabled: bool) -> None:
        def _notification_handler(sender: Any, data: bytearray) -> None:
            update = CharacteristicUpdate(
                uuid=str(getattr(sender, "uuid", uuid)).lower(),
                value=bytes(data),
                received_at=time.monotonic(),
            )
            self.callbacks.on_characteristic_changed(self, update)

        try:
            if enabled:
                await self.client.start_notify(uuid, _notification_handler)
            else:
                await self.client.stop_notify(uuid)
        except Exception as exc:
            LOGGER.error("Changing notifications on %s (enabled=%s) failed: %s", uuid, enabled, exc)

    def write_descriptor(self, descriptor: DescriptorInfo, value: bytes) -> bool:
        if descriptor.handle is None:
            LOGGER.warning("Descriptor %s has no handle, skipping write", descriptor.uuid)
            return False
        return self._submit(self._write_descriptor(descriptor, value))

    async def _write_descriptor(self, descriptor: DescriptorInfo, value: bytes) -> None:
        try:
            await self.client.write_gatt_descriptor(descriptor.handle, value)
        except Exception as exc:
            LOGGER.warning("Descriptor write to %s failed: %s", descriptor.uuid, exc)
