"""Lifecycle of one peripheral session and its notification pipeline."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator

from gattcheck.core.buffer import AggregationBuffer, Cancellable, Scheduler, ThreadingScheduler
from gattcheck.core.decoder import decode_update
from gattcheck.core.errors import (
    AdapterUnavailableError,
    DeviceNotFoundError,
    GattcheckError,
    InvalidAddressError,
    NoAdapterError,
    NotInitializedError,
    ProfileValidationError,
    TransportError,
)
from gattcheck.core.events import EventKind, SessionEvent, SessionObserver, dispatch
from gattcheck.core.model import CharacteristicInfo, CharacteristicUpdate, Profile, ServiceInfo, SessionState
from gattcheck.core.profile import default_profile, normalize_uuid
from gattcheck.core.recorder import BatchRecorder
from gattcheck.core.reference import ReferenceStore
from gattcheck.core.storage import DirectoryStorage, Storage
from gattcheck.transports.base import ENABLE_NOTIFICATION_VALUE, Adapter, GattHandle

LOGGER = logging.getLogger(__name__)


class Session:
    """Manages the connection to a single GATT peripheral.

    Transport callbacks, the flush timer and host calls may arrive on
    different threads; every state change happens under one re-entrant lock
    that the aggregation buffer shares. Batches are written and compared
    outside that lock so a flush never holds up notification delivery.
    Transport requests never block: their outcome is reported back through
    the ``TransportCallbacks`` methods.
    """

    def __init__(
        self,
        adapter: Adapter,
        observer: SessionObserver | None = None,
        *,
        profile: Profile | None = None,
        storage: Storage | None = None,
        scheduler: Scheduler | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.adapter = adapter
        self.observer = observer
        self.profile = profile or default_profile()
        self.storage = storage or DirectoryStorage(self.profile.storage.root)
        self.scheduler = scheduler or ThreadingScheduler()
        self._lock = threading.RLock()
        self._initialized = False
        self._address: str | None = None
        self._handle: GattHandle | None = None
        self._state = SessionState.DISCONNECTED
        self._connect_timer: Cancellable | None = None
        self._released_handle: GattHandle | None = None
        self.last_error: GattcheckError | None = None

        self.reference = ReferenceStore(
            self.storage,
            self.profile.reference.keyword,
            self.profile.reference.search_dirs,
        )
        self.recorder = BatchRecorder(self.storage, self.reference, self.profile.storage.log_name)
        self.buffer = AggregationBuffer(
            self.scheduler,
            self._on_flush,
            quiet_period_s=self.profile.debounce_s,
            lock=self._lock,
            clock=clock,
        )

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def address(self) -> str | None:
        with self._lock:
            return self._address

    @property
    def handle(self) -> GattHandle | None:
        with self._lock:
            return self._handle

    def _emit(self, kind: EventKind, data: str | None = None, same: bool = False) -> None:
        dispatch(self.observer, SessionEvent(kind, data=data, same=same))

    def _fail(self, exc: GattcheckError) -> bool:
        self.last_error = exc
        LOGGER.warning("%s", exc)
        return False

    def initialize(self) -> bool:
        with self._lock:
            if self._initialized:
                return True
            self.last_error = None
            try:
                if not self.adapter.is_available():
                    raise AdapterUnavailableError("Unable to reach the Bluetooth stack.")
                if not self.adapter.has_adapter():
                    raise NoAdapterError("Unable to obtain a Bluetooth adapter.")
            except GattcheckError as exc:
                self.last_error = exc
                LOGGER.error("%s", exc)
                return False
            self._initialized = True
            return True

    def connect(self, address: str) -> bool:
        """Start connecting to ``address``.

        Returns True when the request was accepted; the outcome arrives later
        as a ``GATT_CONNECTED`` or ``GATT_DISCONNECTED`` event.
        """
        with self._lock:
            self.last_error = None
            if not self._initialized:
                return self._fail(NotInitializedError("Bluetooth adapter not initialized."))
            if not address:
                return self._fail(InvalidAddressError("Unspecified device address."))

            if self._address == address and self._handle is not None:
                LOGGER.debug("Trying to use an existing GATT handle for %s", address)
                if not self._handle.connect():
                    return self._fail(TransportError(f"Reconnect request to {address} was rejected."))
                self._set_connecting()
                return True

            device = self.adapter.resolve_device(address)
            if device is None:
                return self._fail(DeviceNotFoundError(f"Device {address} not found. Unable to connect."))

            self._release_handle()
            self._handle = self.adapter.open_session(device, self, auto_connect=False)
            LOGGER.debug("Trying to create a new connection to %s", address)
            self._address = address
            self._set_connecting()
            return True

    def _set_connecting(self) -> None:
        self._state = SessionState.CONNECTING
        self._cancel_connect_timer()
        timeout = self.profile.connect_timeout_s
        if timeout is not None:
            handle = self._handle
            self._connect_timer = self.scheduler.call_later(timeout, lambda: self._on_connect_timeout(handle))

    def _cancel_connect_timer(self) -> None:
        if self._connect_timer is not None:
            self._connect_timer.cancel()
            self._connect_timer = None

    def _on_connect_timeout(self, handle: GattHandle | None) -> None:
        with self._lock:
            if handle is not self._handle or self._state is not SessionState.CONNECTING:
                return
            self._connect_timer = None
            LOGGER.warning("Connection to %s timed out after %ss", self._address, self.profile.connect_timeout_s)
            # A late connect on the released handle is ignored.
            self._release_handle()
            self._state = SessionState.DISCONNECTED
            self._emit(EventKind.GATT_DISCONNECTED)

    def disconnect(self) -> None:
        with self._lock:
            if not self._initialized or self._handle is None:
                LOGGER.warning("Bluetooth adapter not initialized")
                return
            self._handle.disconnect()

    def close(self) -> None:
        """Release the transport handle. State catches up via the transport."""
        with self._lock:
            self._release_handle()

    def _release_handle(self) -> None:
        self._cancel_connect_timer()
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        self._released_handle = handle
        handle.close()

    def _live_handle(self) -> GattHandle | None:
        if not self._initialized or self._handle is None:
            LOGGER.warning("Bluetooth adapter not initialized")
            return None
        return self._handle

    def _canonical_uuid(self, uuid: str) -> str | None:
        try:
            return normalize_uuid(uuid, context="characteristic")
        except ProfileValidationError as exc:
            self._fail(exc)
            return None

    def read_characteristic(self, uuid: str) -> None:
        with self._lock:
            handle = self._live_handle()
            if handle is None:
                return
            canonical = self._canonical_uuid(uuid)
            if canonical is not None:
                handle.read_characteristic(canonical)

    def set_notification(self, uuid: str, enabled: bool) -> None:
        """Toggle notifications on ``uuid``; 16- and 32-bit short forms are accepted."""
        with self._lock:
            handle = self._live_handle()
            if handle is None:
                return
            canonical = self._canonical_uuid(uuid)
            if canonical is None:
                return
            uuid = canonical
            if not handle.set_notify(uuid, enabled):
                LOGGER.error("Notification request for %s was not accepted (enabled=%s)", uuid, enabled)
            if enabled:
                self._write_config_descriptors(handle, uuid, ENABLE_NOTIFICATION_VALUE)

    subscribe = set_notification

    def _write_config_descriptors(self, handle: GattHandle, uuid: str, value: bytes) -> None:
        rule = self.profile.descriptor_rule_for(uuid)
        if rule is None:
            return
        for characteristic in _characteristics(handle.services(), uuid):
            for descriptor in characteristic.descriptors:
                if rule.descriptor_uuids and descriptor.uuid not in rule.descriptor_uuids:
                    continue
                LOGGER.debug("Writing notification descriptor %s", descriptor.uuid)
                if not handle.write_descriptor(descriptor, value):
                    LOGGER.warning("Descriptor write to %s was not accepted", descriptor.uuid)

    def list_services(self) -> list[ServiceInfo] | None:
        with self._lock:
            if self._handle is None:
                return None
            return self._handle.services()

    # TransportCallbacks

    def on_connection_state_change(self, handle: GattHandle, connected: bool) -> None:
        with self._lock:
            if handle is not self._handle and not self._is_final_disconnect(handle, connected):
                LOGGER.debug("Ignoring connection event from a released handle")
                return
            self._cancel_connect_timer()
            if connected:
                self._state = SessionState.CONNECTED
                LOGGER.info("Connected to GATT server.")
                self._emit(EventKind.GATT_CONNECTED)
                started = handle.discover_services()
                LOGGER.info("Attempting to start service discovery: %s", started)
            else:
                if self._state is SessionState.DISCONNECTED:
                    LOGGER.debug("Already disconnected from %s", self._address)
                    return
                self._state = SessionState.DISCONNECTED
                LOGGER.info("Disconnected from GATT server.")
                self._emit(EventKind.GATT_DISCONNECTED)

    def _is_final_disconnect(self, handle: GattHandle, connected: bool) -> bool:
        # close() drops the handle before the transport reports the teardown.
        return not connected and self._handle is None and handle is self._released_handle

    def on_services_discovered(self, handle: GattHandle, success: bool) -> None:
        with self._lock:
            if handle is not self._handle:
                return
            if success:
                self._emit(EventKind.GATT_SERVICES_DISCOVERED)
            else:
                LOGGER.warning("Service discovery failed on %s", self._address)

    def on_characteristic_read(self, handle: GattHandle, update: CharacteristicUpdate, success: bool) -> None:
        if success:
            self.on_characteristic_changed(handle, update)

    def on_characteristic_changed(self, handle: GattHandle, update: CharacteristicUpdate) -> None:
        with self._lock:
            if handle is not self._handle:
                return
            decoded = decode_update(update, measurement_uuid=self.profile.measurement_uuid)
            if decoded.is_empty:
                return
            self._emit(EventKind.DATA_AVAILABLE, data=decoded.text)
            if decoded.payload is not None:
                self.buffer.append(decoded.payload, arrived_at=update.received_at)

    def _on_flush(self, batch: list[bytes]) -> None:
        LOGGER.info("Writing batch of %d payload(s), last arrival %s", len(batch), self.buffer.last_arrival)
        same = self.recorder.record(batch)
        self._emit(EventKind.DATA_AVAILABLE, data="", same=same)


def _characteristics(services: list[ServiceInfo], uuid: str) -> Iterator[CharacteristicInfo]:
    wanted = uuid.lower()
    for service in services:
        for characteristic in service.characteristics:
            if characteristic.uuid == wanted:
                yield characteristic
