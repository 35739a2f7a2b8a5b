from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from gattcheck.core.events import EventCollector
from gattcheck.core.model import (
    CharacteristicInfo,
    DescriptorInfo,
    DescriptorRule,
    Profile,
    ReferenceSpec,
    ServiceInfo,
    StorageSpec,
)

HEART_RATE_UUID = "00002a37-0000-1000-8000-00805f9b34fb"
DATA_UUID = "0000fff4-0000-1000-8000-00805f9b34fb"
CCCD_UUID = "00002902-0000-1000-8000-00805f9b34fb"
USER_DESC_UUID = "00002901-0000-1000-8000-00805f9b34fb"


class _Task:
    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler and clock driven explicitly by the test."""

    def __init__(self) -> None:
        self.now = 0.0
        self.tasks: list[_Task] = []

    def clock(self) -> float:
        return self.now

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> _Task:
        task = _Task(self.now + delay_s, callback)
        self.tasks.append(task)
        return task

    @property
    def pending(self) -> list[_Task]:
        return [t for t in self.tasks if not t.cancelled and not t.fired]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self.pending if t.due <= target + 1e-9]
            if not due:
                break
            task = min(due, key=lambda t: t.due)
            self.now = task.due
            task.fired = True
            task.callback()
        self.now = target


class FakeHandle:
    def __init__(self, device: str, callbacks, services: list[ServiceInfo]) -> None:
        self.device = device
        self.callbacks = callbacks
        self._services = services
        self.connect_result = True
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.closed = False
        self.discover_calls = 0
        self.reads: list[str] = []
        self.notify_calls: list[tuple[str, bool]] = []
        self.descriptor_writes: list[tuple[str, bytes]] = []
        self.failing_descriptors: set[str] = set()

    def connect(self) -> bool:
        self.connect_calls += 1
        return self.connect_result

    def disconnect(self) -> None:
        self.disconnect_calls += 1

    def close(self) -> None:
        self.closed = True

    def discover_services(self) -> bool:
        self.discover_calls += 1
        return True

    def read_characteristic(self, uuid: str) -> bool:
        self.reads.append(uuid)
        return True

    def set_notify(self, uuid: str, enabled: bool) -> bool:
        self.notify_calls.append((uuid, enabled))
        return True

    def write_descriptor(self, descriptor: DescriptorInfo, value: bytes) -> bool:
        self.descriptor_writes.append((descriptor.uuid, value))
        return descriptor.uuid not in self.failing_descriptors

    def services(self) -> list[ServiceInfo]:
        return list(self._services)

    # Transport-side helpers

    def report_connected(self) -> None:
        self.callbacks.on_connection_state_change(self, True)

    def report_disconnected(self) -> None:
        self.callbacks.on_connection_state_change(self, False)


class FakeAdapter:
    def __init__(self, services: list[ServiceInfo] | None = None) -> None:
        self.available = True
        self.adapter_present = True
        self.unknown: set[str] = set()
        self.services = services or []
        self.handles: list[FakeHandle] = []
        self.open_calls: list[tuple[str, bool]] = []
        self.availability_checks = 0

    def is_available(self) -> bool:
        self.availability_checks += 1
        return self.available

    def has_adapter(self) -> bool:
        return self.adapter_present

    def resolve_device(self, address: str) -> str | None:
        if address in self.unknown:
            return None
        return address

    def open_session(self, device: str, callbacks, *, auto_connect: bool = False) -> FakeHandle:
        self.open_calls.append((device, auto_connect))
        handle = FakeHandle(device, callbacks, self.services)
        self.handles.append(handle)
        return handle


def sample_services() -> list[ServiceInfo]:
    return [
        ServiceInfo(
            uuid="0000180d-0000-1000-8000-00805f9b34fb",
            characteristics=(
                CharacteristicInfo(
                    uuid=HEART_RATE_UUID,
                    handle=12,
                    properties=("notify",),
                    descriptors=(
                        DescriptorInfo(uuid=CCCD_UUID, handle=13),
                        DescriptorInfo(uuid=USER_DESC_UUID, handle=14),
                    ),
                ),
            ),
        ),
        ServiceInfo(
            uuid="0000fff0-0000-1000-8000-00805f9b34fb",
            characteristics=(
                CharacteristicInfo(
                    uuid=DATA_UUID,
                    handle=20,
                    properties=("notify",),
                    descriptors=(
                        DescriptorInfo(uuid=CCCD_UUID, handle=21),
                        DescriptorInfo(uuid=USER_DESC_UUID, handle=22),
                    ),
                ),
                CharacteristicInfo(
                    uuid="0000fff1-0000-1000-8000-00805f9b34fb",
                    handle=24,
                    properties=("read", "notify"),
                    descriptors=(DescriptorInfo(uuid=CCCD_UUID, handle=25),),
                ),
            ),
        ),
    ]


def make_profile(root: Path, *, connect_timeout_s: float | None = None) -> Profile:
    return Profile(
        debounce_s=0.3,
        connect_timeout_s=connect_timeout_s,
        measurement_uuid=HEART_RATE_UUID,
        storage=StorageSpec(root=root, log_name="ble_asci.txt"),
        reference=ReferenceSpec(keyword="cardiochek_ble", search_dirs=("", "Downloads")),
        descriptor_rules=(
            DescriptorRule(characteristic_uuid=DATA_UUID),
            DescriptorRule(characteristic_uuid=HEART_RATE_UUID, descriptor_uuids=(CCCD_UUID,)),
        ),
    )


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def adapter() -> FakeAdapter:
    return FakeAdapter(services=sample_services())


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    root = tmp_path / "sdcard"
    root.mkdir()
    return root


@pytest.fixture
def profile(storage_root: Path) -> Profile:
    return make_profile(storage_root)


@pytest.fixture
def collector() -> EventCollector:
    return EventCollector()
