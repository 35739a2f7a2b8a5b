"""Stable public API for host processes embedding gattcheck.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from pathlib import Path

from gattcheck.core.buffer import Scheduler, ThreadingScheduler
from gattcheck.core.errors import (
    AdapterUnavailableError,
    DeviceNotFoundError,
    GattcheckError,
    InvalidAddressError,
    NoAdapterError,
    NotInitializedError,
    ProfileLoadError,
    ProfileValidationError,
    StorageUnavailableError,
    TransportError,
)
from gattcheck.core.events import EventCollector, EventKind, SessionEvent, SessionObserver
from gattcheck.core.model import (
    CharacteristicInfo,
    CharacteristicUpdate,
    ComparisonResult,
    DescriptorInfo,
    DescriptorRule,
    Profile,
    ServiceInfo,
    SessionState,
)
from gattcheck.core.profile import LoadedProfile, load_profile
from gattcheck.core.session import Session
from gattcheck.core.storage import DirectoryStorage, Storage
from gattcheck.transports.base import Adapter, GattHandle, TransportCallbacks
from gattcheck.transports.ble_gatt import BleakAdapter

__all__ = [
    "GattcheckError",
    "AdapterUnavailableError",
    "NoAdapterError",
    "NotInitializedError",
    "InvalidAddressError",
    "DeviceNotFoundError",
    "StorageUnavailableError",
    "TransportError",
    "ProfileLoadError",
    "ProfileValidationError",
    "CharacteristicInfo",
    "CharacteristicUpdate",
    "ComparisonResult",
    "DescriptorInfo",
    "DescriptorRule",
    "Profile",
    "ServiceInfo",
    "SessionState",
    "EventCollector",
    "EventKind",
    "SessionEvent",
    "SessionObserver",
    "LoadedProfile",
    "load_profile",
    "Session",
    "DirectoryStorage",
    "Storage",
    "Scheduler",
    "ThreadingScheduler",
    "Adapter",
    "GattHandle",
    "TransportCallbacks",
    "BleakAdapter",
    "open_session",
]


def open_session(
    observer: SessionObserver | None = None,
    *,
    profile: Profile | Path | None = None,
    adapter: Adapter | None = None,
    storage: Storage | None = None,
    scheduler: Scheduler | None = None,
) -> Session:
    """Build a session wired to the bleak adapter and the resolved profile.

    ``profile`` may be a loaded ``Profile`` or a path to a YAML profile; when
    omitted the user profile or the packaged default is used.
    """
    if not isinstance(profile, Profile):
        profile = load_profile(profile).profile
    return Session(
        adapter or BleakAdapter(),
        observer,
        profile=profile,
        storage=storage,
        scheduler=scheduler,
    )
