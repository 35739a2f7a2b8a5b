"""Core data models shared by the session, decoder, and transports."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class SessionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ComparisonResult(Enum):
    SAME = "same"
    DIFFERENT = "different"
    NO_REFERENCE = "no-reference"


@dataclass(frozen=True)
class CharacteristicUpdate:
    uuid: str
    value: bytes
    received_at: float


@dataclass(frozen=True)
class DescriptorInfo:
    uuid: str
    handle: int | None = None


@dataclass(frozen=True)
class CharacteristicInfo:
    uuid: str
    handle: int | None = None
    properties: tuple[str, ...] = ()
    descriptors: tuple[DescriptorInfo, ...] = ()


@dataclass(frozen=True)
class ServiceInfo:
    uuid: str
    characteristics: tuple[CharacteristicInfo, ...] = ()


@dataclass(frozen=True)
class DescriptorRule:
    """Descriptors to write when notifications are enabled on a characteristic.

    An empty ``descriptor_uuids`` selects every descriptor discovered under
    the characteristic.
    """

    characteristic_uuid: str
    descriptor_uuids: tuple[str, ...] = ()


@dataclass(frozen=True)
class StorageSpec:
    root: Path
    log_name: str


@dataclass(frozen=True)
class ReferenceSpec:
    keyword: str
    search_dirs: tuple[str, ...]


@dataclass(frozen=True)
class Profile:
    debounce_s: float
    connect_timeout_s: float | None
    measurement_uuid: str
    storage: StorageSpec
    reference: ReferenceSpec
    descriptor_rules: tuple[DescriptorRule, ...]

    def descriptor_rule_for(self, characteristic_uuid: str) -> DescriptorRule | None:
        wanted = characteristic_uuid.lower()
        for rule in self.descriptor_rules:
            if rule.characteristic_uuid == wanted:
                return rule
        return None
