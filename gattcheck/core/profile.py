"""Session profile loading and validation for YAML-based gattcheck profiles."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from gattcheck.core.errors import ProfileLoadError, ProfileValidationError
from gattcheck.core.model import DescriptorRule, Profile, ReferenceSpec, StorageSpec

_UUID_RE = re.compile(r"^[0-9a-f]{4}$|^[0-9a-f]{8}$|^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")
_BASE_UUID_SUFFIX = "-0000-1000-8000-00805f9b34fb"
STORAGE_ROOT_ENV = "GATTCHECK_STORAGE_ROOT"
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ProfileValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedProfile:
    profile: Profile
    source: str
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("gattcheck.schemas").joinpath("profile.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _user_profile_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "gattcheck/profile.yaml"


def _packaged_profile_path() -> Traversable:
    return resources.files("gattcheck.profiles").joinpath("default.yaml")


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ProfileLoadError(f"Could not read profile file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ProfileValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ProfileValidationError(f"Profile file {path} must contain a mapping at root")
    return loaded


def normalize_uuid(value: str, *, context: str = "uuid") -> str:
    """Return the lowercase 128-bit form of a 16-, 32- or 128-bit UUID string."""
    normalized = value.strip().lower()
    if not _UUID_RE.match(normalized):
        raise ProfileValidationError(
            f"{context} must be a 16-bit, 32-bit, or 128-bit UUID string"
        )
    if len(normalized) == 4:
        return f"0000{normalized}{_BASE_UUID_SUFFIX}"
    if len(normalized) == 8:
        return f"{normalized}{_BASE_UUID_SUFFIX}"
    return normalized


def _build_profile(doc: dict[str, Any], source: Path | Traversable) -> Profile:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ProfileValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    rules: list[DescriptorRule] = []
    seen: set[str] = set()
    for index, entry in enumerate(doc.get("descriptor_writes", [])):
        context = f"descriptor_writes.{index}"
        characteristic = normalize_uuid(entry["characteristic"], context=f"{context}.characteristic")
        if characteristic in seen:
            raise ProfileValidationError(
                f"{context}: characteristic {characteristic} listed more than once in {source}"
            )
        seen.add(characteristic)
        descriptors = entry.get("descriptors", "all")
        if descriptors == "all":
            descriptor_uuids: tuple[str, ...] = ()
        else:
            descriptor_uuids = tuple(
                normalize_uuid(d, context=f"{context}.descriptors") for d in descriptors
            )
        rules.append(DescriptorRule(characteristic_uuid=characteristic, descriptor_uuids=descriptor_uuids))

    storage_root = os.environ.get(STORAGE_ROOT_ENV) or doc["storage"]["root"]
    timeout = doc.get("connect_timeout_s")

    return Profile(
        debounce_s=int(doc.get("debounce_ms", 300)) / 1000.0,
        connect_timeout_s=float(timeout) if timeout is not None else None,
        measurement_uuid=normalize_uuid(doc["measurement_uuid"], context="measurement_uuid"),
        storage=StorageSpec(
            root=Path(storage_root).expanduser(),
            log_name=doc["storage"]["log_name"],
        ),
        reference=ReferenceSpec(
            keyword=doc["reference"]["keyword"],
            search_dirs=tuple(doc["reference"].get("search_dirs", ["", "Downloads"])),
        ),
        descriptor_rules=tuple(rules),
    )


def load_profile(path: Path | None = None) -> LoadedProfile:
    warnings: list[str] = []

    if path is not None:
        source: Path | Traversable = Path(path)
    else:
        user_path = _user_profile_path()
        if user_path.is_file():
            warning = f"User profile {user_path} overrides packaged default"
            LOGGER.warning(warning)
            warnings.append(warning)
            source = user_path
        else:
            source = _packaged_profile_path()

    doc = _read_yaml(source)
    profile = _build_profile(doc, source)
    return LoadedProfile(profile=profile, source=str(source), warnings=tuple(warnings))


def default_profile() -> Profile:
    return load_profile().profile
