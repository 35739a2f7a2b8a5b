"""Known-good reference transcript lookup and comparison."""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Sequence

from gattcheck.core.errors import StorageUnavailableError
from gattcheck.core.model import ComparisonResult
from gattcheck.core.storage import Storage

LOGGER = logging.getLogger(__name__)

_STRIP_RE = re.compile(r"[\t\n\r]")
_UNLOADED = object()


def normalize(text: str) -> str:
    return _STRIP_RE.sub("", text)


class ReferenceStore:
    """Lazily loads the reference document and compares hex dumps with it.

    The search runs at most once per instance; a missing reference is cached
    as ``None`` so later comparisons never touch storage again.
    """

    def __init__(self, storage: Storage, keyword: str, search_dirs: Sequence[str] = ("", "Downloads")) -> None:
        self.storage = storage
        self.keyword = keyword
        self.search_dirs = tuple(search_dirs)
        self._reference: object = _UNLOADED
        self._load_lock = threading.Lock()
        self.searches = 0

    def load(self) -> str | None:
        with self._load_lock:
            if self._reference is _UNLOADED:
                self._reference = self._search()
            return self._reference  # type: ignore[return-value]

    def _search(self) -> str | None:
        self.searches += 1
        if not self.storage.is_available():
            LOGGER.warning("Storage unavailable, no %s reference", self.keyword)
            return None
        try:
            for subdir in self.search_dirs:
                path = self.storage.find(subdir, self.keyword)
                if path is not None:
                    LOGGER.info("Using reference %s", path)
                    text = normalize(self.storage.read_text(path))
                    return text or None
        except StorageUnavailableError as exc:
            LOGGER.error("Reading %s reference failed: %s", self.keyword, exc)
            return None
        LOGGER.warning("No %s file", self.keyword)
        return None

    def compare(self, hex_dump: str) -> ComparisonResult:
        reference = self.load()
        if reference is None:
            return ComparisonResult.NO_REFERENCE
        if normalize(hex_dump).lower() == reference.lower():
            return ComparisonResult.SAME
        return ComparisonResult.DIFFERENT

    def marker(self, result: ComparisonResult) -> str:
        if result is ComparisonResult.SAME:
            return f"SAME AS {self.keyword}"
        if result is ComparisonResult.DIFFERENT:
            return f"DIFF WITH {self.keyword}"
        return f"NO {self.keyword}"
