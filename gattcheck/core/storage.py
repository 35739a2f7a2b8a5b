"""External byte store used for the capture log and reference lookup."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Protocol

from gattcheck.core.errors import StorageUnavailableError


class Storage(Protocol):
    def is_available(self) -> bool:
        """Return True when the store can be read and written."""

    def append(self, name: str, data: bytes) -> None:
        """Append raw bytes to the named file, creating it when missing."""

    def find(self, subdir: str, keyword: str) -> Path | None:
        """Return the first file in ``subdir`` whose name contains ``keyword``."""

    def read_text(self, path: Path) -> str:
        """Read a whole file as UTF-8 text."""


class DirectoryStorage:
    def __init__(self, root: Path) -> None:
        self.root = Path(root).expanduser()

    def is_available(self) -> bool:
        return self.root.is_dir() and os.access(self.root, os.W_OK)

    def append(self, name: str, data: bytes) -> None:
        if not self.is_available():
            raise StorageUnavailableError(f"Storage root {self.root} is not a writable directory")
        try:
            with open(self.root / name, "ab") as handle:
                handle.write(data)
        except OSError as exc:
            raise StorageUnavailableError(f"Could not append to {self.root / name}: {exc}") from exc

    def find(self, subdir: str, keyword: str) -> Path | None:
        if not keyword:
            return None
        directory = self.root / subdir if subdir else self.root
        if not directory.is_dir():
            return None
        try:
            entries = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError as exc:
            raise StorageUnavailableError(f"Could not list {directory}: {exc}") from exc
        for entry in entries:
            if keyword in entry.name and entry.is_file():
                return entry
        return None

    def read_text(self, path: Path) -> str:
        try:
            return Path(path).read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise StorageUnavailableError(f"Could not read {path}: {exc}") from exc
