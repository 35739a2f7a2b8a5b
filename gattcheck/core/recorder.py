"""Persists flushed batches to the capture log with a reference verdict."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from gattcheck.core.decoder import batch_hex_dump
from gattcheck.core.errors import StorageUnavailableError
from gattcheck.core.model import ComparisonResult
from gattcheck.core.reference import ReferenceStore
from gattcheck.core.storage import Storage

LOGGER = logging.getLogger(__name__)

BINARY_MARKER = b"\nBinary:\n"


class BatchRecorder:
    def __init__(self, storage: Storage, reference: ReferenceStore, log_name: str) -> None:
        self.storage = storage
        self.reference = reference
        self.log_name = log_name

    def build_record(self, payloads: Sequence[bytes]) -> tuple[bytes, ComparisonResult]:
        hex_text = batch_hex_dump(payloads)
        verdict = self.reference.compare(hex_text)
        record = b"".join(payloads)
        record += BINARY_MARKER
        record += hex_text.encode("ascii")
        record += f"\n{self.reference.marker(verdict)}\n".encode("utf-8")
        record += b"\n\n"
        return record, verdict

    def record(self, payloads: Sequence[bytes]) -> bool:
        """Append one batch to the log and return whether it matched the reference.

        Failures are logged and reported as ``False``; the batch is dropped.
        """
        if not self.storage.is_available():
            LOGGER.error("Storage unavailable, dropping batch of %d payload(s)", len(payloads))
            return False
        record, verdict = self.build_record(payloads)
        try:
            self.storage.append(self.log_name, record)
        except StorageUnavailableError as exc:
            LOGGER.error("Writing batch failed: %s", exc)
            return False
        LOGGER.info(self.reference.marker(verdict))
        return verdict is ComparisonResult.SAME
