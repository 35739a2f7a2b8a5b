from __future__ import annotations

from pathlib import Path

from gattcheck.core.errors import StorageUnavailableError
from gattcheck.core.model import ComparisonResult
from gattcheck.core.reference import ReferenceStore, normalize
from gattcheck.core.storage import DirectoryStorage


class CountingStorage(DirectoryStorage):
    def __init__(self, root: Path) -> None:
        super().__init__(root)
        self.find_calls: list[str] = []

    def find(self, subdir: str, keyword: str) -> Path | None:
        self.find_calls.append(subdir)
        return super().find(subdir, keyword)


class BrokenStorage(DirectoryStorage):
    def read_text(self, path: Path) -> str:
        raise StorageUnavailableError("disk gone")


def test_normalize_strips_tabs_and_line_endings() -> None:
    assert normalize("AA\tBB \r\nCC\n") == "AABB CC"


def test_compare_ignores_case_and_line_endings(storage_root: Path) -> None:
    (storage_root / "cardiochek_ble.txt").write_text("AA BB\n", encoding="utf-8")
    store = ReferenceStore(DirectoryStorage(storage_root), "cardiochek_ble")

    assert store.compare("aa bb") is ComparisonResult.SAME
    assert store.compare("AA BB \n") is ComparisonResult.DIFFERENT
    assert store.compare("AA") is ComparisonResult.DIFFERENT


def test_missing_reference_is_searched_once(storage_root: Path) -> None:
    storage = CountingStorage(storage_root)
    store = ReferenceStore(storage, "cardiochek_ble")

    for _ in range(5):
        assert store.compare("01 02 \n") is ComparisonResult.NO_REFERENCE

    assert store.searches == 1
    assert storage.find_calls == ["", "Downloads"]


def test_reference_found_in_downloads_folder(storage_root: Path) -> None:
    downloads = storage_root / "Downloads"
    downloads.mkdir()
    (downloads / "my_cardiochek_ble_v2.log").write_text("01 02 \n03 \n", encoding="utf-8")
    store = ReferenceStore(DirectoryStorage(storage_root), "cardiochek_ble")

    assert store.compare("01 02 \n03 \n") is ComparisonResult.SAME


def test_root_folder_wins_over_downloads(storage_root: Path) -> None:
    (storage_root / "cardiochek_ble").write_text("AA ", encoding="utf-8")
    downloads = storage_root / "Downloads"
    downloads.mkdir()
    (downloads / "cardiochek_ble").write_text("BB ", encoding="utf-8")
    store = ReferenceStore(DirectoryStorage(storage_root), "cardiochek_ble")

    assert store.load() == "AA "


def test_reference_added_after_first_search_is_not_picked_up(storage_root: Path) -> None:
    store = ReferenceStore(DirectoryStorage(storage_root), "cardiochek_ble")
    assert store.load() is None

    (storage_root / "cardiochek_ble").write_text("AA ", encoding="utf-8")
    assert store.compare("AA ") is ComparisonResult.NO_REFERENCE


def test_unavailable_storage_means_no_reference(tmp_path: Path) -> None:
    store = ReferenceStore(DirectoryStorage(tmp_path / "missing"), "cardiochek_ble")
    assert store.compare("AA ") is ComparisonResult.NO_REFERENCE
    assert store.searches == 1


def test_read_failure_means_no_reference(storage_root: Path) -> None:
    (storage_root / "cardiochek_ble").write_text("AA ", encoding="utf-8")
    store = ReferenceStore(BrokenStorage(storage_root), "cardiochek_ble")
    assert store.compare("AA ") is ComparisonResult.NO_REFERENCE


def test_empty_reference_counts_as_absent(storage_root: Path) -> None:
    (storage_root / "cardiochek_ble").write_text("\r\n\t", encoding="utf-8")
    store = ReferenceStore(DirectoryStorage(storage_root), "cardiochek_ble")
    assert store.compare("") is ComparisonResult.NO_REFERENCE


def test_markers_name_the_reference_keyword(storage_root: Path) -> None:
    store = ReferenceStore(DirectoryStorage(storage_root), "cardiochek_ble")
    assert store.marker(ComparisonResult.SAME) == "SAME AS cardiochek_ble"
    assert store.marker(ComparisonResult.DIFFERENT) == "DIFF WITH cardiochek_ble"
    assert store.marker(ComparisonResult.NO_REFERENCE) == "NO cardiochek_ble"
