from __future__ import annotations

from pathlib import Path

import orjson
import pytest

from adapters.filesystem.layout_repository import FileSystemLayoutRepository
from domain.models import LayoutDocument, LayoutKey, UnknownSlotError
from tests.helpers.layout_fixtures import sample_page

KEY = LayoutKey("store-1", "product")


def _document() -> LayoutDocument:
    return LayoutDocument(slots=sample_page(), pageType="product")


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    repository = FileSystemLayoutRepository(tmp_path)

    repository.save(KEY, _document())
    loaded = repository.load(KEY)

    assert repository.path_for(KEY) == tmp_path / "store-1" / "product.json"
    assert loaded.slots == sample_page()
    assert loaded.page_meta() == {"pageType": "product"}
    raw = orjson.loads(repository.path_for(KEY).read_bytes())
    assert raw["slots"]["title"]["parentId"] == "header"
    assert raw["slots"]["root"]["parentId"] is None


def test_missing_layout_raises_file_not_found(tmp_path: Path) -> None:
    repository = FileSystemLayoutRepository(tmp_path)

    with pytest.raises(FileNotFoundError):
        repository.load(KEY)


def test_patch_slot_merges_fields(tmp_path: Path) -> None:
    repository = FileSystemLayoutRepository(tmp_path)
    repository.save(KEY, _document())

    repository.patch_slot(KEY, "title", {"content": "Patched", "styles": {"color": "red"}})

    slot = repository.load(KEY).slots["title"]
    assert slot.content == "Patched"
    assert slot.styles == {"color": "red"}
    assert slot.col_span == 8


def test_patch_unknown_slot_is_rejected(tmp_path: Path) -> None:
    repository = FileSystemLayoutRepository(tmp_path)
    repository.save(KEY, _document())

    with pytest.raises(UnknownSlotError):
        repository.patch_slot(KEY, "ghost", {"content": "x"})


def test_list_page_types(tmp_path: Path) -> None:
    repository = FileSystemLayoutRepository(tmp_path)
    repository.save(LayoutKey("store-1", "product"), _document())
    repository.save(LayoutKey("store-1", "cart"), _document())

    assert repository.list_page_types("store-1") == ["cart", "product"]
    assert repository.list_page_types("store-2") == []


@pytest.mark.parametrize("segment", ["../etc", "", "a/b", ".hidden"])
def test_unsafe_key_segments_are_rejected(tmp_path: Path, segment: str) -> None:
    repository = FileSystemLayoutRepository(tmp_path)

    with pytest.raises(ValueError, match="Invalid layout key segment"):
        repository.path_for(LayoutKey("store-1", segment))
