"""Tests for the JSON outline model."""

import json
from pathlib import Path

import pytest

from org_attach.outline import OutlineDocument
from org_attach.protocols import DocumentProtocol, EntryProtocol
from tests.unit.conftest import SAMPLE_OUTLINE


def test_entries_are_numbered_in_pre_order(document: OutlineDocument) -> None:
    assert [(e.node_id, e.start) for e in document.entries] == [("t1", 1), ("t1a", 2), ("t2", 3)]
    assert document.entry("t1a").parent is document.entry("t1")


def test_title_is_first_line_of_content(document: OutlineDocument) -> None:
    assert document.entry("t1a").title == "Subtask"
    assert document.title == "Notes"


def test_satisfies_protocols(document: OutlineDocument) -> None:
    assert isinstance(document, DocumentProtocol)
    assert isinstance(document.entry("t1"), EntryProtocol)


def test_properties_are_case_insensitive(document: OutlineDocument) -> None:
    entry = document.entry("t2")

    assert entry.get_property("dir") == "./travel"
    entry.set_property("dir", None)
    assert entry.get_property("DIR") is None


def test_property_search_walks_parents(document: OutlineDocument) -> None:
    document.entry("t1").set_property("CATEGORY", "work")

    assert document.entry("t1a").get_property("CATEGORY") is None
    assert document.entry("t1a").get_property("CATEGORY", search_parents=True) == "work"


def test_save_round_trips_changes(document: OutlineDocument, outline_path: Path) -> None:
    document.entry("t1").set_tags(["ATTACH"])
    document.set_property("ID", "doc-id")

    assert document.save() is True
    assert document.save() is False

    reloaded = OutlineDocument.load(outline_path)
    assert reloaded.entry("t1").get_own_tags() == ["ATTACH"]
    assert reloaded.get_property("ID") == "doc-id"


def test_empty_tags_are_removed(document: OutlineDocument) -> None:
    entry = document.entry("t1")
    entry.set_tags(["A"])
    entry.set_tags([])

    raw = next(n for n in document.to_dict()["nodes"] if n["id"] == "t1")
    assert "tags" not in raw


def test_missing_root_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"nodes": [{"id": "x", "content": "X"}]}))

    with pytest.raises(ValueError, match="no 'root' node"):
        OutlineDocument.load(path)


def test_missing_child_is_rejected(tmp_path: Path) -> None:
    data = {"nodes": [{"id": "root", "content": "R", "children": ["gone"]}]}

    with pytest.raises(ValueError, match="missing node"):
        OutlineDocument(data, filename=tmp_path / "x.json")


def test_orphaned_nodes_are_rejected(tmp_path: Path) -> None:
    data = {"nodes": [{"id": "root", "content": "R"}, {"id": "lost", "content": "L"}]}

    with pytest.raises(ValueError, match="Orphaned"):
        OutlineDocument(data, filename=tmp_path / "x.json")


def test_entry_at_before_first_entry_is_none(tmp_path: Path) -> None:
    doc = OutlineDocument(json.loads(json.dumps(SAMPLE_OUTLINE)), filename=tmp_path / "n.json")

    assert doc.entry_at(0) is None
    with pytest.raises(KeyError):
        doc.entry("nope")
