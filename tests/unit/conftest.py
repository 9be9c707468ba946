"""Shared test fixtures."""

import json
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from loguru import logger

from org_attach.config import AttachConfig
from org_attach.core.attach import AttachCore
from org_attach.links import LinkStore
from org_attach.outline import OutlineDocument
from tests.unit.fakes import FakeFetcher, RecordingEvents

SAMPLE_OUTLINE: dict[str, Any] = {
    "file_id": "doc1",
    "title": "Notes",
    "nodes": [
        {"id": "root", "content": "Notes", "children": ["t1", "t2"]},
        {"id": "t1", "content": "Project plan", "children": ["t1a"]},
        {"id": "t1a", "content": "Subtask\nwith details"},
        {
            "id": "t2",
            "content": "Travel",
            "note": "see [[attachment:ticket.pdf]]",
            "properties": {"DIR": "./travel"},
        },
    ],
}


def write_outline(path: Path, data: dict[str, Any] | None = None) -> Path:
    path.write_text(json.dumps(data or SAMPLE_OUTLINE), encoding="utf-8")
    return path


@pytest.fixture
def outline_path(tmp_path: Path) -> Path:
    """Return the path of a sample outline in its own directory."""
    notes = tmp_path / "notes"
    notes.mkdir()
    return write_outline(notes / "notes.json")


@pytest.fixture
def document(outline_path: Path) -> OutlineDocument:
    return OutlineDocument.load(outline_path)


@pytest.fixture
def config() -> AttachConfig:
    return AttachConfig()


@pytest.fixture
def events() -> RecordingEvents:
    return RecordingEvents()


@pytest.fixture
def links() -> LinkStore:
    return LinkStore()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def make_core(
    events: RecordingEvents, links: LinkStore, fetcher: FakeFetcher
) -> Callable[..., AttachCore]:
    """Return a factory building a core with configuration overrides."""

    def factory(**overrides: Any) -> AttachCore:
        return AttachCore(AttachConfig(**overrides), events=events, links=links, fetcher=fetcher)

    return factory


@pytest.fixture
def core(make_core: Callable[..., AttachCore]) -> AttachCore:
    return make_core()


@pytest.fixture
def log_messages() -> Iterator[list[str]]:
    """Collect formatted loguru messages emitted during the test."""
    messages: list[str] = []
    sink_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(sink_id)


@pytest.fixture
def source_file(tmp_path: Path) -> Path:
    """Return a small file outside any attachment directory."""
    src = tmp_path / "src"
    src.mkdir()
    path = src / "report.txt"
    path.write_text("quarterly numbers\n")
    return path
