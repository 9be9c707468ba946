"""Tests for the directory-change transaction."""

from pathlib import Path

import pytest

from org_attach.config import AttachConfig
from org_attach.core.node import EntryNode
from org_attach.core.setdir_task import SetDirTask
from org_attach.outline import OutlineDocument


def _node(document: OutlineDocument, config: AttachConfig) -> EntryNode:
    return EntryNode(document, document.entry("t2"), config)


def _populate_old_dir(document: OutlineDocument) -> Path:
    old = Path(document.filename).parent / "travel"
    old.mkdir()
    (old / "ticket.pdf").write_text("ticket")
    return old


@pytest.mark.asyncio
async def test_run_copies_repoints_and_deletes(document: OutlineDocument, tmp_path: Path) -> None:
    old = _populate_old_dir(document)
    config = AttachConfig()
    task = SetDirTask(_node(document, config), config)
    new = tmp_path / "moved"
    task.new_dir = str(new)
    task.do_copy = task.do_delete = task.do_property_change = True

    await task.run()

    assert (new / "ticket.pdf").read_text() == "ticket"
    assert not old.exists()
    assert document.entry("t2").get_property("DIR") == str(new)


@pytest.mark.asyncio
async def test_steps_are_skipped_when_flags_are_off(document: OutlineDocument, tmp_path: Path) -> None:
    old = _populate_old_dir(document)
    config = AttachConfig()
    task = SetDirTask(_node(document, config), config)
    task.new_dir = str(tmp_path / "moved")

    await task.run()

    assert old.exists()
    assert not (tmp_path / "moved").exists()
    assert document.entry("t2").get_property("DIR") == "./travel"


def test_property_value_relative(document: OutlineDocument) -> None:
    config = AttachConfig(dir_relative=True)
    task = SetDirTask(_node(document, config), config)
    task.new_dir = str(Path(document.filename).parent / "files" / "t2")

    assert task.property_value() == "./files/t2"


def test_old_dir_is_captured_at_creation(document: OutlineDocument) -> None:
    config = AttachConfig()
    node = _node(document, config)
    task = SetDirTask(node, config)
    node.set_property("DIR", "/elsewhere")

    assert task.old_dir == str(Path(document.filename).parent / "travel")


@pytest.mark.asyncio
async def test_run_twice_is_an_error(document: OutlineDocument) -> None:
    config = AttachConfig()
    task = SetDirTask(_node(document, config), config)
    await task.run()

    with pytest.raises(RuntimeError, match="called twice"):
        await task.run()
