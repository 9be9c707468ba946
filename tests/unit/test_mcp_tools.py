"""Tests for MCP tool core functions."""

import json
from collections.abc import Callable
from pathlib import Path

import pytest

from org_attach.core.attach import AttachCore
from org_attach.mcp.server import (
    attachment_attach,
    attachment_dir,
    attachment_list,
    attachment_sync,
)


@pytest.mark.asyncio
async def test_attachment_dir_reports_missing_directory(core: AttachCore, outline_path: Path) -> None:
    result = await attachment_dir(core, outline=str(outline_path), node_id="t1")

    assert result == {"title": "Project plan", "dir": None, "exists": False}


@pytest.mark.asyncio
async def test_attachment_dir_create_saves_id(core: AttachCore, outline_path: Path) -> None:
    result = await attachment_dir(core, outline=str(outline_path), node_id="t1", create=True)

    assert result["exists"] is True
    assert Path(result["dir"]).is_dir()
    saved = json.loads(outline_path.read_text())
    t1 = next(n for n in saved["nodes"] if n["id"] == "t1")
    assert "ID" in t1["properties"]


@pytest.mark.asyncio
async def test_attachment_dir_ask_method_uses_given_dir(
    make_core: Callable[..., AttachCore], outline_path: Path, tmp_path: Path
) -> None:
    core = make_core(preferred_new_method="ask")
    target = tmp_path / "chosen"

    result = await attachment_dir(
        core, outline=str(outline_path), node_id="t1", create=True, new_dir=str(target)
    )

    assert result["dir"] == str(target)
    assert target.is_dir()


@pytest.mark.asyncio
async def test_attach_and_list(core: AttachCore, outline_path: Path, source_file: Path) -> None:
    attached = await attachment_attach(
        core, outline=str(outline_path), node_id="t1", sources=[str(source_file)]
    )

    assert attached["successes"] == 1
    assert attached["failures"] == 0
    assert attached["links"] == ["[[attachment:report.txt]]"]

    listed = await attachment_list(core, outline=str(outline_path), node_id="t1")
    assert listed["attachments"] == ["report.txt"]
    assert listed["count"] == 1
    assert listed["dir"] == attached["dir"]


@pytest.mark.asyncio
async def test_attach_counts_failures(core: AttachCore, outline_path: Path, source_file: Path) -> None:
    result = await attachment_attach(
        core,
        outline=str(outline_path),
        node_id="t1",
        sources=[str(source_file), str(source_file.parent / "nope.txt")],
    )

    assert (result["successes"], result["failures"]) == (1, 1)


@pytest.mark.asyncio
async def test_attach_requires_sources(core: AttachCore, outline_path: Path) -> None:
    result = await attachment_attach(core, outline=str(outline_path), sources=[])

    assert "error" in result


@pytest.mark.asyncio
async def test_unknown_entry_is_an_error(core: AttachCore, outline_path: Path) -> None:
    result = await attachment_list(core, outline=str(outline_path), node_id="nope")

    assert result == {"error": f"Entry 'nope' not found in {outline_path}."}


@pytest.mark.asyncio
async def test_missing_outline_is_an_error(core: AttachCore, tmp_path: Path) -> None:
    result = await attachment_list(core, outline=str(tmp_path / "missing.json"))

    assert "error" in result


@pytest.mark.asyncio
async def test_list_without_directory(core: AttachCore, outline_path: Path) -> None:
    result = await attachment_list(core, outline=str(outline_path), node_id="t2")

    assert result["attachments"] == []
    assert result["dir"] is None


@pytest.mark.asyncio
async def test_sync_never_deletes_when_asking(core: AttachCore, outline_path: Path) -> None:
    travel = outline_path.parent / "travel"
    travel.mkdir()

    result = await attachment_sync(core, outline=str(outline_path), node_id="t2")

    assert result["deleted_dir"] is None
    assert result["has_attachments"] is False
    assert travel.exists()


@pytest.mark.asyncio
async def test_sync_deletes_when_always(
    make_core: Callable[..., AttachCore], outline_path: Path
) -> None:
    core = make_core(sync_delete_empty_dir="always")
    travel = outline_path.parent / "travel"
    travel.mkdir()

    result = await attachment_sync(core, outline=str(outline_path), node_id="t2")

    assert result["deleted_dir"] == str(travel)
    assert not travel.exists()


@pytest.mark.asyncio
async def test_attachment_dir_rejects_empty_new_dir(
    make_core: Callable[..., AttachCore], outline_path: Path
) -> None:
    core = make_core(preferred_new_method="dir")

    result = await attachment_dir(core, outline=str(outline_path), node_id="t1", create=True, new_dir="")

    assert "error" in result
    t1 = next(n for n in json.loads(outline_path.read_text())["nodes"] if n["id"] == "t1")
    assert "DIR" not in t1.get("properties", {})
