"""Tests for the org-attach CLI."""

import errno
import json
import sys
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest
from loguru import logger
from typer.testing import CliRunner

from org_attach.cli import app
from org_attach.outline import OutlineDocument

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated_cli() -> Iterator[None]:
    """Ignore user configuration files and restore logging afterwards."""
    with patch("org_attach.cli.resolve_config_file", return_value=None):
        yield
    logger.remove()
    logger.add(sys.stderr)


def _raw_node(outline: Path, node_id: str) -> dict[str, object]:
    data = json.loads(outline.read_text())
    return next(n for n in data["nodes"] if n["id"] == node_id)  # type: ignore[no-any-return]


def test_attach_then_list(outline_path: Path, source_file: Path) -> None:
    result = runner.invoke(app, ["attach", str(outline_path), str(source_file), "--node", "t1"])
    assert result.exit_code == 0, result.output
    assert "[[attachment:report.txt]]" in result.stdout

    raw = _raw_node(outline_path, "t1")
    assert raw["tags"] == ["ATTACH"]
    assert "ID" in raw["properties"]  # type: ignore[operator]

    result = runner.invoke(app, ["list", str(outline_path), "-n", "t1"])
    assert result.exit_code == 0, result.output
    assert result.stdout.splitlines() == ["report.txt"]


def test_quiet_hides_info_messages(outline_path: Path, source_file: Path) -> None:
    result = runner.invoke(app, ["-q", "attach", str(outline_path), str(source_file), "-n", "t1"])

    assert result.exit_code == 0, result.output
    assert "is now an attachment" not in result.output
    assert "[[attachment:report.txt]]" in result.stdout


def test_attach_many_with_failure_exits_nonzero(outline_path: Path, source_file: Path) -> None:
    missing = str(source_file.parent / "missing.txt")

    result = runner.invoke(app, ["attach", str(outline_path), str(source_file), missing, "-n", "t1"])

    assert result.exit_code == 1
    assert "[[attachment:report.txt]]" in result.stdout


def test_attach_with_method_move(outline_path: Path, source_file: Path) -> None:
    result = runner.invoke(
        app, ["attach", str(outline_path), str(source_file), "-n", "t1", "--method", "mv"]
    )

    assert result.exit_code == 0, result.output
    assert not source_file.exists()


def test_dir_without_directory_fails(outline_path: Path) -> None:
    result = runner.invoke(app, ["dir", str(outline_path), "-n", "t1"])

    assert result.exit_code == 1


def test_dir_create(outline_path: Path) -> None:
    result = runner.invoke(app, ["dir", str(outline_path), "-n", "t1", "--create"])

    assert result.exit_code == 0, result.output
    attach_dir = Path(result.stdout.strip())
    assert attach_dir.is_dir()
    assert attach_dir.is_relative_to(outline_path.parent / "data")


def test_position_selects_entry(outline_path: Path) -> None:
    travel = outline_path.parent / "travel"
    travel.mkdir()

    result = runner.invoke(app, ["dir", str(outline_path), "--position", "3"])

    assert result.exit_code == 0, result.output
    assert result.stdout.strip() == str(travel)


def test_node_and_position_are_exclusive(outline_path: Path) -> None:
    result = runner.invoke(app, ["dir", str(outline_path), "-n", "t1", "-p", "1"])

    assert result.exit_code == 1


def test_unknown_node_fails(outline_path: Path) -> None:
    result = runner.invoke(app, ["dir", str(outline_path), "-n", "nope"])

    assert result.exit_code == 1


def test_missing_outline_fails(tmp_path: Path) -> None:
    result = runner.invoke(app, ["list", str(tmp_path / "missing.json")])

    assert result.exit_code == 1


def test_new_creates_empty_attachment(outline_path: Path) -> None:
    result = runner.invoke(app, ["new", str(outline_path), "todo.txt", "-n", "t1"])

    assert result.exit_code == 0, result.output
    path = Path(result.stdout.strip().splitlines()[-1])
    assert path.name == "todo.txt"
    assert path.read_text() == ""


def test_open_without_launch_prints_path(outline_path: Path) -> None:
    travel = outline_path.parent / "travel"
    travel.mkdir()
    (travel / "ticket.pdf").write_text("x")

    result = runner.invoke(app, ["open", str(outline_path), "ticket.pdf", "-n", "t2", "--no-launch"])

    assert result.exit_code == 0, result.output
    assert result.stdout.strip() == str(travel / "ticket.pdf")


def test_set_dir_stores_property(outline_path: Path, tmp_path: Path) -> None:
    new_dir = tmp_path / "elsewhere"

    result = runner.invoke(app, ["set-dir", str(outline_path), str(new_dir), "-n", "t2"])

    assert result.exit_code == 0, result.output
    assert _raw_node(outline_path, "t2")["properties"] == {"DIR": str(new_dir)}


def test_unset_dir_removes_property(outline_path: Path) -> None:
    result = runner.invoke(app, ["unset-dir", str(outline_path), "-n", "t2"])

    assert result.exit_code == 0, result.output
    assert _raw_node(outline_path, "t2").get("properties") == {}


def test_delete_all_declined_at_prompt(outline_path: Path) -> None:
    travel = outline_path.parent / "travel"
    travel.mkdir()
    (travel / "ticket.pdf").write_text("x")

    result = runner.invoke(app, ["delete-all", str(outline_path), "-n", "t2"], input="n\n")

    assert result.exit_code == 1
    assert travel.exists()


def test_delete_all_force(outline_path: Path) -> None:
    travel = outline_path.parent / "travel"
    (travel / "sub").mkdir(parents=True)
    (travel / "sub" / "x.txt").write_text("x")

    result = runner.invoke(app, ["delete-all", str(outline_path), "-n", "t2", "--force"])

    assert result.exit_code == 0, result.output
    assert not travel.exists()


def test_sync_drops_tag_for_litter_only(outline_path: Path) -> None:
    travel = outline_path.parent / "travel"
    travel.mkdir()
    (travel / "notes.txt~").write_text("x")
    data = json.loads(outline_path.read_text())
    next(n for n in data["nodes"] if n["id"] == "t2")["tags"] = ["ATTACH"]
    outline_path.write_text(json.dumps(data))

    result = runner.invoke(app, ["sync", str(outline_path), "-n", "t2"])

    assert result.exit_code == 0, result.output
    assert "tags" not in _raw_node(outline_path, "t2")


def test_expand_links_rewrites_notes(outline_path: Path) -> None:
    result = runner.invoke(app, ["expand-links", str(outline_path)])

    assert result.exit_code == 0, result.output
    travel = outline_path.parent / "travel"
    assert _raw_node(outline_path, "t2")["note"] == f"see [[file:{travel}/ticket.pdf]]"


def test_invalid_config_fails(outline_path: Path, tmp_path: Path) -> None:
    config = tmp_path / "config.toml"
    config.write_text('[attach]\nmethod = "scp"\n')

    result = runner.invoke(app, ["--config", str(config), "list", str(outline_path)])

    assert result.exit_code == 1


def test_config_file_is_used(outline_path: Path, tmp_path: Path, source_file: Path) -> None:
    config = tmp_path / "config.toml"
    config.write_text('[attach]\nmethod = "mv"\nauto_tag = "FILES"\n')

    result = runner.invoke(
        app, ["--config", str(config), "attach", str(outline_path), str(source_file), "-n", "t1"]
    )

    assert result.exit_code == 0, result.output
    assert not source_file.exists()
    assert _raw_node(outline_path, "t1")["tags"] == ["FILES"]


def test_set_dir_rejects_empty_directory(outline_path: Path) -> None:
    (outline_path.parent / "precious.txt").write_text("x")

    result = runner.invoke(app, ["set-dir", str(outline_path), "", "-n", "t1"])

    assert result.exit_code == 1
    assert "DIR" not in _raw_node(outline_path, "t1").get("properties", {})  # type: ignore[operator]
    assert (outline_path.parent / "precious.txt").exists()


def test_save_failure_exits_cleanly(outline_path: Path) -> None:
    error = PermissionError(errno.EACCES, "Permission denied", str(outline_path))

    with patch.object(OutlineDocument, "save", side_effect=error):
        result = runner.invoke(app, ["dir", str(outline_path), "-n", "t1", "--create"])

    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)


def test_no_input_declines_confirmations(outline_path: Path) -> None:
    travel = outline_path.parent / "travel"
    travel.mkdir()
    (travel / "ticket.pdf").write_text("x")

    result = runner.invoke(app, ["--no-input", "delete-all", str(outline_path), "-n", "t2"])

    assert result.exit_code == 1
    assert (travel / "ticket.pdf").exists()


def test_no_input_still_runs_forced_commands(outline_path: Path) -> None:
    travel = outline_path.parent / "travel"
    travel.mkdir()
    (travel / "ticket.pdf").write_text("x")

    result = runner.invoke(
        app, ["--no-input", "delete-all", str(outline_path), "-n", "t2", "--force"]
    )

    assert result.exit_code == 0, result.output
    assert not travel.exists()


def test_archive_keeps_attachments_by_default(outline_path: Path) -> None:
    travel = outline_path.parent / "travel"
    travel.mkdir()
    (travel / "ticket.pdf").write_text("x")

    result = runner.invoke(app, ["archive", str(outline_path), "-n", "t2"])

    assert result.exit_code == 0, result.output
    assert (travel / "ticket.pdf").exists()


def test_archive_deletes_when_configured(outline_path: Path, tmp_path: Path) -> None:
    config = tmp_path / "config.toml"
    config.write_text('[attach]\narchive_delete = "always"\n')
    travel = outline_path.parent / "travel"
    travel.mkdir()
    (travel / "ticket.pdf").write_text("x")

    result = runner.invoke(app, ["--config", str(config), "archive", str(outline_path), "-n", "t2"])

    assert result.exit_code == 0, result.output
    assert not travel.exists()
