"""Configuration for org-attach."""

import tomllib
from collections.abc import Callable, Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from org_attach.exceptions import InvalidConfiguration

# Config file location. First file found is used.
CONFIG_FILES: list[Path] = [
    Path("~/.config/org-attach/config.toml").expanduser(),
    Path("~/.config/org-attach.toml").expanduser(),
    Path("~/.org-attach.toml").expanduser(),
]

# Outward-facing calls wait this long (in seconds) for a composed operation.
MAX_TIMEOUT: float = 2**31 / 1000

ATTACH_METHODS = ("cp", "mv", "ln", "lns")
NEW_DIR_METHODS = ("id", "dir", "ask")
INHERITANCE_MODES = ("always", "never", "selective")
SYNC_DELETE_MODES = ("always", "never", "ask")
ARCHIVE_DELETE_MODES = ("always", "ask", "never")

DEFAULT_ID_TO_PATH = ("uuid_folder_format", "ts_folder_format", "fallback_folder_format")

IdToPath = Callable[[str], str | None]


def _check_choice(option: str, value: Any, choices: tuple[str, ...]) -> None:
    if value not in choices:
        msg = f"invalid value for {option}: {value!r} (expected one of {', '.join(choices)})"
        raise InvalidConfiguration(msg)


@dataclass(frozen=True)
class AttachConfig:
    """Options of the attachment subsystem.

    Passed explicitly to every component that needs it; there is no global
    configuration object.
    """

    method: str = "cp"
    dir_relative: bool = False
    id_dir: str = "./data/"
    fallback_id_dir: str = "./data/"
    id_to_path_functions: tuple[str | IdToPath, ...] = DEFAULT_ID_TO_PATH
    use_inheritance: str = "selective"
    use_property_inheritance: bool | tuple[str, ...] = False
    preferred_new_method: str | None = "id"
    copy_directory_create_symlink: bool = False
    sync_delete_empty_dir: str = "ask"
    auto_tag: str | None = "ATTACH"
    archive_delete: str = "never"
    litter_suffix: str = "~"

    def __post_init__(self) -> None:
        _check_choice("method", self.method, ATTACH_METHODS)
        _check_choice("use_inheritance", self.use_inheritance, INHERITANCE_MODES)
        _check_choice("sync_delete_empty_dir", self.sync_delete_empty_dir, SYNC_DELETE_MODES)
        _check_choice("archive_delete", self.archive_delete, ARCHIVE_DELETE_MODES)
        if self.preferred_new_method is not None:
            _check_choice("preferred_new_method", self.preferred_new_method, NEW_DIR_METHODS)
        if not self.id_to_path_functions:
            msg = "id_to_path_functions must not be empty"
            raise InvalidConfiguration(msg)
        for func in self.id_to_path_functions:
            if not (isinstance(func, str) or callable(func)):
                msg = f"invalid id_to_path function: {func!r}"
                raise InvalidConfiguration(msg)
        if not self.id_dir:
            msg = "id_dir must not be empty"
            raise InvalidConfiguration(msg)
        if not self.litter_suffix:
            msg = "litter_suffix must not be empty"
            raise InvalidConfiguration(msg)
        # An empty tag name disables auto-tagging.
        if self.auto_tag == "":
            object.__setattr__(self, "auto_tag", None)

    def inherits(self, property_name: str) -> bool:
        """Return the per-property default of `org_use_property_inheritance`."""
        if isinstance(self.use_property_inheritance, bool):
            return self.use_property_inheritance
        wanted = property_name.upper()
        return any(name.upper() == wanted for name in self.use_property_inheritance)


def config_from_mapping(data: Mapping[str, Any]) -> AttachConfig:
    """Build an AttachConfig from a plain mapping (e.g. a parsed TOML table).

    Raises:
        InvalidConfiguration: on unknown keys or invalid values.
    """
    known = {f.name for f in fields(AttachConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        msg = f"unknown configuration options: {', '.join(unknown)}"
        raise InvalidConfiguration(msg)

    values = dict(data)
    # TOML has no null; `false` switches these options off.
    if values.get("preferred_new_method") is False:
        values["preferred_new_method"] = None
    if values.get("auto_tag") is False:
        values["auto_tag"] = None
    if isinstance(values.get("archive_delete"), bool):
        values["archive_delete"] = "always" if values["archive_delete"] else "never"
    if isinstance(values.get("id_to_path_functions"), list):
        values["id_to_path_functions"] = tuple(values["id_to_path_functions"])
    if isinstance(values.get("use_property_inheritance"), list):
        values["use_property_inheritance"] = tuple(values["use_property_inheritance"])
    try:
        return AttachConfig(**values)
    except TypeError as e:
        raise InvalidConfiguration(str(e)) from e


def load_config(path: str | Path) -> AttachConfig:
    """Read configuration from a TOML file.

    Options live in an `[attach]` table; a file without one is read as a flat
    table of options.
    """
    with open(path, "rb") as f:
        data = tomllib.load(f)
    table = data.get("attach", data)
    if not isinstance(table, dict):
        msg = f"[attach] in {str(path)!r} must be a table"
        raise InvalidConfiguration(msg)
    return config_from_mapping(table)


def resolve_config_file() -> Path | None:
    """Return the first existing file of CONFIG_FILES, if any."""
    for candidate in CONFIG_FILES:
        if candidate.is_file():
            return candidate
    return None
