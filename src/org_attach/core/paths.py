"""Path helpers shared by the node, resolver and transaction code."""

import os


def substitute_path(path: str, base_dir: str) -> str:
    """Expand `~` and environment variables, then anchor relative paths at `base_dir`."""
    expanded = os.path.expandvars(os.path.expanduser(path))
    if os.path.isabs(expanded):
        return os.path.normpath(expanded)
    return os.path.normpath(os.path.join(base_dir, expanded))


def make_relative(path: str, base_dir: str) -> str:
    """Express `path` relative to `base_dir`, prefixed with `./` when it stays below it."""
    rel = os.path.relpath(path, base_dir)
    if rel == "." or rel.startswith(".."):
        return rel
    return "./" + rel


def basename_safe(path: str) -> str | None:
    """Like os.path.basename(), but reject names that cannot become an attachment.

    A path ending in a slash names no file, and neither do `.` and `..`.
    """
    name = os.path.basename(path)
    if name in ("", ".", ".."):
        return None
    return name
