"""Asynchronous filesystem operations used by the attachment core.

Primitives run on `aiofiles.os`; operations aiofiles does not wrap run in a
worker thread via `asyncio.to_thread`. Every OSError leaves this module
translated into the `org_attach.exceptions` taxonomy.
"""

import asyncio
import errno
import os
import shutil
import stat as stat_mod
from collections.abc import Awaitable, Callable, Iterable, Iterator
from contextlib import contextmanager
from typing import TypeVar

import aiofiles.os
from loguru import logger

from org_attach.exceptions import (
    AlreadyExists,
    AttachError,
    DirectoryNotEmpty,
    FsError,
    InvalidLink,
    NotFound,
    OtherOSError,
    translate_os_error,
)
from org_attach.protocols import FetcherProtocol

T = TypeVar("T")
R = TypeVar("R")

# Upper bound of concurrently running operations within one fan-out group.
FAN_OUT_LIMIT = 16


@contextmanager
def _translated() -> Iterator[None]:
    try:
        yield
    except FsError:
        raise
    except OSError as e:
        raise translate_os_error(e) from e


async def fan_out(
    func: Callable[[T], Awaitable[R]],
    items: Iterable[T],
    *,
    limit: int = FAN_OUT_LIMIT,
) -> list[R]:
    """Run `func` over all items concurrently and wait for all of them.

    The first failure propagates; siblings already in flight keep running.
    """
    semaphore = asyncio.Semaphore(limit)

    async def run(item: T) -> R:
        async with semaphore:
            return await func(item)

    return await asyncio.gather(*(run(item) for item in items))


def _group_dir(path: str) -> dict[str, list[str]]:
    groups: dict[str, list[str]] = {"file": [], "link": [], "directory": [], "other": []}
    with os.scandir(path) as it:
        for entry in it:
            if entry.is_symlink():
                kind = "link"
            elif entry.is_dir(follow_symlinks=False):
                kind = "directory"
            elif entry.is_file(follow_symlinks=False):
                kind = "file"
            else:
                kind = "other"
            groups[kind].append(entry.name)
    return groups


async def group_dir(path: str) -> dict[str, list[str]]:
    """List a directory, grouping entry names by type.

    Returns:
        Mapping with keys "file", "link", "directory" and "other".
    """
    with _translated():
        return await asyncio.to_thread(_group_dir, path)


async def iter_dir_names(path: str) -> list[str]:
    """Return the entry names of a directory, in no particular order."""
    with _translated():
        return await aiofiles.os.listdir(path)


async def stat(path: str, *, preserve_symlinks: bool = False) -> os.stat_result:
    """Stat a path; with preserve_symlinks, inspect the link itself."""
    with _translated():
        return await aiofiles.os.stat(path, follow_symlinks=not preserve_symlinks)


async def stat_or_none(path: str, *, preserve_symlinks: bool = False) -> os.stat_result | None:
    """Like stat(), but return None if the path does not exist."""
    try:
        return await stat(path, preserve_symlinks=preserve_symlinks)
    except NotFound:
        return None


async def exists(path: str, *, preserve_symlinks: bool = False) -> bool:
    return await stat_or_none(path, preserve_symlinks=preserve_symlinks) is not None


async def is_file(path: str, *, preserve_symlinks: bool = False) -> bool:
    st = await stat_or_none(path, preserve_symlinks=preserve_symlinks)
    return st is not None and stat_mod.S_ISREG(st.st_mode)


async def is_dir(path: str, *, preserve_symlinks: bool = False) -> bool:
    st = await stat_or_none(path, preserve_symlinks=preserve_symlinks)
    return st is not None and stat_mod.S_ISDIR(st.st_mode)


async def is_symlink(path: str) -> bool:
    st = await stat_or_none(path, preserve_symlinks=True)
    return st is not None and stat_mod.S_ISLNK(st.st_mode)


def _has_entries(path: str) -> bool:
    with os.scandir(path) as it:
        for _entry in it:
            return True
    return False


async def is_empty_dir(path: str, *, preserve_symlinks: bool = False) -> bool:
    """Return True if `path` is a directory without entries."""
    if not await is_dir(path, preserve_symlinks=preserve_symlinks):
        return False
    with _translated():
        return not await asyncio.to_thread(_has_entries, path)


async def readlink(path: str) -> str:
    """Return the target of a symbolic link.

    Raises:
        InvalidLink: if `path` is not a symbolic link.
        NotFound: if `path` does not exist.
    """
    try:
        with _translated():
            return await aiofiles.os.readlink(path)
    except OtherOSError as e:
        if e.errno != errno.EINVAL:
            raise
        raise InvalidLink(e.errno, e.strerror, e.filename) from e


async def rename(path: str, new_path: str) -> bool:
    with _translated():
        await aiofiles.os.rename(path, new_path)
    return True


def _copy_file(path: str, new_path: str, exist_ok: bool, keep_times: bool) -> None:
    mode = "wb" if exist_ok else "xb"
    with open(path, "rb") as src, open(new_path, mode) as dst:
        shutil.copyfileobj(src, dst)
    shutil.copymode(path, new_path)
    if keep_times:
        st = os.stat(path)
        os.utime(new_path, ns=(st.st_atime_ns, st.st_mtime_ns))


async def copy_file(
    path: str,
    new_path: str,
    *,
    exist_ok: bool = False,
    keep_times: bool = False,
) -> bool:
    """Copy a regular file byte for byte, including its permission bits.

    Raises:
        AlreadyExists: if `new_path` exists and exist_ok is False.
    """
    with _translated():
        await asyncio.to_thread(_copy_file, path, new_path, exist_ok, keep_times)
    return True


async def symlink(
    path: str,
    new_path: str,
    *,
    exist_ok: bool = False,
    target_is_directory: bool = False,
) -> bool:
    """Create `new_path` as a symbolic link pointing at `path`.

    Returns:
        False if the link was not created because `new_path` exists and
        exist_ok is True, True otherwise.
    """
    try:
        with _translated():
            await aiofiles.os.symlink(path, new_path, target_is_directory=target_is_directory)
    except AlreadyExists:
        if exist_ok:
            return False
        raise
    return True


async def copy_symlink(
    path: str,
    new_path: str,
    *,
    keep_times: bool = False,
    exist_ok: bool = False,
) -> bool:
    """Recreate the symbolic link `path` at `new_path`, pointing at the same target.

    With keep_times, the times of the link itself (not its target) are copied.
    """
    target = await readlink(path)
    target_dir = await is_dir(os.path.join(os.path.dirname(path), target))
    success = await symlink(target, new_path, exist_ok=exist_ok, target_is_directory=target_dir)
    if not keep_times:
        return success
    st = await stat(path, preserve_symlinks=True)
    with _translated():
        await asyncio.to_thread(
            os.utime,
            new_path,
            ns=(st.st_atime_ns, st.st_mtime_ns),
            follow_symlinks=False,
        )
    return success


async def hardlink(path: str, new_path: str) -> bool:
    with _translated():
        await aiofiles.os.link(path, new_path)
    return True


async def unlink(path: str) -> bool:
    with _translated():
        await aiofiles.os.remove(path)
    return True


async def make_dir(
    path: str,
    *,
    mode: int = 0o700,
    parents: bool = False,
    exist_ok: bool = True,
) -> bool:
    """Create a directory.

    Args:
        path: Directory to create.
        mode: Permission bits for every directory created.
        parents: If True, create missing ancestors one at a time.
        exist_ok: If True, an existing directory is not an error.

    Returns:
        True if the directory already existed, False if it was created.
    """
    try:
        with _translated():
            await aiofiles.os.mkdir(path, mode)
        return False
    except AlreadyExists:
        if exist_ok:
            return True
        raise
    except NotFound:
        if not parents:
            raise
        stripped = path.rstrip("/") or path
        parent = os.path.dirname(stripped)
        # The root itself is missing; going up again would loop forever.
        if parent in (stripped, ""):
            raise
        await make_dir(parent, mode=mode, parents=True, exist_ok=True)
        return await make_dir(stripped, mode=mode, parents=False, exist_ok=exist_ok)


def _copy_stats(path: str, new_path: str, keep_times: bool) -> None:
    st = os.stat(path)
    os.chmod(new_path, stat_mod.S_IMODE(st.st_mode))
    if not keep_times:
        return
    times = (st.st_atime_ns, st.st_mtime_ns)
    os.utime(new_path, ns=times)
    if os.path.islink(new_path):
        os.utime(new_path, ns=times, follow_symlinks=False)


def _is_within(path: str, parent: str) -> bool:
    path, parent = os.path.realpath(path), os.path.realpath(parent)
    return path == parent or path.startswith(parent.rstrip(os.sep) + os.sep)


async def _copy_directory_contents(
    path: str,
    new_path: str,
    *,
    parents: bool,
    create_symlink: bool,
    keep_times: bool,
) -> None:
    await make_dir(new_path, parents=parents, exist_ok=True)
    items = await group_dir(path)

    async def copy_one_file(name: str) -> bool:
        return await copy_file(
            os.path.join(path, name),
            os.path.join(new_path, name),
            exist_ok=True,
            keep_times=keep_times,
        )

    async def copy_one_link(name: str) -> bool:
        return await copy_symlink(
            os.path.join(path, name),
            os.path.join(new_path, name),
            exist_ok=True,
            keep_times=keep_times,
        )

    async def copy_one_dir(name: str) -> bool:
        return await copy_directory(
            os.path.join(path, name),
            os.path.join(new_path, name),
            parents=parents,
            create_symlink=create_symlink,
            keep_times=keep_times,
        )

    await asyncio.gather(
        fan_out(copy_one_file, items["file"]),
        fan_out(copy_one_link, items["link"]),
        fan_out(copy_one_dir, items["directory"]),
    )
    if items["other"]:
        logger.debug("Not copying special files in {}: {}", path, sorted(items["other"]))

    with _translated():
        await asyncio.to_thread(_copy_stats, path, new_path, keep_times)


async def copy_directory(
    path: str,
    new_path: str,
    *,
    parents: bool = True,
    create_symlink: bool = False,
    keep_times: bool = False,
) -> bool:
    """Copy a directory tree.

    Args:
        path: Source directory.
        new_path: Destination directory.
        parents: If True, create missing parents of `new_path`.
        create_symlink: If True and `path` is a symbolic link, do not copy its
            contents but create a link to the same target. If `new_path` is an
            existing directory, the link is created inside it.
        keep_times: If True, copy access and modification times.

    Raises:
        AttachError: if `new_path` is `path` itself or lies inside it.
    """
    try:
        target: str | None = await readlink(path)
    except InvalidLink:
        target = None

    if target is not None and create_symlink:
        if await is_dir(new_path):
            new_path = os.path.join(new_path, os.path.basename(path.rstrip("/")))
        logger.debug("Linking {} -> {} instead of copying {}", new_path, target, path)
        await symlink(target, new_path, exist_ok=True, target_is_directory=True)
        return True

    if _is_within(new_path, path):
        msg = f"cannot copy a directory into itself: {path} -> {new_path}"
        raise AttachError(msg)

    logger.debug("Copying directory {} -> {}", path, new_path)
    await _copy_directory_contents(
        path,
        new_path,
        parents=parents,
        create_symlink=create_symlink,
        keep_times=keep_times,
    )
    return True


async def remove_directory(path: str, *, recursive: bool = False) -> bool:
    """Remove a directory.

    Raises:
        DirectoryNotEmpty: if the directory has entries and recursive is False.
    """
    if recursive:
        if await is_symlink(path):
            # Never descend into a link target.
            return await unlink(path)
        items = await group_dir(path)
        subdirs = items.pop("directory")
        rest = [name for names in items.values() for name in names]

        async def remove_subdir(name: str) -> bool:
            return await remove_directory(os.path.join(path, name), recursive=True)

        async def remove_entry(name: str) -> bool:
            return await unlink(os.path.join(path, name))

        await asyncio.gather(fan_out(remove_subdir, subdirs), fan_out(remove_entry, rest))

    try:
        with _translated():
            await aiofiles.os.rmdir(path)
    except AlreadyExists as e:
        # Some platforms report a non-empty directory as EEXIST.
        raise DirectoryNotEmpty(e.errno, e.strerror, e.filename) from e
    return True


async def download_file(
    url: str,
    dest: str,
    *,
    fetcher: FetcherProtocol,
    exist_ok: bool = False,
) -> bool:
    """Download `url` through the fetcher and copy the result to `dest`."""
    source = await fetcher.fetch(url)
    try:
        return await copy_file(source, dest, exist_ok=exist_ok)
    finally:
        try:
            await unlink(source)
        except NotFound:
            pass
