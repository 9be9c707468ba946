"""Strategies that bring a source into an attachment directory.

Each factory returns an importer: a coroutine function taking the target path
and returning whether the import happened.
"""

import errno
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import aiofiles

from org_attach.core import fsops
from org_attach.exceptions import AlreadyExists, InvalidConfiguration
from org_attach.protocols import FetcherProtocol

Importer = Callable[[str], Awaitable[bool]]


@dataclass(frozen=True)
class Buffer:
    """In-memory contents to be written out as an attachment."""

    name: str
    text: str


def import_file(source: str, method: str, *, create_symlink: bool = False) -> Importer:
    """Return an importer for a local file or directory.

    Args:
        source: Path of the file to attach.
        method: "mv" (rename), "cp" (copy, recursing into directories),
            "ln" (hard link) or "lns" (symbolic link).
        create_symlink: Passed to copy_directory() when copying a directory.
    """
    if method == "mv":

        async def move(target: str) -> bool:
            return await fsops.rename(source, target)

        return move

    if method == "cp":

        async def copy(target: str) -> bool:
            if await fsops.is_dir(source):
                return await fsops.copy_directory(
                    source,
                    target,
                    parents=False,
                    keep_times=False,
                    create_symlink=create_symlink,
                )
            return await fsops.copy_file(source, target, exist_ok=False)

        return copy

    if method == "ln":

        async def link(target: str) -> bool:
            return await fsops.hardlink(source, target)

        return link

    if method == "lns":

        async def symlink(target: str) -> bool:
            return await fsops.symlink(source, target, exist_ok=False)

        return symlink

    msg = f"unknown attach method: {method!r}"
    raise InvalidConfiguration(msg)


def import_url(url: str, fetcher: FetcherProtocol) -> Importer:
    async def download(target: str) -> bool:
        return await fsops.download_file(url, target, fetcher=fetcher, exist_ok=False)

    return download


def import_buffer(buffer: Buffer) -> Importer:
    """Return an importer writing the buffer's text.

    The importer raises AlreadyExists instead of overwriting a file.
    """

    async def write(target: str) -> bool:
        if await fsops.exists(target):
            raise AlreadyExists(errno.EEXIST, "File exists", target)
        try:
            async with aiofiles.open(target, "x", encoding="utf-8") as f:
                await f.write(buffer.text)
        except FileExistsError as e:
            raise AlreadyExists(errno.EEXIST, "File exists", target) from e
        return True

    return write
