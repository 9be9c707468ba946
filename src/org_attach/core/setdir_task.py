"""Directory-change transaction: copy old to new, repoint DIR, delete old."""

import os

from loguru import logger

from org_attach.config import AttachConfig
from org_attach.core import fsops
from org_attach.core.node import AttachNode
from org_attach.core.paths import make_relative


class SetDirTask:
    """A single-use transaction changing a node's attachment directory.

    The old directory is captured when the task is created. `run()` executes
    copy, property change and delete in that order; each step is skipped when
    its flag is off or the paths it needs are missing.
    """

    def __init__(self, node: AttachNode, config: AttachConfig) -> None:
        self.node = node
        self.config = config
        self.old_dir: str | None = node.get_dir()
        self.new_dir: str | None = None
        self.do_copy = False
        self.do_delete = False
        self.do_property_change = False
        self._done = False

    async def copy(self) -> bool:
        old, new = self.old_dir, self.new_dir
        if not (self.do_copy and old and new):
            return False
        logger.debug("Copying attachments {} -> {}", old, new)
        return await fsops.copy_directory(
            old,
            new,
            parents=True,
            keep_times=True,
            create_symlink=self.config.copy_directory_create_symlink,
        )

    def property_value(self) -> str | None:
        """Return the DIR value to store for the new directory."""
        if not self.new_dir:
            return None
        if self.config.dir_relative:
            return make_relative(self.new_dir, self.node.base_dir)
        return os.path.abspath(self.new_dir)

    def change_property(self) -> None:
        if not self.do_property_change:
            return
        self.node.set_property("DIR", self.property_value())

    async def delete(self) -> bool:
        old = self.old_dir
        if not (self.do_delete and old):
            return False
        logger.debug("Deleting old attachment directory {}", old)
        return await fsops.remove_directory(old, recursive=True)

    async def run(self) -> None:
        if self._done:
            msg = "SetDirTask.run() called twice"
            raise RuntimeError(msg)
        self._done = True
        await self.copy()
        self.change_property()
        await self.delete()
