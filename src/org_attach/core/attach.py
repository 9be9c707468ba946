"""The attachment core: attach, detach, sync and relocate attachment directories.

All operations take the node to work on. Interactive decisions come in as
policies: either a plain value or a callable evaluated at the point of use,
which may raise UserCancelled to abort the operation.
"""

import errno
import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, TypeVar

from loguru import logger

from org_attach.config import ATTACH_METHODS, AttachConfig
from org_attach.core import fsops, id_dir
from org_attach.core.importer import Buffer, Importer, import_buffer, import_file, import_url
from org_attach.core.node import AttachNode, DocumentNode, EntryNode, node_at
from org_attach.core.paths import basename_safe, substitute_path
from org_attach.core.setdir_task import SetDirTask
from org_attach.events import AttachChanged, AttachOpened
from org_attach.exceptions import (
    AttachError,
    CannotDetermineName,
    DirectoryNotEmpty,
    FsError,
    IdPathResolutionFailed,
    InvalidConfiguration,
    IsDirectory,
    NoAttachmentDirectory,
)
from org_attach.links import ExpandResult, expand_attachment_links
from org_attach.protocols import (
    DocumentProtocol,
    EntryProtocol,
    EventSinkProtocol,
    FetcherProtocol,
    LinkStoreProtocol,
)

T = TypeVar("T")

Policy = bool | Callable[..., bool]
NewDirMethod = str | Callable[[], str]
NewDir = str | Callable[[], str] | None

# Mode of attachment directories created on demand.
ATTACH_DIR_MODE = 0o755


def resolve(value: T | Callable[..., T], *args: Any) -> T:
    """Return `value`, calling it with `args` first if it is callable."""
    if callable(value):
        return value(*args)  # type: ignore[no-any-return]
    return value


@dataclass
class AttachManyResult:
    successes: int = 0
    failures: int = 0


def _is_directory_error(err: FsError) -> bool:
    # Linux reports EISDIR when unlinking a directory; BSDs report EPERM.
    return isinstance(err, IsDirectory) or err.errno == errno.EPERM


class AttachCore:
    """Attachment operations on outline nodes."""

    def __init__(
        self,
        config: AttachConfig,
        *,
        events: EventSinkProtocol,
        links: LinkStoreProtocol,
        fetcher: FetcherProtocol | None = None,
    ) -> None:
        self.config = config
        self.events = events
        self.links = links
        self.fetcher = fetcher

    # --- Nodes ---

    def get_node(self, document: DocumentProtocol, position: int = 0) -> AttachNode:
        """Return the attachment node at a position of a document."""
        return node_at(document, position, self.config)

    def get_entry_node(self, document: DocumentProtocol, entry: EntryProtocol) -> AttachNode:
        return EntryNode(document, entry, self.config)

    def get_document_node(self, document: DocumentProtocol) -> AttachNode:
        return DocumentNode(document, self.config)

    @staticmethod
    def dedupe_nodes(nodes: Iterable[AttachNode]) -> list[AttachNode]:
        """Drop nodes referring to the same location, keeping the first of each."""
        unique: dict[tuple[str, int], AttachNode] = {}
        for node in nodes:
            unique.setdefault(node.key, node)
        return list(unique.values())

    # --- Directories ---

    def get_dir_or_none(self, node: AttachNode, no_fs_check: bool = False) -> str | None:
        """Return the attachment directory of a node.

        DIR is checked first, then ID. Unless no_fs_check is True, a directory
        that does not exist is reported as None.
        """
        dir_ = node.get_dir()
        if dir_ and (no_fs_check or os.path.isdir(dir_)):
            return dir_
        return None

    def get_dir(self, node: AttachNode, no_fs_check: bool = False) -> str:
        """Like get_dir_or_none(), but raise NoAttachmentDirectory instead of returning None."""
        dir_ = self.get_dir_or_none(node, no_fs_check)
        if dir_ is None:
            msg = f"No attachment directory for {node.title!r}"
            raise NoAttachmentDirectory(msg)
        return dir_

    async def get_dir_or_create(self, node: AttachNode, method: NewDirMethod, new_dir: NewDir) -> str:
        """Return the node's attachment directory, creating it if needed.

        If the node declares no directory yet, `method` decides how to get one:
        "id" derives it from a (possibly new) ID property, "dir" stores `new_dir`
        as the DIR property. The directory is then created on disk.

        Raises:
            IdPathResolutionFailed: if no ID-to-path strategy handles the ID.
            InvalidConfiguration: on an unknown method.
        """
        declared = self.get_dir_or_none(node, no_fs_check=True)
        if declared and os.path.isdir(declared):
            return declared

        dir_ = declared
        if dir_ is None:
            method = resolve(method)
            if method == "id":
                id_ = node.id_get_or_create()
                dir_ = id_dir.get_from_id(
                    id_,
                    base_dir=substitute_path(self.config.id_dir, node.base_dir),
                    strategies=self.config.id_to_path_functions,
                )
                if not dir_:
                    msg = f"Failed to get folder for id {id_!r}, adjust id_to_path_functions"
                    raise IdPathResolutionFailed(msg)
            elif method == "dir":
                chosen = resolve(new_dir) if new_dir is not None else None
                if not chosen:
                    msg = "method 'dir' needs a directory"
                    raise InvalidConfiguration(msg)
                dir_ = self.set_initial_directory(node, chosen)
            else:
                msg = f"unknown method: {method!r}"
                raise InvalidConfiguration(msg)

        logger.debug("Creating attachment directory {}", dir_)
        await fsops.make_dir(dir_, mode=ATTACH_DIR_MODE, parents=True, exist_ok=True)
        return dir_

    async def set_directory(
        self,
        node: AttachNode,
        new_dir: str | None,
        *,
        do_copy: Policy,
        do_delete: Policy,
    ) -> str | None:
        """Set the DIR property, optionally moving the old attachments there.

        Args:
            node: Node to change.
            new_dir: New attachment directory; relative paths are anchored at
                the node's document. An empty value removes DIR.
            do_copy: Whether to copy the old directory; callables get
                (old_dir, new_dir).
            do_delete: Whether to delete the old directory; callables get
                (old_dir,).

        Returns:
            The new directory, or None if DIR was removed.
        """
        task = SetDirTask(node, self.config)
        task.new_dir = substitute_path(new_dir, node.base_dir) if new_dir else None
        task.do_property_change = True
        self._decide(task, do_copy, do_delete)
        await task.run()
        return task.new_dir

    def set_initial_directory(self, node: AttachNode, new_dir: str) -> str:
        """Like set_directory() for a node without a directory; nothing to copy or delete."""
        task = SetDirTask(node, self.config)
        if task.old_dir is not None:
            msg = f"Node {node.title!r} already has attachment directory {task.old_dir!r}"
            raise AttachError(msg)
        if not new_dir:
            msg = f"No attachment directory given for {node.title!r}"
            raise AttachError(msg)
        task.new_dir = substitute_path(new_dir, node.base_dir)
        task.do_property_change = True
        task.change_property()
        resolved = node.get_dir()
        if resolved is None:
            msg = f"Storing DIR for {node.title!r} failed"
            raise AttachError(msg)
        return resolved

    async def unset_directory(
        self,
        node: AttachNode,
        *,
        do_copy: Policy,
        do_delete: Policy,
    ) -> str | None:
        """Remove the DIR property.

        The node may still have a directory afterwards, derived from its ID or
        an inherited DIR; the policies decide whether to move attachments there.

        Returns:
            The directory in effect after the change, if any.
        """
        task = SetDirTask(node, self.config)
        node.set_property("DIR", None)
        task.new_dir = node.get_dir()
        task.do_property_change = False
        self._decide(task, do_copy, do_delete)
        await task.run()
        return task.new_dir

    @staticmethod
    def _decide(task: SetDirTask, do_copy: Policy, do_delete: Policy) -> None:
        old, new = task.old_dir, task.new_dir
        if not old or not os.path.isdir(old):
            return
        if new and os.path.abspath(old) == os.path.abspath(new):
            # Same directory: copying is pointless and deleting would lose everything.
            return
        if new:
            task.do_copy = resolve(do_copy, old, new)
        task.do_delete = resolve(do_delete, old)

    # --- Tags ---

    def tag(self, node: AttachNode) -> None:
        node.toggle_auto_tag(True)

    def untag(self, node: AttachNode) -> None:
        node.toggle_auto_tag(False)

    # --- Attaching ---

    def _changed(self, node: AttachNode, attach_dir: str) -> None:
        self.events.dispatch(AttachChanged(node, attach_dir))

    async def _import(
        self,
        node: AttachNode,
        importer: Importer,
        *,
        name: str,
        original: str | None,
        set_dir_method: NewDirMethod,
        new_dir: NewDir,
    ) -> str | None:
        attach_dir = await self.get_dir_or_create(node, set_dir_method, new_dir)
        attach_file = os.path.join(attach_dir, name)
        if not await importer(attach_file):
            logger.debug("Importer reported nothing done for {}", attach_file)
            return None
        self._changed(node, attach_dir)
        node.toggle_auto_tag(True)
        self.links.store_link_to_attachment(attach_dir=attach_dir, original=original or attach_file)
        return name

    def _method(self, method: str | None) -> str:
        method = method or self.config.method
        if method not in ATTACH_METHODS:
            msg = f"unknown attach method: {method!r}"
            raise InvalidConfiguration(msg)
        return method

    async def attach(
        self,
        node: AttachNode,
        source: str,
        *,
        method: str | None = None,
        set_dir_method: NewDirMethod,
        new_dir: NewDir = None,
    ) -> str | None:
        """Move, copy or link a file into the node's attachment directory.

        Returns:
            The attachment name, or None if the import did not happen.

        Raises:
            CannotDetermineName: if `source` has no usable base name.
        """
        name = basename_safe(source)
        if name is None:
            msg = f"cannot determine attachment name: {source!r}"
            raise CannotDetermineName(msg)
        importer = import_file(
            source,
            self._method(method),
            create_symlink=self.config.copy_directory_create_symlink,
        )
        return await self._import(
            node,
            importer,
            name=name,
            original=source,
            set_dir_method=set_dir_method,
            new_dir=new_dir,
        )

    async def attach_url(
        self,
        node: AttachNode,
        url: str,
        *,
        set_dir_method: NewDirMethod,
        new_dir: NewDir = None,
    ) -> str | None:
        """Download a URL into the node's attachment directory."""
        name = basename_safe(url)
        if name is None:
            msg = f"cannot determine attachment name: {url!r}"
            raise CannotDetermineName(msg)
        if self.fetcher is None:
            msg = "no remote fetcher configured"
            raise InvalidConfiguration(msg)
        return await self._import(
            node,
            import_url(url, self.fetcher),
            name=name,
            original=url,
            set_dir_method=set_dir_method,
            new_dir=new_dir,
        )

    async def attach_buffer(
        self,
        node: AttachNode,
        buffer: Buffer,
        *,
        set_dir_method: NewDirMethod,
        new_dir: NewDir = None,
    ) -> str | None:
        """Write a buffer's text into the node's attachment directory.

        Raises:
            AlreadyExists: instead of overwriting an existing attachment.
        """
        name = basename_safe(buffer.name)
        if name is None:
            msg = f"cannot determine name of buffer {buffer.name!r}"
            raise CannotDetermineName(msg)
        # Link back to the buffer's file if it has one, else to the new attachment.
        original = buffer.name if await fsops.exists(buffer.name) else None
        return await self._import(
            node,
            import_buffer(buffer),
            name=name,
            original=original,
            set_dir_method=set_dir_method,
            new_dir=new_dir,
        )

    async def attach_new(
        self,
        node: AttachNode,
        name: str,
        *,
        set_dir_method: NewDirMethod,
        new_dir: NewDir = None,
    ) -> str:
        """Create a new, empty attachment file and return its path.

        Raises:
            AlreadyExists: if the attachment exists.
        """
        attach_dir = await self.get_dir_or_create(node, set_dir_method, new_dir)
        path = os.path.join(attach_dir, name)
        await import_buffer(Buffer(name=name, text=""))(path)
        self._changed(node, attach_dir)
        node.toggle_auto_tag(True)
        return path

    async def attach_many(
        self,
        node: AttachNode,
        sources: list[str],
        *,
        method: str | None = None,
        set_dir_method: NewDirMethod,
        new_dir: NewDir = None,
    ) -> AttachManyResult:
        """Attach several files concurrently.

        A failing source is counted and logged; it does not stop the others.
        """
        if not sources:
            return AttachManyResult()
        method = self._method(method)
        attach_dir = await self.get_dir_or_create(node, set_dir_method, new_dir)

        async def attach_one(source: str) -> bool:
            try:
                name = basename_safe(source)
                if name is None:
                    msg = f"cannot determine attachment name: {source!r}"
                    raise CannotDetermineName(msg)
                importer = import_file(
                    source, method, create_symlink=self.config.copy_directory_create_symlink
                )
                success = await importer(os.path.join(attach_dir, name))
            except AttachError as e:
                logger.warning("Failed to attach {}: {}", source, e)
                return False
            if success:
                self.links.store_link_to_attachment(attach_dir=attach_dir, original=source)
            return success

        outcomes = await fsops.fan_out(attach_one, sources)
        self._changed(node, attach_dir)
        node.toggle_auto_tag(True)
        successes = sum(1 for ok in outcomes if ok)
        return AttachManyResult(successes=successes, failures=len(outcomes) - successes)

    # --- Opening and listing ---

    def open(self, node: AttachNode, name: str) -> str:
        """Announce that an attachment is being opened and return its path."""
        path = os.path.join(self.get_dir(node), name)
        self.events.dispatch(AttachOpened(node, path))
        return path

    async def list_attachments(self, node: AttachNode, *, show_hidden: bool = False) -> list[str]:
        """List the node's attachments: subdirectories (with `/`) first, then files.

        Hidden and litter entries are left out unless show_hidden is True.

        Raises:
            NoAttachmentDirectory: if the node has no existing directory.
        """
        attach_dir = self.get_dir(node)
        dirs: list[str] = []
        files: list[str] = []
        for name in await fsops.iter_dir_names(attach_dir):
            if not show_hidden and (
                name.startswith(".") or name.endswith(self.config.litter_suffix)
            ):
                continue
            if await fsops.is_dir(os.path.join(attach_dir, name)):
                dirs.append(name + "/")
            else:
                files.append(name)
        return sorted(dirs) + sorted(files)

    def expand_links(self, text: str, node: AttachNode) -> ExpandResult:
        """Turn the node's `attachment:` links into `file:` links."""
        return expand_attachment_links(text, self.get_dir_or_none(node, no_fs_check=True))

    # --- Deleting and syncing ---

    async def delete_one(self, node: AttachNode, name: str) -> None:
        attach_dir = self.get_dir(node)
        await fsops.unlink(os.path.join(attach_dir, name))
        self._changed(node, attach_dir)

    async def delete_all(self, node: AttachNode, recursive: Policy) -> str:
        """Delete the node's whole attachment directory.

        The directory is first unlinked as if it were a file, then removed as
        an empty directory; only if it is not empty is `recursive` consulted.

        Raises:
            DirectoryNotEmpty: if the directory has entries and recursive
                removal is declined.
        """
        attach_dir = self.get_dir(node)
        try:
            await fsops.unlink(attach_dir)
        except FsError as e:
            if not _is_directory_error(e):
                raise
            try:
                await fsops.remove_directory(attach_dir)
            except DirectoryNotEmpty:
                if not resolve(recursive, attach_dir):
                    raise
                await fsops.remove_directory(attach_dir, recursive=True)
        logger.debug("Removed attachment directory {}", attach_dir)
        self._changed(node, attach_dir)
        node.toggle_auto_tag(False)
        return attach_dir

    async def has_any_non_litter_files(self, directory: str) -> bool:
        suffix = self.config.litter_suffix
        return any(not name.endswith(suffix) for name in await fsops.iter_dir_names(directory))

    async def sync(self, node: AttachNode, delete_empty_dir: Policy) -> str | None:
        """Bring the auto-tag in line with the attachment directory.

        The tag is set if the directory holds any file that is not litter. An
        empty directory is removed if `delete_empty_dir` agrees.

        Returns:
            The directory if it was deleted, else None.
        """
        attach_dir = self.get_dir_or_none(node)
        if not attach_dir:
            self.untag(node)
            return None
        self._changed(node, attach_dir)
        node.toggle_auto_tag(await self.has_any_non_litter_files(attach_dir))
        if not await fsops.is_empty_dir(attach_dir):
            return None
        if not resolve(delete_empty_dir, attach_dir):
            return None
        await fsops.remove_directory(attach_dir)
        logger.debug("Removed empty attachment directory {}", attach_dir)
        return attach_dir
