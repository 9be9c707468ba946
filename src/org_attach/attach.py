"""Synchronous, interactive front end of the attachment core.

`Attach` turns configuration and user answers into the policies the core
expects, runs each operation to completion and reports the outcome.
"""

import asyncio
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

from loguru import logger

from org_attach.config import MAX_TIMEOUT
from org_attach.core.attach import AttachCore, AttachManyResult, NewDirMethod
from org_attach.core.importer import Buffer
from org_attach.core.node import AttachNode
from org_attach.exceptions import AttachError, InvalidConfiguration, NoAttachmentDirectory, UserCancelled
from org_attach.links import ExpandResult
from org_attach.protocols import PrompterProtocol

T = TypeVar("T")

Opener = Callable[[str], Any]


def _wait(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(asyncio.wait_for(coro, MAX_TIMEOUT))


def _plural(count: int) -> str:
    return "" if count == 1 else "s"


class Attach:
    """Attachment commands for one user session.

    Args:
        core: The attachment core to drive.
        prompter: Asks the user for names, directories and confirmations.
        opener: Called with a path to show an attachment or directory to the
            user; if None, paths are only returned.
    """

    def __init__(
        self,
        core: AttachCore,
        prompter: PrompterProtocol,
        *,
        opener: Opener | None = None,
    ) -> None:
        self.core = core
        self.config = core.config
        self.prompter = prompter
        self.opener = opener

    # --- Questions ---

    def set_dir_method(self) -> NewDirMethod:
        """Return how to create a directory for a node that has none.

        Questions and errors are deferred until a directory is actually needed.
        """
        method = self.config.preferred_new_method
        if method is None:

            def refuse() -> str:
                msg = "No existing directory. DIR or ID property has to be explicitly created"
                raise NoAttachmentDirectory(msg)

            return refuse
        if method in ("id", "dir"):
            return method
        if method != "ask":
            msg = f"invalid value for preferred_new_method: {method!r}"
            raise InvalidConfiguration(msg)

        def ask() -> str:
            return self.prompter.select(
                "How to create attachments directory?",
                [("id", "Create new ID property"), ("dir", "Create new DIR property")],
            )

        return ask

    def new_dir_prop(self, prev_dir: str | None = None) -> str:
        new_dir = self.prompter.input("Attachment directory", prev_dir or "")
        if not new_dir:
            raise UserCancelled
        return new_dir

    def _confirm_copy(self, old: str, new: str) -> bool:
        return self.prompter.confirm(f'Copy attachments from "{old}" to "{new}"?')

    def _confirm_delete(self, old: str) -> bool:
        return self.prompter.confirm(f'Delete "{old}"?')

    def select_node(self, candidates: list[AttachNode]) -> AttachNode:
        nodes = self.core.dedupe_nodes(candidates)
        if len(nodes) == 1:
            return nodes[0]
        choice = self.prompter.select(
            "Select an attachment location",
            [(str(i), f"{node.filename}: {node.title}") for i, node in enumerate(nodes)],
        )
        return nodes[int(choice)]

    def find_node(self, candidates: list[AttachNode], ask: str | None = None) -> AttachNode:
        """Pick the node to attach to among candidates.

        Args:
            candidates: Possible attachment locations.
            ask: "always" to let the user pick, "multiple" to ask only if
                there is more than one candidate, None to never ask.

        Raises:
            AttachError: if there is no candidate, or several and ask is None.
        """
        if not candidates:
            msg = "nowhere to attach to"
            raise AttachError(msg)
        if ask == "always":
            return self.select_node(candidates)
        if ask == "multiple":
            return candidates[0] if len(candidates) == 1 else self.select_node(candidates)
        if ask is not None:
            msg = f"invalid value for ask: {ask!r}"
            raise InvalidConfiguration(msg)
        if len(candidates) == 1:
            return candidates[0]
        msg = "more than one possible attachment location"
        raise AttachError(msg)

    # --- Directories ---

    def get_dir(self, node: AttachNode, no_fs_check: bool = False) -> str | None:
        return self.core.get_dir_or_none(node, no_fs_check)

    def get_dir_or_create(self, node: AttachNode) -> str:
        """Return the existing or a new attachment directory of the node.

        `preferred_new_method` decides how a new directory is declared.
        """
        return _wait(self.core.get_dir_or_create(node, self.set_dir_method(), self.new_dir_prop))

    def set_directory(self, node: AttachNode, new_dir: str | None = None) -> str | None:
        """Set the DIR property, offering to copy the old attachments and delete the old directory."""
        if new_dir is None:
            new_dir = self.new_dir_prop(node.get_dir())
        return _wait(
            self.core.set_directory(
                node,
                new_dir,
                do_copy=self._confirm_copy,
                do_delete=self._confirm_delete,
            )
        )

    def unset_directory(self, node: AttachNode) -> str | None:
        """Remove the DIR property.

        Removing DIR may uncover an ID-based or inherited directory; the user
        is then offered to move the attachments there.
        """
        return _wait(
            self.core.unset_directory(
                node,
                do_copy=self._confirm_copy,
                do_delete=self._confirm_delete,
            )
        )

    def reveal(self, node: AttachNode) -> str:
        attach_dir = self.get_dir_or_create(node)
        if self.opener is not None:
            self.opener(attach_dir)
        return attach_dir

    # --- Attaching ---

    def attach(self, node: AttachNode, source: str | None = None, *, method: str | None = None) -> str | None:
        if not source:
            source = self.prompter.input("File to keep as an attachment")
        if not source:
            raise UserCancelled
        name = _wait(
            self.core.attach(
                node,
                source,
                method=method,
                set_dir_method=self.set_dir_method(),
                new_dir=self.new_dir_prop,
            )
        )
        if name:
            logger.info("File {} is now an attachment", name)
        return name

    def attach_url(self, node: AttachNode, url: str | None = None) -> str | None:
        if not url:
            url = self.prompter.input("URL of the file to attach")
        if not url:
            raise UserCancelled
        name = _wait(
            self.core.attach_url(node, url, set_dir_method=self.set_dir_method(), new_dir=self.new_dir_prop)
        )
        if name:
            logger.info("File {} is now an attachment", name)
        return name

    def attach_buffer(self, node: AttachNode, buffer: Buffer) -> str | None:
        name = _wait(
            self.core.attach_buffer(
                node, buffer, set_dir_method=self.set_dir_method(), new_dir=self.new_dir_prop
            )
        )
        if name:
            logger.info("File {} is now an attachment", name)
        return name

    def attach_many(
        self,
        node: AttachNode,
        sources: list[str],
        *,
        method: str | None = None,
    ) -> AttachManyResult:
        result = _wait(
            self.core.attach_many(
                node,
                sources,
                method=method,
                set_dir_method=self.set_dir_method(),
                new_dir=self.new_dir_prop,
            )
        )
        if result.successes + result.failures > 0:
            logger.info(
                "attached {} file{} to {}", result.successes, _plural(result.successes), node.title
            )
        if result.failures > 0:
            logger.error("failed to attach {} file{}", result.failures, _plural(result.failures))
        return result

    def attach_new(self, node: AttachNode, name: str | None = None) -> str:
        """Create an empty attachment and open it."""
        if not name:
            name = self.prompter.input("Create attachment named")
        if not name:
            raise UserCancelled
        path = _wait(
            self.core.attach_new(node, name, set_dir_method=self.set_dir_method(), new_dir=self.new_dir_prop)
        )
        logger.info("new attachment {}", name)
        if self.opener is not None:
            self.opener(path)
        return path

    # --- Attachments ---

    def list_attachments(self, node: AttachNode, *, show_hidden: bool = False) -> list[str]:
        return _wait(self.core.list_attachments(node, show_hidden=show_hidden))

    def _pick_attachment(self, node: AttachNode, prompt: str) -> str:
        names = self.list_attachments(node)
        if not names:
            msg = f"No attachments in {self.core.get_dir(node)}"
            raise AttachError(msg)
        return self.prompter.select(prompt, [(name, name) for name in names])

    def open(self, node: AttachNode, name: str | None = None) -> str:
        if not name:
            name = self._pick_attachment(node, "Open attachment")
        path = self.core.open(node, name)
        if self.opener is not None:
            self.opener(path)
        return path

    def delete_one(self, node: AttachNode, name: str | None = None) -> None:
        if not name:
            name = self._pick_attachment(node, "Delete attachment")
        _wait(self.core.delete_one(node, name))
        logger.info("Deleted attachment {}", name)

    def delete_all(self, node: AttachNode, force: bool = False) -> str:
        """Delete the whole attachment directory of the node.

        Without force, ask before deleting and again before deleting
        recursively.
        """
        if not force and not self.prompter.confirm("Remove all attachments?"):
            raise UserCancelled

        def recursive(attach_dir: str) -> bool:
            return force or self.prompter.confirm(f"{attach_dir} is not empty. Recursive?")

        attach_dir = _wait(self.core.delete_all(node, recursive))
        logger.info("Attachment directory removed")
        return attach_dir

    def maybe_delete_archived(self, node: AttachNode) -> bool:
        """Delete an archived node's attachments as `archive_delete` says."""
        mode = self.config.archive_delete
        if mode == "never" or self.core.get_dir_or_none(node) is None:
            return False
        self.delete_all(node, force=mode == "always")
        return True

    def sync(self, node: AttachNode) -> str | None:
        """Update the auto-tag, possibly deleting an empty attachment directory."""
        mode = self.config.sync_delete_empty_dir
        policies: dict[str, bool | Callable[[str], bool]] = {
            "always": True,
            "never": False,
            "ask": lambda _dir: self.prompter.confirm("Attachment directory is empty. Delete?"),
        }
        if mode not in policies:
            msg = f"invalid value for sync_delete_empty_dir: {mode!r}"
            raise InvalidConfiguration(msg)
        deleted = _wait(self.core.sync(node, policies[mode]))
        if deleted:
            logger.info("Removed empty attachment directory {}", deleted)
        return deleted

    def expand_links(self, text: str, node: AttachNode) -> ExpandResult:
        result = self.core.expand_links(text, node)
        if result.missed:
            logger.warning("failed to expand {}/{} attachment links", result.missed, result.total)
        else:
            logger.info("expanded {} attachment links", result.total)
        return result
