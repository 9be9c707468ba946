"""Attachment nodes: locations in an outline that may own an attachment directory.

A node is either a whole document (`DocumentNode`) or one of its entries
(`EntryNode`). Nodes are cheap, transient views; all state lives in the
document's properties and tags.
"""

import os
from abc import ABC, abstractmethod

from org_attach.config import AttachConfig
from org_attach.core import id_dir
from org_attach.core.paths import substitute_path
from org_attach.protocols import DocumentProtocol, EntryProtocol


def use_inheritance(property_name: str, config: AttachConfig) -> bool:
    """Decide whether a property lookup searches parent entries.

    `config.use_inheritance` may force this on or off; "selective" defers to
    the per-property default.
    """
    if config.use_inheritance == "always":
        return True
    if config.use_inheritance == "never":
        return False
    return config.inherits(property_name)


def toggle_entry_tag(entry: EntryProtocol, tag: str, onoff: bool | None = None) -> bool:
    """Add (True), remove (False) or toggle (None) a tag on an entry.

    Returns:
        Whether the tag is now set.
    """
    tags = entry.get_own_tags()
    present = tag in tags
    if onoff is None:
        onoff = not present
    if onoff and not present:
        tags.append(tag)
    elif not onoff and present:
        tags = [t for t in tags if t != tag]
    entry.set_tags(tags)
    return onoff


class AttachNode(ABC):
    """Common interface of document and entry nodes."""

    def __init__(self, document: DocumentProtocol, config: AttachConfig) -> None:
        self.document = document
        self.config = config

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.filename!r}, start={self.start})"

    @property
    def filename(self) -> str:
        return self.document.filename

    @property
    def base_dir(self) -> str:
        """Directory of the owning document; relative paths are anchored here."""
        return os.path.dirname(self.filename)

    @property
    @abstractmethod
    def title(self) -> str: ...

    @property
    @abstractmethod
    def start(self) -> int:
        """Start position, unique per node within one document; 0 for the document."""

    @property
    def key(self) -> tuple[str, int]:
        """Identity of the location this node refers to."""
        return (self.filename, self.start)

    @abstractmethod
    def get_property(self, name: str, search_parents: bool | None = None) -> str | None: ...

    @abstractmethod
    def set_property(self, name: str, value: str | None) -> None: ...

    @abstractmethod
    def id_get_or_create(self) -> str: ...

    @abstractmethod
    def toggle_tag(self, tag: str, onoff: bool | None = None) -> bool | None: ...

    def toggle_auto_tag(self, onoff: bool | None = None) -> bool | None:
        """Toggle the configured auto-tag; does nothing if auto-tagging is off."""
        if not self.config.auto_tag:
            return None
        return self.toggle_tag(self.config.auto_tag, onoff)

    def get_dir(self) -> str | None:
        """Find the attachment directory of this node.

        An explicit DIR property wins over one derived from the ID property.
        A DIR directory is returned even if it does not exist; an ID-derived
        one only if it does.
        """
        dir_ = self.get_property("DIR")
        if dir_:
            return substitute_path(dir_, self.base_dir)
        id_ = self.get_property("ID")
        if id_:
            return id_dir.get_existing_from_id(
                id_,
                base_dir=substitute_path(self.config.id_dir, self.base_dir),
                fallback_dir=substitute_path(self.config.fallback_id_dir, self.base_dir),
                strategies=self.config.id_to_path_functions,
            )
        return None


class DocumentNode(AttachNode):
    """The whole document, used when no entry is selected."""

    @property
    def title(self) -> str:
        return self.document.title

    @property
    def start(self) -> int:
        return 0

    def get_property(self, name: str, search_parents: bool | None = None) -> str | None:
        return self.document.get_property(name)

    def set_property(self, name: str, value: str | None) -> None:
        self.document.set_property(name, value)

    def id_get_or_create(self) -> str:
        return self.document.id_get_or_create()

    def toggle_tag(self, tag: str, onoff: bool | None = None) -> bool | None:
        # Document-level tags cannot be changed.
        return None


class EntryNode(AttachNode):
    """A single entry of a document."""

    def __init__(
        self,
        document: DocumentProtocol,
        entry: EntryProtocol,
        config: AttachConfig,
    ) -> None:
        super().__init__(document, config)
        self.entry = entry

    @property
    def title(self) -> str:
        return self.entry.title

    @property
    def start(self) -> int:
        return self.entry.start

    def get_property(self, name: str, search_parents: bool | None = None) -> str | None:
        if search_parents is None:
            search_parents = use_inheritance(name, self.config)
        value = self.entry.get_property(name, search_parents)
        if value is not None or not search_parents:
            return value
        return self.document.get_property(name)

    def set_property(self, name: str, value: str | None) -> None:
        self.entry.set_property(name, value)

    def id_get_or_create(self) -> str:
        return self.entry.id_get_or_create()

    def toggle_tag(self, tag: str, onoff: bool | None = None) -> bool | None:
        return toggle_entry_tag(self.entry, tag, onoff)


def node_at(document: DocumentProtocol, position: int, config: AttachConfig) -> AttachNode:
    """Return the node at `position`: the closest entry before it, else the document."""
    entry = document.entry_at(position)
    if entry is None:
        return DocumentNode(document, config)
    return EntryNode(document, entry, config)
