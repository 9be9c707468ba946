"""Protocols for the collaborators of the attachment core."""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class EntryProtocol(Protocol):
    """A sub-entry (headline) of an outline document."""

    @property
    def start(self) -> int:
        """Unique, positive position of the entry within its document."""
        ...

    @property
    def title(self) -> str:
        """Display title of the entry."""
        ...

    def get_property(self, name: str, search_parents: bool = False) -> str | None:
        """Read a property, optionally inherited from parent entries."""
        ...

    def set_property(self, name: str, value: str | None) -> None:
        """Write a property; None removes it."""
        ...

    def get_own_tags(self) -> list[str]:
        """Return the tags set directly on this entry."""
        ...

    def set_tags(self, tags: list[str]) -> None:
        """Replace the tags of this entry."""
        ...

    def id_get_or_create(self) -> str:
        """Return the ID property, creating and storing one if missing."""
        ...


@runtime_checkable
class DocumentProtocol(Protocol):
    """An outline document owning entries and document-level properties."""

    @property
    def filename(self) -> str:
        """Absolute path of the document file."""
        ...

    @property
    def title(self) -> str:
        """Display title of the document."""
        ...

    def get_property(self, name: str) -> str | None:
        """Read a document-level property."""
        ...

    def set_property(self, name: str, value: str | None) -> None:
        """Write a document-level property; None removes it."""
        ...

    def id_get_or_create(self) -> str:
        """Return the document ID, creating and storing one if missing."""
        ...

    def entry_at(self, position: int) -> EntryProtocol | None:
        """Return the closest entry at or before `position`."""
        ...


@runtime_checkable
class EventSinkProtocol(Protocol):
    """Fire-and-forget event dispatch."""

    def dispatch(self, event: Any) -> None:
        """Deliver an event to all subscribers."""
        ...


@runtime_checkable
class LinkStoreProtocol(Protocol):
    """Registry of links from attachments back to their sources."""

    def store_link_to_attachment(self, *, attach_dir: str, original: str) -> str:
        """Record a link for a new attachment and return the link text."""
        ...


@runtime_checkable
class FetcherProtocol(Protocol):
    """Remote-fetch facility."""

    async def fetch(self, url: str) -> str:
        """Download `url` to a local temporary file and return its path."""
        ...


@runtime_checkable
class PrompterProtocol(Protocol):
    """Interactive prompts. Cancellation raises UserCancelled."""

    def confirm(self, message: str) -> bool:
        """Ask a yes/no question."""
        ...

    def input(self, message: str, default: str = "") -> str:
        """Ask for free text."""
        ...

    def select(self, title: str, choices: list[tuple[str, str]]) -> str:
        """Pick one of `(value, label)` choices and return the value."""
        ...
