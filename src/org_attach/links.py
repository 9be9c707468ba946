"""Links from outline text to attachments."""

import os
import re
from dataclasses import dataclass

from loguru import logger

from org_attach.core.paths import basename_safe

ATTACHMENT_LINK_RE = re.compile(r"\[\[attachment:([^\]]+)\]([\[\]])")


@dataclass(frozen=True)
class StoredLink:
    link: str
    attach_dir: str
    original: str


@dataclass(frozen=True)
class ExpandResult:
    text: str
    total: int
    missed: int


class LinkStore:
    """In-memory registry of links to new attachments, most recent last."""

    def __init__(self) -> None:
        self.links: list[StoredLink] = []

    def store_link_to_attachment(self, *, attach_dir: str, original: str) -> str:
        """Record where an attachment came from and return its link text."""
        name = basename_safe(original) or original
        link = f"[[attachment:{name}]]"
        self.links.append(StoredLink(link=link, attach_dir=attach_dir, original=original))
        logger.debug("Stored link {} (from {})", link, original)
        return link

    def last(self) -> StoredLink | None:
        return self.links[-1] if self.links else None

    def find_original(self, attach_dir: str, name: str) -> str | None:
        """Return the source an attachment was created from, if known."""
        for stored in reversed(self.links):
            if stored.attach_dir == attach_dir and stored.link == f"[[attachment:{name}]]":
                return stored.original
        return None


def expand_attachment_links(text: str, attach_dir: str | None) -> ExpandResult:
    """Rewrite `[[attachment:NAME]...` links into `[[file:DIR/NAME]...` links.

    Links are left alone (and counted as missed) when there is no directory.
    """
    total = 0
    missed = 0

    def replace(match: re.Match[str]) -> str:
        nonlocal total, missed
        total += 1
        if not attach_dir:
            missed += 1
            return match.group(0)
        name, bracket = match.group(1), match.group(2)
        return f"[[file:{os.path.join(attach_dir, name)}]{bracket}"

    expanded = ATTACHMENT_LINK_RE.sub(replace, text)
    return ExpandResult(text=expanded, total=total, missed=missed)
