"""Attachment directories for outline entries."""

from org_attach.attach import Attach
from org_attach.config import AttachConfig, load_config
from org_attach.core.attach import AttachCore, AttachManyResult
from org_attach.events import AttachChanged, AttachOpened, EventBus
from org_attach.links import LinkStore
from org_attach.outline import OutlineDocument
from org_attach.protocols import DocumentProtocol, EntryProtocol, FetcherProtocol, PrompterProtocol

__all__ = [
    "Attach",
    "AttachChanged",
    "AttachConfig",
    "AttachCore",
    "AttachManyResult",
    "AttachOpened",
    "DocumentProtocol",
    "EntryProtocol",
    "EventBus",
    "FetcherProtocol",
    "LinkStore",
    "OutlineDocument",
    "PrompterProtocol",
    "load_config",
]
