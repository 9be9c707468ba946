"""Events fired by the attachment core, and a small synchronous event bus."""

from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger

from org_attach.core.node import AttachNode


@dataclass(frozen=True)
class AttachChanged:
    """The contents of a node's attachment directory changed."""

    node: AttachNode
    attach_dir: str


@dataclass(frozen=True)
class AttachOpened:
    """An attachment is about to be opened."""

    node: AttachNode
    path: str


Handler = Callable[[Any], None]


class EventBus:
    """Fire-and-forget dispatch of events to handlers subscribed by event type."""

    def __init__(self) -> None:
        self._handlers: dict[type, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: Handler) -> None:
        self._handlers[event_type].append(handler)

    def dispatch(self, event: Any) -> None:
        handlers = self._handlers.get(type(event), [])
        logger.debug("Dispatching {} to {} handler(s)", type(event).__name__, len(handlers))
        for handler in handlers:
            # A failing handler must not abort the operation that fired the event.
            try:
                handler(event)
            except Exception:
                logger.exception("Handler {!r} failed on {}", handler, type(event).__name__)
