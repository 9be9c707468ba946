"""MCP server exposing attachment directories of outline entries."""

import asyncio
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from org_attach.config import AttachConfig, load_config, resolve_config_file
from org_attach.core.attach import AttachCore, NewDirMethod
from org_attach.core.node import AttachNode
from org_attach.events import EventBus
from org_attach.exceptions import AttachError
from org_attach.links import LinkStore
from org_attach.outline import OutlineDocument
from org_attach.remote import HttpFetcher

# Set by run_mcp_server(); otherwise the configuration is looked up on startup.
_server_config: AttachConfig | None = None


def _open_node(core: AttachCore, outline: str, node_id: str | None) -> tuple[OutlineDocument, AttachNode]:
    document = OutlineDocument.load(outline)
    if node_id is None or node_id == "root":
        return document, core.get_document_node(document)
    return document, core.get_entry_node(document, document.entry(node_id))


def _error(outline: str, e: Exception) -> dict[str, Any]:
    if isinstance(e, KeyError):
        return {"error": f"Entry {e.args[0]!r} not found in {outline}."}
    return {"error": str(e)}


def _set_dir_method(config: AttachConfig, new_dir: str | None) -> NewDirMethod:
    # Nobody can be asked here; "ask" falls back to an ID unless a directory is given.
    method = config.preferred_new_method
    if method == "ask":
        return "dir" if new_dir else "id"
    if method is None:
        msg = "No existing directory. DIR or ID property has to be explicitly created"
        raise AttachError(msg)
    return method


# --- Core functions (testable without MCP context) ---


async def attachment_dir(
    core: AttachCore,
    *,
    outline: str,
    node_id: str | None = None,
    create: bool = False,
    new_dir: str | None = None,
) -> dict[str, Any]:
    """Return the attachment directory of an entry, optionally creating it.

    Args:
        outline: Path of the outline JSON file.
        node_id: Entry id; None or "root" for the whole document.
        create: Create the directory if the entry has none.
        new_dir: Directory to declare when a new DIR property is created.
    """
    try:
        document, node = _open_node(core, outline, node_id)
        if create:
            attach_dir: str | None = await core.get_dir_or_create(
                node, _set_dir_method(core.config, new_dir), new_dir
            )
            document.save()
        else:
            attach_dir = core.get_dir_or_none(node)
    except (AttachError, OSError, ValueError, KeyError) as e:
        return _error(outline, e)
    return {"title": node.title, "dir": attach_dir, "exists": attach_dir is not None}


async def attachment_list(
    core: AttachCore,
    *,
    outline: str,
    node_id: str | None = None,
    show_hidden: bool = False,
) -> dict[str, Any]:
    """List the attachments of an entry; directories end with `/`."""
    try:
        _document, node = _open_node(core, outline, node_id)
        attach_dir = core.get_dir_or_none(node)
        if attach_dir is None:
            return {"title": node.title, "dir": None, "attachments": [], "count": 0}
        names = await core.list_attachments(node, show_hidden=show_hidden)
    except (AttachError, OSError, ValueError, KeyError) as e:
        return _error(outline, e)
    return {"title": node.title, "dir": attach_dir, "attachments": names, "count": len(names)}


async def attachment_attach(
    core: AttachCore,
    *,
    outline: str,
    sources: list[str],
    node_id: str | None = None,
    method: str | None = None,
    new_dir: str | None = None,
) -> dict[str, Any]:
    """Attach local files to an entry.

    Returns the directory, success and failure counts and the links to the
    new attachments.
    """
    if not sources:
        return {"error": "No files to attach."}
    links = LinkStore()
    local = AttachCore(core.config, events=core.events, links=links, fetcher=core.fetcher)
    try:
        document, node = _open_node(local, outline, node_id)
        try:
            result = await local.attach_many(
                node,
                sources,
                method=method,
                set_dir_method=_set_dir_method(local.config, new_dir),
                new_dir=new_dir,
            )
        finally:
            document.save()
        attach_dir = local.get_dir_or_none(node)
    except (AttachError, OSError, ValueError, KeyError) as e:
        return _error(outline, e)
    logger.info("Attached {} of {} file(s) to {}", result.successes, len(sources), node.title)
    return {
        "title": node.title,
        "dir": attach_dir,
        "successes": result.successes,
        "failures": result.failures,
        "links": [stored.link for stored in links.links],
    }


async def attachment_sync(
    core: AttachCore,
    *,
    outline: str,
    node_id: str | None = None,
) -> dict[str, Any]:
    """Update the attachment tag of an entry from its directory contents.

    Empty directories are only deleted when `sync_delete_empty_dir` is "always".
    """
    delete_empty_dir = core.config.sync_delete_empty_dir == "always"
    try:
        document, node = _open_node(core, outline, node_id)
        try:
            deleted = await core.sync(node, delete_empty_dir)
        finally:
            document.save()
        attach_dir = core.get_dir_or_none(node)
        has_attachments = attach_dir is not None and await core.has_any_non_litter_files(attach_dir)
    except (AttachError, OSError, ValueError, KeyError) as e:
        return _error(outline, e)
    return {"title": node.title, "deleted_dir": deleted, "has_attachments": has_attachments}


# --- Server ---


@dataclass
class ServerContext:
    """Shared resources for the MCP server lifetime."""

    core: AttachCore
    # Serializes load-modify-save cycles on outline files.
    outline_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


def _resolve_config() -> AttachConfig:
    if _server_config is not None:
        return _server_config
    config_env = os.environ.get("ORG_ATTACH_CONFIG")
    config_file = Path(config_env) if config_env else resolve_config_file()
    return load_config(config_file) if config_file else AttachConfig()


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    config = _resolve_config()
    core = AttachCore(config, events=EventBus(), links=LinkStore(), fetcher=HttpFetcher())
    logger.debug("Attachment server ready (method {})", config.method)
    yield ServerContext(core=core)


mcp_server = FastMCP(
    "org-attach",
    instructions="""\
Outline entries can own an attachment directory. Entries are addressed by the
path of the outline JSON file and the entry id ("root" for the document).

- attachment_dir_tool finds (or creates) the directory of an entry.
- attachment_list_tool lists what is attached.
- attachment_attach_tool copies local files into the directory and returns
  `[[attachment:NAME]]` links for them.
- attachment_sync_tool refreshes the ATTACH tag after files changed on disk.
""",
    lifespan=server_lifespan,
)


def _ctx(mcp_ctx: Context) -> ServerContext:
    return mcp_ctx.request_context.lifespan_context  # type: ignore[return-value]


# --- MCP Tool Wrappers ---


@mcp_server.tool()
async def attachment_dir_tool(
    ctx: Context,
    outline: str,
    node_id: str | None = None,
    create: bool = False,
    new_dir: str | None = None,
) -> dict[str, Any]:
    """Return the attachment directory of an outline entry.

    Args:
        outline: Path of the outline JSON file.
        node_id: Entry id; omit for the whole document.
        create: Create the directory if the entry has none yet.
        new_dir: Directory to use when a DIR property has to be created.
    """
    server = _ctx(ctx)
    async with server.outline_lock:
        return await attachment_dir(
            server.core, outline=outline, node_id=node_id, create=create, new_dir=new_dir
        )


@mcp_server.tool()
async def attachment_list_tool(
    ctx: Context,
    outline: str,
    node_id: str | None = None,
    show_hidden: bool = False,
) -> dict[str, Any]:
    """List the attachments of an outline entry.

    Args:
        outline: Path of the outline JSON file.
        node_id: Entry id; omit for the whole document.
        show_hidden: Include dot files and backup files ending in "~".
    """
    return await attachment_list(
        _ctx(ctx).core, outline=outline, node_id=node_id, show_hidden=show_hidden
    )


@mcp_server.tool()
async def attachment_attach_tool(
    ctx: Context,
    outline: str,
    sources: list[str],
    node_id: str | None = None,
    method: str | None = None,
    new_dir: str | None = None,
) -> dict[str, Any]:
    """Attach local files to an outline entry.

    Args:
        outline: Path of the outline JSON file.
        sources: Paths of files or directories to attach.
        node_id: Entry id; omit for the whole document.
        method: "cp" (copy), "mv" (move), "ln" (hard link) or "lns" (symlink).
        new_dir: Directory to use when a DIR property has to be created.
    """
    server = _ctx(ctx)
    async with server.outline_lock:
        return await attachment_attach(
            server.core,
            outline=outline,
            sources=sources,
            node_id=node_id,
            method=method,
            new_dir=new_dir,
        )


@mcp_server.tool()
async def attachment_sync_tool(
    ctx: Context,
    outline: str,
    node_id: str | None = None,
) -> dict[str, Any]:
    """Refresh the attachment tag of an outline entry.

    Args:
        outline: Path of the outline JSON file.
        node_id: Entry id; omit for the whole document.
    """
    server = _ctx(ctx)
    async with server.outline_lock:
        return await attachment_sync(server.core, outline=outline, node_id=node_id)


def run_mcp_server(config: AttachConfig | None = None) -> None:
    """Run the MCP server with stdio transport."""
    from org_attach.logging_config import configure_logging

    global _server_config
    _server_config = config
    configure_logging(verbose=False)
    mcp_server.run(transport="stdio")
