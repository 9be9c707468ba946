"""CLI for attaching files to outline entries."""

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

import requests
import typer
from loguru import logger

from org_attach.attach import Attach
from org_attach.config import AttachConfig, load_config, resolve_config_file
from org_attach.core.attach import AttachCore
from org_attach.core.node import AttachNode
from org_attach.events import EventBus
from org_attach.exceptions import AttachError, UserCancelled
from org_attach.links import LinkStore
from org_attach.logging_config import configure_logging
from org_attach.outline import OutlineDocument
from org_attach.prompts import NoPrompter, TyperPrompter
from org_attach.protocols import PrompterProtocol
from org_attach.remote import HttpFetcher

app = typer.Typer(help="Attach files to outline entries and manage attachment directories.")

OutlineArg = Annotated[Path, typer.Argument(help="Outline JSON file")]
NodeOpt = Annotated[
    str | None,
    typer.Option("--node", "-n", help="Entry id (default: the whole document)"),
]
PositionOpt = Annotated[
    int | None,
    typer.Option("--position", "-p", help="Use the entry at or before this start position"),
]


def _load_config(path: Path | None) -> AttachConfig:
    config_file = path or resolve_config_file()
    if config_file is None:
        return AttachConfig()
    try:
        config = load_config(config_file)
    except (OSError, ValueError) as e:
        logger.error("Cannot load configuration {}: {}", config_file, e)
        raise typer.Exit(1) from e
    logger.debug("Configuration loaded from {}", config_file)
    return config


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log warnings and errors"),
    no_input: bool = typer.Option(
        False, "--no-input", help="Never prompt: confirmations are declined, input is refused"
    ),
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="TOML configuration file"),
    ] = None,
) -> None:
    configure_logging(verbose=verbose, quiet=quiet)
    ctx.meta["no_input"] = no_input
    ctx.obj = _load_config(config)


@dataclass
class Session:
    document: OutlineDocument
    node: AttachNode
    core: AttachCore
    attach: Attach
    links: LinkStore


def _select_node(
    core: AttachCore,
    document: OutlineDocument,
    node_id: str | None,
    position: int | None,
) -> AttachNode:
    if node_id is not None and position is not None:
        logger.error("Use either --node or --position, not both")
        raise typer.Exit(1)
    if node_id is not None:
        try:
            entry = document.entry(node_id)
        except KeyError:
            logger.error("No entry {!r} in {}", node_id, document.filename)
            raise typer.Exit(1) from None
        return core.get_entry_node(document, entry)
    if position is not None:
        return core.get_node(document, position)
    return core.get_document_node(document)


def _save(document: OutlineDocument) -> None:
    try:
        document.save()
    except OSError as e:
        logger.error("Cannot save outline {}: {}", document.filename, e)
        raise typer.Exit(1) from e


@contextmanager
def _session(
    ctx: typer.Context,
    outline: Path,
    node_id: str | None,
    position: int | None,
    *,
    save: bool = False,
    launch: bool = False,
) -> Iterator[Session]:
    """Load the outline, pick the node and report attachment errors.

    With save, the outline is written back afterwards, also after a failure:
    properties set before it (such as a new ID) must not be lost.
    """
    config: AttachConfig = ctx.obj or AttachConfig()
    try:
        document = OutlineDocument.load(outline)
    except (OSError, ValueError) as e:
        logger.error("Cannot read outline {}: {}", outline, e)
        raise typer.Exit(1) from e

    links = LinkStore()
    core = AttachCore(config, events=EventBus(), links=links, fetcher=HttpFetcher())
    prompter: PrompterProtocol = NoPrompter() if ctx.meta.get("no_input") else TyperPrompter()
    session = Session(
        document=document,
        node=_select_node(core, document, node_id, position),
        core=core,
        attach=Attach(core, prompter, opener=typer.launch if launch else None),
        links=links,
    )
    try:
        yield session
    except UserCancelled:
        raise typer.Exit(1) from None
    except AttachError as e:
        logger.error("{}", e)
        raise typer.Exit(1) from e
    except requests.RequestException as e:
        logger.error("Download failed: {}", e)
        raise typer.Exit(1) from e
    finally:
        if save:
            _save(document)


@app.command(name="dir")
def dir_cmd(
    ctx: typer.Context,
    outline: OutlineArg,
    node: NodeOpt = None,
    position: PositionOpt = None,
    create: bool = typer.Option(False, "--create", help="Create the directory if needed"),
) -> None:
    """Print the attachment directory of a node."""
    with _session(ctx, outline, node, position, save=create) as s:
        attach_dir = s.attach.get_dir_or_create(s.node) if create else s.attach.get_dir(s.node)
        if attach_dir is None:
            logger.error("No attachment directory for {!r}", s.node.title)
            raise typer.Exit(1)
        typer.echo(attach_dir)


@app.command(name="attach")
def attach_cmd(
    ctx: typer.Context,
    outline: OutlineArg,
    sources: Annotated[list[str], typer.Argument(help="Files or directories to attach")],
    node: NodeOpt = None,
    position: PositionOpt = None,
    method: Annotated[
        str | None,
        typer.Option("--method", "-m", help="cp, mv, ln or lns (default from configuration)"),
    ] = None,
) -> None:
    """Attach files to a node and print links to them."""
    with _session(ctx, outline, node, position, save=True) as s:
        if len(sources) == 1:
            if s.attach.attach(s.node, sources[0], method=method) is None:
                raise typer.Exit(1)
            failed = False
        else:
            failed = s.attach.attach_many(s.node, sources, method=method).failures > 0
        for stored in s.links.links:
            typer.echo(stored.link)
        if failed:
            raise typer.Exit(1)


@app.command()
def url(
    ctx: typer.Context,
    outline: OutlineArg,
    address: Annotated[str, typer.Argument(help="http(s) URL to download")],
    node: NodeOpt = None,
    position: PositionOpt = None,
) -> None:
    """Download a URL as an attachment."""
    with _session(ctx, outline, node, position, save=True) as s:
        if s.attach.attach_url(s.node, address) is None:
            raise typer.Exit(1)
        for stored in s.links.links:
            typer.echo(stored.link)


@app.command()
def new(
    ctx: typer.Context,
    outline: OutlineArg,
    name: Annotated[str, typer.Argument(help="Name of the new attachment")],
    node: NodeOpt = None,
    position: PositionOpt = None,
    launch: bool = typer.Option(False, "--launch/--no-launch", help="Open the new file"),
) -> None:
    """Create an empty attachment and print its path."""
    with _session(ctx, outline, node, position, save=True, launch=launch) as s:
        typer.echo(s.attach.attach_new(s.node, name))


@app.command(name="set-dir")
def set_dir(
    ctx: typer.Context,
    outline: OutlineArg,
    directory: Annotated[
        str | None,
        typer.Argument(help="New attachment directory (asked for if omitted)"),
    ] = None,
    node: NodeOpt = None,
    position: PositionOpt = None,
) -> None:
    """Set the DIR property, offering to move existing attachments."""
    if directory == "":
        logger.error("Empty attachment directory; use unset-dir to remove DIR")
        raise typer.Exit(1)
    with _session(ctx, outline, node, position, save=True) as s:
        new_dir = s.attach.set_directory(s.node, directory)
        if new_dir:
            typer.echo(new_dir)


@app.command(name="unset-dir")
def unset_dir(
    ctx: typer.Context,
    outline: OutlineArg,
    node: NodeOpt = None,
    position: PositionOpt = None,
) -> None:
    """Remove the DIR property, offering to move attachments to the remaining directory."""
    with _session(ctx, outline, node, position, save=True) as s:
        new_dir = s.attach.unset_directory(s.node)
        if new_dir:
            typer.echo(new_dir)


@app.command()
def sync(
    ctx: typer.Context,
    outline: OutlineArg,
    node: NodeOpt = None,
    position: PositionOpt = None,
) -> None:
    """Update the attachment tag from the attachment directory contents."""
    with _session(ctx, outline, node, position, save=True) as s:
        s.attach.sync(s.node)


@app.command(name="list")
def list_cmd(
    ctx: typer.Context,
    outline: OutlineArg,
    node: NodeOpt = None,
    position: PositionOpt = None,
    show_all: bool = typer.Option(False, "--all", "-a", help="Include hidden and backup files"),
) -> None:
    """List the attachments of a node."""
    with _session(ctx, outline, node, position) as s:
        for name in s.attach.list_attachments(s.node, show_hidden=show_all):
            typer.echo(name)


@app.command(name="open")
def open_cmd(
    ctx: typer.Context,
    outline: OutlineArg,
    name: Annotated[str | None, typer.Argument(help="Attachment to open")] = None,
    node: NodeOpt = None,
    position: PositionOpt = None,
    launch: bool = typer.Option(True, "--launch/--no-launch", help="Open with the default application"),
) -> None:
    """Open an attachment and print its path."""
    with _session(ctx, outline, node, position, launch=launch) as s:
        typer.echo(s.attach.open(s.node, name))


@app.command()
def reveal(
    ctx: typer.Context,
    outline: OutlineArg,
    node: NodeOpt = None,
    position: PositionOpt = None,
    launch: bool = typer.Option(True, "--launch/--no-launch", help="Open in the file manager"),
) -> None:
    """Show the attachment directory, creating it if needed."""
    with _session(ctx, outline, node, position, save=True, launch=launch) as s:
        typer.echo(s.attach.reveal(s.node))


@app.command()
def delete(
    ctx: typer.Context,
    outline: OutlineArg,
    name: Annotated[str | None, typer.Argument(help="Attachment to delete")] = None,
    node: NodeOpt = None,
    position: PositionOpt = None,
) -> None:
    """Delete a single attachment."""
    with _session(ctx, outline, node, position) as s:
        s.attach.delete_one(s.node, name)


@app.command(name="delete-all")
def delete_all(
    ctx: typer.Context,
    outline: OutlineArg,
    node: NodeOpt = None,
    position: PositionOpt = None,
    force: bool = typer.Option(False, "--force", "-f", help="Delete recursively without asking"),
) -> None:
    """Delete the whole attachment directory of a node."""
    with _session(ctx, outline, node, position, save=True) as s:
        s.attach.delete_all(s.node, force=force)


@app.command()
def archive(
    ctx: typer.Context,
    outline: OutlineArg,
    node: NodeOpt = None,
    position: PositionOpt = None,
) -> None:
    """Handle the attachments of an archived node as `archive_delete` says."""
    with _session(ctx, outline, node, position, save=True) as s:
        if not s.attach.maybe_delete_archived(s.node):
            logger.info("Attachments of {!r} kept", s.node.title)


@app.command(name="expand-links")
def expand_links(
    ctx: typer.Context,
    outline: OutlineArg,
    node: NodeOpt = None,
    position: PositionOpt = None,
) -> None:
    """Rewrite attachment: links into file: links.

    Only the selected entry is rewritten if --node or --position is given,
    every entry otherwise.
    """
    with _session(ctx, outline, node, position, save=True) as s:
        if node is None and position is None:
            entries = s.document.entries
        else:
            entries = [e for e in s.document.entries if e.start == s.node.start]
        total = missed = 0
        for entry in entries:
            entry_node = s.core.get_entry_node(s.document, entry)
            for field in ("content", "note"):
                result = s.core.expand_links(getattr(entry, field), entry_node)
                setattr(entry, field, result.text)
                total += result.total
                missed += result.missed
        if missed:
            logger.warning("failed to expand {}/{} attachment links", missed, total)
        else:
            logger.info("expanded {} attachment links", total)


@app.command()
def serve(ctx: typer.Context) -> None:
    """Start the MCP server (stdio transport)."""
    from org_attach.mcp.server import run_mcp_server

    run_mcp_server(ctx.obj)
