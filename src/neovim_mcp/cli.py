"""CLI for neovim-mcp (MCP server and diagnostics)."""

import json
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger

from neovim_mcp.config import Settings, load_settings, parse_log_level
from neovim_mcp.errors import NeovimMcpError
from neovim_mcp.logging_config import configure_logging
from neovim_mcp.nvim.client import NeovimClient

app = typer.Typer(help="Neovim MCP server: drive a running Neovim from MCP clients.")


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj  # type: ignore[no-any-return]


def _configure(settings: Settings, *, verbose: bool) -> None:
    configure_logging(
        verbose=verbose,
        level=settings.log_level,
        log_file=settings.log_file,
        disabled=settings.log_disabled,
    )


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    try:
        settings = load_settings()
    except ValueError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(2) from e
    ctx.obj = settings
    ctx.meta["verbose"] = verbose
    _configure(settings, verbose=verbose)


@app.command()
def serve(
    ctx: typer.Context,
    address: Annotated[
        str | None,
        typer.Option("--address", "-a", help="Neovim socket path or host:port"),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", "-t", min=0.001, help="Per-request deadline in seconds"),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", "-l", help="Log level (DEBUG, INFO, WARNING, ...)"),
    ] = None,
    log_file: Annotated[
        Path | None,
        typer.Option("--log-file", help="Also write logs to this file"),
    ] = None,
) -> None:
    """Start the MCP server (stdio transport)."""
    from neovim_mcp.mcp.server import run_mcp_server

    try:
        level = parse_log_level(log_level) if log_level else None
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--log-level") from e

    settings = _settings(ctx).with_overrides(
        socket_address=address, timeout=timeout, log_level=level, log_file=log_file
    )
    _configure(settings, verbose=ctx.meta.get("verbose", False))

    logger.info("Neovim MCP server starting")
    logger.debug(
        "Configuration: socket={} timeout={} log_level={} log_file={}",
        settings.socket_address,
        settings.timeout,
        settings.log_level,
        settings.log_file,
    )
    run_mcp_server(settings)


@app.command()
def buffers(
    ctx: typer.Context,
    address: Annotated[
        str | None,
        typer.Option("--address", "-a", help="Neovim socket path or host:port"),
    ] = None,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """List the buffers open in Neovim."""
    settings = _settings(ctx).with_overrides(socket_address=address)

    try:
        client = NeovimClient.connect(settings.socket_address)
    except NeovimMcpError as e:
        logger.error("{}", e)
        raise typer.Exit(1) from e

    try:
        infos = client.get_buffers()
    except NeovimMcpError as e:
        logger.error("{}", e)
        raise typer.Exit(1) from e
    finally:
        client.close()

    if output_json:
        typer.echo(json.dumps([b.to_dict() for b in infos], indent=2))
        return

    typer.echo(f"{len(infos)} buffers:\n")
    for b in infos:
        flags = ("+" if b.changed else " ") + (" " if b.loaded else "u")
        typer.echo(f"  {b.handle:>3} {flags} {b.title or '[No Name]'} ({b.line_count} lines)")
        if b.path:
            typer.echo(f"        {b.path}")
