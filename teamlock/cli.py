"""teamlock CLI: Typer app for running and operating the lock service."""

from __future__ import annotations

import asyncio
import json
import traceback
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from teamlock import __version__

console = Console(stderr=True)

app = typer.Typer(
    name="teamlock",
    help=(
        "teamlock: team code verification and team-scoped write locks.\n\n"
        "Configuration is read from TEAMLOCK_* environment variables."
    ),
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    epilog=(
        "Quick start:\n"
        "  teamlock serve --port 8080\n"
        "  teamlock codes import codes.yaml\n"
        "  teamlock codes list\n"
        "  teamlock purge-locks\n"
    ),
)

codes_app = typer.Typer(help="Inspect and import team code mappings.", no_args_is_help=True)
app.add_typer(codes_app, name="codes")


def _version_callback(value: bool) -> None:
    if value:
        Console().print(f"[bold]teamlock[/bold] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-v", help="Show version and exit.",
        callback=_version_callback, is_eager=True,
    ),
) -> None:
    """teamlock command line."""


def _run_safe(fn, verbose: bool = False) -> None:
    """Run a function with clean error handling."""
    try:
        fn()
    except (SystemExit, typer.Exit):
        raise
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        raise SystemExit(130)
    except Exception as e:
        console.print(f"\n[red bold]Error:[/red bold] {e}")
        if verbose:
            console.print(traceback.format_exc())
        else:
            console.print("[dim]Run with --verbose for full traceback.[/dim]")
        raise SystemExit(1)


def _open_store():
    from teamlock.core.api.settings import load_settings
    from teamlock.core.storage.factory import create_store

    settings = load_settings()
    settings.validate()
    if settings.store == "memory":
        console.print(
            "[yellow]Warning:[/yellow] TEAMLOCK_STORE=memory; changes last only for this command."
        )
    return settings, create_store(settings.store, settings.store_path, settings.store_timeout_seconds)


# ── serve ──────────────────────────────────────────────────────

@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Host to bind to (default: TEAMLOCK_BIND)."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to listen on."),
    allow_nonlocal: bool = typer.Option(
        False, "--allow-nonlocal",
        help="Allow binding to non-localhost addresses (use behind a proxy).",
    ),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload for development."),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """Start the HTTP API server."""

    def _impl() -> None:
        from teamlock.core.api.server import start_server
        from teamlock.core.api.settings import load_settings

        settings = load_settings()
        bind = host or settings.bind
        listen_port = port or settings.port
        start_server(
            host=bind,
            port=listen_port,
            allow_nonlocal=allow_nonlocal or settings.allow_nonlocal,
            reload=reload,
            settings=load_settings(bind=bind, port=listen_port),
        )

    _run_safe(_impl, verbose=verbose)


# ── codes ──────────────────────────────────────────────────────

@codes_app.command("import")
def codes_import(
    path: str = typer.Argument(..., help="YAML or JSON codes file."),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """Load code mappings from a file into the configured store."""

    def _impl() -> None:
        from teamlock.core.lock.registry import CodeRegistry, load_codes_file

        settings, store = _open_store()
        mappings = load_codes_file(path)
        registry = CodeRegistry(store, timeout=settings.store_timeout_seconds)
        count = asyncio.run(registry.register(mappings))
        store.close()
        console.print(f"[green]Imported {count} code mapping(s)[/green] into {settings.store} store.")

    _run_safe(_impl, verbose=verbose)


@codes_app.command("list")
def codes_list(
    show_codes: bool = typer.Option(
        False, "--show-codes", help="Print raw codes instead of hashed prefixes.",
    ),
    json_output: bool = typer.Option(False, "--json", help="Emit JSON."),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """List code mappings in the configured store."""

    def _impl() -> None:
        from teamlock.core.lock.fingerprint import hash_team_code
        from teamlock.core.lock.registry import CodeRegistry

        settings, store = _open_store()
        mappings = asyncio.run(
            CodeRegistry(store, timeout=settings.store_timeout_seconds).list_all()
        )
        store.close()

        rows = []
        for m in mappings:
            row = m.to_dict()
            if not show_codes:
                row["code"] = hash_team_code(m.code)
            rows.append(row)
        if json_output:
            typer.echo(json.dumps(rows, indent=2))
            return

        table = Table(title="Team codes", border_style="blue")
        table.add_column("Code" if show_codes else "Code (hashed)")
        table.add_column("Team ID")
        table.add_column("Team name")
        table.add_column("Active")
        for row in rows:
            table.add_row(
                row["code"], row["team_id"], row["team_display_name"],
                "[green]yes[/green]" if row["active"] else "[red]no[/red]",
            )
        Console().print(table)

    _run_safe(_impl, verbose=verbose)


# ── purge-locks ────────────────────────────────────────────────

@app.command("purge-locks")
def purge_locks(
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """Delete expired device locks from the configured store."""

    def _impl() -> None:
        from teamlock.core.lock.conflicts import ConflictDetector

        settings, store = _open_store()
        removed = asyncio.run(
            ConflictDetector(store, timeout=settings.store_timeout_seconds).purge_expired()
        )
        store.close()
        console.print(f"Removed {removed} expired device lock(s).")

    _run_safe(_impl, verbose=verbose)


# ── mint ───────────────────────────────────────────────────────

@app.command()
def mint(
    team_id: str = typer.Argument(..., help="Team the token is bound to."),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """Mint a capability token for TEAM_ID (operator support; no device lock)."""

    def _impl() -> None:
        from teamlock.core.api.settings import load_settings
        from teamlock.core.lock.tokens import TokenCodec

        settings = load_settings()
        settings.validate()
        codec = TokenCodec(settings.effective_token_secret, settings.token_ttl_seconds)
        token, expires_at = codec.mint(team_id)
        typer.echo(token)
        console.print(f"[dim]expires_at={expires_at}[/dim]")

    _run_safe(_impl, verbose=verbose)


# ── version ────────────────────────────────────────────────────

@app.command()
def version() -> None:
    """Show teamlock version, Python version, and platform."""
    import platform

    table = Table(show_header=False, border_style="blue", title="teamlock", title_style="bold")
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Version", __version__)
    table.add_row("Python", platform.python_version())
    table.add_row("Platform", f"{platform.system()} {platform.machine()}")
    Console().print(table)
