"""
CLI entry point for Timecapsule.

This module provides the Typer-based command-line interface for Timecapsule.
All user interactions flow through these commands.

Commands:
    login       Remember the owner email used by later commands
    logout      Forget the remembered owner email
    whoami      Show the current owner email
    create      Seal a new capsule until a future date
    list        List the owner's capsules
    show        Show one capsule (message hidden while sealed)
    open        Unseal a capsule whose date has arrived
    delete      Permanently delete a capsule
    doctor      Check configuration, local store and remote connectivity

Architecture Note:
    The CLI parses arguments and delegates every capsule operation to the
    repository.
"""

import json
import sys
import traceback
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any, NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from timecapsule import __version__
from timecapsule.clock import capsule_state, days_remaining
from timecapsule.config import Settings, load_settings
from timecapsule.errors import TimeCapsuleError
from timecapsule.identity import OwnerSession, normalize_owner_id
from timecapsule.log import configure_logging
from timecapsule.repository import CapsuleRepository
from timecapsule.schema import Capsule, CapsuleState

app = typer.Typer(
    name="timecapsule",
    help="Seal messages today, open them on a future date.",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

STATE_STYLES = {
    CapsuleState.SEALED: "[yellow]sealed[/yellow]",
    CapsuleState.READY: "[cyan]ready[/cyan]",
    CapsuleState.OPENED: "[green]opened[/green]",
}


@dataclass
class CliState:
    """Options shared by every command."""

    config: Path | None = None
    owner: str | None = None
    debug: bool = False
    log_level: str | None = None
    log_json: bool = False


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]timecapsule[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Path to a YAML settings file.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ] = None,
    owner: Annotated[
        Optional[str],
        typer.Option(
            "--owner",
            help="Owner email for this command. Defaults to the logged-in email.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Log repository and remote activity."),
    ] = False,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Enable debug logging and full error tracebacks."),
    ] = False,
    log_json: Annotated[
        bool,
        typer.Option("--log-json", help="Write log events to stderr as JSON lines."),
    ] = False,
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    Timecapsule - sealed messages that open on a future date.

    Capsules are stored in a local SQLite file and, when a remote project is
    configured, mirrored to it so they follow you across devices.
    """
    level = "debug" if debug else "info" if verbose else None
    ctx.obj = CliState(config=config, owner=owner, debug=debug, log_level=level, log_json=log_json)
    configure_logging(level or "warning", json=log_json)


# =============================================================================
# Helpers
# =============================================================================


def _state(ctx: typer.Context) -> CliState:
    return ctx.obj if isinstance(ctx.obj, CliState) else CliState()


def _settings(state: CliState) -> Settings:
    settings = load_settings(state.config)
    if state.log_level is None:
        configure_logging(settings.log_level, json=state.log_json)
    return settings


@contextmanager
def _repository(state: CliState) -> Generator[CapsuleRepository, None, None]:
    """Open the repository described by the current settings."""
    repo = CapsuleRepository.from_settings(_settings(state))
    try:
        yield repo
    finally:
        repo.close()


def _owner(state: CliState, repo: CapsuleRepository) -> str | None:
    if state.owner is not None:
        return normalize_owner_id(state.owner)
    return OwnerSession(repo.local).load()


def _fail(error: Exception, json_output: bool, debug: bool) -> NoReturn:
    """Report an error and exit with code 1."""
    if json_output:
        output: dict[str, Any] = {"error": True}
        if isinstance(error, TimeCapsuleError):
            output.update(error.to_dict())
        else:
            output.update({"error_type": type(error).__name__, "message": str(error)})
        if debug:
            output["traceback"] = traceback.format_exc()
        print(json.dumps(output, indent=2, default=str))
    else:
        console.print(f"[red]{escape(str(error))}[/red]")
        if debug:
            console.print(f"[dim]{traceback.format_exc()}[/dim]")
    raise typer.Exit(code=1)


def _capsule_json(capsule: Capsule, now: Any) -> dict[str, Any]:
    data = capsule.to_record()
    data["state"] = capsule_state(capsule, now).value
    data["daysRemaining"] = days_remaining(capsule.unlock_date, now)
    if capsule.is_sealed:
        data.pop("message")
    return data


def _days_text(capsule: Capsule, now: Any) -> str:
    if not capsule.is_sealed:
        return ""
    days = days_remaining(capsule.unlock_date, now)
    if days <= 0:
        return "ready to open"
    return f"{days} day{'s' if days != 1 else ''} remaining"


# =============================================================================
# Identity Commands
# =============================================================================


@app.command()
def login(
    ctx: typer.Context,
    email: Annotated[str, typer.Argument(help="Your email address.")],
) -> None:
    """
    Remember the owner email used by later commands.

    Example:
        $ timecapsule login me@example.com
    """
    state = _state(ctx)
    try:
        with _repository(state) as repo:
            owner_id = OwnerSession(repo.local).save(email)
    except TimeCapsuleError as e:
        _fail(e, False, state.debug)
    console.print(f"[green]✓[/green] Logged in as [bold]{owner_id}[/bold]")


@app.command()
def logout(ctx: typer.Context) -> None:
    """Forget the remembered owner email."""
    state = _state(ctx)
    try:
        with _repository(state) as repo:
            OwnerSession(repo.local).clear()
    except TimeCapsuleError as e:
        _fail(e, False, state.debug)
    console.print("[dim]Logged out.[/dim]")


@app.command()
def whoami(ctx: typer.Context) -> None:
    """Show the current owner email."""
    state = _state(ctx)
    try:
        with _repository(state) as repo:
            owner_id = _owner(state, repo)
    except TimeCapsuleError as e:
        _fail(e, False, state.debug)
    if owner_id is None:
        console.print("[yellow]Not logged in.[/yellow] Run: timecapsule login EMAIL")
        raise typer.Exit(code=1)
    console.print(owner_id)


# =============================================================================
# Capsule Commands
# =============================================================================


@app.command()
def create(
    ctx: typer.Context,
    title: Annotated[str, typer.Option("--title", "-t", help="Capsule title.")],
    message: Annotated[
        Optional[str],
        typer.Option(
            "--message",
            "-m",
            help="Message to seal. Read from stdin when omitted.",
        ),
    ] = None,
    unlock: Annotated[
        str,
        typer.Option("--unlock", "-u", help="Unlock date, YYYY-MM-DD (today or later)."),
    ] = "",
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results in JSON format."),
    ] = False,
) -> None:
    """
    Seal a new capsule until a future date.

    Example:
        $ timecapsule create -t "Goals 2026" -m "Run a marathon" -u 2026-01-01
    """
    state = _state(ctx)
    if message is None:
        message = sys.stdin.read()

    try:
        with _repository(state) as repo:
            capsule = repo.create(_owner(state, repo), title, message, unlock)
            now = repo.clock()
    except TimeCapsuleError as e:
        _fail(e, json_output, state.debug)

    if json_output:
        print(json.dumps(_capsule_json(capsule, now), indent=2))
        return

    console.print(
        Panel(
            f"[bold]{escape(capsule.title)}[/bold]\n"
            f"Sealed until {capsule.unlock_date.isoformat()} "
            f"({_days_text(capsule, now) or 'today'})\n"
            f"[dim]id: {capsule.id}[/dim]",
            title="[green]✓ Capsule sealed[/green]",
            expand=False,
        )
    )


@app.command("list")
def list_capsules(
    ctx: typer.Context,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results in JSON format."),
    ] = False,
) -> None:
    """
    List the owner's capsules.

    Example:
        $ timecapsule list
    """
    state = _state(ctx)
    try:
        with _repository(state) as repo:
            capsules = repo.list_capsules(_owner(state, repo))
            now = repo.clock()
    except TimeCapsuleError as e:
        _fail(e, json_output, state.debug)

    if json_output:
        output = {
            "capsules": [_capsule_json(c, now) for c in capsules],
            "count": len(capsules),
        }
        print(json.dumps(output, indent=2))
        return

    if not capsules:
        console.print("[dim]No capsules yet. Create one with: timecapsule create[/dim]")
        return

    table = Table(show_header=True, header_style="bold", title="Your Vault")
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("State", width=8)
    table.add_column("Unlocks")
    table.add_column("Details", style="dim")

    for capsule in capsules:
        table.add_row(
            capsule.id[:8],
            escape(capsule.title),
            STATE_STYLES[capsule_state(capsule, now)],
            capsule.unlock_date.isoformat(),
            _days_text(capsule, now),
        )

    console.print(table)


@app.command()
def show(
    ctx: typer.Context,
    capsule_id: Annotated[str, typer.Argument(help="The capsule ID, or a unique prefix of it, to show.")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results in JSON format."),
    ] = False,
) -> None:
    """
    Show one capsule. The message stays hidden until the capsule is opened.

    Example:
        $ timecapsule show 3f2a9c1e-...
    """
    state = _state(ctx)
    try:
        with _repository(state) as repo:
            capsule = repo.get(_owner(state, repo), capsule_id)
            now = repo.clock()
    except TimeCapsuleError as e:
        _fail(e, json_output, state.debug)

    if json_output:
        print(json.dumps(_capsule_json(capsule, now), indent=2))
        return
    _display_capsule(capsule, now)


@app.command("open")
def open_capsule(
    ctx: typer.Context,
    capsule_id: Annotated[str, typer.Argument(help="The capsule ID, or a unique prefix of it, to open.")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results in JSON format."),
    ] = False,
) -> None:
    """
    Unseal a capsule whose unlock date has arrived.

    Opening is permanent; opening an already opened capsule just shows it.

    Example:
        $ timecapsule open 3f2a9c1e-...
    """
    state = _state(ctx)
    try:
        with _repository(state) as repo:
            capsule = repo.open(_owner(state, repo), capsule_id)
            now = repo.clock()
    except TimeCapsuleError as e:
        _fail(e, json_output, state.debug)

    if json_output:
        print(json.dumps(_capsule_json(capsule, now), indent=2))
        return
    _display_capsule(capsule, now)


@app.command()
def delete(
    ctx: typer.Context,
    capsule_id: Annotated[str, typer.Argument(help="The capsule ID, or a unique prefix of it, to delete.")],
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip the confirmation prompt."),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results in JSON format."),
    ] = False,
) -> None:
    """
    Permanently delete a capsule. This cannot be undone.

    Example:
        $ timecapsule delete 3f2a9c1e-... --yes
    """
    state = _state(ctx)
    if not yes and not json_output:
        typer.confirm(
            "Delete this capsule? It will be gone forever.",
            abort=True,
        )

    try:
        with _repository(state) as repo:
            removed = repo.delete(_owner(state, repo), capsule_id)
    except TimeCapsuleError as e:
        _fail(e, json_output, state.debug)

    if json_output:
        print(json.dumps({"deleted": removed.id}, indent=2))
        return
    console.print(f"[green]✓[/green] Deleted [bold]{escape(removed.title)}[/bold]")


def _display_capsule(capsule: Capsule, now: Any) -> None:
    """Display one capsule, revealing the message only once opened."""
    current = capsule_state(capsule, now)
    lines = [
        f"State: {STATE_STYLES[current]}",
        f"Unlocks: {capsule.unlock_date.isoformat()}",
        f"Created: {capsule.created_at.isoformat(timespec='seconds')}",
    ]
    if current == CapsuleState.OPENED:
        lines.extend(["", escape(capsule.message)])
    elif current == CapsuleState.READY:
        lines.extend(["", f"[cyan]Ready to open:[/cyan] timecapsule open {capsule.id}"])
    else:
        lines.extend(["", f"[yellow]{_days_text(capsule, now)}[/yellow]"])

    console.print(
        Panel(
            "\n".join(lines),
            title=f"[bold]{escape(capsule.title)}[/bold]",
            subtitle=f"[dim]{capsule.id}[/dim]",
            expand=False,
        )
    )


# =============================================================================
# Diagnostics
# =============================================================================


@app.command()
def doctor(
    ctx: typer.Context,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results in JSON format."),
    ] = False,
) -> None:
    """
    Check configuration, local store and remote connectivity.

    The remote is optional: an unconfigured remote is reported but does not
    fail the check.

    Example:
        $ timecapsule doctor
    """
    state = _state(ctx)
    checks: list[dict[str, Any]] = []
    all_ok = True

    # Check 1: Python version
    py_version = sys.version_info
    py_ok = py_version >= (3, 11)
    checks.append({
        "name": "Python version",
        "ok": py_ok,
        "value": f"{py_version.major}.{py_version.minor}.{py_version.micro}",
        "message": "OK" if py_ok else "Requires Python 3.11+",
    })
    all_ok = all_ok and py_ok

    # Check 2: Settings
    try:
        settings = _settings(state)
        checks.append({
            "name": "Configuration",
            "ok": True,
            "value": str(state.config or "environment"),
            "message": "OK",
        })
    except TimeCapsuleError as e:
        checks.append({
            "name": "Configuration",
            "ok": False,
            "value": str(state.config or "environment"),
            "message": e.message,
        })
        _print_checks(checks, False, json_output)
        raise typer.Exit(code=1)

    # Check 3: Local store
    try:
        with _repository(state) as repo:
            count = len(repo.local.load_all())
            owner_id = _owner(state, repo)
            remote_result = repo.remote.ping() if repo.remote is not None else None
        checks.append({
            "name": "Local store",
            "ok": True,
            "value": str(settings.db_path),
            "message": f"{count} capsule(s) stored",
        })
    except TimeCapsuleError as e:
        all_ok = False
        owner_id = None
        remote_result = None
        checks.append({
            "name": "Local store",
            "ok": False,
            "value": str(settings.db_path),
            "message": e.message,
        })

    # Check 4: Owner identity
    checks.append({
        "name": "Owner",
        "ok": owner_id is not None,
        "value": owner_id or "-",
        "message": "OK" if owner_id else "Not logged in. Run: timecapsule login EMAIL",
    })
    all_ok = all_ok and owner_id is not None

    # Check 5: Remote mirror (optional)
    if not settings.remote_configured:
        checks.append({
            "name": "Remote mirror",
            "ok": True,
            "value": "not configured",
            "message": "Local-only mode",
        })
    elif remote_result is not None:
        checks.append({
            "name": "Remote mirror",
            "ok": remote_result.success,
            "value": settings.remote_url,
            "message": "Reachable" if remote_result.success else remote_result.error.message,
        })
        all_ok = all_ok and remote_result.success

    _print_checks(checks, all_ok, json_output)
    raise typer.Exit(code=0 if all_ok else 1)


def _print_checks(checks: list[dict[str, Any]], all_ok: bool, json_output: bool) -> None:
    if json_output:
        print(json.dumps({"ok": all_ok, "checks": checks}, indent=2))
        return

    table = Table(show_header=True, header_style="bold", title="Timecapsule Doctor")
    table.add_column("Check")
    table.add_column("Status", width=6)
    table.add_column("Value", style="cyan")
    table.add_column("Details", style="dim")
    for check in checks:
        status = "[green]✓[/green]" if check["ok"] else "[red]✗[/red]"
        table.add_row(check["name"], status, check["value"], check["message"])
    console.print(table)


if __name__ == "__main__":
    app()
