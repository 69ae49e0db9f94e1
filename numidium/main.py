"""Interactive command-line entry point."""

import asyncio
import os
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.status import Status
from rich.table import Table

from numidium import __version__
from numidium.config import Config, get_config, set_config
from numidium.exceptions import BackendError, ConfigurationError, SessionNotFoundError
from numidium.instructions import InstructionLoader
from numidium.llm import ModelBackend, create_backend
from numidium.llm.models import ModelCatalog, pick_classification_model
from numidium.logging import configure_logging, get_logger
from numidium.orchestrator import ExecutionOrchestrator, TurnResult
from numidium.permissions import ConfirmCallback, PermissionGate
from numidium.routing import IntentRouter
from numidium.session import SessionStore
from numidium.session.manager import SessionManager
from numidium.tools import ConfirmationDetails, build_default_registry

log = get_logger(__name__)

app = typer.Typer(help="Numidium - a local development agent backed by Ollama")
console = Console()

RISK_STYLES = {"safe": "green", "moderate": "yellow", "dangerous": "red"}

# Spinner shown while a turn runs; paused around confirmation prompts.
_status: Status | None = None

HELP_TEXT = """\
/help            Show this help
/clear           Clear conversation history
/compact         Summarize older history now
/model <name>    Switch to another local model
/models          List local models
/history         Show conversation history
/save            Save the session
/exit            Quit"""


def _ask_confirmation(details: ConfirmationDetails) -> bool:
    style = RISK_STYLES.get(details.risk, "white")
    body = escape(details.description)
    if details.preview:
        body += f"\n\n{escape(details.preview)}"
    console.print(
        Panel(
            body,
            title=escape(f"{details.tool_name} [{details.risk}]"),
            border_style=style,
        )
    )
    return Confirm.ask("Allow this action?", default=details.risk == "safe")


def _confirm_paused(details: ConfirmationDetails) -> bool:
    status = _status
    if status is None:
        return _ask_confirmation(details)
    status.stop()
    try:
        return _ask_confirmation(details)
    finally:
        status.start()


async def confirm_with_user(details: ConfirmationDetails) -> bool:
    """Confirmation callback that prompts on the terminal."""
    return await asyncio.to_thread(_confirm_paused, details)


async def resolve_classification_model(config: Config, backend: ModelBackend) -> str | None:
    """Pick a small installed classifier when none is configured.

    Sets ``config.router.classification_model`` (and the backend's, when it has
    one) so the classification stage is built. Returns the chosen model.
    """
    if config.router.classification_model:
        return config.router.classification_model
    try:
        models = await backend.list_models()
    except BackendError as e:
        log.warning("Could not list models, classification stage disabled", error=str(e))
        return None
    chosen = pick_classification_model([model.name for model in models])
    if chosen is None:
        log.info("No lightweight classification model installed")
        return None
    config.router.classification_model = chosen
    if hasattr(backend, "classification_model"):
        backend.classification_model = chosen
    log.info("Classification model selected", model=chosen)
    return chosen


def create_session_manager(
    config: Config,
    confirm: ConfirmCallback | None,
    backend: ModelBackend | None = None,
    working_directory: Path | str | None = None,
    store: SessionStore | None = None,
) -> SessionManager:
    """Wire registry, router, gate, orchestrator and session for one process."""
    workdir = Path(working_directory or Path.cwd()).resolve()
    backend = backend or create_backend(config)
    instructions = InstructionLoader()
    registry = build_default_registry(config, base_path=workdir)
    router = IntentRouter.from_registry(registry, backend, config, instructions)
    gate = PermissionGate(confirm, auto_approve_safe=config.permissions.auto_approve_safe)
    orchestrator = ExecutionOrchestrator(
        router,
        registry,
        backend,
        gate,
        instructions=instructions,
        config=config,
        working_directory=workdir,
    )
    return SessionManager(
        backend,
        orchestrator,
        config=config,
        catalog=ModelCatalog(backend),
        store=store,
    )


def _print_result(result: TurnResult) -> None:
    for execution in result.tool_executions:
        style = "green" if execution.result.success else "red"
        console.print(
            Panel(
                escape(execution.result.display_result),
                title=execution.tool_name,
                border_style=style,
            )
        )
    console.print(escape(result.reply))


async def _show_models(manager: SessionManager) -> None:
    models = await manager.catalog.list_models()
    table = Table(title="Local models")
    table.add_column("Name")
    table.add_column("Display name")
    table.add_column("Context", justify="right")
    for model in models:
        marker = " *" if model.name == manager.session.current_model else ""
        table.add_row(model.name + marker, model.display_name, str(model.capabilities.max_context_length))
    console.print(table)


def _show_history(manager: SessionManager) -> None:
    for message in manager.get_history():
        console.print(f"[bold]{message.role}[/bold]: {escape(message.text)}")
    console.print(
        f"[dim]{len(manager.session.history)} messages, ~{manager.session.token_count} tokens, "
        f"{manager.session.compaction_count} compactions[/dim]"
    )


async def handle_command(manager: SessionManager, line: str) -> bool:
    """Run a slash command. Returns False when the REPL should stop."""
    command, _, argument = line.strip().partition(" ")
    command = command.lower()
    argument = argument.strip()

    if command in ("/exit", "/quit"):
        return False
    if command == "/help":
        console.print(HELP_TEXT)
    elif command == "/clear":
        manager.clear_history()
        console.print("[dim]History cleared.[/dim]")
    elif command == "/compact":
        changed = await manager.compact(force=True)
        console.print("[dim]Compacted.[/dim]" if changed else "[dim]Nothing to compact.[/dim]")
    elif command == "/model":
        if not argument:
            console.print(f"Current model: {manager.session.current_model}")
        elif await manager.switch_model(argument):
            console.print(f"[green]Switched to {manager.session.current_model}[/green]")
        else:
            console.print(f"[red]Model not available: {escape(argument)}[/red]")
    elif command == "/models":
        try:
            await _show_models(manager)
        except Exception as e:
            console.print(f"[red]Could not list models: {escape(str(e))}[/red]")
    elif command == "/history":
        _show_history(manager)
    elif command == "/save":
        if manager.store is None:
            console.print("[red]No session store configured.[/red]")
        else:
            await manager.save()
            console.print(f"[dim]Saved session {manager.session.id}[/dim]")
    else:
        console.print(f"[red]Unknown command: {escape(command)}[/red] (try /help)")
    return True


async def run_interactive(config: Config, resume: str = "") -> None:
    """Run the REPL until /exit or end of input."""
    global _status
    store = SessionStore(config.session.path)
    backend = create_backend(config)
    await resolve_classification_model(config, backend)
    manager = create_session_manager(config, confirm_with_user, backend=backend, store=store)
    try:
        if resume:
            try:
                await manager.restore(store, resume)
            except SessionNotFoundError as e:
                console.print(f"[red]{e}[/red]")

        console.print(
            Panel(
                f"Model: {manager.session.current_model}\nSession: {manager.session.id}\n"
                "Type /help for commands.",
                title=f"Numidium v{__version__}",
            )
        )
        while True:
            try:
                line = await asyncio.to_thread(Prompt.ask, "[bold cyan]you[/bold cyan]")
            except EOFError:
                break
            if not line.strip():
                continue
            if line.startswith("/"):
                if not await handle_command(manager, line):
                    break
                continue
            with console.status("thinking...") as _status:
                try:
                    result = await manager.run_turn(line)
                finally:
                    _status = None
            _print_result(result)
    finally:
        await store.close()
        await manager.backend.close()


@app.command()
def run(
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    model: str = typer.Option("", "-m", "--model", help="Override model"),
    host: str = typer.Option("", "--host", help="Override Ollama host"),
    auto_approve_safe: bool = typer.Option(False, "--auto-approve-safe", help="Skip prompts for safe actions"),
    resume: str = typer.Option("", "--resume", help="Resume a saved session by id"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Start an interactive session."""
    if verbose:
        os.environ["NUMIDIUM_LOGGING__LEVEL"] = "DEBUG"

    cfg = Config.from_yaml(Path(config)) if config else Config.load()
    if model:
        cfg.model.model = model
    if host:
        cfg.model.host = host
    if auto_approve_safe:
        cfg.permissions.auto_approve_safe = True
    if verbose:
        cfg.logging.level = "DEBUG"
    set_config(cfg)
    configure_logging(cfg)

    Path(cfg.session.path).expanduser().parent.mkdir(parents=True, exist_ok=True)
    try:
        asyncio.run(run_interactive(get_config(), resume))
    except KeyboardInterrupt:
        log.info("Shutting down...")
        sys.exit(0)
    except ConfigurationError as e:
        log.error("Configuration error", error=str(e))
        sys.exit(2)


@app.command()
def sessions(
    limit: int = typer.Option(10, "-n", "--limit", help="How many sessions to show"),
) -> None:
    """List saved sessions, most recent first."""

    async def _list() -> None:
        store = SessionStore(get_config().session.path)
        try:
            table = Table(title="Saved sessions")
            table.add_column("Id")
            table.add_column("Model")
            table.add_column("Messages", justify="right")
            table.add_column("Last activity")
            for session in await store.list_sessions(limit):
                table.add_row(session.id, session.current_model, str(len(session.history)), session.last_activity)
            console.print(table)
        finally:
            await store.close()

    asyncio.run(_list())


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"Numidium v{__version__}")


if __name__ == "__main__":
    app()
