"""CLI commands for autocommit."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape

from autocommit import __version__
from autocommit.config import ConfigError, ConfigStore
from autocommit.context import ChatContextBuilder
from autocommit.generator import MessageGenerator
from autocommit.git_ops import GitError, GitRepository
from autocommit.i18n import load_i18n
from autocommit.log_setup import setup_logging
from autocommit.orchestrator import CommitOptions, CommitOrchestrator, SessionState
from autocommit.prompter import QuestionaryPrompter

app = typer.Typer(
    name="autocommit",
    help="Generate meaningful commit messages from your staged changes, then commit and push them.",
    no_args_is_help=True,
)
config_app = typer.Typer(help="Read and change the autocommit configuration.", no_args_is_help=True)
app.add_typer(config_app, name="config")
console = Console()

SHELLS = ("bash", "fish", "powershell")


def _config_path_option():
    return typer.Option(None, "--config-path", "-c", help="Path to the config file (default: ~/.autocommit)")


def _print_error(message: str) -> None:
    """Print an error message and exit."""
    console.print(f"[red]✗[/red] {escape(message)}")
    raise typer.Exit(1)


def _print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"autocommit {__version__}")
        raise typer.Exit()


@app.callback()
def _main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show the version and exit"
    ),
) -> None:
    setup_logging(verbose)


@app.command()
def commit(
    stage_all: bool = typer.Option(False, "--stage-all", "-a", help="Stage every changed file without asking"),
    branch_name: Optional[str] = typer.Option(None, "--branch-name", "-b", help="Remote branch to push to"),
    skip_chatbot: bool = typer.Option(
        False, "--skip-chatbot", help="Do not call the model; use default_commit_message or type one"
    ),
    skip_push_confirmation: bool = typer.Option(
        False, "--skip-push-confirmation", help="Push without asking"
    ),
    skip_commit_confirmation: bool = typer.Option(
        False, "--skip-commit-confirmation", help="Follow default_commit_behavior instead of asking"
    ),
    config_path: Optional[Path] = _config_path_option(),
) -> None:
    """Stage changes, generate a commit message, commit and optionally push."""
    try:
        store = ConfigStore.load_or_default(config_path)
        repository = GitRepository.open()
    except (ConfigError, GitError) as e:
        _print_error(str(e))
        return

    console.print("[bold]┌  autocommit[/bold]")

    orchestrator = CommitOrchestrator(
        repository=repository,
        context_builder=ChatContextBuilder(load_i18n()),
        generator=MessageGenerator.from_config(store.config),
        prompter=QuestionaryPrompter(),
        preferences=store.preferences(),
        options=CommitOptions(
            stage_all=stage_all,
            branch_name=branch_name,
            skip_chatbot=skip_chatbot,
            skip_push_confirmation=skip_push_confirmation,
            skip_commit_confirmation=skip_commit_confirmation,
        ),
        console=console,
    )
    state = orchestrator.run()

    if state is SessionState.FAILED:
        console.print("[red]└  autocommit failed[/red]")
        raise typer.Exit(1)
    if state is SessionState.CANCELLED:
        console.print("[dim]└  Cancelled, exiting...[/dim]")
    else:
        console.print(f"[bold]└  Done[/bold] ({len(orchestrator.commits)} commits)")


def _load_store(config_path: Optional[Path], apply_env: bool) -> ConfigStore:
    try:
        return ConfigStore.load_or_default(config_path, apply_env=apply_env)
    except ConfigError as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        raise typer.Exit(1) from e


@config_app.command("get")
def config_get(
    keys: Optional[list[str]] = typer.Argument(None, help="Keys to show (all keys if omitted)"),
    config_path: Optional[Path] = _config_path_option(),
) -> None:
    """Show configuration values."""
    store = _load_store(config_path, apply_env=True)
    try:
        values = store.get_values(keys)
    except ConfigError as e:
        _print_error(str(e))
        return

    for key, value in values:
        if value:
            console.print(f"[bold]{key}[/bold] = [green]{escape(value)}[/green]")


@config_app.command("set")
def config_set(
    key_values: list[str] = typer.Argument(..., metavar="KEY=VALUE", help="One or more key=value pairs"),
    config_path: Optional[Path] = _config_path_option(),
) -> None:
    """Change configuration values and save them."""
    # Environment overrides are not written back to the file
    store = _load_store(config_path, apply_env=False)
    try:
        for key_value in key_values:
            store.set_pair(key_value)
        store.save()
    except ConfigError as e:
        _print_error(str(e))
        return

    _print_success("Config successfully set")


@config_app.command("reset")
def config_reset(config_path: Optional[Path] = _config_path_option()) -> None:
    """Restore the default configuration."""
    store = ConfigStore(path=config_path)
    store.reset()
    try:
        store.save()
    except ConfigError as e:
        _print_error(str(e))
        return

    _print_success("Config successfully reset")


@config_app.command("env")
def config_env(
    shell: Optional[str] = typer.Option(None, "--shell", "-s", help="Output format: bash, fish or powershell"),
    config_path: Optional[Path] = _config_path_option(),
) -> None:
    """Print the configuration as environment variable assignments."""
    if shell is not None and shell not in SHELLS:
        _print_error(f"Unsupported shell: {shell} (supported: {', '.join(SHELLS)})")
        return

    store = _load_store(config_path, apply_env=True)
    for line in store.env_lines(shell):
        print(line)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
