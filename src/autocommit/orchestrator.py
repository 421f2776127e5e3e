"""The interactive commit workflow.

A session is an explicit state machine: each handler performs at most one
blocking operation (git command, HTTP call or prompt) and returns the
next state. Errors from git or the generator move the session to FAILED;
a declined or aborted prompt moves it to CANCELLED or skips the step.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

from rich.console import Console
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.spinner import Spinner
from rich.table import Table
from rich.text import Text

from autocommit.config import DefaultBehavior, SessionPreferences
from autocommit.context import ChatContextBuilder
from autocommit.generator import GenerationError
from autocommit.git_ops import GitError, GitRepository
from autocommit.models import ChatContext, CommitResult
from autocommit.prompter import InteractionPrompter

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    CHECKING_CHANGES = "checking_changes"
    STAGING_DECISION = "staging_decision"
    STAGING = "staging"
    COUNTING = "counting"
    GENERATING = "generating"
    REVIEWING_MESSAGE = "reviewing_message"
    COMMITTING = "committing"
    PUSH_DECISION = "push_decision"
    REMOTE_SELECTION = "remote_selection"
    PULLING = "pulling"
    PUSHING = "pushing"
    LOOP_DECISION = "loop_decision"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.DONE, SessionState.CANCELLED, SessionState.FAILED)


class MessageSource(str, Enum):
    GENERATOR = "generator"
    DEFAULT = "default"
    MANUAL = "manual"


class ReviewAction(str, Enum):
    ACCEPT = "Commit with this message"
    REGENERATE = "Generate a different message"
    EDIT = "Edit the message"
    CANCEL = "Cancel"


class CommitMessageGenerator(Protocol):
    def generate(self, context: ChatContext) -> str: ...


@dataclass
class CommitOptions:
    """Flags of the `commit` command."""

    stage_all: bool = False
    branch_name: str | None = None
    skip_chatbot: bool = False
    skip_push_confirmation: bool = False
    skip_commit_confirmation: bool = False


class CommitOrchestrator:
    """Runs one commit session from change detection to a terminal state."""

    def __init__(
        self,
        repository: GitRepository,
        context_builder: ChatContextBuilder,
        generator: CommitMessageGenerator,
        prompter: InteractionPrompter,
        preferences: SessionPreferences,
        options: CommitOptions | None = None,
        console: Console | None = None,
    ) -> None:
        self.repository = repository
        self.context_builder = context_builder
        self.generator = generator
        self.prompter = prompter
        self.preferences = preferences
        self.options = options or CommitOptions()
        self.console = console or Console()

        self.state = SessionState.IDLE
        self.history: list[SessionState] = [SessionState.IDLE]
        self.commits: list[CommitResult] = []
        self.error: Exception | None = None

        self._stage_all = self.options.stage_all
        self._changed_files: list[str] = []
        self._staged_files: list[str] = []
        self._files_to_stage: list[str] | None = None
        self._diff = ""
        self._regenerate = False
        self._message = ""
        self._message_source = MessageSource.GENERATOR
        self._remote: str | None = None

        self._handlers: dict[SessionState, Callable[[], SessionState]] = {
            SessionState.CHECKING_CHANGES: self._check_changes,
            SessionState.STAGING_DECISION: self._decide_staging,
            SessionState.STAGING: self._stage,
            SessionState.COUNTING: self._count_staged,
            SessionState.GENERATING: self._generate,
            SessionState.REVIEWING_MESSAGE: self._review_message,
            SessionState.COMMITTING: self._commit,
            SessionState.PUSH_DECISION: self._decide_push,
            SessionState.REMOTE_SELECTION: self._select_remote,
            SessionState.PULLING: self._pull,
            SessionState.PUSHING: self._push,
            SessionState.LOOP_DECISION: self._decide_loop,
        }

    def run(self) -> SessionState:
        """Drive the session until DONE, CANCELLED or FAILED."""
        self._transition(SessionState.CHECKING_CHANGES)
        while not self.state.is_terminal:
            handler = self._handlers[self.state]
            try:
                next_state = handler()
            except (GitError, GenerationError) as e:
                next_state = self._fail(e)
            self._transition(next_state)

        logger.info("Session finished: %s (%d commits)", self.state.value, len(self.commits))
        return self.state

    def _transition(self, next_state: SessionState) -> None:
        logger.debug("state %s -> %s", self.state.value, next_state.value)
        self.state = next_state
        self.history.append(next_state)

    def _fail(self, error: Exception) -> SessionState:
        self.error = error
        self.console.print(f"[red]✗[/red] {escape(str(error))}")
        return SessionState.FAILED

    def _spinner(self, text: str) -> Live:
        return Live(Spinner("dots", text=f"[cyan]{text}[/cyan]"), console=self.console, transient=True)

    def _success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {message}")

    def _warn(self, message: str) -> None:
        self.console.print(f"[yellow]⚠[/yellow] {message}")

    # States

    def _check_changes(self) -> SessionState:
        self._changed_files = self.repository.get_changed_files()
        self._staged_files = self.repository.get_staged_files()

        if not self._changed_files and not self._staged_files:
            self.console.print("[yellow]No changes detected, write some code and run again.[/yellow]")
            return SessionState.DONE

        status = self.repository.status_summary()
        if status:
            self.console.print(Panel(Text(status), title="Repository status", border_style="blue", expand=False))
        return SessionState.STAGING_DECISION

    def _decide_staging(self) -> SessionState:
        changed = self._changed_files
        if not changed:
            return SessionState.COUNTING if self._staged_files else SessionState.CANCELLED

        if self._stage_all:
            self._files_to_stage = None
            return SessionState.STAGING

        if self.prompter.confirm(f"Do you want to stage all {len(changed)} changed files?", default=True):
            self._files_to_stage = None
            return SessionState.STAGING

        selection = self.prompter.choose_many(
            f"Select the files you want to add to the commit ({len(changed)} files changed):", changed
        )
        if selection:
            self._files_to_stage = [changed[i] for i in selection]
            return SessionState.STAGING

        if self._staged_files:
            self.console.print("[dim]No files selected, using the files already staged.[/dim]")
            return SessionState.COUNTING

        self._warn("No files selected for staging")
        return SessionState.CANCELLED

    def _stage(self) -> SessionState:
        with self._spinner("Staging files..."):
            if self._files_to_stage is None:
                self.repository.stage_all()
            else:
                self.repository.stage(self._files_to_stage)

        if self._files_to_stage is None:
            self._success("Staged all changed files")
        else:
            self._success(f"Staged {len(self._files_to_stage)} files")
        return SessionState.COUNTING

    def _count_staged(self) -> SessionState:
        self._staged_files = self.repository.get_staged_files()
        if not self._staged_files:
            self._warn("No staged changes found")
            self._changed_files = self.repository.get_changed_files()
            self._stage_all = False
            return SessionState.STAGING_DECISION

        self.console.print(f"[green]{len(self._staged_files)}[/green] staged files:")
        for path in self._staged_files:
            self.console.print(f"  └─ {escape(path)}")

        self._diff = self.repository.get_staged_diff(self._staged_files)
        if not self._diff.strip():
            self._warn("The staged files have no changes to describe")
            # Forget them so the staging decision cannot fall back to them again
            self._staged_files = []
            self._changed_files = self.repository.get_changed_files()
            self._stage_all = False
            return SessionState.STAGING_DECISION

        self._regenerate = False
        return SessionState.GENERATING

    def _generate(self) -> SessionState:
        if self.preferences.default_commit_message:
            self._message = self.preferences.default_commit_message
            self._message_source = MessageSource.DEFAULT
            return SessionState.REVIEWING_MESSAGE

        if self.options.skip_chatbot:
            message = self.prompter.free_text("Enter the commit message:")
            if not message:
                self._warn("No commit message entered")
                return SessionState.CANCELLED
            self._message = message
            self._message_source = MessageSource.MANUAL
            return SessionState.REVIEWING_MESSAGE

        context = self.context_builder.build_for_diff(self.preferences, self._diff, regenerate=self._regenerate)
        with self._spinner("Generating the commit message"):
            self._message = self.generator.generate(context)
        self._message_source = MessageSource.GENERATOR
        self._success("Commit message generated successfully")
        return SessionState.REVIEWING_MESSAGE

    def _review_message(self) -> SessionState:
        self.console.print(Panel(Text(self._message), title="Commit message", border_style="green", expand=False))

        if self.options.skip_commit_confirmation:
            behavior = self.preferences.default_commit_behavior
            if behavior is DefaultBehavior.YES:
                return SessionState.COMMITTING
            if behavior is DefaultBehavior.NO:
                self.console.print("[yellow]Commit cancelled (default_commit_behavior=no).[/yellow]")
                return SessionState.CANCELLED

        actions = [ReviewAction.ACCEPT]
        if self._message_source is MessageSource.GENERATOR:
            actions.append(ReviewAction.REGENERATE)
        actions.extend([ReviewAction.EDIT, ReviewAction.CANCEL])

        choice = self.prompter.choose_one("What would you like to do?", [a.value for a in actions])
        action = actions[choice] if choice is not None else ReviewAction.CANCEL

        if action is ReviewAction.ACCEPT:
            return SessionState.COMMITTING
        if action is ReviewAction.REGENERATE:
            self._regenerate = True
            return SessionState.GENERATING
        if action is ReviewAction.EDIT:
            edited = self.prompter.free_text("Edit the commit message:", default=self._message)
            if edited:
                self._message = edited
            return SessionState.REVIEWING_MESSAGE

        self.console.print("[yellow]Commit cancelled.[/yellow]")
        return SessionState.CANCELLED

    def _commit(self) -> SessionState:
        with self._spinner("Committing changes..."):
            result = self.repository.commit(
                self._message, self.preferences.author_name, self.preferences.author_email
            )
        self.commits.append(result)
        self._success("Changes committed successfully")
        self.console.print(_commit_table(result))
        return SessionState.PUSH_DECISION

    def _decide_push(self) -> SessionState:
        behavior = self.preferences.default_push_behavior
        if self.options.skip_push_confirmation or behavior is DefaultBehavior.YES:
            return SessionState.REMOTE_SELECTION
        if behavior is DefaultBehavior.NO:
            return SessionState.LOOP_DECISION

        if self.prompter.confirm("Do you want to push these changes to a remote repository?", default=True):
            return SessionState.REMOTE_SELECTION
        self.console.print("[dim]Push skipped.[/dim]")
        return SessionState.LOOP_DECISION

    def _select_remote(self) -> SessionState:
        remotes = self.repository.list_remotes()
        if not remotes:
            self._warn("No remote repository found, skipping push")
            return SessionState.LOOP_DECISION

        if len(remotes) == 1:
            self._remote = remotes[0]
        else:
            choice = self.prompter.choose_one("Select the remote repository to push changes to:", remotes)
            if choice is None:
                self._warn("No remote repository selected, skipping push")
                return SessionState.LOOP_DECISION
            self._remote = remotes[choice]

        if self.options.skip_push_confirmation:
            return SessionState.PUSHING
        if self.prompter.confirm(f"Do you want to pull from {self._remote} before pushing?", default=False):
            return SessionState.PULLING
        return SessionState.PUSHING

    def _pull(self) -> SessionState:
        with self._spinner(f"Pulling changes from {self._remote}..."):
            self.repository.pull(self._remote)
        self._success(f"Pulled changes from remote repository [green]{self._remote}[/green]")
        return SessionState.PUSHING

    def _push(self) -> SessionState:
        with self._spinner(f"Pushing changes to remote repository {self._remote}..."):
            self.repository.push(self._remote, self.options.branch_name)
        self._success(f"Changes pushed to remote repository [green]{self._remote}[/green]")
        return SessionState.LOOP_DECISION

    def _decide_loop(self) -> SessionState:
        if self.prompter.confirm("Do you want to continue?", default=False):
            self._stage_all = False
            return SessionState.CHECKING_CHANGES
        return SessionState.DONE


def _commit_table(result: CommitResult) -> Table:
    table = Table(title="Commit Information", title_style="bold yellow")
    table.add_column("Branch", style="cyan")
    table.add_column("Commit Hash", style="white")
    table.add_column("Author")
    table.add_column("Commit Count", justify="right")
    table.add_column("Files Changed", justify="right")
    table.add_column("Insertions", justify="right", style="green")
    table.add_column("Deletions", justify="right", style="red")
    table.add_row(
        result.branch,
        result.commit_hash[:7],
        f"{result.author_name} <{result.author_email}>",
        str(result.commit_count),
        str(result.files_changed),
        str(result.insertions),
        str(result.deletions),
    )
    return table
