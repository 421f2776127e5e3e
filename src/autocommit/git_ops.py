"""Git operations layer for autocommit."""

from __future__ import annotations

import logging
from pathlib import Path

from git import Git, Repo
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from autocommit.models import CommitResult

logger = logging.getLogger(__name__)

# Files excluded from the diff sent to the generator
EXCLUDED_DIFF_SUFFIXES = (".lock",)
AUTOIGNORE_FILE = ".autoignore"


class GitError(Exception):
    """Custom exception for git operation errors."""
    pass


def get_repo(path: str | Path = ".") -> Repo:
    """Get the git repository at the given path.

    Args:
        path: Path inside the repository. Defaults to current directory.

    Returns:
        The git Repo object.

    Raises:
        GitError: If the path is not a valid git repository.
    """
    try:
        return Repo(path, search_parent_directories=True)
    except (InvalidGitRepositoryError, NoSuchPathError):
        raise GitError(f"Not a git repository: {path}")


def get_git_identity() -> tuple[str, str]:
    """Read user.name and user.email from git configuration.

    Uses the repository configuration when run inside one, the global
    configuration otherwise. Unset values come back as empty strings.
    """
    git_cmd = Git()
    values: list[str] = []
    for key in ("user.name", "user.email"):
        try:
            values.append(git_cmd.config("--get", key).strip())
        except GitCommandError:
            values.append("")
    return values[0], values[1]


def _split_paths(output: str) -> list[str]:
    """Split NUL-separated (`-z`) git output; paths come back unquoted."""
    return [path for path in output.split("\0") if path]


class GitRepository:
    """Gateway to the working tree used by the commit workflow."""

    def __init__(self, repo: Repo) -> None:
        self.repo = repo

    @classmethod
    def open(cls, path: str | Path = ".") -> GitRepository:
        return cls(get_repo(path))

    @property
    def root(self) -> Path:
        """Root directory of the repository."""
        return Path(self.repo.working_dir)

    def get_changed_files(self) -> list[str]:
        """Files with changes that are not staged yet (modified, deleted or untracked).

        Returns:
            Sorted list of paths relative to the repository root.
        """
        try:
            unstaged = _split_paths(self.repo.git.diff("-z", "--name-only"))
            untracked = _split_paths(self.repo.git.ls_files("-z", "--others", "--exclude-standard"))
        except GitCommandError as e:
            raise GitError(f"Failed to list changed files: {e}") from e
        return sorted(set(unstaged) | set(untracked))

    def get_staged_files(self) -> list[str]:
        """Files staged for the next commit.

        Works in a fresh repository with no commits as well.
        """
        try:
            return sorted(_split_paths(self.repo.git.diff("-z", "--cached", "--name-only")))
        except GitCommandError as e:
            raise GitError(f"Failed to list staged files: {e}") from e

    def get_ignored_files(self) -> list[str]:
        """Files in the index matched by a pattern in any `.autoignore` file.

        `.autoignore` files use gitignore syntax and apply to their own
        directory and below, like `.gitignore`.
        """
        try:
            output = self.repo.git.ls_files(
                "-z", "--cached", "--ignored", f"--exclude-per-directory={AUTOIGNORE_FILE}"
            )
        except GitCommandError as e:
            raise GitError(f"Failed to read {AUTOIGNORE_FILE} patterns: {e}") from e
        return sorted(_split_paths(output))

    def stage(self, paths: list[str]) -> None:
        """Stage specific files for commit.

        Raises:
            GitError: If staging fails.
        """
        if not paths:
            return
        try:
            # git add handles deletions and empty files better than index.add
            self.repo.git.add("--", *paths)
        except GitCommandError as e:
            logger.error("git add failed: %s", e)
            raise GitError(f"Failed to stage files: {e}") from e

    def stage_all(self) -> None:
        try:
            self.repo.git.add("--all")
        except GitCommandError as e:
            logger.error("git add --all failed: %s", e)
            raise GitError(f"Failed to stage files: {e}") from e

    def get_staged_diff(self, paths: list[str] | None = None) -> str:
        """Get the staged diff for the given files (all staged files if omitted).

        Files matched by `.autoignore` are always left out. Lock files are
        left out unless nothing else is staged.
        """
        paths = list(paths) if paths is not None else self.get_staged_files()
        ignored = set(self.get_ignored_files()) & set(paths)
        if ignored:
            logger.info("Files excluded by %s: %s", AUTOIGNORE_FILE, ", ".join(sorted(ignored)))
            paths = [p for p in paths if p not in ignored]
        included = [p for p in paths if not p.endswith(EXCLUDED_DIFF_SUFFIXES)]
        excluded = [p for p in paths if p.endswith(EXCLUDED_DIFF_SUFFIXES)]
        if excluded and included:
            logger.warning("Lock files excluded from the diff: %s", ", ".join(excluded))
        else:
            included = paths
        if not included:
            return ""
        try:
            return self.repo.git.diff("--cached", "--", *included)
        except GitCommandError as e:
            raise GitError(f"Failed to get diff: {e}") from e

    def current_branch(self) -> str:
        try:
            return self.repo.active_branch.name
        except TypeError:
            # Detached HEAD
            return "HEAD"

    def commit(self, message: str, name: str, email: str) -> CommitResult:
        """Create a commit with the staged changes.

        Raises:
            GitError: If nothing is staged or the commit fails.
        """
        if not self.get_staged_files():
            raise GitError("Failed to commit. Have you manually committed recently?")

        args = ["-m", message]
        if name and email:
            args.append(f"--author={name} <{email}>")
        try:
            self.repo.git.commit(*args)
        except GitCommandError as e:
            logger.error("git commit failed: %s", e)
            raise GitError(f"Failed to create commit: {e.stderr.strip() or e}") from e

        head = self.repo.head.commit
        totals = head.stats.total
        return CommitResult(
            message=message,
            branch=self.current_branch(),
            commit_hash=head.hexsha,
            author_name=head.author.name or name,
            author_email=head.author.email or email,
            commit_count=int(self.repo.git.rev_list("--count", "HEAD")),
            files_changed=totals.get("files", 0),
            insertions=totals.get("insertions", 0),
            deletions=totals.get("deletions", 0),
        )

    def list_remotes(self) -> list[str]:
        return [remote.name for remote in self.repo.remotes]

    def pull(self, remote: str) -> None:
        try:
            self.repo.git.pull(remote)
        except GitCommandError as e:
            logger.error("git pull %s failed: %s", remote, e)
            raise GitError(
                f"Failed to pull changes from remote repository {remote}: {e.stderr.strip() or e}"
            ) from e

    def push(self, remote: str, branch: str | None = None) -> None:
        """Push HEAD to `remote`, onto `branch` when given, else onto the branch of the same name."""
        refspec = "HEAD"
        if branch:
            target = branch if branch.startswith("refs/") else f"refs/heads/{branch}"
            refspec = f"HEAD:{target}"
        try:
            self.repo.git.push("--verbose", remote, refspec)
        except GitCommandError as e:
            logger.error("git push %s failed: %s", remote, e)
            raise GitError(
                f"Failed to push changes to remote repository {remote}: {e.stderr.strip() or e}"
            ) from e

    def status_summary(self) -> str:
        """Short `git status` listing of the working tree."""
        try:
            return self.repo.git.status("--short")
        except GitCommandError as e:
            raise GitError(f"Failed to get repository status: {e}") from e
