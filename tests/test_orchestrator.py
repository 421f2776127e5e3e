"""Unit tests for the commit workflow."""

import io

import pytest
from rich.console import Console

from autocommit.config import DefaultBehavior, SessionPreferences
from autocommit.context import REGENERATE_INSTRUCTION, ChatContextBuilder
from autocommit.generator import RateLimited
from autocommit.git_ops import GitError
from autocommit.i18n import load_i18n
from autocommit.models import CommitResult
from autocommit.orchestrator import CommitOptions, CommitOrchestrator, ReviewAction, SessionState

ACCEPT = 0
REGENERATE = 1


class FakeRepository:
    """In-memory stand-in for GitRepository."""

    def __init__(self, changed=(), staged=(), remotes=(), staging_works=True, ignored=()):
        self.changed = list(changed)
        self.staged = list(staged)
        self.remotes = list(remotes)
        self.staging_works = staging_works
        self.ignored = set(ignored)
        self.fail_stage = False
        self.fail_pull = False
        self.fail_push = False
        self.commits = []
        self.pulls = []
        self.pushes = []

    def get_changed_files(self):
        return sorted(self.changed)

    def get_staged_files(self):
        return sorted(self.staged)

    def stage(self, paths):
        if self.fail_stage:
            raise GitError("Failed to stage files: index.lock exists")
        if not self.staging_works:
            return
        for path in paths:
            self.changed.remove(path)
            self.staged.append(path)

    def stage_all(self):
        self.stage(list(self.changed))

    def get_staged_diff(self, paths=None):
        paths = [p for p in (paths or self.staged) if p not in self.ignored]
        return "\n".join(f"diff --git a/{p} b/{p}" for p in paths)

    def status_summary(self):
        return "\n".join(f"?? {p}" for p in self.changed + self.staged)

    def commit(self, message, name, email):
        if not self.staged:
            raise GitError("Failed to commit. Have you manually committed recently?")
        self.commits.append((message, name, email, sorted(self.staged)))
        files = len(self.staged)
        self.staged = []
        return CommitResult(
            message=message,
            branch="main",
            commit_hash=f"{len(self.commits):040d}",
            author_name=name,
            author_email=email,
            commit_count=len(self.commits),
            files_changed=files,
        )

    def list_remotes(self):
        return list(self.remotes)

    def pull(self, remote):
        self.pulls.append(remote)
        if self.fail_pull:
            raise GitError(f"Failed to pull changes from remote repository {remote}: conflict")

    def push(self, remote, branch=None):
        if self.fail_push:
            raise GitError(f"Failed to push changes to remote repository {remote}: rejected")
        self.pushes.append((remote, branch))


class FakePrompter:
    """Answers prompts from scripted queues; an unscripted prompt fails the test."""

    def __init__(self, confirm=(), choose_one=(), choose_many=(), free_text=()):
        self.answers = {
            "confirm": list(confirm),
            "choose_one": list(choose_one),
            "choose_many": list(choose_many),
            "free_text": list(free_text),
        }
        self.prompts = []

    def _next(self, kind, prompt):
        self.prompts.append((kind, prompt))
        queue = self.answers[kind]
        if not queue:
            raise AssertionError(f"Unexpected {kind} prompt: {prompt}")
        return queue.pop(0)

    def confirm(self, prompt, default=True):
        return self._next("confirm", prompt)

    def choose_one(self, prompt, items):
        self.last_items = list(items)
        return self._next("choose_one", prompt)

    def choose_many(self, prompt, items):
        return self._next("choose_many", prompt)

    def free_text(self, prompt, default=""):
        return self._next("free_text", prompt)

    def unanswered(self):
        return {kind: queue for kind, queue in self.answers.items() if queue}


class FakeGenerator:
    """Returns scripted replies and records every context it receives."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.contexts = []

    def generate(self, context):
        self.contexts.append(context)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def make_session(output):
    def factory(repository, prompter, generator=None, options=None, **preferences):
        preferences.setdefault("author_name", "Test User")
        preferences.setdefault("author_email", "test@example.com")
        return CommitOrchestrator(
            repository=repository,
            context_builder=ChatContextBuilder(load_i18n()),
            generator=generator or FakeGenerator("feat: add feature"),
            prompter=prompter,
            preferences=SessionPreferences(**preferences),
            options=options or CommitOptions(),
            console=Console(file=output, width=120),
        )

    return factory


class TestScenarios:
    """End-to-end sessions against in-memory collaborators."""

    def test_nothing_to_commit(self, make_session, output):
        """Should finish immediately when there are no changes at all."""
        repository = FakeRepository()
        prompter = FakePrompter()
        generator = FakeGenerator("unused")

        session = make_session(repository, prompter, generator)

        assert session.run() is SessionState.DONE
        assert session.history == [SessionState.IDLE, SessionState.CHECKING_CHANGES, SessionState.DONE]
        assert repository.commits == []
        assert generator.contexts == []
        assert prompter.prompts == []
        assert "No changes detected" in output.getvalue()

    def test_default_message_without_network(self, make_session):
        """Should commit the configured message without calling the generator."""
        repository = FakeRepository(staged=["typo.md"])
        prompter = FakePrompter(confirm=[False, False])
        generator = FakeGenerator("unused")

        session = make_session(
            repository,
            prompter,
            generator,
            options=CommitOptions(skip_chatbot=True, skip_commit_confirmation=True),
            default_commit_message="Fix typo",
            default_commit_behavior=DefaultBehavior.YES,
        )

        assert session.run() is SessionState.DONE
        assert [c[0] for c in repository.commits] == ["Fix typo"]
        assert generator.contexts == []

    def test_rate_limited(self, make_session, output):
        """Should fail without committing when the generator is rate limited."""
        repository = FakeRepository(staged=["app.py"])
        session = make_session(repository, FakePrompter(), FakeGenerator(RateLimited()))

        assert session.run() is SessionState.FAILED
        assert isinstance(session.error, RateLimited)
        assert repository.commits == []
        assert "Rate limit exceeded" in output.getvalue()

    def test_regenerate_three_times(self, make_session):
        """Should build a fresh context for every generation attempt."""
        repository = FakeRepository(staged=["app.py"])
        prompter = FakePrompter(
            choose_one=[REGENERATE, REGENERATE, REGENERATE, ACCEPT],
            confirm=[False, False],
        )
        generator = FakeGenerator("feat: one", "feat: two", "feat: three", "feat: four")

        session = make_session(repository, prompter, generator)

        assert session.run() is SessionState.DONE
        assert len(generator.contexts) == 4
        assert len({id(c) for c in generator.contexts}) == 4
        assert all(len(c) == 4 for c in generator.contexts)
        assert not generator.contexts[0].messages[-1].content.startswith(REGENERATE_INSTRUCTION)
        assert all(c.messages[-1].content.startswith(REGENERATE_INSTRUCTION) for c in generator.contexts[1:])
        assert [c[0] for c in repository.commits] == ["feat: four"]

    def test_push_to_selected_remote(self, make_session):
        """Should push once to the chosen remote and never pull when declined."""
        repository = FakeRepository(staged=["app.py"], remotes=["origin", "backup"])
        prompter = FakePrompter(
            choose_one=[ACCEPT, 1],
            confirm=[True, False, False],
        )

        session = make_session(repository, prompter)

        assert session.run() is SessionState.DONE
        assert repository.pulls == []
        assert repository.pushes == [("backup", None)]
        assert prompter.last_items == ["origin", "backup"]
        assert prompter.unanswered() == {}


class TestStaging:
    """Tests for the staging states."""

    def test_stage_all_flag(self, make_session):
        repository = FakeRepository(changed=["a.py", "b.py"])
        prompter = FakePrompter(choose_one=[ACCEPT], confirm=[False, False])

        session = make_session(repository, prompter, options=CommitOptions(stage_all=True))

        assert session.run() is SessionState.DONE
        assert repository.commits[0][3] == ["a.py", "b.py"]
        assert all(kind != "choose_many" for kind, _ in prompter.prompts)

    def test_confirm_stage_all(self, make_session):
        repository = FakeRepository(changed=["a.py", "b.py"])
        prompter = FakePrompter(confirm=[True, False, False], choose_one=[ACCEPT])

        session = make_session(repository, prompter)

        assert session.run() is SessionState.DONE
        assert prompter.prompts[0] == ("confirm", "Do you want to stage all 2 changed files?")
        assert repository.commits[0][3] == ["a.py", "b.py"]

    def test_select_files(self, make_session):
        """Should commit only the selected files."""
        repository = FakeRepository(changed=["a.py", "b.py", "c.py"])
        prompter = FakePrompter(confirm=[False, False, False], choose_many=[[0, 2]], choose_one=[ACCEPT])

        session = make_session(repository, prompter)

        assert session.run() is SessionState.DONE
        assert repository.commits[0][3] == ["a.py", "c.py"]
        assert repository.changed == ["b.py"]

    def test_nothing_selected(self, make_session):
        repository = FakeRepository(changed=["a.py"])
        prompter = FakePrompter(confirm=[False], choose_many=[[]])
        generator = FakeGenerator("unused")

        session = make_session(repository, prompter, generator)

        assert session.run() is SessionState.CANCELLED
        assert generator.contexts == []
        assert repository.commits == []

    def test_nothing_selected_uses_already_staged(self, make_session):
        repository = FakeRepository(changed=["a.py"], staged=["b.py"])
        prompter = FakePrompter(confirm=[False, False, False], choose_many=[None], choose_one=[ACCEPT])

        session = make_session(repository, prompter)

        assert session.run() is SessionState.DONE
        assert repository.commits[0][3] == ["b.py"]

    def test_staging_picked_up_nothing(self, make_session):
        """Should go back to the staging decision instead of generating from an empty diff."""
        repository = FakeRepository(changed=["a.py"], staging_works=False)
        prompter = FakePrompter(confirm=[False], choose_many=[[]])
        generator = FakeGenerator("unused")

        session = make_session(repository, prompter, generator, options=CommitOptions(stage_all=True))

        assert session.run() is SessionState.CANCELLED
        assert generator.contexts == []
        assert session.history.count(SessionState.STAGING_DECISION) == 2
        assert SessionState.GENERATING not in session.history

    def test_stage_failure(self, make_session, output):
        """Should fail without generating or committing when staging errors."""
        repository = FakeRepository(changed=["a.py", "b.py"])
        repository.fail_stage = True
        prompter = FakePrompter(confirm=[True])
        generator = FakeGenerator("unused")

        session = make_session(repository, prompter, generator)

        assert session.run() is SessionState.FAILED
        assert isinstance(session.error, GitError)
        assert session.history[-2:] == [SessionState.STAGING, SessionState.FAILED]
        assert generator.contexts == []
        assert repository.commits == []
        assert "index.lock exists" in output.getvalue()

    def test_selected_stage_failure(self, make_session):
        repository = FakeRepository(changed=["a.py", "b.py"])
        repository.fail_stage = True
        prompter = FakePrompter(confirm=[False], choose_many=[[1]])

        session = make_session(repository, prompter)

        assert session.run() is SessionState.FAILED
        assert session.error is not None
        assert repository.commits == []

    def test_empty_diff_not_generated(self, make_session, output):
        """Should not generate when the staged files leave nothing to describe."""
        repository = FakeRepository(staged=["out.snap"], ignored=["out.snap"])
        generator = FakeGenerator("unused")

        session = make_session(repository, FakePrompter(), generator)

        assert session.run() is SessionState.CANCELLED
        assert generator.contexts == []
        assert repository.commits == []
        assert "no changes to describe" in output.getvalue()

    def test_empty_diff_asks_again(self, make_session):
        repository = FakeRepository(changed=["a.py"], staged=["out.snap"], ignored=["out.snap"])
        prompter = FakePrompter(confirm=[False, False], choose_many=[[], []])
        generator = FakeGenerator("unused")

        session = make_session(repository, prompter, generator)

        assert session.run() is SessionState.CANCELLED
        assert generator.contexts == []
        assert session.history.count(SessionState.STAGING_DECISION) == 2

    @pytest.mark.parametrize("staging_works", [True, False])
    @pytest.mark.parametrize("selection", [[], [0], [0, 1], None])
    def test_never_generates_without_staged_files(self, make_session, staging_works, selection):
        repository = FakeRepository(changed=["a.py", "b.py"], staging_works=staging_works)
        prompter = FakePrompter(
            confirm=[False] * 5,
            choose_many=[selection, selection, []],
            choose_one=[3],
        )
        generator = FakeGenerator("feat: x")

        assert make_session(repository, prompter, generator).run() is SessionState.CANCELLED

        assert len(generator.contexts) == (1 if staging_works and selection else 0)
        for context in generator.contexts:
            assert context.messages[-1].content.strip()


class TestReview:
    """Tests for the message review state."""

    def test_cancel(self, make_session):
        repository = FakeRepository(staged=["app.py"])
        prompter = FakePrompter(choose_one=[3])

        session = make_session(repository, prompter)

        assert session.run() is SessionState.CANCELLED
        assert repository.commits == []

    def test_prompt_aborted(self, make_session):
        """Should treat an aborted prompt as cancel."""
        repository = FakeRepository(staged=["app.py"])
        session = make_session(repository, FakePrompter(choose_one=[None]))

        assert session.run() is SessionState.CANCELLED
        assert repository.commits == []

    def test_edit_message(self, make_session):
        repository = FakeRepository(staged=["app.py"])
        prompter = FakePrompter(
            choose_one=[2, ACCEPT],
            free_text=["fix: handle empty input"],
            confirm=[False, False],
        )

        session = make_session(repository, prompter)

        assert session.run() is SessionState.DONE
        assert [c[0] for c in repository.commits] == ["fix: handle empty input"]

    def test_no_regenerate_for_default_message(self, make_session):
        repository = FakeRepository(staged=["app.py"])
        prompter = FakePrompter(choose_one=[ACCEPT], confirm=[False, False])

        make_session(repository, prompter, default_commit_message="chore: bump").run()

        assert prompter.last_items == [
            ReviewAction.ACCEPT.value,
            ReviewAction.EDIT.value,
            ReviewAction.CANCEL.value,
        ]

    def test_skip_confirmation_behavior_no(self, make_session):
        repository = FakeRepository(staged=["app.py"])
        session = make_session(
            repository,
            FakePrompter(),
            options=CommitOptions(skip_commit_confirmation=True),
            default_commit_behavior=DefaultBehavior.NO,
        )

        assert session.run() is SessionState.CANCELLED
        assert repository.commits == []

    @pytest.mark.parametrize("behavior", [DefaultBehavior.ASK, None])
    def test_skip_confirmation_falls_back_to_prompt(self, make_session, behavior):
        repository = FakeRepository(staged=["app.py"])
        prompter = FakePrompter(choose_one=[3])

        session = make_session(
            repository,
            prompter,
            options=CommitOptions(skip_commit_confirmation=True),
            default_commit_behavior=behavior,
        )

        assert session.run() is SessionState.CANCELLED
        assert prompter.prompts == [("choose_one", "What would you like to do?")]

    def test_commit_behavior_ignored_without_flag(self, make_session):
        """Should still ask when default_commit_behavior is set but confirmation is not skipped."""
        repository = FakeRepository(staged=["app.py"])
        prompter = FakePrompter(choose_one=[3])

        session = make_session(repository, prompter, default_commit_behavior=DefaultBehavior.YES)

        assert session.run() is SessionState.CANCELLED
        assert repository.commits == []

    def test_manual_message(self, make_session):
        repository = FakeRepository(staged=["app.py"])
        prompter = FakePrompter(free_text=["docs: update readme"], choose_one=[ACCEPT], confirm=[False, False])
        generator = FakeGenerator("unused")

        session = make_session(repository, prompter, generator, options=CommitOptions(skip_chatbot=True))

        assert session.run() is SessionState.DONE
        assert [c[0] for c in repository.commits] == ["docs: update readme"]
        assert generator.contexts == []

    def test_manual_message_empty(self, make_session):
        repository = FakeRepository(staged=["app.py"])
        session = make_session(repository, FakePrompter(free_text=[None]), options=CommitOptions(skip_chatbot=True))

        assert session.run() is SessionState.CANCELLED


class TestCommitAndPush:
    """Tests for committing, pushing and looping."""

    def test_commit_uses_author(self, make_session, output):
        repository = FakeRepository(staged=["app.py"])
        prompter = FakePrompter(choose_one=[ACCEPT], confirm=[False, False])

        session = make_session(repository, prompter, author_name="Jane Doe", author_email="jane@example.com")

        session.run()

        assert repository.commits == [("feat: add feature", "Jane Doe", "jane@example.com", ["app.py"])]
        assert session.commits[0].files_changed == 1
        assert "Commit Information" in output.getvalue()

    def test_commit_failure(self, make_session, output):
        """Should fail when the commit is rejected."""
        repository = FakeRepository(staged=["app.py"])

        def commit_out_of_band(message, name, email):
            raise GitError("Failed to commit. Have you manually committed recently?")

        repository.commit = commit_out_of_band
        session = make_session(repository, FakePrompter(choose_one=[ACCEPT]))

        assert session.run() is SessionState.FAILED
        assert "Have you manually committed recently?" in output.getvalue()

    def test_commit_only_after_accept(self, make_session):
        repository = FakeRepository(staged=["app.py"])
        prompter = FakePrompter(choose_one=[REGENERATE, ACCEPT], confirm=[False, False])

        session = make_session(repository, prompter, FakeGenerator("feat: one", "feat: two"))
        session.run()

        index = session.history.index(SessionState.COMMITTING)
        assert session.history[index - 1] is SessionState.REVIEWING_MESSAGE
        assert session.history.count(SessionState.COMMITTING) == 1

    def test_push_behavior_no(self, make_session):
        repository = FakeRepository(staged=["app.py"], remotes=["origin"])
        prompter = FakePrompter(choose_one=[ACCEPT], confirm=[False])

        session = make_session(repository, prompter, default_push_behavior=DefaultBehavior.NO)

        assert session.run() is SessionState.DONE
        assert repository.pushes == []
        assert prompter.prompts[-1] == ("confirm", "Do you want to continue?")

    def test_skip_push_confirmation(self, make_session):
        """Should push to the only remote without asking."""
        repository = FakeRepository(staged=["app.py"], remotes=["origin"])
        prompter = FakePrompter(choose_one=[ACCEPT], confirm=[False])

        session = make_session(
            repository,
            prompter,
            options=CommitOptions(skip_push_confirmation=True, branch_name="release"),
        )

        assert session.run() is SessionState.DONE
        assert repository.pushes == [("origin", "release")]
        assert repository.pulls == []

    def test_push_behavior_yes_asks_about_pull(self, make_session):
        repository = FakeRepository(staged=["app.py"], remotes=["origin"])
        prompter = FakePrompter(choose_one=[ACCEPT], confirm=[True, False])

        session = make_session(repository, prompter, default_push_behavior=DefaultBehavior.YES)

        assert session.run() is SessionState.DONE
        assert repository.pulls == ["origin"]
        assert repository.pushes == [("origin", None)]

    def test_no_remotes(self, make_session, output):
        repository = FakeRepository(staged=["app.py"])
        prompter = FakePrompter(choose_one=[ACCEPT], confirm=[True, False])

        session = make_session(repository, prompter)

        assert session.run() is SessionState.DONE
        assert repository.pushes == []
        assert "No remote repository found" in output.getvalue()

    def test_remote_selection_aborted(self, make_session):
        repository = FakeRepository(staged=["app.py"], remotes=["origin", "backup"])
        prompter = FakePrompter(choose_one=[ACCEPT, None], confirm=[True, False])

        session = make_session(repository, prompter)

        assert session.run() is SessionState.DONE
        assert repository.pushes == []

    def test_pull_failure_aborts_push(self, make_session):
        repository = FakeRepository(staged=["app.py"], remotes=["origin"])
        repository.fail_pull = True
        prompter = FakePrompter(choose_one=[ACCEPT], confirm=[True, True])

        session = make_session(repository, prompter)

        assert session.run() is SessionState.FAILED
        assert repository.pulls == ["origin"]
        assert repository.pushes == []

    def test_push_failure(self, make_session, output):
        """Should fail after the commit when the push is rejected."""
        repository = FakeRepository(staged=["app.py"], remotes=["origin"])
        repository.fail_push = True
        prompter = FakePrompter(choose_one=[ACCEPT])

        session = make_session(repository, prompter, options=CommitOptions(skip_push_confirmation=True))

        assert session.run() is SessionState.FAILED
        assert isinstance(session.error, GitError)
        assert session.history[-2:] == [SessionState.PUSHING, SessionState.FAILED]
        assert len(repository.commits) == 1
        assert repository.pushes == []
        assert "Failed to push changes to remote repository origin" in output.getvalue()

    def test_continue_loop(self, make_session):
        """Should start over after a commit and stop once nothing is left."""
        repository = FakeRepository(changed=["a.py", "b.py"])
        prompter = FakePrompter(
            confirm=[False, False, True, True, False, True],
            choose_many=[[0]],
            choose_one=[ACCEPT, ACCEPT],
        )
        generator = FakeGenerator("feat: a", "feat: b")

        session = make_session(repository, prompter, generator)

        assert session.run() is SessionState.DONE
        assert [c[3] for c in repository.commits] == [["a.py"], ["b.py"]]
        assert session.history.count(SessionState.CHECKING_CHANGES) == 3
        assert len(session.commits) == 2
