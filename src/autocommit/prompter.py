"""Interactive prompts.

Every prompt returns None when the user aborts it (Ctrl-C or Escape);
callers treat that the same as answering "no".
"""

from __future__ import annotations

from typing import Protocol, Sequence

import questionary


class InteractionPrompter(Protocol):
    def confirm(self, prompt: str, default: bool = True) -> bool | None: ...

    def choose_one(self, prompt: str, items: Sequence[str]) -> int | None: ...

    def choose_many(self, prompt: str, items: Sequence[str]) -> list[int] | None: ...

    def free_text(self, prompt: str, default: str = "") -> str | None: ...


class QuestionaryPrompter:
    """Terminal prompts backed by questionary."""

    def confirm(self, prompt: str, default: bool = True) -> bool | None:
        return questionary.confirm(prompt, default=default).ask()

    def choose_one(self, prompt: str, items: Sequence[str]) -> int | None:
        choices = [questionary.Choice(title=item, value=index) for index, item in enumerate(items)]
        return questionary.select(prompt, choices=choices).ask()

    def choose_many(self, prompt: str, items: Sequence[str]) -> list[int] | None:
        choices = [questionary.Choice(title=item, value=index) for index, item in enumerate(items)]
        return questionary.checkbox(prompt, choices=choices).ask()

    def free_text(self, prompt: str, default: str = "") -> str | None:
        answer = questionary.text(prompt, default=default, multiline="\n" in default).ask()
        if answer is None or not answer.strip():
            return None
        return answer.strip()
