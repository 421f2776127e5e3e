"""Data models for autocommit."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class MessageRole(str, Enum):
    """Role of a chat message, as understood by the completion endpoint."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """A single role-tagged chat message."""

    model_config = ConfigDict(frozen=True)

    role: MessageRole = Field(description="Who is speaking: system, user or assistant")
    content: str = Field(description="Message text")


class ChatContext:
    """Ordered, append-only conversation sent to the remote generator.

    Messages are never edited or removed once added. A new context is
    built for every generation attempt.
    """

    def __init__(self, messages: list[Message] | None = None) -> None:
        self._messages: list[Message] = list(messages or [])

    def add_message(self, role: MessageRole, content: str) -> None:
        self._messages.append(Message(role=role, content=content))

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ChatContext):
            return NotImplemented
        return self._messages == other._messages

    def __repr__(self) -> str:
        return f"ChatContext({len(self._messages)} messages)"


class CommitResult(BaseModel):
    """Summary of a commit that was just created."""

    message: str = Field(description="The commit message")
    branch: str = Field(description="Branch the commit landed on")
    commit_hash: str = Field(description="Full commit hash")
    author_name: str = Field(default="", description="Author name")
    author_email: str = Field(default="", description="Author email")
    commit_count: int = Field(default=0, description="Number of commits reachable from HEAD")
    files_changed: int = Field(default=0, description="Files touched by the commit")
    insertions: int = Field(default=0, description="Lines added")
    deletions: int = Field(default=0, description="Lines removed")
