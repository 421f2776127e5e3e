"""autocommit - generate commit messages from staged changes."""

__version__ = "1.0.0"
