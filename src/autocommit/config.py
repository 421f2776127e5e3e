"""Configuration management for autocommit."""

from __future__ import annotations

import logging
import os
import re
import shlex
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Mapping

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from autocommit.git_ops import get_git_identity
from autocommit.i18n import Language

# Try to import tomllib (Python 3.11+) or fall back to tomli
try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[import-not-found,no-redef]

logger = logging.getLogger(__name__)

ENV_PREFIX = "AUTOCOMMIT_"
CONFIG_SECTION = "config"
DEFAULT_API_HOST = "https://api.openai.com"
DEFAULT_MODEL = "gpt-3.5-turbo"

_TRUE_VALUES = {"true", "yes", "on", "1"}
_FALSE_VALUES = {"false", "no", "off", "0"}
_SHELL_SAFE = re.compile(r"[\w@%+=:,./-]+", re.ASCII)


class ConfigError(ValueError):
    """Raised when a configuration key or value is invalid."""
    pass


class DefaultBehavior(str, Enum):
    """What to do at a confirmation step when it is not asked interactively."""

    YES = "yes"
    NO = "no"
    ASK = "ask"


class ValueKind(str, Enum):
    """The closed set of value types a configuration key can hold."""

    BOOL = "bool"
    STRING = "string"
    OPTIONAL_STRING = "optional_string"
    BEHAVIOR = "behavior"
    LANGUAGE = "language"

    def parse(self, raw: str) -> Any:
        """Convert a raw string (CLI argument or env var) into a typed value.

        Raises:
            ConfigError: If the string is not a valid value of this kind.
        """
        text = raw.strip()
        if self is ValueKind.BOOL:
            lowered = text.lower()
            if lowered in _TRUE_VALUES:
                return True
            if lowered in _FALSE_VALUES:
                return False
            raise ConfigError(f"Invalid value for boolean: {raw!r}")
        if self is ValueKind.STRING:
            return text
        if self is ValueKind.OPTIONAL_STRING:
            return text or None
        if self is ValueKind.BEHAVIOR:
            if not text:
                return None
            try:
                return DefaultBehavior(text.lower())
            except ValueError:
                raise ConfigError(
                    f"Invalid value for default behavior: {raw!r} (expected yes, no or ask)"
                ) from None
        try:
            return Language(text.lower())
        except ValueError:
            supported = ", ".join(lang.value for lang in Language)
            raise ConfigError(f"Unsupported language: {raw!r} (supported: {supported})") from None

    def format(self, value: Any) -> str:
        """Render a typed value the way `config get` shows it."""
        if value is None:
            return ""
        if self is ValueKind.BOOL:
            return "true" if value else "false"
        if isinstance(value, Enum):
            return str(value.value)
        return str(value)


class ConfigKey(str, Enum):
    """Every key accepted by `config get/set` and the config file."""

    OPEN_AI_API_KEY = "open_ai_api_key"
    API_HOST = "api_host"
    OPEN_AI_MODEL = "open_ai_model"
    DESCRIPTION = "description"
    EMOJI = "emoji"
    LANGUAGE = "language"
    NAME = "name"
    EMAIL = "email"
    DEFAULT_COMMIT_MESSAGE = "default_commit_message"
    DEFAULT_PUSH_BEHAVIOR = "default_push_behavior"
    DEFAULT_COMMIT_BEHAVIOR = "default_commit_behavior"

    @classmethod
    def parse(cls, key: str) -> ConfigKey:
        try:
            return cls(key.strip().lower())
        except ValueError:
            raise ConfigError(f"Unsupported config key: {key}") from None

    @property
    def kind(self) -> ValueKind:
        return _KEY_KINDS[self]

    @property
    def field_name(self) -> str:
        """Attribute name on AutocommitConfig."""
        return _FIELD_NAMES.get(self, self.value)

    @property
    def env_var(self) -> str:
        return f"{ENV_PREFIX}{self.value.upper()}"


_KEY_KINDS: dict[ConfigKey, ValueKind] = {
    ConfigKey.OPEN_AI_API_KEY: ValueKind.OPTIONAL_STRING,
    ConfigKey.API_HOST: ValueKind.STRING,
    ConfigKey.OPEN_AI_MODEL: ValueKind.STRING,
    ConfigKey.DESCRIPTION: ValueKind.BOOL,
    ConfigKey.EMOJI: ValueKind.BOOL,
    ConfigKey.LANGUAGE: ValueKind.LANGUAGE,
    ConfigKey.NAME: ValueKind.STRING,
    ConfigKey.EMAIL: ValueKind.STRING,
    ConfigKey.DEFAULT_COMMIT_MESSAGE: ValueKind.OPTIONAL_STRING,
    ConfigKey.DEFAULT_PUSH_BEHAVIOR: ValueKind.BEHAVIOR,
    ConfigKey.DEFAULT_COMMIT_BEHAVIOR: ValueKind.BEHAVIOR,
}

_FIELD_NAMES: dict[ConfigKey, str] = {
    ConfigKey.DESCRIPTION: "description_enabled",
    ConfigKey.EMOJI: "emoji_enabled",
}


class SessionPreferences(BaseModel):
    """Read-only snapshot of the preferences used for one commit session."""

    model_config = ConfigDict(frozen=True)

    emoji_enabled: bool = False
    description_enabled: bool = False
    locale: Language = Language.ENGLISH
    author_name: str = ""
    author_email: str = ""
    default_commit_message: str | None = None
    default_commit_behavior: DefaultBehavior | None = None
    default_push_behavior: DefaultBehavior | None = None


class AutocommitConfig(BaseModel):
    """Application configuration."""

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    open_ai_api_key: str | None = Field(default=None, description="API key for the completion endpoint")
    api_host: str = Field(default=DEFAULT_API_HOST, description="Base URL of the completion endpoint")
    open_ai_model: str = Field(default=DEFAULT_MODEL, description="Model used to generate messages")
    description_enabled: bool = Field(default=False, alias="description", description="Ask for a commit body")
    emoji_enabled: bool = Field(default=False, alias="emoji", description="Prefix messages with GitMoji")
    language: Language = Field(default=Language.ENGLISH, description="Language of the commit message")
    name: str = Field(default="", description="Author name")
    email: str = Field(default="", description="Author email")
    default_commit_message: str | None = Field(default=None, description="Use this message instead of generating one")
    default_push_behavior: DefaultBehavior | None = Field(default=None, description="yes, no or ask")
    default_commit_behavior: DefaultBehavior | None = Field(default=None, description="yes, no or ask")

    @classmethod
    def get_config_path(cls) -> Path:
        """Get the default path of the config file."""
        return Path.home() / ".autocommit"

    @classmethod
    def with_defaults(cls) -> AutocommitConfig:
        """Fresh configuration, with the author identity taken from git."""
        name, email = get_git_identity()
        return cls(name=name, email=email)

    def get_value(self, key: ConfigKey) -> str:
        return key.kind.format(getattr(self, key.field_name))

    def set_value(self, key: ConfigKey, raw: str) -> None:
        """Parse and assign a value; the previous value is kept on error."""
        value = key.kind.parse(raw)
        try:
            setattr(self, key.field_name, value)
        except ValidationError as e:
            raise ConfigError(f"Invalid value for {key.value}: {e}") from e

    def to_preferences(self) -> SessionPreferences:
        return SessionPreferences(
            emoji_enabled=self.emoji_enabled,
            description_enabled=self.description_enabled,
            locale=self.language,
            author_name=self.name,
            author_email=self.email,
            default_commit_message=self.default_commit_message,
            default_commit_behavior=self.default_commit_behavior,
            default_push_behavior=self.default_push_behavior,
        )

    def to_toml(self) -> str:
        data = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        return tomli_w.dumps({CONFIG_SECTION: data})


class ConfigStore:
    """Loads, edits and saves the configuration file."""

    def __init__(self, config: AutocommitConfig | None = None, path: Path | None = None) -> None:
        self.config = config if config is not None else AutocommitConfig()
        self.path = path or AutocommitConfig.get_config_path()

    @classmethod
    def load_or_default(
        cls,
        path: str | Path | None = None,
        *,
        apply_env: bool = True,
        environ: Mapping[str, str] | None = None,
    ) -> ConfigStore:
        """Load configuration from the config file and environment variables.

        Priority: Environment variables > Config file > Defaults.
        A missing config file is created with default values.

        Raises:
            ConfigError: If the file cannot be parsed or a value is invalid.
        """
        config_path = Path(path) if path else AutocommitConfig.get_config_path()

        if config_path.exists():
            store = cls(_read_config_file(config_path), config_path)
        else:
            logger.info("No config file at %s, creating one with defaults", config_path)
            store = cls(AutocommitConfig.with_defaults(), config_path)
            store.save()

        if apply_env:
            store.apply_env(os.environ if environ is None else environ)
        return store

    def apply_env(self, environ: Mapping[str, str]) -> None:
        """Overlay AUTOCOMMIT_<KEY> environment variables onto the loaded values."""
        for key in ConfigKey:
            if key.env_var in environ:
                logger.debug("Overriding %s from %s", key.value, key.env_var)
                try:
                    self.config.set_value(key, environ[key.env_var])
                except ConfigError as e:
                    raise ConfigError(f"{key.env_var}: {e}") from e

    def get(self, key: ConfigKey | str) -> str:
        if not isinstance(key, ConfigKey):
            key = ConfigKey.parse(key)
        return self.config.get_value(key)

    def get_values(self, keys: Iterable[ConfigKey | str] | None = None) -> list[tuple[str, str]]:
        selected = [ConfigKey.parse(k) if not isinstance(k, ConfigKey) else k for k in (keys or ConfigKey)]
        return [(key.value, self.config.get_value(key)) for key in selected]

    def set(self, key: ConfigKey | str, value: str) -> None:
        if not isinstance(key, ConfigKey):
            key = ConfigKey.parse(key)
        self.config.set_value(key, value)

    def set_pair(self, key_value: str) -> None:
        """Apply a `key=value` argument."""
        key, sep, value = key_value.partition("=")
        if not sep:
            raise ConfigError(f"Invalid argument format: {key_value!r} (expected key=value)")
        self.set(key, value)

    def reset(self) -> None:
        self.config = AutocommitConfig.with_defaults()

    def save(self, path: str | Path | None = None) -> None:
        target = Path(path) if path else self.path
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(self.config.to_toml(), encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Failed to write config file {target}: {e}") from e
        logger.debug("Config saved to %s", target)

    def preferences(self) -> SessionPreferences:
        return self.config.to_preferences()

    def env_lines(self, shell: str | None = None) -> list[str]:
        """Render every value as an environment variable assignment for a shell."""
        lines: list[str] = []
        for key in ConfigKey:
            value = self.config.get_value(key)
            if shell == "bash":
                lines.append(f"export {key.env_var}={shlex.quote(value)}")
            elif shell == "fish":
                lines.append(f"set -gx {key.env_var} {_fish_quote(value)}")
            elif shell == "powershell":
                escaped = value.replace("'", "''")
                lines.append(f"$env:{key.env_var} = '{escaped}'")
            else:
                lines.append(f"{key.env_var}={value}")
        return lines


def _fish_quote(value: str) -> str:
    """Quote a value for fish, where backslash escapes work inside single quotes."""
    if _SHELL_SAFE.fullmatch(value):
        return value
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def _read_config_file(path: Path) -> AutocommitConfig:
    try:
        with open(path, "rb") as f:
            contents = f.read()
    except OSError as e:
        raise ConfigError(f"Failed to read config file {path}: {e}") from e

    if not contents.strip():
        raise ConfigError(f"Config file is empty: {path}")

    try:
        file_config = tomllib.loads(contents.decode("utf-8"))
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e

    try:
        return AutocommitConfig.model_validate(file_config.get(CONFIG_SECTION, {}))
    except ValidationError as e:
        raise ConfigError(f"Invalid value in config file {path}: {e}") from e

