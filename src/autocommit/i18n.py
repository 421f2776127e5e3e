"""Translation strings used to build the few-shot commit example."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class Language(str, Enum):
    """Languages the commit message can be requested in."""

    ENGLISH = "english"


class Translation(BaseModel):
    """Locale-specific fragments for the example assistant answer."""

    model_config = ConfigDict(frozen=True)

    commit_fix: str
    commit_feat: str
    commit_description: str
    language: str


class I18n:
    """Read-only lookup of translations, built once per process."""

    def __init__(self, translations: dict[Language, Translation]) -> None:
        self._translations = dict(translations)

    def get(self, language: Language) -> Translation:
        try:
            return self._translations[language]
        except KeyError:
            raise KeyError(f"No translation available for language: {language.value}") from None

    @property
    def languages(self) -> list[Language]:
        return list(self._translations)


def load_i18n() -> I18n:
    """Build the translation table."""
    return I18n(
        {
            Language.ENGLISH: Translation(
                commit_fix="fix(main.rs): Correct JSON parsing issue for joke response",
                commit_feat="feat(main.rs): Add error handling for API request",
                commit_description=(
                    "After further testing, it was determined that JSON response data for the joke "
                    "endpoint contained leading/trailing white space. To fix the issue, string trimming "
                    "was added to the JSON parsing step.\n"
                    "To improve the error handling logic of the API request, a `match` expression was "
                    "added to handle the case when the API request fails.\n"
                    "Updates:\n"
                    "- The `serde_json::from_str` function now uses `trim()` function to remove "
                    "leading/trailing spaces before data parsing.\n"
                    "- A `match` expression now handles the `Err` case when making the API request.\n"
                ),
                language="English",
            ),
        }
    )
