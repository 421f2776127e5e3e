"""Client for an OpenAI-compatible chat completions endpoint."""

from __future__ import annotations

import logging

import httpx
from pydantic import BaseModel, Field, ValidationError

from autocommit.config import AutocommitConfig
from autocommit.models import ChatContext, Message

logger = logging.getLogger(__name__)

COMPLETIONS_PATH = "/v1/chat/completions"
DEFAULT_TEMPERATURE = 0.5
DEFAULT_TOP_P = 0.1
DEFAULT_MAX_TOKENS = 196
DEFAULT_TIMEOUT = 60.0


class GenerationError(Exception):
    """Raised when a commit message could not be generated."""
    pass


class MissingApiKey(GenerationError):
    def __init__(self) -> None:
        super().__init__(
            "Please set your OpenAI API key in the autocommit config file or as an environment variable:\n"
            "  autocommit config set open_ai_api_key=<key>\n"
            "  export AUTOCOMMIT_OPEN_AI_API_KEY='your-api-key'"
        )


class RateLimited(GenerationError):
    def __init__(self) -> None:
        super().__init__("Rate limit exceeded, try again later")


class UnexpectedResponse(GenerationError):
    def __init__(self, status: int, body: str) -> None:
        self.status = status
        self.body = body
        super().__init__(f"Unexpected HTTP response: {status}\n{body}".rstrip())


class TransportError(GenerationError):
    pass


class NoCompletionReturned(GenerationError):
    def __init__(self) -> None:
        super().__init__("No message returned")


class ChatCompletionRequest(BaseModel):
    """Request body; unset sampling options are left out of the payload."""

    model: str
    messages: list[Message]
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None

    @classmethod
    def for_context(cls, model: str, context: ChatContext) -> ChatCompletionRequest:
        return cls(model=model, messages=list(context.messages))

    def with_temperature(self, temperature: float) -> ChatCompletionRequest:
        return self.model_copy(update={"temperature": temperature})

    def with_top_p(self, top_p: float) -> ChatCompletionRequest:
        return self.model_copy(update={"top_p": top_p})

    def with_max_tokens(self, max_tokens: int) -> ChatCompletionRequest:
        return self.model_copy(update={"max_tokens": max_tokens})

    def payload(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)


class ChatCompletionChoice(BaseModel):
    index: int = 0
    message: Message
    finish_reason: str | None = None


class ChatCompletionResponse(BaseModel):
    id: str | None = None
    model: str | None = None
    choices: list[ChatCompletionChoice] = Field(default_factory=list)


class MessageGenerator:
    """Sends a chat context to the completion endpoint and returns the top answer.

    A 429 response fails straight away with RateLimited; there is no retry.
    """

    def __init__(
        self,
        api_key: str | None,
        api_host: str,
        model: str,
        client: httpx.Client | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.api_key = api_key
        self.api_host = api_host
        self.model = model
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_config(cls, config: AutocommitConfig, client: httpx.Client | None = None) -> MessageGenerator:
        return cls(
            api_key=config.open_ai_api_key,
            api_host=config.api_host,
            model=config.open_ai_model,
            client=client,
        )

    @property
    def url(self) -> str:
        return self.api_host.rstrip("/") + COMPLETIONS_PATH

    def build_request(self, context: ChatContext) -> ChatCompletionRequest:
        return (
            ChatCompletionRequest.for_context(self.model, context)
            .with_temperature(DEFAULT_TEMPERATURE)
            .with_top_p(DEFAULT_TOP_P)
            .with_max_tokens(DEFAULT_MAX_TOKENS)
        )

    def generate(self, context: ChatContext) -> str:
        """Generate a commit message for the conversation in `context`.

        The context is not modified.

        Raises:
            MissingApiKey: If no API key is configured.
            RateLimited: On HTTP 429.
            UnexpectedResponse: On any other non-200 status or an unreadable body.
            TransportError: If the endpoint cannot be reached.
            NoCompletionReturned: If the response carries no choices.
        """
        if not self.api_key:
            raise MissingApiKey()

        request = self.build_request(context)
        logger.debug("POST %s (model=%s, %d messages)", self.url, self.model, len(request.messages))

        try:
            response = self._post(request.payload())
        except httpx.HTTPError as e:
            logger.error("Request to %s failed: %s", self.url, e)
            raise TransportError(f"Failed to send request to {self.url}: {e}") from e

        if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
            raise RateLimited()
        if response.status_code != httpx.codes.OK:
            raise UnexpectedResponse(response.status_code, response.text)

        try:
            parsed = ChatCompletionResponse.model_validate_json(response.content)
        except ValidationError as e:
            raise UnexpectedResponse(response.status_code, f"Failed to decode json response: {e}") from e

        if not parsed.choices:
            raise NoCompletionReturned()

        message = parsed.choices[0].message.content.strip()
        logger.info("Commit message generated (%d chars)", len(message))
        return message

    def _post(self, payload: dict) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if self._client is not None:
            return self._client.post(self.url, json=payload, headers=headers, timeout=self.timeout)
        with httpx.Client(timeout=self.timeout) as client:
            return client.post(self.url, json=payload, headers=headers)
