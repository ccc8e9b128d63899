"""
Model Transport
===============

One client for every OpenAI-compatible provider: OpenAI, OpenRouter and
Ollama all speak the same chat-completions API, so AsyncOpenAI is
pointed at the configured base URL.

Tool-schema fallback:
    Some providers or models reject the `tools` parameter. When a request
    with tools fails with 400/422, or with an error that mentions tools or
    functions, the same request is retried once without tools. The agent
    then relies on inline tags, which the system prompt teaches. The
    rejection is remembered and later requests skip tools.

Errors:
    Every provider failure becomes LLMTransportError with a message the
    user can act on. Nothing is retried here beyond the tool fallback.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Protocol

from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI

from src.agent.extractor import FreeText, RawModelTurn, RawToolCall, StructuredCalls
from src.utils.config import LLMConfig
from src.utils.logger import Logger

logger = Logger("LLM")

OPENROUTER_HEADERS = {
    "HTTP-Referer": "https://jawad.dev",
    "X-Title": "FoxAgent",
}

TOOL_REJECTION_PATTERN = re.compile(r"tool|function|unsupported|not support|invalid.*param", re.IGNORECASE)


@dataclass(frozen=True)
class ModelReply:
    """
    The first choice of a chat completion, normalized.

    Attributes:
        content: Assistant text (may be None when only tools are called)
        tool_calls: Structured calls, empty when the model answered in text
    """
    content: str | None
    tool_calls: list[RawToolCall] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.tool_calls and not (self.content or "").strip()

    def to_turn(self) -> RawModelTurn:
        if self.tool_calls:
            return StructuredCalls(calls=list(self.tool_calls), content=self.content)
        return FreeText(self.content or "")


class LLMTransportError(Exception):
    """
    The model provider could not be reached or refused the request.

    Attributes:
        provider: Configured provider name
        status_code: HTTP status, or None for connection failures
    """

    def __init__(self, message: str, provider: str = "", status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class ChatTransport(Protocol):
    """What the agent loop needs from a model provider."""

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None
    ) -> ModelReply | None:
        ...


def friendly_error(status: int, body: str, config: LLMConfig) -> str:
    """Turn an HTTP failure into a message the user can act on."""
    short = (body or "")[:200]
    provider = config.provider

    if status == 401:
        return (
            f"Invalid API key for {provider}. Double-check LLM_API_KEY. "
            f"(Model: {config.model}, URL: {config.base_url})"
        )
    if status == 403:
        if provider == "openrouter":
            return (
                "OpenRouter 403: your API key has no credits or is invalid. Add credits at "
                "https://openrouter.ai/credits or generate a new key."
            )
        if provider == "openai":
            return (
                "OpenAI 403: your API key is invalid or your account has no billing. Check "
                "https://platform.openai.com/account/billing."
            )
        if provider == "ollama":
            return (
                f"Ollama returned 403 Forbidden. Check that Ollama is running: ollama serve. "
                f"(URL: {config.base_url}, Model: {config.model})"
            )
        return f"API returned 403 Forbidden from {provider} ({config.base_url}). {short}"
    if status == 404:
        return f"Model \"{config.model}\" not found on {provider}. Check LLM_MODEL. (URL: {config.base_url})"
    if status == 429:
        return "Rate limited: too many requests. Wait a moment and try again."
    if status >= 500:
        return f"Server error ({status}) from {provider}. The provider may be down. Try again later."
    return (
        f"LLM API error ({status}) from {provider}: {short or 'empty response'}. "
        f"(URL: {config.base_url}, Model: {config.model})"
    )


def _error_text(error: APIStatusError) -> str:
    return f"{error.message} {error.body or ''}"


def looks_tool_related(error: APIStatusError) -> bool:
    """Whether a failed request was probably rejected because of `tools`."""
    return error.status_code in (400, 422) or bool(TOOL_REJECTION_PATTERN.search(_error_text(error)))


class ModelClient:
    """
    Chat-completions client for the agent.

    Example:
        client = ModelClient(get_config().llm)
        reply = await client.complete(conversation.to_openai_messages(),
                                      registry.get_openai_functions())
        if reply and reply.tool_calls:
            ...
    """

    def __init__(self, config: LLMConfig, client: AsyncOpenAI | None = None):
        self.config = config
        self._tools_rejected = False

        self.client = client or AsyncOpenAI(
            # Ollama ignores the key but the SDK requires one
            api_key=config.api_key or "ollama",
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            max_retries=0,
            default_headers=OPENROUTER_HEADERS if config.provider == "openrouter" else None,
        )

        logger.info(f"Model client ready: {config.provider}/{config.model}")

    @property
    def tools_supported(self) -> bool:
        return not self._tools_rejected

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        max_tokens: int | None = None
    ) -> ModelReply | None:
        """
        Request one completion.

        Returns:
            The normalized first choice, or None when the provider sent no choices

        Raises:
            LLMTransportError: On any provider or network failure
        """
        send_tools = tools if tools and not self._tools_rejected else None

        try:
            response = await self._create(messages, send_tools, max_tokens)
        except APIStatusError as e:
            if not send_tools or not looks_tool_related(e):
                raise self._status_error(e) from e

            logger.warning(
                f"{self.config.provider} rejected tools ({e.status_code}), retrying without tools",
                {"error": _error_text(e)[:120]}
            )
            self._tools_rejected = True
            response = await self._create_or_raise(messages, None, max_tokens)
        except (APIConnectionError, APITimeoutError) as e:
            raise self._connection_error(e) from e

        return self._to_reply(response)

    async def complete_text(
        self,
        messages: list[dict[str, Any]],
        max_tokens: int | None = None
    ) -> str | None:
        """A tool-less completion; returns the text or None."""
        reply = await self.complete(messages, None, max_tokens)
        if reply is None or reply.is_empty:
            return None
        return reply.content

    async def test_connection(self) -> bool:
        """Send a tiny request to check the provider settings."""
        try:
            answer = await self.complete_text(
                [{"role": "user", "content": 'Say "ok" and nothing else.'}],
                max_tokens=5
            )
        except LLMTransportError as e:
            logger.warning(f"Connection test failed: {e}")
            return False
        return bool(answer)

    # ==========================================================================
    # Internals
    # ==========================================================================

    async def _create(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None,
        max_tokens: int | None
    ) -> Any:
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "temperature": self.config.temperature,
            "max_tokens": max_tokens or self.config.max_tokens,
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"

        logger.debug(
            f"POST chat/completions provider={self.config.provider} "
            f"model={self.config.model} tools={bool(tools)} messages={len(messages)}"
        )
        return await self.client.chat.completions.create(**kwargs)

    async def _create_or_raise(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None,
        max_tokens: int | None
    ) -> Any:
        try:
            return await self._create(messages, tools, max_tokens)
        except APIStatusError as e:
            raise self._status_error(e) from e
        except (APIConnectionError, APITimeoutError) as e:
            raise self._connection_error(e) from e

    def _status_error(self, error: APIStatusError) -> LLMTransportError:
        message = friendly_error(error.status_code, _error_text(error), self.config)
        logger.error(f"Provider request failed ({error.status_code})", error)
        return LLMTransportError(message, self.config.provider, error.status_code)

    def _connection_error(self, error: Exception) -> LLMTransportError:
        kind = "timed out" if isinstance(error, APITimeoutError) else "failed"
        logger.error(f"Connection to {self.config.provider} {kind}", error)
        return LLMTransportError(
            f"Could not reach {self.config.provider} at {self.config.base_url} ({kind}). "
            f"Check your network and LLM_BASE_URL.",
            self.config.provider,
        )

    @staticmethod
    def _to_reply(response: Any) -> ModelReply | None:
        choices = getattr(response, "choices", None) or []
        if not choices:
            return None

        message = choices[0].message
        if message is None:
            return None

        calls = []
        for tc in getattr(message, "tool_calls", None) or []:
            function = getattr(tc, "function", None)
            if function is None:
                continue
            calls.append(RawToolCall(id=tc.id, name=function.name, arguments=function.arguments))

        return ModelReply(content=message.content, tool_calls=calls)
