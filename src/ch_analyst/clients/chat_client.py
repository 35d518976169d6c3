"""OpenAI chat-completions wrapper with function-calling support."""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass

import openai

from ch_analyst.config import MODEL_API_KEY_ENV, LLMConfig
from ch_analyst.errors import ConfigurationError, ModelRequestFailure
from ch_analyst.models.chat import AssistantMessage, ChatMessage, FunctionCall, FunctionCallSpec

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"


@dataclass
class ChatCompletion:
    """One model reply: final text or a function-call intent, plus usage."""

    content: str | None
    function_call: FunctionCall | None
    input_tokens: int
    output_tokens: int

    def to_message(self) -> AssistantMessage:
        return AssistantMessage(content=self.content, function_call=self.function_call)


class ChatClient:
    """Async chat client. The SDK's own retries are disabled."""

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float | None = None,
        *,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.2,
    ):
        key = api_key or os.environ.get(MODEL_API_KEY_ENV)
        if not key:
            raise ConfigurationError(
                f"OpenAI API key required. Set {MODEL_API_KEY_ENV} env var or pass api_key."
            )
        kwargs: dict = {"api_key": key, "max_retries": 0}
        if timeout is not None:
            kwargs["timeout"] = timeout
        self.client = openai.AsyncOpenAI(**kwargs)
        self.model = model
        self.temperature = temperature
        self._token_log: list[tuple[str, int, int]] = []  # (model, input_tokens, output_tokens)

    @classmethod
    def from_config(cls, config: LLMConfig, api_key: str | None = None) -> ChatClient:
        return cls(
            api_key,
            timeout=config.timeout,
            model=config.model,
            temperature=config.temperature,
        )

    async def aclose(self) -> None:
        await self.client.close()

    async def complete(
        self,
        messages: Sequence[ChatMessage],
        functions: Sequence[FunctionCallSpec] | None = None,
        *,
        model: str | None = None,
        temperature: float | None = None,
    ) -> ChatCompletion:
        """Send the transcript and return the model's next message."""
        model = model or self.model
        kwargs: dict = {
            "model": model,
            "messages": [m.to_api() for m in messages],
            "temperature": self.temperature if temperature is None else temperature,
        }
        if functions:
            kwargs["functions"] = [f.to_api() for f in functions]
            kwargs["function_call"] = "auto"

        logger.debug("Chat call: model=%s, %d messages", model, len(messages))
        try:
            response = await self.client.chat.completions.create(**kwargs)
        except openai.OpenAIError as exc:
            logger.error("Chat call failed", exc_info=True)
            raise ModelRequestFailure(f"Chat request failed: {exc}") from exc

        if not response.choices:
            raise ModelRequestFailure("Chat response contained no choices")
        message = response.choices[0].message

        function_call = None
        if message.function_call is not None:
            function_call = FunctionCall(
                name=message.function_call.name,
                arguments=message.function_call.arguments or "{}",
            )

        usage = response.usage
        input_tokens = usage.prompt_tokens if usage else 0
        output_tokens = usage.completion_tokens if usage else 0
        logger.debug("Chat response: %d input, %d output tokens", input_tokens, output_tokens)
        self._token_log.append((model, input_tokens, output_tokens))

        return ChatCompletion(
            content=message.content,
            function_call=function_call,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )

    def get_token_summary(self) -> dict:
        """Return accumulated token usage and reset the log."""
        summary = {
            "input": sum(t[1] for t in self._token_log),
            "output": sum(t[2] for t in self._token_log),
            "calls": list(self._token_log),
        }
        self._token_log.clear()
        return summary
