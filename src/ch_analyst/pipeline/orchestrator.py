"""Function-calling loop between the chat model and the registry."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ch_analyst.clients.chat_client import ChatClient
from ch_analyst.errors import AnalystError, IterationLimitExceeded, ModelRequestFailure
from ch_analyst.models.analysis import AnalysisResult, OrchestrationState
from ch_analyst.models.chat import ChatMessage, FunctionResultMessage, UserMessage
from ch_analyst.pipeline.functions import (
    FunctionDispatcher,
    parse_arguments,
    resolve_function,
    serialize_result,
)
from ch_analyst.sessions.session_store import ConversationSession

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 8


class FunctionCallingOrchestrator:
    """Runs one analysis turn against a session transcript.

    States move AWAITING_MODEL -> EXECUTING_FUNCTION -> AWAITING_MODEL until
    the model answers without a function call (DONE). Any AnalystError ends
    the turn (FAILED) and propagates; messages appended before the failure
    stay in the transcript.
    """

    def __init__(
        self,
        chat: ChatClient,
        dispatcher: FunctionDispatcher,
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        max_history_messages: int | None = None,
    ):
        self.chat = chat
        self.dispatcher = dispatcher
        self.max_iterations = max_iterations
        self.max_history_messages = max_history_messages

    async def run(
        self,
        session: ConversationSession,
        prompt: str,
        *,
        on_step: Callable[[str, str], None] | None = None,
    ) -> AnalysisResult:
        """Append ``prompt`` and loop until the model gives a final answer.

        Args:
            session: Transcript to read and append to. The caller must hold
                the session's lock.
            prompt: The user's question.
            on_step: Optional callback(event, detail) for progress.

        Raises:
            UnknownFunctionRequested, MalformedFunctionArguments,
            ModelRequestFailure, RegistryRequestFailure,
            IterationLimitExceeded.
        """
        start = time.monotonic()

        def _notify(event: str, detail: str = "") -> None:
            if on_step:
                on_step(event, detail)

        session.append(UserMessage(content=prompt))
        state = OrchestrationState.AWAITING_MODEL
        iterations = 0
        calls: list[str] = []

        try:
            while True:
                if iterations >= self.max_iterations:
                    raise IterationLimitExceeded(self.max_iterations)
                iterations += 1
                _notify("model", f"Model call {iterations}")
                completion = await self.chat.complete(self._transcript(session), self.dispatcher.specs)

                if completion.function_call is None:
                    if completion.content is None:
                        raise ModelRequestFailure(
                            "Chat response had neither content nor a function call"
                        )
                    session.append(completion.to_message())
                    state = OrchestrationState.DONE
                    break

                call = completion.function_call
                name = resolve_function(call.name)
                arguments = parse_arguments(call)

                state = OrchestrationState.EXECUTING_FUNCTION
                _notify("function", name.value)
                result = await self.dispatcher.execute(name, arguments)
                session.append(completion.to_message())
                session.append(
                    FunctionResultMessage(name=name.value, content=serialize_result(result))
                )
                calls.append(name.value)
                state = OrchestrationState.AWAITING_MODEL
        except AnalystError as exc:
            logger.error(
                "Analysis of %s failed in state %s after %d model call(s): %s",
                session.company_number, state.value, iterations, exc,
            )
            _notify("failed", str(exc))
            raise

        elapsed = time.monotonic() - start
        logger.info(
            "Analysis of %s done: %d model call(s), functions=%s, %.1fs",
            session.company_number, iterations, calls, elapsed,
        )
        _notify("done", f"{iterations} model call(s), {elapsed:.1f}s")
        return AnalysisResult(
            answer=completion.content,
            state=state,
            iterations=iterations,
            function_calls=calls,
        )

    def _transcript(self, session: ConversationSession) -> list[ChatMessage]:
        if self.max_history_messages is None:
            return session.messages
        return session.window(self.max_history_messages)
