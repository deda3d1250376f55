"""The tool-augmented conversation loop.

One run takes a conversation whose newest message is the user's input and
drives it to a final answer:

    Selecting -> Streaming -> Dispatching -> Selecting -> ... -> Finalizing

Each Selecting phase starts a new iteration and every iteration makes
exactly one model call, so a run never calls the model more than
``max_iterations`` times. A failure of the completion stream aborts the
run; tool failures only ever produce error results for the model to read.

The catalog is snapshotted once per Selecting phase and that snapshot also
routes the iteration's tool calls, so a refresh mid-run does not change
where an offered tool is executed.
"""

import asyncio
import logging
from contextlib import aclosing
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol, Sequence, TypeVar

from toolloop_server.core.accumulator import ToolCallAccumulator
from toolloop_server.core.catalog import CatalogSnapshot, ToolCatalog
from toolloop_server.core.dispatcher import ToolDispatcher
from toolloop_server.core.errors import StreamTransportFailed
from toolloop_server.core.events import (
    ContentDeltaEvent,
    DoneEvent,
    ErrorEvent,
    IterationLimitEvent,
    MessageCompleteEvent,
    OrchestratorEvent,
    RunCancelledEvent,
    RunStartedEvent,
    ToolCallEvent,
    ToolResultEvent,
    ToolsSelectedEvent,
)
from toolloop_server.core.history import ConversationHistory, build_transcript
from toolloop_server.core.selector import SelectionResult, SelectorConfig, ToolSelector
from toolloop_server.core.types import (
    Delta,
    FilterMetrics,
    Mention,
    PendingToolCall,
    ToolResult,
)
from toolloop_server.sessions.types import (
    SYSTEM_FILTER_METRICS,
    SYSTEM_NOTICE,
    AssistantMessage,
    SystemMessage,
    ToolMessage,
    new_message_id,
    utc_timestamp,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ITERATIONS = 10

EMPTY_RESPONSE_FALLBACK = "I apologize, I could not generate a response."
ITERATION_LIMIT_NOTICE = (
    "Reached maximum tool execution depth. The conversation may be incomplete."
)


class StreamingCompletionClient(Protocol):
    """A chat completion provider producing a lazy stream of deltas."""

    def stream(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[Delta]: ...


class RunState(str, Enum):
    IDLE = "idle"
    SELECTING = "selecting"
    STREAMING = "streaming"
    DISPATCHING = "dispatching"
    FINALIZING = "finalizing"
    ABORTED = "aborted"


class RunOutcome(str, Enum):
    """How a run ended, reported in the final ``done`` event."""

    COMPLETED = "completed"
    ITERATION_LIMIT = "iteration_limit"
    CANCELLED = "cancelled"
    ABORTED = "aborted"


class _Cancelled(Exception):
    """Internal signal: the cancel event was seen mid-stream or mid-call."""


class ConversationOrchestrator:
    """Runs the select / stream / dispatch loop for one conversation.

    Args:
        client: Completion provider
        model: Model name passed to every call
        selector: Chooses the tools exposed per call
        dispatcher: Executes tool calls
        catalog: Live tool catalog, snapshotted per iteration
        pins: Callable returning a snapshot of the current mentions
        selector_config: Semantic filtering options
        system_prompt: Used when the history has no system prompt
        parallel_tool_calls: Dispatch one batch concurrently
        max_iterations: Upper bound on model calls per run
    """

    def __init__(
        self,
        client: StreamingCompletionClient,
        model: str,
        selector: ToolSelector,
        dispatcher: ToolDispatcher,
        catalog: ToolCatalog,
        *,
        pins: Callable[[], Sequence[Mention]] | None = None,
        selector_config: SelectorConfig | None = None,
        system_prompt: str | None = None,
        parallel_tool_calls: bool = False,
        max_iterations: int = MAX_ITERATIONS,
    ):
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.client = client
        self.model = model
        self.selector = selector
        self.dispatcher = dispatcher
        self.catalog = catalog
        self.pins = pins
        self.selector_config = selector_config or SelectorConfig()
        self.system_prompt = system_prompt
        self.parallel_tool_calls = parallel_tool_calls
        self.max_iterations = max_iterations

        self.state = RunState.IDLE
        self.iteration_count = 0
        self.tool_invocations = 0

    async def run(
        self,
        history: ConversationHistory,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[OrchestratorEvent]:
        """Drive the conversation to a final answer.

        The caller must have appended the user's message to ``history``
        already. The orchestrator is the only writer of ``history`` until
        the generator is exhausted.

        Args:
            history: Conversation history to extend
            cancel_event: When set, the run stops at the next delta, and a
                running tool call is abandoned. What was produced so far is kept

        Yields:
            Orchestrator events, always ending with a DoneEvent unless the
            consumer stops iterating early
        """
        self.iteration_count = 0
        self.tool_invocations = 0
        outcome = RunOutcome.COMPLETED

        yield RunStartedEvent(model=self.model, max_iterations=self.max_iterations)

        try:
            while True:
                if _is_set(cancel_event):
                    outcome = RunOutcome.CANCELLED
                    yield RunCancelledEvent(iteration=self.iteration_count)
                    break

                # Selecting
                self.state = RunState.SELECTING
                self.iteration_count += 1
                transcript = build_transcript(history.messages, self.system_prompt)
                snapshot = CatalogSnapshot.from_catalog(self.catalog)
                selection = await self._select(transcript, snapshot)
                if selection.metrics is not None:
                    history.append(
                        _filter_metrics_message(selection, selection.metrics)
                    )
                yield ToolsSelectedEvent(
                    iteration=self.iteration_count,
                    mode=selection.mode.value,
                    tool_names=selection.tool_names,
                    metrics=selection.metrics.to_dict() if selection.metrics else None,
                    truncated=selection.truncated,
                )

                # Streaming
                self.state = RunState.STREAMING
                accumulator = ToolCallAccumulator()
                assistant: AssistantMessage | None = None
                deltas = self._stream(transcript, selection, accumulator, cancel_event)
                try:
                    async with aclosing(deltas):
                        async for delta in deltas:
                            if assistant is None:
                                assistant = self._new_assistant_message(
                                    accumulator.content
                                )
                                history.append(assistant)
                            else:
                                assistant.content = accumulator.content
                            yield ContentDeltaEvent(
                                iteration=self.iteration_count,
                                content=delta.content_fragment or "",
                            )
                except _Cancelled:
                    if assistant is not None:
                        assistant.content = accumulator.content
                        history.commit()
                    logger.info(f"Run cancelled during iteration {self.iteration_count}")
                    outcome = RunOutcome.CANCELLED
                    yield RunCancelledEvent(
                        iteration=self.iteration_count,
                        partial_content=accumulator.content,
                    )
                    break
                except StreamTransportFailed as e:
                    self.state = RunState.ABORTED
                    if assistant is not None:
                        assistant.content = accumulator.content
                        history.commit()
                    logger.error(f"Completion stream failed: {e}")
                    history.append(
                        self._new_assistant_message(f"Error: {e}", is_error=True)
                    )
                    outcome = RunOutcome.ABORTED
                    yield ErrorEvent(
                        code="stream_failed",
                        message=str(e),
                        details={"iteration": self.iteration_count},
                    )
                    break

                message = accumulator.finish()
                if assistant is None and message.is_empty:
                    self.state = RunState.FINALIZING
                    logger.warning("Model returned an empty response")
                    assistant = self._new_assistant_message(EMPTY_RESPONSE_FALLBACK)
                    history.append(assistant)
                    yield self._message_complete(assistant)
                    break

                if assistant is None:
                    assistant = self._new_assistant_message(message.content)
                    history.append(assistant)
                assistant.content = message.content
                assistant.prompt_tokens = message.prompt_tokens
                assistant.completion_tokens = message.completion_tokens
                if message.tool_calls:
                    assistant.tool_calls = [
                        call.to_provider_dict() for call in message.tool_calls
                    ]
                history.commit()
                yield self._message_complete(assistant)

                if not message.tool_calls:
                    self.state = RunState.FINALIZING
                    break

                # Dispatching
                self.state = RunState.DISPATCHING
                cancelled = False
                dispatch = self._dispatch(
                    message.tool_calls, snapshot, history, cancel_event
                )
                async with aclosing(dispatch):
                    async for event in dispatch:
                        if event is None:
                            cancelled = True
                            break
                        yield event
                if cancelled:
                    outcome = RunOutcome.CANCELLED
                    yield RunCancelledEvent(iteration=self.iteration_count)
                    break

                if self.iteration_count >= self.max_iterations:
                    self.state = RunState.FINALIZING
                    logger.warning(
                        f"Stopping after {self.iteration_count} iterations "
                        "with tool calls still pending"
                    )
                    history.append(
                        SystemMessage(
                            content=ITERATION_LIMIT_NOTICE,
                            kind=SYSTEM_NOTICE,
                            message_id=new_message_id(),
                            timestamp=utc_timestamp(),
                        )
                    )
                    outcome = RunOutcome.ITERATION_LIMIT
                    yield IterationLimitEvent(
                        iterations=self.iteration_count,
                        message=ITERATION_LIMIT_NOTICE,
                    )
                    break

            yield DoneEvent(
                final_state=outcome.value,
                iterations=self.iteration_count,
                tool_invocations=self.tool_invocations,
            )
        finally:
            self.state = RunState.IDLE

    async def _select(
        self, transcript: list[dict[str, Any]], snapshot: CatalogSnapshot
    ) -> SelectionResult:
        pins = list(self.pins()) if self.pins is not None else []
        return await self.selector.select(
            transcript, snapshot, pins, self.selector_config
        )

    async def _stream(
        self,
        transcript: list[dict[str, Any]],
        selection: SelectionResult,
        accumulator: ToolCallAccumulator,
        cancel_event: asyncio.Event | None,
    ) -> AsyncIterator[Delta]:
        """Feed the provider stream into the accumulator.

        Yields only deltas carrying content. Provider errors are raised as
        StreamTransportFailed; the provider stream is always closed.
        """
        tools = selection.function_definitions() or None
        try:
            stream = self.client.stream(self.model, transcript, tools)
            async with aclosing(stream):
                async for delta in stream:
                    if _is_set(cancel_event):
                        raise _Cancelled()
                    accumulator.feed(delta)
                    if delta.content_fragment:
                        yield delta
        except (_Cancelled, StreamTransportFailed):
            raise
        except Exception as e:
            raise StreamTransportFailed(str(e) or type(e).__name__) from e

    async def _dispatch(
        self,
        calls: list[PendingToolCall],
        snapshot: CatalogSnapshot,
        history: ConversationHistory,
        cancel_event: asyncio.Event | None,
    ) -> AsyncIterator[ToolCallEvent | ToolResultEvent | None]:
        """Execute one batch of tool calls, appending a ToolMessage per result.

        Calls are routed with the snapshot the tools were selected from.
        Yields None when the cancel event is seen, either between calls or
        while a call is still running. A call interrupted that way gets no
        ToolMessage.
        """
        try:
            if self.parallel_tool_calls:
                if _is_set(cancel_event):
                    yield None
                    return
                for call in calls:
                    yield self._tool_call_event(call)
                results = await _unless_cancelled(
                    self.dispatcher.execute_all(calls, snapshot, parallel=True),
                    cancel_event,
                )
                for result in results:
                    yield self._record_result(result, history)
                return

            for call in calls:
                if _is_set(cancel_event):
                    yield None
                    return
                yield self._tool_call_event(call)
                result = await _unless_cancelled(
                    self.dispatcher.execute(call, snapshot), cancel_event
                )
                yield self._record_result(result, history)
        except _Cancelled:
            logger.info(
                f"Tool dispatch cancelled during iteration {self.iteration_count}"
            )
            yield None

    def _tool_call_event(self, call: PendingToolCall) -> ToolCallEvent:
        return ToolCallEvent(
            iteration=self.iteration_count,
            tool_call_id=call.id,
            tool_name=call.name,
            arguments=call.arguments_json,
        )

    def _record_result(
        self, result: ToolResult, history: ConversationHistory
    ) -> ToolResultEvent:
        self.tool_invocations += 1
        content = result.to_model_content()
        history.append(
            ToolMessage(
                tool_call_id=result.tool_call_id,
                tool_name=result.tool_name,
                server_id=result.server_id,
                content=content,
                is_error=result.is_error,
                error_code=result.error_code,
                execution_time_ms=result.execution_time_ms,
                message_id=new_message_id(),
                timestamp=utc_timestamp(),
            )
        )
        return ToolResultEvent(
            iteration=self.iteration_count,
            tool_call_id=result.tool_call_id,
            tool_name=result.tool_name,
            server_id=result.server_id,
            content=content,
            is_error=result.is_error,
            error_code=result.error_code,
            execution_time_ms=result.execution_time_ms,
        )

    def _new_assistant_message(
        self, content: str, is_error: bool = False
    ) -> AssistantMessage:
        return AssistantMessage(
            content=content,
            model=self.model,
            message_id=new_message_id(),
            timestamp=utc_timestamp(),
            is_error=is_error,
        )

    def _message_complete(self, assistant: AssistantMessage) -> MessageCompleteEvent:
        return MessageCompleteEvent(
            iteration=self.iteration_count,
            message_id=assistant.message_id,
            model=assistant.model,
            content=assistant.content,
            prompt_tokens=assistant.prompt_tokens,
            completion_tokens=assistant.completion_tokens,
            tool_calls=assistant.tool_calls,
        )


def _is_set(cancel_event: asyncio.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def _filter_metrics_message(
    selection: SelectionResult, metrics: FilterMetrics
) -> SystemMessage:
    return SystemMessage(
        content=(
            f"Using {metrics.tools_used}/{metrics.tools_total} tools "
            f"({selection.mode.value}, {metrics.filter_time_ms:.0f}ms)"
        ),
        kind=SYSTEM_FILTER_METRICS,
        filter_metrics=metrics.to_dict(),
        message_id=new_message_id(),
        timestamp=utc_timestamp(),
    )


async def _unless_cancelled(
    awaitable: Awaitable[T], cancel_event: asyncio.Event | None
) -> T:
    """Await ``awaitable``, abandoning it as soon as the cancel event is set.

    Raises:
        _Cancelled: If the cancel event fired first. The pending work is
            cancelled.
    """
    if cancel_event is None:
        return await awaitable
    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        if task.done():
            return task.result()
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
    raise _Cancelled()
