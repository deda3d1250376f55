"""Chat API endpoints.

This module provides endpoints for chat interactions with sessions,
including non-streaming and streaming responses via SSE. Both run the
same tool-augmented conversation loop; the streaming endpoint forwards
every orchestrator event as it happens.
"""

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request
from sse_starlette.sse import EventSourceResponse

from toolloop_server.core.catalog import CatalogSnapshot
from toolloop_server.core.events import (
    ErrorEvent,
    IterationLimitEvent,
    MessageCompleteEvent,
    ToolResultEvent,
    to_sse,
)
from toolloop_server.core.orchestrator import ConversationOrchestrator
from toolloop_server.core.runs import RunRegistry
from toolloop_server.core.selector import SelectorConfig
from toolloop_server.dependencies import get_run_registry
from toolloop_server.models.chat import (
    CancelResponse,
    ChatRequest,
    ChatResponse,
    MessageResponse,
    ToolResultInfo,
)
from toolloop_server.sessions import ChatSession, SessionHistory
from toolloop_server.sessions.types import (
    AssistantMessage,
    UserMessage,
    new_message_id,
    utc_timestamp,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/chat", tags=["chat"])


def _error_detail(code: str, message: str, **details) -> dict:
    return {"error": {"code": code, "message": message, "details": details}}


def _load_session(request: Request, session_id: str) -> ChatSession:
    """Load a session or raise the matching HTTP error."""
    sessions_dir = request.app.state.settings.resolved_sessions_dir
    try:
        return ChatSession.load(session_id, sessions_dir)
    except FileNotFoundError:
        raise HTTPException(
            status_code=404,
            detail=_error_detail(
                "session_not_found",
                f"Session {session_id} not found",
                session_id=session_id,
            ),
        )
    except Exception as e:
        logger.error(f"Failed to load session {session_id}: {e}")
        raise HTTPException(
            status_code=500,
            detail=_error_detail("session_load_error", f"Failed to load session: {str(e)}"),
        )


def _prepare_turn(session: ChatSession, message: str | None) -> None:
    """Add the user's message, or rewind to the last one to regenerate.

    Raises:
        HTTPException: 400 if there is no user message to respond to
    """
    if message is not None:
        session.add_message(
            UserMessage(
                content=message,
                message_id=new_message_id(),
                timestamp=utc_timestamp(),
            )
        )
        logger.info(f"Added user message to session {session.session_id}")
        return

    index = session.last_user_index()
    if index is None:
        raise HTTPException(
            status_code=400,
            detail=_error_detail("empty_history", "Session has no user message to respond to"),
        )
    last = session.messages[index]
    session.edit_message(index, last.content)
    logger.info(f"Regenerating response in session {session.session_id}")


async def _build_orchestrator(
    request: Request, session: ChatSession
) -> ConversationOrchestrator:
    state = request.app.state
    settings = state.settings

    if state.scorer is not None:
        await state.scorer.sync(CatalogSnapshot.from_catalog(state.mcp_pool))

    return ConversationOrchestrator(
        client=state.llm_client,
        model=session.model,
        selector=state.selector,
        dispatcher=state.dispatcher,
        catalog=state.mcp_pool,
        pins=state.mention_store.snapshot,
        selector_config=SelectorConfig(
            enabled=settings.tool_filter_enabled,
            top_k=settings.tool_filter_top_k,
            min_score=settings.tool_filter_min_score,
        ),
        system_prompt=settings.system_prompt,
        parallel_tool_calls=settings.parallel_tool_calls,
        max_iterations=settings.max_iterations,
    )


def _acquire(run_registry: RunRegistry, session_id: str) -> asyncio.Event:
    cancel_event = run_registry.try_acquire(session_id)
    if cancel_event is None:
        raise HTTPException(
            status_code=409,
            detail=_error_detail(
                "session_busy",
                f"Session {session_id} already has an active run",
                session_id=session_id,
            ),
        )
    return cancel_event


@router.post("/{session_id}", response_model=ChatResponse)
async def chat_non_streaming(
    session_id: str,
    request_body: ChatRequest,
    request: Request,
    run_registry: Annotated[RunRegistry, Depends(get_run_registry)],
) -> ChatResponse:
    """Send a message to a session and receive the final response.

    Runs the whole conversation loop, including tool calls, and returns
    once the run has finished.

    Args:
        session_id: The session ID to chat with
        request_body: Chat request containing the message
        request: FastAPI request object
        run_registry: Injected run registry

    Returns:
        ChatResponse with the final assistant message and executed tools

    Raises:
        HTTPException: 404 if session not found, 409 if the session is
            busy, 502 if the provider fails
    """
    cancel_event = _acquire(run_registry, session_id)
    try:
        session = _load_session(request, session_id)
        _prepare_turn(session, request_body.message)
        history = SessionHistory(session, request.app.state.settings.resolved_sessions_dir)
        history.commit()
        orchestrator = await _build_orchestrator(request, session)

        logger.info(f"Starting chat run for session {session_id} with model {session.model}")

        final: MessageCompleteEvent | None = None
        tool_results: list[ToolResultInfo] = []
        notice = None
        error: ErrorEvent | None = None
        final_state = "completed"
        iterations = 0
        async for event in orchestrator.run(history, cancel_event):
            if isinstance(event, MessageCompleteEvent):
                final = event
            elif isinstance(event, ToolResultEvent):
                tool_results.append(
                    ToolResultInfo(**event.model_dump(exclude={"event", "iteration"}))
                )
            elif isinstance(event, IterationLimitEvent):
                notice = event.message
            elif isinstance(event, ErrorEvent):
                error = event
            elif event.event == "done":
                final_state = event.final_state
                iterations = event.iterations
    finally:
        run_registry.release(session_id)

    if error is not None:
        raise HTTPException(
            status_code=502,
            detail=_error_detail(
                "llm_error",
                f"Failed to get response from {request.app.state.llm_client.provider}: {error.message}",
                session_id=session_id,
            ),
        )

    message = None
    if final is not None:
        assistant = next(
            (
                m
                for m in reversed(session.messages)
                if isinstance(m, AssistantMessage) and m.message_id == final.message_id
            ),
            None,
        )
        message = MessageResponse(
            role="assistant",
            content=final.content,
            model=final.model,
            message_id=final.message_id,
            timestamp=assistant.timestamp if assistant else utc_timestamp(),
            prompt_tokens=final.prompt_tokens,
            completion_tokens=final.completion_tokens,
            tool_calls=final.tool_calls,
        )

    return ChatResponse(
        session_id=session_id,
        message=message,
        tool_calls_executed=tool_results,
        iterations=iterations,
        final_state=final_state,
        notice=notice,
    )


@router.post("/{session_id}/stream")
async def chat_streaming(
    session_id: str,
    request_body: ChatRequest,
    request: Request,
    run_registry: Annotated[RunRegistry, Depends(get_run_registry)],
) -> EventSourceResponse:
    """Stream a chat run via Server-Sent Events (SSE).

    SSE Events:
        - run_started: The run began
        - tools_selected: Tools exposed for the next model call
        - content_delta: Each text chunk from the LLM
        - message_complete: An assistant message was fully received
        - tool_call: A tool is about to be executed
        - tool_result: A tool finished (successfully or with an error)
        - iteration_limit: The run stopped at the iteration bound
        - run_cancelled: The run was cancelled
        - error: The completion stream failed, the run was aborted
        - done: Always last, with the final state

    Raises:
        HTTPException: 404 if session not found, 409 if the session is busy
    """
    cancel_event = _acquire(run_registry, session_id)
    try:
        session = _load_session(request, session_id)
        _prepare_turn(session, request_body.message)
        history = SessionHistory(session, request.app.state.settings.resolved_sessions_dir)
        history.commit()
        orchestrator = await _build_orchestrator(request, session)
    except BaseException:
        run_registry.release(session_id)
        raise

    logger.info(f"Starting streaming chat run for session {session_id}")

    async def event_generator():
        """Forward orchestrator events as SSE frames."""
        try:
            async for event in orchestrator.run(history, cancel_event):
                if await request.is_disconnected():
                    logger.warning(
                        f"Client disconnected during streaming for session {session_id}"
                    )
                    cancel_event.set()
                yield to_sse(event)
        except Exception as e:
            logger.error(f"Error during streaming for session {session_id}: {e}")
            yield to_sse(
                ErrorEvent(
                    code="internal_error",
                    message=f"Failed to generate response: {str(e)}",
                    details={"session_id": session_id},
                )
            )
        finally:
            run_registry.release(session_id)

    return EventSourceResponse(event_generator())


@router.post("/{session_id}/cancel", response_model=CancelResponse)
async def cancel_run(
    session_id: str,
    run_registry: Annotated[RunRegistry, Depends(get_run_registry)],
) -> CancelResponse:
    """Ask the active run of a session to stop.

    The run keeps what it produced so far and ends with a run_cancelled
    event followed by done.
    """
    cancelled = run_registry.cancel(session_id)
    if not cancelled:
        logger.debug(f"No active run to cancel for session {session_id}")
    return CancelResponse(session_id=session_id, cancelled=cancelled)
