"""Sessions router for chat session CRUD operations.

This module provides REST API endpoints for:
- Creating new sessions
- Listing all sessions
- Retrieving session details
- Updating session metadata
- Deleting sessions
- Getting and editing session messages
- Setting/removing system prompts on sessions
"""

import logging
from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from toolloop_server.core.runs import RunRegistry
from toolloop_server.dependencies import get_run_registry, get_session_manager
from toolloop_server.models.sessions import (
    CreateSessionRequest,
    EditMessageRequest,
    MessageResponse,
    MessagesResponse,
    SessionDetailResponse,
    SessionListItem,
    SessionListResponse,
    SessionResponse,
    SetSessionSystemPromptRequest,
    UpdateSessionRequest,
)
from toolloop_server.sessions import (
    ChatSession,
    Message,
    SessionCreationOptions,
    SessionManager,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/sessions", tags=["sessions"])


def _session_response(session: ChatSession) -> SessionResponse:
    return SessionResponse(
        session_id=session.session_id,
        model=session.model,
        created_at=session.metadata.created_at,
        updated_at=session.metadata.updated_at,
        message_count=session.metadata.message_count,
        format_version=session.metadata.format_version,
    )


def _message_responses(messages: list[Message]) -> list[MessageResponse]:
    return [MessageResponse(**asdict(msg)) for msg in messages]


def _not_found(session_id: str) -> HTTPException:
    logger.warning(f"Session {session_id} not found")
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Session {session_id} not found",
    )


def _ensure_idle(session_id: str, run_registry: RunRegistry) -> None:
    """Reject history changes while a run is writing to the session."""
    if run_registry.is_active(session_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Session {session_id} has an active run",
        )


@router.post(
    "",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new session",
)
async def create_session(
    request_body: CreateSessionRequest,
    request: Request,
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> SessionResponse:
    """Create a new chat session.

    The model will be validated against the provider's models. When no
    model is given the server's default model is used.

    Raises:
        HTTPException: 400 if model doesn't exist or none is given
        HTTPException: 502 if provider communication fails
    """
    model = request_body.model or request.app.state.settings.default_model
    if not model:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No model given and no default model configured",
        )

    try:
        options = SessionCreationOptions(
            model=model,
            system_prompt=request_body.system_prompt,
            system_prompt_source_file=request_body.system_prompt_source_file,
        )
        session = await session_manager.create_session(options)
        return _session_response(session)

    except ValueError as e:
        # Model not found
        logger.warning(f"Session creation failed: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to create session: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to create session: {str(e)}",
        )


@router.get(
    "",
    response_model=SessionListResponse,
    summary="List all sessions",
)
async def list_sessions(
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> SessionListResponse:
    """List all chat sessions, sorted by most recently updated."""
    try:
        sessions = session_manager.list_sessions()
    except Exception as e:
        logger.error(f"Failed to list sessions: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to list sessions: {str(e)}",
        )

    items = [
        SessionListItem(
            session_id=session.session_id,
            model=session.model,
            created_at=session.metadata.created_at,
            updated_at=session.metadata.updated_at,
            message_count=session.metadata.message_count,
            preview=session.get_preview(),
        )
        for session in sessions
    ]
    return SessionListResponse(sessions=items)


@router.get(
    "/{session_id}",
    response_model=SessionDetailResponse,
    summary="Get session details",
)
async def get_session(
    session_id: str,
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> SessionDetailResponse:
    """Get full details of a specific session including message history.

    Raises:
        HTTPException: 404 if session not found
    """
    try:
        session = session_manager.get_session(session_id)
    except FileNotFoundError:
        raise _not_found(session_id)
    except Exception as e:
        logger.error(f"Failed to get session {session_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to get session: {str(e)}",
        )

    return SessionDetailResponse(
        **_session_response(session).model_dump(),
        messages=_message_responses(session.messages),
    )


@router.delete(
    "/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a session",
)
async def delete_session(
    session_id: str,
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
    run_registry: Annotated[RunRegistry, Depends(get_run_registry)],
) -> None:
    """Delete a chat session permanently.

    Raises:
        HTTPException: 404 if session not found, 409 if a run is active
    """
    _ensure_idle(session_id, run_registry)
    try:
        session_manager.delete_session(session_id)
    except FileNotFoundError:
        raise _not_found(session_id)
    except Exception as e:
        logger.error(f"Failed to delete session {session_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to delete session: {str(e)}",
        )


@router.patch(
    "/{session_id}",
    response_model=SessionResponse,
    summary="Update session metadata",
)
async def update_session(
    session_id: str,
    request_body: UpdateSessionRequest,
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
    run_registry: Annotated[RunRegistry, Depends(get_run_registry)],
) -> SessionResponse:
    """Update session metadata (model).

    Raises:
        HTTPException: 404 if session not found
        HTTPException: 400 if new model doesn't exist
        HTTPException: 409 if a run is active
    """
    _ensure_idle(session_id, run_registry)
    try:
        session = await session_manager.update_session(
            session_id=session_id, model=request_body.model
        )
        return _session_response(session)

    except FileNotFoundError:
        raise _not_found(session_id)
    except ValueError as e:
        logger.warning(f"Session update failed: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to update session {session_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to update session: {str(e)}",
        )


@router.get(
    "/{session_id}/messages",
    response_model=MessagesResponse,
    summary="Get session messages",
)
async def get_messages(
    session_id: str,
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> MessagesResponse:
    """Get all messages from a session, including tool results and
    synthetic system entries.

    Raises:
        HTTPException: 404 if session not found
    """
    try:
        messages = session_manager.get_messages(session_id)
    except FileNotFoundError:
        raise _not_found(session_id)
    except Exception as e:
        logger.error(
            f"Failed to get messages for session {session_id}: {e}", exc_info=True
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to get messages: {str(e)}",
        )

    return MessagesResponse(messages=_message_responses(messages))


@router.put(
    "/{session_id}/messages/{message_index}",
    status_code=status.HTTP_200_OK,
    summary="Edit a message and truncate subsequent messages",
)
async def edit_message(
    session_id: str,
    message_index: int,
    request_body: EditMessageRequest,
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
    run_registry: Annotated[RunRegistry, Depends(get_run_registry)],
) -> None:
    """Edit a message in the session and remove all messages after it.

    This allows users to branch the conversation from any point by editing
    a previous message. Only user messages can be edited.

    Raises:
        HTTPException: 404 if session not found
        HTTPException: 400 if message_index is out of range or not a user message
        HTTPException: 409 if a run is active
    """
    _ensure_idle(session_id, run_registry)
    try:
        session = session_manager.get_session(session_id)
    except FileNotFoundError:
        raise _not_found(session_id)

    try:
        session.edit_message(message_index, request_body.content)
    except (IndexError, ValueError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        session.save(session_manager.sessions_dir)
    except Exception as e:
        logger.error(
            f"Failed to edit message in session {session_id}: {e}", exc_info=True
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to edit message: {str(e)}",
        )
    logger.info(
        f"Edited message {message_index} in session {session_id} and truncated subsequent messages"
    )


@router.put(
    "/{session_id}/system-prompt",
    status_code=status.HTTP_200_OK,
    summary="Set or update session system prompt",
)
async def set_session_system_prompt(
    session_id: str,
    request_body: SetSessionSystemPromptRequest,
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
    run_registry: Annotated[RunRegistry, Depends(get_run_registry)],
) -> None:
    """Set or update the system prompt for a session.

    Note: This does NOT truncate the conversation history.

    Raises:
        HTTPException: 404 if session not found, 409 if a run is active
    """
    _ensure_idle(session_id, run_registry)
    try:
        session = session_manager.get_session(session_id)
        session.set_system_prompt(request_body.content, request_body.source_file)
        session.save(session_manager.sessions_dir)
    except FileNotFoundError:
        raise _not_found(session_id)
    except Exception as e:
        logger.error(
            f"Failed to set system prompt for session {session_id}: {e}", exc_info=True
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to set system prompt: {str(e)}",
        )
    logger.info(f"Set system prompt for session {session_id}")


@router.delete(
    "/{session_id}/system-prompt",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove session system prompt",
)
async def remove_session_system_prompt(
    session_id: str,
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
    run_registry: Annotated[RunRegistry, Depends(get_run_registry)],
) -> None:
    """Remove the system prompt from a session.

    Raises:
        HTTPException: 404 if session not found
        HTTPException: 400 if no system prompt exists
        HTTPException: 409 if a run is active
    """
    _ensure_idle(session_id, run_registry)
    try:
        session = session_manager.get_session(session_id)
        session.remove_system_prompt()
        session.save(session_manager.sessions_dir)
    except FileNotFoundError:
        raise _not_found(session_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(
            f"Failed to remove system prompt from session {session_id}: {e}",
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to remove system prompt: {str(e)}",
        )
    logger.info(f"Removed system prompt from session {session_id}")
