"""SessionManager for CRUD operations on chat sessions.

This module provides the SessionManager class which handles:
- Creating new sessions with model validation
- Listing sessions sorted by last update
- Retrieving session details
- Updating session metadata
- Deleting sessions
"""

import logging
from pathlib import Path

from toolloop_server.llm.base import LLMClient
from toolloop_server.sessions.session import ChatSession
from toolloop_server.sessions.types import Message, SessionCreationOptions

logger = logging.getLogger(__name__)


class SessionManager:
    """Manages chat sessions with CRUD operations.

    The SessionManager operates on a directory of JSON session files
    and provides high-level operations for session management.
    """

    def __init__(self, sessions_dir: Path, llm_client: LLMClient | None = None):
        """Initialize the SessionManager.

        Args:
            sessions_dir: Directory where session JSON files are stored
            llm_client: Optional LLM client for model validation
        """
        self.sessions_dir = sessions_dir
        self.llm_client = llm_client
        self.sessions_dir.mkdir(parents=True, exist_ok=True)

    async def _validate_model(self, model: str) -> None:
        if self.llm_client is None:
            return
        model_info = await self.llm_client.get_model_info(model)
        if model_info is None:
            raise ValueError(f"Model '{model}' not found")

    async def create_session(self, options: SessionCreationOptions) -> ChatSession:
        """Create a new chat session.

        Args:
            options: Session creation options including model and system prompt

        Returns:
            The newly created ChatSession

        Raises:
            ValueError: If the model doesn't exist (when llm_client is provided)
        """
        await self._validate_model(options.model)

        session_id = ChatSession.generate_session_id()
        session = ChatSession(session_id=session_id, model=options.model)

        if options.system_prompt:
            session.set_system_prompt(
                options.system_prompt, source_file=options.system_prompt_source_file
            )

        session.save(self.sessions_dir)

        logger.info(f"Created new session {session_id} with model {options.model}")
        return session

    def list_sessions(self) -> list[ChatSession]:
        """List all sessions, sorted by updated_at descending.

        Returns:
            List of ChatSession objects, newest first
        """
        sessions: list[ChatSession] = []

        for file_path in self.sessions_dir.glob("*.json"):
            session_id = file_path.stem
            try:
                sessions.append(ChatSession.load(session_id, self.sessions_dir))
            except Exception as e:
                logger.warning(f"Failed to load session {session_id}: {e}")
                continue

        sessions.sort(key=lambda s: s.metadata.updated_at, reverse=True)

        logger.debug(f"Listed {len(sessions)} sessions")
        return sessions

    def get_session(self, session_id: str) -> ChatSession:
        """Get a specific session by ID.

        Raises:
            FileNotFoundError: If session doesn't exist
        """
        session = ChatSession.load(session_id, self.sessions_dir)
        logger.debug(f"Retrieved session {session_id}")
        return session

    def delete_session(self, session_id: str) -> None:
        """Delete a session.

        Raises:
            FileNotFoundError: If session doesn't exist
        """
        file_path = self.sessions_dir / f"{session_id}.json"

        if not file_path.exists():
            raise FileNotFoundError(f"Session {session_id} not found")

        file_path.unlink()
        logger.info(f"Deleted session {session_id}")

    async def update_session(
        self, session_id: str, model: str | None = None
    ) -> ChatSession:
        """Update session metadata.

        Args:
            session_id: The session ID to update
            model: Optional new model name

        Returns:
            The updated ChatSession

        Raises:
            FileNotFoundError: If session doesn't exist
            ValueError: If new model doesn't exist (when llm_client is provided)
        """
        session = self.get_session(session_id)

        if model is not None:
            await self._validate_model(model)
            session.update_model(model)

        session.save(self.sessions_dir)

        logger.info(f"Updated session {session_id}")
        return session

    def get_messages(self, session_id: str) -> list[Message]:
        """Get all messages from a session.

        Raises:
            FileNotFoundError: If session doesn't exist
        """
        return self.get_session(session_id).messages
