"""Session-backed conversation history.

Adapts a ChatSession to the ConversationHistory protocol used by the
orchestrator. Every append and commit saves the session file. Save
failures are logged and the run continues with the in-memory history.
"""

import logging
from pathlib import Path

from toolloop_server.sessions.session import ChatSession
from toolloop_server.sessions.types import Message

logger = logging.getLogger(__name__)


class SessionHistory:
    """ConversationHistory that persists to a session JSON file."""

    def __init__(self, session: ChatSession, sessions_dir: Path):
        self.session = session
        self.sessions_dir = sessions_dir
        self.save_failures = 0

    @property
    def messages(self) -> list[Message]:
        return self.session.messages

    def append(self, message: Message) -> None:
        self.session.add_message(message)
        self._save()

    def commit(self) -> None:
        self.session.metadata.message_count = len(self.session.messages)
        self._save()

    def _save(self) -> None:
        try:
            self.session.save(self.sessions_dir)
        except Exception as e:
            self.save_failures += 1
            logger.error(f"Failed to save session {self.session.session_id}: {e}")
