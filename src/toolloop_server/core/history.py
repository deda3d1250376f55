"""Conversation history seam between the orchestrator and persistence.

The orchestrator is the single writer of a history during a run. It only
appends, except for the newest assistant message while it is streaming,
which is updated in place and then committed.
"""

import logging
from typing import Any, Protocol, Sequence

from toolloop_server.sessions.types import (
    AssistantMessage,
    Message,
    SystemMessage,
    ToolMessage,
    UserMessage,
)

logger = logging.getLogger(__name__)


class ConversationHistory(Protocol):
    """Append-only message history with a persistence hook."""

    @property
    def messages(self) -> list[Message]: ...

    def append(self, message: Message) -> None:
        """Append a message and persist it."""
        ...

    def commit(self) -> None:
        """Persist after an in-place update of the newest message."""
        ...


class InMemoryHistory:
    """History without persistence."""

    def __init__(self, messages: list[Message] | None = None):
        self._messages: list[Message] = list(messages or [])

    @property
    def messages(self) -> list[Message]:
        return self._messages

    def append(self, message: Message) -> None:
        self._messages.append(message)

    def commit(self) -> None:
        pass


def build_transcript(
    messages: Sequence[Message], default_system_prompt: str | None = None
) -> list[dict[str, Any]]:
    """Convert a history into the provider message format.

    Synthetic system messages (filter metrics, notices) and assistant error
    messages stay out of the transcript. Tool calls are only kept when
    every call has a matching tool message, so an interrupted batch never
    reaches the provider half-answered.

    Args:
        messages: Conversation history, oldest first
        default_system_prompt: Prepended when the history has no system prompt

    Returns:
        List of message dicts: [{"role": "...", "content": "..."}, ...]
    """
    answered = {m.tool_call_id for m in messages if isinstance(m, ToolMessage)}
    included_calls: set[str] = set()
    transcript: list[dict[str, Any]] = []

    for msg in messages:
        if isinstance(msg, SystemMessage):
            if not msg.is_synthetic:
                transcript.append({"role": "system", "content": msg.content})
        elif isinstance(msg, UserMessage):
            transcript.append({"role": "user", "content": msg.content})
        elif isinstance(msg, AssistantMessage):
            if msg.is_error:
                continue
            entry: dict[str, Any] = {"role": "assistant", "content": msg.content}
            call_ids = [call.get("id", "") for call in msg.tool_calls or []]
            if call_ids and all(cid in answered for cid in call_ids):
                entry["tool_calls"] = msg.tool_calls
                included_calls.update(call_ids)
            elif call_ids:
                logger.debug(f"Dropping unanswered tool calls from {msg.message_id}")
            if not msg.content and "tool_calls" not in entry:
                continue
            transcript.append(entry)
        elif isinstance(msg, ToolMessage):
            if msg.tool_call_id not in included_calls:
                continue
            transcript.append(
                {
                    "role": "tool",
                    "tool_call_id": msg.tool_call_id,
                    "name": msg.tool_name,
                    "content": msg.content,
                }
            )

    has_system = any(m["role"] == "system" for m in transcript)
    if default_system_prompt and not has_system:
        transcript.insert(0, {"role": "system", "content": default_system_prompt})

    return transcript
