"""Per-session run bookkeeping.

At most one orchestrator run may be active per session. The registry
hands out a cancel event per run; setting it asks the run to stop at the
next delta or to abandon the tool call it is waiting on.
"""

import asyncio
import logging

logger = logging.getLogger(__name__)


class RunRegistry:
    """Tracks active runs by session id."""

    def __init__(self) -> None:
        self._runs: dict[str, asyncio.Event] = {}

    def try_acquire(self, session_id: str) -> asyncio.Event | None:
        """Register a run for a session.

        Returns:
            The run's cancel event, or None if a run is already active
        """
        if session_id in self._runs:
            logger.warning(f"Session {session_id} already has an active run")
            return None
        cancel_event = asyncio.Event()
        self._runs[session_id] = cancel_event
        return cancel_event

    def release(self, session_id: str) -> None:
        self._runs.pop(session_id, None)

    def is_active(self, session_id: str) -> bool:
        return session_id in self._runs

    def cancel(self, session_id: str) -> bool:
        """Request cancellation of a session's active run.

        Returns:
            True if a run was active, False otherwise
        """
        cancel_event = self._runs.get(session_id)
        if cancel_event is None:
            return False
        logger.info(f"Cancelling run for session {session_id}")
        cancel_event.set()
        return True
