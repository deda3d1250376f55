"""Persistent store for tool and server mentions (pins).

Mentions force tools into scope and bypass semantic filtering. They are
global to the server, like a user preference, and persisted as a JSON
list. The store never holds two mentions with the same key.
"""

import json
import logging
from pathlib import Path

from toolloop_server.core.types import Mention, dedupe_mentions

logger = logging.getLogger(__name__)


class MentionStore:
    """JSON-file backed list of mentions.

    Args:
        path: File the mentions are persisted to
    """

    def __init__(self, path: Path):
        self.path = path
        self._mentions: list[Mention] = []

    def load(self) -> None:
        """Load mentions from disk.

        A missing file means no mentions. An unreadable file is logged and
        treated as empty.
        """
        if not self.path.exists():
            self._mentions = []
            return

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            mentions = [Mention.from_dict(item) for item in data.get("mentions", [])]
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Failed to load mentions from {self.path}: {e}")
            self._mentions = []
            return

        self._mentions = dedupe_mentions(mentions)
        logger.info(f"Loaded {len(self._mentions)} mentions from {self.path}")

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(
                {"mentions": [m.to_dict() for m in self._mentions]},
                f,
                indent=2,
                ensure_ascii=False,
            )
        logger.debug(f"Saved {len(self._mentions)} mentions to {self.path}")

    def snapshot(self) -> list[Mention]:
        """Copy of the current mentions, safe to iterate during a run."""
        return list(self._mentions)

    def replace(self, mentions: list[Mention]) -> list[Mention]:
        """Replace all mentions, dropping duplicates."""
        self._mentions = dedupe_mentions(mentions)
        self.save()
        return self.snapshot()

    def add(self, mention: Mention) -> bool:
        """Add a mention unless one with the same key exists.

        Returns:
            True if the mention was added
        """
        if any(m.key == mention.key for m in self._mentions):
            logger.debug(f"Mention {mention.key} already present")
            return False
        self._mentions.append(mention)
        self.save()
        return True

    def remove(self, index: int) -> Mention:
        """Remove the mention at a position.

        Raises:
            IndexError: If index is out of range
        """
        if index < 0 or index >= len(self._mentions):
            raise IndexError(f"Mention index {index} out of range")
        mention = self._mentions.pop(index)
        self.save()
        return mention

    def clear(self) -> None:
        self._mentions = []
        self.save()
