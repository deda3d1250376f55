"""Reassembly of streamed tool calls.

Providers stream tool calls as fragments keyed by an index. The index is
stable for one call within one response but not necessarily contiguous,
so fragments are kept in a dict and ordered by index at the end.
"""

from toolloop_server.core.types import (
    AccumulatedMessage,
    Delta,
    PendingToolCall,
    generate_tool_call_id,
)


class ToolCallAccumulator:
    """Folds a stream of deltas into one assistant message."""

    def __init__(self) -> None:
        self._content_parts: list[str] = []
        self._calls: dict[int, PendingToolCall] = {}
        self._prompt_tokens: int | None = None
        self._completion_tokens: int | None = None

    @property
    def content(self) -> str:
        """Content received so far."""
        return "".join(self._content_parts)

    def feed(self, delta: Delta) -> None:
        if delta.content_fragment:
            self._content_parts.append(delta.content_fragment)

        for fragment in delta.tool_call_fragments:
            call = self._calls.get(fragment.index)
            if call is None:
                self._calls[fragment.index] = PendingToolCall(
                    id=fragment.id or "",
                    name=fragment.name or "",
                    arguments_json=fragment.arguments_fragment or "",
                )
                continue
            # id and name may be re-sent; arguments always append
            if fragment.id:
                call.id = fragment.id
            if fragment.name:
                call.name = fragment.name
            if fragment.arguments_fragment:
                call.arguments_json += fragment.arguments_fragment

        if delta.prompt_tokens is not None:
            self._prompt_tokens = delta.prompt_tokens
        if delta.completion_tokens is not None:
            self._completion_tokens = delta.completion_tokens

    def finish(self) -> AccumulatedMessage:
        """Return the final message with tool calls ordered by index."""
        tool_calls = []
        for index in sorted(self._calls):
            call = self._calls[index]
            if not call.id:
                call.id = generate_tool_call_id()
            tool_calls.append(call)

        return AccumulatedMessage(
            content=self.content,
            tool_calls=tool_calls,
            prompt_tokens=self._prompt_tokens,
            completion_tokens=self._completion_tokens,
        )
