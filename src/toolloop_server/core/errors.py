"""Exception hierarchy for the conversation loop.

Tool errors are scoped to a single ToolResult and never abort a run.
StreamTransportFailed aborts the whole run. SelectionDegraded is only
logged; selection then falls back to the unfiltered tool list.
"""


class ToolLoopError(Exception):
    """Base class for all conversation loop errors."""


class SelectionDegraded(ToolLoopError):
    """The semantic scorer was unavailable or failed."""


class ToolError(ToolLoopError):
    """A failure scoped to one tool call."""

    code = "tool_error"


class ToolNotFound(ToolError):
    code = "tool_not_found"

    def __init__(self, tool_name: str):
        super().__init__("tool not found")
        self.tool_name = tool_name


class ToolArgsInvalid(ToolError):
    code = "invalid_arguments"


class ToolInvocationFailed(ToolError):
    code = "invocation_failed"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class StreamTransportFailed(ToolLoopError):
    """The completion provider failed while opening or reading the stream."""
