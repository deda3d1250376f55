"""Pydantic models for mention (pin) endpoints."""

from typing import Literal

from pydantic import BaseModel, Field, model_validator

from toolloop_server.core.types import Mention, MentionKind


class MentionModel(BaseModel):
    """A pinned server or tool."""

    kind: Literal["server", "tool"]
    server_id: str = Field(..., min_length=1)
    tool_name: str | None = None

    @model_validator(mode="after")
    def check_tool_name(self) -> "MentionModel":
        if self.kind == "tool" and not self.tool_name:
            raise ValueError("tool mentions require a tool_name")
        return self

    def to_mention(self) -> Mention:
        return Mention(
            kind=MentionKind(self.kind),
            server_id=self.server_id,
            tool_name=self.tool_name if self.kind == "tool" else None,
        )

    @classmethod
    def from_mention(cls, mention: Mention) -> "MentionModel":
        return cls(
            kind=mention.kind.value,
            server_id=mention.server_id,
            tool_name=mention.tool_name,
        )


class MentionsResponse(BaseModel):
    """The current list of mentions, in pin order."""

    mentions: list[MentionModel]


class ReplaceMentionsRequest(BaseModel):
    """Request body for replacing all mentions. Duplicates are dropped."""

    mentions: list[MentionModel]


class AddMentionResponse(BaseModel):
    """Result of adding one mention."""

    added: bool = Field(description="False if an identical mention already existed")
    mentions: list[MentionModel]
