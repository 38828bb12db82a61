"""Pydantic models for the agent: conversation turns, checkpoints and execution state."""

import base64
from typing import Annotated, Any, List, Literal, Optional, Union
from pydantic import BaseModel, Field, field_serializer, field_validator

from ..analysis.models import CsvResource, ResourceSchema
from ..llm.providers.base import ImageInput, Message, ToolCall

CHECKPOINT_VERSION = 1


class ImageAttachment(BaseModel):
    """An image attached to a user turn.

    Stored as raw bytes and serialized to JSON as base64.
    """
    data: bytes
    media_type: str

    @field_validator('data', mode='before')
    @classmethod
    def decode_base64(cls, v: Any) -> Any:
        """Accept base64 text as produced by the serializer."""
        if isinstance(v, str):
            return base64.b64decode(v, validate=True)
        return v

    @field_serializer('data', when_used='json')
    def encode_base64(self, v: bytes) -> str:
        return base64.b64encode(v).decode("ascii")

    def to_image_input(self) -> ImageInput:
        return ImageInput(media_type=self.media_type, data=self.data)


class UserTurn(BaseModel):
    role: Literal["user"] = "user"
    content: str = ""
    images: List[ImageAttachment] = Field(default_factory=list)


class AssistantTurn(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str = ""
    tool_calls: List[ToolCall] = Field(default_factory=list)

    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


class ToolResultTurn(BaseModel):
    """The output of one tool invocation, bound to the call that requested it."""
    role: Literal["tool"] = "tool"
    tool_call_id: str
    name: str
    content: str


Turn = Annotated[Union[UserTurn, AssistantTurn, ToolResultTurn], Field(discriminator="role")]


def turn_to_message(turn: Turn) -> Message:
    """Convert a stored turn into the provider message format."""
    if isinstance(turn, UserTurn):
        return Message(
            role="user",
            content=turn.content,
            images=[image.to_image_input() for image in turn.images]
        )
    if isinstance(turn, AssistantTurn):
        return Message(
            role="assistant",
            content=turn.content,
            tool_calls=list(turn.tool_calls) or None
        )
    return Message(
        role="tool",
        content=turn.content,
        name=turn.name,
        tool_call_id=turn.tool_call_id
    )


class Checkpoint(BaseModel):
    """Complete persisted state of one conversation thread.

    Every save replaces the whole document for the thread.
    """
    version: int = CHECKPOINT_VERSION
    turns: List[Turn] = Field(default_factory=list)


class ResourceMetadata(BaseModel):
    """A session's CSV resource as described to the model.

    ``columns`` and ``row_count`` are None when the schema could not be loaded.
    """
    id: str
    original_name: str
    stored_path: str
    size_bytes: int = 0
    columns: Optional[List[str]] = None
    row_count: Optional[int] = None

    @classmethod
    def from_resource(
        cls,
        resource: CsvResource,
        schema: Optional[ResourceSchema] = None
    ) -> "ResourceMetadata":
        return cls(
            id=resource.id,
            original_name=resource.original_name,
            stored_path=resource.stored_path,
            size_bytes=resource.size_bytes,
            columns=schema.column_names if schema else None,
            row_count=schema.row_count if schema else None,
        )


class AgentState(BaseModel):
    """Working state of one agent execution.

    ``current_query`` and ``current_query_images`` hold the incoming user
    message until the run completes; they are cleared afterwards.
    """
    session_id: str
    current_query: Optional[str] = None
    current_query_images: List[ImageAttachment] = Field(default_factory=list)
    history: List[Turn] = Field(default_factory=list)
    new_turns: List[Turn] = Field(default_factory=list)
    resources: List[ResourceMetadata] = Field(default_factory=list)
    rounds: int = 0

    @field_validator('session_id')
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        """Validate IDs are not empty."""
        if not v or not v.strip():
            raise ValueError("ID cannot be empty")
        return v.strip()

    @property
    def turns(self) -> List[Turn]:
        return [*self.history, *self.new_turns]
