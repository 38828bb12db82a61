"""Agent module for conversational CSV analysis."""

from .checkpoint import CheckpointStore, SupabaseCheckpointStore
from .executor import AgentExecutor, AgentPhase
from .models import (
    AgentState,
    AssistantTurn,
    Checkpoint,
    ImageAttachment,
    ResourceMetadata,
    ToolResultTurn,
    Turn,
    UserTurn,
)
from .prompts import PromptBuilder
from .service import AgentService, StreamEvent
from .tools import Tool, ToolRegistry
from .tool_executor import ToolExecutor

__all__ = [
    "AgentExecutor",
    "AgentPhase",
    "AgentService",
    "AgentState",
    "AssistantTurn",
    "Checkpoint",
    "CheckpointStore",
    "ImageAttachment",
    "PromptBuilder",
    "ResourceMetadata",
    "StreamEvent",
    "SupabaseCheckpointStore",
    "Tool",
    "ToolExecutor",
    "ToolRegistry",
    "ToolResultTurn",
    "Turn",
    "UserTurn",
]
