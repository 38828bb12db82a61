"""The agent execution core: a bounded tool-calling loop with streamed output.

One execution moves through::

    LOAD_METADATA -> INFER -> (EXECUTE_TOOLS -> INFER)* -> DONE

``INFER`` streams the model's text as it is produced. When the model asks
for tools, ``EXECUTE_TOOLS`` runs them and feeds their results back into the
next ``INFER``. The number of tool rounds is capped. All turns produced by
the execution are saved to the checkpoint store in a single write once the
loop is done.
"""

import asyncio
import logging
import uuid
from enum import Enum
from typing import AsyncIterator, Callable, List, Optional

from ..analysis.csv_engine import CsvAnalysisEngine
from ..analysis.models import CsvResource
from ..config.settings import ServerConfig
from ..core.exceptions import CheckpointIOError
from ..llm.factory import create_provider_from_config
from ..llm.providers.base import (
    LLMGenerationError,
    LLMProvider,
    Message,
    ToolCall,
)
from ..services.resource_service import ResourceService
from .checkpoint import CheckpointStore
from .models import (
    AgentState,
    AssistantTurn,
    Checkpoint,
    ResourceMetadata,
    ToolResultTurn,
    Turn,
    UserTurn,
    turn_to_message,
)
from .prompts import PromptBuilder
from .tool_executor import ToolExecutor
from .tools import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_PROMPT = "Please analyze the image(s) I uploaded."
ROUND_CAP_MESSAGE = (
    "I could not finish the analysis within the allowed number of tool calls. "
    "Please try a narrower question."
)


class AgentPhase(str, Enum):
    LOAD_METADATA = "load_metadata"
    INFER = "infer"
    EXECUTE_TOOLS = "execute_tools"
    DONE = "done"


def _with_ids(tool_calls: List[ToolCall]) -> List[ToolCall]:
    """Give every tool call an ID so its result can be correlated."""
    return [
        tc if tc.id else tc.model_copy(update={"id": f"call_{uuid.uuid4().hex[:24]}"})
        for tc in tool_calls
    ]


class AgentExecutor:
    """Drives one user message through the model and the CSV tools.

    Args:
        config: Server configuration (provider settings, round cap, result limits)
        checkpoints: Store holding each session's conversation
        resources: Service listing the CSV resources of a session
        engine: CSV engine backing the tools
        provider_factory: Builds the LLM provider for an execution; defaults
            to the configured provider
    """

    def __init__(
        self,
        config: ServerConfig,
        checkpoints: CheckpointStore,
        resources: ResourceService,
        engine: CsvAnalysisEngine,
        provider_factory: Optional[Callable[[ServerConfig], LLMProvider]] = None
    ):
        self.config = config
        self.checkpoints = checkpoints
        self.resources = resources
        self.engine = engine
        self.provider_factory = provider_factory or create_provider_from_config

    async def run(self, state: AgentState) -> AsyncIterator[str]:
        """Execute the state machine for ``state``, yielding text fragments.

        The conversation is saved only if the generator runs to completion.

        Raises:
            LLMProviderError: If the provider cannot be created or the model call fails
            CheckpointIOError: If the final save fails
        """
        phase = AgentPhase.LOAD_METADATA
        provider: Optional[LLMProvider] = None
        registry: Optional[ToolRegistry] = None
        pending: List[ToolCall] = []

        try:
            while phase != AgentPhase.DONE:
                logger.info(f"Session {state.session_id}: {phase.value} (round {state.rounds})")

                if phase == AgentPhase.LOAD_METADATA:
                    state.history = await self._load_history(state.session_id)
                    csv_resources = await self._list_resources(state.session_id)
                    state.resources = await self._describe_resources(csv_resources)
                    registry = ToolRegistry(self.engine, csv_resources, self.config.max_result_rows)
                    provider = self.provider_factory(self.config)
                    phase = AgentPhase.INFER

                elif phase == AgentPhase.INFER:
                    if not state.new_turns:
                        state.new_turns.append(UserTurn(
                            content=state.current_query or "",
                            images=list(state.current_query_images)
                        ))

                    response = None
                    streamed = ""
                    async for chunk in provider.stream(self._build_messages(state), tools=registry.get_tools_for_llm()):
                        if chunk.delta:
                            streamed += chunk.delta
                            yield chunk.delta
                        if chunk.response is not None:
                            response = chunk.response
                    if response is None:
                        raise LLMGenerationError("Model stream ended without a response")

                    text = response.content or streamed
                    if len(text) > len(streamed):
                        yield text[len(streamed):]

                    if response.has_tool_calls() and state.rounds < self.config.max_tool_rounds:
                        pending = _with_ids(response.tool_calls)
                        state.new_turns.append(AssistantTurn(content=text, tool_calls=pending))
                        phase = AgentPhase.EXECUTE_TOOLS
                        continue

                    if response.has_tool_calls():
                        # Cap reached: the last text becomes the answer and the calls are dropped
                        logger.warning(
                            f"Session {state.session_id}: tool round cap ({self.config.max_tool_rounds}) "
                            f"reached, dropping {len(response.tool_calls)} tool call(s)"
                        )
                        if not text:
                            text = ROUND_CAP_MESSAGE
                            yield text
                    state.new_turns.append(AssistantTurn(content=text))
                    phase = AgentPhase.DONE

                elif phase == AgentPhase.EXECUTE_TOOLS:
                    results = await ToolExecutor(registry).execute_tool_calls(pending)
                    for call, result in zip(pending, results):
                        state.new_turns.append(ToolResultTurn(
                            tool_call_id=call.id,
                            name=call.name,
                            content=result["content"]
                        ))
                    state.rounds += 1
                    pending = []
                    phase = AgentPhase.INFER

            await self.checkpoints.save(state.session_id, Checkpoint(turns=state.turns))
            state.current_query = None
            state.current_query_images = []
            logger.info(
                f"Session {state.session_id}: done, {len(state.new_turns)} new turns after {state.rounds} tool rounds"
            )
        finally:
            if provider is not None:
                await provider.close()

    def _build_messages(self, state: AgentState) -> List[Message]:
        messages = [Message(role="system", content=PromptBuilder.build_system_prompt(state.resources))]
        for turn in state.turns:
            message = turn_to_message(turn)
            if isinstance(turn, UserTurn) and turn.images and not turn.content.strip():
                message.content = DEFAULT_IMAGE_PROMPT
            messages.append(message)
        return messages

    async def _load_history(self, session_id: str) -> List[Turn]:
        try:
            checkpoint = await self.checkpoints.load(session_id)
        except CheckpointIOError as e:
            logger.warning(f"Starting session {session_id} with empty history: {e}")
            return []
        return list(checkpoint.turns)

    async def _list_resources(self, session_id: str) -> List[CsvResource]:
        try:
            return await self.resources.list_csv_resources(session_id)
        except Exception as e:
            logger.error(f"Error loading CSV resources for session {session_id}: {e}", exc_info=True)
            return []

    async def _describe_resources(self, resources: List[CsvResource]) -> List[ResourceMetadata]:
        return list(await asyncio.gather(*(self._describe(r) for r in resources)))

    async def _describe(self, resource: CsvResource) -> ResourceMetadata:
        try:
            schema = await asyncio.to_thread(self.engine.schema, resource)
        except Exception as e:
            logger.warning(f"Schema unavailable for {resource.original_name} ({resource.id}): {e}")
            return ResourceMetadata.from_resource(resource)
        return ResourceMetadata.from_resource(resource, schema)
