"""Validation and execution of the tool calls a model requests.

This module validates tool arguments against each tool's JSON schema, runs
the handlers, and converts every outcome, including failures, into a result
the model can read.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List

from jsonschema import Draft7Validator

from ..core.exceptions import InvalidToolArgsError, UnknownToolError
from ..core.json_encoder import dumps
from ..llm.providers.base import ToolCall
from .tools import Tool, ToolRegistry

logger = logging.getLogger(__name__)


def _format_path(error) -> str:
    path = ".".join(str(p) for p in error.absolute_path)
    return path or "(root)"


def validate_arguments(tool: Tool, arguments: Dict[str, Any]) -> None:
    """Check ``arguments`` against the tool's parameter schema.

    Raises:
        InvalidToolArgsError: Listing every violation found
    """
    validator = Draft7Validator(tool.parameters)
    errors = sorted(validator.iter_errors(arguments), key=lambda e: list(e.absolute_path))
    if errors:
        details = "; ".join(f"{_format_path(e)}: {e.message}" for e in errors)
        raise InvalidToolArgsError(f"Invalid arguments for {tool.name}: {details}")


class ToolExecutor:
    """Runs the tool calls of a model response against a session's registry.

    Every call produces exactly one result, so each requested call ID gets
    an answer even when the tool is unknown, the arguments are invalid or
    the handler fails.

    Example:
        >>> results = await ToolExecutor(registry).execute_tool_calls(response.tool_calls)
        >>> [r["content"] for r in results]
    """

    def __init__(self, tool_registry: ToolRegistry):
        self.registry = tool_registry

    async def execute_tool_calls(
        self,
        tool_calls: List[ToolCall]
    ) -> List[Dict[str, Any]]:
        """Execute the tool calls of one model response.

        Calls run concurrently; results come back in the order of ``tool_calls``.

        Args:
            tool_calls: Calls from one model response

        Returns:
            List of result dictionaries with tool_call_id, tool_name, success,
            result/error and the serialized ``content`` sent back to the model
        """
        return list(await asyncio.gather(
            *(self.execute_single_tool(tool_call) for tool_call in tool_calls)
        ))

    async def execute_single_tool(
        self,
        tool_call: ToolCall
    ) -> Dict[str, Any]:
        """Execute a single tool call. Never raises.

        Args:
            tool_call: One call from a model response

        Returns:
            Dict with tool_call_id, tool_name, success, result/error and content
        """
        tool_name = tool_call.name
        call_id = tool_call.id
        arguments = tool_call.arguments or {}

        try:
            logger.info(f"Executing tool: {tool_name} with args: {arguments}")

            tool = self.registry.get_tool_by_name(tool_name)
            if not tool:
                raise UnknownToolError(f"Unknown tool: {tool_name}")

            validate_arguments(tool, arguments)
            result = await tool.handler(**arguments)

            logger.info(f"Tool {tool_name} executed successfully")

            return {
                "tool_call_id": call_id,
                "tool_name": tool_name,
                "success": True,
                "result": result,
                "content": dumps({"success": True, **result}),
            }

        except Exception as e:
            logger.error(f"Tool execution failed: {tool_name or 'unknown'}: {e}", exc_info=True)
            return {
                "tool_call_id": call_id,
                "tool_name": tool_name or "unknown",
                "success": False,
                "error": str(e),
                "content": json.dumps({"success": False, "error": str(e)}),
            }
