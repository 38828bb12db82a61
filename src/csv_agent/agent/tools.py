"""Tool registry for the CSV agent.

This module defines the tools the agent can call to inspect and analyze the
CSV files attached to a session, and formats them for the LLM providers.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..analysis.csv_engine import CsvAnalysisEngine
from ..analysis.models import AggregationResult, CsvResource, FilterCondition
from ..core.exceptions import ResourceNotFoundError
from ..llm.providers.base import ToolDefinition

logger = logging.getLogger(__name__)

SAMPLE_ROWS = 10
MAX_LISTED_ROWS = 100

_RESOURCE_ID = {
    "type": "string",
    "description": "The ID of the CSV resource"
}

_COLUMN_LIST = {
    "type": "array",
    "items": {"type": "string"},
}

_FILTERS = {
    "type": "array",
    "description": "Conditions that must all hold for a row to match",
    "items": {
        "type": "object",
        "properties": {
            "column": {"type": "string"},
            "operator": {
                "type": "string",
                "enum": ["eq", "gt", "lt", "gte", "lte", "contains", "regex"]
            },
            "value": {"type": ["string", "number", "boolean"]}
        },
        "required": ["column", "operator", "value"]
    }
}

_OPERATION = {
    "type": "string",
    "enum": ["sum", "avg", "count", "min", "max", "group_by"],
    "description": "Aggregation operation"
}


def _bounded(result: AggregationResult) -> Dict[str, Any]:
    """Dump an aggregation, listing at most MAX_LISTED_ROWS groups plus the true group count."""
    output = result.model_dump(exclude_none=True)
    if result.operation == "group_by":
        groups = result.value
        output["total_groups"] = len(groups)
        output["truncated"] = len(groups) > MAX_LISTED_ROWS
        output["value"] = dict(list(groups.items())[:MAX_LISTED_ROWS])
    return output


@dataclass
class Tool:
    """Represents a tool available to the agent."""
    name: str
    description: str
    parameters: Dict[str, Any]  # JSON Schema format
    handler: Callable


class ToolRegistry:
    """Registry of the CSV analysis tools for one agent execution.

    Tools may only address the resources the registry was built with, which
    are the CSV files attached to the executing session. Handlers return a
    JSON-serializable dict and raise on failure; the ToolExecutor turns both
    outcomes into tool results.

    Args:
        engine: CSV engine used to read and query files
        resources: Resources the tools may address
        max_result_rows: Maximum rows returned by ``execute_sql_query``

    Example:
        >>> registry = ToolRegistry(engine, resources)
        >>> tools = registry.get_tools_for_llm()
        >>> result = await registry.get_tool_by_name("execute_sql_query").handler(
        ...     resource_id="r1", query="SELECT COUNT(*) FROM csv_data")
    """

    def __init__(
        self,
        engine: CsvAnalysisEngine,
        resources: Sequence[CsvResource],
        max_result_rows: int = 500
    ):
        self.engine = engine
        self.resources = {r.id: r for r in resources}
        self.max_result_rows = max_result_rows
        self.tools = self._register_tools()

    def _register_tools(self) -> List[Tool]:
        """Register all available tools.

        Returns:
            List of Tool objects
        """
        return [
            Tool(
                name="load_csv_data",
                description=(
                    "Loads and parses a CSV file by resource ID. Returns the headers, "
                    "the row count and the first 10 rows. Use this first to inspect "
                    "the schema of a CSV file."
                ),
                parameters={
                    "type": "object",
                    "properties": {
                        "resource_id": _RESOURCE_ID,
                        "limit": {
                            "type": "integer",
                            "minimum": 1,
                            "description": "Maximum number of rows to load"
                        },
                        "columns": dict(_COLUMN_LIST, description="Only load these columns (default: all)")
                    },
                    "required": ["resource_id"],
                    "additionalProperties": False
                },
                handler=self.load_csv_data
            ),
            Tool(
                name="execute_sql_query",
                description=(
                    "Executes a SQL SELECT query on a CSV file. The file is exposed as the "
                    'table "csv_data" with every column stored as text. Use this for all '
                    "filtering, aggregation, searching and complex analysis. Quote column "
                    'names with spaces ("First Name") and use CAST(column AS REAL) for '
                    "numeric operations."
                ),
                parameters={
                    "type": "object",
                    "properties": {
                        "resource_id": _RESOURCE_ID,
                        "query": {
                            "type": "string",
                            "minLength": 1,
                            "description": "A read-only SELECT statement against csv_data"
                        }
                    },
                    "required": ["resource_id", "query"],
                    "additionalProperties": False
                },
                handler=self.execute_sql_query
            ),
            Tool(
                name="filter_csv_rows",
                description=(
                    "Filters CSV rows on column conditions (eq, gt, lt, gte, lte, contains, "
                    "regex). All conditions must match. Returns at most 100 rows plus the "
                    "total number of matches."
                ),
                parameters={
                    "type": "object",
                    "properties": {
                        "resource_id": _RESOURCE_ID,
                        "filters": _FILTERS
                    },
                    "required": ["resource_id", "filters"],
                    "additionalProperties": False
                },
                handler=self.filter_csv_rows
            ),
            Tool(
                name="aggregate_csv_data",
                description=(
                    "Performs aggregations on CSV data (sum, avg, count, min, max, group_by). "
                    "Non-numeric values are ignored by sum, avg, min and max. group_by lists "
                    "at most 100 groups plus the total number of groups."
                ),
                parameters={
                    "type": "object",
                    "properties": {
                        "resource_id": _RESOURCE_ID,
                        "operation": _OPERATION,
                        "column": {
                            "type": "string",
                            "description": "Column for sum/avg/min/max/group_by"
                        },
                        "group_by": dict(_COLUMN_LIST, description="Columns to group by for group_by")
                    },
                    "required": ["resource_id", "operation"],
                    "additionalProperties": False
                },
                handler=self.aggregate_csv_data
            ),
            Tool(
                name="filter_and_aggregate_csv_data",
                description=(
                    "Filters rows and aggregates the matches in a single operation. Use this "
                    "when you need both filtering and aggregation together."
                ),
                parameters={
                    "type": "object",
                    "properties": {
                        "resource_id": _RESOURCE_ID,
                        "filters": _FILTERS,
                        "operation": _OPERATION,
                        "column": {
                            "type": "string",
                            "description": "Column for sum/avg/min/max/group_by"
                        },
                        "group_by": dict(_COLUMN_LIST, description="Columns to group by for group_by")
                    },
                    "required": ["resource_id", "filters", "operation"],
                    "additionalProperties": False
                },
                handler=self.filter_and_aggregate_csv_data
            ),
            Tool(
                name="get_csv_statistics",
                description=(
                    "Computes descriptive statistics for numeric columns (count, mean, median, "
                    "population std dev, min, max, quartiles)."
                ),
                parameters={
                    "type": "object",
                    "properties": {
                        "resource_id": _RESOURCE_ID,
                        "columns": dict(_COLUMN_LIST, description="Columns to analyze (default: all)")
                    },
                    "required": ["resource_id"],
                    "additionalProperties": False
                },
                handler=self.get_csv_statistics
            ),
            Tool(
                name="search_csv_text",
                description=(
                    "Case-insensitive text search across CSV columns. Returns at most 100 "
                    "matching rows plus the total number of matches."
                ),
                parameters={
                    "type": "object",
                    "properties": {
                        "resource_id": _RESOURCE_ID,
                        "search_term": {
                            "type": "string",
                            "description": "Text to search for"
                        },
                        "columns": dict(_COLUMN_LIST, description="Columns to search (default: all)")
                    },
                    "required": ["resource_id", "search_term"],
                    "additionalProperties": False
                },
                handler=self.search_csv_text
            ),
        ]

    def _resource(self, resource_id: str) -> CsvResource:
        resource = self.resources.get(resource_id)
        if resource is None:
            raise ResourceNotFoundError(resource_id)
        return resource

    async def _load(self, resource_id: str, **kwargs):
        return await asyncio.to_thread(self.engine.load, self._resource(resource_id), **kwargs)

    # Handlers

    async def load_csv_data(
        self,
        resource_id: str,
        limit: Optional[int] = None,
        columns: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        data = await self._load(resource_id, limit=limit, columns=columns)
        return {
            "headers": data.headers,
            "row_count": data.row_count,
            "sample_rows": data.rows[:SAMPLE_ROWS],
        }

    async def execute_sql_query(self, resource_id: str, query: str) -> Dict[str, Any]:
        resource = self._resource(resource_id)
        result = await asyncio.to_thread(self.engine.query, resource, query)
        truncated = result.row_count > self.max_result_rows
        return {
            "columns": result.columns,
            "rows": result.rows[:self.max_result_rows],
            "row_count": result.row_count,
            "truncated": truncated,
        }

    async def filter_csv_rows(self, resource_id: str, filters: List[Dict[str, Any]]) -> Dict[str, Any]:
        conditions = [FilterCondition(**f) for f in filters]
        data = await self._load(resource_id)
        filtered = self.engine.filter(data, conditions)
        return {
            "rows": filtered.rows[:MAX_LISTED_ROWS],
            "total_matches": filtered.row_count,
        }

    async def aggregate_csv_data(
        self,
        resource_id: str,
        operation: str,
        column: Optional[str] = None,
        group_by: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        data = await self._load(resource_id)
        return _bounded(self.engine.aggregate(data, operation, column, group_by))

    async def filter_and_aggregate_csv_data(
        self,
        resource_id: str,
        filters: List[Dict[str, Any]],
        operation: str,
        column: Optional[str] = None,
        group_by: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        conditions = [FilterCondition(**f) for f in filters]
        data = await self._load(resource_id)
        return _bounded(self.engine.filter_and_aggregate(data, conditions, operation, column, group_by))

    async def get_csv_statistics(self, resource_id: str, columns: Optional[List[str]] = None) -> Dict[str, Any]:
        data = await self._load(resource_id)
        return {"statistics": self.engine.statistics(data, columns)}

    async def search_csv_text(
        self,
        resource_id: str,
        search_term: str,
        columns: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        data = await self._load(resource_id)
        matches = self.engine.search(data, search_term, columns)
        return {
            "rows": matches.rows[:MAX_LISTED_ROWS],
            "total_matches": matches.row_count,
        }

    # Lookup

    def get_tools_for_llm(self) -> List[ToolDefinition]:
        """Get the tools as provider-neutral definitions.

        Provider-specific formatting is handled by the LLM provider classes.

        Returns:
            List of ToolDefinition objects
        """
        return [
            ToolDefinition(
                name=tool.name,
                description=tool.description,
                parameters=tool.parameters
            )
            for tool in self.tools
        ]

    def get_tool_by_name(self, name: str) -> Optional[Tool]:
        """Get tool by name.

        Args:
            name: Tool name to look up

        Returns:
            Tool object if found, None otherwise
        """
        for tool in self.tools:
            if tool.name == name:
                return tool
        return None

    def get_all_tools(self) -> List[Tool]:
        """Get all registered tools.

        Returns:
            List of all Tool objects
        """
        return self.tools
