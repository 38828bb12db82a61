"""Pydantic models for CSV analysis."""

from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field, field_validator

FilterOperator = Literal["eq", "gt", "lt", "gte", "lte", "contains", "regex"]
AggregateOperation = Literal["sum", "avg", "count", "min", "max", "group_by"]
ColumnType = Literal["numeric", "text"]

CSV_MIME_TYPES = {"text/csv", "application/csv"}


class CsvResource(BaseModel):
    """A CSV file attached to a session, as seen by the query engine."""
    id: str
    original_name: str
    stored_path: str
    size_bytes: int = 0
    mime_type: str = "text/csv"

    @property
    def is_tabular(self) -> bool:
        """Whether this resource should be treated as CSV."""
        return (
            self.mime_type in CSV_MIME_TYPES
            or self.original_name.lower().endswith(".csv")
        )


class ParsedCsv(BaseModel):
    """Header and rows of a parsed CSV file.

    Every cell is kept as the string found in the file.
    """
    headers: List[str] = Field(default_factory=list)
    rows: List[Dict[str, str]] = Field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


class ColumnInfo(BaseModel):
    name: str
    type: ColumnType = "text"


class ResourceSchema(BaseModel):
    """Derived column list and total row count for a resource."""
    columns: List[ColumnInfo] = Field(default_factory=list)
    row_count: int = 0

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    @property
    def numeric_columns(self) -> List[str]:
        return [c.name for c in self.columns if c.type == "numeric"]

    @property
    def text_columns(self) -> List[str]:
        return [c.name for c in self.columns if c.type == "text"]


class QueryResult(BaseModel):
    """Result of a read-only SQL query."""
    columns: List[str] = Field(default_factory=list)
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    row_count: int = 0


class FilterCondition(BaseModel):
    """A single column predicate used by the structured filter operation."""
    column: str
    operator: FilterOperator
    value: Any = None

    @field_validator('column')
    @classmethod
    def validate_column(cls, v: str) -> str:
        """Validate column is not empty."""
        if not v:
            raise ValueError("Filter column cannot be empty")
        return v


class AggregationResult(BaseModel):
    """Result of an aggregate operation."""
    operation: AggregateOperation
    column: Optional[str] = None
    value: Any = 0
    group_by: Optional[List[str]] = None
