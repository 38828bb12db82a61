"""CSV parsing, schema inference and structured analysis operations."""
import logging
import math
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import pandas as pd

from ..core.exceptions import ParseError, UnsafeQueryError
from .models import (
    AggregationResult,
    ColumnInfo,
    CsvResource,
    FilterCondition,
    ParsedCsv,
    QueryResult,
    ResourceSchema,
)
from .sql_runner import is_safe_select, run_select

logger = logging.getLogger(__name__)

SCHEMA_SAMPLE_ROWS = 1000


def to_number(value: Any) -> Optional[float]:
    """Coerce a cell to a finite float, or None if it is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    return number if math.isfinite(number) else None


def _loose_equals(cell: Any, expected: Any) -> bool:
    if cell is None:
        cell = ""
    if str(cell) == str(expected):
        return True
    left, right = to_number(cell), to_number(expected)
    return left is not None and right is not None and left == right


def _matches(row: Dict[str, Any], condition: FilterCondition) -> bool:
    cell = row.get(condition.column)
    op = condition.operator

    if op == "eq":
        return _loose_equals(cell, condition.value)
    if op == "contains":
        return str(condition.value).lower() in str(cell if cell is not None else "").lower()
    if op == "regex":
        try:
            return re.search(str(condition.value), str(cell if cell is not None else ""), re.IGNORECASE) is not None
        except re.error:
            return False

    left, right = to_number(cell), to_number(condition.value)
    if left is None or right is None:
        return False
    if op == "gt":
        return left > right
    if op == "lt":
        return left < right
    if op == "gte":
        return left >= right
    if op == "lte":
        return left <= right
    return False


def _header_names(cells: Sequence[str]) -> List[str]:
    """Header cells with repeats suffixed ``.1``, ``.2``... as pandas names them."""
    counts: Dict[str, int] = {}
    names = []
    for cell in cells:
        name = cell
        while name in counts:
            counts[cell] += 1
            name = f"{cell}.{counts[cell]}"
        counts.setdefault(name, 0)
        names.append(name)
    return names


def _numeric_values(rows: Iterable[Dict[str, Any]], column: str) -> List[float]:
    values = []
    for row in rows:
        number = to_number(row.get(column))
        if number is not None:
            values.append(number)
    return values


class CsvAnalysisEngine:
    """Answers structured questions about CSV resources stored on disk.

    Resource paths that are not absolute are resolved against ``uploads_dir``.
    All methods are synchronous; async callers should run them in a worker
    thread.
    """

    def __init__(self, uploads_dir: Union[str, Path] = "uploads"):
        self.uploads_dir = Path(uploads_dir)

    def resolve_path(self, resource: CsvResource) -> Path:
        path = Path(resource.stored_path)
        if path.is_absolute():
            return path
        return self.uploads_dir / path

    # Parsing

    def parse(
        self,
        path: Union[str, Path],
        limit: Optional[int] = None,
        columns: Optional[Sequence[str]] = None
    ) -> ParsedCsv:
        """Parse a CSV file into a header and rows of strings.

        Args:
            path: File to read
            limit: Keep at most this many rows (the header is always kept)
            columns: Project onto these columns; names missing from the header are ignored

        Returns:
            ParsedCsv with headers in file order

        Raises:
            ParseError: If the content is not validly delimited, a row's field
                count differs from the header's, or the file is not UTF-8
        """
        # The header is read as an ordinary row so pandas never infers an
        # index from surplus fields; a longer row is a tokenizer error.
        try:
            raw = pd.read_csv(
                path,
                header=None,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
                encoding="utf-8-sig",
            )
        except pd.errors.EmptyDataError:
            return ParsedCsv()
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            raise ParseError(f"Failed to parse CSV: {e}") from e

        # Missing trailing fields are the only source of NaN with keep_default_na=False
        short_rows = raw.index[raw.isna().any(axis=1)]
        if len(short_rows):
            raise ParseError(
                f"Failed to parse CSV: data row {short_rows[0]} has fewer fields "
                f"than the {len(raw.columns)} header columns"
            )

        headers = _header_names(raw.iloc[0].tolist())
        frame = raw.iloc[1:].reset_index(drop=True)
        frame.columns = headers

        if columns:
            wanted = set(columns)
            headers = [h for h in headers if h in wanted]
            frame = frame[headers]

        if limit is not None:
            frame = frame.head(max(limit, 0))

        return ParsedCsv(headers=headers, rows=frame.to_dict(orient="records"))

    def load(
        self,
        resource: CsvResource,
        limit: Optional[int] = None,
        columns: Optional[Sequence[str]] = None
    ) -> ParsedCsv:
        """Parse the file behind ``resource``."""
        return self.parse(self.resolve_path(resource), limit=limit, columns=columns)

    def schema(self, resource: CsvResource) -> ResourceSchema:
        """Infer column types and count rows for a resource.

        A column is numeric when its first non-empty value among the first
        1000 rows is a finite number. Columns with no value in the sample
        are text.
        """
        data = self.load(resource)
        sample = data.rows[:SCHEMA_SAMPLE_ROWS]

        columns = []
        for header in data.headers:
            first = next((row[header] for row in sample if row.get(header, "") != ""), None)
            kind = "numeric" if first is not None and to_number(first) is not None else "text"
            columns.append(ColumnInfo(name=header, type=kind))

        return ResourceSchema(columns=columns, row_count=data.row_count)

    def query(self, resource: CsvResource, sql: str) -> QueryResult:
        """Run a read-only SQL query against a resource exposed as ``csv_data``.

        Raises:
            UnsafeQueryError: If ``sql`` is not a SELECT statement; the file is not read
            ParseError: If the file cannot be parsed
            QueryExecutionError: If the statement fails
        """
        if not is_safe_select(sql):
            raise UnsafeQueryError("Only SELECT queries are allowed")
        data = self.load(resource)
        logger.debug(f"Running query on {resource.original_name} ({data.row_count} rows)")
        return run_select(data, sql)

    # Structured operations

    @staticmethod
    def filter(data: ParsedCsv, filters: Sequence[FilterCondition]) -> ParsedCsv:
        """Keep rows matching every condition. No conditions keeps every row."""
        rows = [row for row in data.rows if all(_matches(row, f) for f in filters)]
        return ParsedCsv(headers=data.headers, rows=rows)

    @staticmethod
    def aggregate(
        data: ParsedCsv,
        operation: str,
        column: Optional[str] = None,
        group_by: Optional[Sequence[str]] = None
    ) -> AggregationResult:
        """Aggregate rows.

        ``count`` ignores ``column``. ``sum``, ``avg``, ``min`` and ``max`` skip
        non-numeric cells and return 0 when nothing numeric remains.
        ``group_by`` sums ``column`` per distinct combination of the grouping
        columns, keyed by the values joined with ``|``.

        Raises:
            ValueError: If a required column or grouping list is missing
        """
        if operation == "count":
            return AggregationResult(operation="count", value=data.row_count)

        if not column:
            raise ValueError(f"Column is required for operation: {operation}")

        if operation == "group_by":
            if not group_by:
                raise ValueError("group_by columns are required for group_by operation")

            grouped: Dict[str, Dict[str, Any]] = {}
            for row in data.rows:
                key = "|".join(str(row.get(g) or "") for g in group_by)
                if key not in grouped:
                    grouped[key] = {g: row.get(g) for g in group_by}
                    grouped[key][column] = 0.0
                grouped[key][column] += to_number(row.get(column)) or 0.0

            return AggregationResult(
                operation="group_by",
                column=column,
                value=grouped,
                group_by=list(group_by)
            )

        values = _numeric_values(data.rows, column)
        if not values:
            return AggregationResult(operation=operation, column=column, value=0)

        if operation == "sum":
            result = math.fsum(values)
        elif operation == "avg":
            result = math.fsum(values) / len(values)
        elif operation == "min":
            result = min(values)
        elif operation == "max":
            result = max(values)
        else:
            raise ValueError(f"Unsupported operation: {operation}")

        return AggregationResult(operation=operation, column=column, value=result)

    @classmethod
    def filter_and_aggregate(
        cls,
        data: ParsedCsv,
        filters: Sequence[FilterCondition],
        operation: str,
        column: Optional[str] = None,
        group_by: Optional[Sequence[str]] = None
    ) -> AggregationResult:
        return cls.aggregate(cls.filter(data, filters), operation, column, group_by)

    @staticmethod
    def statistics(data: ParsedCsv, columns: Optional[Sequence[str]] = None) -> Dict[str, Dict[str, Any]]:
        """Descriptive statistics per column.

        Standard deviation is the population one. Quartiles take the sorted
        value at index ``floor(n * 0.25)`` and ``floor(n * 0.75)``.
        """
        stats: Dict[str, Dict[str, Any]] = {}
        for col in (columns or data.headers):
            values = sorted(_numeric_values(data.rows, col))
            n = len(values)
            if n == 0:
                stats[col] = {"error": "No numeric values found"}
                continue

            mean = math.fsum(values) / n
            if n % 2 == 0:
                median = (values[n // 2 - 1] + values[n // 2]) / 2
            else:
                median = values[n // 2]
            variance = math.fsum((v - mean) ** 2 for v in values) / n

            stats[col] = {
                "count": n,
                "mean": mean,
                "median": median,
                "min": values[0],
                "max": values[-1],
                "std_dev": math.sqrt(variance),
                "q1": values[math.floor(n * 0.25)],
                "q3": values[math.floor(n * 0.75)],
            }
        return stats

    @staticmethod
    def search(data: ParsedCsv, term: str, columns: Optional[Sequence[str]] = None) -> ParsedCsv:
        """Rows where any of ``columns`` (default: all) contains ``term``, ignoring case."""
        needle = term.lower()
        targets = columns or data.headers
        rows = [
            row for row in data.rows
            if any(needle in str(row.get(col) or "").lower() for col in targets)
        ]
        return ParsedCsv(headers=data.headers, rows=rows)
